import logging
from enum import Enum
from typing import Annotated, Literal, NoReturn, cast

import typer

import zarrpeek
from zarrpeek.core.config import BadConfigError, config
from zarrpeek.core.normalize import DisplayRange
from zarrpeek.core.tree import TreeViewer
from zarrpeek.errors import (
    BaseZarrPeekError,
    ChunkDecodeError,
    ChunkFetchError,
    MetadataError,
    NormalizationError,
    SelectorError,
    UnsupportedTerminalError,
)

app = typer.Typer()

logger = logging.getLogger(__name__)

# checked in order, first match wins
EXIT_CODES: list[tuple[type[Exception], int]] = [
    (MetadataError, 3),
    (FileNotFoundError, 3),
    (SelectorError, 4),
    (ChunkFetchError, 5),
    (ChunkDecodeError, 6),
    (UnsupportedTerminalError, 7),
    (NormalizationError, 8),
    (BadConfigError, 2),
    (BaseZarrPeekError, 1),
]


def _set_logging_level(*, verbose: bool) -> None:
    if verbose:
        lvl = "INFO"
    else:
        lvl = "WARNING"
    zarrpeek.set_log_level(cast(Literal["INFO", "WARNING"], lvl))
    zarrpeek.set_format("%(message)s")


def _fail(error: Exception) -> NoReturn:
    for error_type, code in EXIT_CODES:
        if isinstance(error, error_type):
            typer.echo(f"error: {error}", err=True)
            raise typer.Exit(code) from error
    raise error


class Protocol(str, Enum):
    auto = "auto"
    sixel = "sixel"
    kitty = "kitty"
    blocks = "blocks"


def _parse_channels(text: str | None) -> list[int] | None:
    if text is None:
        return None
    try:
        return [int(c) for c in text.split(",") if c.strip()]
    except ValueError as e:
        raise SelectorError(f"Invalid channel list {text!r}.", "c") from e


def _parse_quantiles(low: float | None, high: float | None) -> tuple[float, float] | None:
    if low is None and high is None:
        return None
    return (
        config.get("normalization.low_quantile") if low is None else low,
        config.get("normalization.high_quantile") if high is None else high,
    )


LocationArgument = Annotated[
    str,
    typer.Argument(
        help=(
            "Location of the OME-Zarr image: a local directory e.g. 'data/image.zarr', or a URL "
            "e.g. 'https://example.org/image.zarr'."
        )
    ),
]


@app.command()  # type: ignore[misc]
def view(
    location: LocationArgument,
    resolution: Annotated[
        str | None,
        typer.Option(
            "--resolution",
            "-r",
            help="Resolution level path e.g. '/0'. Defaults to the lowest resolution.",
        ),
    ] = None,
    select: Annotated[
        str | None,
        typer.Option(
            "--select",
            "-s",
            help=(
                "Axis selectors e.g. 't=0,z=10,y=100:300,x=:'. Bare integers pin the non-spatial "
                "axes in order. Unselected non-spatial axes default to their center index."
            ),
        ),
    ] = None,
    channels: Annotated[
        str | None,
        typer.Option(
            "--channels", "-c", help="Comma-separated channel indices to composite e.g. '0,2'."
        ),
    ] = None,
    display_range: Annotated[
        list[str] | None,
        typer.Option(
            "--range",
            help="Display range MIN:MAX, once per channel. Defaults to autocontrast.",
        ),
    ] = None,
    palette: Annotated[
        str | None,
        typer.Option(help="Comma-separated hex colors for compositing e.g. 'FF0000,00FF00'."),
    ] = None,
    crop_size: Annotated[
        int | None,
        typer.Option(help="Limit unselected spatial axes to their first CROP_SIZE pixels."),
    ] = None,
    low: Annotated[
        float | None,
        typer.Option(help="Lower autocontrast quantile, in [0, 1]."),
    ] = None,
    high: Annotated[
        float | None,
        typer.Option(help="Upper autocontrast quantile, in [0, 1]."),
    ] = None,
    protocol: Annotated[
        Protocol | None,
        typer.Option(help="Terminal graphics protocol. Defaults to the configured one."),
    ] = None,
) -> None:
    """Render a 2-D slice of an OME-Zarr image in the terminal."""
    overrides = {} if protocol is None else {"terminal.protocol": protocol.value}
    try:
        with config.set(overrides):
            ranges = None if not display_range else [DisplayRange.parse(r) for r in display_range]
            zarrpeek.view(
                location,
                select,
                resolution,
                _parse_channels(channels),
                ranges=ranges,
                palette=None if palette is None else [p for p in palette.split(",") if p],
                quantiles=_parse_quantiles(low, high),
                crop_size=crop_size,
            )
    except (BaseZarrPeekError, BadConfigError, FileNotFoundError) as e:
        _fail(e)


@app.command()  # type: ignore[misc]
def info(location: LocationArgument) -> None:
    """Print the resolution levels, axes and channels of an OME-Zarr image."""
    try:
        multiscale = zarrpeek.open_multiscale(location)
    except (BaseZarrPeekError, BadConfigError, FileNotFoundError) as e:
        _fail(e)
    typer.echo(str(TreeViewer(multiscale, title=location)))


@app.callback()  # type: ignore[misc]
def main(
    verbose: Annotated[
        bool,
        typer.Option(
            help="enable verbose logging - will print the chosen resolution, slice, display ranges and protocol."
        ),
    ] = False,
) -> None:
    """
    See available commands below - access help for individual commands with zarrpeek COMMAND --help.
    """
    _set_logging_level(verbose=verbose)


if __name__ == "__main__":
    app()
