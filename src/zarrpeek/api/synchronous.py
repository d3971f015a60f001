from __future__ import annotations

from typing import TYPE_CHECKING, Any, BinaryIO

import zarrpeek.api.asynchronous as async_api
from zarrpeek.core.image import Image
from zarrpeek.core.sync import sync
from zarrpeek.errors import UnsupportedTerminalError
from zarrpeek.render import TerminalKind, detect_terminal, render

if TYPE_CHECKING:
    from collections.abc import Sequence

    import numpy as np
    import numpy.typing as npt

    from zarrpeek.core.image import Palette, SelectorsLike
    from zarrpeek.core.metadata import MultiscaleDescriptor
    from zarrpeek.core.normalize import DisplayRange
    from zarrpeek.core.planner import ResolutionChoice
    from zarrpeek.render import TerminalCaps
    from zarrpeek.storage import StoreLike

__all__ = ["load_rgb", "open", "open_multiscale", "view"]


def open(store: StoreLike, *, storage_options: dict[str, Any] | None = None) -> Image:
    """Open the multiscale image at ``store``.

    Parameters
    ----------
    store : Store, Path or str
        A store, a local directory, or a URL understood by fsspec (``https://...``).
    storage_options : dict, optional
        If the store is backed by an fsspec-based implementation, then this dict will be
        passed to the filesystem constructor. Ignored otherwise.

    Returns
    -------
    Image
    """
    return Image(sync(async_api.open(store, storage_options=storage_options)))


def open_multiscale(
    store: StoreLike, *, storage_options: dict[str, Any] | None = None
) -> MultiscaleDescriptor:
    """Resolve the multiscale metadata at ``store``."""
    return sync(async_api.open_multiscale(store, storage_options=storage_options))


def load_rgb(
    store: StoreLike,
    selectors: SelectorsLike = None,
    resolution: ResolutionChoice = None,
    channels: Sequence[int] | None = None,
    *,
    ranges: Sequence[DisplayRange | None] | None = None,
    palette: Palette | None = None,
    quantiles: tuple[float, float] | None = None,
    crop_size: int | None = None,
    storage_options: dict[str, Any] | None = None,
) -> npt.NDArray[np.uint8]:
    """Open ``store`` and load one normalized RGB slice."""
    return sync(
        async_api.load_rgb(
            store,
            selectors,
            resolution,
            channels,
            ranges=ranges,
            palette=palette,
            quantiles=quantiles,
            crop_size=crop_size,
            storage_options=storage_options,
        )
    )


def view(
    store: StoreLike,
    selectors: SelectorsLike = None,
    resolution: ResolutionChoice = None,
    channels: Sequence[int] | None = None,
    *,
    ranges: Sequence[DisplayRange | None] | None = None,
    palette: Palette | None = None,
    quantiles: tuple[float, float] | None = None,
    crop_size: int | None = None,
    storage_options: dict[str, Any] | None = None,
    caps: TerminalCaps | None = None,
    out: BinaryIO | None = None,
) -> None:
    """
    Draw one slice of the image at ``store`` on the terminal.

    The terminal is probed before any data is read; nothing is written unless the whole
    pipeline succeeds.

    Raises
    ------
    UnsupportedTerminalError
        If the terminal cannot show images.
    """
    if caps is None:
        caps = detect_terminal(out)
    if caps.kind is TerminalKind.UNSUPPORTED:
        raise UnsupportedTerminalError(caps.term or "", caps.kind.value)
    rgb = load_rgb(
        store,
        selectors,
        resolution,
        channels,
        ranges=ranges,
        palette=palette,
        quantiles=quantiles,
        crop_size=crop_size,
        storage_options=storage_options,
    )
    render(rgb, caps, out)
