"""
The config module is responsible for managing the configuration of zarrpeek and is based on the
Donfig python library.

Example:
    Values can be set programmatically, or with environment variables of the form
    ``ZARRPEEK_FOO__BAR=value``. The double underscore ``__`` is used to indicate nested access.

    ```python
    from zarrpeek.core.config import config

    config.set({"normalization.low_quantile": 0.01, "normalization.high_quantile": 0.99})
    ```

    ```bash
    export ZARRPEEK_TERMINAL__PROTOCOL="blocks"
    ```

For more information, see the Donfig documentation at https://github.com/pytroll/donfig.
"""

from __future__ import annotations

from typing import Any, Literal, cast

from donfig import Config as DConfig


class BadConfigError(ValueError):
    _msg = "bad Config: %r"


class Config(DConfig):  # type: ignore[misc]
    """The Config will collect configuration from config files and environment variables

    Example environment variables:
    Grabs environment variables of the form "ZARRPEEK_FOO__BAR_BAZ=123" and
    turns these into config variables of the form ``{"foo": {"bar-baz": 123}}``
    It transforms the key and value in the following way:

    -  Lower-cases the key text
    -  Treats ``__`` (double-underscore) as nested access
    -  Calls ``ast.literal_eval`` on the value

    """

    def reset(self) -> None:
        self.clear()
        self.refresh()


# The default configuration for zarrpeek
config = Config(
    "zarrpeek",
    defaults=[
        {
            "async": {"concurrency": 10, "timeout": None},
            "threading": {"max_workers": None},
            "fetch": {"missing_chunks": "fill"},
            "normalization": {
                "low_quantile": 0.001,
                "high_quantile": 0.999,
                "max_samples": 1_000_000,
                "palette": ["FF0000", "00FF00", "0000FF", "FFFF00", "FF00FF", "00FFFF"],
            },
            "terminal": {
                "protocol": "auto",
                "max_width": 720,
                "max_height": 720,
            },
        }
    ],
)


def parse_missing_chunks(data: Any) -> Literal["fill", "error"]:
    if data in ("fill", "error"):
        return cast("Literal['fill', 'error']", data)
    msg = f"Expected fetch.missing_chunks to be one of ('fill', 'error'), got {data} instead."
    raise BadConfigError(msg)


def parse_protocol(data: Any) -> Literal["auto", "sixel", "kitty", "blocks"]:
    if data in ("auto", "sixel", "kitty", "blocks"):
        return cast("Literal['auto', 'sixel', 'kitty', 'blocks']", data)
    msg = f"Expected terminal.protocol to be one of ('auto', 'sixel', 'kitty', 'blocks'), got {data} instead."
    raise BadConfigError(msg)


def _parse_positive_int(name: str, data: Any) -> int:
    # bool is an int subclass but never a meaningful count
    if isinstance(data, int) and not isinstance(data, bool) and data > 0:
        return data
    raise BadConfigError(f"Expected {name} to be a positive integer, got {data!r} instead.")


def parse_concurrency(data: Any) -> int:
    return _parse_positive_int("async.concurrency", data)


def parse_max_samples(data: Any) -> int:
    return _parse_positive_int("normalization.max_samples", data)


def parse_max_workers(data: Any) -> int | None:
    if data is None:
        return None
    return _parse_positive_int("threading.max_workers", data)
