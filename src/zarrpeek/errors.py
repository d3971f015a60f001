from __future__ import annotations

from typing import Literal

__all__ = [
    "BaseZarrPeekError",
    "ChunkDecodeError",
    "ChunkFetchError",
    "ChunkNotFoundError",
    "CodecError",
    "MetadataError",
    "NormalizationError",
    "SelectorError",
    "UnsupportedTerminalError",
]


class BaseZarrPeekError(ValueError):
    """
    Base error which all zarrpeek errors are sub-classed from.
    """

    _msg: str = "{}"

    def __init__(self, *args: object) -> None:
        """
        If a single argument is passed, treat it as a pre-formatted message.

        If multiple arguments are passed, they are used as arguments for the template string class
        variable.
        """
        if len(args) == 1:
            super().__init__(args[0])
        else:
            super().__init__(self._msg.format(*args))


class MetadataError(BaseZarrPeekError):
    """
    Raised when array or multiscale metadata is missing, malformed or inconsistent.
    """


class SelectorError(BaseZarrPeekError):
    """
    Raised when an axis or resolution selection is invalid for the resolved shape.
    """

    def __init__(self, msg: str, axis: str | int | None = None) -> None:
        super().__init__(msg)
        self.axis = axis


class ChunkFetchError(BaseZarrPeekError):
    """
    Raised when a required chunk could not be read from the store.
    """

    kind: Literal["not_found", "transport"] = "transport"

    def __init__(self, msg: str, key: str, chunk_coords: tuple[int, ...]) -> None:
        super().__init__(msg)
        self.key = key
        self.chunk_coords = chunk_coords


class ChunkNotFoundError(ChunkFetchError):
    """
    Raised for an absent chunk when missing chunks are configured as errors.
    """

    kind: Literal["not_found", "transport"] = "not_found"


class CodecError(BaseZarrPeekError):
    """
    Raised by a codec that cannot decode its input.
    """


class ChunkDecodeError(BaseZarrPeekError):
    """
    Raised when a chunk payload is corrupt, truncated or cannot be decoded.
    """

    def __init__(self, msg: str, key: str, chunk_coords: tuple[int, ...]) -> None:
        super().__init__(msg)
        self.key = key
        self.chunk_coords = chunk_coords


class NormalizationError(BaseZarrPeekError):
    """
    Raised on degenerate pixel data, e.g. a zero-size plane.
    """


class UnsupportedTerminalError(BaseZarrPeekError):
    """
    Raised when the terminal has no usable graphics capability.
    """

    _msg = (
        "No usable graphics capability detected for terminal {!r}. "
        "Run zarrpeek in a terminal emulator with color support, or force a protocol "
        "with ZARRPEEK_TERMINAL__PROTOCOL=blocks|sixel|kitty."
    )
