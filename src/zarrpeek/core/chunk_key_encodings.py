from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import ClassVar, Literal, cast

from zarrpeek.core.common import JSON, parse_named_configuration

SeparatorLiteral = Literal[".", "/"]


def parse_separator(data: JSON) -> SeparatorLiteral:
    if data not in (".", "/"):
        raise ValueError(f"Expected an '.' or '/' separator. Got {data} instead.")
    return cast("SeparatorLiteral", data)


@dataclass(frozen=True)
class ChunkKeyEncoding(ABC):
    """
    Defines how chunk coordinates are mapped to store keys.

    Subclasses must define a class variable `name` and implement `encode_chunk_key`.
    """

    name: ClassVar[str]
    separator: SeparatorLiteral

    def __post_init__(self) -> None:
        object.__setattr__(self, "separator", parse_separator(self.separator))

    @abstractmethod
    def encode_chunk_key(self, chunk_coords: tuple[int, ...]) -> str:
        """
        Encode chunk coordinates into a chunk key string.
        """


@dataclass(frozen=True)
class DefaultChunkKeyEncoding(ChunkKeyEncoding):
    name: ClassVar[Literal["default"]] = "default"
    separator: SeparatorLiteral = "/"

    def encode_chunk_key(self, chunk_coords: tuple[int, ...]) -> str:
        return self.separator.join(map(str, ("c",) + chunk_coords))


@dataclass(frozen=True)
class V2ChunkKeyEncoding(ChunkKeyEncoding):
    name: ClassVar[Literal["v2"]] = "v2"
    separator: SeparatorLiteral = "."

    def encode_chunk_key(self, chunk_coords: tuple[int, ...]) -> str:
        chunk_identifier = self.separator.join(map(str, chunk_coords))
        return "0" if chunk_identifier == "" else chunk_identifier


def parse_chunk_key_encoding(data: JSON) -> ChunkKeyEncoding:
    """
    Parse the ``chunk_key_encoding`` field of a v3 ``zarr.json`` array document.
    """
    name, configuration = parse_named_configuration(data, require_configuration=False)
    separator = (configuration or {}).get("separator")
    if name == "default":
        return DefaultChunkKeyEncoding(parse_separator(separator or "/"))
    if name == "v2":
        return V2ChunkKeyEncoding(parse_separator(separator or "."))
    raise ValueError(f"Unknown chunk key encoding {name!r}. Expected 'default' or 'v2'.")
