"""
Chunk codecs.

Every codec exposes ``decode(data, expected_length)``. The compressors themselves are the
ones shipped by ``numcodecs``; this module maps the small closed set of codec descriptors
that may appear in Zarr v2 and v3 metadata onto them.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, ClassVar, Literal

import numcodecs
from numcodecs.compat import ensure_bytes

from zarrpeek.core.common import JSON, parse_named_configuration
from zarrpeek.errors import CodecError

if TYPE_CHECKING:
    from numcodecs.abc import Codec as Numcodec

    from zarrpeek.core.common import BytesLike

Endian = Literal["little", "big"]

# codec ids accepted in the ``compressor`` field of a v2 ``.zarray``
V2_COMPRESSORS = frozenset({"blosc", "zstd", "gzip", "zlib", "lz4"})

# bytes -> bytes codec names accepted after the ``bytes`` codec in a v3 ``zarr.json``
V3_BYTES_CODECS = frozenset({"blosc", "gzip", "zstd"})

_BLOSC_SHUFFLE = {"noshuffle": 0, "shuffle": 1, "bitshuffle": 2}


class Codec(ABC):
    """A codec turning an encoded chunk payload back into raw bytes."""

    name: ClassVar[str]

    @abstractmethod
    def decode(self, data: BytesLike, expected_length: int | None = None) -> bytes:
        """
        Decode ``data``.

        Parameters
        ----------
        data : bytes-like
            The encoded payload.
        expected_length : int, optional
            Size in bytes the decoded payload must have.

        Raises
        ------
        CodecError
            If the payload is corrupt, truncated, or decodes to the wrong size.
        """


def _check_length(codec: Codec, out: bytes, expected_length: int | None) -> bytes:
    if expected_length is not None and len(out) != expected_length:
        raise CodecError(
            f"{codec.name} codec produced {len(out)} bytes, expected {expected_length}"
        )
    return out


@dataclass(frozen=True)
class NumcodecsCodec(Codec):
    """A compressor implemented by ``numcodecs``."""

    name: ClassVar[str] = "numcodecs"

    codec_id: str
    configuration: dict[str, JSON] = field(default_factory=dict)
    codec: Numcodec = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "codec", numcodecs.get_codec({"id": self.codec_id, **self.configuration})
        )

    def decode(self, data: BytesLike, expected_length: int | None = None) -> bytes:
        try:
            out = ensure_bytes(self.codec.decode(data))
        except Exception as e:
            raise CodecError(f"{self.codec_id} codec failed to decode payload: {e}") from e
        return _check_length(self, out, expected_length)


@dataclass(frozen=True)
class BytesCodec(Codec):
    """The v3 array -> bytes codec. Byte order is folded into the array dtype."""

    name: ClassVar[str] = "bytes"

    endian: Endian | None = "little"

    def decode(self, data: BytesLike, expected_length: int | None = None) -> bytes:
        return _check_length(self, bytes(data), expected_length)


@dataclass(frozen=True)
class CodecPipeline:
    """
    An ordered chain of codecs, in encoding order. Decoding applies them in reverse.
    """

    codecs: tuple[Codec, ...] = ()

    def decode(self, data: BytesLike, expected_length: int) -> bytes:
        out: BytesLike = data
        for codec in reversed(self.codecs):
            out = codec.decode(out)
        if len(out) != expected_length:
            raise CodecError(
                f"decoded chunk has {len(out)} bytes, expected {expected_length} (truncated payload?)"
            )
        return bytes(out)

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(
            c.codec_id if isinstance(c, NumcodecsCodec) else c.name for c in self.codecs
        )


def parse_v2_compressor(data: Any) -> CodecPipeline:
    """
    Parse the ``compressor`` field of a v2 ``.zarray`` document.
    """
    if data is None:
        return CodecPipeline()
    if not isinstance(data, dict) or "id" not in data:
        raise ValueError(f"Expected a compressor object with an 'id' key. Got {data} instead.")
    codec_id = data["id"]
    if codec_id not in V2_COMPRESSORS:
        raise ValueError(
            f"Unsupported compressor {codec_id!r}. Expected one of {sorted(V2_COMPRESSORS)}."
        )
    configuration = {k: v for k, v in data.items() if k != "id"}
    return CodecPipeline((NumcodecsCodec(codec_id, configuration),))


def _v3_bytes_bytes_codec(name: str, configuration: dict[str, JSON] | None) -> Codec:
    configuration = configuration or {}
    if name == "blosc":
        shuffle = configuration.get("shuffle", "noshuffle")
        numcodecs_config: dict[str, JSON] = {
            "cname": configuration.get("cname", "zstd"),
            "clevel": configuration.get("clevel", 5),
            "shuffle": _BLOSC_SHUFFLE.get(shuffle, shuffle) if isinstance(shuffle, str) else shuffle,
            "blocksize": configuration.get("blocksize", 0),
        }
        return NumcodecsCodec("blosc", numcodecs_config)
    if name == "gzip":
        return NumcodecsCodec("gzip", {"level": configuration.get("level", 5)})
    if name == "zstd":
        return NumcodecsCodec("zstd", {"level": configuration.get("level", 0)})
    raise ValueError(
        f"Unsupported codec {name!r}. Expected one of {sorted(V3_BYTES_CODECS)}."
    )


def parse_v3_codecs(data: Any) -> tuple[Endian | None, CodecPipeline]:
    """
    Parse the ``codecs`` field of a v3 ``zarr.json`` array document.

    Returns the byte order declared by the ``bytes`` codec and the codec pipeline.
    """
    if not isinstance(data, list) or len(data) == 0:
        raise ValueError(f"Expected a non-empty list of codecs. Got {data} instead.")
    first, *rest = data
    name, configuration = parse_named_configuration(first, require_configuration=False)
    if name != "bytes":
        raise ValueError(
            f"Unsupported codec {name!r} in array -> bytes position. Only 'bytes' is supported."
        )
    endian = (configuration or {}).get("endian", "little")
    if endian not in ("little", "big", None):
        raise ValueError(f"Expected endian 'little' or 'big'. Got {endian} instead.")
    codecs: list[Codec] = [BytesCodec(endian)]
    for item in rest:
        name, configuration = parse_named_configuration(item, require_configuration=False)
        codecs.append(_v3_bytes_bytes_codec(name, configuration))
    return endian, CodecPipeline(tuple(codecs))
