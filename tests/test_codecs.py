from __future__ import annotations

import numcodecs
import numpy as np
import pytest

from zarrpeek.core.chunk_key_encodings import (
    DefaultChunkKeyEncoding,
    V2ChunkKeyEncoding,
    parse_chunk_key_encoding,
)
from zarrpeek.core.codecs import (
    BytesCodec,
    CodecPipeline,
    NumcodecsCodec,
    parse_v2_compressor,
    parse_v3_codecs,
)
from zarrpeek.errors import CodecError

PAYLOAD = np.arange(1024, dtype="<u2").tobytes()


@pytest.mark.parametrize(
    "compressor",
    [
        numcodecs.Zstd(level=1),
        numcodecs.GZip(level=1),
        numcodecs.Zlib(level=1),
        numcodecs.LZ4(),
        numcodecs.Blosc(cname="lz4", clevel=5, shuffle=numcodecs.Blosc.SHUFFLE),
    ],
)
def test_v2_compressor(compressor: numcodecs.abc.Codec) -> None:
    pipeline = parse_v2_compressor(compressor.get_config())
    assert pipeline.names == (compressor.codec_id,)
    assert pipeline.decode(compressor.encode(PAYLOAD), len(PAYLOAD)) == PAYLOAD


def test_v2_no_compressor() -> None:
    pipeline = parse_v2_compressor(None)
    assert pipeline.codecs == ()
    assert pipeline.decode(PAYLOAD, len(PAYLOAD)) == PAYLOAD


@pytest.mark.parametrize("data", [{"id": "bz2"}, {"level": 1}, "zstd"])
def test_v2_compressor_invalid(data: object) -> None:
    with pytest.raises(ValueError):
        parse_v2_compressor(data)


def test_v3_codecs() -> None:
    endian, pipeline = parse_v3_codecs(
        [
            {"name": "bytes", "configuration": {"endian": "big"}},
            {"name": "blosc", "configuration": {"cname": "zstd", "clevel": 3, "shuffle": "shuffle", "typesize": 2}},
            {"name": "gzip", "configuration": {"level": 1}},
        ]
    )
    assert endian == "big"
    assert pipeline.names == ("bytes", "blosc", "gzip")
    encoded = numcodecs.GZip(level=1).encode(
        numcodecs.Blosc(cname="zstd", clevel=3, shuffle=1).encode(PAYLOAD)
    )
    assert pipeline.decode(encoded, len(PAYLOAD)) == PAYLOAD


def test_v3_bytes_only() -> None:
    endian, pipeline = parse_v3_codecs([{"name": "bytes"}])
    assert endian == "little"
    assert pipeline.codecs == (BytesCodec("little"),)


@pytest.mark.parametrize(
    "data",
    [
        [],
        None,
        [{"name": "transpose", "configuration": {"order": [1, 0]}}, {"name": "bytes"}],
        [{"name": "sharding_indexed", "configuration": {}}],
        [{"name": "bytes"}, {"name": "crc32c"}],
        [{"name": "bytes", "configuration": {"endian": "middle"}}],
    ],
)
def test_v3_codecs_unsupported(data: object) -> None:
    with pytest.raises(ValueError):
        parse_v3_codecs(data)


def test_corrupt_payload() -> None:
    codec = NumcodecsCodec("zstd", {"level": 1})
    with pytest.raises(CodecError, match="zstd codec failed to decode payload"):
        codec.decode(b"this is not zstd")


def test_truncated_payload() -> None:
    pipeline = CodecPipeline((BytesCodec(),))
    with pytest.raises(CodecError, match="truncated"):
        pipeline.decode(PAYLOAD[:100], len(PAYLOAD))


def test_expected_length() -> None:
    with pytest.raises(CodecError, match="expected 3"):
        BytesCodec().decode(b"ab", expected_length=3)


def test_chunk_key_encodings() -> None:
    assert DefaultChunkKeyEncoding().encode_chunk_key((0, 1, 2)) == "c/0/1/2"
    assert DefaultChunkKeyEncoding(".").encode_chunk_key((0, 1)) == "c.0.1"
    assert V2ChunkKeyEncoding().encode_chunk_key((0, 1, 2)) == "0.1.2"
    assert V2ChunkKeyEncoding("/").encode_chunk_key((4, 5)) == "4/5"
    assert V2ChunkKeyEncoding().encode_chunk_key(()) == "0"


def test_parse_chunk_key_encoding() -> None:
    assert parse_chunk_key_encoding({"name": "default"}) == DefaultChunkKeyEncoding("/")
    assert parse_chunk_key_encoding(
        {"name": "v2", "configuration": {"separator": "/"}}
    ) == V2ChunkKeyEncoding("/")
    with pytest.raises(ValueError, match="separator"):
        parse_chunk_key_encoding({"name": "default", "configuration": {"separator": "-"}})
    with pytest.raises(ValueError, match="Unknown chunk key encoding"):
        parse_chunk_key_encoding({"name": "suffix"})
