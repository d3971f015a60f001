from __future__ import annotations

import functools
import http.server
import itertools
import json
import math
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Any

import numcodecs
import numpy as np
import pytest
from hypothesis import HealthCheck, settings

from zarrpeek.core.config import config
from zarrpeek.storage import LocalStore, MemoryStore

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

    import numpy.typing as npt
    from numcodecs.abc import Codec

AXIS_TYPES = {"t": "time", "c": "channel", "z": "space", "y": "space", "x": "space"}

V3_DATA_TYPES = {
    "|u1": "uint8",
    "<u2": "uint16",
    "<u4": "uint32",
    "|i1": "int8",
    "<i2": "int16",
    "<i4": "int32",
    "<f4": "float32",
    "<f8": "float64",
}


class DirectoryWriter:
    """Write keys as files below ``root``."""

    def __init__(self, root: Path) -> None:
        self.root = root

    def __setitem__(self, key: str, value: bytes) -> None:
        path = self.root / key
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(value)


def _join(*parts: str) -> str:
    return "/".join(p for p in parts if p)


def _json(data: Any) -> bytes:
    return json.dumps(data).encode()


def _fill_json(fill_value: float | int) -> Any:
    if isinstance(fill_value, float) and math.isnan(fill_value):
        return "NaN"
    return fill_value


def iter_chunks(
    data: npt.NDArray[Any], chunks: Sequence[int], fill_value: Any
) -> Iterator[tuple[tuple[int, ...], npt.NDArray[Any]]]:
    """Yield every chunk of ``data``, edge chunks padded to the full chunk shape."""
    grid = [math.ceil(s / c) for s, c in zip(data.shape, chunks, strict=True)]
    for coords in itertools.product(*(range(g) for g in grid)):
        sel = tuple(slice(i * c, (i + 1) * c) for i, c in zip(coords, chunks, strict=True))
        part = data[sel]
        block = np.full(tuple(chunks), fill_value, dtype=data.dtype)
        block[tuple(slice(0, s) for s in part.shape)] = part
        yield coords, block


def write_v2_array(
    target: Any,
    path: str,
    data: npt.NDArray[Any],
    chunks: Sequence[int],
    *,
    compressor: Codec | None = None,
    fill_value: float | int = 0,
    order: str = "C",
    dimension_separator: str = ".",
    skip: Sequence[tuple[int, ...]] = (),
) -> None:
    meta = {
        "zarr_format": 2,
        "shape": list(data.shape),
        "chunks": list(chunks),
        "dtype": data.dtype.str,
        "compressor": None if compressor is None else compressor.get_config(),
        "fill_value": _fill_json(fill_value),
        "order": order,
        "filters": None,
    }
    if dimension_separator != ".":
        meta["dimension_separator"] = dimension_separator
    target[_join(path, ".zarray")] = _json(meta)
    for coords, block in iter_chunks(data, chunks, fill_value):
        if coords in skip:
            continue
        raw = block.tobytes(order=order)
        if compressor is not None:
            raw = bytes(compressor.encode(raw))
        target[_join(path, dimension_separator.join(map(str, coords)))] = raw


def _v3_codec(name: str, configuration: dict[str, Any]) -> Codec:
    if name == "gzip":
        return numcodecs.GZip(**configuration)
    if name == "zstd":
        return numcodecs.Zstd(**configuration)
    if name == "blosc":
        shuffle = {"noshuffle": 0, "shuffle": 1, "bitshuffle": 2}[configuration["shuffle"]]
        return numcodecs.Blosc(
            cname=configuration["cname"], clevel=configuration["clevel"], shuffle=shuffle
        )
    raise AssertionError(name)


def write_v3_array(
    target: Any,
    path: str,
    data: npt.NDArray[Any],
    chunks: Sequence[int],
    *,
    compressors: Sequence[dict[str, Any]] = ({"name": "zstd", "configuration": {"level": 1}},),
    fill_value: float | int = 0,
    dimension_names: Sequence[str | None] | None = None,
    endian: str = "little",
    skip: Sequence[tuple[int, ...]] = (),
) -> None:
    stored = data.astype(data.dtype.newbyteorder(">" if endian == "big" else "<"))
    meta: dict[str, Any] = {
        "zarr_format": 3,
        "node_type": "array",
        "shape": list(data.shape),
        "data_type": V3_DATA_TYPES[data.dtype.newbyteorder("<").str],
        "chunk_grid": {"name": "regular", "configuration": {"chunk_shape": list(chunks)}},
        "chunk_key_encoding": {"name": "default", "configuration": {"separator": "/"}},
        "fill_value": _fill_json(fill_value),
        "codecs": [{"name": "bytes", "configuration": {"endian": endian}}, *compressors],
        "attributes": {},
    }
    if dimension_names is not None:
        meta["dimension_names"] = list(dimension_names)
    target[_join(path, "zarr.json")] = _json(meta)
    codecs = [_v3_codec(c["name"], c.get("configuration", {})) for c in compressors]
    for coords, block in iter_chunks(stored, chunks, fill_value):
        if coords in skip:
            continue
        raw = block.tobytes()
        for codec in codecs:
            raw = bytes(codec.encode(raw))
        target[_join(path, "c", *map(str, coords))] = raw


def _multiscale(
    levels: Sequence[npt.NDArray[Any]], axes: Sequence[str], version: str | None
) -> dict[str, Any]:
    ndim = len(axes)
    multiscale: dict[str, Any] = {
        "name": "synthetic",
        "axes": [{"name": a, "type": AXIS_TYPES[a]} if a in AXIS_TYPES else {"name": a} for a in axes],
        "datasets": [
            {
                "path": str(i),
                "coordinateTransformations": [
                    {"type": "scale", "scale": [1.0] * (ndim - 2) + [2.0**i, 2.0**i]}
                ],
            }
            for i in range(len(levels))
        ],
    }
    if version is not None:
        multiscale["version"] = version
    return multiscale


def write_ome_v2(
    target: Any,
    levels: Sequence[npt.NDArray[Any]],
    chunks: Sequence[int],
    *,
    axes: Sequence[str] = ("t", "c", "z", "y", "x"),
    omero: dict[str, Any] | None = None,
    compressor: Codec | None = None,
) -> None:
    """Write an OME-NGFF 0.4 image as a Zarr v2 group, one array per level."""
    target[".zgroup"] = _json({"zarr_format": 2})
    attrs: dict[str, Any] = {"multiscales": [_multiscale(levels, axes, "0.4")]}
    if omero is not None:
        attrs["omero"] = omero
    target[".zattrs"] = _json(attrs)
    for i, level in enumerate(levels):
        write_v2_array(target, str(i), level, chunks, compressor=compressor)


def write_ome_v3(
    target: Any,
    levels: Sequence[npt.NDArray[Any]],
    chunks: Sequence[int],
    *,
    axes: Sequence[str] = ("t", "c", "z", "y", "x"),
    omero: dict[str, Any] | None = None,
) -> None:
    """Write an OME-NGFF 0.5 image as a Zarr v3 group, one array per level."""
    ome: dict[str, Any] = {"version": "0.5", "multiscales": [_multiscale(levels, axes, None)]}
    if omero is not None:
        ome["omero"] = omero
    target["zarr.json"] = _json(
        {"zarr_format": 3, "node_type": "group", "attributes": {"ome": ome}}
    )
    for i, level in enumerate(levels):
        write_v3_array(target, str(i), level, chunks, dimension_names=axes)


def pyramid(data: npt.NDArray[Any], nlevels: int) -> list[npt.NDArray[Any]]:
    """Downsample the last two axes by 2 per level."""
    levels = [data]
    for _ in range(nlevels - 1):
        levels.append(levels[-1][..., ::2, ::2])
    return levels


@pytest.fixture(autouse=True)
def reset_config() -> Iterator[None]:
    config.reset()
    yield
    config.reset()


@pytest.fixture
def memory_store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def local_store(tmp_path: Path) -> LocalStore:
    return LocalStore(tmp_path)


@pytest.fixture
def local_writer(tmp_path: Path) -> DirectoryWriter:
    return DirectoryWriter(tmp_path)


class _QuietHandler(http.server.SimpleHTTPRequestHandler):
    def log_message(self, format: str, *args: object) -> None:
        pass


@pytest.fixture
def http_root(tmp_path: Path) -> Iterator[tuple[Path, str]]:
    """Serve ``tmp_path`` over HTTP on a free local port."""
    handler = functools.partial(_QuietHandler, directory=str(tmp_path))
    server = http.server.ThreadingHTTPServer(("127.0.0.1", 0), handler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield tmp_path, f"http://127.0.0.1:{server.server_address[1]}"
    finally:
        server.shutdown()
        server.server_close()


@pytest.fixture
def image_5d() -> npt.NDArray[np.uint16]:
    """A (t, c, z, y, x) image whose value encodes its position."""
    t, c, z, y, x = np.indices((2, 3, 5, 64, 48))
    return (c * 10000 + z * 1000 + y * 10 + x % 10).astype(np.uint16)


settings.register_profile(
    "ci",
    max_examples=300,
    derandomize=True,
    deadline=None,
    suppress_health_check=[HealthCheck.filter_too_much, HealthCheck.too_slow],
)
