"""
Array and multiscale metadata.

The JSON documents of a store (``.zarray``, ``.zattrs``, ``.zgroup``, ``zarr.json``) are
parsed here into closed, frozen descriptors. Anything outside the supported schema is
rejected with :class:`~zarrpeek.errors.MetadataError` instead of being passed downstream.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any

import numpy as np

from zarrpeek.core.chunk_key_encodings import (
    ChunkKeyEncoding,
    V2ChunkKeyEncoding,
    parse_chunk_key_encoding,
    parse_separator,
)
from zarrpeek.core.codecs import CodecPipeline, parse_v2_compressor, parse_v3_codecs
from zarrpeek.core.common import (
    ZARR_JSON,
    ZARRAY_JSON,
    ZATTRS_JSON,
    ZGROUP_JSON,
    ChunkCoords,
    MemoryOrder,
    ZarrFormat,
    ceildiv,
    concurrent_map,
    parse_named_configuration,
    parse_order,
    parse_shapelike,
    product,
)
from zarrpeek.core.config import config, parse_concurrency
from zarrpeek.errors import MetadataError
from zarrpeek.storage._utils import _join_paths, normalize_path

if TYPE_CHECKING:
    from collections.abc import Mapping

    from zarrpeek.abc.store import Store

logger = logging.getLogger(__name__)

# numpy dtype "kind + itemsize" codes that can be rendered
SUPPORTED_DTYPES = frozenset({"u1", "u2", "u4", "i1", "i2", "i4", "f4", "f8"})

V3_DATA_TYPES = {
    "uint8": "u1",
    "uint16": "u2",
    "uint32": "u4",
    "int8": "i1",
    "int16": "i2",
    "int32": "i4",
    "float32": "f4",
    "float64": "f8",
}

DEFAULT_AXIS_NAMES = ("t", "c", "z", "y", "x")

_FLOAT_FILLS = {"NaN": np.nan, "Infinity": np.inf, "-Infinity": -np.inf}


def _dtype_code(dtype: np.dtype[Any]) -> str:
    return f"{dtype.kind}{dtype.itemsize}"


def parse_dtype_v2(data: Any) -> np.dtype[Any]:
    if not isinstance(data, str):
        raise TypeError(f"Expected a dtype string. Got {data!r} instead.")
    dtype = np.dtype(data)
    if _dtype_code(dtype) not in SUPPORTED_DTYPES:
        raise ValueError(
            f"Unsupported dtype {data!r}. Expected one of {sorted(SUPPORTED_DTYPES)}."
        )
    return dtype


def parse_dtype_v3(data: Any, endian: str | None) -> np.dtype[Any]:
    if data not in V3_DATA_TYPES:
        raise ValueError(
            f"Unsupported data_type {data!r}. Expected one of {sorted(V3_DATA_TYPES)}."
        )
    code = V3_DATA_TYPES[data]
    if code.endswith("1"):
        return np.dtype("|" + code)
    return np.dtype((">" if endian == "big" else "<") + code)


def parse_fill_value(data: Any, dtype: np.dtype[Any]) -> np.generic:
    """
    Parse a fill value into a scalar of the native-endian version of ``dtype``.

    ``None`` (allowed by v2) reads as zero. Floating point dtypes accept the JSON
    encodings ``"NaN"``, ``"Infinity"``, ``"-Infinity"`` and hex strings (``"0x7fc00000"``).
    """
    native = dtype.newbyteorder("=")
    if data is None:
        return native.type(0)
    if isinstance(data, str):
        if dtype.kind != "f":
            raise ValueError(f"Fill value {data!r} is not valid for dtype {dtype}.")
        if data in _FLOAT_FILLS:
            return native.type(_FLOAT_FILLS[data])
        if data.startswith("0x"):
            raw = int(data, 16).to_bytes(dtype.itemsize, "big")
            return native.type(np.frombuffer(raw, dtype=dtype.newbyteorder(">"))[0])
        raise ValueError(f"Fill value {data!r} is not valid for dtype {dtype}.")
    if isinstance(data, bool) or not isinstance(data, int | float):
        raise TypeError(f"Expected a number for the fill value. Got {data!r} instead.")
    if dtype.kind in "ui":
        if isinstance(data, float) and not data.is_integer():
            raise ValueError(f"Fill value {data!r} is not valid for dtype {dtype}.")
        info = np.iinfo(native)
        if not info.min <= data <= info.max:
            raise ValueError(f"Fill value {data!r} is out of range for dtype {dtype}.")
        return native.type(int(data))
    return native.type(data)


def default_axis_names(ndim: int) -> tuple[str, ...]:
    """
    Positional axis names for arrays that do not name their axes.

    Up to five axes take the trailing part of ``t, c, z, y, x``; beyond that, ``dim_<i>``.
    """
    if ndim <= len(DEFAULT_AXIS_NAMES):
        return DEFAULT_AXIS_NAMES[len(DEFAULT_AXIS_NAMES) - ndim :]
    return tuple(f"dim_{i}" for i in range(ndim))


def parse_dimension_names(data: Any, ndim: int) -> tuple[str, ...]:
    """Parse v3 ``dimension_names``; missing entries fall back to positional names."""
    defaults = default_axis_names(ndim)
    if data is None:
        return defaults
    if not isinstance(data, list):
        raise TypeError(f"Expected a list of dimension names. Got {data!r} instead.")
    if len(data) != ndim:
        raise ValueError(
            f"Expected {ndim} dimension names to match the shape. Got {len(data)}: {data!r}."
        )
    return tuple(name if isinstance(name, str) else defaults[i] for i, name in enumerate(data))


@dataclass(frozen=True)
class ArrayDescriptor:
    """
    Everything needed to locate and decode the chunks of one array.

    Attributes
    ----------
    path
        Key prefix of the array within its store, ``""`` for the store root.
    zarr_format
        2 or 3.
    shape, chunk_shape
        Array and nominal chunk extents, one entry per axis.
    dtype
        Storage dtype, including its byte order.
    fill_value
        Native-endian scalar used for chunks absent from the store.
    order
        Memory layout of the decoded chunk bytes.
    codecs
        The codec pipeline producing the raw chunk bytes.
    chunk_key_encoding
        Mapping from chunk coordinates to store keys.
    axis_names
        One name per axis.
    """

    path: str
    zarr_format: ZarrFormat
    shape: ChunkCoords
    chunk_shape: ChunkCoords
    dtype: np.dtype[Any]
    fill_value: Any
    order: MemoryOrder
    codecs: CodecPipeline
    chunk_key_encoding: ChunkKeyEncoding
    axis_names: tuple[str, ...]

    def __post_init__(self) -> None:
        if not len(self.shape) == len(self.chunk_shape) == len(self.axis_names):
            raise MetadataError(
                f"Array at {self.path or '/'!r} has inconsistent dimensionality: "
                f"shape {self.shape} has {len(self.shape)} entries, chunks {self.chunk_shape} has "
                f"{len(self.chunk_shape)} and axis names {self.axis_names} has {len(self.axis_names)}."
            )
        if not all(s > 0 for s in self.shape + self.chunk_shape):
            raise MetadataError(
                f"Array at {self.path or '/'!r} has non-positive extents: "
                f"shape {self.shape}, chunks {self.chunk_shape}."
            )
        if len(set(self.axis_names)) != len(self.axis_names):
            raise MetadataError(
                f"Array at {self.path or '/'!r} has duplicate axis names {self.axis_names}."
            )

    @property
    def ndim(self) -> int:
        return len(self.shape)

    @property
    def native_dtype(self) -> np.dtype[Any]:
        return self.dtype.newbyteorder("=")

    @property
    def chunk_nbytes(self) -> int:
        return product(self.chunk_shape) * self.dtype.itemsize

    @property
    def chunk_grid_shape(self) -> ChunkCoords:
        return tuple(ceildiv(s, c) for s, c in zip(self.shape, self.chunk_shape, strict=True))

    def chunk_key(self, chunk_coords: ChunkCoords) -> str:
        return _join_paths(self.path, self.chunk_key_encoding.encode_chunk_key(chunk_coords))

    def axis_index(self, name: str) -> int:
        return self.axis_names.index(name)

    @classmethod
    def from_v2_dict(cls, data: Mapping[str, Any], path: str = "") -> ArrayDescriptor:
        if data.get("zarr_format") != 2:
            raise MetadataError(
                f"Unsupported zarr format {data.get('zarr_format')!r} in {_join_paths(path, ZARRAY_JSON)!r}."
            )
        try:
            shape = parse_shapelike(data["shape"])
            dtype = parse_dtype_v2(data["dtype"])
            if data.get("filters"):
                raise ValueError(f"Filters are not supported. Got {data['filters']!r}.")
            separator = parse_separator(data.get("dimension_separator") or ".")
            return cls(
                path=path,
                zarr_format=2,
                shape=shape,
                chunk_shape=parse_shapelike(data["chunks"]),
                dtype=dtype,
                fill_value=parse_fill_value(data.get("fill_value"), dtype),
                order=parse_order(data.get("order", "C")),
                codecs=parse_v2_compressor(data.get("compressor")),
                chunk_key_encoding=V2ChunkKeyEncoding(separator),
                axis_names=default_axis_names(len(shape)),
            )
        except MetadataError:
            raise
        except (KeyError, TypeError, ValueError) as e:
            raise MetadataError(
                f"error decoding array metadata {_join_paths(path, ZARRAY_JSON)!r}: {e!r}"
            ) from e

    @classmethod
    def from_v3_dict(cls, data: Mapping[str, Any], path: str = "") -> ArrayDescriptor:
        key = _join_paths(path, ZARR_JSON)
        if data.get("zarr_format") != 3:
            raise MetadataError(f"Unsupported zarr format {data.get('zarr_format')!r} in {key!r}.")
        if data.get("node_type") != "array":
            raise MetadataError(f"Expected an array document in {key!r}, found {data.get('node_type')!r}.")
        try:
            shape = parse_shapelike(data["shape"])
            grid_name, grid_config = parse_named_configuration(data["chunk_grid"], "regular")
            endian, codecs = parse_v3_codecs(data["codecs"])
            dtype = parse_dtype_v3(data["data_type"], endian)
            return cls(
                path=path,
                zarr_format=3,
                shape=shape,
                chunk_shape=parse_shapelike((grid_config or {})["chunk_shape"]),
                dtype=dtype,
                fill_value=parse_fill_value(data["fill_value"], dtype),
                order="C",
                codecs=codecs,
                chunk_key_encoding=parse_chunk_key_encoding(
                    data.get("chunk_key_encoding", {"name": "default"})
                ),
                axis_names=parse_dimension_names(data.get("dimension_names"), len(shape)),
            )
        except MetadataError:
            raise
        except (KeyError, TypeError, ValueError) as e:
            raise MetadataError(f"error decoding array metadata {key!r}: {e!r}") from e


@dataclass(frozen=True)
class ChannelInfo:
    """Display hints for one channel, from OMERO metadata."""

    label: str | None = None
    color: str | None = None
    window: tuple[float, float] | None = None


@dataclass(frozen=True)
class Level:
    """One resolution level of a multiscale image."""

    path: str
    array: ArrayDescriptor
    scale: tuple[float, ...] | None = None


@dataclass(frozen=True)
class MultiscaleDescriptor:
    """
    The resolution levels of one image, from highest to lowest resolution.
    """

    levels: tuple[Level, ...]
    axis_types: tuple[str | None, ...] = ()
    name: str | None = None
    version: str | None = None
    channels: tuple[ChannelInfo, ...] = field(default=())

    def __post_init__(self) -> None:
        if len(self.levels) == 0:
            raise MetadataError("Multiscale metadata declares no resolution levels.")
        _validate_levels(self.levels)
        if self.axis_types and len(self.axis_types) != self.ndim:
            raise MetadataError(
                f"Expected {self.ndim} axis types to match the arrays. Got {self.axis_types}."
            )

    @property
    def ndim(self) -> int:
        return self.levels[0].array.ndim

    @property
    def axis_names(self) -> tuple[str, ...]:
        return self.levels[0].array.axis_names

    @property
    def paths(self) -> tuple[str, ...]:
        return tuple(level.path for level in self.levels)

    def find_level(self, path: str) -> int | None:
        normalized = normalize_path(path)
        for index, level in enumerate(self.levels):
            if normalize_path(level.path) == normalized:
                return index
        return None

    @property
    def channel_axis(self) -> int | None:
        """Index of the channel axis: OME type ``channel`` first, then the axis named ``c``."""
        for index, axis_type in enumerate(self.axis_types):
            if axis_type == "channel":
                return index
        if "c" in self.axis_names:
            return self.axis_names.index("c")
        return None


def _validate_levels(levels: tuple[Level, ...]) -> None:
    ndim = levels[0].array.ndim
    paths = [level.path for level in levels]
    if len(set(paths)) != len(paths):
        raise MetadataError(f"Multiscale metadata declares duplicate level paths {paths}.")
    for previous, current in zip(levels, levels[1:], strict=False):
        if current.array.ndim != ndim:
            raise MetadataError(
                f"Level {current.path!r} has {current.array.ndim} dimensions, expected {ndim}."
            )
        if current.array.axis_names != previous.array.axis_names:
            raise MetadataError(
                f"Level {current.path!r} has axes {current.array.axis_names}, "
                f"expected {previous.array.axis_names}."
            )
        if any(c > p for c, p in zip(current.array.shape, previous.array.shape, strict=True)):
            raise MetadataError(
                f"Resolution levels are not ordered from highest to lowest resolution: "
                f"level {current.path!r} has shape {current.array.shape}, larger than "
                f"{previous.array.shape} of level {previous.path!r}."
            )
        if current.scale is not None and previous.scale is not None:
            if any(c < p for c, p in zip(current.scale, previous.scale, strict=True)):
                raise MetadataError(
                    f"Resolution levels are not ordered from highest to lowest resolution: "
                    f"level {current.path!r} has scale {current.scale}, finer than "
                    f"{previous.scale} of level {previous.path!r}."
                )


async def _read_json(store: Store, key: str) -> dict[str, Any] | None:
    try:
        raw = await store.get_metadata(key)
    except Exception as e:
        raise MetadataError(f"Could not read {key!r} from {store}: {e}") from e
    if raw is None:
        return None
    try:
        data = json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MetadataError(f"Malformed JSON in {key!r}: {e}") from e
    if not isinstance(data, dict):
        raise MetadataError(f"Expected a JSON object in {key!r}. Got {type(data).__name__}.")
    return data


async def read_array(store: Store, path: str, zarr_format: ZarrFormat) -> ArrayDescriptor:
    """Read the array document at ``path``, preferring ``zarr_format`` and falling back."""
    formats: tuple[ZarrFormat, ...] = (3, 2) if zarr_format == 3 else (2, 3)
    for fmt in formats:
        if fmt == 3:
            data = await _read_json(store, _join_paths(path, ZARR_JSON))
            if data is not None:
                return ArrayDescriptor.from_v3_dict(data, path)
        else:
            data = await _read_json(store, _join_paths(path, ZARRAY_JSON))
            if data is not None:
                return ArrayDescriptor.from_v2_dict(data, path)
    raise MetadataError(f"No array metadata found at path {path or '/'!r} in store {store!r}.")


def _parse_axes(data: Any) -> tuple[tuple[str, ...] | None, tuple[str | None, ...]]:
    if data is None:
        return None, ()
    if not isinstance(data, list):
        raise MetadataError(f"Expected a list of axes. Got {data!r}.")
    names: list[str] = []
    types: list[str | None] = []
    for axis in data:
        if isinstance(axis, str):
            names.append(axis)
            types.append(None)
        elif isinstance(axis, dict) and isinstance(axis.get("name"), str):
            names.append(axis["name"])
            types.append(axis.get("type"))
        else:
            raise MetadataError(f"Malformed axis entry {axis!r}.")
    return tuple(names), tuple(types)


def _parse_scale(dataset: Mapping[str, Any]) -> tuple[float, ...] | None:
    for transform in dataset.get("coordinateTransformations") or []:
        if isinstance(transform, dict) and transform.get("type") == "scale":
            scale = transform.get("scale")
            if not isinstance(scale, list) or not all(
                isinstance(v, int | float) and not isinstance(v, bool) for v in scale
            ):
                raise MetadataError(f"Malformed scale transformation {transform!r}.")
            return tuple(float(v) for v in scale)
    return None


def _parse_channels(omero: Any) -> tuple[ChannelInfo, ...]:
    if not isinstance(omero, dict) or not isinstance(omero.get("channels"), list):
        return ()
    channels = []
    for channel in omero["channels"]:
        if not isinstance(channel, dict):
            continue
        window = channel.get("window")
        window_parsed = None
        if isinstance(window, dict) and "start" in window and "end" in window:
            try:
                window_parsed = (float(window["start"]), float(window["end"]))
            except (TypeError, ValueError):
                logger.warning("Ignoring malformed OMERO window %r", window)
        color = channel.get("color")
        channels.append(
            ChannelInfo(
                label=channel.get("label"),
                color=color if isinstance(color, str) else None,
                window=window_parsed,
            )
        )
    return tuple(channels)


async def _parse_multiscales(
    store: Store, attributes: Mapping[str, Any], zarr_format: ZarrFormat
) -> MultiscaleDescriptor:
    if "ome" in attributes and isinstance(attributes["ome"], dict):
        ome = attributes["ome"]
        version = ome.get("version")
    else:
        ome = attributes
        version = None
    multiscales = ome.get("multiscales")
    if not isinstance(multiscales, list) or len(multiscales) == 0:
        raise MetadataError("Group attributes do not contain a non-empty 'multiscales' list.")
    multiscale = multiscales[0]
    if not isinstance(multiscale, dict):
        raise MetadataError(f"Malformed multiscales entry {multiscale!r}.")
    version = version or multiscale.get("version")
    datasets = multiscale.get("datasets")
    if not isinstance(datasets, list) or len(datasets) == 0:
        raise MetadataError("Multiscale metadata declares no datasets.")
    if not all(isinstance(d, dict) and isinstance(d.get("path"), str) for d in datasets):
        raise MetadataError(f"Every dataset must declare a 'path'. Got {datasets!r}.")
    axis_names, axis_types = _parse_axes(multiscale.get("axes"))

    try:
        paths = [normalize_path(d["path"]) for d in datasets]
    except ValueError as e:
        raise MetadataError(f"Invalid dataset path: {e}") from e
    limit = parse_concurrency(config.get("async.concurrency"))
    arrays = await concurrent_map(
        [(store, path, zarr_format) for path in paths], read_array, limit
    )
    levels = []
    for dataset, path, array in zip(datasets, paths, arrays, strict=True):
        if axis_names is not None:
            array = replace(array, axis_names=axis_names)
        scale = _parse_scale(dataset)
        if scale is not None and len(scale) != array.ndim:
            raise MetadataError(
                f"Scale {scale} of level {dataset['path']!r} does not match {array.ndim} dimensions."
            )
        levels.append(Level(path=path, array=array, scale=scale))
    name = multiscale.get("name")
    return MultiscaleDescriptor(
        levels=tuple(levels),
        axis_types=axis_types,
        name=name if isinstance(name, str) else None,
        version=str(version) if version is not None else None,
        channels=_parse_channels(ome.get("omero", attributes.get("omero"))),
    )


async def resolve_multiscale(store: Store) -> MultiscaleDescriptor:
    """
    Resolve the image at the root of ``store``.

    A multiscale group (Zarr v3 ``zarr.json`` or Zarr v2 ``.zgroup`` + ``.zattrs``) yields
    its declared levels; a bare array yields a single level with path ``""``.

    Raises
    ------
    MetadataError
        If no supported metadata is found or the metadata is invalid.
    """
    root = await _read_json(store, ZARR_JSON)
    if root is not None:
        node_type = root.get("node_type")
        if node_type == "array":
            logger.info("Resolved a single Zarr v3 array")
            return MultiscaleDescriptor(levels=(Level("", ArrayDescriptor.from_v3_dict(root)),))
        if node_type == "group":
            attributes = root.get("attributes") or {}
            descriptor = await _parse_multiscales(store, attributes, 3)
        else:
            raise MetadataError(f"Unknown node_type {node_type!r} in {ZARR_JSON!r}.")
    else:
        zarray = await _read_json(store, ZARRAY_JSON)
        if zarray is not None:
            logger.info("Resolved a single Zarr v2 array")
            return MultiscaleDescriptor(levels=(Level("", ArrayDescriptor.from_v2_dict(zarray)),))
        zattrs = await _read_json(store, ZATTRS_JSON)
        zgroup = await _read_json(store, ZGROUP_JSON)
        if zattrs is None and zgroup is None:
            raise MetadataError(f"No zarr metadata found at the root of store {store!r}.")
        descriptor = await _parse_multiscales(store, zattrs or {}, 2)

    logger.info(
        "Resolved multiscale image %r (OME-NGFF %s) with levels %s and axes %s",
        descriptor.name,
        descriptor.version,
        ", ".join(
            f"{level.path}={level.array.shape}" for level in descriptor.levels
        ),
        descriptor.axis_names,
    )
    return descriptor
