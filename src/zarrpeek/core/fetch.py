"""
Chunk fetch and decode.

A window of an array is projected onto the chunk grid; every intersecting chunk is read
from the store, decoded in a worker thread and copied into its own disjoint part of a
preallocated output buffer. All chunk jobs of all requested windows share one concurrency
limit, and the first failure cancels the jobs still pending.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

import numpy as np

from zarrpeek.core.common import concurrent_map
from zarrpeek.core.config import config, parse_concurrency, parse_missing_chunks
from zarrpeek.core.indexing import ChunkProjection, Window, WindowIndexer
from zarrpeek.errors import ChunkDecodeError, ChunkFetchError, ChunkNotFoundError, CodecError

if TYPE_CHECKING:
    from collections.abc import Iterable

    import numpy.typing as npt

    from zarrpeek.abc.store import Store
    from zarrpeek.core.common import ChunkCoords
    from zarrpeek.core.metadata import ArrayDescriptor

logger = logging.getLogger(__name__)


def _decode_chunk(
    array: ArrayDescriptor, data: bytes, key: str, chunk_coords: ChunkCoords
) -> npt.NDArray[Any]:
    try:
        raw = array.codecs.decode(data, array.chunk_nbytes)
    except CodecError as e:
        raise ChunkDecodeError(
            f"could not decode chunk {key!r} at {chunk_coords}: {e}", key, chunk_coords
        ) from e
    return np.frombuffer(raw, dtype=array.dtype).reshape(array.chunk_shape, order=array.order)


async def _fetch_chunk(
    store: Store,
    array: ArrayDescriptor,
    projection: ChunkProjection,
    out: npt.NDArray[Any],
) -> None:
    chunk_coords, chunk_selection, out_selection = projection
    key = array.chunk_key(chunk_coords)
    try:
        data = await store.get(key)
    except Exception as e:
        raise ChunkFetchError(
            f"could not read chunk {key!r} at {chunk_coords} from {store}: {e}",
            key,
            chunk_coords,
        ) from e

    if data is None:
        if parse_missing_chunks(config.get("fetch.missing_chunks")) == "error":
            raise ChunkNotFoundError(
                f"chunk {key!r} at {chunk_coords} is missing from {store}", key, chunk_coords
            )
        logger.debug("Chunk %s is missing, filling with %r", key, array.fill_value)
        out[out_selection] = array.fill_value
        return

    chunk = await asyncio.to_thread(_decode_chunk, array, data, key, chunk_coords)
    logger.debug("Decoded chunk %s (%d bytes)", key, len(data))
    # assignment converts the stored byte order to the native one
    out[out_selection] = chunk[chunk_selection]


async def fetch_regions(
    store: Store, items: Iterable[tuple[ArrayDescriptor, Window]]
) -> list[npt.NDArray[Any]]:
    """
    Read several windows concurrently.

    Parameters
    ----------
    store : Store
        The store holding the arrays.
    items : Iterable[tuple[ArrayDescriptor, Window]]
        Array descriptor and window pairs. A window has one entry per axis: an integer
        for a pinned axis or a step-1 slice for a kept axis.

    Returns
    -------
    list of numpy.ndarray
        One native-endian buffer per item, with the shape of the kept axes.

    Raises
    ------
    ChunkFetchError
        If a chunk cannot be read (or is missing and ``fetch.missing_chunks`` is ``"error"``).
    ChunkDecodeError
        If a chunk payload is corrupt or truncated.
    """
    outputs: list[npt.NDArray[Any]] = []
    jobs: list[tuple[Store, ArrayDescriptor, ChunkProjection, npt.NDArray[Any]]] = []
    for array, window in items:
        indexer = WindowIndexer(window, array.shape, array.chunk_shape)
        out = np.empty(indexer.shape, dtype=array.native_dtype)
        projections = list(indexer)
        logger.info(
            "Fetching %d chunk(s) of array %r for a %s window",
            len(projections),
            array.path or "/",
            "x".join(map(str, indexer.shape)),
        )
        jobs.extend((store, array, projection, out) for projection in projections)
        outputs.append(out)

    await concurrent_map(jobs, _fetch_chunk, parse_concurrency(config.get("async.concurrency")))
    return outputs


async def fetch_region(
    store: Store, array: ArrayDescriptor, window: Window
) -> npt.NDArray[Any]:
    """Read one window of ``array``. See :func:`fetch_regions`."""
    (out,) = await fetch_regions(store, [(array, window)])
    return out
