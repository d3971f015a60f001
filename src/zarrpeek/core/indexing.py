from __future__ import annotations

import itertools
from dataclasses import dataclass
from typing import TYPE_CHECKING, NamedTuple, TypeGuard

from zarrpeek.core.common import ChunkCoords, ceildiv

if TYPE_CHECKING:
    from collections.abc import Iterator

Selector = int | slice
Window = tuple[Selector, ...]


class BoundsCheckError(IndexError):
    def __init__(self, dim_len: int) -> None:
        super().__init__(f"index out of bounds for dimension with length {dim_len}")


class InvalidWindowError(IndexError):
    pass


def is_integer(x: object) -> TypeGuard[int]:
    """True if x is an integer (both pure Python or NumPy)."""
    return isinstance(x, int) and not isinstance(x, bool)


def is_slice(s: object) -> TypeGuard[slice]:
    return isinstance(s, slice)


def normalize_integer_selection(dim_sel: int, dim_len: int) -> int:
    if not 0 <= dim_sel < dim_len:
        raise BoundsCheckError(dim_len)
    return dim_sel


class ChunkDimProjection(NamedTuple):
    """A mapping from chunk to output array for a single dimension.

    Attributes
    ----------
    dim_chunk_ix
        Index of chunk.
    dim_chunk_sel
        Selection of items from chunk array.
    dim_out_sel
        Selection of items in target (output) array, ``None`` for a dropped dimension.
    """

    dim_chunk_ix: int
    dim_chunk_sel: Selector
    dim_out_sel: slice | None


@dataclass(frozen=True)
class IntDimIndexer:
    dim_sel: int
    dim_len: int
    dim_chunk_len: int
    nitems: int = 1

    def __init__(self, dim_sel: int, dim_len: int, dim_chunk_len: int) -> None:
        object.__setattr__(self, "dim_sel", normalize_integer_selection(dim_sel, dim_len))
        object.__setattr__(self, "dim_len", dim_len)
        object.__setattr__(self, "dim_chunk_len", dim_chunk_len)

    def __iter__(self) -> Iterator[ChunkDimProjection]:
        dim_chunk_ix = self.dim_sel // self.dim_chunk_len
        dim_offset = dim_chunk_ix * self.dim_chunk_len
        dim_chunk_sel = self.dim_sel - dim_offset
        yield ChunkDimProjection(dim_chunk_ix, dim_chunk_sel, None)


@dataclass(frozen=True)
class SliceDimIndexer:
    """A contiguous, non-empty, half-open range ``[start, stop)`` along one dimension."""

    dim_len: int
    dim_chunk_len: int
    nitems: int

    start: int
    stop: int

    def __init__(self, dim_sel: slice, dim_len: int, dim_chunk_len: int) -> None:
        if dim_sel.step not in (None, 1):
            raise InvalidWindowError(f"window slices must have step 1, got {dim_sel!r}")
        start = 0 if dim_sel.start is None else dim_sel.start
        stop = dim_len if dim_sel.stop is None else dim_sel.stop
        if not 0 <= start < stop <= dim_len:
            raise InvalidWindowError(
                f"window slice {dim_sel!r} is empty or out of bounds for dimension with length {dim_len}"
            )

        object.__setattr__(self, "start", start)
        object.__setattr__(self, "stop", stop)
        object.__setattr__(self, "dim_len", dim_len)
        object.__setattr__(self, "dim_chunk_len", dim_chunk_len)
        object.__setattr__(self, "nitems", stop - start)

    def __iter__(self) -> Iterator[ChunkDimProjection]:
        # figure out the range of chunks we need to visit
        dim_chunk_ix_from = self.start // self.dim_chunk_len
        dim_chunk_ix_to = ceildiv(self.stop, self.dim_chunk_len)

        for dim_chunk_ix in range(dim_chunk_ix_from, dim_chunk_ix_to):
            # compute offsets for chunk within overall array
            dim_offset = dim_chunk_ix * self.dim_chunk_len
            # the trailing chunk is clamped to the array extent
            dim_limit = min(self.dim_len, (dim_chunk_ix + 1) * self.dim_chunk_len)

            dim_chunk_sel_start = max(self.start, dim_offset) - dim_offset
            dim_chunk_sel_stop = min(self.stop, dim_limit) - dim_offset
            dim_out_offset = max(self.start, dim_offset) - self.start

            dim_chunk_sel = slice(dim_chunk_sel_start, dim_chunk_sel_stop)
            dim_out_sel = slice(
                dim_out_offset, dim_out_offset + dim_chunk_sel_stop - dim_chunk_sel_start
            )
            yield ChunkDimProjection(dim_chunk_ix, dim_chunk_sel, dim_out_sel)


class ChunkProjection(NamedTuple):
    """A mapping of items from chunk to output array. Can be used to extract items from the
    chunk array for loading into an output array.

    Attributes
    ----------
    chunk_coords
        Indices of chunk.
    chunk_selection
        Selection of items from chunk array.
    out_selection
        Selection of items in target (output) array.
    """

    chunk_coords: ChunkCoords
    chunk_selection: tuple[Selector, ...]
    out_selection: tuple[slice, ...]


@dataclass(frozen=True)
class WindowIndexer:
    """
    Project a window onto the regular chunk grid of an array.

    The window holds one entry per axis: an integer pins the axis to a single index and
    drops it from the output, a step-1 slice keeps a contiguous range. Iterating yields one
    :class:`ChunkProjection` per intersecting chunk, in row-major chunk order. The output
    selections of all projections tile the output exactly once.
    """

    dim_indexers: list[IntDimIndexer | SliceDimIndexer]
    shape: ChunkCoords

    def __init__(self, window: Window, shape: ChunkCoords, chunk_shape: ChunkCoords) -> None:
        if not len(window) == len(shape) == len(chunk_shape):
            raise InvalidWindowError(
                f"window {window!r} does not match an array with {len(shape)} dimensions"
            )
        dim_indexers: list[IntDimIndexer | SliceDimIndexer] = []
        for dim_sel, dim_len, dim_chunk_len in zip(window, shape, chunk_shape, strict=True):
            dim_indexer: IntDimIndexer | SliceDimIndexer
            if is_integer(dim_sel):
                dim_indexer = IntDimIndexer(dim_sel, dim_len, dim_chunk_len)
            elif is_slice(dim_sel):
                dim_indexer = SliceDimIndexer(dim_sel, dim_len, dim_chunk_len)
            else:
                raise InvalidWindowError(
                    f"unsupported window item; expected integer or slice, got {type(dim_sel)!r}"
                )
            dim_indexers.append(dim_indexer)

        object.__setattr__(self, "dim_indexers", dim_indexers)
        object.__setattr__(
            self,
            "shape",
            tuple(s.nitems for s in dim_indexers if not isinstance(s, IntDimIndexer)),
        )

    def __iter__(self) -> Iterator[ChunkProjection]:
        for dim_projections in itertools.product(*self.dim_indexers):
            chunk_coords = tuple(p.dim_chunk_ix for p in dim_projections)
            chunk_selection = tuple(p.dim_chunk_sel for p in dim_projections)
            out_selection = tuple(
                p.dim_out_sel for p in dim_projections if p.dim_out_sel is not None
            )
            yield ChunkProjection(chunk_coords, chunk_selection, out_selection)
