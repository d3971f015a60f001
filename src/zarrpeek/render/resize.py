from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    import numpy.typing as npt


def fit_size(height: int, width: int, max_height: int, max_width: int) -> tuple[int, int]:
    """
    The largest size with the aspect ratio of ``(height, width)`` that fits in
    ``(max_height, max_width)``. Images are never enlarged.

    Examples
    --------
    >>> fit_size(1000, 500, 100, 100)
    (100, 50)
    >>> fit_size(10, 20, 100, 100)
    (10, 20)
    """
    scale = min(1.0, max_height / height, max_width / width)
    return max(1, int(height * scale)), max(1, int(width * scale))


def _bin_edges(length: int, bins: int) -> npt.NDArray[np.intp]:
    return (np.arange(bins) * length) // bins


def downsample(rgb: npt.NDArray[np.uint8], height: int, width: int) -> npt.NDArray[np.uint8]:
    """
    Shrink an ``(rows, columns, 3)`` image to ``(height, width, 3)`` by averaging the
    pixels that fall into each output pixel.
    """
    rows, cols = rgb.shape[:2]
    if (height, width) == (rows, cols):
        return rgb
    if height > rows or width > cols:
        raise ValueError(f"Cannot downsample {rows}x{cols} to the larger {height}x{width}.")
    row_edges = _bin_edges(rows, height)
    col_edges = _bin_edges(cols, width)
    row_counts = np.diff(np.append(row_edges, rows))
    col_counts = np.diff(np.append(col_edges, cols))

    sums = np.add.reduceat(rgb.astype(np.float64), row_edges, axis=0)
    sums = np.add.reduceat(sums, col_edges, axis=1)
    means = sums / (row_counts[:, np.newaxis, np.newaxis] * col_counts[np.newaxis, :, np.newaxis])
    return np.round(means).astype(np.uint8)
