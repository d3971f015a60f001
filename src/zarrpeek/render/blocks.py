"""
Character-cell output: each cell shows two vertically stacked pixels as an upper half
block whose foreground is the top pixel and whose background is the bottom pixel.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    import numpy.typing as npt

UPPER_HALF_BLOCK = "▀"
RESET = "\x1b[0m"


def xterm256(rgb: npt.NDArray[np.uint8]) -> npt.NDArray[np.intp]:
    """Nearest entry of the xterm 6x6x6 color cube (indices 16 to 231)."""
    v = rgb.astype(np.intp)
    levels = np.where(v < 48, 0, np.where(v < 115, 1, (v - 35) // 40))
    return 16 + 36 * levels[..., 0] + 6 * levels[..., 1] + levels[..., 2]


def _sgr(ground: int, pixel: npt.NDArray[np.uint8], index: int | None) -> str:
    if index is None:
        return f"\x1b[{ground};2;{pixel[0]};{pixel[1]};{pixel[2]}m"
    return f"\x1b[{ground};5;{index}m"


def encode_blocks(rgb: npt.NDArray[np.uint8], truecolor: bool = True) -> bytes:
    """
    Encode an ``(rows, columns, 3)`` image as lines of half-block cells.

    Produces one line per two pixel rows; an odd last row is paired with black.
    Colors are 24-bit SGR sequences, or xterm 256-color indices without ``truecolor``.
    """
    if rgb.shape[0] % 2:
        rgb = np.concatenate([rgb, np.zeros((1, *rgb.shape[1:]), dtype=rgb.dtype)])
    indices = None if truecolor else xterm256(rgb)

    lines = []
    for y in range(0, rgb.shape[0], 2):
        cells = []
        previous = None
        for x in range(rgb.shape[1]):
            top, bottom = rgb[y, x], rgb[y + 1, x]
            if indices is None:
                key = (*top.tolist(), *bottom.tolist())
                fg, bg = _sgr(38, top, None), _sgr(48, bottom, None)
            else:
                key = (int(indices[y, x]), int(indices[y + 1, x]))
                fg, bg = _sgr(38, top, key[0]), _sgr(48, bottom, key[1])
            # repeat colors are implied by the previous cell
            if key != previous:
                cells.append(fg + bg)
                previous = key
            cells.append(UPPER_HALF_BLOCK)
        lines.append("".join(cells) + RESET + "\n")
    return "".join(lines).encode("utf-8")
