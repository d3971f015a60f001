"""
DEC sixel graphics.

Frame layout::

    ESC P 0;1;0 q              device control string, pixel aspect 1:1, transparent 0
    "1;1;W;H                   raster attributes
    #i;2;r;g;b ...             palette, RGB components in percent
    #i <sixels> $ #j ... -     one line per color in a band of six rows, bands split by -
    ESC \\                      string terminator

Sixel characters are ``chr(63 + bits)`` where bit ``k`` is set for row ``k`` of the band;
runs of more than three equal characters are written as ``!<count><char>``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    import numpy.typing as npt

DCS = b"\x1bP0;1;0q"
ST = b"\x1b\\"

BAND_HEIGHT = 6
GRAY_LEVELS = 101
CUBE = (6, 7, 6)


def quantize(rgb: npt.NDArray[np.uint8]) -> tuple[npt.NDArray[np.intp], dict[int, tuple[int, int, int]]]:
    """
    Map every pixel to a color register.

    Gray images use 101 gray levels; other images a 6x7x6 RGB cube. Returns the register
    image and the palette of used registers, with components in percent.
    """
    v = rgb.astype(np.intp)
    if np.array_equal(v[..., 0], v[..., 1]) and np.array_equal(v[..., 1], v[..., 2]):
        registers = (v[..., 0] * (GRAY_LEVELS - 1) + 127) // 255
        palette = {int(i): (int(i), int(i), int(i)) for i in np.unique(registers)}
        return registers, palette

    nr, ng, nb = CUBE
    r = (v[..., 0] * (nr - 1) + 127) // 255
    g = (v[..., 1] * (ng - 1) + 127) // 255
    b = (v[..., 2] * (nb - 1) + 127) // 255
    registers = (r * ng + g) * nb + b
    palette = {}
    for i in np.unique(registers).tolist():
        ri, rest = divmod(i, ng * nb)
        gi, bi = divmod(rest, nb)
        palette[i] = (
            round(ri * 100 / (nr - 1)),
            round(gi * 100 / (ng - 1)),
            round(bi * 100 / (nb - 1)),
        )
    return registers, palette


def _run_length(bits: npt.NDArray[np.intp]) -> str:
    # trailing empty columns need not be drawn
    nonzero = np.flatnonzero(bits)
    bits = bits[: nonzero[-1] + 1]
    boundaries = np.flatnonzero(np.diff(bits)) + 1
    starts = np.concatenate([[0], boundaries])
    stops = np.concatenate([boundaries, [bits.size]])
    out = []
    for start, stop in zip(starts.tolist(), stops.tolist(), strict=True):
        char = chr(63 + int(bits[start]))
        count = stop - start
        out.append(f"!{count}{char}" if count > 3 else char * count)
    return "".join(out)


def encode_sixel(rgb: npt.NDArray[np.uint8]) -> bytes:
    """Encode an ``(rows, columns, 3)`` image as a complete sixel frame."""
    height, width = rgb.shape[:2]
    registers, palette = quantize(rgb)

    parts = [f'"1;1;{width};{height}']
    parts.extend(f"#{i};2;{r};{g};{b}" for i, (r, g, b) in sorted(palette.items()))

    weights = (1 << np.arange(BAND_HEIGHT, dtype=np.intp))[:, np.newaxis]
    bands = []
    for y in range(0, height, BAND_HEIGHT):
        band = registers[y : y + BAND_HEIGHT]
        lines = []
        for register in np.unique(band).tolist():
            mask = band == register
            bits = (mask * weights[: band.shape[0]]).sum(axis=0)
            lines.append(f"#{register}{_run_length(bits)}")
        bands.append("$".join(lines))
    parts.append("-".join(bands))
    return DCS + "".join(parts).encode("ascii") + ST
