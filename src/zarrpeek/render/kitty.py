"""
Kitty terminal graphics protocol: raw 24-bit RGB, transmitted and displayed at once.
"""

from __future__ import annotations

import base64
from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    import numpy.typing as npt

CHUNK_SIZE = 4096


def encode_kitty(rgb: npt.NDArray[np.uint8]) -> bytes:
    """
    Encode an ``(rows, columns, 3)`` image as a sequence of kitty graphics commands.

    The base64 payload is split into chunks of at most 4096 bytes; every chunk but the
    last carries ``m=1``. Only the first command carries the image keys.
    """
    height, width = rgb.shape[:2]
    payload = base64.standard_b64encode(np.ascontiguousarray(rgb, dtype=np.uint8).tobytes())
    chunks = [payload[i : i + CHUNK_SIZE] for i in range(0, len(payload), CHUNK_SIZE)] or [b""]

    out = []
    for index, chunk in enumerate(chunks):
        more = int(index < len(chunks) - 1)
        keys = f"a=T,f=24,s={width},v={height},m={more}" if index == 0 else f"m={more}"
        out.append(b"\x1b_G" + keys.encode("ascii") + b";" + chunk + b"\x1b\\")
    return b"".join(out)
