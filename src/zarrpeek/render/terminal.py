"""
Terminal capability detection and output.

:func:`probe_terminal` is a pure function of an environment mapping and a
:class:`TerminalSize`; :func:`detect_terminal` gathers both from the running process.
"""

from __future__ import annotations

import logging
import os
import shutil
import struct
import sys
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, BinaryIO, Literal

from zarrpeek.core.config import config, parse_protocol
from zarrpeek.errors import UnsupportedTerminalError
from zarrpeek.render.blocks import encode_blocks
from zarrpeek.render.kitty import encode_kitty
from zarrpeek.render.resize import downsample, fit_size
from zarrpeek.render.sixel import encode_sixel

if TYPE_CHECKING:
    import numpy as np
    import numpy.typing as npt

logger = logging.getLogger(__name__)

BitmapProtocol = Literal["sixel", "kitty"]

KITTY_PROGRAMS = frozenset({"wezterm", "ghostty"})
SIXEL_PROGRAMS = frozenset({"mlterm", "foot", "contour", "iterm.app", "yaft"})
TRUECOLOR_PROGRAMS = frozenset({"iterm.app", "wezterm", "ghostty", "vscode", "hyper"})


class TerminalKind(Enum):
    BITMAP = "bitmap"
    BLOCK_CELL = "block_cell"
    UNSUPPORTED = "unsupported"


@dataclass(frozen=True)
class TerminalSize:
    """Terminal size in character cells, and in pixels when the terminal reports it."""

    columns: int = 80
    rows: int = 24
    width_px: int | None = None
    height_px: int | None = None


@dataclass(frozen=True)
class TerminalCaps:
    kind: TerminalKind
    protocol: BitmapProtocol | None = None
    truecolor: bool = False
    size: TerminalSize = field(default_factory=TerminalSize)
    term: str | None = None

    def bitmap_bounds(self) -> tuple[int, int]:
        """Largest bitmap ``(height, width)`` in pixels."""
        max_height = config.get("terminal.max_height")
        max_width = config.get("terminal.max_width")
        if self.size.width_px and self.size.height_px:
            # keep one text row free for the prompt
            row_px = self.size.height_px // max(self.size.rows, 1)
            return max(self.size.height_px - row_px, 1), self.size.width_px
        return max_height, max_width

    def cell_bounds(self) -> tuple[int, int]:
        """Largest block-cell image ``(height, width)`` in pixels: two pixel rows per cell."""
        return max(self.size.rows - 1, 1) * 2, max(self.size.columns, 1)


def _is_kitty(env: Mapping[str, str], term: str, program: str) -> bool:
    return "KITTY_WINDOW_ID" in env or term == "xterm-kitty" or program in KITTY_PROGRAMS


def _is_sixel(term: str, program: str) -> bool:
    return "sixel" in term or term in SIXEL_PROGRAMS or program in SIXEL_PROGRAMS


def probe_terminal(
    env: Mapping[str, str], size: TerminalSize, *, isatty: bool = True
) -> TerminalCaps:
    """
    Decide how to draw on a terminal.

    The ``terminal.protocol`` configuration forces ``sixel``, ``kitty`` or ``blocks``.
    With ``auto``, kitty graphics are used for kitty, WezTerm and ghostty; sixel for
    terminals advertising it (``TERM`` containing ``sixel``, mlterm, foot, contour,
    iTerm2, yaft); colored block cells for any other terminal with a ``TERM`` other than
    ``dumb``. Bitmaps are only auto-selected when writing to a tty.
    """
    term = env.get("TERM", "")
    program = env.get("TERM_PROGRAM", "").lower()
    truecolor = (
        env.get("COLORTERM", "").lower() in ("truecolor", "24bit")
        or program in TRUECOLOR_PROGRAMS
        or _is_kitty(env, term, program)
    )
    protocol = parse_protocol(config.get("terminal.protocol"))

    if protocol in ("sixel", "kitty"):
        caps = TerminalCaps(TerminalKind.BITMAP, protocol, truecolor, size, term or None)
    elif protocol == "blocks":
        caps = TerminalCaps(TerminalKind.BLOCK_CELL, None, truecolor, size, term or None)
    elif isatty and _is_kitty(env, term, program):
        caps = TerminalCaps(TerminalKind.BITMAP, "kitty", truecolor, size, term)
    elif isatty and _is_sixel(term.lower(), program):
        caps = TerminalCaps(TerminalKind.BITMAP, "sixel", truecolor, size, term)
    elif term and term != "dumb":
        caps = TerminalCaps(TerminalKind.BLOCK_CELL, None, truecolor, size, term)
    else:
        caps = TerminalCaps(TerminalKind.UNSUPPORTED, None, False, size, term or None)
    logger.info(
        "Terminal %r (protocol setting %r): %s %s",
        term,
        protocol,
        caps.kind.value,
        caps.protocol or ("truecolor" if caps.truecolor else "256 colors"),
    )
    return caps


def _pixel_size(fd: int) -> tuple[int | None, int | None]:
    if sys.platform == "win32":
        return None, None
    import fcntl
    import termios

    try:
        packed = fcntl.ioctl(fd, termios.TIOCGWINSZ, b"\0" * 8)
    except OSError:
        return None, None
    _, _, width_px, height_px = struct.unpack("HHHH", packed)
    return width_px or None, height_px or None


def detect_terminal(stream: BinaryIO | None = None) -> TerminalCaps:
    """Probe the terminal attached to ``stream`` (standard output by default)."""
    stream = stream if stream is not None else sys.stdout.buffer
    try:
        fd = stream.fileno()
        isatty = os.isatty(fd)
    except (AttributeError, OSError, ValueError):
        fd, isatty = -1, False
    if isatty:
        # cells and pixels both come from the terminal behind fd
        columns, rows = os.get_terminal_size(fd)
        width_px, height_px = _pixel_size(fd)
    else:
        columns, rows = shutil.get_terminal_size()
        width_px = height_px = None
    return probe_terminal(
        os.environ, TerminalSize(columns, rows, width_px, height_px), isatty=isatty
    )


def encode(rgb: npt.NDArray[np.uint8], caps: TerminalCaps) -> bytes:
    """
    Serialize an ``(rows, columns, 3)`` image for the terminal described by ``caps``.

    Raises
    ------
    UnsupportedTerminalError
        If the terminal cannot show images.
    """
    if caps.kind is TerminalKind.UNSUPPORTED:
        raise UnsupportedTerminalError(caps.term or "", caps.kind.value)
    if caps.kind is TerminalKind.BITMAP:
        max_height, max_width = caps.bitmap_bounds()
    else:
        max_height, max_width = caps.cell_bounds()
    height, width = fit_size(rgb.shape[0], rgb.shape[1], max_height, max_width)
    if (height, width) != rgb.shape[:2]:
        logger.info("Downsampling %dx%d to %dx%d", rgb.shape[0], rgb.shape[1], height, width)
        rgb = downsample(rgb, height, width)

    if caps.kind is TerminalKind.BLOCK_CELL:
        return encode_blocks(rgb, truecolor=caps.truecolor)
    if caps.protocol == "kitty":
        return encode_kitty(rgb) + b"\n"
    return encode_sixel(rgb) + b"\n"


def render(
    rgb: npt.NDArray[np.uint8], caps: TerminalCaps, out: BinaryIO | None = None
) -> None:
    """Write ``rgb`` to ``out`` (standard output by default) and flush."""
    data = encode(rgb, caps)
    out = out if out is not None else sys.stdout.buffer
    out.write(data)
    out.flush()
