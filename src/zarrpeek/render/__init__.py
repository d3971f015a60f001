from zarrpeek.render.terminal import (
    TerminalCaps,
    TerminalKind,
    TerminalSize,
    detect_terminal,
    encode,
    probe_terminal,
    render,
)

__all__ = [
    "TerminalCaps",
    "TerminalKind",
    "TerminalSize",
    "detect_terminal",
    "encode",
    "probe_terminal",
    "render",
]
