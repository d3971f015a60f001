import logging
from typing import Literal

from zarrpeek._version import version as __version__
from zarrpeek.api.synchronous import load_rgb, open, open_multiscale, view
from zarrpeek.core.config import config
from zarrpeek.core.image import AsyncImage, Image
from zarrpeek.core.normalize import DisplayRange
from zarrpeek.core.planner import ALL


def _ensure_handler() -> logging.Handler:
    """
    Ensure a handler is attached to the zarrpeek logger and return it.
    """
    logger = logging.getLogger("zarrpeek")
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
        logger.addHandler(handler)
    return logger.handlers[0]


def set_log_level(
    level: Literal["NOTSET", "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
) -> None:
    """Set the logging level for zarrpeek.

    Parameters
    ----------
    level
        The logging level to set.
    """
    _ensure_handler()
    logging.getLogger("zarrpeek").setLevel(level)


def set_format(log_format: str) -> None:
    """Set the format of logging messages from zarrpeek.

    Parameters
    ----------
    log_format
        The format string to use, passed to :class:`logging.Formatter`.
    """
    handler = _ensure_handler()
    handler.setFormatter(logging.Formatter(fmt=log_format))


__all__ = [
    "ALL",
    "AsyncImage",
    "DisplayRange",
    "Image",
    "__version__",
    "config",
    "load_rgb",
    "open",
    "open_multiscale",
    "set_format",
    "set_log_level",
    "view",
]
