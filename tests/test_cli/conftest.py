import logging
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import numcodecs
import pytest

from tests.conftest import DirectoryWriter, pyramid, write_ome_v2


@pytest.fixture(autouse=True)
def reset_logging() -> Iterator[None]:
    # the CLI attaches a handler bound to the runner's stderr
    yield
    logger = logging.getLogger("zarrpeek")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def image_zarr(tmp_path: Path, image_5d: Any) -> Path:
    """A three-level OME-NGFF 0.4 image on disk."""
    path = tmp_path / "image.zarr"
    write_ome_v2(
        DirectoryWriter(path),
        pyramid(image_5d, 3),
        (1, 1, 1, 16, 16),
        omero={"channels": [{"label": "DAPI", "color": "0000FF"}]},
        compressor=numcodecs.Zstd(level=1),
    )
    return path
