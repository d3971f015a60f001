from __future__ import annotations

import asyncio
import io
from pathlib import Path

from zarrpeek.abc.store import (
    ByteRequest,
    OffsetByteRequest,
    RangeByteRequest,
    Store,
    SuffixByteRequest,
)


def _get(path: Path, byte_range: ByteRequest | None) -> bytes:
    if byte_range is None:
        return path.read_bytes()
    with path.open("rb") as f:
        size = f.seek(0, io.SEEK_END)
        if isinstance(byte_range, RangeByteRequest):
            f.seek(byte_range.start)
            return f.read(byte_range.end - f.tell())
        elif isinstance(byte_range, OffsetByteRequest):
            f.seek(byte_range.offset)
        elif isinstance(byte_range, SuffixByteRequest):
            f.seek(max(0, size - byte_range.suffix))
        else:
            raise TypeError(f"Unexpected byte_range, got {byte_range}.")
        return f.read()


class LocalStore(Store):
    """
    Read-only store for the local file system.

    Parameters
    ----------
    root : str or Path
        Directory to use as root of store.

    Attributes
    ----------
    root
    """

    root: Path

    def __init__(self, root: Path | str) -> None:
        super().__init__()
        if isinstance(root, str):
            root = Path(root)
        if not isinstance(root, Path):
            raise TypeError(
                f"'root' must be a string or Path instance. Got an instance of {type(root)} instead."
            )
        self.root = root

    async def _open(self) -> None:
        if not self.root.exists():
            raise FileNotFoundError(f"{self.root} does not exist")
        return await super()._open()

    def __str__(self) -> str:
        return f"file://{self.root.as_posix()}"

    def __repr__(self) -> str:
        return f"LocalStore('{self}')"

    def __eq__(self, other: object) -> bool:
        return isinstance(other, type(self)) and self.root == other.root

    async def get(
        self,
        key: str,
        byte_range: ByteRequest | None = None,
    ) -> bytes | None:
        # docstring inherited
        if not self._is_open:
            await self._open()
        assert isinstance(key, str)
        path = self.root / key

        try:
            return await asyncio.to_thread(_get, path, byte_range)
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError):
            return None

    async def exists(self, key: str) -> bool:
        # docstring inherited
        path = self.root / key
        return await asyncio.to_thread(path.is_file)
