from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from zarrpeek.abc.store import ByteRequest, Store
from zarrpeek.storage._utils import _byte_range_bounds, _dereference_path

if TYPE_CHECKING:
    from fsspec.asyn import AsyncFileSystem

logger = logging.getLogger(__name__)


class FsspecStore(Store):
    """
    Read-only store over an fsspec filesystem, typically the HTTP base URL of an image.

    Keys are appended to the store path as path segments, so the chunk ``0/c/0/0/1`` of a
    store at ``https://example.org/image.zarr`` is fetched with a plain GET of
    ``https://example.org/image.zarr/0/c/0/0/1``. fsspec raises ``FileNotFoundError`` for a
    404 response; sparse images omit chunks that only hold the fill value, so such a
    response reads as a missing key rather than a transport failure.

    Parameters
    ----------
    fs : AsyncFileSystem
        An fsspec filesystem instance in asynchronous mode.
    path : str
        The root path of the image within ``fs``.

    Raises
    ------
    TypeError
        If the filesystem does not support async operations.
    ValueError
        If the path argument includes a scheme other than http(s).

    See Also
    --------
    FsspecStore.from_url
    """

    fs: AsyncFileSystem
    path: str

    def __init__(self, fs: AsyncFileSystem, path: str = "/") -> None:
        super().__init__()
        self.fs = fs
        self.path = path

        if not self.fs.async_impl:
            raise TypeError("Filesystem needs to support async operations.")
        if "://" in path and not path.startswith("http"):
            # the http filesystem keeps the full URL as its path
            scheme, _ = path.split("://", maxsplit=1)
            raise ValueError(f"path argument to FsspecStore must not include scheme ({scheme}://)")

    @classmethod
    def from_url(cls, url: str, storage_options: dict[str, Any] | None = None) -> FsspecStore:
        """
        Create a store for the image at ``url``. The filesystem is chosen by the URL scheme.

        Filesystems without an async implementation are wrapped with fsspec's
        ``AsyncFileSystemWrapper``, which runs their blocking calls in threads.

        Parameters
        ----------
        url : str
            The URL of the image root, e.g. ``https://example.org/image.zarr``.
        storage_options : dict, optional
            Options passed to the fsspec filesystem, e.g. HTTP ``headers``.

        Returns
        -------
        FsspecStore
        """
        from fsspec import url_to_fs

        fs, path = url_to_fs(url, **{"asynchronous": True, **(storage_options or {})})
        if not fs.async_impl:
            from fsspec.implementations.asyn_wrapper import AsyncFileSystemWrapper

            logger.debug("Wrapping synchronous filesystem %s", type(fs).__name__)
            fs = AsyncFileSystemWrapper(fs, asynchronous=True)
        return cls(fs=fs, path=path.rstrip("/"))

    def __repr__(self) -> str:
        return f"<FsspecStore({type(self.fs).__name__}, {self.path})>"

    def __eq__(self, other: object) -> bool:
        return isinstance(other, type(self)) and self.path == other.path and self.fs == other.fs

    async def get(
        self,
        key: str,
        byte_range: ByteRequest | None = None,
    ) -> bytes | None:
        # docstring inherited
        await self._ensure_open()
        start, end = _byte_range_bounds(byte_range)
        try:
            value = await self.fs._cat_file(_dereference_path(self.path, key), start=start, end=end)
        except FileNotFoundError:
            return None
        return bytes(value)

    async def exists(self, key: str) -> bool:
        # docstring inherited
        exists: bool = await self.fs._exists(_dereference_path(self.path, key))
        return exists
