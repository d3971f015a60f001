from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

from zarrpeek.abc.store import Store
from zarrpeek.storage._fsspec import FsspecStore
from zarrpeek.storage._local import LocalStore

if TYPE_CHECKING:
    from typing import TypeAlias

logger = logging.getLogger(__name__)

StoreLike: TypeAlias = Store | Path | str


def _is_fsspec_uri(uri: str) -> bool:
    """
    Check if a URI looks like a non-local fsspec URI.

    Examples
    --------
    >>> _is_fsspec_uri("https://example.org/image.zarr")
    True
    >>> _is_fsspec_uri("/data/image.zarr")
    False
    >>> _is_fsspec_uri("file:///data/image.zarr")
    False
    """
    return "://" in uri and not uri.startswith("file://")


async def make_store(
    store_like: StoreLike,
    *,
    storage_options: dict[str, Any] | None = None,
) -> Store:
    """
    Convert a store location into an opened, read-only Store.

    A `Store` is returned as-is (opened if needed). A `Path` or a plain string is a local
    directory. A string with a protocol (``https://...``) is opened with fsspec.

    Parameters
    ----------
    store_like : Store | Path | str
        The location to open.
    storage_options : dict[str, Any] | None, optional
        Options forwarded to fsspec for remote locations.

    Returns
    -------
    Store

    Raises
    ------
    FileNotFoundError
        If a local location does not exist.
    TypeError
        If the location has an unsupported type.
    """
    if isinstance(store_like, Store):
        await store_like._ensure_open()
        return store_like
    if isinstance(store_like, Path):
        return await LocalStore.open(store_like)
    if isinstance(store_like, str):
        if _is_fsspec_uri(store_like):
            logger.info("Opening remote store %s", store_like)
            store = FsspecStore.from_url(store_like, storage_options=storage_options)
            await store._open()
            return store
        return await LocalStore.open(store_like.removeprefix("file://"))
    raise TypeError(f"Unsupported type for store_like: '{type(store_like).__name__}'")
