from __future__ import annotations

from typing import TYPE_CHECKING

from zarrpeek.abc.store import ByteRequest, Store
from zarrpeek.storage._utils import _normalize_byte_range_index

if TYPE_CHECKING:
    from collections.abc import MutableMapping


class MemoryStore(Store):
    """
    Store for local memory.

    Parameters
    ----------
    store_dict : dict
        Initial data, mapping keys to bytes.
    """

    _store_dict: MutableMapping[str, bytes]

    def __init__(self, store_dict: MutableMapping[str, bytes] | None = None) -> None:
        super().__init__()
        if store_dict is None:
            store_dict = {}
        self._store_dict = store_dict

    def __str__(self) -> str:
        return f"memory://{id(self._store_dict)}"

    def __repr__(self) -> str:
        return f"MemoryStore('{self}')"

    def __eq__(self, other: object) -> bool:
        return isinstance(other, type(self)) and self._store_dict == other._store_dict

    def __setitem__(self, key: str, value: bytes) -> None:
        self._store_dict[key] = bytes(value)

    async def get(
        self,
        key: str,
        byte_range: ByteRequest | None = None,
    ) -> bytes | None:
        # docstring inherited
        if not self._is_open:
            await self._open()
        assert isinstance(key, str)
        try:
            value = self._store_dict[key]
            start, stop = _normalize_byte_range_index(value, byte_range)
            return bytes(value[start:stop])
        except KeyError:
            return None

    async def exists(self, key: str) -> bool:
        # docstring inherited
        return key in self._store_dict
