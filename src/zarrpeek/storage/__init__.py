from zarrpeek.storage._common import StoreLike, make_store
from zarrpeek.storage._fsspec import FsspecStore
from zarrpeek.storage._local import LocalStore
from zarrpeek.storage._memory import MemoryStore

__all__ = [
    "FsspecStore",
    "LocalStore",
    "MemoryStore",
    "StoreLike",
    "make_store",
]
