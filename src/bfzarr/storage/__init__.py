from bfzarr.storage._common import StoreLike, StorePath, make_store_path
from bfzarr.storage._fsspec import FsspecStore
from bfzarr.storage._local import LocalStore
from bfzarr.storage._memory import MemoryStore
from bfzarr.storage._zip import ZipStore

__all__ = [
    "FsspecStore",
    "LocalStore",
    "MemoryStore",
    "StoreLike",
    "StorePath",
    "ZipStore",
    "make_store_path",
]
