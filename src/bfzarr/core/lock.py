"""
Per-unit locks for writers that share stored units.

An array opened with a synchronizer takes the lock of a stored unit for the whole
read-modify-write of that unit.
"""

from __future__ import annotations

import os
import threading
from collections import defaultdict
from typing import TYPE_CHECKING, Protocol

import fasteners

if TYPE_CHECKING:
    from contextlib import AbstractContextManager
    from typing import Any, Literal

__all__ = ["ProcessSynchronizer", "Synchronizer", "ThreadSynchronizer"]


class Synchronizer(Protocol):
    """Maps a stored-unit key to the lock guarding it."""

    def __getitem__(self, item: str) -> AbstractContextManager[Any]: ...


class ThreadSynchronizer(Synchronizer):
    """Locks shared by the threads of one process."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self.locks: defaultdict[str, threading.Lock] = defaultdict(threading.Lock)

    def __getitem__(self, item: str) -> threading.Lock:
        with self._guard:
            return self.locks[item]

    # locks cannot be pickled; a copy starts with fresh ones. The state must be truthy for
    # pickle to call __setstate__
    def __getstate__(self) -> Literal[True]:
        return True

    def __setstate__(self, state: object) -> None:
        self.__init__()  # type: ignore[misc]


class ProcessSynchronizer(Synchronizer):
    """
    Locks shared by processes, as lock files made with ``fasteners``.

    Parameters
    ----------
    path : str
        A directory every process can reach. Keep it apart from the array data, lock files
        in the store would show up as keys.
    """

    path: str

    def __init__(self, path: str) -> None:
        self.path = path

    def __getitem__(self, item: str) -> fasteners.InterProcessLock:
        lock_name = item.strip("/").replace("/", ".") + ".lock"
        return fasteners.InterProcessLock(os.path.join(self.path, lock_name))

    def __repr__(self) -> str:
        return f"ProcessSynchronizer({self.path!r})"
