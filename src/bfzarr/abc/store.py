from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from bfzarr.core.buffer import Buffer
from bfzarr.errors import StoreUnavailableError

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator
    from types import TracebackType
    from typing import Self, TypeAlias

__all__ = [
    "ByteGetter",
    "ByteRequest",
    "ByteSetter",
    "OffsetByteRequest",
    "RangeByteRequest",
    "Store",
    "SuffixByteRequest",
]


@dataclass
class RangeByteRequest:
    """Bytes ``start`` (inclusive) to ``end`` (exclusive)."""

    start: int
    end: int


@dataclass
class OffsetByteRequest:
    """Every byte from ``offset`` on."""

    offset: int


@dataclass
class SuffixByteRequest:
    """The last ``suffix`` bytes, or the whole value when it is shorter."""

    suffix: int


ByteRequest: TypeAlias = RangeByteRequest | OffsetByteRequest | SuffixByteRequest


class Store(ABC):
    """
    Abstract base class for bfzarr stores.

    A store maps ``/``-separated string keys to byte values. The public methods resolve to the
    ``_``-prefixed methods that concrete stores implement; failures of the backend other than
    a missing key surface as ``StoreUnavailableError``.
    """

    _read_only: bool
    _is_open: bool

    def __init__(self, *, read_only: bool = False) -> None:
        self._is_open = False
        self._read_only = read_only

    @classmethod
    def open(cls, *args: object, **kwargs: object) -> Self:
        """Construct the store with the given arguments and open it right away."""
        store = cls(*args, **kwargs)
        store._open()
        return store

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.close()

    def _open(self) -> None:
        if self._is_open:
            raise ValueError("store is already open")
        self._is_open = True

    def _ensure_open(self) -> None:
        if not self._is_open:
            self._open()

    @contextmanager
    def _backend(self, action: str, key: str) -> Iterator[None]:
        # OSError covers connection, timeout and permission failures of every backend
        self._ensure_open()
        try:
            yield
        except StoreUnavailableError:
            raise
        except OSError as e:
            raise StoreUnavailableError(str(self), action, key) from e

    def get(self, key: str, byte_range: ByteRequest | None = None) -> Buffer | None:
        """The value under ``key``, or the requested part of it. ``None`` when the key is absent.

        Raises
        ------
        StoreUnavailableError
            If the backend fails for any other reason.
        """
        with self._backend("read", key):
            return self._get(key, byte_range=byte_range)

    def set(self, key: str, value: Buffer) -> None:
        if not isinstance(value, Buffer):
            raise TypeError(
                f"{type(self).__name__}.set(): `value` must be a Buffer instance. "
                f"Got an instance of {type(value)} instead."
            )
        self._check_writable()
        with self._backend("write", key):
            self._set(key, value)

    def delete(self, key: str) -> None:
        """Remove ``key``. Removing a missing key is not an error."""
        self._check_deletable()
        with self._backend("delete", key):
            self._delete(key)

    def exists(self, key: str) -> bool:
        with self._backend("check", key):
            return self._exists(key)

    def get_partial_values(
        self, key_ranges: Iterable[tuple[str, ByteRequest | None]]
    ) -> list[Buffer | None]:
        """One ``get`` per ``(key, byte_range)`` pair, in order."""
        return [self.get(key, byte_range=byte_range) for key, byte_range in key_ranges]

    def delete_dir(self, prefix: str) -> None:
        """Remove every key below ``prefix``."""
        self._check_deletable()
        for key in list(self.list_prefix(_as_dir(prefix))):
            self.delete(key)

    def is_empty(self, prefix: str) -> bool:
        return next(iter(self.list_prefix(_as_dir(prefix))), None) is None

    def list(self) -> Iterator[str]:
        self._ensure_open()
        return self._list()

    def list_prefix(self, prefix: str) -> Iterator[str]:
        """Every key starting with ``prefix``, relative to the root of the store."""
        self._ensure_open()
        return self._list_prefix(prefix)

    def list_dir(self, prefix: str) -> Iterator[str]:
        """The names directly below ``prefix``, keys and intermediate levels alike."""
        # materialized so that backend failures surface here
        with self._backend("list", prefix):
            return iter(list(self._list_dir(prefix)))

    @abstractmethod
    def _get(self, key: str, byte_range: ByteRequest | None = None) -> Buffer | None: ...

    @abstractmethod
    def _set(self, key: str, value: Buffer) -> None: ...

    @abstractmethod
    def _delete(self, key: str) -> None: ...

    @abstractmethod
    def _exists(self, key: str) -> bool: ...

    @abstractmethod
    def _list(self) -> Iterator[str]: ...

    @abstractmethod
    def _list_prefix(self, prefix: str) -> Iterator[str]: ...

    @abstractmethod
    def _list_dir(self, prefix: str) -> Iterator[str]: ...

    def clear(self) -> None:
        self.delete_dir("")

    @property
    def read_only(self) -> bool:
        return self._read_only

    def _check_writable(self) -> None:
        if self.read_only:
            raise ValueError("store was opened in read-only mode and does not support writing")

    def _check_deletable(self) -> None:
        if not self.supports_deletes:
            raise NotImplementedError(f"{type(self).__name__} does not support deletes.")
        self._check_writable()

    @abstractmethod
    def __eq__(self, value: object) -> bool: ...

    @property
    @abstractmethod
    def supports_deletes(self) -> bool: ...

    def close(self) -> None:
        self._is_open = False


def _as_dir(prefix: str) -> str:
    return prefix if prefix == "" or prefix.endswith("/") else prefix + "/"


class ByteGetter(Protocol):
    def get(self, byte_range: ByteRequest | None = None) -> Buffer | None: ...


class ByteSetter(Protocol):
    @property
    def path(self) -> str: ...

    def get(self, byte_range: ByteRequest | None = None) -> Buffer | None: ...

    def set(self, value: Buffer) -> None: ...

    def delete(self) -> None: ...
