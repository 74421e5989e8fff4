from __future__ import annotations

from typing import TYPE_CHECKING

from bfzarr.abc.store import ByteRequest, Store
from bfzarr.storage._utils import _normalize_byte_range_index

if TYPE_CHECKING:
    from collections.abc import Iterator, MutableMapping

    from bfzarr.core.buffer import Buffer


class MemoryStore(Store):
    """
    Store holding its values in a mutable mapping, a new dict unless ``store_dict`` is given.

    Copies made with ``with_read_only`` share the mapping.
    """

    supports_deletes: bool = True

    _store_dict: MutableMapping[str, Buffer]

    def __init__(
        self, store_dict: MutableMapping[str, Buffer] | None = None, *, read_only: bool = False
    ) -> None:
        super().__init__(read_only=read_only)
        self._store_dict = {} if store_dict is None else store_dict

    def with_read_only(self, read_only: bool = False) -> MemoryStore:
        return type(self)(store_dict=self._store_dict, read_only=read_only)

    def __str__(self) -> str:
        return f"memory://{id(self._store_dict)}"

    def __repr__(self) -> str:
        return f"MemoryStore('{self}')"

    def __eq__(self, other: object) -> bool:
        return (
            isinstance(other, type(self))
            and self._store_dict == other._store_dict
            and self.read_only == other.read_only
        )

    def _get(self, key: str, byte_range: ByteRequest | None = None) -> Buffer | None:
        value = self._store_dict.get(key)
        if value is None:
            return None
        start, stop = _normalize_byte_range_index(value, byte_range)
        return value[start:stop]

    def _set(self, key: str, value: Buffer) -> None:
        self._store_dict[key] = value

    def _delete(self, key: str) -> None:
        self._store_dict.pop(key, None)

    def _exists(self, key: str) -> bool:
        return key in self._store_dict

    def _list(self) -> Iterator[str]:
        yield from list(self._store_dict)

    def _list_prefix(self, prefix: str) -> Iterator[str]:
        # a snapshot, so that callers may delete while iterating
        yield from [key for key in self._store_dict if key.startswith(prefix)]

    def _list_dir(self, prefix: str) -> Iterator[str]:
        # there are no directory markers; intermediate levels are derived from the keys
        prefix = prefix.rstrip("/")
        start = prefix + "/" if prefix else ""
        yield from sorted(
            {key[len(start) :].split("/")[0] for key in self._store_dict if key.startswith(start)}
        )
