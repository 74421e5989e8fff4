from __future__ import annotations

import logging
from contextlib import suppress
from typing import TYPE_CHECKING, Any

from bfzarr.abc.store import (
    ByteRequest,
    OffsetByteRequest,
    RangeByteRequest,
    Store,
    SuffixByteRequest,
)
from bfzarr.core.buffer import Buffer
from bfzarr.storage._utils import _dereference_path

if TYPE_CHECKING:
    from collections.abc import Iterator

    from fsspec import AbstractFileSystem

logger = logging.getLogger(__name__)

# errors of a filesystem that mean "no such key"
MISSING_KEY_EXCEPTIONS: tuple[type[Exception], ...] = (
    FileNotFoundError,
    IsADirectoryError,
    NotADirectoryError,
)


def _has_scheme(path: str) -> bool:
    # http filesystems keep the full url as their path
    return "://" in path and not path.startswith("http")


class FsspecStore(Store):
    """
    Store on an fsspec filesystem, used for object storage and every other URL scheme fsspec
    knows.

    ``path`` is the root of the store inside ``fs``, without a scheme. ``FsspecStore.from_url``
    builds both from a URL.
    """

    supports_deletes: bool = True

    fs: AbstractFileSystem
    path: str

    def __init__(self, fs: AbstractFileSystem, read_only: bool = False, path: str = "/") -> None:
        super().__init__(read_only=read_only)
        if _has_scheme(path):
            scheme = path.split("://", maxsplit=1)[0]
            raise ValueError(f"path argument to FsspecStore must not include scheme ({scheme}://)")
        self.fs = fs
        self.path = path.rstrip("/")

    @classmethod
    def from_url(
        cls, url: str, storage_options: dict[str, Any] | None = None, read_only: bool = False
    ) -> FsspecStore:
        """The store rooted at ``url``. ``storage_options`` are passed on to the filesystem."""
        from fsspec import url_to_fs

        fs, path = url_to_fs(url, **(storage_options or {}))
        # not every filesystem strips its protocol from the path
        if _has_scheme(path):
            path = fs._strip_protocol(path)
        logger.debug("Opened %s filesystem for %s", type(fs).__name__, url)
        return cls(fs=fs, path=path, read_only=read_only)

    def with_read_only(self, read_only: bool = False) -> FsspecStore:
        return type(self)(fs=self.fs, path=self.path, read_only=read_only)

    def __repr__(self) -> str:
        return f"<FsspecStore({type(self.fs).__name__}, {self.path})>"

    def __str__(self) -> str:
        protocol = self.fs.protocol
        if isinstance(protocol, tuple | list):
            protocol = protocol[0]
        return f"{protocol}://{self.path.lstrip('/')}"

    def __eq__(self, other: object) -> bool:
        return (
            isinstance(other, type(self))
            and (self.fs, self.path, self.read_only) == (other.fs, other.path, other.read_only)
        )

    def _key_path(self, key: str) -> str:
        return _dereference_path(self.path, key)

    def _get(self, key: str, byte_range: ByteRequest | None = None) -> Buffer | None:
        match byte_range:
            case None:
                start, end = None, None
            case RangeByteRequest():
                start, end = byte_range.start, byte_range.end
            case OffsetByteRequest():
                start, end = byte_range.offset, None
            case SuffixByteRequest():
                start, end = -byte_range.suffix, None
            case _:
                raise ValueError(f"Unexpected byte_range, got {byte_range}.")
        try:
            return Buffer.from_bytes(self.fs.cat_file(self._key_path(key), start=start, end=end))
        except MISSING_KEY_EXCEPTIONS:
            return None

    def _set(self, key: str, value: Buffer) -> None:
        self.fs.pipe_file(self._key_path(key), value.to_bytes())

    def _delete(self, key: str) -> None:
        with suppress(*MISSING_KEY_EXCEPTIONS):
            self.fs.rm(self._key_path(key))

    def delete_dir(self, prefix: str) -> None:
        self._check_writable()
        self._ensure_open()
        with suppress(*MISSING_KEY_EXCEPTIONS):
            self.fs.rm(self._key_path(prefix), recursive=True)

    def _exists(self, key: str) -> bool:
        return bool(self.fs.isfile(self._key_path(key)))

    def _list(self) -> Iterator[str]:
        try:
            files = self.fs.find(self.path, detail=False, withdirs=False)
        except FileNotFoundError:
            return
        for file in files:
            yield file.removeprefix(self.path + "/")

    def _list_prefix(self, prefix: str) -> Iterator[str]:
        return (key for key in self._list() if key.startswith(prefix))

    def _list_dir(self, prefix: str) -> Iterator[str]:
        base = self._key_path(prefix)
        try:
            entries = self.fs.ls(base, detail=False)
        except FileNotFoundError:
            return
        names = {entry.rstrip("/").removeprefix(base + "/") for entry in entries}
        yield from sorted(name for name in names if name and "/" not in name)
