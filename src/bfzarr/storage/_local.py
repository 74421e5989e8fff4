from __future__ import annotations

import contextlib
import io
import logging
import shutil
import uuid
from pathlib import Path
from typing import TYPE_CHECKING, BinaryIO, Self

from bfzarr.abc.store import (
    ByteRequest,
    OffsetByteRequest,
    RangeByteRequest,
    Store,
    SuffixByteRequest,
)
from bfzarr.core.buffer import Buffer

if TYPE_CHECKING:
    from collections.abc import Iterator

logger = logging.getLogger(__name__)


def _read_range(path: Path, byte_range: ByteRequest | None) -> Buffer:
    if byte_range is None:
        return Buffer.from_bytes(path.read_bytes())
    with path.open("rb") as f:
        match byte_range:
            case RangeByteRequest(start=start, end=end):
                f.seek(start)
                return Buffer.from_bytes(f.read(end - start))
            case OffsetByteRequest(offset=offset):
                f.seek(offset)
            case SuffixByteRequest(suffix=suffix):
                size = f.seek(0, io.SEEK_END)
                f.seek(max(0, size - suffix))
            case _:
                raise TypeError(f"Unexpected byte_range, got {byte_range}.")
        return Buffer.from_bytes(f.read())


@contextlib.contextmanager
def _atomic_write(path: Path) -> Iterator[BinaryIO]:
    # readers see either the old or the new file, never a partial one
    tmp_path = path.with_suffix(f".{uuid.uuid4().hex}.partial")
    try:
        with tmp_path.open("wb") as f:
            yield f
        tmp_path.replace(path)
    except Exception:
        tmp_path.unlink(missing_ok=True)
        raise


def _put(path: Path, value: Buffer) -> int:
    path.parent.mkdir(parents=True, exist_ok=True)
    # write takes any object supporting the buffer protocol
    view = value.as_buffer_like()
    with _atomic_write(path) as f:
        return f.write(view)


class LocalStore(Store):
    """
    Store keeping every key as a file below the directory ``root``.

    Writes go to a temporary file that is renamed into place. Opening a writable store creates
    ``root``; opening a read-only one requires it to exist.
    """

    supports_deletes: bool = True

    root: Path

    def __init__(self, root: Path | str, *, read_only: bool = False) -> None:
        super().__init__(read_only=read_only)
        if isinstance(root, str):
            root = Path(root)
        if not isinstance(root, Path):
            raise TypeError(
                f"'root' must be a string or Path instance. Got an instance of {type(root)} instead."
            )
        self.root = root

    def with_read_only(self, read_only: bool = False) -> Self:
        return type(self)(root=self.root, read_only=read_only)

    def _open(self) -> None:
        if not self.read_only:
            self.root.mkdir(parents=True, exist_ok=True)

        if not self.root.exists():
            raise FileNotFoundError(f"{self.root} does not exist")
        logger.debug("Opened local store at %s", self.root)
        super()._open()

    def clear(self) -> None:
        self._check_writable()
        shutil.rmtree(self.root)
        self.root.mkdir()

    def __str__(self) -> str:
        return f"file://{self.root.as_posix()}"

    def __repr__(self) -> str:
        return f"LocalStore('{self}')"

    def __eq__(self, other: object) -> bool:
        return isinstance(other, type(self)) and self.root == other.root

    def _get(self, key: str, byte_range: ByteRequest | None = None) -> Buffer | None:
        path = self.root / key
        try:
            return _read_range(path, byte_range)
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError):
            return None

    def _set(self, key: str, value: Buffer) -> None:
        _put(self.root / key, value)

    def _delete(self, key: str) -> None:
        path = self.root / key
        if path.is_dir():
            shutil.rmtree(path)
        else:
            path.unlink(missing_ok=True)

    def delete_dir(self, prefix: str) -> None:
        self._check_writable()
        self._ensure_open()
        path = self.root / prefix
        if path.is_dir():
            shutil.rmtree(path)
        elif path.is_file():
            raise ValueError(f"delete_dir was passed a {prefix=!r} that is a file")

    def _exists(self, key: str) -> bool:
        return (self.root / key).is_file()

    def _list(self) -> Iterator[str]:
        for p in list(self.root.rglob("*")):
            if p.is_file() and not p.name.endswith(".partial"):
                yield p.relative_to(self.root).as_posix()

    def _list_prefix(self, prefix: str) -> Iterator[str]:
        for key in self._list():
            if key.startswith(prefix):
                yield key

    def _list_dir(self, prefix: str) -> Iterator[str]:
        base = self.root / prefix
        try:
            names = sorted(p.name for p in base.iterdir() if not p.name.endswith(".partial"))
        except (FileNotFoundError, NotADirectoryError):
            return
        yield from names
