from __future__ import annotations

import logging
import threading
import time
import zipfile
from pathlib import Path
from typing import TYPE_CHECKING, Any, Literal

from bfzarr.abc.store import ByteRequest, Store
from bfzarr.core.buffer import Buffer
from bfzarr.storage._utils import _normalize_byte_range_index

if TYPE_CHECKING:
    from collections.abc import Iterator

logger = logging.getLogger(__name__)

ZipStoreAccessModeLiteral = Literal["r", "w", "a"]

# rw-r--r-- for every entry, in the upper half of external_attr
_ENTRY_PERMISSIONS = 0o644 << 16


class ZipStore(Store):
    """
    Store inside a single ZIP archive.

    ``mode`` is the mode of the archive: 'r' reads an existing archive, 'w' starts a new one
    and 'a' adds entries to an existing one. The store is read-only exactly when the archive
    is opened with 'r', unless ``read_only`` says otherwise.

    ZIP entries cannot be removed. The store has no deletes, and arrays written to it keep
    every chunk, including those holding only the fill value.
    """

    supports_deletes: bool = False

    zip_path: Path
    compression: int
    allowZip64: bool

    _zf: zipfile.ZipFile
    _lock: threading.RLock

    def __init__(
        self,
        zip_path: Path | str,
        *,
        mode: ZipStoreAccessModeLiteral = "r",
        read_only: bool | None = None,
        compression: int = zipfile.ZIP_STORED,
        allowZip64: bool = True,
    ) -> None:
        super().__init__(read_only=mode == "r" if read_only is None else read_only)
        if not isinstance(zip_path, str | Path):
            raise TypeError(
                f"'zip_path' must be a string or Path instance. Got {type(zip_path)} instead."
            )
        self.zip_path = Path(zip_path)
        self.compression = compression
        self.allowZip64 = allowZip64
        self._zmode = mode
        self._lock = threading.RLock()

    def _open(self) -> None:
        with self._lock:
            super()._open()
            self._zf = zipfile.ZipFile(
                self.zip_path, mode=self._zmode, compression=self.compression, allowZip64=self.allowZip64
            )
        logger.debug("Opened %s with mode %r", self.zip_path, self._zmode)

    def close(self) -> None:
        with self._lock:
            if self._is_open:
                self._zf.close()
            super().close()

    # the archive handle and the lock cannot be pickled; the copy reopens the archive
    def __getstate__(self) -> dict[str, Any]:
        return {k: v for k, v in self.__dict__.items() if k not in ("_zf", "_lock")}

    def __setstate__(self, state: dict[str, Any]) -> None:
        self.__dict__.update(state)
        self._lock = threading.RLock()
        self._is_open = False
        self._open()

    def __str__(self) -> str:
        return f"zip://{self.zip_path}"

    def __repr__(self) -> str:
        return f"ZipStore('{self}')"

    def __eq__(self, other: object) -> bool:
        return isinstance(other, type(self)) and self.zip_path == other.zip_path

    def _get(self, key: str, byte_range: ByteRequest | None = None) -> Buffer | None:
        with self._lock:
            try:
                info = self._zf.getinfo(key)
            except KeyError:
                return None
            value = Buffer.from_bytes(self._zf.read(info))
        start, stop = _normalize_byte_range_index(value, byte_range)
        return value[start:stop]

    def _set(self, key: str, value: Buffer) -> None:
        info = zipfile.ZipInfo(filename=key, date_time=time.localtime()[:6])
        info.compress_type = self.compression
        info.external_attr = _ENTRY_PERMISSIONS
        with self._lock:
            self._zf.writestr(info, value.to_bytes())

    def _delete(self, key: str) -> None:
        raise NotImplementedError(f"{type(self).__name__} does not support deletes.")

    def _exists(self, key: str) -> bool:
        with self._lock:
            try:
                self._zf.getinfo(key)
            except KeyError:
                return False
        return True

    def _list(self) -> Iterator[str]:
        # an entry written twice shows up twice in the archive listing
        with self._lock:
            names = list(dict.fromkeys(self._zf.namelist()))
        return iter(names)

    def _list_prefix(self, prefix: str) -> Iterator[str]:
        return (name for name in self._list() if name.startswith(prefix))

    def _list_dir(self, prefix: str) -> Iterator[str]:
        start = prefix.rstrip("/") + "/" if prefix.strip("/") else ""
        children = {
            name[len(start) :].split("/")[0]
            for name in self._list()
            if name.startswith(start) and name != start
        }
        return iter(sorted(children))
