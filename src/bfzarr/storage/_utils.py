from __future__ import annotations

import re
from pathlib import Path
from typing import TYPE_CHECKING

from bfzarr.abc.store import OffsetByteRequest, RangeByteRequest, SuffixByteRequest

if TYPE_CHECKING:
    from bfzarr.abc.store import ByteRequest
    from bfzarr.core.buffer import Buffer


def normalize_path(path: str | bytes | Path | None) -> str:
    """
    A store key prefix for ``path``: forward slashes only, no leading, trailing or repeated
    slashes.

    Raises
    ------
    ValueError
        If the path has ``.`` or ``..`` segments.
    """
    if path is None:
        text = ""
    elif isinstance(path, bytes):
        text = path.decode("ascii")
    elif isinstance(path, str | Path):
        text = str(path)
    else:
        raise TypeError(f'Object {path} has an invalid type for "path": {type(path).__name__}')

    text = re.sub(r"/{2,}", "/", text.replace("\\", "/").strip("/"))
    if any(segment in (".", "..") for segment in text.split("/")):
        raise ValueError(
            f"The path {path!r} is invalid because its string representation contains '.' or "
            "'..' segments."
        )
    return text


def _dereference_path(root: str, path: str) -> str:
    root = root.rstrip("/")
    return (f"{root}/{path}" if root else path).rstrip("/")


def _normalize_byte_range_index(data: Buffer, byte_range: ByteRequest | None) -> tuple[int, int]:
    """The ``(start, stop)`` slice of ``data`` that ``byte_range`` asks for."""
    size = len(data)
    match byte_range:
        case None:
            return 0, size
        case RangeByteRequest(start=start, end=end):
            return start, min(end, size)
        case OffsetByteRequest(offset=offset):
            return offset, size
        case SuffixByteRequest(suffix=suffix):
            return max(0, size - suffix), size
    raise ValueError(f"Unexpected byte_range, got {byte_range}.")
