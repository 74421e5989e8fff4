from __future__ import annotations

from dataclasses import dataclass
from functools import cached_property
from typing import TYPE_CHECKING, ClassVar, Literal

import numcodecs
from numcodecs.zstd import Zstd
from packaging.version import Version

from bfzarr.abc.codec import BytesBytesCodec
from bfzarr.core.buffer import as_numpy_array_wrapper
from bfzarr.core.common import JSON, parse_named_configuration
from bfzarr.registry import register_codec

if TYPE_CHECKING:
    from typing import Self

    from bfzarr.core.array_spec import ArraySpec
    from bfzarr.core.buffer import Buffer

# first numcodecs release whose Zstd takes a checksum flag
_MIN_NUMCODECS = Version("0.13.0")


def parse_zstd_level(data: JSON) -> int:
    if isinstance(data, bool) or not isinstance(data, int):
        raise TypeError(f"Got value with type {type(data)}, but expected an int.")
    if data > 22:
        raise ValueError(f"Value must be less than or equal to 22. Got {data} instead.")
    return data


@dataclass(frozen=True)
class ZstdCodec(BytesBytesCodec):
    """Zstandard compression. Negative levels trade ratio for speed, 0 is the library default."""

    is_fixed_size: ClassVar[Literal[False]] = False
    name: ClassVar[Literal["zstd"]] = "zstd"

    level: int = 0
    checksum: bool = False

    def __init__(self, *, level: int = 0, checksum: bool = False) -> None:
        installed = Version(numcodecs.__version__)
        if installed < _MIN_NUMCODECS:
            raise RuntimeError(
                f"numcodecs >= {_MIN_NUMCODECS} is required for the zstd codec, "
                f"{installed} is installed."
            )
        if not isinstance(checksum, bool):
            raise TypeError(f"Expected bool for checksum. Got {type(checksum)}.")
        object.__setattr__(self, "level", parse_zstd_level(level))
        object.__setattr__(self, "checksum", checksum)

    @classmethod
    def from_dict(cls, data: dict[str, JSON]) -> Self:
        _, configuration = parse_named_configuration(data, "zstd")
        return cls(**configuration)  # type: ignore[arg-type]

    def to_dict(self) -> dict[str, JSON]:
        return {"name": self.name, "configuration": {"level": self.level, "checksum": self.checksum}}

    @cached_property
    def _zstd(self) -> Zstd:
        return Zstd(level=self.level, checksum=self.checksum)

    def _decode_sync(self, chunk_bytes: Buffer, chunk_spec: ArraySpec) -> Buffer:
        return as_numpy_array_wrapper(self._zstd.decode, chunk_bytes)

    def _encode_sync(self, chunk_bytes: Buffer, chunk_spec: ArraySpec) -> Buffer | None:
        return as_numpy_array_wrapper(self._zstd.encode, chunk_bytes)

    def compute_encoded_size(self, _input_byte_length: int, _chunk_spec: ArraySpec) -> int:
        raise NotImplementedError


register_codec("zstd", ZstdCodec)
