from __future__ import annotations

from dataclasses import dataclass
from functools import cached_property
from typing import TYPE_CHECKING, ClassVar, Literal

from numcodecs.gzip import GZip

from bfzarr.abc.codec import BytesBytesCodec
from bfzarr.core.buffer import as_numpy_array_wrapper
from bfzarr.core.common import JSON, parse_named_configuration
from bfzarr.registry import register_codec

if TYPE_CHECKING:
    from typing import Self

    from bfzarr.core.array_spec import ArraySpec
    from bfzarr.core.buffer import Buffer

GZIP_LEVELS = range(10)


def parse_gzip_level(data: JSON) -> int:
    if isinstance(data, bool) or not isinstance(data, int):
        raise TypeError(f"Expected int, got {type(data)}")
    if data not in GZIP_LEVELS:
        raise ValueError(f"Expected an integer from the inclusive range (0, 9). Got {data} instead.")
    return data


@dataclass(frozen=True)
class GzipCodec(BytesBytesCodec):
    """Deflate compression in a gzip container. ``zlib`` is accepted as an alias."""

    is_fixed_size: ClassVar[Literal[False]] = False
    name: ClassVar[Literal["gzip"]] = "gzip"

    level: int = 5

    def __init__(self, *, level: int = 5) -> None:
        object.__setattr__(self, "level", parse_gzip_level(level))

    @classmethod
    def from_dict(cls, data: dict[str, JSON]) -> Self:
        return cls(**parse_named_configuration(data, "gzip")[1])  # type: ignore[arg-type]

    def to_dict(self) -> dict[str, JSON]:
        return {"name": self.name, "configuration": {"level": self.level}}

    @cached_property
    def _gzip(self) -> GZip:
        return GZip(self.level)

    def _decode_sync(self, chunk_bytes: Buffer, chunk_spec: ArraySpec) -> Buffer:
        return as_numpy_array_wrapper(self._gzip.decode, chunk_bytes)

    def _encode_sync(self, chunk_bytes: Buffer, chunk_spec: ArraySpec) -> Buffer | None:
        return as_numpy_array_wrapper(self._gzip.encode, chunk_bytes)

    def compute_encoded_size(self, _input_byte_length: int, _chunk_spec: ArraySpec) -> int:
        raise NotImplementedError


register_codec("gzip", GzipCodec)
