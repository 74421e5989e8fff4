from __future__ import annotations

import sys
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any, ClassVar, Final, Literal

import numpy as np

from bfzarr.abc.codec import ArrayBytesCodec
from bfzarr.core.buffer import Buffer, NDBuffer
from bfzarr.core.common import JSON, parse_named_configuration
from bfzarr.registry import register_codec

if TYPE_CHECKING:
    from typing import Self

    from bfzarr.core.array_spec import ArraySpec

EndiannessStr = Literal["little", "big"]
ENDIANNESS_STR: Final = ("little", "big")

_BYTEORDER_CHAR: Final = {"little": "<", "big": ">"}


def parse_endianness(data: object) -> EndiannessStr:
    if data not in ENDIANNESS_STR:
        raise ValueError(f"Invalid endianness: {data!r}. Expected one of {ENDIANNESS_STR}")
    return data  # type: ignore[return-value]


@dataclass(frozen=True)
class BytesCodec(ArrayBytesCodec):
    """
    Lays the elements of a chunk out in C order. ``endian`` is the byte order of multi-byte
    elements and is dropped for single-byte data types.
    """

    is_fixed_size: ClassVar[Literal[True]] = True
    name: ClassVar[Literal["bytes"]] = "bytes"

    endian: EndiannessStr | None

    def __init__(self, *, endian: EndiannessStr | str | None = sys.byteorder) -> None:
        object.__setattr__(self, "endian", None if endian is None else parse_endianness(endian))

    @classmethod
    def from_dict(cls, data: dict[str, JSON]) -> Self:
        _, configuration = parse_named_configuration(data, "bytes", require_configuration=False)
        configuration = configuration or {}
        unknown = set(configuration) - {"endian"}
        if unknown:
            raise ValueError(
                f"Invalid configuration for the bytes codec: unexpected keys {sorted(unknown)}"
            )
        return cls(endian=configuration.get("endian"))  # type: ignore[arg-type]

    def to_dict(self) -> dict[str, JSON]:
        if self.endian is None:
            return {"name": self.name}
        return {"name": self.name, "configuration": {"endian": self.endian}}

    def evolve_from_array_spec(self, array_spec: ArraySpec) -> Self:
        if array_spec.dtype.has_endianness:
            if self.endian is None:
                raise ValueError(
                    "The `endian` configuration needs to be specified for multi-byte data types."
                )
            return self
        return self if self.endian is None else replace(self, endian=None)

    def _stored_dtype(self, chunk_spec: ArraySpec) -> np.dtype[Any]:
        dtype = chunk_spec.native_dtype
        if self.endian is None or not chunk_spec.dtype.has_endianness:
            return dtype
        return dtype.newbyteorder(_BYTEORDER_CHAR[self.endian])

    def _decode_sync(self, chunk_bytes: Buffer, chunk_spec: ArraySpec) -> NDBuffer:
        dtype = self._stored_dtype(chunk_spec)
        raw = chunk_bytes.as_numpy_array()
        expected = int(np.prod(chunk_spec.shape)) * dtype.itemsize
        if raw.size != expected:
            raise ValueError(
                f"Expected {expected} bytes for a chunk of shape {chunk_spec.shape} and data "
                f"type {chunk_spec.dtype.value}. Got {raw.size} bytes."
            )
        return NDBuffer.from_numpy_array(raw.view(dtype).reshape(chunk_spec.shape))

    def _encode_sync(self, chunk_array: NDBuffer, chunk_spec: ArraySpec) -> Buffer | None:
        values = chunk_array.as_numpy_array()
        if values.dtype.itemsize > 1 and self.endian is not None:
            values = values.astype(values.dtype.newbyteorder(_BYTEORDER_CHAR[self.endian]))
        # a view where possible, a copy only for non-contiguous input
        return Buffer.from_array_like(np.ascontiguousarray(values).reshape(-1).view(np.uint8))

    def compute_encoded_size(self, input_byte_length: int, _chunk_spec: ArraySpec) -> int:
        return input_byte_length


register_codec("bytes", BytesCodec)
