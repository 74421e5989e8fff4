from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, ClassVar, Literal, cast

import numpy as np
import typing_extensions
from crc32c import crc32c

from bfzarr.abc.codec import BytesBytesCodec
from bfzarr.core.buffer import Buffer
from bfzarr.core.common import JSON, parse_named_configuration
from bfzarr.registry import register_codec

if TYPE_CHECKING:
    from typing import Self

    import numpy.typing as npt

    from bfzarr.core.array_spec import ArraySpec

CHECKSUM_NBYTES = 4


def _checksum(data: npt.NDArray[np.uint8]) -> bytes:
    # numpy arrays are buffers, the cast only satisfies the type checker
    value = crc32c(cast("typing_extensions.Buffer", data))
    return np.array([value], dtype="<u4").tobytes()


@dataclass(frozen=True)
class Crc32cCodec(BytesBytesCodec):
    """Appends a little-endian CRC-32C checksum of the bytes and verifies it on decode."""

    name: ClassVar[Literal["crc32c"]] = "crc32c"
    is_fixed_size: ClassVar[Literal[True]] = True

    @classmethod
    def from_dict(cls, data: dict[str, JSON]) -> Self:
        _, configuration = parse_named_configuration(data, "crc32c", require_configuration=False)
        return cls(**(configuration or {}))  # type: ignore[arg-type]

    def to_dict(self) -> dict[str, JSON]:
        return {"name": self.name}

    def _decode_sync(self, chunk_bytes: Buffer, chunk_spec: ArraySpec) -> Buffer:
        data = chunk_bytes.as_numpy_array()
        payload, stored = data[:-CHECKSUM_NBYTES], bytes(data[-CHECKSUM_NBYTES:])
        computed = _checksum(payload)
        if computed != stored:
            raise ValueError(
                "Stored and computed checksum do not match. "
                f"Stored: {stored!r}. Computed: {computed!r}."
            )
        return Buffer.from_array_like(payload)

    def _encode_sync(self, chunk_bytes: Buffer, chunk_spec: ArraySpec) -> Buffer | None:
        data = chunk_bytes.as_numpy_array()
        trailer = np.frombuffer(_checksum(data), dtype=np.uint8)
        return Buffer.from_array_like(np.concatenate([data, trailer]))

    def compute_encoded_size(self, input_byte_length: int, _chunk_spec: ArraySpec) -> int:
        return input_byte_length + CHECKSUM_NBYTES


register_codec("crc32c", Crc32cCodec)
