"""
# Overview

Element types on both sides of the storage boundary.

``DataType`` enumerates the Zarr v3 core data types an array may declare in its ``data_type``
field. ``PixelType`` enumerates the pixel types of the imaging formats that read and write
arrays through this package; its integer values follow the numbering those formats use.

## Mapping

``to_array_type`` translates every pixel type into exactly one data type. ``to_pixel_type``
translates back:

- the eight data types that have a pixel type counterpart map back 1:1;
- ``int64`` and ``uint64`` collapse to ``PixelType.DOUBLE``. The conversion is lossy for
  magnitudes above 2**53; callers that need exact 64-bit values must read through
  ``DataType`` instead;
- ``bool`` has no counterpart and raises ``UnsupportedElementTypeError``.
"""

from __future__ import annotations

from enum import Enum, IntEnum
from typing import Any

import numpy as np
import numpy.typing as npt

from bfzarr.errors import UnsupportedElementTypeError

__all__ = ["DataType", "PixelType", "to_array_type", "to_pixel_type"]

# For type checking
_bool = bool


class DataType(Enum):
    bool = "bool"
    int8 = "int8"
    int16 = "int16"
    int32 = "int32"
    int64 = "int64"
    uint8 = "uint8"
    uint16 = "uint16"
    uint32 = "uint32"
    uint64 = "uint64"
    float32 = "float32"
    float64 = "float64"

    @property
    def byte_count(self) -> int:
        data_type_byte_counts = {
            DataType.bool: 1,
            DataType.int8: 1,
            DataType.int16: 2,
            DataType.int32: 4,
            DataType.int64: 8,
            DataType.uint8: 1,
            DataType.uint16: 2,
            DataType.uint32: 4,
            DataType.uint64: 8,
            DataType.float32: 4,
            DataType.float64: 8,
        }
        return data_type_byte_counts[self]

    @property
    def has_endianness(self) -> _bool:
        return self.byte_count != 1

    def to_numpy_shortname(self) -> str:
        data_type_to_numpy = {
            DataType.bool: "bool",
            DataType.int8: "i1",
            DataType.int16: "i2",
            DataType.int32: "i4",
            DataType.int64: "i8",
            DataType.uint8: "u1",
            DataType.uint16: "u2",
            DataType.uint32: "u4",
            DataType.uint64: "u8",
            DataType.float32: "f4",
            DataType.float64: "f8",
        }
        return data_type_to_numpy[self]

    def to_numpy(self) -> np.dtype[Any]:
        """The native-endian numpy dtype of this data type."""
        return np.dtype(self.to_numpy_shortname())

    @classmethod
    def from_dtype(cls, dtype: npt.DTypeLike) -> DataType:
        try:
            dtype_parsed = np.dtype(dtype)
        except TypeError as e:
            raise UnsupportedElementTypeError(str(dtype), "Zarr v3 core data type") from e
        # byte order is a storage concern, handled by the bytes codec
        name = dtype_parsed.newbyteorder("=").name if dtype_parsed.kind != "b" else "bool"
        try:
            return cls(name)
        except ValueError as e:
            raise UnsupportedElementTypeError(str(dtype_parsed), "Zarr v3 core data type") from e

    @classmethod
    def parse(cls, data: object) -> DataType:
        """
        Parse a data type from a ``DataType``, a Zarr v3 data type name, a ``PixelType`` or
        anything numpy accepts as a dtype.
        """
        if isinstance(data, DataType):
            return data
        if isinstance(data, PixelType):
            return to_array_type(data)
        if isinstance(data, str):
            try:
                return cls(data)
            except ValueError:
                pass
        return cls.from_dtype(data)  # type: ignore[arg-type]


class PixelType(IntEnum):
    """Pixel types of the imaging formats served by this package."""

    INT8 = 0
    UINT8 = 1
    INT16 = 2
    UINT16 = 3
    INT32 = 4
    UINT32 = 5
    FLOAT = 6
    DOUBLE = 7

    @property
    def byte_count(self) -> int:
        return to_array_type(self).byte_count

    @property
    def is_signed(self) -> _bool:
        return self not in (PixelType.UINT8, PixelType.UINT16, PixelType.UINT32)

    @property
    def is_floating_point(self) -> _bool:
        return self in (PixelType.FLOAT, PixelType.DOUBLE)

    def to_numpy(self) -> np.dtype[Any]:
        return to_array_type(self).to_numpy()


_PIXEL_TO_DATA_TYPE: dict[PixelType, DataType] = {
    PixelType.INT8: DataType.int8,
    PixelType.INT16: DataType.int16,
    PixelType.INT32: DataType.int32,
    PixelType.UINT8: DataType.uint8,
    PixelType.UINT16: DataType.uint16,
    PixelType.UINT32: DataType.uint32,
    PixelType.FLOAT: DataType.float32,
    PixelType.DOUBLE: DataType.float64,
}

_DATA_TO_PIXEL_TYPE: dict[DataType, PixelType] = {v: k for k, v in _PIXEL_TO_DATA_TYPE.items()}
# 64-bit integers have no pixel type of their own and are widened to DOUBLE.
_DATA_TO_PIXEL_TYPE[DataType.int64] = PixelType.DOUBLE
_DATA_TO_PIXEL_TYPE[DataType.uint64] = PixelType.DOUBLE


def to_array_type(pixel_type: PixelType | int) -> DataType:
    """
    Map an imaging pixel type to the Zarr data type used to store it.

    Parameters
    ----------
    pixel_type : PixelType or int
        A pixel type, or its integer code.

    Returns
    -------
    DataType
    """
    try:
        return _PIXEL_TO_DATA_TYPE[PixelType(pixel_type)]
    except ValueError as e:
        raise UnsupportedElementTypeError(pixel_type, "Zarr v3 core data type") from e


def to_pixel_type(data_type: DataType | str) -> PixelType:
    """
    Map a Zarr data type to the imaging pixel type used to expose it.

    ``int64`` and ``uint64`` map to ``PixelType.DOUBLE``, which cannot represent every value of
    those types exactly. ``bool`` has no pixel type.

    Raises
    ------
    UnsupportedElementTypeError
        If ``data_type`` has no pixel type counterpart.
    """
    data_type_parsed = DataType.parse(data_type)
    try:
        return _DATA_TO_PIXEL_TYPE[data_type_parsed]
    except KeyError as e:
        raise UnsupportedElementTypeError(data_type_parsed.value, "pixel type") from e
