from typing import Literal

import numpy as np
import pytest

from bfzarr.abc.codec import SupportsSyncCodec
from bfzarr.abc.store import Store
from bfzarr.array import Array
from bfzarr.codecs import BytesCodec
from bfzarr.core.array_spec import ArrayConfig, ArraySpec
from bfzarr.core.buffer import NDBuffer
from bfzarr.core.dtype import DataType
from bfzarr.storage import StorePath


def _spec(shape: tuple[int, ...], data_type: DataType) -> ArraySpec:
    return ArraySpec(
        shape=shape,
        dtype=data_type,
        fill_value=0,
        config=ArrayConfig(order="C", write_empty_chunks=True),
    )


@pytest.mark.parametrize("store", ["local", "memory"], indirect=["store"])
@pytest.mark.parametrize("endian", ["big", "little"])
def test_endian(store: Store, endian: Literal["big", "little"]) -> None:
    data = np.arange(0, 256, dtype="uint16").reshape((16, 16))
    a = Array.create(
        StorePath(store, "endian"),
        shape=data.shape,
        chunk_shape=(16, 16),
        dtype=data.dtype,
        fill_value=0,
        codecs=[BytesCodec(endian=endian)],
    )

    a[:, :] = data
    assert np.array_equal(data, a[:, :])
    assert a.is_little_endian is (endian == "little")


@pytest.mark.parametrize("endian", ["big", "little"])
def test_endian_stored_bytes(endian: Literal["big", "little"]) -> None:
    codec = BytesCodec(endian=endian)
    data = np.array([1, 2], dtype="uint16")
    encoded = codec._encode_sync(NDBuffer.from_numpy_array(data), _spec((2,), DataType.uint16))
    assert encoded is not None
    expected = data.astype("<u2" if endian == "little" else ">u2").tobytes()
    assert encoded.to_bytes() == expected


def test_bytes_codec_supports_sync() -> None:
    assert isinstance(BytesCodec(), SupportsSyncCodec)


def test_bytes_codec_sync_roundtrip() -> None:
    arr = np.arange(100, dtype="float64")
    spec = _spec(arr.shape, DataType.float64)
    codec = BytesCodec().evolve_from_array_spec(spec)

    encoded = codec._encode_sync(NDBuffer.from_numpy_array(arr), spec)
    assert encoded is not None
    decoded = codec._decode_sync(encoded, spec)
    np.testing.assert_array_equal(arr, decoded.as_numpy_array())


def test_bytes_codec_drops_endian_for_single_byte_types() -> None:
    codec = BytesCodec(endian="big").evolve_from_array_spec(_spec((4,), DataType.uint8))
    assert codec.endian is None
    assert codec.to_dict() == {"name": "bytes"}


def test_bytes_codec_requires_endian_for_multi_byte_types() -> None:
    with pytest.raises(ValueError, match="needs to be specified for multi-byte data types"):
        BytesCodec(endian=None).evolve_from_array_spec(_spec((4,), DataType.int32))


def test_bytes_codec_rejects_wrong_length() -> None:
    from bfzarr.core.buffer import Buffer

    with pytest.raises(ValueError, match="Expected 8 bytes"):
        BytesCodec()._decode_sync(Buffer.from_bytes(b"\x00" * 6), _spec((4,), DataType.uint16))


def test_bytes_codec_invalid_endian() -> None:
    with pytest.raises(ValueError, match="Invalid endianness"):
        BytesCodec(endian="middle")


@pytest.mark.parametrize("dtype_input_endian", [">u2", "<u2"])
@pytest.mark.parametrize("dtype_store_endian", ["big", "little"])
def test_endian_write(
    memory_store: Store,
    dtype_input_endian: Literal[">u2", "<u2"],
    dtype_store_endian: Literal["big", "little"],
) -> None:
    data = np.arange(0, 256, dtype=dtype_input_endian).reshape((16, 16))
    a = Array.create(
        StorePath(memory_store, "endian"),
        shape=data.shape,
        chunk_shape=(16, 16),
        dtype="uint16",
        fill_value=0,
        codecs=[BytesCodec(endian=dtype_store_endian)],
    )

    a[:, :] = data
    assert np.array_equal(data, a[:, :])
