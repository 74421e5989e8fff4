import pickle

import numpy as np
import pytest

from bfzarr.abc.store import Store
from bfzarr.array import Array
from bfzarr.codecs import (
    BytesCodec,
    Crc32cCodec,
    GzipCodec,
    ShardingCodec,
    ShardingCodecIndexLocation,
)
from bfzarr.core.array_spec import ArrayConfig, ArraySpec
from bfzarr.core.buffer import NDBuffer
from bfzarr.core.dtype import DataType
from bfzarr.storage import StorePath


def _shard_spec(shape: tuple[int, ...], write_empty_chunks: bool = True) -> ArraySpec:
    return ArraySpec(
        shape=shape,
        dtype=DataType.uint16,
        fill_value=0,
        config=ArrayConfig(order="C", write_empty_chunks=write_empty_chunks),
    )


def test_sharding_pickle() -> None:
    codec = ShardingCodec(chunk_shape=(8, 8))
    assert pickle.loads(pickle.dumps(codec)) == codec


def test_sharding_to_dict() -> None:
    codec = ShardingCodec(chunk_shape=(4, 4), codecs=[BytesCodec(endian="little")])
    assert codec.to_dict() == {
        "name": "sharding_indexed",
        "configuration": {
            "chunk_shape": [4, 4],
            "codecs": [{"name": "bytes", "configuration": {"endian": "little"}}],
            "index_codecs": [
                {"name": "bytes", "configuration": {"endian": "little"}},
                {"name": "crc32c"},
            ],
            "index_location": "end",
        },
    }
    assert ShardingCodec.from_dict(codec.to_dict()) == codec


@pytest.mark.parametrize("index_location", ["start", "end"])
def test_shard_encode_decode(index_location: str) -> None:
    codec = ShardingCodec(
        chunk_shape=(2, 2),
        codecs=[BytesCodec(endian="little")],
        index_location=index_location,
    )
    spec = _shard_spec((4, 4))
    data = np.arange(16, dtype="uint16").reshape(4, 4)

    encoded = codec._encode_sync(NDBuffer.from_numpy_array(data), spec)
    assert encoded is not None
    # four inner chunks of 8 bytes and an index of 4 * 16 bytes plus a checksum
    assert len(encoded) == 4 * 8 + 4 * 16 + 4
    decoded = codec._decode_sync(encoded, spec)
    np.testing.assert_array_equal(decoded.as_numpy_array(), data)


def test_shard_skips_empty_inner_chunks() -> None:
    codec = ShardingCodec(chunk_shape=(2, 2), codecs=[BytesCodec(endian="little")])
    spec = _shard_spec((4, 4), write_empty_chunks=False)
    data = np.zeros((4, 4), dtype="uint16")
    data[0, 0] = 1

    encoded = codec._encode_sync(NDBuffer.from_numpy_array(data), spec)
    assert encoded is not None
    assert len(encoded) == 8 + 4 * 16 + 4
    np.testing.assert_array_equal(codec._decode_sync(encoded, spec).as_numpy_array(), data)


def test_shard_of_fill_values_is_not_stored() -> None:
    codec = ShardingCodec(chunk_shape=(2, 2), codecs=[BytesCodec(endian="little")])
    spec = _shard_spec((4, 4), write_empty_chunks=False)
    data = np.zeros((4, 4), dtype="uint16")
    assert codec._encode_sync(NDBuffer.from_numpy_array(data), spec) is None


def test_shard_too_short_for_index() -> None:
    from bfzarr.core.buffer import Buffer

    codec = ShardingCodec(chunk_shape=(2, 2))
    with pytest.raises(ValueError, match="too short to hold an index"):
        codec._decode_sync(Buffer.from_bytes(b"\x00" * 10), _shard_spec((4, 4)))


def test_shard_index_decoding_to_nothing_is_an_error() -> None:
    codec = ShardingCodec(chunk_shape=(2, 2), codecs=[BytesCodec(endian="little")])
    index_chain = codec._index_codec_chain

    class EmptyChain:
        def compute_encoded_size(self, input_byte_length: int, chunk_spec: ArraySpec) -> int:
            return index_chain.compute_encoded_size(input_byte_length, chunk_spec)

        def decode_chunk(self, chunk_bytes: object, chunk_spec: ArraySpec) -> None:
            return None

    spec = _shard_spec((4, 4))
    encoded = codec._encode_sync(NDBuffer.from_numpy_array(np.ones((4, 4), dtype="uint16")), spec)
    assert encoded is not None
    # replaces the cached index codec chain of this instance only
    codec.__dict__["_index_codec_chain"] = EmptyChain()
    with pytest.raises(ValueError, match="decoded to nothing"):
        codec.deserialize(encoded, spec)


def test_shard_validate_divisibility() -> None:
    from bfzarr.core.chunk_grids import RegularChunkGrid

    codec = ShardingCodec(chunk_shape=(3, 3))
    with pytest.raises(ValueError, match="needs to be divisible"):
        codec.validate(
            shape=(8, 8), dtype=DataType.uint8, chunk_grid=RegularChunkGrid(chunk_shape=(8, 8))
        )


@pytest.mark.parametrize("store", ["local", "memory"], indirect=["store"])
def test_sharded_array(store: Store) -> None:
    data = np.arange(0, 32 * 32, dtype="uint16").reshape((32, 32))
    a = Array.create(
        StorePath(store, path="sharded"),
        shape=data.shape,
        chunk_shape=(8, 8),
        shard_shape=(16, 16),
        strategy="custom",
        dtype=data.dtype,
        fill_value=0,
    )
    assert a.shard_shape == (16, 16)
    assert a.chunk_shape == (8, 8)
    assert a.nchunks == 4

    a[:, :] = data
    assert np.array_equal(a[:, :], data)
    assert np.array_equal(a[3:21, 5:30], data[3:21, 5:30])
    assert sorted(StorePath(store, "sharded/c").list_dir()) == ["0", "1"]


def test_sharded_partial_write(memory_store: Store) -> None:
    a = Array.create(
        memory_store,
        shape=(16, 16),
        chunk_shape=(4, 4),
        shard_shape=(8, 8),
        strategy="custom",
        dtype="uint8",
        fill_value=0,
    )
    a[1:3, 1:3] = 5
    a[6:10, 6:10] = 9

    expected = np.zeros((16, 16), dtype="uint8")
    expected[1:3, 1:3] = 5
    expected[6:10, 6:10] = 9
    np.testing.assert_array_equal(a[:, :], expected)


def test_sharded_with_compression(memory_store: Store) -> None:
    a = Array.create(
        memory_store,
        shape=(16, 16),
        chunk_shape=(4, 4),
        shard_shape=(8, 8),
        strategy="custom",
        dtype="int32",
        codecs=[GzipCodec(level=1)],
    )
    (sharding,) = a.metadata.codecs
    assert isinstance(sharding, ShardingCodec)
    assert sharding.index_location is ShardingCodecIndexLocation.end
    assert sharding.index_codecs == (BytesCodec(endian="little"), Crc32cCodec())
    assert isinstance(sharding.codecs[-1], GzipCodec)

    data = np.arange(256, dtype="int32").reshape(16, 16)
    a[:, :] = data
    np.testing.assert_array_equal(a[:, :], data)
