import gzip

import numpy as np
import pytest

from bfzarr.abc.store import Store
from bfzarr.array import Array
from bfzarr.codecs import Compression, GzipCodec
from bfzarr.core.array_spec import ArrayConfig, ArraySpec
from bfzarr.core.buffer import Buffer
from bfzarr.core.dtype import DataType
from bfzarr.storage import StorePath

SPEC = ArraySpec(
    shape=(64,),
    dtype=DataType.uint8,
    fill_value=0,
    config=ArrayConfig(order="C", write_empty_chunks=True),
)


@pytest.mark.parametrize("store", ["local", "memory"], indirect=["store"])
def test_gzip(store: Store) -> None:
    data = np.arange(0, 256, dtype="uint16").reshape((16, 16))

    a = Array.create(
        StorePath(store, path="gzip"),
        shape=data.shape,
        chunk_shape=(16, 16),
        dtype=data.dtype,
        fill_value=0,
        codecs=[GzipCodec()],
    )

    a[:, :] = data
    assert np.array_equal(data, a[:, :])


def test_gzip_output_is_a_gzip_stream() -> None:
    payload = bytes(range(64))
    encoded = GzipCodec(level=8)._encode_sync(Buffer.from_bytes(payload), SPEC)
    assert encoded is not None
    assert gzip.decompress(encoded.to_bytes()) == payload
    decoded = GzipCodec(level=8)._decode_sync(encoded, SPEC)
    assert decoded.to_bytes() == payload


@pytest.mark.parametrize("level", [0, 5, 9])
def test_gzip_to_dict(level: int) -> None:
    codec = GzipCodec(level=level)
    assert codec.to_dict() == {"name": "gzip", "configuration": {"level": level}}
    assert GzipCodec.from_dict(codec.to_dict()) == codec


@pytest.mark.parametrize(
    ("level", "exc", "match"),
    [(10, ValueError, "inclusive range"), (-1, ValueError, "inclusive range"), (1.5, TypeError, "Expected int")],
)
def test_gzip_invalid_level(level: object, exc: type[Exception], match: str) -> None:
    with pytest.raises(exc, match=match):
        GzipCodec(level=level)  # type: ignore[arg-type]


def test_zlib_compression_writes_gzip_level_8(memory_store: Store) -> None:
    a = Array.create(
        memory_store, shape=(8, 8), chunk_shape=(4, 4), dtype="uint8", compression=Compression.ZLIB
    )
    assert a.metadata.to_dict()["codecs"] == [
        {"name": "bytes"},
        {"name": "gzip", "configuration": {"level": 8}},
    ]
