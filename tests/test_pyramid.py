from __future__ import annotations

import numpy as np
import pytest

from bfzarr import (
    Array,
    Compression,
    DataType,
    Group,
    PixelType,
    PyramidDescriptor,
    ResolutionDescriptor,
    SeriesDescriptor,
    create_pyramid,
)
from bfzarr.core.config import config
from bfzarr.errors import ContainsArrayError, IncompatibleLayoutWarning
from bfzarr.storage import MemoryStore


def _series(*shapes: tuple[int, ...], element_type: PixelType = PixelType.UINT16) -> SeriesDescriptor:
    return SeriesDescriptor([ResolutionDescriptor(shape, element_type) for shape in shapes])


class TestDescriptors:
    @staticmethod
    @pytest.mark.parametrize(
        ("element_type", "expected"),
        [
            (PixelType.UINT8, DataType.uint8),
            (PixelType.DOUBLE, DataType.float64),
            (DataType.int64, DataType.int64),
            ("float32", DataType.float32),
        ],
    )
    def test_element_type(element_type: PixelType | DataType | str, expected: DataType) -> None:
        assert ResolutionDescriptor([2, 3], element_type).element_type is expected

    @staticmethod
    def test_shape_is_a_tuple() -> None:
        assert ResolutionDescriptor([2, 3], PixelType.INT8).shape == (2, 3)

    @staticmethod
    @pytest.mark.parametrize(
        ("descriptor", "match"),
        [
            (PyramidDescriptor([]), "at least one series"),
            (PyramidDescriptor([_series((4, 4)), SeriesDescriptor([])]), "Series 1 has no"),
        ],
    )
    def test_empty(memory_store: MemoryStore, descriptor: PyramidDescriptor, match: str) -> None:
        with pytest.raises(ValueError, match=match):
            create_pyramid(memory_store, descriptor)
        assert list(memory_store.list()) == []


def test_single_array(memory_store: MemoryStore) -> None:
    root = create_pyramid(
        memory_store, PyramidDescriptor([_series((3, 8, 8))]), chunk_shape=(1, 4, 4)
    )
    assert isinstance(root, Array)
    assert root.path == ""
    assert root.shape == (3, 8, 8)
    assert root.dtype == np.dtype("uint16")
    assert root.chunk_shape == (1, 4, 4)


def test_single_series_with_resolutions(memory_store: MemoryStore) -> None:
    root = create_pyramid(
        memory_store,
        PyramidDescriptor([_series((16, 16), (8, 8), (4, 4))]),
        attributes={"name": "scan"},
    )
    assert isinstance(root, Group)
    assert root.attrs == {"name": "scan"}
    assert root.array_keys() == ["0", "1", "2"]
    assert [node.shape for _, node in root.members()] == [(16, 16), (8, 8), (4, 4)]  # type: ignore[union-attr]


def test_several_series(memory_store: MemoryStore) -> None:
    root = create_pyramid(
        memory_store,
        PyramidDescriptor(
            [
                _series((8, 8)),
                _series((8, 8), (4, 4), element_type=PixelType.FLOAT),
            ]
        ),
        path="image",
    )
    assert isinstance(root, Group)
    assert root.path == "image"
    assert root.array_keys() == ["0"]
    assert root.group_keys() == ["1"]
    second = root["1"]
    assert isinstance(second, Group)
    assert second.array_keys() == ["0", "1"]
    level = second["1"]
    assert isinstance(level, Array)
    assert level.path == "image/1/1"
    assert level.data_type is DataType.float32


def test_default_chunk_shape_per_level(memory_store: MemoryStore) -> None:
    with config.set({"pyramid.default_chunk_size": 4}):
        root = create_pyramid(memory_store, PyramidDescriptor([_series((2, 10, 10), (2, 3, 3))]))
    assert isinstance(root, Group)
    full, small = (node for _, node in root.members())
    assert full.chunk_shape == (1, 4, 4)  # type: ignore[union-attr]
    assert small.chunk_shape == (1, 3, 3)  # type: ignore[union-attr]


def test_sharding_falls_back_per_level(memory_store: MemoryStore) -> None:
    with pytest.warns(IncompatibleLayoutWarning):
        root = create_pyramid(
            memory_store,
            PyramidDescriptor([_series((16, 16), (6, 6))]),
            chunk_shape=(4, 4),
            shard_shape=(8, 8),
        )
    assert isinstance(root, Group)
    full, small = (node for _, node in root.members())
    assert full.shard_shape == (8, 8)  # type: ignore[union-attr]
    assert small.shard_shape is None  # type: ignore[union-attr]
    assert small.chunk_shape == (4, 4)  # type: ignore[union-attr]


def test_compression_and_data(memory_store: MemoryStore) -> None:
    root = create_pyramid(
        memory_store,
        PyramidDescriptor([_series((6, 6), element_type=PixelType.UINT8)]),
        chunk_shape=(4, 4),
        compression=Compression.ZLIB,
        fill_value=255,
    )
    assert isinstance(root, Array)
    assert root.metadata.codecs[-1].to_dict() == {"name": "gzip", "configuration": {"level": 8}}
    assert np.all(root[:] == 255)
    root.write_region(np.zeros((2, 2), dtype="uint8"), (4, 4))
    assert root[5, 5] == 0


def test_overwrite(memory_store: MemoryStore) -> None:
    descriptor = PyramidDescriptor([_series((4, 4))])
    create_pyramid(memory_store, descriptor)
    with pytest.raises(ContainsArrayError):
        create_pyramid(memory_store, descriptor)
    root = create_pyramid(
        memory_store, PyramidDescriptor([_series((4, 4), (2, 2))]), overwrite=True
    )
    assert isinstance(root, Group)
