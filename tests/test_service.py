from __future__ import annotations

import re
from typing import TYPE_CHECKING

import numpy as np
import pytest

from bfzarr import (
    Compression,
    DataType,
    PixelType,
    PyramidDescriptor,
    ResolutionDescriptor,
    SeriesDescriptor,
    ZarrService,
)
from bfzarr.errors import (
    ArrayNotFoundError,
    GroupNotFoundError,
    NotOpenedError,
    UnsupportedElementTypeError,
)
from bfzarr.storage import MemoryStore

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path

    from bfzarr.service import ArrayHandle

DESCRIPTOR = PyramidDescriptor(
    [
        SeriesDescriptor([ResolutionDescriptor((1, 10, 10), PixelType.UINT16)]),
        SeriesDescriptor(
            [
                ResolutionDescriptor((2, 8, 8), PixelType.UINT8),
                ResolutionDescriptor((2, 4, 4), PixelType.UINT8),
            ]
        ),
    ]
)


@pytest.fixture
def service(tmp_path: Path) -> Iterator[ZarrService]:
    with ZarrService(tmp_path / "data.zarr") as service:
        service.create(
            "img",
            DESCRIPTOR,
            chunk_shape=(1, 5, 5),
            compression=Compression.ZLIB,
            attributes={"name": "scan"},
        )
        yield service


def test_write_and_read_region(service: ZarrService) -> None:
    with service.open("img/0") as handle:
        handle.write_region(np.full((1, 8, 8), 7, dtype="uint16"), (0, 2, 2))
        result = handle.read_region((1, 10, 10), (0, 0, 0)).as_numpy_array()
    expected = np.zeros((1, 10, 10), dtype="uint16")
    expected[0, 2:, 2:] = 7
    np.testing.assert_array_equal(result, expected)


def test_handle_properties(service: ZarrService) -> None:
    handle = service.open("img/1/0")
    assert handle.is_open
    assert handle.id == "img/1/0"
    assert handle.shape == (2, 8, 8)
    assert handle.chunk_shape == (1, 5, 5)
    assert handle.shard_shape is None
    assert handle.element_type is DataType.uint8
    assert handle.pixel_type is PixelType.UINT8
    assert handle.is_little_endian
    assert handle.attributes == {}
    assert repr(handle) == "<ArrayHandle 'img/1/0' (open)>"


def test_handles_coexist(service: ZarrService) -> None:
    first = service.open("img/1/0")
    second = service.open("img/1/0")
    other = service.open("img/1/1")
    first.write_region(np.ones((2, 8, 8), dtype="uint8"), (0, 0, 0))
    first.close()
    assert np.all(second.read_region((2, 8, 8), (0, 0, 0)).as_numpy_array() == 1)
    assert other.shape == (2, 4, 4)


@pytest.fixture
def handle(service: ZarrService) -> ArrayHandle:
    handle = service.open("img/0")
    handle.close()
    return handle


class TestClosedHandle:
    @staticmethod
    def test_identity_survives(handle: ArrayHandle) -> None:
        assert not handle.is_open
        assert handle.id == "img/0"
        handle.close()
        assert repr(handle) == "<ArrayHandle 'img/0' (closed)>"

    @staticmethod
    @pytest.mark.parametrize(
        "attribute",
        [
            "shape",
            "chunk_shape",
            "shard_shape",
            "element_type",
            "pixel_type",
            "is_little_endian",
            "attributes",
            "array",
        ],
    )
    def test_properties(handle: ArrayHandle, attribute: str) -> None:
        with pytest.raises(NotOpenedError, match=f"Cannot call '{attribute}'"):
            getattr(handle, attribute)

    @staticmethod
    def test_region_io(handle: ArrayHandle) -> None:
        msg = "Cannot call 'read_region': array handle 'img/0' is not open."
        with pytest.raises(NotOpenedError, match=re.escape(msg)):
            handle.read_region((1, 1, 1), (0, 0, 0))
        with pytest.raises(NotOpenedError, match="Cannot call 'write_region'"):
            handle.write_region(np.zeros((1, 1, 1), dtype="uint16"), (0, 0, 0))


class TestQueries:
    @staticmethod
    def test_list_group_children(service: ZarrService) -> None:
        assert service.list_group_children("img") == ["0", "1"]
        assert service.list_group_children("img/1") == ["0", "1"]

    @staticmethod
    def test_list_array_children(service: ZarrService) -> None:
        assert service.list_array_children("img/0") == ["zarr.json"]
        with service.open("img/0") as handle:
            handle.write_region(np.ones((1, 1, 1), dtype="uint16"), (0, 0, 0))
        assert service.list_array_children("img/0") == ["c", "zarr.json"]

    @staticmethod
    def test_attributes(service: ZarrService) -> None:
        assert service.get_group_attributes("img") == {"name": "scan"}
        assert service.get_array_attributes("img/1/1") == {}

    @staticmethod
    def test_wrong_node_kind(service: ZarrService) -> None:
        with pytest.raises(GroupNotFoundError):
            service.list_group_children("img/0")
        with pytest.raises(ArrayNotFoundError):
            service.open("img/1")
        with pytest.raises(ArrayNotFoundError):
            service.get_array_attributes("missing")


class TestClose:
    @staticmethod
    def test_close_closes_handles(service: ZarrService) -> None:
        handles = [service.open("img/0"), service.open("img/1/1")]
        service.close()
        assert not service.is_open
        assert not any(h.is_open for h in handles)
        # closing twice is allowed
        service.close()

    @staticmethod
    @pytest.mark.parametrize(
        ("method", "args"),
        [
            ("open", ("img/0",)),
            ("create", ("other", DESCRIPTOR)),
            ("get_group_attributes", ("img",)),
            ("get_array_attributes", ("img/0",)),
            ("list_group_children", ("img",)),
            ("list_array_children", ("img/0",)),
        ],
    )
    def test_calls_after_close(service: ZarrService, method: str, args: tuple[object, ...]) -> None:
        service.close()
        with pytest.raises(NotOpenedError, match=f"Cannot call '{method}': service for"):
            getattr(service, method)(*args)


def test_read_only(tmp_path: Path) -> None:
    root = tmp_path / "data.zarr"
    with ZarrService(root) as service:
        service.create("", PyramidDescriptor([DESCRIPTOR.series[0]]), chunk_shape=(1, 5, 5))
    with ZarrService(root, read_only=True) as service:
        handle = service.open()
        assert np.all(handle.read_region((1, 2, 2), (0, 0, 0)).as_numpy_array() == 0)
        with pytest.raises(ValueError, match="read-only"):
            handle.write_region(np.ones((1, 5, 5), dtype="uint16"), (0, 0, 0))


@pytest.mark.parametrize(
    ("dtype", "pixel_type"),
    [("int64", PixelType.DOUBLE), ("uint64", PixelType.DOUBLE), ("float32", PixelType.FLOAT)],
)
def test_pixel_type_of_wide_integers(dtype: str, pixel_type: PixelType) -> None:
    service = ZarrService(MemoryStore())
    service.create("", PyramidDescriptor([SeriesDescriptor([ResolutionDescriptor((2,), dtype)])]))
    assert service.open().pixel_type is pixel_type


def test_bool_has_no_pixel_type() -> None:
    service = ZarrService(MemoryStore())
    service.create("", PyramidDescriptor([SeriesDescriptor([ResolutionDescriptor((2,), "bool")])]))
    with pytest.raises(UnsupportedElementTypeError):
        service.open().pixel_type  # noqa: B018


class TestUsesObjectStore:
    @staticmethod
    def test_local(tmp_path: Path) -> None:
        assert not ZarrService(tmp_path).uses_object_store
        assert not ZarrService(MemoryStore()).uses_object_store

    @staticmethod
    def test_s3_url() -> None:
        pytest.importorskip("s3fs")
        service = ZarrService("s3://bucket/data.zarr", storage_options={"anon": True})
        assert service.uses_object_store

    @staticmethod
    def test_s3_endpoint_name(tmp_path: Path) -> None:
        # roots naming an s3 endpoint host count as object storage
        assert ZarrService(tmp_path / "s3.example.com").uses_object_store
