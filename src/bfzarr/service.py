"""
A service facade over a Zarr v3 hierarchy for image readers and writers.

``ZarrService`` owns the store of one hierarchy. ``ZarrService.open`` returns an ``ArrayHandle``
owned by the caller; several handles can be open at once, on the same or on different arrays.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Self

from bfzarr.array import Array
from bfzarr.codecs import Compression
from bfzarr.core.dtype import to_pixel_type
from bfzarr.core.lock import ThreadSynchronizer
from bfzarr.errors import NotOpenedError
from bfzarr.group import Group
from bfzarr.pyramid import create_pyramid
from bfzarr.storage import make_store_path

if TYPE_CHECKING:
    from collections.abc import Iterable
    from types import TracebackType

    import numpy.typing as npt

    from bfzarr.core.buffer import NDBuffer
    from bfzarr.core.common import JSON, ChunkCoords, ShapeLike
    from bfzarr.core.dtype import DataType, PixelType
    from bfzarr.core.lock import Synchronizer
    from bfzarr.pyramid import PyramidDescriptor
    from bfzarr.storage import StoreLike, StorePath

logger = logging.getLogger(__name__)

__all__ = ["ArrayHandle", "ZarrService"]


class ArrayHandle:
    """
    An open array of a ``ZarrService``.

    Every method raises ``NotOpenedError`` once the handle is closed, except ``close``, ``is_open``
    and ``id``.
    """

    _array: Array | None
    _id: str

    def __init__(self, array: Array) -> None:
        self._array = array
        self._id = array.path

    def _get_array(self, method: str) -> Array:
        if self._array is None:
            raise NotOpenedError(method, f"array handle {self._id!r}")
        return self._array

    def close(self) -> None:
        """Release the array. Closing twice is allowed."""
        if self._array is not None:
            logger.debug("Closed array handle %r", self._id)
        self._array = None

    @property
    def is_open(self) -> bool:
        return self._array is not None

    @property
    def id(self) -> str:
        """The path of the array within the hierarchy."""
        return self._id

    @property
    def array(self) -> Array:
        return self._get_array("array")

    @property
    def shape(self) -> ChunkCoords:
        return self._get_array("shape").shape

    @property
    def chunk_shape(self) -> ChunkCoords:
        return self._get_array("chunk_shape").chunk_shape

    @property
    def shard_shape(self) -> ChunkCoords | None:
        return self._get_array("shard_shape").shard_shape

    @property
    def element_type(self) -> DataType:
        return self._get_array("element_type").data_type

    @property
    def pixel_type(self) -> PixelType:
        """
        The imaging pixel type of the elements. int64 and uint64 arrays report ``DOUBLE``.

        Raises
        ------
        UnsupportedElementTypeError
            For bool arrays.
        """
        return to_pixel_type(self._get_array("pixel_type").data_type)

    @property
    def is_little_endian(self) -> bool:
        return self._get_array("is_little_endian").is_little_endian

    @property
    def attributes(self) -> dict[str, JSON]:
        return self._get_array("attributes").attrs

    def read_region(self, shape: Iterable[int], offset: Iterable[int]) -> NDBuffer:
        return self._get_array("read_region").read_region(shape, offset)

    def write_region(self, data: NDBuffer | npt.NDArray[Any], offset: Iterable[int]) -> None:
        self._get_array("write_region").write_region(data, offset)

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "open" if self.is_open else "closed"
        return f"<ArrayHandle {self._id!r} ({state})>"


class ZarrService:
    """
    Access to the groups and arrays of one Zarr v3 hierarchy.

    Parameters
    ----------
    root : StoreLike
        The root of the hierarchy: a local path, a URL or a store.
    read_only : bool
        Whether to open the store read-only.
    storage_options : dict, optional
        Options for fsspec filesystems, e.g. credentials and ``endpoint_url`` for object storage.
    synchronizer : Synchronizer, optional
        Source of the per-unit write locks, shared by every handle of the service. Defaults to a
        ``ThreadSynchronizer``.
    """

    root: StoreLike
    _store_path: StorePath | None
    _handles: list[ArrayHandle]
    _synchronizer: Synchronizer

    def __init__(
        self,
        root: StoreLike,
        *,
        read_only: bool = False,
        storage_options: dict[str, Any] | None = None,
        synchronizer: Synchronizer | None = None,
    ) -> None:
        self.root = root
        self._store_path = make_store_path(
            root, mode="r" if read_only else None, storage_options=storage_options
        )
        self._handles = []
        self._synchronizer = ThreadSynchronizer() if synchronizer is None else synchronizer
        logger.debug("Opened service on %s", self._store_path)

    def _get_store_path(self, method: str) -> StorePath:
        if self._store_path is None:
            raise NotOpenedError(method, f"service for {str(self.root)!r}")
        return self._store_path

    @property
    def is_open(self) -> bool:
        return self._store_path is not None

    @property
    def uses_object_store(self) -> bool:
        """Whether the root names object storage, i.e. it contains ``s3:`` or ``s3.``."""
        root = str(self.root).lower()
        return "s3:" in root or "s3." in root

    def open(self, path: str = "") -> ArrayHandle:
        """
        Open the array at ``path``.

        Raises
        ------
        ArrayNotFoundError
            If there is no array at ``path``.
        """
        array = Array.open(
            self._get_store_path("open"), path=path, synchronizer=self._synchronizer
        )
        handle = ArrayHandle(array)
        self._handles.append(handle)
        return handle

    def create(
        self,
        path: str,
        descriptor: PyramidDescriptor,
        *,
        chunk_shape: ShapeLike | None = None,
        compression: Compression = Compression.NONE,
        **kwargs: Any,
    ) -> Array | Group:
        """Create the pyramid described by ``descriptor`` at ``path``. See ``create_pyramid``."""
        return create_pyramid(
            self._get_store_path("create"),
            descriptor,
            path=path,
            chunk_shape=chunk_shape,
            compression=compression,
            synchronizer=self._synchronizer,
            **kwargs,
        )

    def get_group_attributes(self, path: str = "") -> dict[str, JSON]:
        return Group.open(self._get_store_path("get_group_attributes"), path=path).attrs

    def get_array_attributes(self, path: str = "") -> dict[str, JSON]:
        return Array.open(self._get_store_path("get_array_attributes"), path=path).attrs

    def list_group_children(self, path: str = "") -> list[str]:
        """The names of the groups and arrays directly below the group at ``path``, sorted."""
        group = Group.open(self._get_store_path("list_group_children"), path=path)
        return sorted(group.group_keys() + group.array_keys())

    def list_array_children(self, path: str = "") -> list[str]:
        """The keys and prefixes stored directly below the array at ``path``."""
        return Array.open(self._get_store_path("list_array_children"), path=path).list_keys()

    def close(self) -> None:
        """Close every handle opened by the service, then the store."""
        if self._store_path is None:
            return
        for handle in self._handles:
            handle.close()
        self._handles.clear()
        self._store_path.store.close()
        logger.debug("Closed service on %s", self._store_path)
        self._store_path = None

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.close()
