from __future__ import annotations

import logging
from dataclasses import replace
from typing import TYPE_CHECKING, Any

import numpy as np
import numpy.typing as npt

from bfzarr.abc.codec import ArrayBytesCodec
from bfzarr.codecs import BytesCodec, Compression, ShardingCodec
from bfzarr.core.array_spec import ArrayConfig, ArrayConfigLike, parse_array_config
from bfzarr.core.buffer import NDBuffer
from bfzarr.core.chunk_grids import RegularChunkGrid
from bfzarr.core.codec_pipeline import BatchedCodecPipeline
from bfzarr.core.common import JSON, ZARR_JSON, parse_shapelike, product
from bfzarr.core.dtype import DataType
from bfzarr.core.indexing import BasicIndexer, check_region, region_to_selection
from bfzarr.core.layout import ArrayLayout, ShardingStrategy, default_chunk_shape, resolve_layout
from bfzarr.core.lock import Synchronizer, ThreadSynchronizer
from bfzarr.errors import (
    ArrayNotFoundError,
    TypeMismatchError,
    UnsupportedElementTypeError,
)
from bfzarr.metadata import ArrayV3Metadata, GroupMetadata, parse_codecs, parse_node_metadata
from bfzarr.storage._common import StoreLike, StorePath, ensure_no_existing_node, make_store_path

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from bfzarr.abc.codec import Codec
    from bfzarr.abc.store import Store
    from bfzarr.core.common import ChunkCoords, ShapeLike
    from bfzarr.core.indexing import BasicSelection

logger = logging.getLogger(__name__)

__all__ = ["Array"]


def _build_codecs(
    layout: ArrayLayout,
    codecs: Iterable[Codec | dict[str, JSON] | str] | None,
    compression: Compression,
) -> tuple[Codec, ...]:
    """
    The codec list of a new array.

    ``codecs`` are the codecs applied to each chunk. A ``bytes`` codec is prepended when no
    array-to-bytes codec is given, and the codecs of ``compression`` are appended. When the layout
    is sharded the chunk codecs are wrapped in a single ``sharding_indexed`` codec.
    """
    inner = parse_codecs(codecs) if codecs is not None else ()
    if not any(isinstance(codec, ArrayBytesCodec) for codec in inner):
        inner = (BytesCodec(), *inner)
    inner = (*inner, *Compression(compression).to_codecs())
    if layout.sharded:
        return (ShardingCodec(chunk_shape=layout.chunk_shape, codecs=inner),)
    return inner


def _effective_config(store_path: StorePath, config: ArrayConfigLike | None) -> ArrayConfig:
    config_parsed = parse_array_config(config)
    # units holding only the fill value are deleted, which needs a store that can delete
    if not store_path.store.supports_deletes and not config_parsed.write_empty_chunks:
        config_parsed = replace(config_parsed, write_empty_chunks=True)
    return config_parsed


class Array:
    """
    A chunked N-dimensional array stored in a Zarr v3 hierarchy.

    Use ``Array.create`` to make a new array and ``Array.open`` to open an existing one. Data is
    read and written by region (``read_region``/``write_region``) or with basic selections
    (``array[0:10, 5]``).

    Parameters
    ----------
    metadata : ArrayV3Metadata
        The metadata of the array.
    store_path : StorePath
        The location of the array.
    config : ArrayConfig, optional
        Runtime configuration of the array.
    synchronizer : Synchronizer, optional
        Source of the per-unit locks taken while writing. Defaults to a ``ThreadSynchronizer``.
    """

    metadata: ArrayV3Metadata
    store_path: StorePath
    codec_pipeline: BatchedCodecPipeline
    config: ArrayConfig
    synchronizer: Synchronizer | None

    def __init__(
        self,
        metadata: ArrayV3Metadata,
        store_path: StorePath,
        config: ArrayConfigLike | None = None,
        synchronizer: Synchronizer | None = None,
    ) -> None:
        self.metadata = metadata
        self.store_path = store_path
        self.config = _effective_config(store_path, config)
        self.codec_pipeline = BatchedCodecPipeline.from_codecs(metadata.codecs)
        self.synchronizer = ThreadSynchronizer() if synchronizer is None else synchronizer

    @classmethod
    def create(
        cls,
        store: StoreLike,
        *,
        shape: ShapeLike,
        dtype: DataType | str | npt.DTypeLike,
        chunk_shape: ShapeLike | None = None,
        shard_shape: ShapeLike | None = None,
        strategy: ShardingStrategy | str | None = None,
        fill_value: Any | None = None,
        codecs: Iterable[Codec | dict[str, JSON] | str] | None = None,
        compression: Compression = Compression.NONE,
        attributes: dict[str, JSON] | None = None,
        dimension_names: Iterable[str | None] | None = None,
        overwrite: bool = False,
        path: str = "",
        config: ArrayConfigLike | None = None,
        synchronizer: Synchronizer | None = None,
    ) -> Array:
        """
        Create an array and write its metadata.

        The stored-unit geometry is decided by ``resolve_layout``: sharding that does not fit the
        chunk shape falls back to an unsharded array with an ``IncompatibleLayoutWarning``.

        Parameters
        ----------
        store : StoreLike
            Where to create the array.
        shape : tuple of int
            The shape of the array.
        dtype : DataType, str or numpy dtype
            The element type.
        chunk_shape : tuple of int, optional
            The chunk shape. Defaults to ``default_chunk_shape(shape)``. Chunk lengths larger than
            the array are clamped.
        shard_shape : tuple of int, optional
            The shard shape, for ``ShardingStrategy.CUSTOM``.
        strategy : ShardingStrategy or str, optional
            How to derive the shard shape. No strategy and no shard shape means no sharding.
        fill_value : scalar, optional
            The value of elements that were never written. Defaults to 0.
        codecs : iterable of codecs, optional
            The codecs applied to each chunk.
        compression : Compression
            Compression added after ``codecs``.
        attributes : dict, optional
            User attributes.
        dimension_names : iterable of str, optional
            The names of the axes.
        overwrite : bool
            Whether to replace a node that already exists at this location.
        path : str
            The path of the array below ``store``.

        Raises
        ------
        ContainsArrayError, ContainsGroupError
            If a node already exists and ``overwrite`` is False.
        """
        store_path = make_store_path(store, path=path)
        shape_parsed = parse_shapelike(shape)
        data_type = DataType.parse(dtype)

        if chunk_shape is None:
            chunk_shape = default_chunk_shape(shape_parsed)
        layout = resolve_layout(shape_parsed, chunk_shape, strategy, shard_shape)

        if not overwrite:
            ensure_no_existing_node(store_path)
        elif store_path.store.supports_deletes:
            store_path.delete_dir()

        metadata = ArrayV3Metadata(
            shape=shape_parsed,
            data_type=data_type,
            chunk_grid=RegularChunkGrid(chunk_shape=layout.shard_shape),
            chunk_key_encoding={"name": "default", "configuration": {"separator": "/"}},
            fill_value=fill_value,
            codecs=_build_codecs(layout, codecs, compression),
            attributes=attributes,
            dimension_names=dimension_names,
        )
        array = cls(metadata, store_path, config=config, synchronizer=synchronizer)
        array._save_metadata()
        return array

    @classmethod
    def open(
        cls,
        store: StoreLike,
        *,
        path: str = "",
        config: ArrayConfigLike | None = None,
        synchronizer: Synchronizer | None = None,
    ) -> Array:
        """
        Open an existing array.

        Raises
        ------
        ArrayNotFoundError
            If there is no array at this location.
        MalformedMetadataError
            If the metadata document cannot be decoded.
        """
        store_path = make_store_path(store, path=path)
        metadata_bytes = (store_path / ZARR_JSON).get()
        if metadata_bytes is None:
            raise ArrayNotFoundError(str(store_path.store), store_path.path)
        metadata = parse_node_metadata(metadata_bytes, store_path.path)
        if isinstance(metadata, GroupMetadata):
            raise ArrayNotFoundError(str(store_path.store), store_path.path)
        return cls(metadata, store_path, config=config, synchronizer=synchronizer)

    def _save_metadata(self) -> None:
        for key, value in self.metadata.to_buffer_dict().items():
            (self.store_path / key).set(value)
        logger.debug("Wrote array metadata to %s", self.store_path)

    @property
    def store(self) -> Store:
        return self.store_path.store

    @property
    def path(self) -> str:
        """The path of the array within its store."""
        return self.store_path.path

    @property
    def name(self) -> str:
        """The last component of ``path``."""
        return self.path.rsplit("/", maxsplit=1)[-1]

    @property
    def shape(self) -> ChunkCoords:
        return self.metadata.shape

    @property
    def ndim(self) -> int:
        return self.metadata.ndim

    @property
    def chunk_shape(self) -> ChunkCoords:
        return self.metadata.chunk_shape

    @property
    def shard_shape(self) -> ChunkCoords | None:
        return self.metadata.shard_shape

    @property
    def layout(self) -> ArrayLayout:
        return ArrayLayout(
            chunk_shape=self.metadata.chunk_shape,
            shard_shape=self.metadata.chunks,
            sharded=self.metadata.sharded,
        )

    @property
    def dtype(self) -> np.dtype[Any]:
        return self.metadata.dtype

    @property
    def data_type(self) -> DataType:
        return self.metadata.data_type

    @property
    def fill_value(self) -> Any:
        return self.metadata.fill_value

    @property
    def order(self) -> str:
        return self.config.order

    @property
    def attrs(self) -> dict[str, JSON]:
        """A copy of the user attributes."""
        return dict(self.metadata.attributes)

    @property
    def nchunks(self) -> int:
        """The number of stored units, i.e. shards when sharded and chunks otherwise."""
        return product(self.metadata.chunk_grid_shape)

    @property
    def is_little_endian(self) -> bool:
        """
        Whether the elements of a chunk are encoded little-endian. Single-byte types have no byte
        order and count as little-endian.
        """
        for codec in self.metadata.inner_codecs:
            if isinstance(codec, BytesCodec):
                return codec.endian is None or codec.endian == "little"
        return True

    def __repr__(self) -> str:
        return f"<Array {self.store_path} shape={self.shape} dtype={self.dtype}>"

    def _get_selection(self, indexer: BasicIndexer) -> NDBuffer:
        out = NDBuffer.create(
            shape=indexer.shape, dtype=self.dtype, order=self.order, fill_value=self.fill_value
        )
        if product(indexer.shape) > 0:
            self.codec_pipeline.read_sync(
                [
                    (
                        self.store_path / self.metadata.encode_chunk_key(chunk_coords),
                        self.metadata.get_chunk_spec(chunk_coords, self.config),
                        chunk_selection,
                        out_selection,
                        is_complete_chunk,
                    )
                    for chunk_coords, chunk_selection, out_selection, is_complete_chunk in indexer
                ],
                out,
            )
        return out

    def _set_selection(self, indexer: BasicIndexer, value: NDBuffer) -> None:
        if product(indexer.shape) == 0:
            return
        self.codec_pipeline.write_sync(
            [
                (
                    self.store_path / self.metadata.encode_chunk_key(chunk_coords),
                    self.metadata.get_chunk_spec(chunk_coords, self.config),
                    chunk_selection,
                    out_selection,
                    is_complete_chunk,
                )
                for chunk_coords, chunk_selection, out_selection, is_complete_chunk in indexer
            ],
            value,
            synchronizer=self.synchronizer,
        )

    def _check_data_type(self, dtype: np.dtype[Any]) -> None:
        try:
            data_type = DataType.from_dtype(dtype)
        except UnsupportedElementTypeError:
            data_type = None
        if data_type != self.data_type:
            raise TypeMismatchError(str(dtype), self.path, self.data_type.value)

    def read_region(self, shape: Iterable[int], offset: Iterable[int]) -> NDBuffer:
        """
        Read the hyper-rectangle with the given ``shape`` starting at ``offset``.

        Elements that were never written read as the fill value.

        Raises
        ------
        OutOfBoundsError
            If the region does not lie inside the array. Nothing is read.
        """
        shape_t, offset_t = tuple(shape), tuple(offset)
        check_region(self.shape, shape_t, offset_t, self.path)
        indexer = BasicIndexer(
            region_to_selection(shape_t, offset_t), self.shape, self.metadata.chunk_grid
        )
        return self._get_selection(indexer)

    def write_region(self, data: NDBuffer | npt.NDArray[Any], offset: Iterable[int]) -> None:
        """
        Write ``data`` into the array with its first element at ``offset``.

        Raises
        ------
        OutOfBoundsError
            If the region does not lie inside the array.
        TypeMismatchError
            If the element type of ``data`` differs from the element type of the array.

        Both checks happen before anything is written.
        """
        buffer = data if isinstance(data, NDBuffer) else NDBuffer.from_numpy_array(data)
        offset_t = tuple(offset)
        check_region(self.shape, buffer.shape, offset_t, self.path)
        self._check_data_type(buffer.dtype)
        indexer = BasicIndexer(
            region_to_selection(buffer.shape, offset_t), self.shape, self.metadata.chunk_grid
        )
        self._set_selection(indexer, buffer)

    def __getitem__(self, selection: BasicSelection) -> Any:
        indexer = BasicIndexer(selection, self.shape, self.metadata.chunk_grid)
        result = self._get_selection(indexer).as_numpy_array()
        if indexer.shape == ():
            return result[()]
        return result

    def __setitem__(self, selection: BasicSelection, value: Any) -> None:
        indexer = BasicIndexer(selection, self.shape, self.metadata.chunk_grid)
        if isinstance(value, NDBuffer):
            value = value.as_numpy_array()
        if isinstance(value, np.ndarray):
            self._check_data_type(value.dtype)
        else:
            value = np.asarray(value, dtype=self.dtype)
        if value.shape != indexer.shape:
            value = np.broadcast_to(value, indexer.shape)
        self._set_selection(indexer, NDBuffer.from_numpy_array(value))

    def update_attributes(self, new_attributes: Mapping[str, JSON]) -> Array:
        """Merge ``new_attributes`` into the user attributes and write the metadata."""
        attributes = dict(self.metadata.attributes)
        attributes.update(new_attributes)
        self.metadata = self.metadata.update_attributes(attributes)
        self._save_metadata()
        return self

    def list_keys(self) -> list[str]:
        """The names of the keys and prefixes directly below the array, e.g. ``zarr.json``, ``c``."""
        return list(self.store_path.list_dir())
