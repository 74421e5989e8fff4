from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, replace
from enum import Enum
from functools import cached_property, lru_cache
from typing import TYPE_CHECKING, Any, ClassVar, Literal

import numpy as np
import numpy.typing as npt

from bfzarr.abc.codec import ArrayBytesCodec, Codec, PreparedWrite, single_unit_write
from bfzarr.codecs.bytes import BytesCodec
from bfzarr.codecs.crc32c_ import Crc32cCodec
from bfzarr.core.array_spec import ArrayConfig, ArraySpec
from bfzarr.core.buffer import Buffer, NDBuffer
from bfzarr.core.chunk_grids import ChunkGrid, RegularChunkGrid
from bfzarr.core.codec_pipeline import CodecChain, fill_value_or_default
from bfzarr.core.common import (
    ShapeLike,
    parse_enum,
    parse_named_configuration,
    parse_shapelike,
    product,
)
from bfzarr.core.dtype import DataType
from bfzarr.core.indexing import BasicIndexer, c_order_iter, morton_order_iter
from bfzarr.metadata.v3 import parse_codecs
from bfzarr.registry import register_codec

if TYPE_CHECKING:
    from typing import Self

    from bfzarr.abc.store import ByteGetter, ByteSetter
    from bfzarr.core.common import JSON
    from bfzarr.core.indexing import SelectorTuple

# offset and length of an index entry whose inner chunk has no bytes
_NO_CHUNK = 2**64 - 1
# one (offset, length) pair of uint64 per inner chunk
_INDEX_ENTRY_NBYTES = 16


def _covers_whole_shard(selection: Any, shape: tuple[int, ...]) -> bool:
    if not isinstance(selection, tuple):
        selection = (selection,)
    for sel, dim_len in zip(selection, shape, strict=False):
        if isinstance(sel, slice):
            if sel.indices(dim_len) != (0, dim_len, 1):
                return False
        elif not (isinstance(sel, int) and dim_len == 1):
            return False
    return True


class ShardingCodecIndexLocation(Enum):
    """Where the index of a shard is stored, before or after the inner chunks."""

    start = "start"
    end = "end"


class _ShardIndex:
    """The ``(offset, length)`` table of a shard, shaped ``chunks_per_shard + (2,)``."""

    def __init__(self, table: npt.NDArray[np.uint64]) -> None:
        self.table = table

    @classmethod
    def empty(cls, chunks_per_shard: tuple[int, ...]) -> _ShardIndex:
        return cls(np.full(chunks_per_shard + (2,), _NO_CHUNK, dtype="<u8"))

    @property
    def chunks_per_shard(self) -> tuple[int, ...]:
        return tuple(int(n) for n in self.table.shape[:-1])

    def _local(self, chunk_coords: tuple[int, ...]) -> tuple[int, ...]:
        return tuple(c % n for c, n in zip(chunk_coords, self.chunks_per_shard, strict=False))

    def byte_range(self, chunk_coords: tuple[int, ...]) -> tuple[int, int] | None:
        """``(start, stop)`` of an inner chunk inside the shard, None when it has no bytes."""
        offset, length = (int(v) for v in self.table[self._local(chunk_coords)])
        if offset == _NO_CHUNK and length == _NO_CHUNK:
            return None
        return offset, offset + length

    def record(self, chunk_coords: tuple[int, ...], offset: int, length: int) -> None:
        self.table[self._local(chunk_coords)] = (offset, length)

    def shift(self, nbytes: int) -> None:
        """Move every present inner chunk ``nbytes`` further into the shard."""
        present = self.table[..., 0] != _NO_CHUNK
        self.table[present, 0] += np.uint64(nbytes)


@lru_cache(maxsize=64)
def _index_chunk_spec(chunks_per_shard: tuple[int, ...]) -> ArraySpec:
    return ArraySpec(
        shape=chunks_per_shard + (2,),
        dtype=DataType.uint64,
        fill_value=_NO_CHUNK,
        config=ArrayConfig(order="C", write_empty_chunks=False),
    )


@dataclass(frozen=True)
class ShardingCodec(ArrayBytesCodec):
    """
    Stores a block of inner chunks under one key.

    The stored value is the concatenation of the encoded inner chunks, in Morton order, followed
    (or preceded) by an index of ``(offset, length)`` pairs, one per inner chunk. Inner chunks
    that were never written, or that hold only the fill value, have no bytes and an empty index
    entry.
    """

    is_fixed_size: ClassVar[Literal[False]] = False
    name: ClassVar[Literal["sharding_indexed"]] = "sharding_indexed"

    chunk_shape: tuple[int, ...]
    codecs: tuple[Codec, ...]
    index_codecs: tuple[Codec, ...]
    index_location: ShardingCodecIndexLocation = ShardingCodecIndexLocation.end

    def __init__(
        self,
        *,
        chunk_shape: ShapeLike,
        codecs: Iterable[Codec | dict[str, JSON]] = (BytesCodec(),),
        index_codecs: Iterable[Codec | dict[str, JSON]] = (
            BytesCodec(endian="little"),
            Crc32cCodec(),
        ),
        index_location: ShardingCodecIndexLocation | str = ShardingCodecIndexLocation.end,
    ) -> None:
        fields = {
            "chunk_shape": parse_shapelike(chunk_shape),
            "codecs": parse_codecs(codecs),
            "index_codecs": parse_codecs(index_codecs),
            "index_location": parse_enum(index_location, ShardingCodecIndexLocation),
        }
        for field, value in fields.items():
            object.__setattr__(self, field, value)

    # pickled through the metadata document, which drops the cached codec chains
    def __getstate__(self) -> dict[str, Any]:
        return self.to_dict()

    def __setstate__(self, state: dict[str, Any]) -> None:
        self.__init__(**state["configuration"])  # type: ignore[misc]

    @classmethod
    def from_dict(cls, data: dict[str, JSON]) -> Self:
        _, configuration = parse_named_configuration(data, "sharding_indexed")
        return cls(**configuration)  # type: ignore[arg-type]

    def to_dict(self) -> dict[str, JSON]:
        configuration: dict[str, JSON] = {
            "chunk_shape": list(self.chunk_shape),
            "codecs": [codec.to_dict() for codec in self.codecs],
            "index_codecs": [codec.to_dict() for codec in self.index_codecs],
            "index_location": self.index_location.value,
        }
        return {"name": self.name, "configuration": configuration}

    @cached_property
    def inner_codec_chain(self) -> CodecChain:
        return CodecChain.from_codecs(self.codecs)

    @cached_property
    def _index_codec_chain(self) -> CodecChain:
        return CodecChain.from_codecs(self.index_codecs)

    def evolve_from_array_spec(self, array_spec: ArraySpec) -> Self:
        inner_spec = self._get_chunk_spec(array_spec)
        evolved = tuple(codec.evolve_from_array_spec(array_spec=inner_spec) for codec in self.codecs)
        return self if evolved == self.codecs else replace(self, codecs=evolved)

    def validate(self, *, shape: tuple[int, ...], dtype: DataType, chunk_grid: ChunkGrid) -> None:
        if len(self.chunk_shape) != len(shape):
            raise ValueError(
                "The shard's `chunk_shape` and array's `shape` need to have the same number of "
                "dimensions."
            )
        if not isinstance(chunk_grid, RegularChunkGrid):
            raise TypeError("Sharding is only compatible with regular chunk grids.")
        if any(s % c for s, c in zip(chunk_grid.chunk_shape, self.chunk_shape, strict=False)):
            raise ValueError(
                f"The array's `chunk_shape` (got {chunk_grid.chunk_shape}) "
                f"needs to be divisible by the shard's inner `chunk_shape` (got {self.chunk_shape})."
            )
        inner_grid = RegularChunkGrid(chunk_shape=self.chunk_shape)
        for codec in self.codecs:
            codec.validate(shape=self.chunk_shape, dtype=dtype, chunk_grid=inner_grid)

    def _get_chunk_spec(self, shard_spec: ArraySpec) -> ArraySpec:
        return replace(shard_spec, shape=self.chunk_shape)

    def _get_chunks_per_shard(self, shard_spec: ArraySpec) -> tuple[int, ...]:
        return tuple(s // c for s, c in zip(shard_spec.shape, self.chunk_shape, strict=False))

    def _inner_indexer(self, selection: SelectorTuple, shard_spec: ArraySpec) -> BasicIndexer:
        return BasicIndexer(
            selection,
            shape=shard_spec.shape,
            chunk_grid=RegularChunkGrid(chunk_shape=self.chunk_shape),
        )

    def _decode_sync(self, shard_bytes: Buffer, shard_spec: ArraySpec) -> NDBuffer:
        whole = tuple(slice(0, n) for n in shard_spec.shape)
        return self._decode_chunks(self.deserialize(shard_bytes, shard_spec), shard_spec, whole)

    def _encode_sync(self, shard_array: NDBuffer, shard_spec: ArraySpec) -> Buffer | None:
        inner_spec = self._get_chunk_spec(shard_spec)
        keep_empty = inner_spec.config.write_empty_chunks
        fill_value = fill_value_or_default(inner_spec)

        encoded: dict[tuple[int, ...], Buffer | None] = {}
        whole = tuple(slice(0, n) for n in shard_spec.shape)
        # the out selection of each inner chunk is its place in the shard
        for coords, _, in_shard, _ in self._inner_indexer(whole, shard_spec):
            inner = shard_array[in_shard]
            if not keep_empty and inner.all_equal(fill_value):
                encoded[coords] = None
            else:
                encoded[coords] = self.inner_codec_chain.encode_chunk(inner, inner_spec)
        return self.serialize(encoded, shard_spec)

    def _decode_chunks(
        self,
        chunk_dict: dict[tuple[int, ...], Buffer | None],
        shard_spec: ArraySpec,
        selection: SelectorTuple,
    ) -> NDBuffer:
        """Decode the inner chunks a selection touches into a new buffer of the selection shape."""
        inner_spec = self._get_chunk_spec(shard_spec)
        indexer = self._inner_indexer(selection, shard_spec)
        out = NDBuffer.create(
            shape=indexer.shape,
            dtype=shard_spec.native_dtype,
            order=shard_spec.order,
            fill_value=fill_value_or_default(shard_spec),
        )
        for coords, chunk_selection, out_selection, _ in indexer:
            decoded = self.inner_codec_chain.decode_chunk(chunk_dict.get(coords), inner_spec)
            # a missing inner chunk keeps the fill value
            if decoded is not None:
                out[out_selection] = decoded[chunk_selection]
        return out

    def deserialize(
        self, raw: Buffer | None, chunk_spec: ArraySpec
    ) -> dict[tuple[int, ...], Buffer | None]:
        """Split stored shard bytes into the encoded bytes of every inner chunk."""
        chunks_per_shard = self._get_chunks_per_shard(chunk_spec)
        chunk_dict: dict[tuple[int, ...], Buffer | None] = dict.fromkeys(
            c_order_iter(chunks_per_shard)
        )
        if raw is None or len(raw) == 0:
            return chunk_dict

        index_bytes = self._index_bytes(raw, chunks_per_shard)
        index = self._decode_shard_index(index_bytes, chunks_per_shard)
        for coords in chunk_dict:
            byte_range = index.byte_range(coords)
            if byte_range is not None:
                chunk_dict[coords] = raw[byte_range[0] : byte_range[1]]
        return chunk_dict

    def serialize(
        self, chunk_dict: dict[tuple[int, ...], Buffer | None], chunk_spec: ArraySpec
    ) -> Buffer | None:
        """
        The stored bytes of a shard holding the given encoded inner chunks, or None when none
        of them has bytes and the key should be removed.
        """
        chunks_per_shard = self._get_chunks_per_shard(chunk_spec)
        index = _ShardIndex.empty(chunks_per_shard)
        parts: list[Buffer] = []
        offset = 0
        for coords in morton_order_iter(chunks_per_shard):
            encoded = chunk_dict.get(coords)
            if encoded is None:
                continue
            index.record(coords, offset, len(encoded))
            parts.append(encoded)
            offset += len(encoded)

        if not parts:
            return None
        if self.index_location is ShardingCodecIndexLocation.start:
            index.shift(self._shard_index_size(chunks_per_shard))
            return self._encode_shard_index(index).combine(parts)
        return parts[0].combine([*parts[1:], self._encode_shard_index(index)])

    def _index_bytes(self, raw: Buffer, chunks_per_shard: tuple[int, ...]) -> Buffer:
        nbytes = self._shard_index_size(chunks_per_shard)
        if len(raw) < nbytes:
            raise ValueError(
                f"Shard of {len(raw)} bytes is too short to hold an index of {nbytes} bytes."
            )
        if self.index_location is ShardingCodecIndexLocation.start:
            return raw[:nbytes]
        return raw[len(raw) - nbytes :]

    def _decode_shard_index(
        self, index_bytes: Buffer, chunks_per_shard: tuple[int, ...]
    ) -> _ShardIndex:
        table = self._index_codec_chain.decode_chunk(
            index_bytes, _index_chunk_spec(chunks_per_shard)
        )
        if table is None:
            raise ValueError(
                f"Shard index of {len(index_bytes)} bytes decoded to nothing, expected "
                f"{product(chunks_per_shard)} entries."
            )
        return _ShardIndex(table.as_numpy_array())

    def _encode_shard_index(self, index: _ShardIndex) -> Buffer:
        encoded = self._index_codec_chain.encode_chunk(
            NDBuffer.from_numpy_array(index.table), _index_chunk_spec(index.chunks_per_shard)
        )
        if encoded is None:
            raise ValueError("The index codecs produced no bytes for the shard index.")
        return encoded

    def _shard_index_size(self, chunks_per_shard: tuple[int, ...]) -> int:
        return self._index_codec_chain.compute_encoded_size(
            _INDEX_ENTRY_NBYTES * product(chunks_per_shard), _index_chunk_spec(chunks_per_shard)
        )

    @staticmethod
    def _is_sole_codec(codec_chain: CodecChain) -> bool:
        return not codec_chain.array_array_codecs and not codec_chain.bytes_bytes_codecs

    def prepare_read_sync(
        self,
        byte_getter: ByteGetter,
        chunk_spec: ArraySpec,
        chunk_selection: SelectorTuple,
        codec_chain: CodecChain,
    ) -> NDBuffer | None:
        """
        Fetch a shard and decode only the inner chunks that ``chunk_selection`` touches.
        Returns None when the shard is absent.
        """
        if not self._is_sole_codec(codec_chain):
            # other codecs wrap the shard bytes, so the whole shard is decoded
            return super().prepare_read_sync(byte_getter, chunk_spec, chunk_selection, codec_chain)
        raw = byte_getter.get()
        if raw is None:
            return None
        chunk_dict = self.deserialize(raw, chunk_spec)
        return self._decode_chunks(chunk_dict, chunk_spec, chunk_selection)

    def prepare_write_sync(
        self,
        byte_setter: ByteSetter,
        chunk_spec: ArraySpec,
        chunk_selection: SelectorTuple,
        out_selection: SelectorTuple,
        is_complete_chunk: bool,
        codec_chain: CodecChain,
    ) -> PreparedWrite:
        """
        Prepare the write of one shard.

        A selection covering the whole shard skips the fetch. Otherwise the existing shard is
        fetched and split into inner chunks; only the inner chunks the selection touches are
        decoded later, the others keep their encoded bytes.
        """
        inner_spec = self._get_chunk_spec(chunk_spec)
        if not self._is_sole_codec(codec_chain):
            existing = None if is_complete_chunk else byte_setter.get()
            return single_unit_write(
                {(0,): existing},
                codec_chain,
                chunk_spec,
                chunk_selection,
                out_selection,
                is_complete_chunk,
            )

        if _covers_whole_shard(chunk_selection, chunk_spec.shape):
            return PreparedWrite(
                chunk_dict={},
                inner_codec_chain=self.inner_codec_chain,
                inner_chunk_spec=inner_spec,
                indexer=[],
                value_selection=out_selection,
                is_complete_shard=True,
            )

        existing = byte_setter.get()
        chunk_dict = self.deserialize(existing, chunk_spec)
        return PreparedWrite(
            chunk_dict=chunk_dict,
            inner_codec_chain=self.inner_codec_chain,
            inner_chunk_spec=inner_spec,
            indexer=list(self._inner_indexer(chunk_selection, chunk_spec)),
            value_selection=out_selection,
        )

    def finalize_write_sync(
        self, prepared: PreparedWrite, chunk_spec: ArraySpec, byte_setter: ByteSetter
    ) -> None:
        blob: Buffer | None
        if prepared.inner_codec_chain.array_bytes_codec is self:
            # the outer chain encoded the whole unit already
            blob = prepared.chunk_dict.get((0,))
        elif prepared.is_complete_shard:
            assert prepared.shard_data is not None
            blob = self._encode_sync(prepared.shard_data, chunk_spec)
        else:
            blob = self.serialize(prepared.chunk_dict, chunk_spec)
        if blob is None:
            byte_setter.delete()
        else:
            byte_setter.set(blob)

    def compute_encoded_size(self, input_byte_length: int, shard_spec: ArraySpec) -> int:
        chunks_per_shard = self._get_chunks_per_shard(shard_spec)
        return input_byte_length + self._shard_index_size(chunks_per_shard)


register_codec("sharding_indexed", ShardingCodec)
