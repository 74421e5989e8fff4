from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Generic, Protocol, TypeVar, runtime_checkable

from bfzarr.abc.metadata import Metadata
from bfzarr.core.buffer import Buffer, NDBuffer

if TYPE_CHECKING:
    from typing import Self

    from bfzarr.abc.store import ByteGetter, ByteSetter
    from bfzarr.core.array_spec import ArraySpec
    from bfzarr.core.chunk_grids import ChunkGrid
    from bfzarr.core.codec_pipeline import CodecChain
    from bfzarr.core.dtype import DataType
    from bfzarr.core.indexing import ChunkProjection, SelectorTuple

__all__ = [
    "ArrayArrayCodec",
    "ArrayBytesCodec",
    "BaseCodec",
    "BytesBytesCodec",
    "Codec",
    "CodecInput",
    "CodecOutput",
    "PreparedWrite",
    "SupportsSyncCodec",
    "single_unit_write",
]

CodecInput = TypeVar("CodecInput", bound=NDBuffer | Buffer)
CodecOutput = TypeVar("CodecOutput", bound=NDBuffer | Buffer)


@runtime_checkable
class SupportsSyncCodec(Protocol):
    """Protocol for codecs that encode and decode a single chunk on the calling thread."""

    def _decode_sync(
        self, chunk_data: NDBuffer | Buffer, chunk_spec: ArraySpec
    ) -> NDBuffer | Buffer: ...

    def _encode_sync(
        self, chunk_data: NDBuffer | Buffer, chunk_spec: ArraySpec
    ) -> NDBuffer | Buffer | None: ...


class BaseCodec(Metadata, Generic[CodecInput, CodecOutput]):
    """Common behaviour of all codecs. Subclass one of ArrayArrayCodec, ArrayBytesCodec or
    BytesBytesCodec and register the class with ``bfzarr.registry.register_codec``.
    """

    is_fixed_size: bool

    @abstractmethod
    def compute_encoded_size(self, input_byte_length: int, chunk_spec: ArraySpec) -> int:
        """Encoded length of an input of ``input_byte_length`` bytes.

        Codecs with data dependent output sizes, such as compressors, raise
        ``NotImplementedError``.
        """
        ...

    def resolve_metadata(self, chunk_spec: ArraySpec) -> ArraySpec:
        """The spec of a unit after this codec encoded it, as seen by the next codec."""
        return chunk_spec

    def evolve_from_array_spec(self, array_spec: ArraySpec) -> Self:
        """A copy with settings left unset filled in from the array they are used with."""
        return self

    def validate(
        self,
        *,
        shape: tuple[int, ...],
        dtype: DataType,
        chunk_grid: ChunkGrid,
    ) -> None:
        """Raise if the codec cannot be used with an array of this shape, type and grid."""

    @abstractmethod
    def _decode_sync(self, chunk_data: CodecOutput, chunk_spec: ArraySpec) -> CodecInput: ...

    @abstractmethod
    def _encode_sync(self, chunk_data: CodecInput, chunk_spec: ArraySpec) -> CodecOutput | None: ...


class ArrayArrayCodec(BaseCodec[NDBuffer, NDBuffer]):
    """Base class for array-to-array codecs."""


@dataclass
class PreparedWrite:
    """Existing encoded inner chunks of a stored unit, and where new data goes into them."""

    chunk_dict: dict[tuple[int, ...], Buffer | None]
    inner_codec_chain: CodecChain
    inner_chunk_spec: ArraySpec
    indexer: list[ChunkProjection]
    # part of the caller's value that belongs to this unit; None when the indexer already
    # addresses the value directly
    value_selection: SelectorTuple | None = None
    # the whole unit is overwritten: the indexer is empty and shard_data is encoded at once
    is_complete_shard: bool = False
    shard_data: NDBuffer | None = None


def single_unit_write(
    chunk_dict: dict[tuple[int, ...], Buffer | None],
    codec_chain: CodecChain,
    chunk_spec: ArraySpec,
    chunk_selection: SelectorTuple,
    out_selection: SelectorTuple,
    is_complete_chunk: bool,
) -> PreparedWrite:
    """A PreparedWrite treating the stored unit as one chunk at ``(0,)``."""
    from bfzarr.core.indexing import ChunkProjection

    projection = ChunkProjection(
        (0,),
        chunk_selection,  # type: ignore[arg-type]
        out_selection,  # type: ignore[arg-type]
        is_complete_chunk,
    )
    return PreparedWrite(
        chunk_dict=chunk_dict,
        inner_codec_chain=codec_chain,
        inner_chunk_spec=chunk_spec,
        indexer=[projection],
    )


class ArrayBytesCodec(BaseCodec[NDBuffer, Buffer]):
    """
    Base class for array-to-bytes codecs.

    Besides encoding, an array-to-bytes codec decides how a stored unit is laid out: it splits
    the stored bytes into encoded inner chunks (``deserialize``) and joins them again
    (``serialize``). Plain codecs store a single chunk, ``ShardingCodec`` stores many.
    """

    @property
    def inner_codec_chain(self) -> CodecChain | None:
        """Codecs of the inner chunks, None when they are the codecs of the pipeline."""
        return None

    def deserialize(
        self, raw: Buffer | None, chunk_spec: ArraySpec
    ) -> dict[tuple[int, ...], Buffer | None]:
        return {(0,): raw}

    def serialize(
        self, chunk_dict: dict[tuple[int, ...], Buffer | None], chunk_spec: ArraySpec
    ) -> Buffer | None:
        """The bytes to store, None when the key should be removed instead."""
        return chunk_dict.get((0,))

    def prepare_read_sync(
        self,
        byte_getter: ByteGetter,
        chunk_spec: ArraySpec,
        chunk_selection: SelectorTuple,
        codec_chain: CodecChain,
    ) -> NDBuffer | None:
        """The selected part of a stored unit, None when the unit is absent."""
        decoded = codec_chain.decode_chunk(byte_getter.get(), chunk_spec)
        return None if decoded is None else decoded[chunk_selection]

    def prepare_write_sync(
        self,
        byte_setter: ByteSetter,
        chunk_spec: ArraySpec,
        chunk_selection: SelectorTuple,
        out_selection: SelectorTuple,
        is_complete_chunk: bool,
        codec_chain: CodecChain,
    ) -> PreparedWrite:
        # a unit that is overwritten completely is not fetched
        existing = None if is_complete_chunk else byte_setter.get()
        return single_unit_write(
            self.deserialize(existing, chunk_spec),
            self.inner_codec_chain or codec_chain,
            chunk_spec,
            chunk_selection,
            out_selection,
            is_complete_chunk,
        )

    def finalize_write_sync(
        self, prepared: PreparedWrite, chunk_spec: ArraySpec, byte_setter: ByteSetter
    ) -> None:
        blob = self.serialize(prepared.chunk_dict, chunk_spec)
        if blob is None:
            byte_setter.delete()
        else:
            byte_setter.set(blob)


class BytesBytesCodec(BaseCodec[Buffer, Buffer]):
    """Base class for bytes-to-bytes codecs."""


Codec = ArrayArrayCodec | ArrayBytesCodec | BytesBytesCodec
