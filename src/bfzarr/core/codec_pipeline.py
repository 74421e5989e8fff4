from __future__ import annotations

import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor
from contextlib import nullcontext
from dataclasses import dataclass
from itertools import pairwise
from typing import TYPE_CHECKING, Any, TypeVar
from warnings import warn

from bfzarr.abc.codec import ArrayArrayCodec, ArrayBytesCodec, BytesBytesCodec, Codec
from bfzarr.core.buffer import NDBuffer
from bfzarr.core.config import config
from bfzarr.errors import ZarrUserWarning

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Iterator, Sequence
    from typing import Self

    from bfzarr.abc.store import ByteGetter, ByteSetter
    from bfzarr.core.array_spec import ArraySpec
    from bfzarr.core.buffer import Buffer
    from bfzarr.core.indexing import SelectorTuple
    from bfzarr.core.lock import Synchronizer

__all__ = ["BatchedCodecPipeline", "CodecChain", "codecs_from_list", "fill_value_or_default"]

logger = logging.getLogger(__name__)

T = TypeVar("T")

# (byte accessor, unit spec, selection inside the unit, selection in the caller's buffer,
# whether the whole unit is selected)
UnitInfo = tuple[Any, "ArraySpec", "SelectorTuple", "SelectorTuple", bool]


def fill_value_or_default(chunk_spec: ArraySpec) -> Any:
    if chunk_spec.fill_value is None:
        return chunk_spec.native_dtype.type(0)
    return chunk_spec.fill_value


_pool: ThreadPoolExecutor | None = None
_pool_lock = threading.Lock()
# set on pool threads so that work running there never waits on the same pool
_thread_local = threading.local()


def _get_max_workers() -> int:
    max_workers: int | None = config.get("threading.max_workers")
    return max(max_workers or os.cpu_count() or 4, 1)


def _choose_workers(n_units: int) -> int:
    """How many pool workers a batch of ``n_units`` gets. 0 runs it on the calling thread."""
    if getattr(_thread_local, "in_pool_worker", False) or n_units < 2:
        return 0
    max_workers = _get_max_workers()
    return 0 if max_workers < 2 else min(n_units, max_workers)


def _get_pool() -> ThreadPoolExecutor:
    global _pool
    with _pool_lock:
        if _pool is None:
            _pool = ThreadPoolExecutor(max_workers=_get_max_workers(), thread_name_prefix="bfzarr")
        return _pool


def _run_units(fn: Callable[..., T], jobs: Sequence[tuple[Any, ...]], action: str) -> list[T]:
    """Call ``fn(*job)`` for every job, on the pool when the batch is large enough."""
    n_workers = _choose_workers(len(jobs))
    logger.debug("%s %d units with %d workers", action, len(jobs), n_workers)
    if n_workers == 0:
        return [fn(*job) for job in jobs]

    def on_worker(job: tuple[Any, ...]) -> T:
        _thread_local.in_pool_worker = True
        try:
            return fn(*job)
        finally:
            _thread_local.in_pool_worker = False

    return list(_get_pool().map(on_worker, jobs))


@dataclass(frozen=True)
class CodecChain:
    """The codecs of one unit: array-to-array, then array-to-bytes, then bytes-to-bytes.

    Only transforms data; all store access goes through the array-to-bytes codec.
    """

    array_array_codecs: tuple[ArrayArrayCodec, ...]
    array_bytes_codec: ArrayBytesCodec
    bytes_bytes_codecs: tuple[BytesBytesCodec, ...]

    def __iter__(self) -> Iterator[Codec]:
        yield from self.array_array_codecs
        yield self.array_bytes_codec
        yield from self.bytes_bytes_codecs

    @classmethod
    def from_codecs(cls, codecs: Iterable[Codec]) -> CodecChain:
        return cls(*codecs_from_list(codecs))

    def _with_specs(self, chunk_spec: ArraySpec) -> list[tuple[Codec, ArraySpec]]:
        # each codec sees the spec produced by the codecs before it
        pairs: list[tuple[Codec, ArraySpec]] = []
        for codec in self:
            pairs.append((codec, chunk_spec))
            chunk_spec = codec.resolve_metadata(chunk_spec)
        return pairs

    def decode_chunk(self, chunk_bytes: Buffer | None, chunk_spec: ArraySpec) -> NDBuffer | None:
        """Decode one stored unit, last codec first. ``None`` stays ``None``."""
        data: Any = chunk_bytes
        for codec, spec in reversed(self._with_specs(chunk_spec)):
            if data is None:
                return None
            data = codec._decode_sync(data, spec)
        return data  # type: ignore[no-any-return]

    def encode_chunk(self, chunk_array: NDBuffer | None, chunk_spec: ArraySpec) -> Buffer | None:
        """Encode one unit, first codec first. A codec may drop the unit by returning ``None``."""
        data: Any = chunk_array
        for codec, spec in self._with_specs(chunk_spec):
            if data is None:
                return None
            data = codec._encode_sync(data, spec)
        return data  # type: ignore[no-any-return]

    def compute_encoded_size(self, byte_length: int, array_spec: ArraySpec) -> int:
        for codec, spec in self._with_specs(array_spec):
            byte_length = codec.compute_encoded_size(byte_length, spec)
        return byte_length


def _merge_chunk_array(
    existing: NDBuffer | None,
    value: NDBuffer,
    out_selection: SelectorTuple,
    chunk_spec: ArraySpec,
    chunk_selection: SelectorTuple,
    is_complete_chunk: bool,
) -> NDBuffer:
    """The unit array after writing ``value[out_selection]`` at ``chunk_selection``."""
    # a complete trailing unit of a ragged grid is smaller than its spec shape
    if is_complete_chunk and value[out_selection].shape == chunk_spec.shape == value.shape:
        return value
    if existing is None:
        merged = NDBuffer.create(
            shape=chunk_spec.shape,
            dtype=chunk_spec.native_dtype,
            order=chunk_spec.order,
            fill_value=fill_value_or_default(chunk_spec),
        )
    else:
        merged = existing.copy()
    merged[chunk_selection] = value if chunk_selection == () else value[out_selection]
    return merged


@dataclass(frozen=True)
class BatchedCodecPipeline:
    """Reads and writes stored units through a codec chain.

    Every call is synchronous. Calls touching more than one unit hand the per-unit work to a
    module-level thread pool and wait for all of it before returning.
    """

    codec_chain: CodecChain

    @classmethod
    def from_codecs(cls, codecs: Iterable[Codec]) -> Self:
        return cls(codec_chain=CodecChain.from_codecs(codecs))

    def __iter__(self) -> Iterator[Codec]:
        return iter(self.codec_chain)

    def _read_unit(
        self, byte_getter: ByteGetter, chunk_spec: ArraySpec, chunk_selection: SelectorTuple
    ) -> NDBuffer | None:
        return self.codec_chain.array_bytes_codec.prepare_read_sync(
            byte_getter, chunk_spec, chunk_selection, self.codec_chain
        )

    def read_sync(self, batch_info: Iterable[UnitInfo], out: NDBuffer) -> None:
        """
        Read the selected part of every unit in ``batch_info`` into ``out``.

        Each entry is ``(byte_getter, unit_spec, unit_selection, out_selection,
        is_complete_unit)``. Absent units read as the fill value.
        """
        units = list(batch_info)
        if not units:
            return
        results = _run_units(self._read_unit, [unit[:3] for unit in units], "Reading")
        for result, (_, chunk_spec, _, out_selection, _) in zip(results, units, strict=True):
            out[out_selection] = fill_value_or_default(chunk_spec) if result is None else result

    def _write_unit(
        self,
        synchronizer: Synchronizer | None,
        byte_setter: ByteSetter,
        chunk_spec: ArraySpec,
        chunk_selection: SelectorTuple,
        out_selection: SelectorTuple,
        is_complete_chunk: bool,
        value: NDBuffer,
    ) -> None:
        """Read-modify-write of a single stored unit, under its lock when one is given."""
        lock = nullcontext() if synchronizer is None else synchronizer[byte_setter.path]
        codec = self.codec_chain.array_bytes_codec
        with lock:
            prepared = codec.prepare_write_sync(
                byte_setter,
                chunk_spec,
                chunk_selection,
                out_selection,
                is_complete_chunk,
                self.codec_chain,
            )
            unit_value = (
                value if prepared.value_selection is None else value[prepared.value_selection]
            )
            if prepared.is_complete_shard:
                prepared.shard_data = unit_value
                codec.finalize_write_sync(prepared, chunk_spec, byte_setter)
                return

            inner_chain = prepared.inner_codec_chain
            inner_spec = prepared.inner_chunk_spec
            fill_value = fill_value_or_default(inner_spec)
            for coords, inner_selection, inner_out_selection, is_complete in prepared.indexer:
                # an inner chunk that is overwritten completely is not decoded
                existing = (
                    None
                    if is_complete
                    else inner_chain.decode_chunk(prepared.chunk_dict.get(coords), inner_spec)
                )
                merged = _merge_chunk_array(
                    existing,
                    unit_value,
                    inner_out_selection,
                    inner_spec,
                    inner_selection,
                    is_complete,
                )
                if not inner_spec.config.write_empty_chunks and merged.all_equal(fill_value):
                    prepared.chunk_dict[coords] = None
                else:
                    prepared.chunk_dict[coords] = inner_chain.encode_chunk(merged, inner_spec)
            codec.finalize_write_sync(prepared, chunk_spec, byte_setter)

    def write_sync(
        self,
        batch_info: Iterable[UnitInfo],
        value: NDBuffer,
        synchronizer: Synchronizer | None = None,
    ) -> None:
        """
        Write ``value`` into every unit in ``batch_info``.

        Each entry is ``(byte_setter, unit_spec, unit_selection, out_selection,
        is_complete_unit)``; ``out_selection`` addresses ``value``. When a ``synchronizer`` is
        given, the lock for the unit key is held for the whole read-modify-write of that unit.
        """
        jobs = [(synchronizer, *unit, value) for unit in batch_info]
        if jobs:
            _run_units(self._write_unit, jobs, "Writing")


def _codec_kind(codec: object) -> int:
    for rank, base in enumerate((ArrayArrayCodec, ArrayBytesCodec, BytesBytesCodec)):
        if isinstance(codec, base):
            return rank
    raise TypeError(f"Expected a codec. Got {codec!r} instead.")


def codecs_from_list(
    codecs: Iterable[Codec],
) -> tuple[tuple[ArrayArrayCodec, ...], ArrayBytesCodec, tuple[BytesBytesCodec, ...]]:
    """
    Split an ordered codec list into its array-to-array, array-to-bytes and bytes-to-bytes
    parts.

    Raises
    ------
    TypeError
        If the codecs are not ordered array-to-array, array-to-bytes, bytes-to-bytes.
    ValueError
        If there is not exactly one array-to-bytes codec.
    """
    from bfzarr.codecs.sharding import ShardingCodec

    codecs = list(codecs)
    kinds = [_codec_kind(codec) for codec in codecs]
    for (prev, prev_kind), (cur, cur_kind) in pairwise(zip(codecs, kinds, strict=True)):
        if cur_kind < prev_kind:
            raise TypeError(
                f"Invalid codec order. {type(cur).__name__} {cur} cannot follow "
                f"{type(prev).__name__} {prev}. Codecs are ordered array-to-array, "
                "array-to-bytes, bytes-to-bytes."
            )

    array_bytes = [c for c, kind in zip(codecs, kinds, strict=True) if kind == 1]
    if not array_bytes:
        raise ValueError("Required ArrayBytesCodec was not found.")
    if len(array_bytes) > 1:
        raise ValueError(
            f"Got {len(array_bytes)} instances of ArrayBytesCodec: {array_bytes}. "
            "Only one array-to-bytes codec is allowed."
        )
    if len(codecs) > 1 and isinstance(array_bytes[0], ShardingCodec):
        warn(
            "Combining a `sharding_indexed` codec with other codecs disables partial reads and "
            "writes, which may lead to inefficient performance.",
            category=ZarrUserWarning,
            stacklevel=3,
        )
    return (
        tuple(c for c, kind in zip(codecs, kinds, strict=True) if kind == 0),  # type: ignore[misc]
        array_bytes[0],
        tuple(c for c, kind in zip(codecs, kinds, strict=True) if kind == 2),  # type: ignore[misc]
    )
