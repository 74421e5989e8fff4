from __future__ import annotations

import itertools
import math
import numbers
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, NamedTuple, TypeGuard

import numpy as np

from bfzarr.core.common import ceildiv
from bfzarr.errors import OutOfBoundsError

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

    from bfzarr.core.chunk_grids import ChunkGrid
    from bfzarr.core.common import ChunkCoords

Selector = int | slice
BasicSelection = Any
SelectorTuple = tuple[Selector, ...] | slice


class BoundsCheckError(IndexError):
    def __init__(self, dim_len: int) -> None:
        super().__init__(f"index out of bounds for dimension with length {dim_len}")


class NegativeStepError(IndexError):
    def __init__(self) -> None:
        super().__init__("only slices with step >= 1 are supported")


def is_integer(x: Any) -> TypeGuard[int]:
    """True for python and numpy integers, excluding booleans."""
    return isinstance(x, numbers.Integral) and not isinstance(x, bool | np.bool_)


class _DimProjection(NamedTuple):
    chunk_index: int
    chunk_sel: Selector
    # None for an integer selection, which drops the axis from the output
    out_sel: slice | None
    is_complete: bool


@dataclass(frozen=True)
class _IntDim:
    index: int
    chunk_len: int
    nitems = 1
    drops_axis = True

    def __iter__(self) -> Iterator[_DimProjection]:
        chunk_index, within = divmod(self.index, self.chunk_len)
        yield _DimProjection(chunk_index, within, None, self.chunk_len == 1)


@dataclass(frozen=True)
class _SliceDim:
    start: int
    stop: int
    step: int
    dim_len: int
    chunk_len: int
    drops_axis = False

    @property
    def nitems(self) -> int:
        return max(0, ceildiv(self.stop - self.start, self.step))

    def __iter__(self) -> Iterator[_DimProjection]:
        for chunk_index in range(self.start // self.chunk_len, ceildiv(self.stop, self.chunk_len)):
            chunk_start = chunk_index * self.chunk_len
            chunk_stop = min(self.dim_len, chunk_start + self.chunk_len)
            # first selected item at or after the start of this chunk
            first = self.start
            if first < chunk_start:
                first += ceildiv(chunk_start - first, self.step) * self.step
            last = min(self.stop, chunk_stop)
            if first >= last:
                continue
            count = ceildiv(last - first, self.step)
            out_start = (first - self.start) // self.step
            yield _DimProjection(
                chunk_index,
                slice(first - chunk_start, last - chunk_start, self.step),
                slice(out_start, out_start + count),
                first == chunk_start and last == chunk_stop and self.step == 1,
            )


def _dim_indexer(dim_sel: Any, dim_len: int, chunk_len: int) -> _IntDim | _SliceDim:
    if is_integer(dim_sel):
        index = int(dim_sel)
        if index < 0:
            index += dim_len
        if not 0 <= index < dim_len:
            raise BoundsCheckError(dim_len)
        return _IntDim(index, chunk_len)
    if isinstance(dim_sel, slice):
        start, stop, step = dim_sel.indices(dim_len)
        if step < 1:
            raise NegativeStepError
        return _SliceDim(start, stop, step, dim_len, chunk_len)
    raise IndexError(
        "unsupported selection item for basic indexing; "
        f"expected integer or slice, got {type(dim_sel)!r}"
    )


def replace_ellipsis(selection: Any, shape: ChunkCoords) -> tuple[Any, ...]:
    """Expand ``selection`` to exactly one item per dimension of ``shape``."""
    if not isinstance(selection, tuple):
        selection = (selection,)
    n_ellipsis = selection.count(Ellipsis)
    if n_ellipsis > 1:
        raise IndexError("an index can only have a single ellipsis ('...')")
    if n_ellipsis == 1:
        at = selection.index(Ellipsis)
        fill = (slice(None),) * max(0, len(shape) - len(selection) + 1)
        selection = selection[:at] + fill + selection[at + 1 :]
    if len(selection) > len(shape):
        raise IndexError(
            f"too many indices for array; expected {len(shape)}, got {len(selection)}"
        )
    return selection + (slice(None),) * (len(shape) - len(selection))


class ChunkProjection(NamedTuple):
    """How one stored unit takes part in a selection.

    ``chunk_selection`` addresses items inside the unit, ``out_selection`` the same items in
    the selected (output or value) array. ``is_complete_chunk`` is true when every item of the
    unit is selected.
    """

    chunk_coords: ChunkCoords
    chunk_selection: tuple[Selector, ...]
    out_selection: tuple[Selector, ...]
    is_complete_chunk: bool


class BasicIndexer:
    """Projects a selection of integers and slices onto the units of a regular chunk grid."""

    shape: ChunkCoords

    def __init__(self, selection: BasicSelection, shape: ChunkCoords, chunk_grid: ChunkGrid) -> None:
        from bfzarr.core.chunk_grids import RegularChunkGrid

        if not isinstance(chunk_grid, RegularChunkGrid):
            raise TypeError(f"Only regular chunk grids are supported. Got {chunk_grid!r}.")
        self._dims = [
            _dim_indexer(dim_sel, dim_len, chunk_len)
            for dim_sel, dim_len, chunk_len in zip(
                replace_ellipsis(selection, shape), shape, chunk_grid.chunk_shape, strict=True
            )
        ]
        self.shape = tuple(d.nitems for d in self._dims if not d.drops_axis)

    def __iter__(self) -> Iterator[ChunkProjection]:
        for dims in itertools.product(*self._dims):
            yield ChunkProjection(
                tuple(d.chunk_index for d in dims),
                tuple(d.chunk_sel for d in dims),
                tuple(d.out_sel for d in dims if d.out_sel is not None),
                all(d.is_complete for d in dims),
            )


def check_region(
    array_shape: ChunkCoords, shape: Sequence[int], offset: Sequence[int], path: str
) -> None:
    """
    Check that the hyper-rectangle with the given ``shape`` at ``offset`` lies inside an array
    of shape ``array_shape``.

    Raises
    ------
    OutOfBoundsError
        If the ranks disagree, any component is negative or the region extends past the array.
    """
    shape_t = tuple(shape)
    offset_t = tuple(offset)
    valid = (
        len(shape_t) == len(offset_t) == len(array_shape)
        and all(is_integer(v) and v >= 0 for v in shape_t + offset_t)
        and all(o + s <= a for o, s, a in zip(offset_t, shape_t, array_shape, strict=True))
    )
    if not valid:
        raise OutOfBoundsError(list(offset_t), list(shape_t), path, list(array_shape))


def region_to_selection(shape: Sequence[int], offset: Sequence[int]) -> tuple[slice, ...]:
    """The basic selection addressing the region with the given ``shape`` at ``offset``."""
    return tuple(slice(int(o), int(o) + int(s)) for o, s in zip(offset, shape, strict=True))


def _morton_code(coords: ChunkCoords, bits: tuple[int, ...]) -> int:
    # bits are interleaved lowest first; a dimension stops contributing once its bits run out
    code = 0
    out_bit = 0
    for bit in range(max(bits, default=0)):
        for coord, dim_bits in zip(coords, bits, strict=True):
            if bit < dim_bits:
                code |= ((coord >> bit) & 1) << out_bit
                out_bit += 1
    return code


def morton_order_iter(chunks_per_shard: ChunkCoords) -> Iterator[ChunkCoords]:
    """Inner chunk coordinates in Z-order, the order inner chunks are laid out in a shard."""
    bits = tuple(math.ceil(math.log2(n)) if n > 1 else 0 for n in chunks_per_shard)
    yield from sorted(c_order_iter(chunks_per_shard), key=lambda c: _morton_code(c, bits))


def c_order_iter(chunks_per_shard: ChunkCoords) -> Iterator[ChunkCoords]:
    return itertools.product(*(range(n) for n in chunks_per_shard))
