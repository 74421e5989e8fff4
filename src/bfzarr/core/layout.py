"""
Chunk and shard layout policy.

An array is split into chunks. Chunks may be grouped into shards so that several chunks are
stored under a single key. This module decides the shard shape from a ``ShardingStrategy``
and rejects geometries where a shard cannot hold a whole number of chunks.
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from bfzarr.core.common import parse_shapelike
from bfzarr.core.config import config
from bfzarr.errors import IncompatibleLayoutError, IncompatibleLayoutWarning

if TYPE_CHECKING:
    from bfzarr.core.common import ChunkCoords, ShapeLike

__all__ = [
    "ArrayLayout",
    "ShardingStrategy",
    "check_layout",
    "default_chunk_shape",
    "derive_shard_shape",
    "is_compatible",
    "resolve_layout",
]

logger = logging.getLogger(__name__)


class ShardingStrategy(Enum):
    """
    How the shard shape of an array is derived from its shape and chunk shape.
    """

    SINGLE = "single"
    CHUNK = "chunk"
    SUPERCHUNK = "superchunk"
    CUSTOM = "custom"

    @classmethod
    def parse(cls, data: ShardingStrategy | str) -> ShardingStrategy:
        if isinstance(data, ShardingStrategy):
            return data
        if isinstance(data, str):
            try:
                return cls[data.upper()]
            except KeyError:
                pass
        msg = f"Expected one of {[s.name for s in cls]}. Got {data!r} instead."
        raise ValueError(msg)


@dataclass(frozen=True)
class ArrayLayout:
    """
    The resolved geometry of an array.

    ``shard_shape`` is the shape of a stored unit. When ``sharded`` is False every chunk is stored
    on its own and ``shard_shape`` equals ``chunk_shape``.
    """

    chunk_shape: ChunkCoords
    shard_shape: ChunkCoords
    sharded: bool

    @property
    def unit_shape(self) -> ChunkCoords:
        return self.shard_shape

    @property
    def chunks_per_shard(self) -> ChunkCoords:
        return tuple(s // c for s, c in zip(self.shard_shape, self.chunk_shape, strict=True))


def _check_ranks(*shapes: ChunkCoords) -> None:
    if len({len(s) for s in shapes}) > 1:
        raise ValueError(f"Expected shapes of equal rank. Got {', '.join(map(str, shapes))}.")


def derive_shard_shape(
    shape: ShapeLike,
    chunk_shape: ShapeLike,
    strategy: ShardingStrategy | str,
    shard_shape: ShapeLike | None = None,
) -> ChunkCoords:
    """
    Compute the shard shape that ``strategy`` prescribes for an array.

    Parameters
    ----------
    shape : ShapeLike
        The array shape.
    chunk_shape : ShapeLike
        The chunk shape.
    strategy : ShardingStrategy or str
        ``SINGLE`` stores the whole array as one shard, ``CHUNK`` stores one chunk per shard,
        ``SUPERCHUNK`` doubles the chunk along the two trailing axes and along every other axis
        that spans more than one chunk, and ``CUSTOM`` uses ``shard_shape``.
    shard_shape : ShapeLike, optional
        Required when ``strategy`` is ``CUSTOM``.

    Returns
    -------
    tuple[int, ...]
        The shard shape. It is not checked for compatibility, see ``is_compatible``.
    """
    shape_parsed = parse_shapelike(shape)
    chunk_shape_parsed = parse_shapelike(chunk_shape)
    strategy_parsed = ShardingStrategy.parse(strategy)
    _check_ranks(shape_parsed, chunk_shape_parsed)

    if strategy_parsed is ShardingStrategy.SINGLE:
        return shape_parsed
    if strategy_parsed is ShardingStrategy.CHUNK:
        return chunk_shape_parsed
    if strategy_parsed is ShardingStrategy.SUPERCHUNK:
        ndim = len(shape_parsed)
        out = []
        for axis, (s, c) in enumerate(zip(shape_parsed, chunk_shape_parsed, strict=True)):
            if axis >= ndim - 2 or s > c:
                out.append(min(2 * c, s))
            else:
                out.append(c)
        return tuple(out)
    # CUSTOM
    if shard_shape is None:
        raise ValueError("A shard shape is required for the CUSTOM sharding strategy.")
    shard_shape_parsed = parse_shapelike(shard_shape)
    _check_ranks(shape_parsed, shard_shape_parsed)
    return shard_shape_parsed


def is_compatible(chunk_shape: ShapeLike, shard_shape: ShapeLike, shape: ShapeLike) -> bool:
    """
    True if every axis of ``shard_shape`` holds a whole, positive number of chunks and does not
    exceed the array shape.
    """
    chunk_shape_parsed = parse_shapelike(chunk_shape)
    shard_shape_parsed = parse_shapelike(shard_shape)
    shape_parsed = parse_shapelike(shape)
    if not len(chunk_shape_parsed) == len(shard_shape_parsed) == len(shape_parsed):
        return False
    return all(
        c > 0 and u >= c and u % c == 0 and u <= s
        for c, u, s in zip(chunk_shape_parsed, shard_shape_parsed, shape_parsed, strict=True)
    )


def check_layout(chunk_shape: ShapeLike, shard_shape: ShapeLike, shape: ShapeLike) -> None:
    """
    Raises
    ------
    IncompatibleLayoutError
        If ``is_compatible(chunk_shape, shard_shape, shape)`` is False.
    """
    if not is_compatible(chunk_shape, shard_shape, shape):
        raise IncompatibleLayoutError(
            parse_shapelike(shard_shape), parse_shapelike(chunk_shape), parse_shapelike(shape)
        )


def clamp_chunk_shape(shape: ChunkCoords, chunk_shape: ChunkCoords) -> ChunkCoords:
    """Limit every chunk length to the array length along that axis, keeping it positive."""
    _check_ranks(shape, chunk_shape)
    return tuple(max(1, min(c, s)) for s, c in zip(shape, chunk_shape, strict=True))


def default_chunk_shape(shape: ShapeLike) -> ChunkCoords:
    """
    The chunk shape used when none is given: ``pyramid.default_chunk_size`` along the last two
    axes and 1 along the others, clamped to ``shape``.
    """
    shape_parsed = parse_shapelike(shape)
    size = config.get("pyramid.default_chunk_size")
    ndim = len(shape_parsed)
    chunk_shape = tuple(size if axis >= ndim - 2 else 1 for axis in range(ndim))
    return clamp_chunk_shape(shape_parsed, chunk_shape)


def resolve_layout(
    shape: ShapeLike,
    chunk_shape: ShapeLike,
    strategy: ShardingStrategy | str | None = None,
    shard_shape: ShapeLike | None = None,
) -> ArrayLayout:
    """
    Decide the stored-unit geometry of a new array.

    Without a strategy and without a shard shape the array is not sharded. A shard shape given
    without a strategy means ``CUSTOM``. When the derived shard shape is not compatible with the
    chunk shape, an ``IncompatibleLayoutWarning`` is emitted and the array is not sharded.
    """
    shape_parsed = parse_shapelike(shape)
    chunk_shape_parsed = clamp_chunk_shape(shape_parsed, parse_shapelike(chunk_shape))
    unsharded = ArrayLayout(
        chunk_shape=chunk_shape_parsed, shard_shape=chunk_shape_parsed, sharded=False
    )

    if strategy is None:
        if shard_shape is None:
            return unsharded
        strategy = ShardingStrategy.CUSTOM

    shard_shape_parsed = derive_shard_shape(
        shape_parsed, chunk_shape_parsed, strategy, shard_shape
    )
    logger.debug(
        "Trying shard shape %s for chunk shape %s and array shape %s",
        shard_shape_parsed,
        chunk_shape_parsed,
        shape_parsed,
    )
    if not is_compatible(chunk_shape_parsed, shard_shape_parsed, shape_parsed):
        warnings.warn(
            f"Skipping sharding due to incompatible sizes: shard shape {shard_shape_parsed}, "
            f"chunk shape {chunk_shape_parsed}, array shape {shape_parsed}. "
            "Each chunk is stored on its own.",
            category=IncompatibleLayoutWarning,
            stacklevel=2,
        )
        return unsharded
    return ArrayLayout(
        chunk_shape=chunk_shape_parsed, shard_shape=shard_shape_parsed, sharded=True
    )
