from __future__ import annotations

import itertools
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Self

from bfzarr.core.chunk_grids import ChunkGrid
from bfzarr.core.common import (
    JSON,
    NamedConfig,
    ShapeLike,
    ceildiv,
    parse_named_configuration,
    parse_shapelike,
    product,
)

if TYPE_CHECKING:
    from collections.abc import Iterator


@dataclass(frozen=True)
class RegularChunkGrid(ChunkGrid):
    """A grid of equally sized stored units. Units on the upper edge of an axis may extend past
    the array and are padded with the fill value when stored."""

    chunk_shape: tuple[int, ...]

    def __init__(self, *, chunk_shape: ShapeLike) -> None:
        parsed = parse_shapelike(chunk_shape)
        if 0 in parsed:
            raise ValueError(f"Expected a chunk shape of positive integers. Got {chunk_shape}.")
        object.__setattr__(self, "chunk_shape", parsed)

    @classmethod
    def from_dict(cls, data: dict[str, JSON] | NamedConfig[str, Any]) -> Self:  # type: ignore[override]
        return cls(**parse_named_configuration(data, "regular")[1])  # type: ignore[arg-type]

    def to_dict(self) -> dict[str, JSON]:
        return {"name": "regular", "configuration": {"chunk_shape": tuple(self.chunk_shape)}}

    def get_chunk_grid_shape(self, array_shape: tuple[int, ...]) -> tuple[int, ...]:
        """The number of stored units along each axis."""
        return tuple(
            ceildiv(extent, size) for extent, size in zip(array_shape, self.chunk_shape, strict=True)
        )

    def all_chunk_coords(self, array_shape: tuple[int, ...]) -> Iterator[tuple[int, ...]]:
        return itertools.product(*map(range, self.get_chunk_grid_shape(array_shape)))

    def get_nchunks(self, array_shape: tuple[int, ...]) -> int:
        return product(self.get_chunk_grid_shape(array_shape))

    def get_chunk_start(self, chunk_coord: tuple[int, ...]) -> tuple[int, ...]:
        """The array index of the first element of a stored unit."""
        return tuple(c * size for c, size in zip(chunk_coord, self.chunk_shape, strict=True))
