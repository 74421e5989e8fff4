from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from bfzarr.abc.metadata import Metadata
from bfzarr.core.common import JSON, NamedConfig, parse_named_configuration

if TYPE_CHECKING:
    from collections.abc import Iterator
    from typing import Self

__all__ = ["ChunkGrid", "RegularChunkGrid", "parse_chunk_grid"]


@dataclass(frozen=True)
class ChunkGrid(Metadata):
    """Partitions an array into stored units."""

    @classmethod
    def from_dict(cls, data: dict[str, JSON] | NamedConfig[str, Any]) -> Self:  # type: ignore[override]
        if isinstance(data, ChunkGrid):
            return data  # type: ignore[return-value]

        name_parsed, _ = parse_named_configuration(data)
        if name_parsed == "regular":
            return RegularChunkGrid.from_dict(data)  # type: ignore[return-value]
        raise ValueError(f"Unknown chunk grid. Got {name_parsed}.")

    @abstractmethod
    def all_chunk_coords(self, array_shape: tuple[int, ...]) -> Iterator[tuple[int, ...]]:
        pass

    @abstractmethod
    def get_nchunks(self, array_shape: tuple[int, ...]) -> int:
        pass


def parse_chunk_grid(data: dict[str, JSON] | ChunkGrid | NamedConfig[str, Any]) -> ChunkGrid:
    if isinstance(data, ChunkGrid):
        return data
    return ChunkGrid.from_dict(data)


from bfzarr.core.chunk_grids.regular import RegularChunkGrid  # noqa: E402
