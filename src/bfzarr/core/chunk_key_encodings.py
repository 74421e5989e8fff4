from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, ClassVar, Literal, TypeAlias, TypedDict, cast

from bfzarr.abc.metadata import Metadata
from bfzarr.core.common import JSON, parse_named_configuration

if TYPE_CHECKING:
    from typing import NotRequired, Self

    from bfzarr.core.common import ChunkCoords

SeparatorLiteral = Literal[".", "/"]


def parse_separator(data: JSON) -> SeparatorLiteral:
    if data == "." or data == "/":
        return cast("SeparatorLiteral", data)
    raise ValueError(f"Expected an '.' or '/' separator. Got {data} instead.")


class ChunkKeyEncodingMetadata(TypedDict):
    name: Literal["default", "v2"]
    configuration: NotRequired[dict[Literal["separator"], SeparatorLiteral]]


@dataclass(frozen=True)
class ChunkKeyEncoding(Metadata):
    """Maps the grid coordinates of a stored unit to its key under the array path."""

    name: ClassVar[str]
    separator: SeparatorLiteral = "/"

    def __init__(self, *, separator: SeparatorLiteral | None = None) -> None:
        if separator is None:
            separator = type(self).separator
        object.__setattr__(self, "separator", parse_separator(separator))

    @classmethod
    def from_dict(cls, data: dict[str, JSON] | ChunkKeyEncodingMetadata) -> Self:  # type: ignore[override]
        name, configuration = parse_named_configuration(data, require_configuration=False)
        encodings = {"default": DefaultChunkKeyEncoding, "v2": V2ChunkKeyEncoding}
        if name not in encodings:
            raise ValueError(
                f"Unknown chunk key encoding. Got {name}, expected one of ('v2', 'default')."
            )
        return encodings[name](**(configuration or {}))  # type: ignore[return-value, arg-type]

    def to_dict(self) -> dict[str, JSON]:
        return {"name": self.name, "configuration": {"separator": self.separator}}

    @abstractmethod
    def decode_chunk_key(self, chunk_key: str) -> ChunkCoords: ...

    @abstractmethod
    def encode_chunk_key(self, chunk_coords: ChunkCoords) -> str: ...


@dataclass(frozen=True, init=False)
class DefaultChunkKeyEncoding(ChunkKeyEncoding):
    """``c`` followed by the grid coordinates, ``c/1/0`` for the unit at (1, 0)."""

    name: ClassVar[Literal["default"]] = "default"
    separator: SeparatorLiteral = "/"

    def decode_chunk_key(self, chunk_key: str) -> ChunkCoords:
        prefix, *coords = chunk_key.split(self.separator)
        if prefix != "c":
            raise ValueError(f"Invalid chunk key {chunk_key!r}: expected it to start with 'c'.")
        return tuple(int(c) for c in coords)

    def encode_chunk_key(self, chunk_coords: ChunkCoords) -> str:
        return self.separator.join(["c", *(str(c) for c in chunk_coords)])


@dataclass(frozen=True, init=False)
class V2ChunkKeyEncoding(ChunkKeyEncoding):
    """The grid coordinates alone, ``1.0`` for the unit at (1, 0) and ``0`` for a scalar."""

    name: ClassVar[Literal["v2"]] = "v2"
    separator: SeparatorLiteral = "."

    def decode_chunk_key(self, chunk_key: str) -> ChunkCoords:
        return tuple(int(c) for c in chunk_key.split(self.separator))

    def encode_chunk_key(self, chunk_coords: ChunkCoords) -> str:
        if not chunk_coords:
            return "0"
        return self.separator.join(str(c) for c in chunk_coords)


ChunkKeyEncodingLike: TypeAlias = ChunkKeyEncodingMetadata | ChunkKeyEncoding


def parse_chunk_key_encoding(data: ChunkKeyEncodingLike) -> ChunkKeyEncoding:
    if isinstance(data, ChunkKeyEncoding):
        return data
    return ChunkKeyEncoding.from_dict(data)
