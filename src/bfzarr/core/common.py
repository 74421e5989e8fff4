from __future__ import annotations

import math
import operator
from collections.abc import Iterable, Mapping, Sequence
from enum import Enum
from typing import Any, Final, Generic, Literal, NotRequired, TypedDict, TypeVar, cast

from typing_extensions import ReadOnly

ZARR_JSON = "zarr.json"

BytesLike = bytes | bytearray | memoryview
ShapeLike = Iterable[int] | int
ChunkCoords = tuple[int, ...]
NodeType = Literal["array", "group"]
JSON = str | int | float | Mapping[str, "JSON"] | Sequence["JSON"] | None
MemoryOrder = Literal["C", "F"]
AccessModeLiteral = Literal["r", "r+", "a", "w", "w-"]
ANY_ACCESS_MODE: Final = "r", "r+", "a", "w", "w-"

TName = TypeVar("TName", bound=str)
TConfig = TypeVar("TConfig", bound=Mapping[str, object])
E = TypeVar("E", bound=Enum)


class NamedConfig(TypedDict, Generic[TName, TConfig]):
    """The ``{"name": ..., "configuration": {...}}`` objects used for codecs, chunk grids and
    chunk key encodings."""

    name: ReadOnly[TName]
    configuration: NotRequired[ReadOnly[TConfig]]


def product(tup: Iterable[int]) -> int:
    return math.prod(tup)


def ceildiv(a: float, b: float) -> int:
    return 0 if a == 0 else math.ceil(a / b)


def parse_enum(data: object, cls: type[E]) -> E:
    """Accept a member of ``cls`` or its string value."""
    if isinstance(data, cls):
        return data
    if not isinstance(data, str):
        raise TypeError(f"Expected a {cls.__name__} or str, got {type(data)}.")
    for member in cls:
        if member.value == data:
            return member
    raise ValueError(f"Value must be one of {[m.value for m in cls]!r}. Got {data} instead.")


def parse_named_configuration(
    data: JSON | NamedConfig[str, Any],
    expected_name: str | None = None,
    *,
    require_configuration: bool = True,
) -> tuple[str, dict[str, JSON] | None]:
    """
    Split a named configuration into its name and configuration.

    A bare string is a name without configuration, which is only accepted when
    ``require_configuration`` is false.
    """
    if isinstance(data, str):
        name: object = data
        configuration: object = None
        has_configuration = False
    elif isinstance(data, dict):
        if "name" not in data:
            raise ValueError(f"Named configuration does not have a 'name' key. Got {data}.")
        name = data["name"]
        configuration = data.get("configuration")
        has_configuration = "configuration" in data
    else:
        raise TypeError(f"Expected a dict or str, got {type(data)}.")

    if not isinstance(name, str):
        raise TypeError(f"Expected the name to be a string, got {type(name)}.")
    if expected_name is not None and name != expected_name:
        raise ValueError(f"Expected '{expected_name}'. Got {name} instead.")
    if not has_configuration:
        if require_configuration:
            raise ValueError(
                f"Named configuration does not have a 'configuration' key. Got {data}."
            )
        return name, None
    if not isinstance(configuration, dict):
        raise TypeError(f"Expected the configuration to be a dict, got {type(configuration)}.")
    return name, cast("dict[str, JSON]", configuration)


def parse_shapelike(data: ShapeLike) -> tuple[int, ...]:
    """A shape as a tuple of non-negative ints. numpy integers pass, floats and bools do not."""
    try:
        values = (data,) if isinstance(data, int) else tuple(data)
        if any(isinstance(v, bool) for v in values):
            raise TypeError
        shape = tuple(operator.index(v) for v in values)
    except TypeError as e:
        raise TypeError(f"Expected an integer or an iterable of integers. Got {data} instead.") from e
    if any(v < 0 for v in shape):
        raise ValueError(f"Expected all values to be non-negative. Got {data} instead.")
    return shape


def parse_bool(data: Any) -> bool:
    if isinstance(data, bool):
        return data
    raise ValueError(f"Expected bool, got {data} instead.")
