from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from typing import TYPE_CHECKING, Any, Literal, cast

import numpy as np

from bfzarr.errors import MetadataValidationError

if TYPE_CHECKING:
    from bfzarr.core.common import JSON, NodeType

__all__ = ["json_convert", "parse_attributes", "parse_node_type", "parse_zarr_format"]


def parse_attributes(data: None | Mapping[str, JSON]) -> dict[str, JSON]:
    """
    Parse attributes. If the input is None, return an empty dict. Otherwise the input must be a
    mapping with string keys; a shallow copy is returned.
    """
    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise TypeError(f"Expected a mapping of attributes. Got {type(data)} instead.")
    if not all(isinstance(k, str) for k in data):
        raise TypeError(f"Expected attribute names to be strings. Got {list(data)} instead.")
    return dict(data)


def parse_zarr_format(data: object) -> Literal[3]:
    if data == 3:
        return 3
    raise MetadataValidationError("zarr_format", 3, data)


def parse_node_type(data: object) -> NodeType:
    if data in ("array", "group"):
        return cast("NodeType", data)
    raise MetadataValidationError("node_type", "array or group", data)


def json_convert(o: Any) -> Any:
    """
    ``default`` hook for ``json.dumps``: numpy scalars and arrays become python values, enums
    their value.
    """
    if isinstance(o, np.generic):
        return o.item()
    if isinstance(o, np.ndarray):
        return o.tolist()
    if isinstance(o, Enum):
        return o.value
    raise TypeError(f"Object of type {type(o).__name__} is not JSON serializable")
