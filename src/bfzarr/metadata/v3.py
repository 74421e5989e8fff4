from __future__ import annotations

import json
import math
import numbers
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Literal

import numpy as np

from bfzarr.abc.codec import ArrayArrayCodec, ArrayBytesCodec, BytesBytesCodec, Codec
from bfzarr.abc.metadata import Metadata
from bfzarr.core.array_spec import ArrayConfig, ArraySpec
from bfzarr.core.buffer import Buffer
from bfzarr.core.chunk_grids import ChunkGrid, RegularChunkGrid, parse_chunk_grid
from bfzarr.core.chunk_key_encodings import ChunkKeyEncoding, parse_chunk_key_encoding
from bfzarr.core.codec_pipeline import codecs_from_list
from bfzarr.core.common import ZARR_JSON, parse_shapelike
from bfzarr.core.config import config
from bfzarr.core.dtype import DataType
from bfzarr.errors import (
    MalformedMetadataError,
    NodeTypeValidationError,
)
from bfzarr.metadata.common import (
    json_convert,
    parse_attributes,
    parse_node_type,
    parse_zarr_format,
)
from bfzarr.registry import get_codec

if TYPE_CHECKING:
    from typing import Self

    from bfzarr.codecs.sharding import ShardingCodec
    from bfzarr.core.array_spec import ArrayConfigLike
    from bfzarr.core.chunk_key_encodings import ChunkKeyEncodingLike
    from bfzarr.core.common import JSON, ChunkCoords, ShapeLike

__all__ = [
    "ArrayV3Metadata",
    "GroupMetadata",
    "encode_fill_value",
    "parse_codecs",
    "parse_dimension_names",
    "parse_fill_value",
    "parse_node_metadata",
]

# JSON spellings of the non-finite floats
_SPECIAL_FLOATS: dict[str, float] = {
    "NaN": math.nan,
    "Infinity": math.inf,
    "-Infinity": -math.inf,
}


def parse_codecs(data: object) -> tuple[Codec, ...]:
    """
    Parse a list of codecs. Codec instances are passed through; names and
    ``{"name": ..., "configuration": ...}`` documents are resolved through the registry.
    """
    out: tuple[Codec, ...] = ()

    if not isinstance(data, Iterable) or isinstance(data, str | Mapping):
        raise TypeError(f"Expected an iterable of codecs, got {type(data)}")

    for c in data:
        if isinstance(
            c, ArrayArrayCodec | ArrayBytesCodec | BytesBytesCodec
        ):  # Can't use Codec here because of mypy limitation
            out += (c,)
        elif isinstance(c, str | Mapping):
            out += (get_codec(c),)
        else:
            raise TypeError(f"Expected a codec or a codec document. Got {c!r} instead.")

    return out


def parse_dimension_names(data: object) -> tuple[str | None, ...] | None:
    if data is None:
        return None
    if isinstance(data, Iterable) and not isinstance(data, str | Mapping):
        data_tuple = tuple(data)
        if all(isinstance(x, str | None) for x in data_tuple):
            return data_tuple
    msg = f"Expected either None or a iterable of strings or `None`. Got {data!r} instead."
    raise TypeError(msg)


def _parse_hex_float(fill_value: str, dtype: np.dtype[Any]) -> np.floating[Any]:
    # "0x7fc00000": the big-endian bytes of the value
    raw = int(fill_value, 16).to_bytes(dtype.itemsize, byteorder="big")
    return np.frombuffer(raw, dtype=dtype.newbyteorder(">"))[0].astype(dtype)  # type: ignore[no-any-return]


def parse_fill_value(fill_value: Any, data_type: DataType) -> np.generic:
    """
    Parse ``fill_value`` into a scalar of ``data_type``.

    ``None`` means zero. Floating point fill values may be given as ``"NaN"``, ``"Infinity"``,
    ``"-Infinity"`` or as a hex string of the value's bytes, as Zarr v3 stores them.

    Raises
    ------
    TypeError
        If the value has the wrong kind for the data type, e.g. a string for an integer type.
    ValueError
        If the value does not fit the data type.
    """
    dtype = data_type.to_numpy()
    if fill_value is None:
        return dtype.type(0)  # type: ignore[no-any-return]

    if data_type is DataType.bool:
        if isinstance(fill_value, bool | np.bool_):
            return np.bool_(fill_value)
        raise TypeError(f"Expected a boolean fill value for data type bool. Got {fill_value!r}.")

    if dtype.kind == "f":
        if isinstance(fill_value, str):
            if fill_value in _SPECIAL_FLOATS:
                return dtype.type(_SPECIAL_FLOATS[fill_value])  # type: ignore[no-any-return]
            if fill_value.startswith("0x") and len(fill_value) == 2 + 2 * dtype.itemsize:
                return _parse_hex_float(fill_value, dtype)
            raise ValueError(
                f"Invalid fill value {fill_value!r} for data type {data_type.value}. Strings "
                f"must be one of {list(_SPECIAL_FLOATS)} or a hex encoding of the value."
            )
        if isinstance(fill_value, bool | np.bool_) or not isinstance(fill_value, numbers.Real):
            raise TypeError(
                f"Expected a number as fill value for data type {data_type.value}. "
                f"Got {fill_value!r}."
            )
        value = dtype.type(fill_value)
        if np.isinf(value) and math.isfinite(fill_value):
            raise ValueError(f"Fill value {fill_value!r} overflows data type {data_type.value}.")
        return value  # type: ignore[no-any-return]

    # integers
    if isinstance(fill_value, bool | np.bool_) or not isinstance(fill_value, numbers.Real):
        raise TypeError(
            f"Expected an integer fill value for data type {data_type.value}. Got {fill_value!r}."
        )
    if not isinstance(fill_value, numbers.Integral):
        if not float(fill_value).is_integer():
            raise ValueError(
                f"Expected an integer fill value for data type {data_type.value}. "
                f"Got {fill_value!r}."
            )
        fill_value = int(fill_value)
    info = np.iinfo(dtype)
    if not info.min <= int(fill_value) <= info.max:
        raise ValueError(
            f"Fill value {fill_value!r} is out of range for data type {data_type.value} "
            f"({info.min} to {info.max})."
        )
    return dtype.type(fill_value)  # type: ignore[no-any-return]


def encode_fill_value(fill_value: Any, data_type: DataType) -> JSON:
    """The JSON form of a fill value."""
    if data_type is DataType.bool:
        return bool(fill_value)
    if data_type.to_numpy().kind == "f":
        value = float(fill_value)
        if math.isnan(value):
            return "NaN"
        if math.isinf(value):
            return "Infinity" if value > 0 else "-Infinity"
        return value
    return int(fill_value)


@dataclass(frozen=True, kw_only=True)
class ArrayV3Metadata(Metadata):
    shape: ChunkCoords
    data_type: DataType
    chunk_grid: ChunkGrid
    chunk_key_encoding: ChunkKeyEncoding
    fill_value: Any
    codecs: tuple[Codec, ...]
    attributes: dict[str, Any] = field(default_factory=dict)
    dimension_names: tuple[str | None, ...] | None = None
    zarr_format: Literal[3] = field(default=3, init=False)
    node_type: Literal["array"] = field(default="array", init=False)

    def __init__(
        self,
        *,
        shape: ShapeLike,
        data_type: DataType | str,
        chunk_grid: dict[str, JSON] | ChunkGrid,
        chunk_key_encoding: ChunkKeyEncodingLike,
        fill_value: Any,
        codecs: Iterable[Codec | dict[str, JSON]],
        attributes: None | dict[str, JSON] = None,
        dimension_names: Iterable[str | None] | None = None,
    ) -> None:
        """
        Because the class is a frozen dataclass, we set attributes using object.__setattr__
        """
        shape_parsed = parse_shapelike(shape)
        data_type_parsed = DataType.parse(data_type)
        chunk_grid_parsed = parse_chunk_grid(chunk_grid)
        chunk_key_encoding_parsed = parse_chunk_key_encoding(chunk_key_encoding)
        dimension_names_parsed = parse_dimension_names(dimension_names)
        fill_value_parsed = parse_fill_value(fill_value, data_type_parsed)
        attributes_parsed = parse_attributes(attributes)
        codecs_parsed_partial = parse_codecs(codecs)

        if not isinstance(chunk_grid_parsed, RegularChunkGrid):
            raise TypeError(f"Only regular chunk grids are supported. Got {chunk_grid_parsed!r}.")
        if len(shape_parsed) != len(chunk_grid_parsed.chunk_shape):
            raise ValueError(
                "`chunk_shape` and `shape` need to have the same number of dimensions. "
                f"Got shape {shape_parsed} and chunk shape {chunk_grid_parsed.chunk_shape}."
            )

        array_spec = ArraySpec(
            shape=chunk_grid_parsed.chunk_shape,
            dtype=data_type_parsed,
            fill_value=fill_value_parsed,
            config=ArrayConfig.from_dict({}),
        )
        codecs_parsed = tuple(c.evolve_from_array_spec(array_spec) for c in codecs_parsed_partial)

        object.__setattr__(self, "shape", shape_parsed)
        object.__setattr__(self, "data_type", data_type_parsed)
        object.__setattr__(self, "chunk_grid", chunk_grid_parsed)
        object.__setattr__(self, "chunk_key_encoding", chunk_key_encoding_parsed)
        object.__setattr__(self, "codecs", codecs_parsed)
        object.__setattr__(self, "dimension_names", dimension_names_parsed)
        object.__setattr__(self, "fill_value", fill_value_parsed)
        object.__setattr__(self, "attributes", attributes_parsed)

        self._validate_metadata()

    def _validate_metadata(self) -> None:
        if self.dimension_names is not None and len(self.shape) != len(self.dimension_names):
            msg = (
                "Invalid metadata. The length of the `dimension_names` attribute must match the "
                f"length of the `shape` attribute. Got `dimension_names`={self.dimension_names}, "
                f"with length={len(self.dimension_names)}, and `shape`={self.shape} with "
                f"length={len(self.shape)}"
            )
            raise ValueError(msg)

        codecs_from_list(self.codecs)
        for codec in self.codecs:
            codec.validate(shape=self.shape, dtype=self.data_type, chunk_grid=self.chunk_grid)

    @property
    def dtype(self) -> np.dtype[Any]:
        return self.data_type.to_numpy()

    @property
    def ndim(self) -> int:
        return len(self.shape)

    @property
    def chunks(self) -> ChunkCoords:
        """The shape of a stored unit: the shard shape when sharded, else the chunk shape."""
        return self.chunk_grid.chunk_shape  # type: ignore[attr-defined, no-any-return]

    @property
    def chunk_grid_shape(self) -> ChunkCoords:
        """The number of stored units along each axis."""
        return self.chunk_grid.get_chunk_grid_shape(self.shape)  # type: ignore[attr-defined, no-any-return]

    @property
    def sharding_codec(self) -> ShardingCodec | None:
        from bfzarr.codecs.sharding import ShardingCodec

        for codec in self.codecs:
            if isinstance(codec, ShardingCodec):
                return codec
        return None

    @property
    def sharded(self) -> bool:
        return self.sharding_codec is not None

    @property
    def chunk_shape(self) -> ChunkCoords:
        """The shape of the smallest independently encoded chunk."""
        sharding_codec = self.sharding_codec
        if sharding_codec is not None:
            return sharding_codec.chunk_shape
        return self.chunks

    @property
    def shard_shape(self) -> ChunkCoords | None:
        if self.sharded:
            return self.chunks
        return None

    @property
    def inner_codecs(self) -> tuple[Codec, ...]:
        """The codecs applied to every chunk, inside the shard when sharded."""
        sharding_codec = self.sharding_codec
        if sharding_codec is not None:
            return sharding_codec.codecs
        return self.codecs

    def get_chunk_spec(
        self, _chunk_coords: ChunkCoords, array_config: ArrayConfigLike | ArrayConfig
    ) -> ArraySpec:
        if not isinstance(array_config, ArrayConfig):
            array_config = ArrayConfig.from_dict(array_config)
        return ArraySpec(
            shape=self.chunks,
            dtype=self.data_type,
            fill_value=self.fill_value,
            config=array_config,
        )

    def encode_chunk_key(self, chunk_coords: ChunkCoords) -> str:
        return self.chunk_key_encoding.encode_chunk_key(chunk_coords)

    def to_buffer_dict(self) -> dict[str, Buffer]:
        json_indent = config.get("json_indent")
        return {
            ZARR_JSON: Buffer.from_bytes(
                json.dumps(
                    self.to_dict(), default=json_convert, indent=json_indent, allow_nan=False
                ).encode()
            )
        }

    @classmethod
    def from_dict(cls, data: dict[str, JSON]) -> Self:
        data_copy = dict(data)
        # check that the zarr_format attribute is correct
        parse_zarr_format(data_copy.pop("zarr_format", None))
        # check that the node_type attribute is correct
        node_type = data_copy.pop("node_type", None)
        if node_type != "array":
            raise NodeTypeValidationError("array", node_type)

        # storage transformers are not supported, but an empty list is allowed
        if data_copy.pop("storage_transformers", []):
            raise ValueError("Storage transformers are not supported.")

        # dimension_names and attributes are optional keys
        data_copy["dimension_names"] = data_copy.pop("dimension_names", None)
        data_copy["attributes"] = data_copy.pop("attributes", None)

        return cls(**data_copy)  # type: ignore[arg-type]

    def to_dict(self) -> dict[str, JSON]:
        out_dict = super().to_dict()
        out_dict["shape"] = list(self.shape)
        out_dict["data_type"] = self.data_type.value
        out_dict["fill_value"] = encode_fill_value(self.fill_value, self.data_type)
        out_dict["codecs"] = [c.to_dict() for c in self.codecs]
        out_dict["attributes"] = dict(self.attributes)

        # if `dimension_names` is `None`, we do not include it in
        # the metadata document
        if out_dict["dimension_names"] is None:
            out_dict.pop("dimension_names")
        else:
            out_dict["dimension_names"] = list(self.dimension_names or ())

        zarr_format = out_dict.pop("zarr_format")
        node_type = out_dict.pop("node_type")
        return {"zarr_format": zarr_format, "node_type": node_type, **out_dict}

    def update_attributes(self, attributes: Mapping[str, JSON]) -> Self:
        return replace(self, attributes=dict(attributes))


@dataclass(frozen=True)
class GroupMetadata(Metadata):
    """
    Metadata for a Group.
    """

    attributes: dict[str, Any] = field(default_factory=dict)
    zarr_format: Literal[3] = field(default=3, init=False)
    node_type: Literal["group"] = field(default="group", init=False)

    def __init__(self, attributes: dict[str, JSON] | None = None) -> None:
        object.__setattr__(self, "attributes", parse_attributes(attributes))

    def to_buffer_dict(self) -> dict[str, Buffer]:
        json_indent = config.get("json_indent")
        return {
            ZARR_JSON: Buffer.from_bytes(
                json.dumps(
                    self.to_dict(), default=json_convert, indent=json_indent, allow_nan=False
                ).encode()
            )
        }

    @classmethod
    def from_dict(cls, data: dict[str, JSON]) -> Self:
        data_copy = dict(data)
        parse_zarr_format(data_copy.pop("zarr_format", None))
        node_type = data_copy.pop("node_type", None)
        if node_type != "group":
            raise NodeTypeValidationError("group", node_type)
        return cls(**data_copy)  # type: ignore[arg-type]

    def to_dict(self) -> dict[str, JSON]:
        return {
            "zarr_format": self.zarr_format,
            "node_type": self.node_type,
            "attributes": dict(self.attributes),
        }

    def update_attributes(self, attributes: Mapping[str, JSON]) -> Self:
        return replace(self, attributes=dict(attributes))


def _describe(error: Exception) -> str:
    if isinstance(error, KeyError):
        return f"missing key {error}"
    return str(error)


def parse_node_metadata(
    data: Buffer | bytes | str, path: str = ""
) -> ArrayV3Metadata | GroupMetadata:
    """
    Decode a ``zarr.json`` document into array or group metadata.

    Parameters
    ----------
    data : Buffer, bytes or str
        The raw document.
    path : str
        The path of the node, used in error messages.

    Raises
    ------
    MalformedMetadataError
        If the document is not valid JSON, is not a JSON object, or does not describe a valid
        Zarr v3 array or group.
    """
    raw = data.to_bytes() if isinstance(data, Buffer) else data
    try:
        document = json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MalformedMetadataError(path, f"invalid JSON ({e})") from e
    if not isinstance(document, dict):
        raise MalformedMetadataError(
            path, f"expected a JSON object, got {type(document).__name__}"
        )

    try:
        node_type = parse_node_type(document.get("node_type"))
        if node_type == "array":
            return ArrayV3Metadata.from_dict(document)
        return GroupMetadata.from_dict(document)
    except MalformedMetadataError:
        raise
    except (KeyError, TypeError, ValueError) as e:
        raise MalformedMetadataError(path, _describe(e)) from e
