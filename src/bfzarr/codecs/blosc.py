from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from functools import cached_property
from typing import TYPE_CHECKING, ClassVar, Literal

import numcodecs
from numcodecs.blosc import Blosc
from packaging.version import Version

from bfzarr.abc.codec import BytesBytesCodec
from bfzarr.core.buffer import Buffer, as_numpy_array_wrapper
from bfzarr.core.common import JSON, parse_enum, parse_named_configuration
from bfzarr.registry import register_codec

if TYPE_CHECKING:
    from typing import Self

    from bfzarr.core.array_spec import ArraySpec

# the blosc context is shared process wide; chunks are already spread over our own pool
numcodecs.blosc.use_threads = False

# numcodecs takes the typesize as a constructor argument from this release on
_NUMCODECS_TYPESIZE = Version(numcodecs.__version__) >= Version("0.16.0")


class BloscShuffle(Enum):
    """Shuffle filter applied before compression."""

    noshuffle = "noshuffle"
    shuffle = "shuffle"
    bitshuffle = "bitshuffle"

    @property
    def code(self) -> int:
        return _SHUFFLE_ORDER.index(self)

    @classmethod
    def from_int(cls, num: int) -> BloscShuffle:
        if not 0 <= num < len(_SHUFFLE_ORDER):
            raise ValueError(f"Value must be between 0 and 2. Got {num}.")
        return _SHUFFLE_ORDER[num]


_SHUFFLE_ORDER = (BloscShuffle.noshuffle, BloscShuffle.shuffle, BloscShuffle.bitshuffle)


class BloscCname(Enum):
    """Compressor used inside blosc."""

    lz4 = "lz4"
    lz4hc = "lz4hc"
    blosclz = "blosclz"
    zstd = "zstd"
    snappy = "snappy"
    zlib = "zlib"


def _parse_int(data: JSON, name: str) -> int:
    if isinstance(data, bool) or not isinstance(data, int):
        raise TypeError(f"Value of {name!r} must be an int. Got {type(data)} instead.")
    return data


def parse_typesize(data: JSON) -> int:
    typesize = _parse_int(data, "typesize")
    if typesize <= 0:
        raise ValueError(f"Value must be greater than 0. Got {typesize}.")
    return typesize


def parse_clevel(data: JSON) -> int:
    clevel = _parse_int(data, "clevel")
    if clevel not in range(10):
        raise ValueError(f"Value must be between 0 and 9. Got {clevel}.")
    return clevel


@dataclass(frozen=True)
class BloscCodec(BytesBytesCodec):
    """
    Blosc meta-compressor.

    ``typesize`` and ``shuffle`` may be left unset. They are filled in from the element type
    of the array by ``evolve_from_array_spec``, and must be set before the codec is written
    to metadata or used.
    """

    is_fixed_size: ClassVar[Literal[False]] = False
    name: ClassVar[Literal["blosc"]] = "blosc"

    typesize: int | None
    cname: BloscCname
    clevel: int
    shuffle: BloscShuffle | None
    blocksize: int

    def __init__(
        self,
        *,
        typesize: int | None = None,
        cname: BloscCname | str = BloscCname.zstd,
        clevel: int = 5,
        shuffle: BloscShuffle | str | None = None,
        blocksize: int = 0,
    ) -> None:
        object.__setattr__(
            self, "typesize", None if typesize is None else parse_typesize(typesize)
        )
        object.__setattr__(self, "cname", parse_enum(cname, BloscCname))
        object.__setattr__(self, "clevel", parse_clevel(clevel))
        object.__setattr__(
            self, "shuffle", None if shuffle is None else parse_enum(shuffle, BloscShuffle)
        )
        object.__setattr__(self, "blocksize", _parse_int(blocksize, "blocksize"))

    @classmethod
    def from_dict(cls, data: dict[str, JSON]) -> Self:
        _, configuration = parse_named_configuration(data, "blosc")
        return cls(**configuration)  # type: ignore[arg-type]

    def _require(self, attribute: str) -> None:
        if getattr(self, attribute) is None:
            raise ValueError(
                f"`{attribute}` needs to be set. Attach the codec to an array to infer it."
            )

    def to_dict(self) -> dict[str, JSON]:
        self._require("typesize")
        self._require("shuffle")
        return {
            "name": self.name,
            "configuration": {
                "typesize": self.typesize,
                "cname": self.cname.value,
                "clevel": self.clevel,
                "shuffle": self.shuffle.value,  # type: ignore[union-attr]
                "blocksize": self.blocksize,
            },
        }

    def evolve_from_array_spec(self, array_spec: ArraySpec) -> Self:
        item_size = array_spec.dtype.byte_count
        changes: dict[str, object] = {}
        if self.typesize is None:
            changes["typesize"] = item_size
        if self.shuffle is None:
            # byte shuffling is a no-op on single byte elements
            changes["shuffle"] = BloscShuffle.bitshuffle if item_size == 1 else BloscShuffle.shuffle
        return replace(self, **changes) if changes else self

    @cached_property
    def _blosc_codec(self) -> Blosc:
        self._require("shuffle")
        config: dict[str, JSON] = {
            "cname": self.cname.value,
            "clevel": self.clevel,
            "shuffle": self.shuffle.code,  # type: ignore[union-attr]
            "blocksize": self.blocksize,
        }
        if _NUMCODECS_TYPESIZE:
            config["typesize"] = self.typesize
        return Blosc.from_config(config)

    def _decode_sync(self, chunk_bytes: Buffer, chunk_spec: ArraySpec) -> Buffer:
        return as_numpy_array_wrapper(self._blosc_codec.decode, chunk_bytes)

    def _encode_sync(self, chunk_bytes: Buffer, chunk_spec: ArraySpec) -> Buffer | None:
        return as_numpy_array_wrapper(self._blosc_codec.encode, chunk_bytes)

    def compute_encoded_size(self, _input_byte_length: int, _chunk_spec: ArraySpec) -> int:
        raise NotImplementedError


register_codec("blosc", BloscCodec)
