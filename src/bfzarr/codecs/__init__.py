from __future__ import annotations

from enum import Enum
from typing import Any

from bfzarr.abc.codec import BytesBytesCodec
from bfzarr.codecs.blosc import BloscCname, BloscCodec, BloscShuffle
from bfzarr.codecs.bytes import BytesCodec
from bfzarr.codecs.crc32c_ import Crc32cCodec
from bfzarr.codecs.gzip import GzipCodec
from bfzarr.codecs.sharding import ShardingCodec, ShardingCodecIndexLocation
from bfzarr.codecs.zstd import ZstdCodec
from bfzarr.registry import get_codec_class, registered_codec_names

__all__ = [
    "BloscCname",
    "BloscCodec",
    "BloscShuffle",
    "BytesCodec",
    "Compression",
    "Crc32cCodec",
    "GzipCodec",
    "ShardingCodec",
    "ShardingCodecIndexLocation",
    "ZstdCodec",
    "codec_from_name",
]


class Compression(Enum):
    """
    Compression choice of the imaging side at creation time.
    """

    NONE = "none"
    ZLIB = "zlib"

    def to_codecs(self) -> tuple[BytesBytesCodec, ...]:
        """The bytes-to-bytes codecs that implement this choice."""
        if self is Compression.ZLIB:
            return (GzipCodec(level=8),)
        return ()


# names the imaging side uses for registered codecs
_CODEC_ALIASES = {"crc32": "crc32c", "zlib": "gzip"}


def codec_from_name(name: str, **configuration: Any) -> BytesBytesCodec:
    """
    Build a bytes-to-bytes codec from its registered name.

    Parameters
    ----------
    name : str
        A codec name known to ``bfzarr.registry``, such as ``blosc``, ``crc32c``, ``gzip`` or
        ``zstd``. ``crc32`` and ``zlib`` are accepted as aliases of ``crc32c`` and ``gzip``.
        Case is ignored.
    **configuration
        Passed to the codec constructor.

    Raises
    ------
    ValueError
        If no codec is registered under the name, or the codec does not compress or check
        bytes.
    """
    key = name.lower()
    key = _CODEC_ALIASES.get(key, key)
    try:
        codec_cls = get_codec_class(key)
    except KeyError as e:
        known = sorted({*registered_codec_names(), *_CODEC_ALIASES})
        raise ValueError(f"Unknown codec name {name!r}. Expected one of {known}.") from e
    if not issubclass(codec_cls, BytesBytesCodec):
        raise ValueError(f"Codec {name!r} is not a bytes-to-bytes codec.")
    return codec_cls(**configuration)
