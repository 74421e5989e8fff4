"""
Runtime configuration of bfzarr, kept in a donfig ``Config`` named ``bfzarr``.

Values can be changed for a block of code:

    ```python
    from bfzarr.core.config import config

    with config.set({"array.write_empty_chunks": True}):
        ...
    ```

or through environment variables such as ``BFZARR_THREADING__MAX_WORKERS=4``, where a double
underscore separates nested keys. The ``codecs`` section maps codec names to the class used
for them, see ``bfzarr.registry``.
"""

from __future__ import annotations

from typing import Any, Literal, cast

from donfig import Config as DConfig


class BadConfigError(ValueError):
    _msg = "bad Config: %r"


class Config(DConfig):  # type: ignore[misc]
    def reset(self) -> None:
        """Drop every value set at runtime and reload defaults and environment variables."""
        self.clear()
        self.refresh()


config = Config(
    "bfzarr",
    defaults=[
        {
            "array": {"order": "C", "write_empty_chunks": False},
            # None means one worker per cpu
            "threading": {"max_workers": None},
            "json_indent": 2,
            # edge length of default chunks along the trailing two dimensions
            "pyramid": {"default_chunk_size": 512},
            "codecs": {
                "blosc": "bfzarr.codecs.blosc.BloscCodec",
                "gzip": "bfzarr.codecs.gzip.GzipCodec",
                "zstd": "bfzarr.codecs.zstd.ZstdCodec",
                "bytes": "bfzarr.codecs.bytes.BytesCodec",
                "crc32c": "bfzarr.codecs.crc32c_.Crc32cCodec",
                "sharding_indexed": "bfzarr.codecs.sharding.ShardingCodec",
            },
        }
    ],
)


def parse_indexing_order(data: Any) -> Literal["C", "F"]:
    if data not in ("C", "F"):
        raise ValueError(f"Expected one of ('C', 'F'), got {data} instead.")
    return cast("Literal['C', 'F']", data)
