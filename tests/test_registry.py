from __future__ import annotations

import pytest

from bfzarr.codecs import BytesCodec, Crc32cCodec, GzipCodec
from bfzarr.core.config import BadConfigError, config
from bfzarr.registry import (
    fully_qualified_name,
    get_codec,
    get_codec_class,
    register_codec,
    registered_codec_names,
)


class _RegistryTestCodec(Crc32cCodec):
    pass


def test_builtin_codecs_registered() -> None:
    assert set(registered_codec_names()) >= {
        "blosc",
        "bytes",
        "crc32c",
        "gzip",
        "sharding_indexed",
        "zstd",
    }


@pytest.mark.parametrize(
    ("request_", "expected"),
    [
        ("crc32c", Crc32cCodec()),
        ({"name": "gzip", "configuration": {"level": 3}}, GzipCodec(level=3)),
        ({"name": "bytes", "configuration": {"endian": "big"}}, BytesCodec(endian="big")),
    ],
)
def test_get_codec(request_: object, expected: object) -> None:
    assert get_codec(request_) == expected  # type: ignore[arg-type]


def test_get_codec_unknown() -> None:
    with pytest.raises(ValueError, match="Unknown codec: 'lzma'"):
        get_codec("lzma")


def test_get_codec_class_unknown() -> None:
    with pytest.raises(KeyError):
        get_codec_class("lzma")


def test_config_selects_implementation() -> None:
    register_codec("crc32c", _RegistryTestCodec)
    assert get_codec_class("crc32c") is Crc32cCodec
    with config.set({"codecs.crc32c": fully_qualified_name(_RegistryTestCodec)}):
        assert get_codec_class("crc32c") is _RegistryTestCodec


def test_config_selects_unregistered_implementation() -> None:
    with (
        config.set({"codecs.gzip": "mypackage.MyGzip"}),
        pytest.raises(BadConfigError, match="not registered"),
    ):
        get_codec_class("gzip")
