import pytest

from bfzarr.codecs import (
    BloscCodec,
    Compression,
    Crc32cCodec,
    GzipCodec,
    ZstdCodec,
    codec_from_name,
)
from bfzarr.registry import register_codec


class TestCompression:
    @staticmethod
    def test_none_adds_no_codecs() -> None:
        assert Compression.NONE.to_codecs() == ()

    @staticmethod
    def test_zlib_is_gzip_level_8() -> None:
        assert Compression.ZLIB.to_codecs() == (GzipCodec(level=8),)

    @staticmethod
    @pytest.mark.parametrize(("value", "expected"), [("none", Compression.NONE), ("zlib", Compression.ZLIB)])
    def test_from_value(value: str, expected: Compression) -> None:
        assert Compression(value) is expected


class TestCodecFromName:
    @staticmethod
    @pytest.mark.parametrize(
        ("name", "cls"),
        [
            ("blosc", BloscCodec),
            ("crc32c", Crc32cCodec),
            ("crc32", Crc32cCodec),
            ("gzip", GzipCodec),
            ("zlib", GzipCodec),
            ("ZLIB", GzipCodec),
            ("zstd", ZstdCodec),
        ],
    )
    def test_known_names(name: str, cls: type) -> None:
        assert isinstance(codec_from_name(name), cls)

    @staticmethod
    def test_configuration_is_passed_on() -> None:
        assert codec_from_name("gzip", level=2) == GzipCodec(level=2)
        assert codec_from_name("zstd", level=3, checksum=True) == ZstdCodec(level=3, checksum=True)

    @staticmethod
    def test_unknown_name() -> None:
        with pytest.raises(ValueError, match="Unknown codec name 'lzma'"):
            codec_from_name("lzma")

    @staticmethod
    def test_registered_codec_is_found_by_name() -> None:
        class LowGzipCodec(GzipCodec):
            pass

        register_codec("lowgzip", LowGzipCodec)
        codec = codec_from_name("LowGzip", level=1)
        assert type(codec) is LowGzipCodec
        assert codec.level == 1

    @staticmethod
    def test_rejects_codecs_that_are_not_bytes_to_bytes() -> None:
        with pytest.raises(ValueError, match="'bytes' is not a bytes-to-bytes codec"):
            codec_from_name("bytes")
