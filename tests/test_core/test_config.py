import pytest

from bfzarr.core.array_spec import ArrayConfig, parse_array_config
from bfzarr.core.config import config, parse_indexing_order


def test_config_defaults_set() -> None:
    assert config.get("array.order") == "C"
    assert config.get("array.write_empty_chunks") is False
    assert config.get("threading.max_workers") is None
    assert config.get("json_indent") == 2
    assert config.get("pyramid.default_chunk_size") == 512
    assert config.get("codecs.gzip") == "bfzarr.codecs.gzip.GzipCodec"


def test_config_set_is_scoped() -> None:
    with config.set({"array.write_empty_chunks": True}):
        assert config.get("array.write_empty_chunks") is True
    assert config.get("array.write_empty_chunks") is False


def test_config_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("BFZARR_THREADING__MAX_WORKERS", "3")
    config.refresh()
    assert config.get("threading.max_workers") == 3


class TestArrayConfig:
    @staticmethod
    def test_missing_keys_come_from_config() -> None:
        with config.set({"array.write_empty_chunks": True}):
            assert ArrayConfig.from_dict({"order": "F"}) == ArrayConfig(
                order="F", write_empty_chunks=True
            )

    @staticmethod
    def test_parse_array_config() -> None:
        default = ArrayConfig(order="C", write_empty_chunks=False)
        assert parse_array_config(None) == default
        assert parse_array_config(default) is default
        assert parse_array_config({"write_empty_chunks": True}).write_empty_chunks is True

    @staticmethod
    def test_invalid_order() -> None:
        with pytest.raises(ValueError, match=r"Expected one of \('C', 'F'\), got K instead."):
            ArrayConfig(order="K", write_empty_chunks=False)  # type: ignore[arg-type]


@pytest.mark.parametrize("order", ["C", "F"])
def test_parse_indexing_order(order: str) -> None:
    assert parse_indexing_order(order) == order
