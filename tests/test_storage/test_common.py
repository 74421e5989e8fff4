from __future__ import annotations

import re
import uuid
from pathlib import Path

import pytest

from bfzarr.core.buffer import Buffer
from bfzarr.errors import ContainsArrayError, ContainsGroupError, ZarrUserWarning
from bfzarr.storage import FsspecStore, LocalStore, MemoryStore, StorePath, make_store_path
from bfzarr.storage._common import contains_node, ensure_no_existing_node
from bfzarr.storage._utils import normalize_path


class TestMakeStorePath:
    @staticmethod
    def test_none() -> None:
        result = make_store_path(None)
        assert isinstance(result.store, MemoryStore)
        assert result.path == ""

    @staticmethod
    def test_dict() -> None:
        data = {"zarr.json": Buffer.from_bytes(b"{}")}
        result = make_store_path(data)
        assert isinstance(result.store, MemoryStore)
        assert result.store.get("zarr.json") == Buffer.from_bytes(b"{}")

    @staticmethod
    def test_store(memory_store: MemoryStore) -> None:
        result = make_store_path(memory_store, path="a/b")
        assert result.store is memory_store
        assert result.path == "a/b"

    @staticmethod
    def test_store_path(memory_store: MemoryStore) -> None:
        result = make_store_path(StorePath(memory_store, "a"), path="b")
        assert result == StorePath(memory_store, "a/b")

    @staticmethod
    @pytest.mark.parametrize("as_path", [True, False])
    def test_local_path(tmp_path: Path, as_path: bool) -> None:
        root = tmp_path / "data"
        result = make_store_path(root if as_path else str(root))
        assert result.store == LocalStore(root)
        assert root.is_dir()

    @staticmethod
    @pytest.mark.parametrize("scheme", ["file", "local"])
    def test_local_url(tmp_path: Path, scheme: str) -> None:
        root = tmp_path / "data"
        result = make_store_path(f"{scheme}://{root.as_posix()}")
        assert result.store == LocalStore(root)

    @staticmethod
    def test_fsspec_url() -> None:
        name = uuid.uuid4().hex
        result = make_store_path(f"memory://{name}", storage_options={})
        assert isinstance(result.store, FsspecStore)
        assert str(result.store) == f"memory://{name}"

    @staticmethod
    def test_unknown_scheme(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.chdir(tmp_path)
        with pytest.warns(ZarrUserWarning, match="Unknown URL scheme 'nosuchfs'"):
            result = make_store_path("nosuchfs://data")
        assert isinstance(result.store, LocalStore)

    @staticmethod
    def test_plain_http_endpoint() -> None:
        pytest.importorskip("s3fs")
        with pytest.warns(ZarrUserWarning, match="plain http endpoint"):
            result = make_store_path(
                "s3://bucket/data",
                storage_options={"endpoint_url": "http://localhost:9000", "anon": True},
            )
        assert isinstance(result.store, FsspecStore)

    @staticmethod
    def test_unused_storage_options(tmp_path: Path) -> None:
        with pytest.raises(TypeError, match="'storage_options' was provided but unused"):
            make_store_path(tmp_path, storage_options={"anon": True})

    @staticmethod
    def test_unsupported_type() -> None:
        with pytest.raises(TypeError, match="Unsupported type for store_like: 'int'"):
            make_store_path(1)  # type: ignore[arg-type]

    @staticmethod
    def test_mode_r_opens_read_only(tmp_path: Path) -> None:
        LocalStore.open(tmp_path)
        result = make_store_path(tmp_path, mode="r")
        assert result.read_only


class TestStorePathOpen:
    @staticmethod
    def test_invalid_mode(memory_store: MemoryStore) -> None:
        with pytest.raises(ValueError, match="Invalid mode"):
            StorePath.open(memory_store, "", mode="x")  # type: ignore[arg-type]

    @staticmethod
    def test_r_gives_read_only_copy(memory_store: MemoryStore) -> None:
        result = StorePath.open(memory_store, "a", mode="r")
        assert result.read_only
        assert not memory_store.read_only

    @staticmethod
    @pytest.mark.parametrize("mode", ["r+", "a", "w", "w-"])
    def test_read_only_store_needs_mode_r(mode: str) -> None:
        store = MemoryStore(read_only=True)
        with pytest.raises(ValueError, match=re.escape(f"Store is read-only but mode is {mode!r}")):
            StorePath.open(store, "", mode=mode)  # type: ignore[arg-type]

    @staticmethod
    def test_w_minus_on_existing_data(memory_store: MemoryStore) -> None:
        memory_store.set("a/zarr.json", Buffer.from_bytes(b"{}"))
        with pytest.raises(FileExistsError, match="already contains data"):
            StorePath.open(memory_store, "a", mode="w-")
        StorePath.open(memory_store, "b", mode="w-")

    @staticmethod
    def test_w_clears_path(memory_store: MemoryStore) -> None:
        memory_store.set("a/zarr.json", Buffer.from_bytes(b"{}"))
        memory_store.set("b/zarr.json", Buffer.from_bytes(b"{}"))
        StorePath.open(memory_store, "a", mode="w")
        assert sorted(memory_store.list()) == ["b/zarr.json"]

    @staticmethod
    @pytest.mark.parametrize("mode", ["a", "r+"])
    def test_keeps_data(memory_store: MemoryStore, mode: str) -> None:
        memory_store.set("a/zarr.json", Buffer.from_bytes(b"{}"))
        StorePath.open(memory_store, "a", mode=mode)  # type: ignore[arg-type]
        assert memory_store.exists("a/zarr.json")


class TestStorePath:
    @staticmethod
    def test_join_and_str(memory_store: MemoryStore) -> None:
        store_path = StorePath(memory_store, "a") / "b/c"
        assert store_path.path == "a/b/c"
        assert str(store_path) == f"{memory_store}/a/b/c"
        assert repr(store_path) == f"StorePath(MemoryStore, '{memory_store}/a/b/c')"

    @staticmethod
    def test_get_set_delete(memory_store: MemoryStore) -> None:
        store_path = StorePath(memory_store, "a/zarr.json")
        assert store_path.get() is None
        store_path.set(Buffer.from_bytes(b"{}"))
        assert store_path.exists()
        store_path.delete()
        assert not store_path.exists()


@pytest.mark.parametrize(
    ("path", "expected"),
    [
        (None, ""),
        ("", ""),
        ("/a//b/", "a/b"),
        ("a\\b", "a/b"),
        (b"a/b", "a/b"),
        (Path("a/b"), "a/b"),
    ],
)
def test_normalize_path(path: str | bytes | Path | None, expected: str) -> None:
    assert normalize_path(path) == expected


@pytest.mark.parametrize("path", ["a/../b", "./a"])
def test_normalize_path_dot_segments(path: str) -> None:
    with pytest.raises(ValueError, match="contains '.' or '..' segments"):
        normalize_path(path)


class TestNodeDetection:
    @staticmethod
    @pytest.mark.parametrize(
        ("document", "expected"),
        [
            (None, "nothing"),
            (b'{"zarr_format": 3, "node_type": "array"}', "array"),
            (b'{"zarr_format": 3, "node_type": "group"}', "group"),
            (b'{"zarr_format": 3}', "nothing"),
            (b"not json", "nothing"),
        ],
    )
    def test_contains_node(memory_store: MemoryStore, document: bytes | None, expected: str) -> None:
        if document is not None:
            memory_store.set("node/zarr.json", Buffer.from_bytes(document))
        assert contains_node(StorePath(memory_store, "node")) == expected

    @staticmethod
    def test_ensure_no_existing_node(memory_store: MemoryStore) -> None:
        ensure_no_existing_node(StorePath(memory_store, "node"))
        memory_store.set(
            "array/zarr.json", Buffer.from_bytes(b'{"zarr_format": 3, "node_type": "array"}')
        )
        memory_store.set(
            "group/zarr.json", Buffer.from_bytes(b'{"zarr_format": 3, "node_type": "group"}')
        )
        with pytest.raises(ContainsArrayError, match="An array exists in store"):
            ensure_no_existing_node(StorePath(memory_store, "array"))
        with pytest.raises(ContainsGroupError, match="A group exists in store"):
            ensure_no_existing_node(StorePath(memory_store, "group"))
