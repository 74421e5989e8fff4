from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

import pytest

from bfzarr.core.config import config
from bfzarr.storage import FsspecStore, LocalStore, MemoryStore, ZipStore

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path

    from bfzarr.abc.store import Store


@pytest.fixture
def memory_store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def local_store(tmp_path: Path) -> LocalStore:
    return LocalStore(tmp_path / "root")


@pytest.fixture
def store(request: pytest.FixtureRequest, tmp_path: Path) -> Iterator[Store]:
    """A fresh store of the kind named by the indirect parameter, ``memory`` by default."""
    param = getattr(request, "param", "memory")
    result: Store
    if param == "memory":
        result = MemoryStore()
    elif param == "local":
        result = LocalStore(tmp_path / "root")
    elif param == "zip":
        result = ZipStore(tmp_path / "store.zip", mode="w")
    elif param == "fsspec":
        result = FsspecStore.from_url(f"memory://{uuid.uuid4().hex}")
    else:
        raise NotImplementedError(f"Unknown store kind {param!r}")
    yield result
    result.close()


@pytest.fixture(autouse=True)
def reset_config() -> Iterator[None]:
    config.reset()
    yield
    config.reset()
