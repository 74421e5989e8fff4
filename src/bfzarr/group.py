from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any, Literal

from bfzarr.array import Array
from bfzarr.core.common import JSON, ZARR_JSON
from bfzarr.errors import GroupNotFoundError, NodeNotFoundError
from bfzarr.metadata import GroupMetadata, parse_node_metadata
from bfzarr.storage._common import (
    StoreLike,
    StorePath,
    contains_node,
    ensure_no_existing_node,
    make_store_path,
)

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping

    from bfzarr.abc.store import Store

logger = logging.getLogger(__name__)

__all__ = ["Group", "open_node"]


def open_node(store_path: StorePath, **kwargs: Any) -> Array | Group:
    """
    Open the array or group at ``store_path``. Keyword arguments are passed to ``Array``.

    Raises
    ------
    NodeNotFoundError
        If there is no metadata document at ``store_path``.
    MalformedMetadataError
        If the metadata document cannot be decoded.
    """
    metadata_bytes = (store_path / ZARR_JSON).get()
    if metadata_bytes is None:
        raise NodeNotFoundError(str(store_path.store), store_path.path)
    metadata = parse_node_metadata(metadata_bytes, store_path.path)
    if isinstance(metadata, GroupMetadata):
        return Group(metadata=metadata, store_path=store_path)
    return Array(metadata, store_path, **kwargs)


@dataclass(frozen=True)
class Group:
    """
    A named node of the hierarchy holding attributes and child nodes.

    Children are not recorded in the group metadata, they are found by listing the store.
    """

    metadata: GroupMetadata
    store_path: StorePath

    @classmethod
    def create(
        cls,
        store: StoreLike,
        *,
        attributes: dict[str, JSON] | None = None,
        overwrite: bool = False,
        path: str = "",
    ) -> Group:
        """
        Create a group and write its metadata.

        Raises
        ------
        ContainsArrayError, ContainsGroupError
            If a node already exists and ``overwrite`` is False.
        """
        store_path = make_store_path(store, path=path)
        if not overwrite:
            ensure_no_existing_node(store_path)
        elif store_path.store.supports_deletes:
            store_path.delete_dir()

        group = cls(metadata=GroupMetadata(attributes=attributes), store_path=store_path)
        group._save_metadata()
        return group

    @classmethod
    def open(cls, store: StoreLike, *, path: str = "") -> Group:
        """
        Open an existing group.

        Raises
        ------
        GroupNotFoundError
            If there is no group at this location.
        """
        store_path = make_store_path(store, path=path)
        metadata_bytes = (store_path / ZARR_JSON).get()
        if metadata_bytes is None:
            raise GroupNotFoundError(str(store_path.store), store_path.path)
        metadata = parse_node_metadata(metadata_bytes, store_path.path)
        if not isinstance(metadata, GroupMetadata):
            raise GroupNotFoundError(str(store_path.store), store_path.path)
        return cls(metadata=metadata, store_path=store_path)

    def _save_metadata(self) -> None:
        for key, value in self.metadata.to_buffer_dict().items():
            (self.store_path / key).set(value)
        logger.debug("Wrote group metadata to %s", self.store_path)

    @property
    def store(self) -> Store:
        return self.store_path.store

    @property
    def path(self) -> str:
        return self.store_path.path

    @property
    def name(self) -> str:
        return self.path.rsplit("/", maxsplit=1)[-1]

    @property
    def attrs(self) -> dict[str, JSON]:
        return dict(self.metadata.attributes)

    def __repr__(self) -> str:
        return f"<Group {self.store_path}>"

    def __getitem__(self, name: str) -> Array | Group:
        try:
            return open_node(self.store_path / name)
        except NodeNotFoundError as e:
            raise KeyError(name) from e

    def __contains__(self, name: str) -> bool:
        return contains_node(self.store_path / name) != "nothing"

    def _child_names(self, node_type: Literal["array", "group"] | None = None) -> Iterator[str]:
        for name in self.store_path.list_dir():
            if name == ZARR_JSON:
                continue
            kind = contains_node(self.store_path / name)
            if kind == "nothing":
                continue
            if node_type is None or kind == node_type:
                yield name

    def members(self) -> tuple[tuple[str, Array | Group], ...]:
        """The direct children of the group as ``(name, node)`` pairs, sorted by name."""
        return tuple((name, self[name]) for name in sorted(self._child_names()))

    def group_keys(self) -> list[str]:
        return sorted(self._child_names("group"))

    def array_keys(self) -> list[str]:
        return sorted(self._child_names("array"))

    def create_group(self, name: str, **kwargs: Any) -> Group:
        return type(self).create(self.store_path / name, **kwargs)

    def create_array(self, name: str, **kwargs: Any) -> Array:
        return Array.create(self.store_path / name, **kwargs)

    def update_attributes(self, new_attributes: Mapping[str, JSON]) -> Group:
        """Merge ``new_attributes`` into the attributes and write the metadata."""
        attributes = dict(self.metadata.attributes)
        attributes.update(new_attributes)
        new_group = replace(self, metadata=self.metadata.update_attributes(attributes))
        new_group._save_metadata()
        return new_group
