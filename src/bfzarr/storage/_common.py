from __future__ import annotations

import json
import logging
import warnings
from pathlib import Path
from typing import TYPE_CHECKING, Any, Literal, TypeAlias

from bfzarr.abc.store import ByteRequest, Store
from bfzarr.core.buffer import Buffer
from bfzarr.core.common import ANY_ACCESS_MODE, ZARR_JSON, AccessModeLiteral
from bfzarr.errors import ContainsArrayError, ContainsGroupError, ZarrUserWarning
from bfzarr.storage._local import LocalStore
from bfzarr.storage._memory import MemoryStore
from bfzarr.storage._utils import _dereference_path, normalize_path

if TYPE_CHECKING:
    from collections.abc import Iterator

logger = logging.getLogger(__name__)

# schemes that name the local file system
_LOCAL_SCHEMES = ("file", "local")


class StorePath:
    """
    A location inside a store: the store plus a normalized key prefix.

    Most node-level code talks to a ``StorePath`` rather than to the store itself, so that
    keys are always resolved relative to the node.
    """

    store: Store
    path: str

    def __init__(self, store: Store, path: str = "") -> None:
        self.store = store
        self.path = normalize_path(path)

    @property
    def read_only(self) -> bool:
        return self.store.read_only

    @classmethod
    def open(cls, store: Store, path: str, mode: AccessModeLiteral | None = None) -> StorePath:
        """
        A StorePath on ``store`` prepared for access with ``mode``.

        ======  ========================================================================
        mode    effect
        ======  ========================================================================
        None    the store is used as it is
        'r'     a read-only copy of a writable store is used
        'r+'    the store must be writable
        'a'     the store must be writable
        'w'     the store must be writable, everything below ``path`` is removed
        'w-'    the store must be writable, nothing may exist below ``path``
        ======  ========================================================================

        Raises
        ------
        ValueError
            For an unknown mode, a read-only store with a mode other than 'r', or a writable
            store that cannot produce a read-only copy.
        FileExistsError
            For mode 'w-' when ``path`` already holds keys.
        """
        store._ensure_open()
        if mode is not None and mode not in ANY_ACCESS_MODE:
            raise ValueError(f"Invalid mode: {mode}, expected one of {ANY_ACCESS_MODE}")
        if mode is None:
            return cls(store, path)
        if mode == "r":
            return cls(_read_only_view(store), path)
        if store.read_only:
            raise ValueError(
                f"Store is read-only but mode is {mode!r}. Create a writable store or use 'r' mode."
            )

        store_path = cls(store, path)
        if mode == "w-" and not store_path.is_empty():
            raise FileExistsError(
                f"Cannot create '{path}' with mode 'w-' because it already contains data. "
                "Use mode 'w' to overwrite or 'a' to append."
            )
        if mode == "w":
            logger.debug("Clearing %s for mode 'w'", store_path)
            store_path.delete_dir()
        return store_path

    def get(self, byte_range: ByteRequest | None = None) -> Buffer | None:
        """The value at this path, ``None`` if there is none."""
        return self.store.get(self.path, byte_range=byte_range)

    def set(self, value: Buffer) -> None:
        self.store.set(self.path, value)

    def delete(self) -> None:
        self.store.delete(self.path)

    def delete_dir(self) -> None:
        """Remove every key below this path."""
        self.store.delete_dir(self.path)

    def exists(self) -> bool:
        return self.store.exists(self.path)

    def is_empty(self) -> bool:
        return self.store.is_empty(self.path)

    def list_dir(self) -> Iterator[str]:
        return self.store.list_dir(self.path)

    def __truediv__(self, other: str) -> StorePath:
        return type(self)(self.store, _dereference_path(self.path, other))

    def __str__(self) -> str:
        return _dereference_path(str(self.store), self.path)

    def __repr__(self) -> str:
        return f"StorePath({type(self.store).__name__}, '{self}')"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, StorePath):
            return (self.store, self.path) == (other.store, other.path)
        return NotImplemented


def _read_only_view(store: Store) -> Store:
    if store.read_only:
        return store
    make_copy = getattr(store, "with_read_only", None)
    if make_copy is None:
        raise ValueError(
            f"{store!r} is writable and cannot make a read-only copy of itself. "
            "Open the store read-only to use mode 'r'."
        )
    view: Store = make_copy(True)
    view._ensure_open()
    return view


StoreLike: TypeAlias = Store | StorePath | Path | str | dict[str, Buffer]


def _url_scheme(url: str) -> str | None:
    """The scheme of a URL, or of the first link of a chained URL; None for a plain path."""
    first = url.split("::", maxsplit=1)[0]
    if "://" not in first:
        return None
    return first.split("://", maxsplit=1)[0].lower()


def _is_known_fsspec_protocol(scheme: str) -> bool:
    from fsspec.registry import known_implementations, registry

    return scheme in known_implementations or scheme in registry


def _warn_on_plain_http_endpoint(url: str, storage_options: dict[str, Any]) -> None:
    endpoint = storage_options.get("endpoint_url") or storage_options.get(
        "client_kwargs", {}
    ).get("endpoint_url")
    if endpoint is not None and endpoint.lower().startswith("http://"):
        warnings.warn(
            f"Object storage for {url!r} is reached through the plain http endpoint "
            f"{endpoint!r}. Object storage is meant to be used with an https endpoint.",
            category=ZarrUserWarning,
            stacklevel=4,
        )


def _store_from_url(
    url: str, read_only: bool, storage_options: dict[str, Any] | None
) -> tuple[Store, bool]:
    """The store for a path or URL, and whether it consumed ``storage_options``."""
    from bfzarr.storage._fsspec import FsspecStore  # circular import

    scheme = _url_scheme(url)
    if scheme is None:
        return LocalStore(url, read_only=read_only), False
    if scheme in _LOCAL_SCHEMES:
        return LocalStore(url.split("://", maxsplit=1)[1], read_only=read_only), False
    if _is_known_fsspec_protocol(scheme):
        _warn_on_plain_http_endpoint(url, storage_options or {})
        store = FsspecStore.from_url(url, storage_options=storage_options, read_only=read_only)
        return store, True
    warnings.warn(
        f"Unknown URL scheme {scheme!r} in {url!r}. Opening it as a local path instead.",
        category=ZarrUserWarning,
        stacklevel=3,
    )
    return LocalStore(url, read_only=read_only), False


def make_store_path(
    store_like: StoreLike | None,
    *,
    path: str | None = "",
    mode: AccessModeLiteral | None = None,
    storage_options: dict[str, Any] | None = None,
) -> StorePath:
    """
    Convert a ``StoreLike`` object into a StorePath object.

    * A ``Store`` is used as-is, a ``StorePath`` is extended by ``path``.
    * ``None`` and ``dict`` give a ``MemoryStore``.
    * A ``Path`` or a string without a scheme gives a ``LocalStore``.
    * A URL whose scheme is a known fsspec protocol (``s3://``, ``gs://``, ``http(s)://``,
      ``memory://``, ...) gives an ``FsspecStore``. ``storage_options`` are passed to fsspec.
    * A URL with an unknown scheme warns and is opened as a local path.

    Parameters
    ----------
    store_like : StoreLike or None
        The object to convert.
    path : str or None, optional
        The path inside the store.
    mode : {'r', 'r+', 'a', 'w', 'w-'}, optional
        The access mode, see ``StorePath.open``. Stores opened here are read-only for mode 'r'.
    storage_options : dict, optional
        Options for fsspec filesystems.

    Raises
    ------
    TypeError
        If ``store_like`` has an unsupported type, or ``storage_options`` are given for a store
        that does not use them.

    Warns
    -----
    ZarrUserWarning
        If the URL scheme is unknown, or object storage is reached through a plain ``http://``
        endpoint.
    """
    path_normalized = normalize_path(path)
    used_storage_options = False
    if isinstance(store_like, StorePath):
        result = store_like / path_normalized
    else:
        read_only = mode == "r"
        store: Store
        match store_like:
            case Store():
                store = store_like
            case None:
                store = MemoryStore(read_only=read_only)
            case dict():
                store = MemoryStore(store_dict=store_like, read_only=read_only)
            case Path():
                store = LocalStore(store_like, read_only=read_only)
            case str():
                store, used_storage_options = _store_from_url(
                    store_like, read_only, storage_options
                )
            case _:
                raise TypeError(f"Unsupported type for store_like: '{type(store_like).__name__}'")
        result = StorePath.open(store, path=path_normalized, mode=mode)
        logger.debug("Opened %r with mode %r", result, mode)

    if storage_options and not used_storage_options:
        raise TypeError(
            "'storage_options' was provided but unused. "
            "'storage_options' is only used for fsspec filesystem stores."
        )
    return result


def contains_node(store_path: StorePath) -> Literal["array", "group", "nothing"]:
    """
    What the metadata document at ``store_path`` describes. A missing or unreadable document
    counts as nothing.
    """
    document = (store_path / ZARR_JSON).get()
    if document is None:
        return "nothing"
    try:
        node_type = json.loads(document.to_bytes())["node_type"]
    except (KeyError, TypeError, ValueError):
        logger.debug("Unreadable metadata document at %s", store_path)
        return "nothing"
    return node_type if node_type in ("array", "group") else "nothing"  # type: ignore[no-any-return]


def ensure_no_existing_node(store_path: StorePath) -> None:
    """
    Raise if there already is an array or group at ``store_path``.

    Raises
    ------
    ContainsArrayError, ContainsGroupError
    """
    match contains_node(store_path):
        case "array":
            raise ContainsArrayError(str(store_path.store), store_path.path)
        case "group":
            raise ContainsGroupError(str(store_path.store), store_path.path)
