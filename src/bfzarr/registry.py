"""
Codec lookup by name.

Each codec name maps to one or more implementing classes. Codec modules register their classes
on import; the ``codecs.<name>`` config entry holds the fully qualified name of the class to use
when a name has several.
"""

from __future__ import annotations

import logging
import warnings
from collections import defaultdict
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from bfzarr.core.config import BadConfigError, config
from bfzarr.errors import ZarrUserWarning

if TYPE_CHECKING:
    from bfzarr.abc.codec import Codec

__all__ = [
    "fully_qualified_name",
    "get_codec",
    "get_codec_class",
    "register_codec",
    "registered_codec_names",
]

logger = logging.getLogger(__name__)

# codec name -> fully qualified class name -> class
_codec_classes: defaultdict[str, dict[str, type[Codec]]] = defaultdict(dict)


def fully_qualified_name(cls: type) -> str:
    return f"{cls.__module__}.{cls.__qualname__}"


def register_codec(key: str, codec_cls: type[Codec]) -> None:
    _codec_classes[key][fully_qualified_name(codec_cls)] = codec_cls


def _load_builtin_codecs() -> None:
    import bfzarr.codecs  # noqa: F401


def registered_codec_names() -> list[str]:
    _load_builtin_codecs()
    return sorted(name for name, classes in _codec_classes.items() if classes)


def get_codec_class(key: str) -> type[Codec]:
    """
    The class implementing the codec ``key``.

    Raises
    ------
    KeyError
        If nothing is registered under ``key``.
    BadConfigError
        If the config selects a class that is not registered under ``key``.
    """
    _load_builtin_codecs()
    classes = _codec_classes.get(key)
    if not classes:
        raise KeyError(key)

    selected = config.get("codecs", {}).get(key)
    if selected is not None:
        if selected not in classes:
            raise BadConfigError(
                f"Config entry 'codecs.{key}' selects {selected!r}, which is not registered. "
                f"Registered implementations: {sorted(classes)}."
            )
        return classes[selected]

    if len(classes) > 1:
        warnings.warn(
            f"Codec '{key}' not configured in config. Selecting any implementation.",
            category=ZarrUserWarning,
            stacklevel=2,
        )
    return list(classes.values())[-1]


def get_codec(request: str | Mapping[str, Any]) -> Codec:
    """
    A codec from its metadata document: a bare name, or a mapping with ``name`` and an optional
    ``configuration``.

    Raises
    ------
    ValueError
        If no codec of that name is known.
    """
    if isinstance(request, str):
        name, configuration = request, {}
    else:
        name, configuration = request["name"], dict(request.get("configuration", {}))
    try:
        codec_cls = get_codec_class(name)
    except KeyError as e:
        raise ValueError(f"Unknown codec: {name!r}") from e
    logger.debug("Resolved codec %r to %s", name, fully_qualified_name(codec_cls))
    return codec_cls.from_dict({"name": name, "configuration": configuration})
