"""
Creation of multi-series, multi-resolution image hierarchies.

A pyramid holds one or more series, each made of one or more resolution levels. Nodes are named
by their index:

* several series: a group at the root with one child per series (``"0"``, ``"1"``, ...);
* a series with several resolutions: a group with one array per resolution;
* a series with a single resolution: the series node is that array.

One series with one resolution is therefore a single array at the root.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from bfzarr.array import Array
from bfzarr.codecs import Compression
from bfzarr.core.common import parse_shapelike
from bfzarr.core.dtype import DataType, PixelType
from bfzarr.group import Group
from bfzarr.storage._common import StoreLike, StorePath, make_store_path

if TYPE_CHECKING:
    from bfzarr.abc.codec import Codec
    from bfzarr.core.common import JSON, ChunkCoords, ShapeLike
    from bfzarr.core.layout import ShardingStrategy
    from bfzarr.core.lock import Synchronizer

logger = logging.getLogger(__name__)

__all__ = ["PyramidDescriptor", "ResolutionDescriptor", "SeriesDescriptor", "create_pyramid"]


@dataclass(frozen=True)
class ResolutionDescriptor:
    """The shape and element type of one resolution level."""

    shape: ChunkCoords
    element_type: DataType

    def __init__(self, shape: ShapeLike, element_type: DataType | PixelType | str) -> None:
        object.__setattr__(self, "shape", parse_shapelike(shape))
        object.__setattr__(self, "element_type", DataType.parse(element_type))


@dataclass(frozen=True)
class SeriesDescriptor:
    """The resolution levels of one series, full resolution first."""

    resolutions: tuple[ResolutionDescriptor, ...]

    def __init__(self, resolutions: Iterable[ResolutionDescriptor]) -> None:
        object.__setattr__(self, "resolutions", tuple(resolutions))


@dataclass(frozen=True)
class PyramidDescriptor:
    series: tuple[SeriesDescriptor, ...]

    def __init__(self, series: Iterable[SeriesDescriptor]) -> None:
        object.__setattr__(self, "series", tuple(series))

    def validate(self) -> None:
        if len(self.series) == 0:
            raise ValueError("A pyramid needs at least one series.")
        for index, series in enumerate(self.series):
            if len(series.resolutions) == 0:
                raise ValueError(f"Series {index} has no resolutions.")


def _create_resolution(
    store_path: StorePath,
    resolution: ResolutionDescriptor,
    *,
    attributes: dict[str, JSON] | None,
    chunk_shape: ShapeLike | None,
    array_kwargs: dict[str, Any],
) -> Array:
    return Array.create(
        store_path,
        shape=resolution.shape,
        dtype=resolution.element_type,
        chunk_shape=chunk_shape,
        attributes=attributes,
        **array_kwargs,
    )


def _create_series(
    store_path: StorePath,
    series: SeriesDescriptor,
    *,
    attributes: dict[str, JSON] | None,
    chunk_shape: ShapeLike | None,
    overwrite: bool,
    array_kwargs: dict[str, Any],
) -> Array | Group:
    if len(series.resolutions) == 1:
        return _create_resolution(
            store_path,
            series.resolutions[0],
            attributes=attributes,
            chunk_shape=chunk_shape,
            array_kwargs={**array_kwargs, "overwrite": overwrite},
        )
    group = Group.create(store_path, attributes=attributes, overwrite=overwrite)
    for index, resolution in enumerate(series.resolutions):
        _create_resolution(
            store_path / str(index),
            resolution,
            attributes=None,
            chunk_shape=chunk_shape,
            array_kwargs={**array_kwargs, "overwrite": overwrite},
        )
    return group


def create_pyramid(
    store: StoreLike,
    descriptor: PyramidDescriptor,
    *,
    path: str = "",
    chunk_shape: ShapeLike | None = None,
    strategy: ShardingStrategy | str | None = None,
    shard_shape: ShapeLike | None = None,
    codecs: Iterable[Codec | dict[str, JSON] | str] | None = None,
    compression: Compression = Compression.NONE,
    fill_value: Any | None = None,
    attributes: dict[str, JSON] | None = None,
    overwrite: bool = False,
    synchronizer: Synchronizer | None = None,
) -> Array | Group:
    """
    Create the groups and arrays described by ``descriptor`` below ``path``.

    Every array gets the same chunking, sharding and codec settings. When ``chunk_shape`` is None
    each array uses ``default_chunk_shape`` of its own shape. The layout of each array is resolved
    separately, so a shard shape that does not fit a small resolution level only disables
    sharding for that level.

    Parameters
    ----------
    store : StoreLike
        Where to create the pyramid.
    descriptor : PyramidDescriptor
        The series and resolution levels.
    attributes : dict, optional
        Attributes of the root node.

    Returns
    -------
    Array or Group
        The root node of the pyramid.

    Raises
    ------
    ValueError
        If the descriptor has no series, or a series has no resolutions.
    """
    descriptor.validate()
    store_path = make_store_path(store, path=path)
    array_kwargs: dict[str, Any] = {
        "strategy": strategy,
        "shard_shape": shard_shape,
        "codecs": None if codecs is None else tuple(codecs),
        "compression": compression,
        "fill_value": fill_value,
        "synchronizer": synchronizer,
    }

    root: Array | Group
    if len(descriptor.series) == 1:
        root = _create_series(
            store_path,
            descriptor.series[0],
            attributes=attributes,
            chunk_shape=chunk_shape,
            overwrite=overwrite,
            array_kwargs=array_kwargs,
        )
    else:
        root = Group.create(store_path, attributes=attributes, overwrite=overwrite)
        for index, series in enumerate(descriptor.series):
            _create_series(
                store_path / str(index),
                series,
                attributes=None,
                chunk_shape=chunk_shape,
                overwrite=overwrite,
                array_kwargs=array_kwargs,
            )
    logger.debug("Created pyramid at %s with %d series", store_path, len(descriptor.series))
    return root
