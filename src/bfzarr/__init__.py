from bfzarr.array import Array
from bfzarr.codecs import Compression
from bfzarr.core.config import config
from bfzarr.core.dtype import DataType, PixelType, to_array_type, to_pixel_type
from bfzarr.core.layout import ShardingStrategy
from bfzarr.group import Group, open_node
from bfzarr.pyramid import (
    PyramidDescriptor,
    ResolutionDescriptor,
    SeriesDescriptor,
    create_pyramid,
)
from bfzarr.service import ArrayHandle, ZarrService

__version__ = "0.1.0"

__all__ = [
    "Array",
    "ArrayHandle",
    "Compression",
    "DataType",
    "Group",
    "PixelType",
    "PyramidDescriptor",
    "ResolutionDescriptor",
    "SeriesDescriptor",
    "ShardingStrategy",
    "ZarrService",
    "__version__",
    "config",
    "create_pyramid",
    "open_node",
    "to_array_type",
    "to_pixel_type",
]
