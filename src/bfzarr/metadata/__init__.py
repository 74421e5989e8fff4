from bfzarr.metadata.v3 import (
    ArrayV3Metadata,
    GroupMetadata,
    parse_codecs,
    parse_fill_value,
    parse_node_metadata,
)

__all__ = [
    "ArrayV3Metadata",
    "GroupMetadata",
    "parse_codecs",
    "parse_fill_value",
    "parse_node_metadata",
]
