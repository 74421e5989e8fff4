__all__ = [
    "ArrayNotFoundError",
    "BaseZarrError",
    "ContainsArrayError",
    "ContainsGroupError",
    "GroupNotFoundError",
    "IncompatibleLayoutError",
    "IncompatibleLayoutWarning",
    "MalformedMetadataError",
    "MetadataValidationError",
    "NodeNotFoundError",
    "NodeTypeValidationError",
    "NotOpenedError",
    "OutOfBoundsError",
    "StoreUnavailableError",
    "TypeMismatchError",
    "UnsupportedElementTypeError",
    "ZarrUserWarning",
]


class BaseZarrError(ValueError):
    """
    Base class for bfzarr errors.
    """

    _msg = "{}"

    def __init__(self, *args: object) -> None:
        if len(args) == 1:
            super().__init__(args[0])
        else:
            super().__init__(self._msg.format(*args))


class NodeNotFoundError(BaseZarrError, FileNotFoundError):
    """Raised when an array or group does not exist at a certain path."""

    _msg = "No array or group found in store {!r} at path {!r}"


class GroupNotFoundError(NodeNotFoundError):
    """
    Raised when a group isn't found at a certain path.
    """

    _msg = "No group found in store {!r} at path {!r}"


class ArrayNotFoundError(NodeNotFoundError):
    """Raised when an array does not exist at a certain path."""

    _msg = "No array found in store {!r} at path {!r}"


class ContainsGroupError(BaseZarrError):
    """Raised when a group already exists at a certain path."""

    _msg = "A group exists in store {!r} at path {!r}."


class ContainsArrayError(BaseZarrError):
    """Raised when an array already exists at a certain path."""

    _msg = "An array exists in store {!r} at path {!r}."


class MetadataValidationError(BaseZarrError):
    """Raised when the Zarr metadata is invalid in some way"""

    _msg = "Invalid value for '{}'. Expected '{}'. Got '{}'."


class MalformedMetadataError(MetadataValidationError):
    """
    Raised when a persisted metadata document fails structural validation while it is
    decoded. No node is constructed from a malformed document.
    """

    _msg = "Malformed metadata document at path {!r}: {}"


class NodeTypeValidationError(MalformedMetadataError):
    """
    Specialized exception when the node_type of the metadata document is incorrect.

    This can be raised when the value is invalid or unexpected given the context,
    for example an 'array' node when we expected a 'group'.
    """

    _msg = "Invalid value for 'node_type'. Expected '{}'. Got '{}'."


class NotOpenedError(BaseZarrError, RuntimeError):
    """Raised when an operation is attempted on a handle or service that is not open."""

    _msg = "Cannot call {!r}: {} is not open."


class OutOfBoundsError(BaseZarrError, IndexError):
    """Raised when a region request does not fit inside the extent of an array."""

    _msg = "Region with offset {} and shape {} is out of bounds for array {!r} with shape {}."


class TypeMismatchError(BaseZarrError, TypeError):
    """Raised when the element type of a write buffer differs from the array element type."""

    _msg = "Cannot write data with element type {!r} to array {!r} with element type {!r}."


class IncompatibleLayoutError(BaseZarrError):
    """Raised when a shard shape cannot hold a whole number of chunks of the array."""

    _msg = "Shard shape {} is not compatible with chunk shape {} for an array of shape {}."


class StoreUnavailableError(BaseZarrError, OSError):
    """Raised when the byte store fails for any reason other than a missing key."""

    _msg = "Store {!r} failed to {} key {!r}."


class UnsupportedElementTypeError(BaseZarrError, TypeError):
    """Raised when an element type has no counterpart in the requested type system."""

    _msg = "Element type {!r} has no {} counterpart."


class ZarrUserWarning(UserWarning):
    """
    A warning intended for end users raised to indicate possible misuse of bfzarr.
    """


class IncompatibleLayoutWarning(ZarrUserWarning):
    """
    Emitted when the requested sharding layout is rejected and the array falls back to
    unsharded chunks.
    """
