from __future__ import annotations

import pytest

from bfzarr.errors import (
    ArrayNotFoundError,
    BaseZarrError,
    ContainsArrayError,
    GroupNotFoundError,
    IncompatibleLayoutWarning,
    MalformedMetadataError,
    MetadataValidationError,
    NodeNotFoundError,
    NodeTypeValidationError,
    NotOpenedError,
    OutOfBoundsError,
    StoreUnavailableError,
    TypeMismatchError,
    UnsupportedElementTypeError,
    ZarrUserWarning,
)


@pytest.mark.parametrize(
    ("cls", "bases"),
    [
        (NotOpenedError, (RuntimeError,)),
        (OutOfBoundsError, (IndexError,)),
        (TypeMismatchError, (TypeError,)),
        (MalformedMetadataError, (MetadataValidationError,)),
        (NodeTypeValidationError, (MalformedMetadataError,)),
        (StoreUnavailableError, (OSError,)),
        (UnsupportedElementTypeError, (TypeError,)),
        (ArrayNotFoundError, (NodeNotFoundError, FileNotFoundError)),
        (GroupNotFoundError, (NodeNotFoundError, FileNotFoundError)),
        (ContainsArrayError, ()),
    ],
)
def test_hierarchy(cls: type[Exception], bases: tuple[type[Exception], ...]) -> None:
    assert issubclass(cls, BaseZarrError)
    assert issubclass(cls, ValueError)
    for base in bases:
        assert issubclass(cls, base)


def test_warning_hierarchy() -> None:
    assert issubclass(IncompatibleLayoutWarning, ZarrUserWarning)
    assert issubclass(ZarrUserWarning, UserWarning)


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (
            OutOfBoundsError([8, 0], [4, 4], "img/0", [10, 10]),
            "Region with offset [8, 0] and shape [4, 4] is out of bounds for array 'img/0' "
            "with shape [10, 10].",
        ),
        (
            TypeMismatchError("float32", "img", "uint8"),
            "Cannot write data with element type 'float32' to array 'img' with element type "
            "'uint8'.",
        ),
        (
            ArrayNotFoundError("memory://1", "a/b"),
            "No array found in store 'memory://1' at path 'a/b'",
        ),
        (
            NotOpenedError("read_region", "array handle 'img'"),
            "Cannot call 'read_region': array handle 'img' is not open.",
        ),
        (
            StoreUnavailableError("file:///data", "read", "c/0/0"),
            "Store 'file:///data' failed to read key 'c/0/0'.",
        ),
        (MalformedMetadataError("a", "not JSON"), "Malformed metadata document at path 'a': not JSON"),
    ],
)
def test_messages(error: Exception, expected: str) -> None:
    assert str(error) == expected


def test_single_argument_is_the_message() -> None:
    assert str(BaseZarrError("something broke")) == "something broke"
