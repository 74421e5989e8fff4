from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, fields
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from typing import Self

    from bfzarr.core.common import JSON

__all__ = ["Metadata"]


def _to_json(value: Any) -> Any:
    if isinstance(value, Metadata):
        return value.to_dict()
    if isinstance(value, Sequence) and not isinstance(value, str):
        return tuple(_to_json(item) for item in value)
    return value


@dataclass(frozen=True)
class Metadata:
    """Base of the metadata models. Models are frozen dataclasses whose fields are JSON values or
    other models."""

    def to_dict(self) -> dict[str, JSON]:
        """The fields of this model by name, with nested models turned into dicts as well."""
        return {field.name: _to_json(getattr(self, field.name)) for field in fields(self)}

    @classmethod
    def from_dict(cls, data: dict[str, JSON]) -> Self:
        return cls(**data)
