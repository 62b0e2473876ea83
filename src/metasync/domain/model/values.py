"""Typed attribute values shared by connected system and metaverse objects.

A value carries its attribute name and data type so value lists can be
compared, serialised and diffed without a schema lookup. Reference values hold
the id of the referenced object: a CSO id on connected system objects, an MVO
id on metaverse objects. A metaverse reference may instead point at a
``MetaverseObject`` that has not been persisted yet; ``bind_reference`` swaps
the object for its id once the persistence layer has assigned one.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING
from uuid import UUID

from .enums import AttributeDataType

if TYPE_CHECKING:
    from collections.abc import Hashable

    from .objects import MetaverseObject


type ScalarValue = str | int | bool | datetime | UUID | bytes


@dataclass(slots=True, kw_only=True, frozen=True)
class AttributeDefinition:
    """Schema entry for one attribute of an object type."""

    name: str
    data_type: AttributeDataType
    multi_valued: bool = False


@dataclass(slots=True, kw_only=True, eq=False)
class AttributeValue:
    """One value of one attribute.

    Multi-valued attributes are represented by several ``AttributeValue``
    entries sharing the same ``attribute`` name. Instances compare by identity
    so pending removal lists can point at the exact value being removed.
    """

    attribute: str
    data_type: AttributeDataType
    value: ScalarValue | None = None
    reference: MetaverseObject | None = field(default=None, repr=False)
    contributed_by_system_id: int | None = None

    @property
    def is_reference(self) -> bool:
        return self.data_type is AttributeDataType.REFERENCE

    @property
    def reference_target(self) -> Hashable | None:
        """Identity of the referenced metaverse object (id, or the object while unsaved)."""

        if self.reference is not None:
            return self.reference.reference_key
        return self.value

    def bind_reference(self) -> None:
        if self.reference is None:
            return
        if self.reference.id is None:
            raise ValueError("Cannot bind a reference to a metaverse object without an id")
        self.value = self.reference.id
        self.reference = None

    def copy(self, *, attribute: str | None = None) -> AttributeValue:
        return AttributeValue(
            attribute=attribute or self.attribute,
            data_type=self.data_type,
            value=self.value,
            reference=self.reference,
            contributed_by_system_id=self.contributed_by_system_id,
        )


def convert_value(value: object, data_type: AttributeDataType) -> ScalarValue:  # noqa: PLR0911
    """Coerce ``value`` into the python type used for ``data_type``.

    Raises ``ValueError`` when the value cannot be represented.
    """

    match data_type:
        case AttributeDataType.TEXT:
            if isinstance(value, datetime):
                return value.isoformat()
            return str(value)
        case AttributeDataType.NUMBER | AttributeDataType.LONG_NUMBER:
            if isinstance(value, bool):
                return int(value)
            if isinstance(value, int):
                return value
            if isinstance(value, float) and value.is_integer():
                return int(value)
            return int(str(value).strip())
        case AttributeDataType.BOOLEAN:
            if isinstance(value, bool):
                return value
            normalized = str(value).strip().lower()
            if normalized in {"true", "1", "yes", "y"}:
                return True
            if normalized in {"false", "0", "no", "n"}:
                return False
            raise ValueError(f"Cannot convert {value!r} to boolean")
        case AttributeDataType.DATETIME:
            if isinstance(value, datetime):
                return value if value.tzinfo else value.replace(tzinfo=UTC)
            text = str(value).strip()
            if text.endswith("Z"):
                text = text[:-1] + "+00:00"
            parsed = datetime.fromisoformat(text)
            return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
        case AttributeDataType.GUID | AttributeDataType.REFERENCE:
            if isinstance(value, UUID):
                return value
            return UUID(str(value))
        case AttributeDataType.BINARY:
            if isinstance(value, bytes | bytearray | memoryview):
                return bytes(value)
            if isinstance(value, str):
                return value.encode()
            raise ValueError(f"Cannot convert {value!r} to binary")
    raise ValueError(f"Unsupported data type: {data_type}")


def values_for(values: list[AttributeValue], attribute: str) -> list[AttributeValue]:
    return [value for value in values if value.attribute == attribute]


def first_value(values: list[AttributeValue], attribute: str) -> ScalarValue | None:
    for value in values:
        if value.attribute == attribute:
            return value.value
    return None


def scalar_equals(
    left: ScalarValue | None,
    right: ScalarValue | None,
    *,
    case_sensitive: bool = True,
) -> bool:
    """Compare two scalars the way object matching does."""

    if isinstance(left, str) and isinstance(right, str) and not case_sensitive:
        return left.casefold() == right.casefold()
    return left == right
