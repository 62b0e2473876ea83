"""Pending exports: staged outbound changes awaiting export and confirmation."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .enums import (
    AttributeChangeType,
    AttributeDataType,
    PendingExportChangeType,
    PendingExportStatus,
)
from .objects import new_id, utc_now

if TYPE_CHECKING:
    from datetime import datetime
    from uuid import UUID

    from .values import ScalarValue


@dataclass(slots=True, kw_only=True)
class PendingExportAttributeValueChange:
    attribute: str
    change_type: AttributeChangeType
    data_type: AttributeDataType = AttributeDataType.TEXT
    value: ScalarValue | None = None


@dataclass(eq=False, kw_only=True)
class PendingExport:
    id: UUID = field(default_factory=new_id)
    connected_system_id: int
    connected_system_object_id: UUID
    change_type: PendingExportChangeType
    status: PendingExportStatus = PendingExportStatus.PENDING
    attribute_value_changes: list[PendingExportAttributeValueChange] = field(
        default_factory=list[PendingExportAttributeValueChange]
    )
    error_count: int = 0
    source_metaverse_object_id: UUID | None = None
    created_at: datetime = field(default_factory=utc_now)

    @property
    def awaiting_confirmation(self) -> bool:
        return self.status is PendingExportStatus.EXPORT_NOT_CONFIRMED

    def changes_for(self, attribute: str) -> list[PendingExportAttributeValueChange]:
        return [change for change in self.attribute_value_changes if change.attribute == attribute]
