"""Run-level audit records: activities, execution items and MVO change history."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .enums import (
    ActivityStatus,
    AttributeDataType,
    ExecutionErrorType,
    InitiatorType,
    MetaverseChangeType,
    ObjectChangeType,
    SyncRunType,
    ValueChangeType,
)
from .objects import new_id, utc_now

if TYPE_CHECKING:
    from datetime import datetime
    from uuid import UUID

    from .values import ScalarValue


@dataclass(eq=False, kw_only=True)
class RunProfileExecutionItem:
    """Outcome of processing one connected system object during one run (RPEI)."""

    id: UUID = field(default_factory=new_id)
    activity_id: UUID | None = None
    connected_system_object_id: UUID | None = None
    object_change_type: ObjectChangeType = ObjectChangeType.NO_CHANGE
    error_type: ExecutionErrorType = ExecutionErrorType.NOT_SET
    error_message: str | None = None
    error_stack_trace: str | None = None
    attribute_flow_count: int | None = None
    created_at: datetime = field(default_factory=utc_now)

    @property
    def has_error(self) -> bool:
        return self.error_type is not ExecutionErrorType.NOT_SET

    def record_error(
        self,
        error_type: ExecutionErrorType,
        message: str,
        *,
        stack_trace: str | None = None,
    ) -> None:
        self.error_type = error_type
        self.error_message = message
        self.error_stack_trace = stack_trace


@dataclass(slots=True, kw_only=True)
class MetaverseObjectChangeAttributeValue:
    attribute: str
    value_change_type: ValueChangeType
    data_type: AttributeDataType = AttributeDataType.TEXT
    value: ScalarValue | None = None


@dataclass(eq=False, kw_only=True)
class MetaverseObjectChange:
    """Append-only audit entry describing how one MVO changed."""

    id: UUID = field(default_factory=new_id)
    metaverse_object_id: UUID | None = None
    change_type: MetaverseChangeType
    change_time: datetime = field(default_factory=utc_now)
    initiated_by_type: InitiatorType = InitiatorType.NOT_SET
    initiated_by_id: str | None = None
    initiated_by_name: str | None = None
    execution_item_id: UUID | None = None
    attribute_changes: list[MetaverseObjectChangeAttributeValue] = field(
        default_factory=list[MetaverseObjectChangeAttributeValue]
    )


@dataclass(slots=True, kw_only=True)
class ActivitySummary:
    total: int = 0
    creates: int = 0
    updates: int = 0
    flows: int = 0
    deletes: int = 0
    errors: int = 0
    by_change_type: dict[ObjectChangeType, int] = field(
        default_factory=dict[ObjectChangeType, int]
    )


@dataclass(eq=False, kw_only=True)
class Activity:
    """One synchronisation run against one connected system."""

    id: UUID = field(default_factory=new_id)
    connected_system_id: int
    run_type: SyncRunType = SyncRunType.FULL_SYNC
    status: ActivityStatus = ActivityStatus.IN_PROGRESS
    initiated_by_type: InitiatorType = InitiatorType.NOT_SET
    initiated_by_id: str | None = None
    initiated_by_name: str | None = None
    started_at: datetime = field(default_factory=utc_now)
    completed_at: datetime | None = None
    objects_to_process: int = 0
    objects_processed: int = 0
    error_message: str | None = None
    summary: ActivitySummary | None = None

    def prepare_execution_item(
        self,
        connected_system_object_id: UUID | None,
        *,
        object_change_type: ObjectChangeType = ObjectChangeType.NO_CHANGE,
    ) -> RunProfileExecutionItem:
        return RunProfileExecutionItem(
            activity_id=self.id,
            connected_system_object_id=connected_system_object_id,
            object_change_type=object_change_type,
        )

    @property
    def is_finished(self) -> bool:
        return self.status is not ActivityStatus.IN_PROGRESS
