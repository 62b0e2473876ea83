"""SQLAlchemy mapping metadata for the metasync domain model."""

from __future__ import annotations

import base64
import json
import logging
import uuid
from datetime import UTC, datetime
from functools import cache
from typing import TYPE_CHECKING, Any, cast

from sqlalchemy import (
    Column,
    DateTime,
    Dialect,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    TypeDecorator,
    Uuid,
    orm,
)
from sqlalchemy.orm import configure_mappers

from metasync.domain.model import (
    Activity,
    ActivityStatus,
    ActivitySummary,
    AttributeChangeType,
    AttributeDataType,
    AttributeValue,
    ConnectedSystemObject,
    ConnectedSystemObjectStatus,
    ExecutionErrorType,
    InitiatorType,
    JoinType,
    MetaverseChangeType,
    MetaverseObject,
    MetaverseObjectChange,
    MetaverseObjectChangeAttributeValue,
    MetaverseObjectOrigin,
    ObjectChangeType,
    PendingExport,
    PendingExportAttributeValueChange,
    PendingExportChangeType,
    PendingExportStatus,
    RunProfileExecutionItem,
    SyncRunType,
    ValueChangeType,
)

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

    from metasync.domain.model import ScalarValue

log = logging.getLogger(__name__)

UUIDColumnType = Uuid[uuid.UUID]


# Scalar codec -----------------------------------------------------------------


def encode_scalar(value: ScalarValue | None, data_type: AttributeDataType) -> object:
    """Return a JSON-compatible representation of ``value``."""

    if value is None:
        return None
    match data_type:
        case AttributeDataType.DATETIME:
            if isinstance(value, datetime):
                return value.astimezone(UTC).isoformat()
            return str(value)
        case AttributeDataType.GUID | AttributeDataType.REFERENCE:
            return str(value)
        case AttributeDataType.BINARY:
            if isinstance(value, bytes):
                return base64.b64encode(value).decode("ascii")
            return str(value)
        case _:
            return value


def decode_scalar(raw: object, data_type: AttributeDataType) -> ScalarValue | None:
    if raw is None:
        return None
    match data_type:
        case AttributeDataType.DATETIME:
            parsed = datetime.fromisoformat(str(raw))
            return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
        case AttributeDataType.GUID | AttributeDataType.REFERENCE:
            return uuid.UUID(str(raw))
        case AttributeDataType.BINARY:
            return base64.b64decode(str(raw))
        case AttributeDataType.BOOLEAN:
            return bool(raw)
        case AttributeDataType.NUMBER | AttributeDataType.LONG_NUMBER:
            return int(cast(int, raw))
        case _:
            return str(raw)


def _load_list(value: str | None) -> list[dict[str, Any]]:
    if value is None:
        return []
    loaded = json.loads(value)
    if not isinstance(loaded, list):
        return []
    items = cast(list[Any], loaded)
    return [cast(dict[str, Any], item) for item in items if isinstance(item, dict)]


# Column types -----------------------------------------------------------------


class UTCDateTime(TypeDecorator[datetime]):
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        return value if value.tzinfo else value.replace(tzinfo=UTC)


class AttributeValueListType(TypeDecorator[list[AttributeValue]]):
    """Typed attribute values stored as one JSON array.

    Unbound metaverse references (``reference`` set, no id yet) are written
    with a null value; the engine binds and re-saves them once ids exist.
    """

    impl = Text
    cache_ok = True

    def process_bind_param(
        self,
        value: list[AttributeValue] | None,
        dialect: Dialect,
    ) -> str | None:
        _ = dialect
        if value is None:
            return None
        payload = [
            {
                "attribute": item.attribute,
                "data_type": item.data_type.value,
                "value": encode_scalar(
                    item.reference.id if item.reference is not None else item.value,
                    item.data_type,
                ),
                "contributed_by_system_id": item.contributed_by_system_id,
            }
            for item in value
        ]
        return json.dumps(payload, ensure_ascii=False)

    def process_result_value(self, value: str | None, dialect: Dialect) -> list[AttributeValue]:
        _ = dialect
        values: list[AttributeValue] = []
        for item in _load_list(value):
            data_type = AttributeDataType(item["data_type"])
            values.append(
                AttributeValue(
                    attribute=str(item["attribute"]),
                    data_type=data_type,
                    value=decode_scalar(item.get("value"), data_type),
                    contributed_by_system_id=item.get("contributed_by_system_id"),
                )
            )
        return values


class PendingExportChangeListType(TypeDecorator[list[PendingExportAttributeValueChange]]):
    impl = Text
    cache_ok = True

    def process_bind_param(
        self,
        value: list[PendingExportAttributeValueChange] | None,
        dialect: Dialect,
    ) -> str | None:
        _ = dialect
        if value is None:
            return None
        payload = [
            {
                "attribute": item.attribute,
                "change_type": item.change_type.value,
                "data_type": item.data_type.value,
                "value": encode_scalar(item.value, item.data_type),
            }
            for item in value
        ]
        return json.dumps(payload, ensure_ascii=False)

    def process_result_value(
        self,
        value: str | None,
        dialect: Dialect,
    ) -> list[PendingExportAttributeValueChange]:
        _ = dialect
        changes: list[PendingExportAttributeValueChange] = []
        for item in _load_list(value):
            data_type = AttributeDataType(item["data_type"])
            changes.append(
                PendingExportAttributeValueChange(
                    attribute=str(item["attribute"]),
                    change_type=AttributeChangeType(item["change_type"]),
                    data_type=data_type,
                    value=decode_scalar(item.get("value"), data_type),
                )
            )
        return changes


class MetaverseChangeListType(TypeDecorator[list[MetaverseObjectChangeAttributeValue]]):
    impl = Text
    cache_ok = True

    def process_bind_param(
        self,
        value: list[MetaverseObjectChangeAttributeValue] | None,
        dialect: Dialect,
    ) -> str | None:
        _ = dialect
        if value is None:
            return None
        payload = [
            {
                "attribute": item.attribute,
                "value_change_type": item.value_change_type.value,
                "data_type": item.data_type.value,
                "value": encode_scalar(item.value, item.data_type),
            }
            for item in value
        ]
        return json.dumps(payload, ensure_ascii=False)

    def process_result_value(
        self,
        value: str | None,
        dialect: Dialect,
    ) -> list[MetaverseObjectChangeAttributeValue]:
        _ = dialect
        changes: list[MetaverseObjectChangeAttributeValue] = []
        for item in _load_list(value):
            data_type = AttributeDataType(item["data_type"])
            changes.append(
                MetaverseObjectChangeAttributeValue(
                    attribute=str(item["attribute"]),
                    value_change_type=ValueChangeType(item["value_change_type"]),
                    data_type=data_type,
                    value=decode_scalar(item.get("value"), data_type),
                )
            )
        return changes


class ActivitySummaryType(TypeDecorator[ActivitySummary]):
    impl = Text
    cache_ok = True

    def process_bind_param(self, value: ActivitySummary | None, dialect: Dialect) -> str | None:
        _ = dialect
        if value is None:
            return None
        payload = {
            "total": value.total,
            "creates": value.creates,
            "updates": value.updates,
            "flows": value.flows,
            "deletes": value.deletes,
            "errors": value.errors,
            "by_change_type": {
                change_type.value: count for change_type, count in value.by_change_type.items()
            },
        }
        return json.dumps(payload)

    def process_result_value(self, value: str | None, dialect: Dialect) -> ActivitySummary | None:
        _ = dialect
        if value is None:
            return None
        loaded = json.loads(value)
        if not isinstance(loaded, dict):
            return None
        payload = cast(dict[str, Any], loaded)
        by_change_type = cast(dict[str, int], payload.get("by_change_type") or {})
        return ActivitySummary(
            total=int(payload.get("total", 0)),
            creates=int(payload.get("creates", 0)),
            updates=int(payload.get("updates", 0)),
            flows=int(payload.get("flows", 0)),
            deletes=int(payload.get("deletes", 0)),
            errors=int(payload.get("errors", 0)),
            by_change_type={
                ObjectChangeType(name): int(count) for name, count in by_change_type.items()
            },
        )


mapper_registry = orm.registry()
mapper_registry.metadata.naming_convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_label)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_label)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

# Core tables ------------------------------------------------------------------

metaverse_object_table = Table(
    "metaverse_object",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True),
    Column("type", String, nullable=False),
    Column("origin", Enum(MetaverseObjectOrigin, native_enum=False), nullable=False),
    Column("attribute_values", AttributeValueListType, nullable=False),
    Column("pending_attribute_value_additions", AttributeValueListType, nullable=False),
    Column("pending_attribute_value_removals", AttributeValueListType, nullable=False),
    Column("last_connector_disconnected_date", UTCDateTime, nullable=True),
    Column(
        "deletion_initiated_by_type",
        Enum(InitiatorType, native_enum=False),
        nullable=True,
    ),
    Column("deletion_initiated_by_id", String, nullable=True),
    Column("deletion_initiated_by_name", String, nullable=True),
    Column("created", UTCDateTime, nullable=False),
    Column("last_updated", UTCDateTime, nullable=True),
    Index("ix_metaverse_object_type", "type"),
)

connected_system_object_table = Table(
    "connected_system_object",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True),
    Column("connected_system_id", Integer, nullable=False),
    Column("type_id", String, nullable=False),
    Column("external_id_attribute", String, nullable=True),
    Column("secondary_external_id_attribute", String, nullable=True),
    Column("status", Enum(ConnectedSystemObjectStatus, native_enum=False), nullable=False),
    Column("join_type", Enum(JoinType, native_enum=False), nullable=False),
    Column(
        "metaverse_object_id",
        UUIDColumnType,
        ForeignKey("metaverse_object.id", ondelete="SET NULL"),
        nullable=True,
    ),
    Column("date_joined", UTCDateTime, nullable=True),
    Column("attribute_values", AttributeValueListType, nullable=False),
    Column("pending_attribute_value_additions", AttributeValueListType, nullable=False),
    Column("pending_attribute_value_removals", AttributeValueListType, nullable=False),
    Column("created", UTCDateTime, nullable=False),
    Column("last_updated", UTCDateTime, nullable=True),
    Index("ix_connected_system_object_system", "connected_system_id", "id"),
    Index("ix_connected_system_object_metaverse_object", "metaverse_object_id"),
)

pending_export_table = Table(
    "pending_export",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True),
    Column("connected_system_id", Integer, nullable=False),
    Column(
        "connected_system_object_id",
        UUIDColumnType,
        ForeignKey("connected_system_object.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("change_type", Enum(PendingExportChangeType, native_enum=False), nullable=False),
    Column("status", Enum(PendingExportStatus, native_enum=False), nullable=False),
    Column("attribute_value_changes", PendingExportChangeListType, nullable=False),
    Column("error_count", Integer, nullable=False, default=0),
    Column("source_metaverse_object_id", UUIDColumnType, nullable=True),
    Column("created_at", UTCDateTime, nullable=False),
    Index("ix_pending_export_connected_system_object", "connected_system_object_id"),
)

activity_table = Table(
    "activity",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True),
    Column("connected_system_id", Integer, nullable=False),
    Column("run_type", Enum(SyncRunType, native_enum=False), nullable=False),
    Column("status", Enum(ActivityStatus, native_enum=False), nullable=False),
    Column("initiated_by_type", Enum(InitiatorType, native_enum=False), nullable=False),
    Column("initiated_by_id", String, nullable=True),
    Column("initiated_by_name", String, nullable=True),
    Column("started_at", UTCDateTime, nullable=False),
    Column("completed_at", UTCDateTime, nullable=True),
    Column("objects_to_process", Integer, nullable=False, default=0),
    Column("objects_processed", Integer, nullable=False, default=0),
    Column("error_message", Text, nullable=True),
    Column("summary", ActivitySummaryType, nullable=True),
)

run_profile_execution_item_table = Table(
    "run_profile_execution_item",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True),
    Column(
        "activity_id",
        UUIDColumnType,
        ForeignKey("activity.id", ondelete="CASCADE"),
        nullable=True,
    ),
    Column("connected_system_object_id", UUIDColumnType, nullable=True),
    Column("object_change_type", Enum(ObjectChangeType, native_enum=False), nullable=False),
    Column("error_type", Enum(ExecutionErrorType, native_enum=False), nullable=False),
    Column("error_message", Text, nullable=True),
    Column("error_stack_trace", Text, nullable=True),
    Column("attribute_flow_count", Integer, nullable=True),
    Column("created_at", UTCDateTime, nullable=False),
    Index("ix_run_profile_execution_item_activity", "activity_id"),
)

metaverse_object_change_table = Table(
    "metaverse_object_change",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True),
    Column("metaverse_object_id", UUIDColumnType, nullable=True),
    Column("change_type", Enum(MetaverseChangeType, native_enum=False), nullable=False),
    Column("change_time", UTCDateTime, nullable=False),
    Column("initiated_by_type", Enum(InitiatorType, native_enum=False), nullable=False),
    Column("initiated_by_id", String, nullable=True),
    Column("initiated_by_name", String, nullable=True),
    Column("execution_item_id", UUIDColumnType, nullable=True),
    Column("attribute_changes", MetaverseChangeListType, nullable=False),
    Index("ix_metaverse_object_change_metaverse_object", "metaverse_object_id"),
)

connected_system_state_table = Table(
    "connected_system_state",
    mapper_registry.metadata,
    Column("connected_system_id", Integer, primary_key=True),
    Column("last_delta_sync_completed_at", UTCDateTime, nullable=True),
)


@cache
def start_mappers() -> orm.registry:
    """Map the domain dataclasses onto their tables (idempotent)."""

    mapper_registry.map_imperatively(MetaverseObject, metaverse_object_table)
    mapper_registry.map_imperatively(ConnectedSystemObject, connected_system_object_table)
    mapper_registry.map_imperatively(PendingExport, pending_export_table)
    mapper_registry.map_imperatively(Activity, activity_table)
    mapper_registry.map_imperatively(RunProfileExecutionItem, run_profile_execution_item_table)
    mapper_registry.map_imperatively(MetaverseObjectChange, metaverse_object_change_table)

    configure_mappers()
    return mapper_registry


def create_all_tables(engine: Engine) -> None:
    """Create database tables for the mapped metadata."""

    log.info("Creating all tables")
    mapper_registry.metadata.create_all(engine)
