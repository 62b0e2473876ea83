"""Domain enums (pure, dependency-light)."""

from __future__ import annotations

from enum import StrEnum


class AttributeDataType(StrEnum):
    TEXT = "text"
    NUMBER = "number"
    LONG_NUMBER = "long_number"
    GUID = "guid"
    BOOLEAN = "boolean"
    DATETIME = "datetime"
    BINARY = "binary"
    REFERENCE = "reference"


class ConnectedSystemObjectStatus(StrEnum):
    NORMAL = "normal"
    OBSOLETE = "obsolete"
    PENDING_PROVISIONING = "pending_provisioning"


class JoinType(StrEnum):
    NOT_JOINED = "not_joined"
    JOINED = "joined"
    PROJECTED = "projected"
    PROVISIONED = "provisioned"
    EXPLICIT = "explicit"


class MetaverseObjectOrigin(StrEnum):
    INTERNAL = "internal"
    PROJECTED = "projected"


class SyncRuleDirection(StrEnum):
    IMPORT = "import"
    EXPORT = "export"


class InboundOutOfScopeAction(StrEnum):
    DISCONNECT = "disconnect"
    REMAIN_JOINED = "remain_joined"


class OutboundDeprovisionAction(StrEnum):
    DISCONNECT = "disconnect"
    DELETE = "delete"


class DeletionRule(StrEnum):
    MANUAL = "manual"
    WHEN_LAST_CONNECTOR_DISCONNECTED = "when_last_connector_disconnected"
    WHEN_AUTHORITATIVE_SOURCE_DISCONNECTED = "when_authoritative_source_disconnected"


class ScopingGroupType(StrEnum):
    ALL = "all"
    ANY = "any"


class ComparisonType(StrEnum):
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    STARTS_WITH = "starts_with"
    NOT_STARTS_WITH = "not_starts_with"
    ENDS_WITH = "ends_with"
    NOT_ENDS_WITH = "not_ends_with"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    LESS_THAN = "less_than"
    LESS_THAN_OR_EQUALS = "less_than_or_equals"
    GREATER_THAN = "greater_than"
    GREATER_THAN_OR_EQUALS = "greater_than_or_equals"


class PendingExportChangeType(StrEnum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class PendingExportStatus(StrEnum):
    PENDING = "pending"
    EXPORTED = "exported"
    EXPORT_NOT_CONFIRMED = "export_not_confirmed"


class AttributeChangeType(StrEnum):
    """Kind of change carried by one pending-export attribute change."""

    ADD = "add"
    UPDATE = "update"
    REMOVE = "remove"
    REMOVE_ALL = "remove_all"


class ObjectChangeType(StrEnum):
    """Outcome recorded on a run profile execution item."""

    NO_CHANGE = "no_change"
    ADDED = "added"
    UPDATED = "updated"
    DELETED = "deleted"
    JOINED = "joined"
    PROJECTED = "projected"
    ATTRIBUTE_FLOW = "attribute_flow"
    DISCONNECTED = "disconnected"
    DISCONNECTED_OUT_OF_SCOPE = "disconnected_out_of_scope"
    OUT_OF_SCOPE_RETAIN_JOIN = "out_of_scope_retain_join"
    DRIFT_CORRECTION = "drift_correction"
    PROVISIONED = "provisioned"
    EXPORTED = "exported"
    DEPROVISIONED = "deprovisioned"


class ExecutionErrorType(StrEnum):
    NOT_SET = "not_set"
    AMBIGUOUS_MATCH = "ambiguous_match"
    COULD_NOT_JOIN_DUE_TO_EXISTING_JOIN = "could_not_join_due_to_existing_join"
    UNRESOLVED_REFERENCE = "unresolved_reference"
    UNHANDLED_ERROR = "unhandled_error"


class MetaverseChangeType(StrEnum):
    PROJECTED = "projected"
    JOINED = "joined"
    ATTRIBUTE_FLOW = "attribute_flow"
    DISCONNECTED = "disconnected"
    DISCONNECTED_OUT_OF_SCOPE = "disconnected_out_of_scope"
    DELETED = "deleted"


class ValueChangeType(StrEnum):
    ADD = "add"
    REMOVE = "remove"


class InitiatorType(StrEnum):
    NOT_SET = "not_set"
    USER = "user"
    API_KEY = "api_key"
    SCHEDULE = "schedule"


class SyncRunType(StrEnum):
    FULL_SYNC = "full_sync"
    DELTA_SYNC = "delta_sync"


class ActivityStatus(StrEnum):
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"
    COMPLETE_WITH_WARNING = "complete_with_warning"
    CANCELLED = "cancelled"
    FAILED = "failed"


class ValidationSeverity(StrEnum):
    ERROR = "error"
    WARNING = "warning"
