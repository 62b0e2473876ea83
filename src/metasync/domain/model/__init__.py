"""Domain model for connected systems, the metaverse and their audit trail."""

from __future__ import annotations

from .activity import (
    Activity,
    ActivitySummary,
    MetaverseObjectChange,
    MetaverseObjectChangeAttributeValue,
    RunProfileExecutionItem,
)
from .enums import (
    ActivityStatus,
    AttributeChangeType,
    AttributeDataType,
    ComparisonType,
    ConnectedSystemObjectStatus,
    DeletionRule,
    ExecutionErrorType,
    InboundOutOfScopeAction,
    InitiatorType,
    JoinType,
    MetaverseChangeType,
    MetaverseObjectOrigin,
    ObjectChangeType,
    OutboundDeprovisionAction,
    PendingExportChangeType,
    PendingExportStatus,
    ScopingGroupType,
    SyncRuleDirection,
    SyncRunType,
    ValidationSeverity,
    ValueChangeType,
)
from .exports import PendingExport, PendingExportAttributeValueChange
from .objects import ConnectedSystemObject, MetaverseObject, new_id, utc_now
from .rules import (
    AttributeFlowRule,
    AttributeFlowSource,
    ConnectedSystem,
    ConnectedSystemObjectType,
    MetaverseObjectType,
    ObjectMatchingRule,
    ScopingCriteriaGroup,
    ScopingCriterion,
    SyncConfiguration,
    SyncConfigurationError,
    SyncRule,
    SyncRuleValidationIssue,
)
from .values import (
    AttributeDefinition,
    AttributeValue,
    ScalarValue,
    convert_value,
    scalar_equals,
)

__all__ = [
    "Activity",
    "ActivityStatus",
    "ActivitySummary",
    "AttributeChangeType",
    "AttributeDataType",
    "AttributeDefinition",
    "AttributeFlowRule",
    "AttributeFlowSource",
    "AttributeValue",
    "ComparisonType",
    "ConnectedSystem",
    "ConnectedSystemObject",
    "ConnectedSystemObjectStatus",
    "ConnectedSystemObjectType",
    "DeletionRule",
    "ExecutionErrorType",
    "InboundOutOfScopeAction",
    "InitiatorType",
    "JoinType",
    "MetaverseChangeType",
    "MetaverseObject",
    "MetaverseObjectChange",
    "MetaverseObjectChangeAttributeValue",
    "MetaverseObjectOrigin",
    "MetaverseObjectType",
    "ObjectChangeType",
    "ObjectMatchingRule",
    "OutboundDeprovisionAction",
    "PendingExport",
    "PendingExportAttributeValueChange",
    "PendingExportChangeType",
    "PendingExportStatus",
    "RunProfileExecutionItem",
    "ScalarValue",
    "ScopingCriteriaGroup",
    "ScopingCriterion",
    "ScopingGroupType",
    "SyncConfiguration",
    "SyncConfigurationError",
    "SyncRule",
    "SyncRuleDirection",
    "SyncRuleValidationIssue",
    "SyncRunType",
    "ValidationSeverity",
    "ValueChangeType",
    "convert_value",
    "new_id",
    "scalar_equals",
    "utc_now",
]
