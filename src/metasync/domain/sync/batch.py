"""Per-page write batch and the run-scoped synchronisation context.

A ``PageBatch`` owns every deferred write of one page together with the
page's lookup maps (CSO id -> CSO, CSO id -> MVO). Stages only append to the
batch; ``flush.flush_page`` submits it to the repositories in a fixed order.

``SyncContext`` lives for a whole run: configuration, collaborators, the
cross-page reference backlog and the execution items of flushed pages.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING
from uuid import UUID

from metasync.domain.model import (
    AttributeValue,
    ConnectedSystemObject,
    MetaverseObject,
    PendingExport,
    RunProfileExecutionItem,
)

from .attribute_flow import FlowContext

if TYPE_CHECKING:
    from collections.abc import Callable, Collection
    from contextlib import AbstractContextManager

    from metasync.domain.model import (
        Activity,
        ConnectedSystem,
        ConnectedSystemObjectType,
        MetaverseChangeType,
        MetaverseObjectType,
        ObjectChangeType,
        SyncConfiguration,
        SyncRule,
    )
    from metasync.domain.ports import (
        ExportEvaluator,
        MetaverseObjectMatcher,
        SyncRepositories,
    )

    from .attribute_flow import ExportReferenceResolver, ReferenceResolver
    from .drift import ImportMappingCache
    from .expressions import ExpressionEvaluator


@dataclass(slots=True, kw_only=True)
class ExportRequest:
    """MVO attribute changes waiting for export evaluation once the MVO has an id."""

    metaverse_object: MetaverseObject
    additions: list[AttributeValue]
    removals: list[AttributeValue]
    source_system_id: int


@dataclass(slots=True, kw_only=True)
class PendingMetaverseChange:
    """MVO audit entry, built at flush time once ids and references are bound."""

    metaverse_object: MetaverseObject
    change_type: MetaverseChangeType
    additions: list[AttributeValue] = field(default_factory=list[AttributeValue])
    removals: list[AttributeValue] = field(default_factory=list[AttributeValue])
    execution_item: RunProfileExecutionItem | None = None


@dataclass(slots=True, kw_only=True)
class DeferredReferenceFlow:
    """A CSO whose reference attributes flow after the whole page is joined."""

    connected_system_object: ConnectedSystemObject
    metaverse_object: MetaverseObject
    rules: list[SyncRule]
    execution_item: RunProfileExecutionItem | None = None


@dataclass(slots=True, kw_only=True)
class PageBatch:
    page_number: int

    # lookup maps
    connected_system_objects: dict[UUID, ConnectedSystemObject] = field(
        default_factory=dict[UUID, ConnectedSystemObject]
    )
    metaverse_objects_by_cso_id: dict[UUID, MetaverseObject] = field(
        default_factory=dict[UUID, MetaverseObject]
    )

    # metaverse writes
    metaverse_objects_to_create: list[MetaverseObject] = field(
        default_factory=list[MetaverseObject]
    )
    metaverse_objects_to_update: list[MetaverseObject] = field(
        default_factory=list[MetaverseObject]
    )
    metaverse_objects_to_delete: list[MetaverseObject] = field(
        default_factory=list[MetaverseObject]
    )
    metaverse_changes: list[PendingMetaverseChange] = field(
        default_factory=list[PendingMetaverseChange]
    )
    projected_objects: list[tuple[ConnectedSystemObject, MetaverseObject]] = field(
        default_factory=list[tuple[ConnectedSystemObject, MetaverseObject]]
    )

    # export work
    export_requests: list[ExportRequest] = field(default_factory=list[ExportRequest])
    out_of_scope_export_requests: list[tuple[MetaverseObject, int]] = field(
        default_factory=list[tuple[MetaverseObject, int]]
    )
    pending_exports_to_create: list[PendingExport] = field(default_factory=list[PendingExport])
    pending_exports_to_update: list[PendingExport] = field(default_factory=list[PendingExport])
    pending_exports_to_delete: list[PendingExport] = field(default_factory=list[PendingExport])
    provisioning_objects: list[ConnectedSystemObject] = field(
        default_factory=list[ConnectedSystemObject]
    )

    # connected system object writes
    connected_system_objects_to_update: list[ConnectedSystemObject] = field(
        default_factory=list[ConnectedSystemObject]
    )
    obsolete_objects_to_delete: list[tuple[ConnectedSystemObject, RunProfileExecutionItem]] = (
        field(default_factory=list[tuple[ConnectedSystemObject, RunProfileExecutionItem]])
    )
    quiet_deletes: list[ConnectedSystemObject] = field(default_factory=list[ConnectedSystemObject])

    # join bookkeeping not yet visible to storage
    pending_disconnected_mvo_ids: list[UUID] = field(default_factory=list[UUID])
    joined_mvo_ids: list[UUID] = field(default_factory=list[UUID])

    deferred_reference_flows: list[DeferredReferenceFlow] = field(
        default_factory=list[DeferredReferenceFlow]
    )
    execution_items: list[RunProfileExecutionItem] = field(
        default_factory=list[RunProfileExecutionItem]
    )

    def add_item(self, item: RunProfileExecutionItem) -> RunProfileExecutionItem:
        self.execution_items.append(item)
        return item

    def queue_metaverse_update(self, metaverse_object: MetaverseObject) -> None:
        if _contains(self.metaverse_objects_to_create, metaverse_object):
            return
        if not _contains(self.metaverse_objects_to_update, metaverse_object):
            self.metaverse_objects_to_update.append(metaverse_object)

    def queue_metaverse_deletion(self, metaverse_object: MetaverseObject) -> None:
        if not _contains(self.metaverse_objects_to_delete, metaverse_object):
            self.metaverse_objects_to_delete.append(metaverse_object)

    def cancel_metaverse_deletion(self, metaverse_object: MetaverseObject) -> bool:
        """Drop a queued deletion of ``metaverse_object``; True if one was queued."""

        queued = self.metaverse_objects_to_delete
        kept = [item for item in queued if not _same_metaverse_object(item, metaverse_object)]
        if len(kept) == len(queued):
            return False
        queued[:] = kept
        return True

    def queue_connected_system_object_update(
        self,
        connected_system_object: ConnectedSystemObject,
    ) -> None:
        if not _contains(self.connected_system_objects_to_update, connected_system_object):
            self.connected_system_objects_to_update.append(connected_system_object)

    def record_metaverse_change(
        self,
        metaverse_object: MetaverseObject,
        change_type: MetaverseChangeType,
        *,
        additions: Collection[AttributeValue] = (),
        removals: Collection[AttributeValue] = (),
        execution_item: RunProfileExecutionItem | None = None,
    ) -> None:
        self.metaverse_changes.append(
            PendingMetaverseChange(
                metaverse_object=metaverse_object,
                change_type=change_type,
                additions=list(additions),
                removals=list(removals),
                execution_item=execution_item,
            )
        )

    def request_export_evaluation(
        self,
        metaverse_object: MetaverseObject,
        *,
        additions: Collection[AttributeValue],
        removals: Collection[AttributeValue],
        source_system_id: int,
    ) -> None:
        if not additions and not removals:
            return
        for request in self.export_requests:
            if request.metaverse_object is metaverse_object:
                request.additions.extend(additions)
                request.removals.extend(removals)
                return
        self.export_requests.append(
            ExportRequest(
                metaverse_object=metaverse_object,
                additions=list(additions),
                removals=list(removals),
                source_system_id=source_system_id,
            )
        )

    def item_for(self, connected_system_object_id: UUID) -> RunProfileExecutionItem | None:
        for item in reversed(self.execution_items):
            if item.connected_system_object_id == connected_system_object_id:
                return item
        return None


def _contains[T](items: list[T], candidate: T) -> bool:
    return any(item is candidate for item in items)


def _same_metaverse_object(item: MetaverseObject, candidate: MetaverseObject) -> bool:
    if item is candidate:
        return True
    return candidate.id is not None and item.id == candidate.id


@dataclass(slots=True, kw_only=True)
class SyncContext:
    """Run-scoped configuration, collaborators and cross-page state."""

    activity: Activity
    connected_system: ConnectedSystem
    configuration: SyncConfiguration
    repositories: SyncRepositories
    matcher: MetaverseObjectMatcher
    export_evaluator: ExportEvaluator
    evaluator: ExpressionEvaluator
    import_mapping_cache: ImportMappingCache
    savepoint: Callable[[], AbstractContextManager[object]]
    change_tracking: bool = True
    unresolved_reference_ids: dict[UUID, None] = field(default_factory=dict[UUID, None])
    execution_items: list[RunProfileExecutionItem] = field(
        default_factory=list[RunProfileExecutionItem]
    )

    @property
    def connected_system_id(self) -> int:
        return self.connected_system.id

    @property
    def export_rules(self) -> list[SyncRule]:
        return self.configuration.export_rules()

    def import_rules_for(self, object_type: str) -> list[SyncRule]:
        return self.configuration.import_rules(self.connected_system.id, object_type)

    def object_type(self, name: str) -> ConnectedSystemObjectType:
        return self.configuration.object_type(self.connected_system.id, name)

    def metaverse_object_type(self, name: str) -> MetaverseObjectType:
        return self.configuration.metaverse_object_type(name)

    def prepare_item(
        self,
        connected_system_object: ConnectedSystemObject,
        object_change_type: ObjectChangeType,
    ) -> RunProfileExecutionItem:
        return self.activity.prepare_execution_item(
            connected_system_object.id,
            object_change_type=object_change_type,
        )

    def record_unresolved_references(self, connected_system_object_id: UUID) -> None:
        self.unresolved_reference_ids[connected_system_object_id] = None

    def load_metaverse_object(
        self,
        connected_system_object: ConnectedSystemObject,
        batch: PageBatch,
    ) -> MetaverseObject | None:
        cached = batch.metaverse_objects_by_cso_id.get(connected_system_object.id)
        if cached is not None:
            return cached
        if connected_system_object.metaverse_object_id is None:
            return None
        metaverse_object = self.repositories.metaverse_objects.get(
            connected_system_object.metaverse_object_id
        )
        if metaverse_object is not None:
            batch.metaverse_objects_by_cso_id[connected_system_object.id] = metaverse_object
        return metaverse_object

    def flow_context(
        self,
        connected_system_object: ConnectedSystemObject,
        metaverse_object: MetaverseObject,
        batch: PageBatch,
    ) -> FlowContext:
        return FlowContext(
            connected_system_id=self.connected_system.id,
            source_type=self.object_type(connected_system_object.type_id),
            target_type=self.metaverse_object_type(metaverse_object.type),
            evaluator=self.evaluator,
            resolve_reference=self.reference_resolver(batch),
        )

    def reference_resolver(self, batch: PageBatch) -> ReferenceResolver:
        """Resolve a referenced CSO id to its MVO, preferring objects of the page."""

        def resolve(connected_system_object_id: UUID) -> MetaverseObject | UUID | None:
            in_page = batch.metaverse_objects_by_cso_id.get(connected_system_object_id)
            if in_page is not None:
                return in_page
            referenced = batch.connected_system_objects.get(connected_system_object_id)
            if referenced is None:
                referenced = self.repositories.connected_system_objects.get(
                    connected_system_object_id
                )
            if referenced is None:
                return None
            return referenced.metaverse_object_id

        return resolve

    def export_reference_resolver(self, connected_system_id: int) -> ExportReferenceResolver:
        """Resolve a referenced MVO id to its CSO in ``connected_system_id``."""

        def resolve(metaverse_object_id: UUID) -> UUID | None:
            candidates = self.repositories.connected_system_objects.for_metaverse_object(
                metaverse_object_id
            )
            for candidate in candidates:
                if candidate.connected_system_id == connected_system_id:
                    return candidate.id
            return None

        return resolve
