"""Port for deciding which connected systems need outbound changes."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from metasync.domain.model import ConnectedSystemObject, PendingExport

if TYPE_CHECKING:
    from collections.abc import Collection, Sequence

    from metasync.domain.model import AttributeValue, MetaverseObject


@dataclass(slots=True, kw_only=True)
class ExportEvaluationResult:
    """Staged outbound work; nothing in here has been persisted yet."""

    pending_exports_to_create: list[PendingExport] = field(default_factory=list[PendingExport])
    pending_exports_to_update: list[PendingExport] = field(default_factory=list[PendingExport])
    provisioning_objects: list[ConnectedSystemObject] = field(
        default_factory=list[ConnectedSystemObject]
    )
    disconnected_objects: list[ConnectedSystemObject] = field(
        default_factory=list[ConnectedSystemObject]
    )
    no_net_change_count: int = 0

    def merge(self, other: ExportEvaluationResult) -> None:
        self.pending_exports_to_create.extend(other.pending_exports_to_create)
        self.pending_exports_to_update.extend(other.pending_exports_to_update)
        self.provisioning_objects.extend(other.provisioning_objects)
        self.disconnected_objects.extend(other.disconnected_objects)
        self.no_net_change_count += other.no_net_change_count

    @property
    def is_empty(self) -> bool:
        return not (
            self.pending_exports_to_create
            or self.pending_exports_to_update
            or self.provisioning_objects
            or self.disconnected_objects
        )


@runtime_checkable
class ExportEvaluator(Protocol):
    """Evaluates export rules for changed metaverse objects."""

    def evaluate_export_rules(
        self,
        metaverse_object: MetaverseObject,
        changed_attributes: Sequence[AttributeValue],
        *,
        source_system_id: int,
        removed_attributes: Collection[AttributeValue] = (),
    ) -> ExportEvaluationResult: ...

    def evaluate_out_of_scope_exports(
        self,
        metaverse_object: MetaverseObject,
        *,
        source_system_id: int,
    ) -> ExportEvaluationResult: ...

    def evaluate_mvo_deletion(self, metaverse_object: MetaverseObject) -> ExportEvaluationResult:
        ...


__all__ = ["ExportEvaluationResult", "ExportEvaluator"]
