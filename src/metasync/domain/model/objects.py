"""Connected system objects (CSOs) and metaverse objects (MVOs).

Both sides reference each other by id only: a CSO points at the MVO it is
joined to through ``metaverse_object_id``; the set of CSOs joined to an MVO is
answered by the repositories. A projected MVO has no id until the persistence
layer assigns one when its batch is created.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from .enums import (
    ConnectedSystemObjectStatus,
    InitiatorType,
    JoinType,
    MetaverseObjectOrigin,
)
from .values import AttributeValue, first_value, values_for

if TYPE_CHECKING:
    from collections.abc import Hashable

    from .values import ScalarValue


def new_id() -> UUID:
    return uuid4()


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


def _value_identity(value: AttributeValue) -> tuple[object, ...]:
    return (value.attribute, value.data_type, value.value)


@dataclass(eq=False, kw_only=True)
class ConnectedSystemObject:
    """Staged mirror of one object in one connected system."""

    id: UUID = field(default_factory=new_id)
    connected_system_id: int
    type_id: str
    external_id_attribute: str | None = None
    secondary_external_id_attribute: str | None = None
    status: ConnectedSystemObjectStatus = ConnectedSystemObjectStatus.NORMAL
    join_type: JoinType = JoinType.NOT_JOINED
    metaverse_object_id: UUID | None = None
    date_joined: datetime | None = None
    attribute_values: list[AttributeValue] = field(default_factory=list[AttributeValue])
    pending_attribute_value_additions: list[AttributeValue] = field(
        default_factory=list[AttributeValue]
    )
    pending_attribute_value_removals: list[AttributeValue] = field(
        default_factory=list[AttributeValue]
    )
    created: datetime = field(default_factory=utc_now)
    last_updated: datetime | None = None

    @property
    def is_obsolete(self) -> bool:
        return self.status is ConnectedSystemObjectStatus.OBSOLETE

    @property
    def is_joined(self) -> bool:
        return self.metaverse_object_id is not None

    @property
    def external_id(self) -> ScalarValue | None:
        if self.external_id_attribute is None:
            return None
        return first_value(self.attribute_values, self.external_id_attribute)

    def values_for(self, attribute: str) -> list[AttributeValue]:
        return values_for(self.attribute_values, attribute)

    def effective_attribute_values(self) -> list[AttributeValue]:
        """Current values with staged additions merged and staged removals dropped."""

        removed = {_value_identity(value) for value in self.pending_attribute_value_removals}
        values = [
            value for value in self.attribute_values if _value_identity(value) not in removed
        ]
        present = {_value_identity(value) for value in values}
        for addition in self.pending_attribute_value_additions:
            identity = _value_identity(addition)
            if identity in removed or identity in present:
                continue
            values.append(addition)
            present.add(identity)
        return values

    def effective_values(self, attribute: str) -> list[AttributeValue]:
        return values_for(self.effective_attribute_values(), attribute)

    def join_to(
        self,
        metaverse_object_id: UUID | None,
        *,
        join_type: JoinType,
        joined_at: datetime,
    ) -> None:
        self.metaverse_object_id = metaverse_object_id
        self.join_type = join_type
        self.date_joined = joined_at

    def disconnect(self) -> None:
        self.metaverse_object_id = None
        self.join_type = JoinType.NOT_JOINED
        self.date_joined = None

    def __str__(self) -> str:
        return f"CSO {self.id} ({self.type_id}, system {self.connected_system_id})"


@dataclass(eq=False, kw_only=True)
class MetaverseObject:
    """Reconciled identity record owned by the metaverse."""

    id: UUID | None = None
    type: str
    origin: MetaverseObjectOrigin = MetaverseObjectOrigin.PROJECTED
    attribute_values: list[AttributeValue] = field(default_factory=list[AttributeValue])
    pending_attribute_value_additions: list[AttributeValue] = field(
        default_factory=list[AttributeValue]
    )
    pending_attribute_value_removals: list[AttributeValue] = field(
        default_factory=list[AttributeValue]
    )
    last_connector_disconnected_date: datetime | None = None
    deletion_initiated_by_type: InitiatorType | None = None
    deletion_initiated_by_id: str | None = None
    deletion_initiated_by_name: str | None = None
    created: datetime = field(default_factory=utc_now)
    last_updated: datetime | None = None

    @property
    def reference_key(self) -> Hashable:
        """Stable identity usable before and after the object receives an id."""

        return self.id if self.id is not None else self

    @property
    def display_name(self) -> str | None:
        value = first_value(self.attribute_values, "DisplayName")
        return None if value is None else str(value)

    @property
    def has_pending_changes(self) -> bool:
        return bool(self.pending_attribute_value_additions or self.pending_attribute_value_removals)

    def values_for(self, attribute: str) -> list[AttributeValue]:
        return values_for(self.attribute_values, attribute)

    def apply_pending_changes(self) -> tuple[list[AttributeValue], list[AttributeValue]]:
        """Merge staged removals then additions into ``attribute_values``.

        Returns the additions and removals that were applied.
        """

        additions = list(self.pending_attribute_value_additions)
        removals = list(self.pending_attribute_value_removals)
        removed_ids = {id(value) for value in removals}
        self.attribute_values = [
            value for value in self.attribute_values if id(value) not in removed_ids
        ]
        self.attribute_values.extend(additions)
        self.pending_attribute_value_additions = []
        self.pending_attribute_value_removals = []
        return additions, removals

    def bind_references(self) -> None:
        for value in self.attribute_values:
            value.bind_reference()

    def mark_disconnected(
        self,
        *,
        at: datetime,
        initiated_by_type: InitiatorType | None = None,
        initiated_by_id: str | None = None,
        initiated_by_name: str | None = None,
    ) -> None:
        self.last_connector_disconnected_date = at
        self.deletion_initiated_by_type = initiated_by_type
        self.deletion_initiated_by_id = initiated_by_id
        self.deletion_initiated_by_name = initiated_by_name

    def clear_deletion_marker(self) -> None:
        self.last_connector_disconnected_date = None
        self.deletion_initiated_by_type = None
        self.deletion_initiated_by_id = None
        self.deletion_initiated_by_name = None

    def __str__(self) -> str:
        name = self.display_name or "no display name"
        return f"MVO {self.id or '<unsaved>'} ({self.type}, {name})"
