"""Confirmation of exported changes against freshly imported CSO state.

Only exports whose earlier confirmation failed (``EXPORT_NOT_CONFIRMED``) are
checked here. ``PENDING`` exports have not been sent yet and ``EXPORTED``
exports are confirmed by the import side.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from metasync.domain.model import (
    AttributeChangeType,
    AttributeValue,
    PendingExport,
    PendingExportChangeType,
    PendingExportStatus,
)

from .attribute_flow import value_key

if TYPE_CHECKING:
    from collections.abc import Iterable

    from metasync.domain.model import ConnectedSystemObject, PendingExportAttributeValueChange


log = logging.getLogger(__name__)


@dataclass(slots=True, kw_only=True)
class ConfirmationResult:
    to_delete: list[PendingExport] = field(default_factory=list[PendingExport])
    to_update: list[PendingExport] = field(default_factory=list[PendingExport])


def is_change_confirmed(
    connected_system_object: ConnectedSystemObject,
    change: PendingExportAttributeValueChange,
) -> bool:
    current = connected_system_object.effective_values(change.attribute)
    if change.change_type is AttributeChangeType.REMOVE_ALL or (
        change.change_type is AttributeChangeType.REMOVE and change.value is None
    ):
        return not current

    expected = value_key(
        AttributeValue(attribute=change.attribute, data_type=change.data_type, value=change.value)
    )
    present = any(value_key(value) == expected for value in current)
    if change.change_type is AttributeChangeType.REMOVE:
        return not present
    return present


def confirm_pending_exports(
    connected_system_object: ConnectedSystemObject,
    pending_exports: Iterable[PendingExport],
) -> ConfirmationResult:
    """Settle unconfirmed exports of one CSO.

    - every change confirmed: the export is done and gets deleted
    - some changes confirmed: only the failed changes stay, a ``CREATE`` turns
      into an ``UPDATE`` since the object now exists
    - nothing confirmed: the export stays as is

    Exports that are not fully confirmed get their ``error_count`` raised and
    stay ``EXPORT_NOT_CONFIRMED`` so export execution retries them.
    """

    result = ConfirmationResult()
    for pending_export in pending_exports:
        if pending_export.status in {PendingExportStatus.PENDING, PendingExportStatus.EXPORTED}:
            continue

        if pending_export.change_type is PendingExportChangeType.DELETE:
            if connected_system_object.is_obsolete:
                result.to_delete.append(pending_export)
            else:
                _mark_unconfirmed(pending_export)
                result.to_update.append(pending_export)
            continue

        failed = [
            change
            for change in pending_export.attribute_value_changes
            if not is_change_confirmed(connected_system_object, change)
        ]
        if not failed:
            log.debug("All changes of pending export %s confirmed", pending_export.id)
            result.to_delete.append(pending_export)
            continue

        if len(failed) < len(pending_export.attribute_value_changes):
            log.info(
                "Pending export %s partially confirmed; %d change(s) remain",
                pending_export.id,
                len(failed),
            )
            pending_export.attribute_value_changes = failed
            if pending_export.change_type is PendingExportChangeType.CREATE:
                pending_export.change_type = PendingExportChangeType.UPDATE
        else:
            log.warning("No change of pending export %s was confirmed", pending_export.id)
        _mark_unconfirmed(pending_export)
        result.to_update.append(pending_export)
    return result


def _mark_unconfirmed(pending_export: PendingExport) -> None:
    pending_export.error_count += 1
    pending_export.status = PendingExportStatus.EXPORT_NOT_CONFIRMED
