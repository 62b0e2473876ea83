"""Default metaverse object matcher driven by sync rule matching rules."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from metasync.domain.ports import MultipleMatchesError

if TYPE_CHECKING:
    from collections.abc import Hashable

    from metasync.domain.model import ConnectedSystemObject, MetaverseObject, SyncRule
    from metasync.domain.ports import MetaverseObjectRepository


log = logging.getLogger(__name__)


@dataclass(slots=True)
class AttributeMatcher:
    """Match on attribute equality, one matching rule at a time.

    Matching rules are tried in ``order``. The first rule that finds
    candidates decides: one candidate is the match, several raise
    ``MultipleMatchesError``. Rules whose source attribute has no value are
    skipped.
    """

    metaverse_objects: MetaverseObjectRepository

    def __call__(
        self,
        connected_system_object: ConnectedSystemObject,
        *,
        rule: SyncRule,
    ) -> MetaverseObject | None:
        for matching_rule in sorted(rule.object_matching_rules, key=lambda item: item.order):
            source_values = connected_system_object.effective_values(
                matching_rule.source_attribute
            )
            candidates: dict[Hashable, MetaverseObject] = {}
            for source_value in source_values:
                if source_value.value is None:
                    continue
                for candidate in self.metaverse_objects.find_by_attribute(
                    rule.metaverse_object_type,
                    matching_rule.target_attribute,
                    source_value.value,
                    case_sensitive=matching_rule.case_sensitive,
                ):
                    candidates.setdefault(candidate.reference_key, candidate)
            if not candidates:
                continue
            if len(candidates) > 1:
                raise MultipleMatchesError(
                    f"{len(candidates)} metaverse objects match {connected_system_object} on "
                    f"{matching_rule.source_attribute} -> {matching_rule.target_attribute}",
                    candidate_count=len(candidates),
                )
            match = next(iter(candidates.values()))
            log.debug("Matched %s to %s via rule %s", connected_system_object, match, rule.name)
            return match
        return None
