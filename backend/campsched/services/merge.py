from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
import logging
from typing import Iterable

from campsched.services.assignments import DayAssignments, bunk_sort_key, copy_day

logger = logging.getLogger(__name__)


@dataclass
class MergeResult:
    assignments: DayAssignments
    preserved_bunks: list[str] = field(default_factory=list)
    updated_bunks: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class SavedVersion:
    label: str
    saved_at: datetime
    assignments: DayAssignments
    # Bunks this version wrote; ``None`` means every bunk it carries.
    touched_bunks: frozenset[str] | None = None

    def bunks(self) -> frozenset[str]:
        if self.touched_bunks is not None:
            return self.touched_bunks
        return frozenset(self.assignments)


def merge(existing: DayAssignments, generated: DayAssignments, my_bunks: Iterable[str]) -> MergeResult:
    """Overlay the caller's bunks from ``generated`` onto a copy of ``existing``.

    Bunks outside ``my_bunks`` come back exactly as they were in ``existing``.
    """
    owned = set(my_bunks)
    merged = copy_day(existing)
    updated: list[str] = []
    for bunk, entries in generated.items():
        if bunk not in owned:
            continue
        merged[bunk] = list(entries)
        updated.append(bunk)
    preserved = [bunk for bunk in existing if bunk not in owned]
    logger.debug("Merged %s bunk(s); preserved %s foreign bunk(s)", len(updated), len(preserved))
    return MergeResult(
        assignments=merged,
        preserved_bunks=sorted(preserved, key=bunk_sort_key),
        updated_bunks=sorted(updated, key=bunk_sort_key),
    )


def merge_versions(versions: Iterable[SavedVersion]) -> DayAssignments:
    """Combine saved versions of one day; each bunk comes from the last version that touched it."""
    merged: DayAssignments = {}
    ordered = sorted(enumerate(versions), key=lambda item: (item[1].saved_at, item[0]))
    for _, version in ordered:
        for bunk in version.bunks():
            entries = version.assignments.get(bunk)
            if entries is None:
                continue
            merged[bunk] = list(entries)
    logger.info("Merged %s version(s) into %s bunk(s)", len(ordered), len(merged))
    return merged


def diff_bunks(before: DayAssignments, after: DayAssignments) -> list[str]:
    changed = [
        bunk
        for bunk in set(before) | set(after)
        if before.get(bunk) != after.get(bunk)
    ]
    return sorted(changed, key=bunk_sort_key)
