from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Collection, Iterable

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from campsched.models.resource_lock import ResourceLock
from campsched.services.resource_ledger import ResourceLedger

logger = logging.getLogger(__name__)

OTHER_SCHEDULER = "other_scheduler"
POST_EDIT_PINNED = "post_edit_pinned"


@dataclass(frozen=True)
class FieldLock:
    resource_name: str
    slot_index: int
    locked_by: str
    division: str | None = None
    bunk: str | None = None
    activity: str | None = None
    source: str | None = None


class FieldLockTable:
    """Shared registry of resources locked at a slot, keyed by (resource, slot)."""

    def __init__(self) -> None:
        self._locks: dict[tuple[str, int], FieldLock] = {}

    def reset(self) -> None:
        self._locks = {}

    def lock(
        self,
        resource_name: str,
        slot_indices: Iterable[int],
        *,
        locked_by: str,
        division: str | None = None,
        bunk: str | None = None,
        activity: str | None = None,
        source: str | None = None,
    ) -> None:
        for slot_index in slot_indices:
            self._locks[(resource_name.strip().lower(), slot_index)] = FieldLock(
                resource_name=resource_name,
                slot_index=slot_index,
                locked_by=locked_by,
                division=division,
                bunk=bunk,
                activity=activity,
                source=source,
            )

    def lock_for(self, resource_name: str, slot_index: int) -> FieldLock | None:
        return self._locks.get((resource_name.strip().lower(), slot_index))

    def is_locked(
        self,
        resource_name: str,
        slot_indices: Iterable[int],
        divisions: Collection[str] = (),
    ) -> bool:
        for slot_index in slot_indices:
            lock = self.lock_for(resource_name, slot_index)
            if lock is None:
                continue
            # A division is never blocked by its own lock.
            if lock.division is not None and lock.division in divisions:
                continue
            return True
        return False

    def unlock_bunk(self, bunk: str, slot_indices: Iterable[int]) -> int:
        slots = set(slot_indices)
        doomed = [key for key, lock in self._locks.items() if lock.bunk == bunk and key[1] in slots]
        for key in doomed:
            del self._locks[key]
        return len(doomed)

    def entries(self) -> list[FieldLock]:
        return [self._locks[key] for key in sorted(self._locks)]

    def __len__(self) -> int:
        return len(self._locks)


def register_exhausted(ledger: ResourceLedger, table: FieldLockTable, *, division: str = "external") -> int:
    """Lock every resource the seeded ledger reports as full."""
    registered = 0
    for slot_index, record in ledger.records():
        if record.usage_count < record.max_capacity:
            continue
        table.lock(
            record.resource_name,
            [slot_index],
            locked_by=OTHER_SCHEDULER,
            division=division,
            activity=f"Used by: {', '.join(record.booked_by)}",
            source="ledger",
        )
        registered += 1
    logger.debug("Registered %s exhausted resource slot(s) as locks", registered)
    return registered


def load_lock_table(db: Session, day: str) -> FieldLockTable:
    table = FieldLockTable()
    rows = db.execute(
        select(ResourceLock).where(ResourceLock.day == day).order_by(ResourceLock.resource_key, ResourceLock.slot_index)
    ).scalars()
    for row in rows:
        table.lock(
            row.resource_name,
            [row.slot_index],
            locked_by=row.locked_by,
            division=row.division,
            bunk=row.bunk,
            activity=row.activity,
            source=row.source,
        )
    return table


def save_lock_table(db: Session, day: str, table: FieldLockTable, *, sources: Iterable[str] | None = None) -> None:
    """Replace the persisted locks of ``day``; ``sources`` limits which lock sources are written."""
    allowed = set(sources) if sources is not None else None
    db.execute(delete(ResourceLock).where(ResourceLock.day == day))
    for lock in table.entries():
        if allowed is not None and lock.source not in allowed:
            continue
        db.add(
            ResourceLock(
                day=day,
                resource_key=lock.resource_name.strip().lower(),
                resource_name=lock.resource_name,
                slot_index=lock.slot_index,
                locked_by=lock.locked_by,
                division=lock.division,
                bunk=lock.bunk,
                activity=lock.activity,
                source=lock.source,
            )
        )
