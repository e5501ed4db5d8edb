from __future__ import annotations

from dataclasses import dataclass
from datetime import date
import logging
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from campsched.models.activity_history import BunkActivityHistory
from campsched.services.assignments import DayAssignments

logger = logging.getLogger(__name__)


def activity_key(activity: str) -> str:
    return activity.strip().lower()


@dataclass(frozen=True)
class RotationRecord:
    bunk: str
    activity: str
    days_since_last: int | None
    lifetime_count: int


class RotationBook:
    """Read-only view of each bunk's activity history relative to one day."""

    def __init__(self, records: Iterable[RotationRecord] = ()) -> None:
        self._records: dict[tuple[str, str], RotationRecord] = {}
        for record in records:
            self._records[(record.bunk, activity_key(record.activity))] = record

    def record(self, bunk: str, activity: str) -> RotationRecord | None:
        return self._records.get((bunk, activity_key(activity)))

    def days_since(self, bunk: str, activity: str) -> int | None:
        record = self.record(bunk, activity)
        return record.days_since_last if record is not None else None

    def lifetime_count(self, bunk: str, activity: str) -> int:
        record = self.record(bunk, activity)
        return record.lifetime_count if record is not None else 0

    def records_for(self, bunk: str) -> list[RotationRecord]:
        return [record for (owner, _), record in sorted(self._records.items()) if owner == bunk]

    def __len__(self) -> int:
        return len(self._records)


def _days_between(earlier: date | None, later: date) -> int | None:
    if earlier is None:
        return None
    return (later - earlier).days


def load_rotation_book(db: Session, bunks: Iterable[str], day: date) -> RotationBook:
    wanted = sorted(set(bunks))
    if not wanted:
        return RotationBook()
    rows = db.execute(
        select(BunkActivityHistory).where(BunkActivityHistory.bunk.in_(wanted))
    ).scalars()
    records = []
    for row in rows:
        days_since = _days_between(row.last_done_on, day)
        # History written after ``day`` says nothing about it.
        if days_since is not None and days_since < 0:
            days_since = None
        records.append(
            RotationRecord(
                bunk=row.bunk,
                activity=row.activity,
                days_since_last=days_since,
                lifetime_count=row.lifetime_count,
            )
        )
    return RotationBook(records)


def activities_in_day(assignments: DayAssignments) -> dict[str, list[str]]:
    """Distinct resource-holding activities each bunk performed, in slot order."""
    performed: dict[str, list[str]] = {}
    for bunk, entries in assignments.items():
        seen: list[str] = []
        for entry in entries:
            if entry is None or not entry.holds_resource:
                continue
            if entry.activity_name not in seen:
                seen.append(entry.activity_name)
        if seen:
            performed[bunk] = seen
    return performed


def record_finalized_day(db: Session, day: date, assignments: DayAssignments) -> int:
    """Fold a finalized day into the rotation history. Returns the number of rows touched."""
    touched = 0
    for bunk, activities in activities_in_day(assignments).items():
        existing = {
            row.activity_key: row
            for row in db.execute(
                select(BunkActivityHistory).where(BunkActivityHistory.bunk == bunk)
            ).scalars()
        }
        for activity in activities:
            key = activity_key(activity)
            row = existing.get(key)
            if row is None:
                row = BunkActivityHistory(bunk=bunk, activity_key=key, activity=activity, lifetime_count=0)
                db.add(row)
                existing[key] = row
            if row.last_done_on == day:
                continue
            row.lifetime_count = (row.lifetime_count or 0) + 1
            if row.last_done_on is None or row.last_done_on < day:
                row.last_done_on = day
            touched += 1
    logger.info("Recorded rotation history for %s: %s bunk-activity row(s)", day.isoformat(), touched)
    return touched
