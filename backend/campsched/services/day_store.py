from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Protocol

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from campsched.core.exceptions import VersionConflictError
from campsched.models.day_schedule import DaySchedule
from campsched.services.assignments import DayAssignments, copy_day, day_from_dict, day_to_dict

logger = logging.getLogger(__name__)


@dataclass
class DaySnapshot:
    day: str
    assignments: DayAssignments = field(default_factory=dict)
    version: int = 0
    blocks: list[dict] = field(default_factory=list)

    @property
    def exists(self) -> bool:
        return self.version > 0


class DayStore(Protocol):
    def fetch(self, day: str) -> DaySnapshot: ...

    def save(
        self,
        day: str,
        assignments: DayAssignments,
        *,
        expected_version: int,
        actor_id: str | None = None,
        blocks: list[dict] | None = None,
    ) -> int: ...


class SqlDayStore:
    """Day records with compare-and-swap writes on ``DaySchedule.version``.

    A missing day reads as version 0; the first save inserts version 1.
    """

    def __init__(self, db: Session) -> None:
        self.db = db

    def _load(self, day: str) -> DaySchedule | None:
        return self.db.execute(
            select(DaySchedule).where(DaySchedule.day == day).execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def fetch(self, day: str) -> DaySnapshot:
        record = self._load(day)
        if record is None:
            return DaySnapshot(day=day)
        return DaySnapshot(
            day=day,
            assignments=day_from_dict(record.assignments),
            version=record.version,
            blocks=list(record.blocks or []),
        )

    def _current_version(self, day: str) -> int | None:
        return self.db.execute(select(DaySchedule.version).where(DaySchedule.day == day)).scalar_one_or_none()

    def save(
        self,
        day: str,
        assignments: DayAssignments,
        *,
        expected_version: int,
        actor_id: str | None = None,
        blocks: list[dict] | None = None,
    ) -> int:
        payload = day_to_dict(assignments)
        if expected_version == 0:
            current = self._current_version(day)
            if current is not None:
                raise VersionConflictError(day, expected_version, current)
            self.db.add(
                DaySchedule(
                    day=day,
                    assignments=payload,
                    blocks=list(blocks or []),
                    version=1,
                    updated_by_id=actor_id,
                )
            )
            try:
                self.db.flush()
            except IntegrityError as exc:
                self.db.rollback()
                raise VersionConflictError(day, expected_version, self._current_version(day)) from exc
            return 1

        values: dict = {
            "assignments": payload,
            "version": expected_version + 1,
            "updated_by_id": actor_id,
        }
        if blocks is not None:
            values["blocks"] = list(blocks)
        result = self.db.execute(
            update(DaySchedule)
            .where(DaySchedule.day == day, DaySchedule.version == expected_version)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            actual = self._current_version(day)
            logger.info("Stale write for %s: expected version %s, found %s", day, expected_version, actual)
            raise VersionConflictError(day, expected_version, actual)
        return expected_version + 1


class InMemoryDayStore:
    def __init__(self) -> None:
        self._days: dict[str, DaySnapshot] = {}

    def fetch(self, day: str) -> DaySnapshot:
        snapshot = self._days.get(day)
        if snapshot is None:
            return DaySnapshot(day=day)
        return DaySnapshot(
            day=day,
            assignments=copy_day(snapshot.assignments),
            version=snapshot.version,
            blocks=list(snapshot.blocks),
        )

    def save(
        self,
        day: str,
        assignments: DayAssignments,
        *,
        expected_version: int,
        actor_id: str | None = None,
        blocks: list[dict] | None = None,
    ) -> int:
        current = self._days.get(day)
        actual = current.version if current is not None else 0
        if actual != expected_version:
            raise VersionConflictError(day, expected_version, actual)
        self._days[day] = DaySnapshot(
            day=day,
            assignments=copy_day(assignments),
            version=actual + 1,
            blocks=list(blocks) if blocks is not None else (list(current.blocks) if current is not None else []),
        )
        return actual + 1
