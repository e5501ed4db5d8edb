from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
import logging
from typing import Iterable, Mapping

from campsched.services.assignments import (
    Assignment,
    DayAssignments,
    EntryFlag,
    EntryKind,
    bunk_sort_key,
    ensure_row,
    head_index_for,
    run_slots,
    write_run,
)
from campsched.services.candidate_scorer import CandidateScorer
from campsched.services.field_locks import POST_EDIT_PINNED, FieldLockTable
from campsched.services.partition import DivisionPartitioner
from campsched.services.resource_ledger import ResourceLedger

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TriggerPlacement:
    """The placement that caused the conflict. It is locked and never reassigned."""

    bunk: str
    resource_name: str
    activity_name: str
    slots: tuple[int, ...]
    locked_by: str
    division: str | None = None
    # Slots the triggering bunk gives up, in addition to ``slots``.
    released_slots: tuple[int, ...] = ()


@dataclass(frozen=True)
class Reassignment:
    bunk: str
    slots: tuple[int, ...]
    from_resource: str | None
    from_activity: str | None
    to_resource: str
    to_activity: str

    def to_dict(self) -> dict:
        return {
            "bunk": self.bunk,
            "slots": list(self.slots),
            "from_resource": self.from_resource,
            "from_activity": self.from_activity,
            "to_resource": self.to_resource,
            "to_activity": self.to_activity,
        }


@dataclass(frozen=True)
class ReassignmentFailure:
    bunk: str
    slots: tuple[int, ...]
    from_resource: str | None
    from_activity: str | None
    reason: str

    def to_dict(self) -> dict:
        return {
            "bunk": self.bunk,
            "slots": list(self.slots),
            "from_resource": self.from_resource,
            "from_activity": self.from_activity,
            "reason": self.reason,
        }


@dataclass
class ReassignmentResult:
    reassigned: list[Reassignment] = field(default_factory=list)
    failed: list[ReassignmentFailure] = field(default_factory=list)
    groups: dict[tuple[int, ...], list[str]] = field(default_factory=dict)
    ledger: ResourceLedger | None = None
    trigger_reserved: bool = True

    @property
    def success(self) -> bool:
        return not self.failed

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "reassigned": [item.to_dict() for item in self.reassigned],
            "failed": [item.to_dict() for item in self.failed],
        }


class ReassignmentSolver:
    """Moves the bunks displaced by a placement to their next-best candidate.

    The solver works on ``assignments`` in place and on a fresh ledger snapshot;
    the snapshot is returned in the result so callers can keep using it.
    """

    def __init__(
        self,
        *,
        ledger: ResourceLedger,
        lock_table: FieldLockTable,
        scorer: CandidateScorer,
        partitioner: DivisionPartitioner,
        assignments: DayAssignments,
        slot_count: int,
        now: float = 0.0,
    ) -> None:
        self.ledger = ledger
        self.lock_table = lock_table
        self.scorer = scorer
        self.partitioner = partitioner
        self.assignments = assignments
        self.slot_count = slot_count
        self.now = now

    def _displaced_slots(self, bunk: str, conflict_slots: Iterable[int]) -> tuple[int, ...]:
        """Widen conflicting slots to the whole runs that cover them."""
        entries = self.assignments.get(bunk) or []
        covered: set[int] = set()
        for slot_index in conflict_slots:
            head_index = head_index_for(entries, slot_index)
            if head_index is None:
                covered.add(slot_index)
                continue
            covered.update(run_slots(entries, head_index))
        return tuple(sorted(covered))

    def _original(self, bunk: str, slots: tuple[int, ...]) -> Assignment | None:
        entries = self.assignments.get(bunk) or []
        for slot_index in slots:
            if slot_index < len(entries):
                entry = entries[slot_index]
                if entry is not None and entry.kind is EntryKind.activity:
                    return entry
        return None

    def group_conflicts(self, conflicts: Mapping[str, Iterable[int]]) -> dict[tuple[int, ...], list[str]]:
        groups: dict[tuple[int, ...], list[str]] = defaultdict(list)
        for bunk, slots in conflicts.items():
            groups[self._displaced_slots(bunk, slots)].append(bunk)
        return {slots: sorted(bunks, key=bunk_sort_key) for slots, bunks in sorted(groups.items())}

    def solve(self, trigger: TriggerPlacement, conflicts: Mapping[str, Iterable[int]]) -> ReassignmentResult:
        trigger_slots = tuple(sorted(set(trigger.slots)))
        self.lock_table.lock(
            trigger.resource_name,
            trigger_slots,
            locked_by=trigger.locked_by,
            division=trigger.division,
            bunk=trigger.bunk,
            activity=trigger.activity_name,
            source=POST_EDIT_PINNED,
        )

        displaced = {
            bunk: self._displaced_slots(bunk, slots)
            for bunk, slots in conflicts.items()
            if bunk != trigger.bunk
        }
        groups = self.group_conflicts({bunk: slots for bunk, slots in conflicts.items() if bunk in displaced})

        released = [(slot_index, bunk) for bunk, slots in displaced.items() for slot_index in slots]
        released.extend((slot_index, trigger.bunk) for slot_index in set(trigger_slots) | set(trigger.released_slots))
        snapshot = self.ledger.snapshot(exclude_bookings=released)
        trigger_reserved = snapshot.try_reserve_all(trigger_slots, trigger.resource_name, trigger.bunk)
        if not trigger_reserved:
            logger.warning(
                "Triggering placement of %s on %s at slots %s exceeds capacity after release",
                trigger.bunk,
                trigger.resource_name,
                list(trigger_slots),
            )

        scorer = self.scorer.bind(ledger=snapshot, assignments=self.assignments)
        result = ReassignmentResult(groups=groups, ledger=snapshot, trigger_reserved=trigger_reserved)

        for bunk in sorted(displaced, key=bunk_sort_key):
            slots = displaced[bunk]
            original = self._original(bunk, slots)
            from_resource = original.resource_name if original is not None else None
            from_activity = original.activity_name if original is not None else None
            division = self.partitioner.division_of(bunk)
            candidate = scorer.best_candidate(
                bunk,
                slots,
                exclude_resources=[trigger.resource_name],
                division=division,
            )
            if candidate is not None and snapshot.try_reserve_all(slots, candidate.resource_name, bunk):
                write_run(
                    self.assignments,
                    bunk,
                    list(slots),
                    Assignment(
                        resource_name=candidate.resource_name,
                        activity_name=candidate.activity_name,
                        sport_tag=candidate.activity_name,
                        flags=EntryFlag.AUTO_REASSIGNED,
                        timestamp=self.now,
                    ),
                    self.slot_count,
                )
                result.reassigned.append(
                    Reassignment(
                        bunk=bunk,
                        slots=slots,
                        from_resource=from_resource,
                        from_activity=from_activity,
                        to_resource=candidate.resource_name,
                        to_activity=candidate.activity_name,
                    )
                )
                logger.info(
                    "Reassigned %s at slots %s from %s to %s (%s)",
                    bunk,
                    list(slots),
                    from_resource,
                    candidate.resource_name,
                    candidate.activity_name,
                )
                continue

            row = ensure_row(self.assignments, bunk, self.slot_count)
            for slot_index in slots:
                row[slot_index] = Assignment.free(flags=EntryFlag.NO_ALTERNATIVE, timestamp=self.now)
            result.failed.append(
                ReassignmentFailure(
                    bunk=bunk,
                    slots=slots,
                    from_resource=from_resource,
                    from_activity=from_activity,
                    reason="No alternative resource with free capacity and an allowed activity",
                )
            )
            logger.warning("No alternative for %s at slots %s; marked Free", bunk, list(slots))

        return result
