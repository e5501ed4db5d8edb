from __future__ import annotations

from collections import defaultdict
from typing import Dict, List

from campsched.core.exceptions import ForeignConflictError
from campsched.schemas.conflict import (
    BookedBunk,
    ConflictReport,
    ResolutionChoice,
    ResolutionDecision,
)
from campsched.services.assignments import DayAssignments, EntryKind, head_index_for
from campsched.services.field_locks import FieldLockTable
from campsched.services.partition import DivisionPartitioner, Partition
from campsched.services.resource_ledger import ResourceLedger


class ConflictService:
    def __init__(
        self,
        *,
        ledger: ResourceLedger,
        partition: Partition,
        partitioner: DivisionPartitioner,
        lock_table: FieldLockTable,
        assignments: DayAssignments,
    ):
        self.ledger = ledger
        self.partition = partition
        self.partitioner = partitioner
        self.lock_table = lock_table
        self.assignments = assignments

    def _activity_of(self, bunk: str, slot_index: int) -> str | None:
        entries = self.assignments.get(bunk) or []
        head_index = head_index_for(entries, slot_index)
        if head_index is None:
            return None
        entry = entries[head_index]
        if entry is None or entry.kind is EntryKind.free:
            return None
        return entry.activity_name

    def is_foreign_locked(self, resource_name: str, slot_index: int) -> bool:
        return self.lock_table.is_locked(resource_name, [slot_index], divisions=self.partition.divisions)

    def check_placement(self, resource_name: str, slot_indices: List[int], exclude_bunk: str | None = None) -> ConflictReport:
        slots = sorted(set(slot_indices))
        max_capacity = self.ledger.capacity_of(resource_name)
        conflicts: List[BookedBunk] = []
        foreign_locked: List[int] = []
        current_usage = 0
        can_share = max_capacity > 1

        for slot_index in slots:
            booked = [owner for owner in self.ledger.booked_by(slot_index, resource_name) if owner != exclude_bunk]
            current_usage = max(current_usage, len(booked))
            remaining = max_capacity - len(booked)
            locked = self.is_foreign_locked(resource_name, slot_index)
            if locked:
                foreign_locked.append(slot_index)
            if remaining < 1 or locked:
                can_share = False
            if remaining > 0 and not locked:
                continue
            for owner in booked:
                if any(item.bunk == owner and item.slot == slot_index for item in conflicts):
                    continue
                conflicts.append(
                    BookedBunk(
                        bunk=owner,
                        slot=slot_index,
                        activity=self._activity_of(owner, slot_index),
                        division=self.partitioner.division_of(owner),
                    )
                )

        editable: List[str] = []
        non_editable: List[str] = []
        for item in conflicts:
            target = editable if self.partition.owns(item.bunk) else non_editable
            if item.bunk not in target:
                target.append(item.bunk)

        return ConflictReport(
            resource_name=resource_name,
            slots=slots,
            has_conflict=bool(conflicts) or bool(foreign_locked),
            conflicts=conflicts,
            editable=editable,
            non_editable=non_editable,
            foreign_locked_slots=foreign_locked,
            can_share=can_share and current_usage < max_capacity,
            current_usage=current_usage,
            max_capacity=max_capacity,
        )


def group_conflicts_by_bunk(report: ConflictReport, *, include_foreign: bool) -> Dict[str, List[int]]:
    grouped: Dict[str, set[int]] = defaultdict(set)
    for item in report.conflicts:
        if item.bunk in report.non_editable and not include_foreign:
            continue
        grouped[item.bunk].add(item.slot)
    return {bunk: sorted(slots) for bunk, slots in grouped.items()}


def decide_resolution(report: ConflictReport, choice: ResolutionChoice | None) -> ResolutionDecision:
    """Turn a conflict report and the caller's choice into an explicit resolution plan."""
    if not report.has_conflict:
        return ResolutionDecision(mode="direct")
    if not report.requires_decision:
        return ResolutionDecision(mode="auto", reassign=group_conflicts_by_bunk(report, include_foreign=False))
    if choice is None:
        raise ForeignConflictError(report.model_dump())
    if choice is ResolutionChoice.bypass:
        return ResolutionDecision(mode="bypass", reassign=group_conflicts_by_bunk(report, include_foreign=True))
    foreign_only = {
        bunk: slots
        for bunk, slots in group_conflicts_by_bunk(report, include_foreign=True).items()
        if bunk in report.non_editable
    }
    return ResolutionDecision(
        mode="notify",
        reassign=group_conflicts_by_bunk(report, include_foreign=False),
        notify=foreign_only,
    )
