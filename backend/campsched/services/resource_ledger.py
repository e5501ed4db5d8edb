from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Iterable, Mapping

from campsched.services.assignments import DayAssignments, EntryKind, run_slots
from campsched.services.camp_config import ResourceConfig

logger = logging.getLogger(__name__)


@dataclass
class ResourceUsageRecord:
    resource_name: str
    usage_count: int
    max_capacity: int
    booked_by: list[str] = field(default_factory=list)


class ResourceLedger:
    """Per-slot, per-resource usage counter with a capacity ceiling.

    ``try_reserve`` is the only way usage grows. Everything else is a query, so
    higher-level code can never drift from the capacity the ledger enforces.
    """

    def __init__(self, resources: Mapping[str, ResourceConfig] | None = None) -> None:
        self._capacities: dict[str, int] = {}
        for name, config in (resources or {}).items():
            self._capacities[name.strip().lower()] = max(1, config.capacity)
        self._records: dict[int, dict[str, ResourceUsageRecord]] = {}

    def capacity_of(self, resource_name: str) -> int:
        return self._capacities.get(resource_name.strip().lower(), 1)

    def reset(self) -> None:
        self._records = {}
        logger.debug("Resource ledger reset")

    def _record(self, slot_index: int, resource_name: str) -> ResourceUsageRecord | None:
        return self._records.get(slot_index, {}).get(resource_name.strip().lower())

    def try_reserve(self, slot_index: int, resource_name: str, owner_id: str) -> bool:
        key = resource_name.strip().lower()
        record = self._record(slot_index, resource_name)
        capacity = record.max_capacity if record is not None else self.capacity_of(resource_name)
        usage = record.usage_count if record is not None else 0
        if usage >= capacity:
            return False
        if record is None:
            record = ResourceUsageRecord(resource_name=resource_name, usage_count=0, max_capacity=capacity)
            self._records.setdefault(slot_index, {})[key] = record
        record.usage_count += 1
        record.booked_by.append(owner_id)
        return True

    def try_reserve_all(self, slot_indices: Iterable[int], resource_name: str, owner_id: str) -> bool:
        """Reserve every slot or none of them."""
        slots = sorted(set(slot_indices))
        if not all(self.is_available(slot_index, resource_name) for slot_index in slots):
            return False
        for slot_index in slots:
            self.try_reserve(slot_index, resource_name, owner_id)
        return True

    def is_available(self, slot_index: int, resource_name: str) -> bool:
        return self.remaining_capacity(slot_index, resource_name) > 0

    def remaining_capacity(self, slot_index: int, resource_name: str) -> int:
        record = self._record(slot_index, resource_name)
        if record is None:
            return self.capacity_of(resource_name)
        return max(0, record.max_capacity - record.usage_count)

    def usage(self, slot_index: int, resource_name: str) -> int:
        record = self._record(slot_index, resource_name)
        return record.usage_count if record is not None else 0

    def booked_by(self, slot_index: int, resource_name: str) -> list[str]:
        record = self._record(slot_index, resource_name)
        return list(record.booked_by) if record is not None else []

    def blocked_at(self, slot_index: int) -> list[str]:
        return sorted(
            record.resource_name
            for record in self._records.get(slot_index, {}).values()
            if record.usage_count >= record.max_capacity
        )

    def records(self) -> list[tuple[int, ResourceUsageRecord]]:
        return [
            (slot_index, record)
            for slot_index in sorted(self._records)
            for _, record in sorted(self._records[slot_index].items())
        ]

    def summary(self) -> dict[int, dict[str, str]]:
        return {
            slot_index: {
                record.resource_name: f"{record.usage_count}/{record.max_capacity}"
                for record in resources.values()
            }
            for slot_index, resources in sorted(self._records.items())
        }

    def snapshot(
        self,
        exclude_owners: Iterable[str] = (),
        exclude_bookings: Iterable[tuple[int, str]] = (),
    ) -> "ResourceLedger":
        """Copy of this ledger rebuilt through ``try_reserve``.

        ``exclude_owners`` drops every booking of those owners; ``exclude_bookings``
        drops single ``(slot, owner)`` bookings.
        """
        excluded = set(exclude_owners)
        excluded_bookings = set(exclude_bookings)
        clone = ResourceLedger()
        clone._capacities = dict(self._capacities)
        for slot_index, record in self.records():
            for owner in record.booked_by:
                if owner in excluded or (slot_index, owner) in excluded_bookings:
                    continue
                clone.try_reserve(slot_index, record.resource_name, owner)
        return clone


def seed_from_assignments(
    ledger: ResourceLedger,
    assignments: DayAssignments,
    skip_bunks: Iterable[str] = (),
) -> int:
    """Reserve every resource-holding run of the bunks not in ``skip_bunks``.

    Returns the number of slot reservations the ledger refused; those are
    pre-existing overbookings and are logged rather than forced in.
    """
    skipped = set(skip_bunks)
    rejected = 0
    for bunk, entries in assignments.items():
        if bunk in skipped:
            continue
        for slot_index, entry in enumerate(entries):
            if entry is None or entry.kind is not EntryKind.activity or not entry.holds_resource:
                continue
            for covered in run_slots(entries, slot_index):
                if not ledger.try_reserve(covered, entry.resource_name, bunk):
                    rejected += 1
                    logger.warning(
                        "Existing booking of %s by %s at slot %s exceeds capacity; not counted",
                        entry.resource_name,
                        bunk,
                        covered,
                    )
    return rejected
