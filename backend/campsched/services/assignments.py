from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum, Flag, auto
import re

FREE_LABEL = "Free"

BUNK_NUMBER_PATTERN = re.compile(r"(\d+)")


class EntryFlag(Flag):
    NONE = 0
    FIXED = auto()
    PINNED = auto()
    LOCKED = auto()
    AUTO_REASSIGNED = auto()
    NO_ALTERNATIVE = auto()


# Persisted key for every flag; day records written by older clients use the same keys.
FLAG_KEYS: tuple[tuple[EntryFlag, str], ...] = (
    (EntryFlag.FIXED, "_fixed"),
    (EntryFlag.PINNED, "_pinned"),
    (EntryFlag.LOCKED, "_locked"),
    (EntryFlag.AUTO_REASSIGNED, "_autoReassigned"),
    (EntryFlag.NO_ALTERNATIVE, "_noAlternative"),
)


class EntryKind(str, Enum):
    activity = "activity"
    continuation = "continuation"
    free = "free"


class BlockKind(str, Enum):
    activity = "activity"
    fixed = "fixed"
    split = "split"


@dataclass(frozen=True)
class TimeSlot:
    index: int
    start_minute: int
    end_minute: int


@dataclass(frozen=True)
class ScheduleBlock:
    division: str
    event_label: str
    start_minute: int
    end_minute: int
    kind: BlockKind = BlockKind.activity

    @property
    def duration(self) -> int:
        return self.end_minute - self.start_minute


@dataclass(frozen=True)
class Assignment:
    resource_name: str | None
    activity_name: str
    sport_tag: str | None = None
    is_first_of_run: bool = True
    flags: EntryFlag = EntryFlag.NONE
    timestamp: float = 0.0

    @classmethod
    def free(cls, *, flags: EntryFlag = EntryFlag.NONE, timestamp: float = 0.0) -> "Assignment":
        return cls(resource_name=None, activity_name=FREE_LABEL, flags=flags, timestamp=timestamp)

    @property
    def kind(self) -> EntryKind:
        if not self.is_first_of_run:
            return EntryKind.continuation
        if self.activity_name.strip().lower() == FREE_LABEL.lower():
            return EntryKind.free
        return EntryKind.activity

    @property
    def holds_resource(self) -> bool:
        return self.kind is EntryKind.activity and bool(self.resource_name)

    def has(self, flag: EntryFlag) -> bool:
        return bool(self.flags & flag)

    def with_flags(self, flags: EntryFlag) -> "Assignment":
        return replace(self, flags=self.flags | flags)

    def continuation(self) -> "Assignment":
        return replace(self, is_first_of_run=False)

    def to_dict(self) -> dict:
        payload: dict = {
            "field": self.resource_name if self.resource_name is not None else (
                FREE_LABEL if self.kind is EntryKind.free else None
            ),
            "_activity": self.activity_name,
            "sport": self.sport_tag,
            "continuation": not self.is_first_of_run,
            "_timestamp": self.timestamp,
        }
        for flag, key in FLAG_KEYS:
            if self.has(flag):
                payload[key] = True
        return payload

    @classmethod
    def from_dict(cls, raw: dict) -> "Assignment":
        field = raw.get("field")
        if isinstance(field, dict):
            field = field.get("name")
        activity = raw.get("_activity") or raw.get("sport") or field or FREE_LABEL
        resource = field if field and str(field).strip().lower() != FREE_LABEL.lower() else None
        flags = EntryFlag.NONE
        for flag, key in FLAG_KEYS:
            if raw.get(key):
                flags |= flag
        return cls(
            resource_name=resource,
            activity_name=str(activity),
            sport_tag=raw.get("sport"),
            is_first_of_run=not raw.get("continuation", False),
            flags=flags,
            timestamp=float(raw.get("_timestamp") or 0.0),
        )


DayAssignments = dict[str, list[Assignment | None]]


def day_from_dict(raw: dict | None) -> DayAssignments:
    result: DayAssignments = {}
    for bunk, entries in (raw or {}).items():
        if not isinstance(entries, list):
            continue
        result[str(bunk)] = [Assignment.from_dict(item) if isinstance(item, dict) else None for item in entries]
    return result


def day_to_dict(assignments: DayAssignments) -> dict:
    return {
        bunk: [entry.to_dict() if entry is not None else None for entry in entries]
        for bunk, entries in assignments.items()
    }


def copy_day(assignments: DayAssignments) -> DayAssignments:
    # Entries are frozen, so copying the lists is a deep copy.
    return {bunk: list(entries) for bunk, entries in assignments.items()}


def ensure_row(assignments: DayAssignments, bunk: str, slot_count: int) -> list[Assignment | None]:
    row = assignments.setdefault(bunk, [])
    if len(row) < slot_count:
        row.extend([None] * (slot_count - len(row)))
    return row


def run_slots(entries: list[Assignment | None], head_index: int) -> list[int]:
    """Head slot plus every trailing continuation slot of the same run."""
    slots = [head_index]
    for index in range(head_index + 1, len(entries)):
        entry = entries[index]
        if entry is None or entry.kind is not EntryKind.continuation:
            break
        slots.append(index)
    return slots


def head_index_for(entries: list[Assignment | None], slot_index: int) -> int | None:
    index = slot_index
    while 0 <= index < len(entries):
        entry = entries[index]
        if entry is None:
            return None
        if entry.kind is not EntryKind.continuation:
            return index
        index -= 1
    return None


def write_run(
    assignments: DayAssignments,
    bunk: str,
    slots: list[int],
    head: Assignment,
    slot_count: int,
) -> None:
    row = ensure_row(assignments, bunk, slot_count)
    for position, slot_index in enumerate(sorted(slots)):
        row[slot_index] = head if position == 0 else head.continuation()


def bunk_number(bunk: str) -> int | None:
    match = BUNK_NUMBER_PATTERN.search(str(bunk))
    return int(match.group(1)) if match else None


def bunk_sort_key(bunk: str) -> tuple[int, int, str]:
    number = bunk_number(bunk)
    if number is None:
        return (1, 0, str(bunk))
    return (0, number, str(bunk))


def bunk_distance(first: str, second: str) -> int | None:
    first_number = bunk_number(first)
    second_number = bunk_number(second)
    if first_number is None or second_number is None:
        return None
    return abs(first_number - second_number)
