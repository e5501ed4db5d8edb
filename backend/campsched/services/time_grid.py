from __future__ import annotations

from dataclasses import dataclass, replace
import re
from typing import Iterable, Mapping

from campsched.services.assignments import (
    Assignment,
    BlockKind,
    EntryKind,
    ScheduleBlock,
    TimeSlot,
)

TIME_PATTERN = re.compile(r"^(\d{1,2}):(\d{2})$")
SPLIT_SEPARATOR = "/"


def parse_time_to_minutes(value: str) -> int:
    """Parse ``HH:MM`` (24h) or ``H:MM am/pm`` into minutes after midnight."""
    if not isinstance(value, str):
        raise ValueError("Time must be a string")
    text = value.strip().lower()
    meridiem = None
    if text.endswith("am") or text.endswith("pm"):
        meridiem = text[-2:]
        text = text[:-2].strip()
    match = TIME_PATTERN.match(text)
    if not match:
        raise ValueError(f"Unrecognized time value: {value!r}")
    hours = int(match.group(1))
    minutes = int(match.group(2))
    if minutes > 59:
        raise ValueError(f"Unrecognized time value: {value!r}")
    if meridiem:
        if hours < 1 or hours > 12:
            raise ValueError(f"Unrecognized time value: {value!r}")
        if hours == 12:
            hours = 0 if meridiem == "am" else 12
        elif meridiem == "pm":
            hours += 12
    elif hours > 23:
        raise ValueError(f"Unrecognized time value: {value!r}")
    return hours * 60 + minutes


def minutes_to_label(minutes: int) -> str:
    hours_24 = minutes // 60
    mins = minutes % 60
    meridiem = "PM" if hours_24 >= 12 else "AM"
    hours_12 = hours_24 % 12 or 12
    return f"{hours_12}:{mins:02d} {meridiem}"


@dataclass(frozen=True)
class TimeGrid:
    slots: tuple[TimeSlot, ...]
    slot_minutes: int = 30

    @classmethod
    def build(cls, day_start: int, day_end: int, slot_minutes: int = 30) -> "TimeGrid":
        if slot_minutes <= 0:
            raise ValueError("slot_minutes must be positive")
        if day_end <= day_start:
            raise ValueError("Day end must be after day start")
        slots: list[TimeSlot] = []
        cursor = day_start
        while cursor + slot_minutes <= day_end:
            slots.append(TimeSlot(index=len(slots), start_minute=cursor, end_minute=cursor + slot_minutes))
            cursor += slot_minutes
        return cls(slots=tuple(slots), slot_minutes=slot_minutes)

    def __len__(self) -> int:
        return len(self.slots)

    def slots_covered_by(self, start_minute: int, end_minute: int) -> list[int]:
        return [slot.index for slot in self.slots if start_minute <= slot.start_minute < end_minute]

    def first_slot_at_or_near(self, target_minute: int) -> int | None:
        if not self.slots:
            return None
        for slot in self.slots:
            if slot.start_minute == target_minute:
                return slot.index
        closest = min(self.slots, key=lambda slot: (abs(slot.start_minute - target_minute), slot.index))
        return closest.index

    def slots_for_block(self, block: ScheduleBlock) -> list[int]:
        return self.slots_covered_by(block.start_minute, block.end_minute)


def split_label(label: str) -> tuple[str, str] | None:
    if SPLIT_SEPARATOR not in label:
        return None
    first, _, second = label.partition(SPLIT_SEPARATOR)
    first = first.strip() or "Activity 1"
    second = second.strip() or "Activity 2"
    return first, second


def split_block(block: ScheduleBlock) -> tuple[ScheduleBlock, ScheduleBlock]:
    midpoint = (block.start_minute + block.end_minute) // 2
    labels = split_label(block.event_label) or ("Activity 1", "Activity 2")
    first = replace(block, event_label=labels[0], end_minute=midpoint, kind=BlockKind.activity)
    second = replace(block, event_label=labels[1], start_minute=midpoint, kind=BlockKind.activity)
    return first, second


def _activity_at(entries: list[Assignment | None], slot_indices: list[int]) -> str | None:
    for slot_index in slot_indices:
        if slot_index >= len(entries):
            continue
        entry = entries[slot_index]
        if entry is not None and entry.kind is not EntryKind.continuation:
            return entry.activity_name.strip().lower()
    return None


def is_split_block(
    block: ScheduleBlock,
    sample_assignments: Mapping[str, list[Assignment | None]],
    grid: TimeGrid,
) -> bool:
    """True when the label names two halves and a sampled bunk actually holds different activities in them."""
    if split_label(block.event_label) is None:
        return False
    first, second = split_block(block)
    first_slots = grid.slots_for_block(first)
    second_slots = grid.slots_for_block(second)
    if not first_slots or not second_slots:
        return False
    for entries in sample_assignments.values():
        first_activity = _activity_at(entries, first_slots)
        second_activity = _activity_at(entries, second_slots)
        if first_activity and second_activity and first_activity != second_activity:
            return True
    return False


def expand_split_blocks(
    blocks: Iterable[ScheduleBlock],
    sample_assignments: Mapping[str, list[Assignment | None]],
    grid: TimeGrid,
) -> list[ScheduleBlock]:
    expanded: list[ScheduleBlock] = []
    for block in blocks:
        if block.kind is BlockKind.split or is_split_block(block, sample_assignments, grid):
            expanded.extend(split_block(block))
        else:
            expanded.append(block)
    return expanded


def block_from_dict(raw: Mapping) -> ScheduleBlock:
    start = raw.get("startTime", raw.get("start"))
    end = raw.get("endTime", raw.get("end"))
    start_minute = start if isinstance(start, int) else parse_time_to_minutes(str(start))
    end_minute = end if isinstance(end, int) else parse_time_to_minutes(str(end))
    raw_kind = str(raw.get("type") or BlockKind.activity.value).strip().lower()
    try:
        kind = BlockKind(raw_kind)
    except ValueError:
        kind = BlockKind.activity
    return ScheduleBlock(
        division=str(raw.get("division") or ""),
        event_label=str(raw.get("event") or raw.get("event_label") or ""),
        start_minute=start_minute,
        end_minute=end_minute,
        kind=kind,
    )


def block_to_dict(block: ScheduleBlock) -> dict:
    return {
        "division": block.division,
        "event": block.event_label,
        "startTime": minutes_to_label(block.start_minute),
        "endTime": minutes_to_label(block.end_minute),
        "type": block.kind.value,
    }
