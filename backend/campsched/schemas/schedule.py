from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from campsched.schemas.conflict import ConflictReport, ResolutionChoice
from campsched.services.assignments import BlockKind
from campsched.services.time_grid import parse_time_to_minutes


class ScheduleBlockIn(BaseModel):
    division: str = Field(min_length=1, max_length=100)
    event: str = Field(min_length=1, max_length=200)
    start_time: str
    end_time: str
    type: BlockKind = BlockKind.activity

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_time(cls, value: str) -> str:
        parse_time_to_minutes(value)
        return value.strip()

    @model_validator(mode="after")
    def validate_time_order(self) -> "ScheduleBlockIn":
        if parse_time_to_minutes(self.end_time) <= parse_time_to_minutes(self.start_time):
            raise ValueError("End time must be after start time")
        return self

    def to_record(self) -> dict:
        return {
            "division": self.division,
            "event": self.event,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "type": self.type.value,
        }


class DayStructureUpdate(BaseModel):
    blocks: list[ScheduleBlockIn] = Field(default_factory=list)


class SlotOut(BaseModel):
    index: int
    start: str
    end: str


class DayOut(BaseModel):
    day: str
    version: int
    slots: list[SlotOut] = Field(default_factory=list)
    blocks: list[dict] = Field(default_factory=list)
    assignments: dict[str, list[Optional[dict]]] = Field(default_factory=dict)


class GenerationFailureOut(BaseModel):
    bunk: str
    division: str
    slots: list[int]
    block: str
    reason: str


class GenerateResponse(BaseModel):
    day: str
    version: int
    attempts: int
    placed: int
    success: bool
    failures: list[GenerationFailureOut] = Field(default_factory=list)
    updated_bunks: list[str] = Field(default_factory=list)
    preserved_bunks: list[str] = Field(default_factory=list)
    skipped_blocks: list[str] = Field(default_factory=list)


class PlacementIn(BaseModel):
    bunk: str = Field(min_length=1)
    start_time: str
    end_time: str
    resource_name: Optional[str] = None

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_time(cls, value: str) -> str:
        parse_time_to_minutes(value)
        return value.strip()

    @property
    def start_minute(self) -> int:
        return parse_time_to_minutes(self.start_time)

    @property
    def end_minute(self) -> int:
        return parse_time_to_minutes(self.end_time)


class ConflictCheckRequest(PlacementIn):
    resource_name: str = Field(min_length=1)


class EditRequestIn(PlacementIn):
    activity: str = Field(min_length=1, max_length=200)
    resolution: Optional[ResolutionChoice] = None


class ReassignmentOut(BaseModel):
    bunk: str
    slots: list[int]
    from_resource: Optional[str] = None
    from_activity: Optional[str] = None
    to_resource: str
    to_activity: str


class ReassignmentFailureOut(BaseModel):
    bunk: str
    slots: list[int]
    from_resource: Optional[str] = None
    from_activity: Optional[str] = None
    reason: str


class DoubleBookingOut(BaseModel):
    bunk: str
    division: Optional[str] = None
    resource_name: str
    slots: list[int]
    caused_by_bunk: str
    caused_by_user: str


class EditResponse(BaseModel):
    day: str
    version: int
    attempts: int
    mode: str
    slots: list[int]
    bypassed: bool = False
    touched_bunks: list[str] = Field(default_factory=list)
    report: Optional[ConflictReport] = None
    reassigned: list[ReassignmentOut] = Field(default_factory=list)
    failed: list[ReassignmentFailureOut] = Field(default_factory=list)
    notices: list[DoubleBookingOut] = Field(default_factory=list)


class FinalizeResponse(BaseModel):
    day: str
    bunks: int
    rows_updated: int


class SavedVersionIn(BaseModel):
    label: str = Field(min_length=1, max_length=200)
    saved_at: datetime
    assignments: dict[str, list[Optional[dict]]] = Field(default_factory=dict)
    touched_bunks: Optional[list[str]] = None


class VersionMergeRequest(BaseModel):
    versions: list[SavedVersionIn] = Field(min_length=1)


class VersionMergeResponse(BaseModel):
    day: str
    version: int
    bunk_count: int
    bunks: list[str] = Field(default_factory=list)
