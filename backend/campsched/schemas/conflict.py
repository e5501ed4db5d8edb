from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class ResolutionChoice(str, Enum):
    notify = "notify"
    bypass = "bypass"


class BookedBunk(BaseModel):
    bunk: str
    slot: int
    activity: Optional[str] = None
    division: Optional[str] = None


class ConflictReport(BaseModel):
    resource_name: str
    slots: List[int]
    has_conflict: bool
    conflicts: List[BookedBunk] = Field(default_factory=list)
    editable: List[str] = Field(default_factory=list)
    non_editable: List[str] = Field(default_factory=list)
    foreign_locked_slots: List[int] = Field(default_factory=list)
    can_share: bool = False
    current_usage: int = 0
    max_capacity: int = 1

    @property
    def requires_decision(self) -> bool:
        return bool(self.non_editable) or bool(self.foreign_locked_slots)

    @property
    def auto_resolvable(self) -> bool:
        return self.has_conflict and not self.requires_decision


class ResolutionDecision(BaseModel):
    mode: Literal["direct", "auto", "notify", "bypass"]
    reassign: dict[str, List[int]] = Field(default_factory=dict)
    notify: dict[str, List[int]] = Field(default_factory=dict)
