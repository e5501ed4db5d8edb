from __future__ import annotations

from pydantic import BaseModel, Field, field_validator, model_validator

from campsched.services.time_grid import parse_time_to_minutes


class DivisionIn(BaseModel):
    bunks: list[str] = Field(default_factory=list)
    color: str | None = None

    @field_validator("bunks")
    @classmethod
    def strip_bunks(cls, value: list[str]) -> list[str]:
        cleaned = [item.strip() for item in value if item.strip()]
        if len(set(cleaned)) != len(cleaned):
            raise ValueError("Bunk names must be unique within a division")
        return cleaned


class ResourcePreferences(BaseModel):
    enabled: bool = False
    divisions: list[str] = Field(default_factory=list, alias="list")
    exclusive: bool = False

    model_config = {"populate_by_name": True}


class ResourceIn(BaseModel):
    capacity: int | None = Field(default=None, ge=1, le=50)
    sharable: bool = False
    activities: list[str] = Field(default_factory=list)
    preferences: ResourcePreferences = Field(default_factory=ResourcePreferences)
    max_usage: int = Field(default=0, ge=0, alias="maxUsage")
    available: bool = True

    model_config = {"populate_by_name": True}


class CampSettingsPayload(BaseModel):
    slot_minutes: int = Field(default=30, ge=5, le=240)
    day_start: str = "9:00 am"
    day_end: str = "5:00 pm"
    divisions: dict[str, DivisionIn] = Field(default_factory=dict)
    resources: dict[str, ResourceIn] = Field(default_factory=dict)
    disabled_resources: list[str] = Field(default_factory=list)
    frequency_threshold: int = Field(default=3, ge=1, le=100)

    @field_validator("day_start", "day_end")
    @classmethod
    def validate_time(cls, value: str) -> str:
        parse_time_to_minutes(value)
        return value.strip()

    @model_validator(mode="after")
    def validate_layout(self) -> "CampSettingsPayload":
        if parse_time_to_minutes(self.day_end) <= parse_time_to_minutes(self.day_start):
            raise ValueError("Day end must be after day start")
        seen: dict[str, str] = {}
        for name, division in self.divisions.items():
            for bunk in division.bunks:
                if bunk in seen:
                    raise ValueError(f"Bunk {bunk} is listed in both {seen[bunk]} and {name}")
                seen[bunk] = name
        return self

    def resources_record(self) -> dict:
        return {
            name: resource.model_dump(by_alias=True, exclude_none=True)
            for name, resource in self.resources.items()
        }

    def divisions_record(self) -> dict:
        return {name: division.model_dump() for name, division in self.divisions.items()}
