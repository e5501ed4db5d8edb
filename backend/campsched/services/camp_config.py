from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Mapping

from sqlalchemy import select
from sqlalchemy.orm import Session

from campsched.core.config import get_settings
from campsched.core.exceptions import ConfigurationError
from campsched.models.camp_settings import CampSettings
from campsched.services.time_grid import TimeGrid, parse_time_to_minutes

logger = logging.getLogger(__name__)

DEFAULT_SHARABLE_CAPACITY = 2


@dataclass(frozen=True)
class ResourceConfig:
    name: str
    capacity: int = 1
    activities: tuple[str, ...] = ()
    preference_list: tuple[str, ...] = ()
    preference_exclusive: bool = False
    max_usage_per_bunk: int = 0
    available: bool = True

    @property
    def key(self) -> str:
        return self.name.strip().lower()

    @property
    def hosted_activities(self) -> tuple[str, ...]:
        # A special activity with no listed sports is its own activity.
        return self.activities or (self.name,)


@dataclass(frozen=True)
class Division:
    name: str
    bunks: tuple[str, ...]
    color: str | None = None


@dataclass(frozen=True)
class CampConfig:
    divisions: dict[str, Division]
    resources: dict[str, ResourceConfig]
    slot_minutes: int = 30
    day_start: int = 9 * 60
    day_end: int = 17 * 60
    disabled_resources: frozenset[str] = field(default_factory=frozenset)
    frequency_threshold: int = 3

    def build_grid(self) -> TimeGrid:
        return TimeGrid.build(self.day_start, self.day_end, self.slot_minutes)

    def resource(self, name: str) -> ResourceConfig | None:
        key = name.strip().lower()
        for resource in self.resources.values():
            if resource.key == key:
                return resource
        return None


def _capacity_from_raw(raw: Mapping) -> int:
    explicit = raw.get("capacity")
    sharable_with = raw.get("sharableWith") or {}
    if explicit is None and isinstance(sharable_with, Mapping):
        explicit = sharable_with.get("capacity")
    if explicit is not None:
        try:
            return max(1, int(explicit))
        except (TypeError, ValueError):
            return 1
    if raw.get("sharable") or (isinstance(sharable_with, Mapping) and sharable_with.get("type") == "all"):
        return DEFAULT_SHARABLE_CAPACITY
    return 1


def parse_resource(name: str, raw: Mapping | None) -> ResourceConfig:
    raw = raw or {}
    preferences = raw.get("preferences") or {}
    enabled = bool(preferences.get("enabled", bool(preferences.get("list"))))
    preference_list = tuple(str(item) for item in preferences.get("list") or ()) if enabled else ()
    return ResourceConfig(
        name=name,
        capacity=_capacity_from_raw(raw),
        activities=tuple(str(item) for item in raw.get("activities") or ()),
        preference_list=preference_list,
        preference_exclusive=enabled and bool(preferences.get("exclusive", False)),
        max_usage_per_bunk=max(0, int(raw.get("maxUsage") or 0)),
        available=raw.get("available", True) is not False,
    )


def parse_divisions(raw: Mapping | None) -> dict[str, Division]:
    divisions: dict[str, Division] = {}
    owner_of: dict[str, str] = {}
    for name, info in (raw or {}).items():
        bunks = tuple(str(bunk) for bunk in (info or {}).get("bunks") or ())
        for bunk in bunks:
            if bunk in owner_of:
                raise ConfigurationError(
                    f"Bunk {bunk} is listed in both {owner_of[bunk]} and {name}"
                )
            owner_of[bunk] = name
        divisions[name] = Division(name=name, bunks=bunks, color=(info or {}).get("color"))
    return divisions


def camp_config_from_record(record: CampSettings | None) -> CampConfig:
    settings = get_settings()
    if record is None:
        return CampConfig(
            divisions={},
            resources={},
            slot_minutes=settings.default_slot_minutes,
            day_start=parse_time_to_minutes(settings.default_day_start),
            day_end=parse_time_to_minutes(settings.default_day_end),
            frequency_threshold=settings.rotation_frequency_threshold,
        )
    try:
        day_start = parse_time_to_minutes(record.day_start)
        day_end = parse_time_to_minutes(record.day_end)
    except ValueError as exc:
        raise ConfigurationError(f"Invalid day bounds in camp settings: {exc}") from exc
    return CampConfig(
        divisions=parse_divisions(record.divisions),
        resources={name: parse_resource(name, raw) for name, raw in (record.resources or {}).items()},
        slot_minutes=record.slot_minutes or settings.default_slot_minutes,
        day_start=day_start,
        day_end=day_end,
        disabled_resources=frozenset(item.strip().lower() for item in record.disabled_resources or ()),
        frequency_threshold=record.frequency_threshold or settings.rotation_frequency_threshold,
    )


def load_camp_config(db: Session) -> CampConfig:
    record = db.execute(select(CampSettings).where(CampSettings.id == 1)).scalar_one_or_none()
    if record is None:
        logger.info("No camp settings stored; using defaults")
    return camp_config_from_record(record)
