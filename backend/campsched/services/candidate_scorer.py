from __future__ import annotations

from dataclasses import dataclass, replace
import logging
import math
from typing import Iterable

from campsched.services.assignments import DayAssignments, EntryKind, bunk_distance
from campsched.services.camp_config import CampConfig, ResourceConfig
from campsched.services.field_locks import FieldLockTable
from campsched.services.partition import Partition
from campsched.services.resource_ledger import ResourceLedger
from campsched.services.rotation_history import RotationBook, activity_key

logger = logging.getLogger(__name__)

INFEASIBLE = math.inf


@dataclass(frozen=True)
class RotationWeights:
    never_done_bonus: float = -5000.0
    yesterday_penalty: float = 12000.0
    two_days_penalty: float = 8000.0
    three_days_penalty: float = 5000.0
    this_week_penalty: float = 800.0
    older_penalty: float = 200.0
    older_decay_per_week: float = 0.6
    older_floor: float = 50.0
    high_frequency_penalty: float = 3000.0
    high_frequency_step: float = 500.0
    under_used_bonus: float = -2000.0
    under_used_gap: float = 2.0
    frequency_threshold: int = 3
    adjacent_bunk_bonus: float = -200.0
    nearby_bunk_bonus: float = -100.0
    nearby_bunk_distance: int = 3
    preference_base_bonus: float = 50.0
    preference_step: float = 5.0
    off_preference_penalty: float = 2000.0
    near_usage_cap_penalty: float = 2000.0


@dataclass(frozen=True)
class Candidate:
    resource_name: str
    activity_name: str


class CandidateScorer:
    """Ranks (resource, activity) candidates for a bunk over a set of slots. Lower cost wins."""

    def __init__(
        self,
        *,
        config: CampConfig,
        ledger: ResourceLedger,
        lock_table: FieldLockTable,
        partition: Partition,
        assignments: DayAssignments,
        rotation_book: RotationBook | None = None,
        weights: RotationWeights | None = None,
    ) -> None:
        self.config = config
        self.ledger = ledger
        self.lock_table = lock_table
        self.partition = partition
        self.assignments = assignments
        self.rotation_book = rotation_book or RotationBook()
        self.weights = weights or RotationWeights(frequency_threshold=config.frequency_threshold)
        self._average_counts: dict[str, float] = {}

    def bind(self, *, ledger: ResourceLedger | None = None, assignments: DayAssignments | None = None) -> "CandidateScorer":
        scorer = CandidateScorer(
            config=self.config,
            ledger=ledger if ledger is not None else self.ledger,
            lock_table=self.lock_table,
            partition=self.partition,
            assignments=assignments if assignments is not None else self.assignments,
            rotation_book=self.rotation_book,
            weights=self.weights,
        )
        scorer._average_counts = self._average_counts
        return scorer

    def with_weights(self, **overrides) -> "CandidateScorer":
        scorer = self.bind()
        scorer.weights = replace(self.weights, **overrides)
        return scorer

    def _is_foreign_locked(self, resource: ResourceConfig, slot_indices: list[int]) -> bool:
        return self.lock_table.is_locked(resource.name, slot_indices, divisions=self.partition.divisions)

    def enumerate_candidates(
        self,
        slot_indices: Iterable[int],
        disabled_resources: Iterable[str] = (),
        division: str | None = None,
    ) -> list[Candidate]:
        slots = sorted(set(slot_indices))
        disabled = {item.strip().lower() for item in disabled_resources} | set(self.config.disabled_resources)
        candidates: list[Candidate] = []
        for name in sorted(self.config.resources, key=lambda item: item.strip().lower()):
            resource = self.config.resources[name]
            if not resource.available or resource.key in disabled:
                continue
            if self._is_foreign_locked(resource, slots):
                continue
            for activity in resource.hosted_activities:
                candidates.append(Candidate(resource_name=resource.name, activity_name=activity))
        return candidates

    def activities_done_today(self, bunk: str, exclude_slots: Iterable[int] = ()) -> set[str]:
        excluded = set(exclude_slots)
        done: set[str] = set()
        for slot_index, entry in enumerate(self.assignments.get(bunk) or []):
            if slot_index in excluded or entry is None or entry.kind is not EntryKind.activity:
                continue
            done.add(activity_key(entry.activity_name))
        return done

    def _average_count(self, bunk: str) -> float:
        if bunk not in self._average_counts:
            activities = {
                activity_key(activity)
                for resource in self.config.resources.values()
                for activity in resource.hosted_activities
            }
            if activities:
                total = sum(self.rotation_book.lifetime_count(bunk, activity) for activity in activities)
                self._average_counts[bunk] = total / len(activities)
            else:
                self._average_counts[bunk] = 0.0
        return self._average_counts[bunk]

    def recency_cost(self, bunk: str, activity: str) -> float:
        weights = self.weights
        days = self.rotation_book.days_since(bunk, activity)
        if days is None or self.rotation_book.lifetime_count(bunk, activity) == 0:
            return weights.never_done_bonus
        if days <= 0:
            return INFEASIBLE
        if days == 1:
            return weights.yesterday_penalty
        if days == 2:
            return weights.two_days_penalty
        if days == 3:
            return weights.three_days_penalty
        if days <= 7:
            return weights.this_week_penalty
        weeks = days // 7
        return max(weights.older_floor, weights.older_penalty * weights.older_decay_per_week ** weeks)

    def frequency_cost(self, bunk: str, activity: str) -> float:
        weights = self.weights
        count = self.rotation_book.lifetime_count(bunk, activity)
        if count > weights.frequency_threshold:
            return weights.high_frequency_penalty + weights.high_frequency_step * (
                count - weights.frequency_threshold - 1
            )
        if count > 0 and self._average_count(bunk) - count >= weights.under_used_gap:
            return weights.under_used_bonus
        return 0.0

    def preference_cost(self, resource: ResourceConfig, division: str | None) -> float:
        if not resource.preference_list:
            return 0.0
        if division is not None and division in resource.preference_list:
            position = resource.preference_list.index(division)
            return -max(0.0, self.weights.preference_base_bonus - self.weights.preference_step * position)
        if resource.preference_exclusive:
            return INFEASIBLE
        return self.weights.off_preference_penalty

    def sharing_cost(self, bunk: str, resource: ResourceConfig, slot_indices: list[int]) -> float:
        closest: int | None = None
        for slot_index in slot_indices:
            for owner in self.ledger.booked_by(slot_index, resource.name):
                if owner == bunk:
                    continue
                distance = bunk_distance(bunk, owner)
                if distance is None:
                    continue
                closest = distance if closest is None else min(closest, distance)
        if closest == 1:
            return self.weights.adjacent_bunk_bonus
        if closest is not None and closest <= self.weights.nearby_bunk_distance:
            return self.weights.nearby_bunk_bonus
        return 0.0

    def usage_cap_cost(self, bunk: str, resource: ResourceConfig) -> float:
        if resource.max_usage_per_bunk <= 0:
            return 0.0
        used = sum(self.rotation_book.lifetime_count(bunk, activity) for activity in resource.hosted_activities)
        if used >= resource.max_usage_per_bunk:
            return INFEASIBLE
        if used == resource.max_usage_per_bunk - 1:
            return self.weights.near_usage_cap_penalty
        return 0.0

    def cost(self, bunk: str, slot_indices: Iterable[int], candidate: Candidate, division: str | None = None) -> float:
        slots = sorted(set(slot_indices))
        resource = self.config.resource(candidate.resource_name)
        if resource is None:
            return INFEASIBLE
        if activity_key(candidate.activity_name) in self.activities_done_today(bunk, exclude_slots=slots):
            return INFEASIBLE
        total = 0.0
        for term in (
            self.recency_cost(bunk, candidate.activity_name),
            self.frequency_cost(bunk, candidate.activity_name),
            self.preference_cost(resource, division),
            self.sharing_cost(bunk, resource, slots),
            self.usage_cap_cost(bunk, resource),
        ):
            if math.isinf(term):
                return term
            total += term
        return total

    def rank_candidates(
        self,
        bunk: str,
        slot_indices: Iterable[int],
        *,
        exclude_resources: Iterable[str] = (),
        division: str | None = None,
    ) -> list[tuple[float, Candidate]]:
        slots = sorted(set(slot_indices))
        excluded = {item.strip().lower() for item in exclude_resources}
        ranked: list[tuple[float, int, Candidate]] = []
        for order, candidate in enumerate(self.enumerate_candidates(slots, division=division)):
            if candidate.resource_name.strip().lower() in excluded:
                continue
            if not all(self.ledger.remaining_capacity(slot_index, candidate.resource_name) > 0 for slot_index in slots):
                continue
            value = self.cost(bunk, slots, candidate, division)
            if math.isinf(value):
                continue
            ranked.append((value, order, candidate))
        ranked.sort(key=lambda item: (item[0], item[1]))
        return [(value, candidate) for value, _, candidate in ranked]

    def best_candidate(
        self,
        bunk: str,
        slot_indices: Iterable[int],
        *,
        exclude_resources: Iterable[str] = (),
        division: str | None = None,
    ) -> Candidate | None:
        ranked = self.rank_candidates(
            bunk, slot_indices, exclude_resources=exclude_resources, division=division
        )
        if not ranked:
            logger.debug("No feasible candidate for %s at slots %s", bunk, sorted(set(slot_indices)))
            return None
        return ranked[0][1]
