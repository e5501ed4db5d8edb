from __future__ import annotations

from dataclasses import dataclass, field
import logging
import time
from typing import Callable

from campsched.core.exceptions import (
    PermissionDeniedError,
    ResourceNotFoundError,
    RetryBudgetExhaustedError,
    SchedulerError,
    VersionConflictError,
)
from campsched.schemas.conflict import ConflictReport, ResolutionChoice, ResolutionDecision
from campsched.services.assignments import (
    FREE_LABEL,
    Assignment,
    BlockKind,
    DayAssignments,
    EntryFlag,
    EntryKind,
    ScheduleBlock,
    bunk_sort_key,
    copy_day,
    ensure_row,
    head_index_for,
    run_slots,
    write_run,
)
from campsched.services.camp_config import CampConfig
from campsched.services.candidate_scorer import CandidateScorer, RotationWeights
from campsched.services.conflict_service import ConflictService, decide_resolution
from campsched.services.day_store import DaySnapshot, DayStore
from campsched.services.field_locks import FieldLockTable, register_exhausted
from campsched.services.merge import MergeResult, diff_bunks, merge
from campsched.services.partition import DivisionPartitioner, Partition
from campsched.services.reassignment import ReassignmentResult, ReassignmentSolver, TriggerPlacement
from campsched.services.resource_ledger import ResourceLedger, seed_from_assignments
from campsched.services.rotation_history import RotationBook
from campsched.services.time_grid import TimeGrid, block_from_dict, expand_split_blocks

logger = logging.getLogger(__name__)


@dataclass
class GenerationContext:
    """Everything one generation or edit call reads and writes. Built per call, never shared."""

    day: str
    config: CampConfig
    grid: TimeGrid
    blocks: list[ScheduleBlock]
    partitioner: DivisionPartitioner
    partition: Partition
    ledger: ResourceLedger
    lock_table: FieldLockTable
    existing: DayAssignments
    version: int
    rotation_book: RotationBook
    caller_id: str
    now: float = 0.0
    weights: RotationWeights | None = None

    @property
    def slot_count(self) -> int:
        return len(self.grid)

    def scorer(self, assignments: DayAssignments, ledger: ResourceLedger | None = None) -> CandidateScorer:
        return CandidateScorer(
            config=self.config,
            ledger=ledger if ledger is not None else self.ledger,
            lock_table=self.lock_table,
            partition=self.partition,
            assignments=assignments,
            rotation_book=self.rotation_book,
            weights=self.weights,
        )


def build_context(
    *,
    day: str,
    config: CampConfig,
    snapshot: DaySnapshot,
    partition: Partition,
    caller_id: str,
    lock_table: FieldLockTable | None = None,
    rotation_book: RotationBook | None = None,
    now: float = 0.0,
    include_own: bool = False,
    weights: RotationWeights | None = None,
) -> GenerationContext:
    """Seed a fresh ledger from the stored day.

    Foreign bunks are seeded first and every resource they fill is locked; with
    ``include_own`` the caller's bunks are seeded afterwards, for edits.
    """
    grid = config.build_grid()
    partitioner = DivisionPartitioner(config.divisions)
    table = lock_table if lock_table is not None else FieldLockTable()
    ledger = ResourceLedger(config.resources)
    ledger.reset()

    rejected = seed_from_assignments(ledger, snapshot.assignments, skip_bunks=partition.bunks)
    exhausted = register_exhausted(ledger, table)
    if include_own:
        own = {bunk: entries for bunk, entries in snapshot.assignments.items() if partition.owns(bunk)}
        rejected += seed_from_assignments(ledger, own)
    logger.info(
        "Context for %s: version %s, %s exhausted slot(s), %s rejected seed reservation(s)",
        day,
        snapshot.version,
        exhausted,
        rejected,
    )
    return GenerationContext(
        day=day,
        config=config,
        grid=grid,
        blocks=[block_from_dict(raw) for raw in snapshot.blocks],
        partitioner=partitioner,
        partition=partition,
        ledger=ledger,
        lock_table=table,
        existing=snapshot.assignments,
        version=snapshot.version,
        rotation_book=rotation_book or RotationBook(),
        caller_id=caller_id,
        now=now,
        weights=weights,
    )


@dataclass(frozen=True)
class GenerationFailure:
    bunk: str
    division: str
    slots: tuple[int, ...]
    block_label: str
    reason: str

    def to_dict(self) -> dict:
        return {
            "bunk": self.bunk,
            "division": self.division,
            "slots": list(self.slots),
            "block": self.block_label,
            "reason": self.reason,
        }


@dataclass
class GenerationResult:
    assignments: DayAssignments
    failures: list[GenerationFailure] = field(default_factory=list)
    placed: int = 0
    skipped_blocks: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.failures


def _pinned_runs(entries: list[Assignment | None]) -> list[tuple[Assignment, list[int]]]:
    runs = []
    for slot_index, entry in enumerate(entries):
        if entry is None or entry.kind is EntryKind.continuation or not entry.has(EntryFlag.PINNED):
            continue
        runs.append((entry, run_slots(entries, slot_index) if entry.kind is EntryKind.activity else [slot_index]))
    return runs


def _empty_runs(row: list[Assignment | None], slots: list[int]) -> list[list[int]]:
    """Contiguous groups of ``slots`` that ``row`` leaves empty."""
    runs: list[list[int]] = []
    for slot_index in slots:
        if row[slot_index] is not None:
            continue
        if runs and runs[-1][-1] == slot_index - 1:
            runs[-1].append(slot_index)
        else:
            runs.append([slot_index])
    return runs


def _fill_run(
    ctx: GenerationContext,
    scorer: CandidateScorer,
    result: GenerationResult,
    bunk: str,
    block: ScheduleBlock,
    slots: list[int],
) -> None:
    slot_count = ctx.slot_count
    if block.kind is BlockKind.fixed:
        write_run(
            result.assignments,
            bunk,
            slots,
            Assignment(resource_name=None, activity_name=block.event_label, flags=EntryFlag.FIXED, timestamp=ctx.now),
            slot_count,
        )
        return
    candidate = scorer.best_candidate(bunk, slots, division=block.division)
    if candidate is not None and ctx.ledger.try_reserve_all(slots, candidate.resource_name, bunk):
        write_run(
            result.assignments,
            bunk,
            slots,
            Assignment(
                resource_name=candidate.resource_name,
                activity_name=candidate.activity_name,
                sport_tag=candidate.activity_name,
                timestamp=ctx.now,
            ),
            slot_count,
        )
        result.placed += 1
        return
    row = ensure_row(result.assignments, bunk, slot_count)
    for slot_index in slots:
        row[slot_index] = Assignment.free(flags=EntryFlag.NO_ALTERNATIVE, timestamp=ctx.now)
    result.failures.append(
        GenerationFailure(
            bunk=bunk,
            division=block.division,
            slots=tuple(slots),
            block_label=block.event_label,
            reason="No resource with free capacity and an allowed activity",
        )
    )


def generate_partition(ctx: GenerationContext) -> GenerationResult:
    """Fill every block of the caller's divisions for the caller's bunks.

    Pinned entries survive regeneration. Bunks are visited in ordinal order
    inside each block, so when two own bunks want the same resource the
    lower-numbered one gets it.
    """
    slot_count = ctx.slot_count
    generated: DayAssignments = {}
    own_bunks = sorted(ctx.partition.bunks, key=bunk_sort_key)

    for bunk in own_bunks:
        ensure_row(generated, bunk, slot_count)
        for entry, slots in _pinned_runs(ctx.existing.get(bunk) or []):
            slots = [slot_index for slot_index in slots if slot_index < slot_count]
            if not slots:
                continue
            write_run(generated, bunk, slots, entry, slot_count)
            if entry.holds_resource and not ctx.ledger.try_reserve_all(slots, entry.resource_name, bunk):
                logger.warning("Pinned %s for %s at slots %s is over capacity", entry.resource_name, bunk, slots)

    scorer = ctx.scorer(generated)
    own_blocks = [block for block in ctx.blocks if ctx.partition.owns_division(block.division)]
    blocks = expand_split_blocks(own_blocks, ctx.existing, ctx.grid)
    blocks.sort(key=lambda block: (block.start_minute, block.division, block.end_minute))
    result = GenerationResult(assignments=generated)

    for block in blocks:
        slots = ctx.grid.slots_for_block(block)
        if not slots:
            result.skipped_blocks.append(f"{block.division}: {block.event_label}")
            logger.info("Block %s for %s covers no whole slot; skipped", block.event_label, block.division)
            continue
        division = ctx.config.divisions.get(block.division)
        if division is None:
            continue
        for bunk in sorted(division.bunks, key=bunk_sort_key):
            row = ensure_row(generated, bunk, slot_count)
            # A pinned run may cover part of the block; only the gaps around it are filled.
            for run in _empty_runs(row, slots):
                _fill_run(ctx, scorer, result, bunk, block, run)

    logger.info(
        "Generated %s for %s: %s placement(s), %s failure(s)",
        ctx.day,
        ", ".join(sorted(ctx.partition.divisions)),
        result.placed,
        len(result.failures),
    )
    return result


@dataclass(frozen=True)
class EditRequest:
    bunk: str
    start_minute: int
    end_minute: int
    activity_name: str
    resource_name: str | None = None
    resolution: ResolutionChoice | None = None

    @property
    def is_clear(self) -> bool:
        return self.activity_name.strip().lower() == FREE_LABEL.lower()


@dataclass(frozen=True)
class DoubleBookingNotice:
    bunk: str
    division: str | None
    resource_name: str
    slots: tuple[int, ...]
    caused_by_bunk: str
    caused_by_user: str

    def to_dict(self) -> dict:
        return {
            "bunk": self.bunk,
            "division": self.division,
            "resource_name": self.resource_name,
            "slots": list(self.slots),
            "caused_by_bunk": self.caused_by_bunk,
            "caused_by_user": self.caused_by_user,
        }


@dataclass
class EditOutcome:
    assignments: DayAssignments
    ledger: ResourceLedger
    slots: list[int]
    touched_bunks: set[str]
    decision: ResolutionDecision
    report: ConflictReport | None = None
    reassignment: ReassignmentResult | None = None
    notices: list[DoubleBookingNotice] = field(default_factory=list)
    bypassed: bool = False


def _cut_runs(row: list[Assignment | None], slots: list[int]) -> None:
    """Empty ``slots`` in ``row``; a run continuing past them gets a new head."""
    last = max(slots)
    heads = {head_index_for(row, slot_index) for slot_index in slots} - {None}
    for head_index in sorted(heads):
        head = row[head_index]
        after = [slot_index for slot_index in run_slots(row, head_index) if slot_index > last]
        if after and head is not None:
            row[after[0]] = head
    for slot_index in slots:
        row[slot_index] = None


def apply_edit(ctx: GenerationContext, request: EditRequest) -> EditOutcome:
    """Place one manual edit and resolve whatever it collides with."""
    division = ctx.partitioner.division_of(request.bunk)
    if division is None:
        raise ResourceNotFoundError("Bunk", request.bunk)
    bypass = request.resolution is ResolutionChoice.bypass
    if not ctx.partition.owns(request.bunk) and not bypass:
        raise PermissionDeniedError(request.bunk, division)
    slots = ctx.grid.slots_covered_by(request.start_minute, request.end_minute)
    if not slots:
        raise SchedulerError(
            "Edit range does not cover a whole slot",
            details={"start_minute": request.start_minute, "end_minute": request.end_minute},
        )

    slot_count = ctx.slot_count
    working = copy_day(ctx.existing)
    row = ensure_row(working, request.bunk, slot_count)
    _cut_runs(row, slots)
    ctx.lock_table.unlock_bunk(request.bunk, slots)
    ledger = ctx.ledger.snapshot(exclude_bookings=[(slot_index, request.bunk) for slot_index in slots])
    foreign_edit = not ctx.partition.owns(request.bunk)
    if foreign_edit:
        logger.warning("Bypass by %s on %s: editing foreign bunk %s at slots %s", ctx.caller_id, ctx.day, request.bunk, slots)

    if request.is_clear or not request.resource_name:
        if request.is_clear:
            for slot_index in slots:
                row[slot_index] = Assignment.free(flags=EntryFlag.PINNED, timestamp=ctx.now)
        else:
            write_run(
                working,
                request.bunk,
                slots,
                Assignment(
                    resource_name=None,
                    activity_name=request.activity_name,
                    flags=EntryFlag.FIXED | EntryFlag.PINNED,
                    timestamp=ctx.now,
                ),
                slot_count,
            )
        return EditOutcome(
            assignments=working,
            ledger=ledger,
            slots=slots,
            touched_bunks={request.bunk},
            decision=ResolutionDecision(mode="direct"),
            bypassed=foreign_edit,
        )

    resource_name = request.resource_name
    conflicts = ConflictService(
        ledger=ledger,
        partition=ctx.partition,
        partitioner=ctx.partitioner,
        lock_table=ctx.lock_table,
        assignments=working,
    )
    report = conflicts.check_placement(resource_name, slots, exclude_bunk=request.bunk)
    decision = decide_resolution(report, request.resolution)

    write_run(
        working,
        request.bunk,
        slots,
        Assignment(
            resource_name=resource_name,
            activity_name=request.activity_name,
            sport_tag=request.activity_name,
            flags=EntryFlag.FIXED | EntryFlag.PINNED,
            timestamp=ctx.now,
        ),
        slot_count,
    )
    outcome = EditOutcome(
        assignments=working,
        ledger=ledger,
        slots=slots,
        touched_bunks={request.bunk},
        decision=decision,
        report=report,
        bypassed=foreign_edit or decision.mode == "bypass",
    )

    if decision.reassign:
        solver = ReassignmentSolver(
            ledger=ledger,
            lock_table=ctx.lock_table,
            scorer=ctx.scorer(working, ledger),
            partitioner=ctx.partitioner,
            assignments=working,
            slot_count=slot_count,
            now=ctx.now,
        )
        outcome.reassignment = solver.solve(
            TriggerPlacement(
                bunk=request.bunk,
                resource_name=resource_name,
                activity_name=request.activity_name,
                slots=tuple(slots),
                locked_by=ctx.caller_id,
                division=division,
            ),
            decision.reassign,
        )
        outcome.ledger = outcome.reassignment.ledger
        outcome.touched_bunks.update(decision.reassign)
        # The solver holds the trigger in the lock table; the entry says so too.
        row[slots[0]] = row[slots[0]].with_flags(EntryFlag.LOCKED)
    elif not ledger.try_reserve_all(slots, resource_name, request.bunk):
        # Notify leaves the other bunk in place, so this placement stays double-booked.
        logger.info("%s double-books %s at slots %s", request.bunk, resource_name, slots)

    for bunk, bunk_slots in decision.notify.items():
        outcome.notices.append(
            DoubleBookingNotice(
                bunk=bunk,
                division=ctx.partitioner.division_of(bunk),
                resource_name=resource_name,
                slots=tuple(bunk_slots),
                caused_by_bunk=request.bunk,
                caused_by_user=ctx.caller_id,
            )
        )
    if decision.mode == "bypass":
        logger.warning(
            "Bypass by %s on %s: %s placed on %s at slots %s, reassigned %s",
            ctx.caller_id,
            ctx.day,
            request.bunk,
            resource_name,
            slots,
            ", ".join(sorted(decision.reassign, key=bunk_sort_key)),
        )
    return outcome


@dataclass
class OrchestratedRun:
    version: int
    attempts: int
    merge: MergeResult
    changed_bunks: list[str] = field(default_factory=list)
    generation: GenerationResult | None = None
    edit: EditOutcome | None = None
    context: GenerationContext | None = None


class GenerationOrchestrator:
    """Fetch, compute, merge and save with an explicit bounded retry on stale versions."""

    def __init__(
        self,
        store: DayStore,
        *,
        max_attempts: int = 3,
        backoff_seconds: float = 0.25,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.store = store
        self.max_attempts = max(1, max_attempts)
        self.backoff_seconds = max(0.0, backoff_seconds)
        self.sleep = sleep

    def _run(
        self,
        day: str,
        actor_id: str,
        compute: Callable[[DaySnapshot], tuple[GenerationContext, DayAssignments, set[str], object]],
    ) -> OrchestratedRun:
        for attempt in range(1, self.max_attempts + 1):
            snapshot = self.store.fetch(day)
            ctx, changed, writable, outcome = compute(snapshot)
            merged = merge(snapshot.assignments, changed, writable)
            try:
                version = self.store.save(
                    day,
                    merged.assignments,
                    expected_version=snapshot.version,
                    actor_id=actor_id,
                )
            except VersionConflictError as exc:
                if attempt >= self.max_attempts:
                    logger.error("Giving up on %s after %s attempt(s)", day, attempt)
                    raise RetryBudgetExhaustedError(day, attempt) from exc
                logger.warning("Version conflict on %s (attempt %s/%s); retrying", day, attempt, self.max_attempts)
                self.sleep(self.backoff_seconds * attempt)
                continue
            run = OrchestratedRun(
                version=version,
                attempts=attempt,
                merge=merged,
                changed_bunks=diff_bunks(snapshot.assignments, merged.assignments),
                context=ctx,
            )
            if isinstance(outcome, GenerationResult):
                run.generation = outcome
            else:
                run.edit = outcome
            return run
        raise RetryBudgetExhaustedError(day, self.max_attempts)  # pragma: no cover

    def run_generation(
        self,
        *,
        day: str,
        config: CampConfig,
        partition: Partition,
        caller_id: str,
        rotation_book: RotationBook | None = None,
        lock_loader: Callable[[str], FieldLockTable] | None = None,
        now: float | None = None,
    ) -> OrchestratedRun:
        stamp = time.time() if now is None else now

        def compute(snapshot: DaySnapshot):
            ctx = build_context(
                day=day,
                config=config,
                snapshot=snapshot,
                partition=partition,
                caller_id=caller_id,
                lock_table=lock_loader(day) if lock_loader else None,
                rotation_book=rotation_book,
                now=stamp,
            )
            if not any(partition.owns_division(block.division) for block in ctx.blocks):
                raise SchedulerError(f"No day structure stored for your divisions on {day}")
            result = generate_partition(ctx)
            return ctx, result.assignments, set(partition.bunks), result

        return self._run(day, caller_id, compute)

    def run_edit(
        self,
        *,
        day: str,
        config: CampConfig,
        partition: Partition,
        caller_id: str,
        request: EditRequest,
        rotation_book: RotationBook | None = None,
        lock_loader: Callable[[str], FieldLockTable] | None = None,
        now: float | None = None,
    ) -> OrchestratedRun:
        stamp = time.time() if now is None else now

        def compute(snapshot: DaySnapshot):
            ctx = build_context(
                day=day,
                config=config,
                snapshot=snapshot,
                partition=partition,
                caller_id=caller_id,
                lock_table=lock_loader(day) if lock_loader else None,
                rotation_book=rotation_book,
                now=stamp,
                include_own=True,
            )
            outcome = apply_edit(ctx, request)
            return ctx, outcome.assignments, outcome.touched_bunks, outcome

        return self._run(day, caller_id, compute)
