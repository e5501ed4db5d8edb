from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from campsched.api.deps import get_current_user, get_db, require_roles
from campsched.core.config import get_settings
from campsched.core.exceptions import ResourceNotFoundError, SchedulerError
from campsched.models.notification import NotificationType
from campsched.models.user import User, UserRole
from campsched.schemas.conflict import ConflictReport
from campsched.schemas.schedule import (
    ConflictCheckRequest,
    DayOut,
    DayStructureUpdate,
    EditRequestIn,
    EditResponse,
    FinalizeResponse,
    GenerateResponse,
    SlotOut,
    VersionMergeRequest,
    VersionMergeResponse,
)
from campsched.services.assignments import bunk_sort_key, day_from_dict, day_to_dict
from campsched.services.audit import AuditAction, log_activity
from campsched.services.camp_config import CampConfig, load_camp_config
from campsched.services.conflict_service import ConflictService
from campsched.services.day_store import DaySnapshot, SqlDayStore
from campsched.services.field_locks import POST_EDIT_PINNED, load_lock_table, save_lock_table
from campsched.services.generation import EditRequest, GenerationOrchestrator, build_context
from campsched.services.merge import SavedVersion, merge_versions
from campsched.services.notifications import notify_division_owners
from campsched.services.partition import DivisionPartitioner, Partition
from campsched.services.rate_limit import enforce_rate_limit
from campsched.services.rotation_history import load_rotation_book, record_finalized_day
from campsched.services.time_grid import minutes_to_label

router = APIRouter()
settings = get_settings()

SCHEDULING_ROLES = (UserRole.owner, UserRole.admin, UserRole.scheduler)


def parse_day(day: str) -> date:
    try:
        return date.fromisoformat(day)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Day must be YYYY-MM-DD") from exc


def resolve_caller_partition(user: User, config: CampConfig) -> Partition:
    return DivisionPartitioner(config.divisions).resolve_partition(user.role, user.divisions or [])


def build_orchestrator(db: Session) -> GenerationOrchestrator:
    return GenerationOrchestrator(
        SqlDayStore(db),
        max_attempts=settings.generation_retry_attempts,
        backoff_seconds=settings.generation_retry_backoff_seconds,
    )


def build_day_out(snapshot: DaySnapshot, config: CampConfig) -> DayOut:
    grid = config.build_grid()
    return DayOut(
        day=snapshot.day,
        version=snapshot.version,
        slots=[
            SlotOut(index=slot.index, start=minutes_to_label(slot.start_minute), end=minutes_to_label(slot.end_minute))
            for slot in grid.slots
        ],
        blocks=snapshot.blocks,
        assignments=day_to_dict(snapshot.assignments),
    )


@router.get("/days/{day}", response_model=DayOut)
def get_day(
    day: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> DayOut:
    parse_day(day)
    return build_day_out(SqlDayStore(db).fetch(day), load_camp_config(db))


@router.put("/days/{day}/structure", response_model=DayOut)
def update_day_structure(
    day: str,
    payload: DayStructureUpdate,
    current_user: User = Depends(require_roles(UserRole.owner, UserRole.admin)),
    db: Session = Depends(get_db),
) -> DayOut:
    parse_day(day)
    store = SqlDayStore(db)
    snapshot = store.fetch(day)
    blocks = [block.to_record() for block in payload.blocks]
    store.save(
        day,
        snapshot.assignments,
        expected_version=snapshot.version,
        actor_id=current_user.id,
        blocks=blocks,
    )
    log_activity(
        db,
        user=current_user,
        action=AuditAction.structure_update,
        day=day,
        details={"blocks": len(blocks)},
    )
    db.commit()
    return build_day_out(store.fetch(day), load_camp_config(db))


@router.post("/days/{day}/generate", response_model=GenerateResponse)
def generate_day(
    day: str,
    request: Request,
    current_user: User = Depends(require_roles(*SCHEDULING_ROLES)),
    db: Session = Depends(get_db),
) -> GenerateResponse:
    day_date = parse_day(day)
    enforce_rate_limit(
        request=request,
        scope="generate",
        limit=settings.generation_rate_limit,
        window_seconds=settings.generation_rate_window_seconds,
        identity=current_user.id,
    )
    config = load_camp_config(db)
    partition = resolve_caller_partition(current_user, config)
    run = build_orchestrator(db).run_generation(
        day=day,
        config=config,
        partition=partition,
        caller_id=current_user.id,
        rotation_book=load_rotation_book(db, partition.bunks, day_date),
        lock_loader=lambda target: load_lock_table(db, target),
    )
    result = run.generation
    log_activity(
        db,
        user=current_user,
        action=AuditAction.generate,
        day=day,
        details={
            "divisions": sorted(partition.divisions),
            "placed": result.placed,
            "failures": len(result.failures),
            "attempts": run.attempts,
            "version": run.version,
            "changed_bunks": run.changed_bunks,
        },
    )
    db.commit()
    return GenerateResponse(
        day=day,
        version=run.version,
        attempts=run.attempts,
        placed=result.placed,
        success=result.success,
        failures=[failure.to_dict() for failure in result.failures],
        updated_bunks=run.merge.updated_bunks,
        preserved_bunks=run.merge.preserved_bunks,
        skipped_blocks=result.skipped_blocks,
    )


@router.post("/days/{day}/conflicts/check", response_model=ConflictReport)
def check_conflicts(
    day: str,
    payload: ConflictCheckRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ConflictReport:
    parse_day(day)
    config = load_camp_config(db)
    partition = resolve_caller_partition(current_user, config)
    ctx = build_context(
        day=day,
        config=config,
        snapshot=SqlDayStore(db).fetch(day),
        partition=partition,
        caller_id=current_user.id,
        lock_table=load_lock_table(db, day),
        include_own=True,
    )
    slots = ctx.grid.slots_covered_by(payload.start_minute, payload.end_minute)
    if not slots:
        raise SchedulerError("Placement does not cover a whole slot")
    service = ConflictService(
        ledger=ctx.ledger,
        partition=ctx.partition,
        partitioner=ctx.partitioner,
        lock_table=ctx.lock_table,
        assignments=ctx.existing,
    )
    return service.check_placement(payload.resource_name, slots, exclude_bunk=payload.bunk)


@router.post("/days/{day}/edits", response_model=EditResponse)
def edit_day(
    day: str,
    payload: EditRequestIn,
    current_user: User = Depends(require_roles(*SCHEDULING_ROLES)),
    db: Session = Depends(get_db),
) -> EditResponse:
    day_date = parse_day(day)
    config = load_camp_config(db)
    partition = resolve_caller_partition(current_user, config)
    request = EditRequest(
        bunk=payload.bunk,
        start_minute=payload.start_minute,
        end_minute=payload.end_minute,
        activity_name=payload.activity,
        resource_name=payload.resource_name,
        resolution=payload.resolution,
    )
    run = build_orchestrator(db).run_edit(
        day=day,
        config=config,
        partition=partition,
        caller_id=current_user.id,
        request=request,
        rotation_book=load_rotation_book(db, DivisionPartitioner(config.divisions).all_bunks(), day_date),
        lock_loader=lambda target: load_lock_table(db, target),
    )
    outcome = run.edit
    save_lock_table(db, day, run.context.lock_table, sources=[POST_EDIT_PINNED])

    for notice in outcome.notices:
        notify_division_owners(
            db,
            division=notice.division,
            title=f"Double booking on {notice.resource_name}",
            message=(
                f"{notice.caused_by_bunk} was placed on {notice.resource_name} alongside "
                f"{notice.bunk} on {day}. Your bunk was left in place."
            ),
            notification_type=NotificationType.double_booking,
            payload={"day": day, **notice.to_dict()},
            exclude_user_id=current_user.id,
        )
    reassignment = outcome.reassignment
    if reassignment is not None:
        moved = [item for item in reassignment.reassigned if not partition.owns(item.bunk)]
        for item in moved:
            notify_division_owners(
                db,
                division=run.context.partitioner.division_of(item.bunk),
                title=f"{item.bunk} was reassigned",
                message=(
                    f"{current_user.name} moved {item.bunk} from {item.from_resource} to "
                    f"{item.to_resource} on {day}."
                ),
                notification_type=NotificationType.reassignment,
                payload={"day": day, **item.to_dict()},
                exclude_user_id=current_user.id,
            )

    log_activity(
        db,
        user=current_user,
        action=AuditAction.bypass if outcome.bypassed else AuditAction.edit,
        day=day,
        details={
            "bunk": payload.bunk,
            "resource": payload.resource_name,
            "activity": payload.activity,
            "slots": outcome.slots,
            "mode": outcome.decision.mode,
            "touched_bunks": sorted(outcome.touched_bunks, key=bunk_sort_key),
            "version": run.version,
            "changed_bunks": run.changed_bunks,
        },
    )
    db.commit()
    return EditResponse(
        day=day,
        version=run.version,
        attempts=run.attempts,
        mode=outcome.decision.mode,
        slots=outcome.slots,
        bypassed=outcome.bypassed,
        touched_bunks=sorted(outcome.touched_bunks, key=bunk_sort_key),
        report=outcome.report,
        reassigned=[item.to_dict() for item in reassignment.reassigned] if reassignment else [],
        failed=[item.to_dict() for item in reassignment.failed] if reassignment else [],
        notices=[notice.to_dict() for notice in outcome.notices],
    )


@router.post("/days/{day}/finalize", response_model=FinalizeResponse)
def finalize_day(
    day: str,
    current_user: User = Depends(require_roles(UserRole.owner, UserRole.admin)),
    db: Session = Depends(get_db),
) -> FinalizeResponse:
    day_date = parse_day(day)
    snapshot = SqlDayStore(db).fetch(day)
    if not snapshot.exists:
        raise ResourceNotFoundError("Day schedule", day)
    rows = record_finalized_day(db, day_date, snapshot.assignments)
    log_activity(
        db,
        user=current_user,
        action=AuditAction.finalize,
        day=day,
        details={"rows_updated": rows},
    )
    db.commit()
    return FinalizeResponse(day=day, bunks=len(snapshot.assignments), rows_updated=rows)


@router.post("/days/{day}/versions/merge", response_model=VersionMergeResponse)
def merge_saved_versions(
    day: str,
    payload: VersionMergeRequest,
    current_user: User = Depends(require_roles(UserRole.owner, UserRole.admin)),
    db: Session = Depends(get_db),
) -> VersionMergeResponse:
    parse_day(day)
    merged = merge_versions(
        SavedVersion(
            label=item.label,
            saved_at=item.saved_at,
            assignments=day_from_dict(item.assignments),
            touched_bunks=frozenset(item.touched_bunks) if item.touched_bunks is not None else None,
        )
        for item in payload.versions
    )
    store = SqlDayStore(db)
    snapshot = store.fetch(day)
    version = store.save(day, merged, expected_version=snapshot.version, actor_id=current_user.id)
    log_activity(
        db,
        user=current_user,
        action=AuditAction.versions_merge,
        day=day,
        details={"versions": [item.label for item in payload.versions], "bunks": len(merged)},
    )
    db.commit()
    return VersionMergeResponse(
        day=day,
        version=version,
        bunk_count=len(merged),
        bunks=sorted(merged, key=bunk_sort_key),
    )
