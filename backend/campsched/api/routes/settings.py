from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.orm import Session

from campsched.api.deps import get_current_user, get_db, require_roles
from campsched.core.config import get_settings
from campsched.models.camp_settings import CampSettings
from campsched.models.user import User, UserRole
from campsched.schemas.settings import CampSettingsPayload
from campsched.services.audit import AuditAction, log_activity

router = APIRouter()
settings = get_settings()


def get_settings_record(db: Session) -> CampSettings | None:
    return db.execute(select(CampSettings).where(CampSettings.id == 1)).scalar_one_or_none()


def build_camp_settings(record: CampSettings | None) -> CampSettingsPayload:
    if record is None:
        return CampSettingsPayload(
            slot_minutes=settings.default_slot_minutes,
            day_start=settings.default_day_start,
            day_end=settings.default_day_end,
            frequency_threshold=settings.rotation_frequency_threshold,
        )
    return CampSettingsPayload(
        slot_minutes=record.slot_minutes,
        day_start=record.day_start,
        day_end=record.day_end,
        divisions=record.divisions or {},
        resources=record.resources or {},
        disabled_resources=record.disabled_resources or [],
        frequency_threshold=record.frequency_threshold,
    )


@router.get("/settings/camp", response_model=CampSettingsPayload)
def get_camp_settings(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> CampSettingsPayload:
    return build_camp_settings(get_settings_record(db))


@router.put("/settings/camp", response_model=CampSettingsPayload)
def update_camp_settings(
    payload: CampSettingsPayload,
    current_user: User = Depends(require_roles(UserRole.owner, UserRole.admin)),
    db: Session = Depends(get_db),
) -> CampSettingsPayload:
    record = get_settings_record(db)
    if record is None:
        record = CampSettings(id=1)
        db.add(record)
    record.slot_minutes = payload.slot_minutes
    record.day_start = payload.day_start
    record.day_end = payload.day_end
    record.divisions = payload.divisions_record()
    record.resources = payload.resources_record()
    record.disabled_resources = list(payload.disabled_resources)
    record.frequency_threshold = payload.frequency_threshold
    log_activity(
        db,
        user=current_user,
        action=AuditAction.settings_update,
        entity_type="camp_settings",
        entity_id="1",
        details={"divisions": len(payload.divisions), "resources": len(payload.resources)},
    )
    db.commit()
    db.refresh(record)
    return build_camp_settings(record)
