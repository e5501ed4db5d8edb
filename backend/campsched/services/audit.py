from __future__ import annotations

from enum import Enum
import logging

from sqlalchemy.orm import Session

from campsched.models.activity_log import ActivityLog
from campsched.models.user import User

logger = logging.getLogger(__name__)


class AuditAction(str, Enum):
    settings_update = "settings.camp.update"
    user_create = "user.create"
    user_divisions_update = "user.divisions.update"
    structure_update = "schedule.structure.update"
    generate = "schedule.generate"
    edit = "schedule.edit"
    bypass = "schedule.bypass"
    finalize = "schedule.finalize"
    versions_merge = "schedule.versions.merge"
    notification_read = "notification.read"
    notification_read_all = "notification.read_all"


def log_activity(
    db: Session,
    *,
    user: User | None,
    action: AuditAction,
    day: str | None = None,
    entity_type: str | None = None,
    entity_id: str | None = None,
    details: dict | None = None,
) -> ActivityLog:
    """Record who did what to which camp day. Bypasses also go to the warning log."""
    record = ActivityLog(
        user_id=user.id if user is not None else None,
        action=action.value,
        day=day,
        entity_type=entity_type,
        entity_id=entity_id,
        details=details or {},
    )
    if action is AuditAction.bypass:
        logger.warning("Bypass on %s by %s: %s", day, record.user_id, record.details)
    db.add(record)
    return record
