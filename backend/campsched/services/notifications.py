from __future__ import annotations

import logging
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from campsched.models.notification import Notification, NotificationType
from campsched.models.user import FULL_ACCESS_ROLES, User

logger = logging.getLogger(__name__)


def create_notification(
    db: Session,
    *,
    user_id: str,
    title: str,
    message: str,
    notification_type: NotificationType = NotificationType.system,
    payload: dict | None = None,
) -> Notification:
    record = Notification(
        user_id=user_id,
        title=title,
        message=message,
        notification_type=notification_type,
        payload=payload or {},
    )
    db.add(record)
    db.flush()
    return record


def division_owner_ids(db: Session, division: str | None) -> list[str]:
    """Active users who schedule ``division``; owners and admins when nobody holds it."""
    users = list(db.execute(select(User).where(User.is_active.is_(True)).order_by(User.id)).scalars())
    holders = [
        user.id
        for user in users
        if user.role not in FULL_ACCESS_ROLES and division is not None and division in (user.divisions or [])
    ]
    if holders:
        return holders
    return [user.id for user in users if user.role in FULL_ACCESS_ROLES]


def notify_users(
    db: Session,
    *,
    user_ids: Iterable[str],
    title: str,
    message: str,
    notification_type: NotificationType = NotificationType.system,
    payload: dict | None = None,
    exclude_user_id: str | None = None,
) -> list[Notification]:
    requested_ids = [item for item in dict.fromkeys(user_ids) if item and item != exclude_user_id]
    return [
        create_notification(
            db,
            user_id=user_id,
            title=title,
            message=message,
            notification_type=notification_type,
            payload=payload,
        )
        for user_id in requested_ids
    ]


def notify_division_owners(
    db: Session,
    *,
    division: str | None,
    title: str,
    message: str,
    notification_type: NotificationType = NotificationType.system,
    payload: dict | None = None,
    exclude_user_id: str | None = None,
) -> list[Notification]:
    recipients = division_owner_ids(db, division)
    if not recipients:
        logger.info("No recipients for division %s notification: %s", division, title)
    return notify_users(
        db,
        user_ids=recipients,
        title=title,
        message=message,
        notification_type=notification_type,
        payload=payload,
        exclude_user_id=exclude_user_id,
    )
