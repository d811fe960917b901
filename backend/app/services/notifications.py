from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.group import Group, GroupStudent
from app.models.notification import Notification, NotificationType
from app.models.user import User

logger = logging.getLogger(__name__)


def create_notification(
    db: Session,
    *,
    user_id: str,
    title: str,
    message: str,
    notification_type: NotificationType = NotificationType.system,
    data: dict | None = None,
) -> Notification:
    record = Notification(
        user_id=user_id,
        title=title,
        message=message,
        notification_type=notification_type,
        data=data or {},
    )
    db.add(record)
    db.flush()
    return record


def notify_users(
    db: Session,
    *,
    user_ids: list[str] | set[str] | tuple[str, ...],
    title: str,
    message: str,
    notification_type: NotificationType = NotificationType.system,
    data: dict | None = None,
    exclude_user_id: str | None = None,
) -> list[Notification]:
    requested_ids = [item for item in dict.fromkeys(user_ids) if item and item != exclude_user_id]
    if not requested_ids:
        return []

    recipients = list(
        db.execute(
            select(User.id).where(
                User.id.in_(requested_ids),
                User.is_active.is_(True),
            )
        ).scalars()
    )
    return [
        create_notification(
            db,
            user_id=recipient_id,
            title=title,
            message=message,
            notification_type=notification_type,
            data=data,
        )
        for recipient_id in recipients
    ]


def active_student_ids(db: Session, group_id: str) -> list[str]:
    return list(
        db.execute(
            select(GroupStudent.user_id).where(
                GroupStudent.group_id == group_id,
                GroupStudent.is_active.is_(True),
            )
        ).scalars()
    )


def notify_group_schedule_generated(
    db: Session,
    *,
    group: Group,
    created_count: int,
    actor_user_id: str | None = None,
) -> list[Notification]:
    if created_count <= 0:
        return []
    notifications = notify_users(
        db,
        user_ids=active_student_ids(db, group.id),
        title="Schedule Updated",
        message=f"{created_count} new session(s) were added to the schedule of {group.name}.",
        notification_type=NotificationType.schedule,
        data={"group_id": group.id, "created": created_count},
        exclude_user_id=actor_user_id,
    )
    logger.debug("Notified %d student(s) of group %s about new sessions", len(notifications), group.id)
    return notifications
