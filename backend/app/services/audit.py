from __future__ import annotations

from fastapi import Request
from sqlalchemy.orm import Session

from app.models.activity_log import ActivityLog
from app.models.user import User


def _client_ip(request: Request | None) -> str | None:
    if request is None:
        return None
    forwarded = request.headers.get("x-forwarded-for", "")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.headers.get("x-real-ip") or (request.client.host if request.client else None)


def log_activity(
    db: Session,
    *,
    user: User | None,
    action: str,
    entity_type: str | None = None,
    entity_id: str | None = None,
    details: dict | None = None,
    request: Request | None = None,
) -> None:
    user_agent = request.headers.get("user-agent") if request is not None else None
    record = ActivityLog(
        user_id=user.id if user is not None else None,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        details=details or {},
        ip_address=_client_ip(request),
        user_agent=user_agent[:255] if user_agent else None,
    )
    db.add(record)
