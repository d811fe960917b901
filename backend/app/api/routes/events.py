from datetime import date, datetime, time

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from app.api.deps import get_db, require_permissions
from app.core.permissions import Capability
from app.models.event import Event
from app.models.group import GroupStudent, GroupTeacher
from app.models.user import User, UserRole
from app.schemas.event import EventOut

router = APIRouter()


@router.get("/events", response_model=list[EventOut])
def list_my_events(
    start: date = Query(...),
    end: date = Query(...),
    current_user: User = Depends(require_permissions(Capability.calendar_view)),
    db: Session = Depends(get_db),
) -> list[EventOut]:
    if start > end:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid date range")

    query = (
        select(Event)
        .where(
            Event.is_active.is_(True),
            Event.start_at >= datetime.combine(start, time.min),
            Event.start_at <= datetime.combine(end, time.max),
        )
        .order_by(Event.start_at, Event.id)
    )
    if current_user.role == UserRole.student:
        member_groups = select(GroupStudent.group_id).where(
            GroupStudent.user_id == current_user.id,
            GroupStudent.is_active.is_(True),
        )
        query = query.where(Event.group_id.in_(member_groups))
    elif current_user.role == UserRole.teacher:
        taught_groups = select(GroupTeacher.group_id).where(GroupTeacher.user_id == current_user.id)
        query = query.where(or_(Event.teacher_id == current_user.id, Event.group_id.in_(taught_groups)))

    return [EventOut.model_validate(event) for event in db.execute(query).scalars()]
