from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.api.deps import get_db, require_roles
from app.models.group import Group, GroupStudent
from app.models.user import User, UserRole
from app.schemas.group import GroupOut

router = APIRouter()


@router.get("/student/groups", response_model=list[GroupOut])
def list_student_groups(
    current_user: User = Depends(require_roles(UserRole.student)),
    db: Session = Depends(get_db),
) -> list[GroupOut]:
    return list(
        db.execute(
            select(Group)
            .join(GroupStudent, GroupStudent.group_id == Group.id)
            .where(
                GroupStudent.user_id == current_user.id,
                GroupStudent.is_active.is_(True),
                Group.is_active.is_(True),
            )
            .order_by(Group.name)
        ).scalars()
    )
