from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.api.deps import get_db, require_roles
from app.models.group import Group, GroupTeacher
from app.models.user import User, UserRole
from app.schemas.group import GroupOut

router = APIRouter()


@router.get("/teacher/groups", response_model=list[GroupOut])
def list_teacher_groups(
    current_user: User = Depends(require_roles(UserRole.teacher, UserRole.admin)),
    db: Session = Depends(get_db),
) -> list[GroupOut]:
    return list(
        db.execute(
            select(Group)
            .join(GroupTeacher, GroupTeacher.group_id == Group.id)
            .where(GroupTeacher.user_id == current_user.id, Group.is_active.is_(True))
            .order_by(Group.name)
        ).scalars()
    )
