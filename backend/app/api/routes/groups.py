from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.api.deps import get_db, require_permissions
from app.core.permissions import Capability
from app.models.group import Group, GroupStudent, GroupTeacher
from app.models.notification import NotificationType
from app.models.user import User, UserRole
from app.schemas.group import (
    GroupCreate,
    GroupDetailOut,
    GroupMemberOut,
    GroupOut,
    GroupStudentAdd,
    GroupTeacherAdd,
    GroupUpdate,
)
from app.services.audit import log_activity
from app.services.notifications import create_notification

router = APIRouter()


def _get_group_or_404(db: Session, group_id: str) -> Group:
    group = db.get(Group, group_id)
    if group is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Group not found")
    return group


def _get_user_or_404(db: Session, user_id: str) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


def _group_detail(db: Session, group: Group) -> GroupDetailOut:
    teacher_rows = db.execute(
        select(User, GroupTeacher.role)
        .join(GroupTeacher, GroupTeacher.user_id == User.id)
        .where(GroupTeacher.group_id == group.id)
        .order_by(GroupTeacher.created_at, User.name)
    ).all()
    student_rows = db.execute(
        select(User)
        .join(GroupStudent, GroupStudent.user_id == User.id)
        .where(GroupStudent.group_id == group.id, GroupStudent.is_active.is_(True))
        .order_by(User.name)
    ).scalars()
    base = GroupOut.model_validate(group).model_dump()
    return GroupDetailOut(
        **base,
        teachers=[
            GroupMemberOut(id=user.id, name=user.name, email=user.email, role=role.value)
            for user, role in teacher_rows
        ],
        students=[GroupMemberOut(id=user.id, name=user.name, email=user.email) for user in student_rows],
    )


@router.get("/", response_model=list[GroupOut])
def list_groups(
    include_inactive: bool = Query(default=False),
    current_user: User = Depends(require_permissions(Capability.groups_view)),
    db: Session = Depends(get_db),
) -> list[GroupOut]:
    query = select(Group).order_by(Group.name)
    if not include_inactive:
        query = query.where(Group.is_active.is_(True))
    return list(db.execute(query).scalars())


@router.post("/", response_model=GroupOut, status_code=status.HTTP_201_CREATED)
def create_group(
    payload: GroupCreate,
    request: Request,
    current_user: User = Depends(require_permissions(Capability.groups_create)),
    db: Session = Depends(get_db),
) -> GroupOut:
    existing = db.execute(select(Group).where(Group.name == payload.name)).scalar_one_or_none()
    if existing:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Group name already exists")
    group = Group(**payload.model_dump(), is_active=True)
    db.add(group)
    db.flush()
    log_activity(db, user=current_user, action="group.create", entity_type="group", entity_id=group.id, request=request)
    db.commit()
    db.refresh(group)
    return group


@router.get("/{group_id}", response_model=GroupDetailOut)
def get_group(
    group_id: str,
    current_user: User = Depends(require_permissions(Capability.groups_view)),
    db: Session = Depends(get_db),
) -> GroupDetailOut:
    return _group_detail(db, _get_group_or_404(db, group_id))


@router.put("/{group_id}", response_model=GroupOut)
def update_group(
    group_id: str,
    payload: GroupUpdate,
    current_user: User = Depends(require_permissions(Capability.groups_manage)),
    db: Session = Depends(get_db),
) -> GroupOut:
    group = _get_group_or_404(db, group_id)
    data = payload.model_dump(exclude_unset=True)
    if "name" in data:
        existing = db.execute(
            select(Group).where(Group.name == data["name"], Group.id != group_id)
        ).scalar_one_or_none()
        if existing:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Group name already exists")
    start_date = data.get("start_date", group.start_date)
    end_date = data.get("end_date", group.end_date)
    if start_date and end_date and end_date < start_date:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="end_date must not be before start_date")

    for key, value in data.items():
        setattr(group, key, value)
    db.commit()
    db.refresh(group)
    return group


@router.delete("/{group_id}")
def delete_group(
    group_id: str,
    request: Request,
    current_user: User = Depends(require_permissions(Capability.groups_manage)),
    db: Session = Depends(get_db),
) -> dict:
    group = _get_group_or_404(db, group_id)
    # Soft delete keeps generated events and their attendance history addressable.
    group.is_active = False
    log_activity(db, user=current_user, action="group.deactivate", entity_type="group", entity_id=group.id, request=request)
    db.commit()
    return {"success": True}


@router.post("/{group_id}/teachers", response_model=GroupDetailOut, status_code=status.HTTP_201_CREATED)
def add_group_teacher(
    group_id: str,
    payload: GroupTeacherAdd,
    current_user: User = Depends(require_permissions(Capability.groups_manage)),
    db: Session = Depends(get_db),
) -> GroupDetailOut:
    group = _get_group_or_404(db, group_id)
    teacher = _get_user_or_404(db, payload.user_id)
    if teacher.role not in {UserRole.teacher, UserRole.admin}:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="User is not a teacher")
    db.add(GroupTeacher(group_id=group.id, user_id=teacher.id, role=payload.role))
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Teacher already assigned") from exc
    return _group_detail(db, group)


@router.delete("/{group_id}/teachers/{user_id}")
def remove_group_teacher(
    group_id: str,
    user_id: str,
    current_user: User = Depends(require_permissions(Capability.groups_manage)),
    db: Session = Depends(get_db),
) -> dict:
    link = db.execute(
        select(GroupTeacher).where(GroupTeacher.group_id == group_id, GroupTeacher.user_id == user_id)
    ).scalar_one_or_none()
    if link is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Teacher is not assigned to this group")
    db.delete(link)
    db.commit()
    return {"success": True}


@router.post("/{group_id}/students", response_model=GroupDetailOut, status_code=status.HTTP_201_CREATED)
def add_group_student(
    group_id: str,
    payload: GroupStudentAdd,
    current_user: User = Depends(require_permissions(Capability.groups_manage)),
    db: Session = Depends(get_db),
) -> GroupDetailOut:
    group = _get_group_or_404(db, group_id)
    student = _get_user_or_404(db, payload.user_id)
    if student.role != UserRole.student:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="User is not a student")

    link = db.execute(
        select(GroupStudent).where(GroupStudent.group_id == group.id, GroupStudent.user_id == student.id)
    ).scalar_one_or_none()
    if link is not None and link.is_active:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Student already in group")
    if link is None:
        db.add(GroupStudent(group_id=group.id, user_id=student.id, is_active=True))
    else:
        link.is_active = True
    create_notification(
        db,
        user_id=student.id,
        title="Added to Group",
        message=f"You have been added to group {group.name}.",
        notification_type=NotificationType.group,
        data={"group_id": group.id},
    )
    db.commit()
    return _group_detail(db, group)


@router.delete("/{group_id}/students/{user_id}")
def remove_group_student(
    group_id: str,
    user_id: str,
    current_user: User = Depends(require_permissions(Capability.groups_manage)),
    db: Session = Depends(get_db),
) -> dict:
    link = db.execute(
        select(GroupStudent).where(
            GroupStudent.group_id == group_id,
            GroupStudent.user_id == user_id,
            GroupStudent.is_active.is_(True),
        )
    ).scalar_one_or_none()
    if link is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Student is not in this group")
    link.is_active = False
    db.commit()
    return {"success": True}
