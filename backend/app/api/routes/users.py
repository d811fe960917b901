from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.api.deps import get_db, require_permissions
from app.core.permissions import Capability
from app.core.security import get_password_hash
from app.models.user import User, UserRole
from app.schemas.user import UserCreate, UserListOut, UserUpdate
from app.services.audit import log_activity

router = APIRouter()


def _get_user_or_404(db: Session, user_id: str) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


@router.get("/", response_model=list[UserListOut])
def list_users(
    role: UserRole | None = Query(default=None),
    is_active: bool | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    current_user: User = Depends(require_permissions(Capability.users_view)),
    db: Session = Depends(get_db),
) -> list[UserListOut]:
    query = select(User).order_by(User.name, User.id)
    if role is not None:
        query = query.where(User.role == role)
    if is_active is not None:
        query = query.where(User.is_active == is_active)
    return list(db.execute(query.offset(offset).limit(limit)).scalars())


@router.post("/", response_model=UserListOut, status_code=status.HTTP_201_CREATED)
def create_user(
    payload: UserCreate,
    request: Request,
    current_user: User = Depends(require_permissions(Capability.users_create)),
    db: Session = Depends(get_db),
) -> UserListOut:
    if db.execute(select(User).where(User.email == payload.email)).scalar_one_or_none():
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email already registered")
    user = User(
        name=payload.name,
        email=payload.email,
        hashed_password=get_password_hash(payload.password),
        role=payload.role,
        is_active=True,
    )
    db.add(user)
    db.flush()
    log_activity(db, user=current_user, action="user.create", entity_type="user", entity_id=user.id, request=request)
    db.commit()
    db.refresh(user)
    return user


@router.patch("/{user_id}", response_model=UserListOut)
def update_user(
    user_id: str,
    payload: UserUpdate,
    request: Request,
    current_user: User = Depends(require_permissions(Capability.users_manage)),
    db: Session = Depends(get_db),
) -> UserListOut:
    user = _get_user_or_404(db, user_id)
    data = {key: value for key, value in payload.model_dump(exclude_unset=True).items() if value is not None}
    if user.id == current_user.id and (data.get("is_active") is False or data.get("role", user.role) != user.role):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="You cannot demote or deactivate yourself")

    for key, value in data.items():
        setattr(user, key, value)
    log_activity(
        db,
        user=current_user,
        action="user.update",
        entity_type="user",
        entity_id=user.id,
        details={key: (value.value if isinstance(value, UserRole) else value) for key, value in data.items()},
        request=request,
    )
    db.commit()
    db.refresh(user)
    return user


@router.delete("/{user_id}")
def delete_user(
    user_id: str,
    request: Request,
    current_user: User = Depends(require_permissions(Capability.users_manage)),
    db: Session = Depends(get_db),
) -> dict:
    user = _get_user_or_404(db, user_id)
    if user.id == current_user.id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="You cannot delete your own account")
    # Accounts referenced by events stay as inactive rows.
    user.is_active = False
    log_activity(db, user=current_user, action="user.deactivate", entity_type="user", entity_id=user.id, request=request)
    db.commit()
    return {"success": True}
