from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.orm import Session

from campsched.api.deps import get_current_user, get_db, require_roles
from campsched.models.user import User, UserRole
from campsched.services.audit import AuditAction, log_activity

router = APIRouter()


class UserOut(BaseModel):
    id: str
    name: str
    email: str | None = None
    role: UserRole
    divisions: list[str] = Field(default_factory=list)
    is_active: bool

    model_config = {"from_attributes": True}


class UserCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    email: str | None = Field(default=None, max_length=255)
    role: UserRole = UserRole.scheduler
    divisions: list[str] = Field(default_factory=list)


class DivisionGrant(BaseModel):
    divisions: list[str] = Field(default_factory=list)


@router.get("/users/me", response_model=UserOut)
def read_me(current_user: User = Depends(get_current_user)) -> UserOut:
    return current_user


@router.get("/users", response_model=list[UserOut])
def list_users(
    current_user: User = Depends(require_roles(UserRole.owner, UserRole.admin)),
    db: Session = Depends(get_db),
) -> list[UserOut]:
    return list(db.execute(select(User).order_by(User.name, User.id)).scalars())


@router.post("/users", response_model=UserOut, status_code=status.HTTP_201_CREATED)
def create_user(
    payload: UserCreate,
    current_user: User = Depends(require_roles(UserRole.owner, UserRole.admin)),
    db: Session = Depends(get_db),
) -> UserOut:
    if payload.role is UserRole.owner and current_user.role is not UserRole.owner:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only an owner can create owners")
    if payload.email:
        existing = db.execute(select(User).where(User.email == payload.email)).scalar_one_or_none()
        if existing is not None:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email already registered")
    user = User(name=payload.name, email=payload.email, role=payload.role, divisions=list(payload.divisions))
    db.add(user)
    db.flush()
    log_activity(db, user=current_user, action=AuditAction.user_create, entity_type="user", entity_id=user.id)
    db.commit()
    db.refresh(user)
    return user


@router.put("/users/{user_id}/divisions", response_model=UserOut)
def grant_divisions(
    user_id: str,
    payload: DivisionGrant,
    current_user: User = Depends(require_roles(UserRole.owner, UserRole.admin)),
    db: Session = Depends(get_db),
) -> UserOut:
    user = db.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    user.divisions = sorted(set(payload.divisions))
    log_activity(
        db,
        user=current_user,
        action=AuditAction.user_divisions_update,
        entity_type="user",
        entity_id=user_id,
        details={"divisions": user.divisions},
    )
    db.commit()
    db.refresh(user)
    return user
