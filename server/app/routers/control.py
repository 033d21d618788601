from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.auth import hash_password, require_admin, seed_roles, validate_role
from app.db import get_db
from app.models import Role, User
from app.role_keys import RoleKey

router = APIRouter(prefix="/api/control", tags=["control"])


class ControlRoleResponse(BaseModel):
    key: str
    name: str


class ControlUserResponse(BaseModel):
    id: int
    email: str
    full_name: Optional[str] = None
    role: str
    is_active: bool


class ControlUserCreate(BaseModel):
    email: str
    full_name: Optional[str] = None
    password: str
    role: str = RoleKey.EMPLOYEE.value
    is_active: bool = True


class ControlUserUpdate(BaseModel):
    full_name: Optional[str] = None
    role: str
    is_active: bool


class ResetPasswordPayload(BaseModel):
    new_password: str


def _serialize_user(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "full_name": user.full_name,
        "role": user.role,
        "is_active": user.is_active,
    }


def _validate_password(password: str) -> None:
    if len(password) < 8:
        raise HTTPException(status_code=400, detail="Password must be at least 8 characters")


def _get_tenant_user(db: Session, tenant_id: int, user_id: int) -> User:
    user = db.query(User).filter(User.id == user_id, User.tenant_id == tenant_id).first()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


@router.get("/roles", response_model=list[ControlRoleResponse])
def list_roles(db: Session = Depends(get_db), current_user: User = Depends(require_admin)):
    seed_roles(db)
    db.commit()
    return [{"key": role.key, "name": role.name} for role in db.query(Role).order_by(Role.key.asc()).all()]


@router.get("/users", response_model=list[ControlUserResponse])
def list_users(db: Session = Depends(get_db), current_user: User = Depends(require_admin)):
    users = db.query(User).filter(User.tenant_id == current_user.tenant_id).order_by(User.id.asc()).all()
    return [_serialize_user(user) for user in users]


@router.post("/users", status_code=status.HTTP_201_CREATED, response_model=ControlUserResponse)
def create_user(payload: ControlUserCreate, db: Session = Depends(get_db), current_user: User = Depends(require_admin)):
    existing = db.query(User.id).filter(User.email == payload.email).first()
    if existing:
        raise HTTPException(status_code=409, detail="Email already exists")

    _validate_password(payload.password)
    validate_role(payload.role)
    seed_roles(db)

    user = User(
        tenant_id=current_user.tenant_id,
        email=payload.email,
        full_name=payload.full_name,
        password_hash=hash_password(payload.password),
        role=payload.role,
        is_active=payload.is_active,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return _serialize_user(user)


@router.put("/users/{user_id}", response_model=ControlUserResponse)
def update_user(
    user_id: int,
    payload: ControlUserUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    user = _get_tenant_user(db, current_user.tenant_id, user_id)
    validate_role(payload.role)

    user.full_name = payload.full_name
    user.role = payload.role
    user.is_active = payload.is_active
    db.commit()
    db.refresh(user)
    return _serialize_user(user)


@router.post("/users/{user_id}/reset-password", status_code=status.HTTP_204_NO_CONTENT)
def reset_password(
    user_id: int,
    payload: ResetPasswordPayload,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    user = _get_tenant_user(db, current_user.tenant_id, user_id)
    _validate_password(payload.new_password)
    user.password_hash = hash_password(payload.new_password)
    db.commit()
    return None


@router.delete("/users/{user_id}")
def soft_delete_user(user_id: int, db: Session = Depends(get_db), current_user: User = Depends(require_admin)):
    user = _get_tenant_user(db, current_user.tenant_id, user_id)
    user.is_active = False
    db.commit()
    return {"message": "User deactivated."}
