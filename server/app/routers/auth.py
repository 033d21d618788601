from fastapi import APIRouter, Depends, HTTPException, Response, status
from pydantic import BaseModel, Field
from sqlalchemy import func, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app import config
from app.auth import (
    get_current_user,
    hash_password,
    seed_project_statuses,
    seed_roles,
    token_for_user,
    verify_password,
)
from app.db import get_db
from app.models import Tenant, User
from app.role_keys import RoleKey

router = APIRouter(prefix="/api/auth", tags=["auth"])


class LoginPayload(BaseModel):
    email: str
    password: str


class BootstrapStatusResponse(BaseModel):
    needs_bootstrap: bool


class BootstrapAdminPayload(BaseModel):
    tenant_name: str = Field(min_length=1)
    email: str
    password: str = Field(min_length=10)
    full_name: str | None = None


class DevResetPayload(BaseModel):
    password: str = Field(default="password123!", min_length=10)


def serialize_user(user: User) -> dict:
    return {
        "id": user.id,
        "tenant_id": user.tenant_id,
        "email": user.email,
        "full_name": user.full_name,
        "role": user.role,
        "is_active": user.is_active,
    }


def _users_count(db: Session) -> int:
    return int(db.query(func.count(User.id)).scalar() or 0)


def _get_or_create_tenant(db: Session, name: str = "Default Tenant") -> Tenant:
    tenant = db.query(Tenant).order_by(Tenant.id.asc()).first()
    if tenant:
        return tenant
    tenant = Tenant(name=name)
    db.add(tenant)
    db.flush()
    return tenant


@router.get("/bootstrap/status", response_model=BootstrapStatusResponse)
def bootstrap_status(db: Session = Depends(get_db)):
    return {"needs_bootstrap": _users_count(db) == 0}


@router.post("/bootstrap/admin", status_code=status.HTTP_201_CREATED)
def bootstrap_admin(payload: BootstrapAdminPayload, db: Session = Depends(get_db)):
    try:
        if db.bind and db.bind.dialect.name == "postgresql":
            db.execute(text("LOCK TABLE users IN EXCLUSIVE MODE"))

        if _users_count(db) > 0:
            raise HTTPException(status_code=409, detail="Bootstrap already completed")

        seed_roles(db)
        seed_project_statuses(db)
        tenant = Tenant(name=payload.tenant_name.strip())
        db.add(tenant)
        db.flush()
        user = User(
            tenant_id=tenant.id,
            email=payload.email,
            full_name=payload.full_name,
            password_hash=hash_password(payload.password),
            role=RoleKey.ADMIN.value,
            is_active=True,
        )
        db.add(user)
        db.commit()
    except HTTPException:
        db.rollback()
        raise
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="Bootstrap already completed")

    db.refresh(user)
    return {
        "message": "Tenant and administrator created.",
        "user": serialize_user(user),
        "access_token": token_for_user(user),
        "token_type": "bearer",
    }


@router.post("/dev/reset-admin", status_code=status.HTTP_204_NO_CONTENT)
def dev_reset_admin(payload: DevResetPayload, db: Session = Depends(get_db)):
    if config.env_name() != "development" or not config.allow_dev_reset():
        raise HTTPException(status_code=404, detail="Not found")

    seed_roles(db)
    seed_project_statuses(db)
    tenant = _get_or_create_tenant(db)
    admin = db.query(User).filter(User.email == "admin@ledger.local").first()
    if not admin:
        admin = User(
            tenant_id=tenant.id,
            email="admin@ledger.local",
            full_name="System Admin",
            password_hash=hash_password(payload.password),
            role=RoleKey.ADMIN.value,
            is_active=True,
        )
        db.add(admin)
    else:
        admin.full_name = admin.full_name or "System Admin"
        admin.password_hash = hash_password(payload.password)
        admin.role = RoleKey.ADMIN.value
        admin.is_active = True
    db.commit()

    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/login")
def login(payload: LoginPayload, db: Session = Depends(get_db)):
    if _users_count(db) == 0:
        raise HTTPException(status_code=403, detail="Bootstrap required before login")

    user = db.query(User).filter(User.email == payload.email).first()
    if not user or not user.is_active or not verify_password(payload.password, user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid email or password")

    return {
        "message": "Login successful.",
        "access_token": token_for_user(user),
        "token_type": "bearer",
        "user": serialize_user(user),
    }


@router.get("/me")
def me(current_user: User = Depends(get_current_user)):
    return {"message": "Current user retrieved successfully.", "user": serialize_user(current_user)}
