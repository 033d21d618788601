from datetime import datetime, timedelta, timezone

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from app.config import ACCESS_TOKEN_EXPIRE_MINUTES, ALGORITHM, SECRET_KEY
from app.db import get_db
from app.models import ProjectStatus, Role, User
from app.role_keys import DEFAULT_PROJECT_STATUSES, ROLE_DEFINITIONS, ROLE_KEY_SET, RoleKey

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, password_hash: str) -> bool:
    return pwd_context.verify(plain_password, password_hash)


def create_access_token(data: dict, expires_delta: timedelta | None = None) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def token_for_user(user: User) -> str:
    return create_access_token({"sub": str(user.id), "tenant_id": user.tenant_id, "role": user.role})


def get_current_user(token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> User:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        user_id = payload.get("sub")
        if user_id is None:
            raise credentials_exception
    except JWTError:
        raise credentials_exception

    user = db.query(User).filter(User.id == int(user_id)).first()
    if not user or not user.is_active:
        raise credentials_exception
    return user


def require_roles(*role_keys: str):
    allowed = {RoleKey(key).value for key in role_keys}

    def dependency(current_user: User = Depends(get_current_user)) -> User:
        if current_user.is_admin:
            return current_user
        if current_user.role not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Role '{current_user.role}' is not allowed to perform this action",
            )
        return current_user

    return dependency


def require_admin(current_user: User = Depends(get_current_user)) -> User:
    if not current_user.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return current_user


def seed_roles(db: Session) -> None:
    existing = {row[0] for row in db.query(Role.key).all()}
    for role_key, name in ROLE_DEFINITIONS:
        if role_key.value not in existing:
            db.add(Role(key=role_key.value, name=name))


def seed_project_statuses(db: Session) -> None:
    existing = {row[0] for row in db.query(ProjectStatus.name).all()}
    for name in DEFAULT_PROJECT_STATUSES:
        if name not in existing:
            db.add(ProjectStatus(name=name))


def validate_role(role: str) -> str:
    if role not in ROLE_KEY_SET:
        raise HTTPException(status_code=400, detail=f"Unknown role: {role}")
    return role
