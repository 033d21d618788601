import logging
import os

from sqlalchemy.orm import Session

from .auth import hash_password, seed_project_statuses, seed_roles
from .db import Base, SessionLocal, engine
from .models import Tenant, User
from .role_keys import RoleKey

logger = logging.getLogger(__name__)


def _truncate_to_bcrypt_limit(password: str) -> str:
    """Truncate to bcrypt's 72-byte limit to avoid backend ValueError."""
    encoded = password.encode("utf-8")
    if len(encoded) <= 72:
        return password

    truncated = encoded[:72]
    while True:
        try:
            return truncated.decode("utf-8")
        except UnicodeDecodeError:
            truncated = truncated[:-1]


def seed_tenant(db: Session, name: str) -> Tenant:
    tenant = db.query(Tenant).filter(Tenant.name == name).first()
    if tenant:
        return tenant
    tenant = Tenant(name=name)
    db.add(tenant)
    db.flush()
    return tenant


def seed_admin(db: Session, tenant: Tenant, email: str, password: str) -> User:
    admin = db.query(User).filter(User.email == email).first()
    if admin:
        return admin
    admin = User(
        tenant_id=tenant.id,
        email=email,
        full_name="System Admin",
        password_hash=hash_password(_truncate_to_bcrypt_limit(password)),
        role=RoleKey.ADMIN.value,
        is_active=True,
    )
    db.add(admin)
    db.flush()
    return admin


def run_seed(db: Session) -> None:
    seed_roles(db)
    seed_project_statuses(db)
    db.flush()

    email = os.getenv("SEED_ADMIN_EMAIL")
    password = os.getenv("SEED_ADMIN_PASSWORD")
    if not email or not password:
        logger.info("SEED_ADMIN_EMAIL/SEED_ADMIN_PASSWORD not set; skipping tenant and admin seed")
        return

    tenant = seed_tenant(db, os.getenv("SEED_TENANT_NAME", "Default Tenant"))
    seed_admin(db, tenant, email, password)


def main() -> None:
    Base.metadata.create_all(bind=engine)
    with SessionLocal() as db:
        run_seed(db)
        db.commit()
    logger.info("Seed completed")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    main()
