from datetime import datetime, timezone
import logging
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload

from app.audit import record_audit_event
from app.ledger.service import get_project
from app.models import Client, Feedback, Project, ProjectInventory, ProjectStatus, Transaction, User
from app.role_keys import RoleKey

from . import schemas


logger = logging.getLogger(__name__)


class ClientNotFoundError(ValueError):
    pass


class DuplicateClientError(ValueError):
    pass


class InvalidProjectError(ValueError):
    pass


class ProjectInUseError(ValueError):
    pass


def client_summary(client: Optional[Client]) -> Optional[schemas.ClientSummary]:
    if client is None:
        return None
    return schemas.ClientSummary(
        client_id=client.id,
        company_name=client.company_name,
        contact_person=client.contact_person,
        email=client.email,
    )


def project_response(project: Project) -> schemas.ProjectResponse:
    supervisor = project.supervisor
    return schemas.ProjectResponse(
        project_id=project.id,
        project_name=project.name,
        description=project.description,
        status=project.status.name if project.status else None,
        start_date=project.start_date,
        end_date=project.end_date,
        client=client_summary(project.client),
        supervisor=(
            schemas.SupervisorSummary(user_id=supervisor.id, full_name=supervisor.full_name, email=supervisor.email)
            if supervisor
            else None
        ),
    )


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Project dates are stored as naive UTC; aware input is converted first."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _check_dates(start_date: Optional[datetime], end_date: Optional[datetime]) -> None:
    if start_date is not None and end_date is not None and end_date < start_date:
        raise InvalidProjectError("End date cannot be before start date.")


def _get_client(db: Session, *, tenant_id: int, client_id: int) -> Client:
    client = db.query(Client).filter(Client.id == client_id, Client.tenant_id == tenant_id).first()
    if not client:
        raise ClientNotFoundError(f"Client with ID {client_id} not found in your tenancy.")
    return client


def _get_status(db: Session, name: str) -> ProjectStatus:
    status = db.query(ProjectStatus).filter(ProjectStatus.name == name).first()
    if not status:
        raise InvalidProjectError(f"Unknown project status: {name}")
    return status


def _get_supervisor(db: Session, *, tenant_id: int, supervisor_id: int) -> User:
    supervisor = (
        db.query(User)
        .filter(
            User.id == supervisor_id,
            User.tenant_id == tenant_id,
            User.role.in_([RoleKey.SUPERVISOR.value, RoleKey.ADMIN.value]),
            User.is_active.is_(True),
        )
        .first()
    )
    if not supervisor:
        raise InvalidProjectError(f"Supervisor with ID {supervisor_id} not found or is not a supervisor.")
    return supervisor


def create_client(db: Session, *, tenant_id: int, payload: dict) -> Client:
    company_name = payload["company_name"].strip()
    exists = (
        db.query(Client.id)
        .filter(Client.tenant_id == tenant_id, func.lower(Client.company_name) == company_name.lower())
        .first()
    )
    if exists:
        raise DuplicateClientError(f"Client '{company_name}' already exists.")
    client = Client(tenant_id=tenant_id, **{**payload, "company_name": company_name})
    db.add(client)
    db.flush()
    return client


def list_clients(db: Session, *, tenant_id: int) -> list[Client]:
    return db.query(Client).filter(Client.tenant_id == tenant_id).order_by(Client.company_name).all()


def create_project(db: Session, *, tenant_id: int, payload: dict) -> Project:
    client = _get_client(db, tenant_id=tenant_id, client_id=payload["client_id"])
    status = _get_status(db, payload.get("status") or "Active")

    supervisor_id = payload.get("supervisor_id")
    if supervisor_id is not None:
        _get_supervisor(db, tenant_id=tenant_id, supervisor_id=supervisor_id)

    start_date = to_naive_utc(payload.get("start_date")) or datetime.utcnow()
    end_date = to_naive_utc(payload.get("end_date"))
    _check_dates(start_date, end_date)

    project = Project(
        tenant_id=tenant_id,
        client_id=client.id,
        status_id=status.id,
        supervisor_id=supervisor_id,
        name=payload["name"].strip(),
        description=payload.get("description"),
        start_date=start_date,
        end_date=end_date,
    )
    db.add(project)
    db.flush()
    return project


def list_projects(db: Session, *, tenant_id: int) -> list[Project]:
    return (
        db.query(Project)
        .options(selectinload(Project.client), selectinload(Project.supervisor), selectinload(Project.status))
        .filter(Project.tenant_id == tenant_id)
        .order_by(Project.created_at.desc(), Project.id.desc())
        .all()
    )


def update_project(db: Session, *, tenant_id: int, project_id: int, changes: dict) -> Project:
    """Apply a partial update. Keys absent from ``changes`` are left untouched."""
    project = get_project(db, tenant_id=tenant_id, project_id=project_id)

    if changes.get("client_id") is not None:
        project.client_id = _get_client(db, tenant_id=tenant_id, client_id=changes["client_id"]).id
    if "name" in changes:
        name = (changes["name"] or "").strip()
        if not name:
            raise InvalidProjectError("Project name cannot be empty.")
        project.name = name
    if "description" in changes:
        project.description = changes["description"]

    start_date = to_naive_utc(changes["start_date"]) if changes.get("start_date") else project.start_date
    end_date = to_naive_utc(changes["end_date"]) if "end_date" in changes else project.end_date
    _check_dates(start_date, end_date)
    project.start_date = start_date
    project.end_date = end_date
    return project


def set_project_status(db: Session, *, tenant_id: int, project_id: int, status: str) -> Project:
    project = get_project(db, tenant_id=tenant_id, project_id=project_id)
    project.status = _get_status(db, status)
    return project


def assign_supervisor(db: Session, *, tenant_id: int, project_id: int, supervisor_id: int) -> Project:
    project = get_project(db, tenant_id=tenant_id, project_id=project_id)
    project.supervisor = _get_supervisor(db, tenant_id=tenant_id, supervisor_id=supervisor_id)
    logger.info("Supervisor assigned: tenant_id=%s project_id=%s supervisor_id=%s", tenant_id, project_id, supervisor_id)
    return project


def delete_project(db: Session, *, tenant_id: int, user_id: int | None, project_id: int) -> None:
    project = get_project(db, tenant_id=tenant_id, project_id=project_id)
    allocated = (
        db.query(func.coalesce(func.sum(ProjectInventory.quantity), 0))
        .filter(ProjectInventory.project_id == project.id)
        .scalar()
    )
    if allocated:
        raise ProjectInUseError(f"Project with ID {project_id} still holds borrowed items ({allocated} units).")
    has_history = db.query(Transaction.id).filter(Transaction.project_id == project.id).first()
    if has_history:
        raise ProjectInUseError(f"Project with ID {project_id} has transaction history and cannot be deleted.")

    db.query(Feedback).filter(Feedback.project_id == project.id).delete(synchronize_session=False)
    db.delete(project)
    record_audit_event(
        db,
        tenant_id=tenant_id,
        user_id=user_id,
        entity_type="projects",
        entity_id=project_id,
        action="DELETE",
        change_details=f"Deleted project '{project.name}'",
    )
