from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.auth import get_current_user, require_roles
from app.db import get_db
from app.ledger.service import ProjectNotFoundError, get_project
from app.models import User
from app.projects import schemas
from app.projects.service import (
    ClientNotFoundError,
    InvalidProjectError,
    ProjectInUseError,
    assign_supervisor,
    create_project,
    delete_project,
    list_projects,
    project_response,
    set_project_status,
    update_project,
)
from app.role_keys import RoleKey


router = APIRouter(prefix="/api/projects", tags=["projects"])

require_manager = require_roles(RoleKey.ADMIN.value, RoleKey.SUPERVISOR.value)


def _apply(db: Session, operation, **kwargs):
    try:
        project = operation(db, **kwargs)
        db.commit()
    except (ProjectNotFoundError, ClientNotFoundError) as exc:
        db.rollback()
        raise HTTPException(status_code=404, detail=str(exc))
    except InvalidProjectError as exc:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(exc))
    db.refresh(project)
    return project


@router.post("", response_model=schemas.ProjectEnvelope, status_code=status.HTTP_201_CREATED)
def create_project_record(
    payload: schemas.ProjectCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_manager),
):
    project = _apply(db, create_project, tenant_id=current_user.tenant_id, payload=payload.model_dump())
    return schemas.ProjectEnvelope(message="Project created successfully.", project=project_response(project))


@router.get("", response_model=schemas.ProjectListResponse)
def list_project_records(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    projects = list_projects(db, tenant_id=current_user.tenant_id)
    if not projects:
        raise HTTPException(status_code=404, detail="No projects found.")
    return schemas.ProjectListResponse(
        message="Projects retrieved successfully.",
        projects=[project_response(project) for project in projects],
    )


@router.get("/{project_id}", response_model=schemas.ProjectEnvelope)
def get_project_record(project_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    try:
        project = get_project(db, tenant_id=current_user.tenant_id, project_id=project_id)
    except ProjectNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return schemas.ProjectEnvelope(message="Project retrieved successfully.", project=project_response(project))


@router.put("/{project_id}", response_model=schemas.ProjectEnvelope)
def update_project_record(
    project_id: int,
    payload: schemas.ProjectUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_manager),
):
    project = _apply(
        db,
        update_project,
        tenant_id=current_user.tenant_id,
        project_id=project_id,
        changes=payload.model_dump(exclude_unset=True),
    )
    return schemas.ProjectEnvelope(message="Project details updated successfully.", project=project_response(project))


@router.patch("/{project_id}/status", response_model=schemas.ProjectEnvelope)
def update_project_status(
    project_id: int,
    payload: schemas.ProjectStatusUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_manager),
):
    project = _apply(
        db,
        set_project_status,
        tenant_id=current_user.tenant_id,
        project_id=project_id,
        status=payload.status,
    )
    return schemas.ProjectEnvelope(message="Project status updated successfully.", project=project_response(project))


@router.patch("/{project_id}/assign", response_model=schemas.ProjectEnvelope)
def assign_project_supervisor(
    project_id: int,
    payload: schemas.SupervisorAssignment,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(RoleKey.ADMIN.value)),
):
    project = _apply(
        db,
        assign_supervisor,
        tenant_id=current_user.tenant_id,
        project_id=project_id,
        supervisor_id=payload.supervisor_id,
    )
    return schemas.ProjectEnvelope(message="Project supervisor assigned successfully.", project=project_response(project))


@router.delete("/{project_id}")
def delete_project_record(
    project_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(RoleKey.ADMIN.value)),
):
    try:
        delete_project(db, tenant_id=current_user.tenant_id, user_id=current_user.id, project_id=project_id)
        db.commit()
    except ProjectNotFoundError as exc:
        db.rollback()
        raise HTTPException(status_code=404, detail=str(exc))
    except ProjectInUseError as exc:
        db.rollback()
        raise HTTPException(status_code=409, detail=str(exc))
    return {"message": f"Project with ID {project_id} deleted successfully."}
