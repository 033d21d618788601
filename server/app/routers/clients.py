from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.auth import get_current_user, require_roles
from app.db import get_db
from app.models import User
from app.projects import schemas
from app.projects.service import DuplicateClientError, client_summary, create_client, list_clients
from app.role_keys import RoleKey


router = APIRouter(prefix="/api/clients", tags=["clients"])


@router.post("", response_model=schemas.ClientEnvelope, status_code=status.HTTP_201_CREATED)
def create_client_record(
    payload: schemas.ClientCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(RoleKey.ADMIN.value, RoleKey.SUPERVISOR.value)),
):
    try:
        client = create_client(db, tenant_id=current_user.tenant_id, payload=payload.model_dump())
        db.commit()
    except (DuplicateClientError, IntegrityError) as exc:
        db.rollback()
        detail = str(exc) if isinstance(exc, DuplicateClientError) else "Client already exists."
        raise HTTPException(status_code=409, detail=detail)

    db.refresh(client)
    return schemas.ClientEnvelope(message="Client created successfully.", client=client_summary(client))


@router.get("", response_model=schemas.ClientListResponse)
def list_client_records(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    clients = list_clients(db, tenant_id=current_user.tenant_id)
    return schemas.ClientListResponse(
        message="Clients retrieved successfully.",
        clients=[client_summary(client) for client in clients],
    )
