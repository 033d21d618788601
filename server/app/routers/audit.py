from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict
from sqlalchemy.orm import Session

from app.audit import list_audit_events
from app.auth import require_admin
from app.db import get_db
from app.models import User

router = APIRouter(prefix="/api/logs", tags=["audit"])


class AuditEventResponse(BaseModel):
    id: int
    user_id: Optional[int] = None
    entity_type: str
    entity_id: int
    action: str
    change_details: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AuditLogResponse(BaseModel):
    message: str
    logs: List[AuditEventResponse]


@router.get("", response_model=AuditLogResponse)
def audit_logs(db: Session = Depends(get_db), current_user: User = Depends(require_admin)):
    events = list_audit_events(db, current_user.tenant_id)
    return AuditLogResponse(
        message="Audit logs retrieved successfully.",
        logs=[AuditEventResponse.model_validate(event) for event in events],
    )
