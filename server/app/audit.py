from sqlalchemy.orm import Session

from app.models import AuditEvent


def record_audit_event(
    db: Session,
    *,
    tenant_id: int,
    user_id: int | None,
    entity_type: str,
    entity_id: int,
    action: str,
    change_details: str | None = None,
) -> AuditEvent:
    event = AuditEvent(
        tenant_id=tenant_id,
        user_id=user_id,
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        change_details=change_details,
    )
    db.add(event)
    return event


def list_audit_events(db: Session, tenant_id: int, *, limit: int = 200) -> list[AuditEvent]:
    return (
        db.query(AuditEvent)
        .filter(AuditEvent.tenant_id == tenant_id)
        .order_by(AuditEvent.created_at.desc(), AuditEvent.id.desc())
        .limit(limit)
        .all()
    )
