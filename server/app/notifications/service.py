from datetime import datetime
import logging
from typing import Optional

from sqlalchemy.orm import Session

from app.models import NOTIFICATION_STATUSES, Item, Notification, User
from app.role_keys import RoleKey


logger = logging.getLogger(__name__)


class NotificationNotFoundError(ValueError):
    pass


class InvalidNotificationStatusError(ValueError):
    pass


def create_notification(
    db: Session,
    *,
    tenant_id: int,
    user_id: int,
    message: str,
    type: str = "system",
    priority: str = "medium",
) -> Notification:
    notification = Notification(
        tenant_id=tenant_id,
        user_id=user_id,
        message=message,
        type=type,
        priority=priority,
        status="unread",
        delivered_at=datetime.utcnow(),
    )
    db.add(notification)
    logger.debug("Notification queued: tenant_id=%s user_id=%s type=%s", tenant_id, user_id, type)
    return notification


def notify_low_stock(db: Session, *, tenant_id: int, item: Item) -> list[Notification]:
    admins = (
        db.query(User)
        .filter(User.tenant_id == tenant_id, User.role == RoleKey.ADMIN.value, User.is_active.is_(True))
        .all()
    )
    message = f"Item '{item.name}' is running low: {item.quantity} left in the main inventory."
    return [
        create_notification(
            db,
            tenant_id=tenant_id,
            user_id=admin.id,
            message=message,
            type="inventory",
            priority="high",
        )
        for admin in admins
    ]


def list_user_notifications(
    db: Session,
    *,
    user_id: int,
    status: Optional[str] = None,
    type: Optional[str] = None,
) -> list[Notification]:
    query = db.query(Notification).filter(Notification.user_id == user_id)
    if status:
        query = query.filter(Notification.status == status)
    if type:
        query = query.filter(Notification.type == type)
    return query.order_by(Notification.created_at.desc(), Notification.id.desc()).all()


def update_notification_status(db: Session, *, user_id: int, notification_id: int, status: str) -> Notification:
    if status not in NOTIFICATION_STATUSES:
        raise InvalidNotificationStatusError("Invalid or missing status. Valid statuses are: 'read', 'unread'.")
    notification = (
        db.query(Notification)
        .filter(Notification.id == notification_id, Notification.user_id == user_id)
        .first()
    )
    if not notification:
        raise NotificationNotFoundError(f"Notification with ID {notification_id} not found.")
    notification.status = status
    return notification
