from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.auth import get_current_user, require_admin
from app.db import get_db
from app.models import User
from app.notifications import schemas
from app.notifications.service import (
    InvalidNotificationStatusError,
    NotificationNotFoundError,
    create_notification,
    list_user_notifications,
    update_notification_status,
)


router = APIRouter(prefix="/api/notifications", tags=["notifications"])


@router.post("", response_model=schemas.NotificationCreatedResponse, status_code=status.HTTP_201_CREATED)
def send_notification(
    payload: schemas.NotificationCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    recipient = (
        db.query(User.id)
        .filter(User.id == payload.user_id, User.tenant_id == current_user.tenant_id)
        .first()
    )
    if not recipient:
        raise HTTPException(status_code=404, detail=f"User with ID {payload.user_id} not found in your tenancy.")

    notification = create_notification(
        db,
        tenant_id=current_user.tenant_id,
        user_id=payload.user_id,
        message=payload.message,
        type=payload.type,
        priority=payload.priority,
    )
    db.commit()
    db.refresh(notification)
    return schemas.NotificationCreatedResponse(
        message="Notification sent successfully.",
        notification=schemas.NotificationResponse.model_validate(notification),
    )


@router.get("", response_model=schemas.NotificationListResponse)
def my_notifications(
    status: Optional[str] = None,
    type: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    notifications = list_user_notifications(db, user_id=current_user.id, status=status, type=type)
    if not notifications:
        raise HTTPException(status_code=404, detail="No notifications found.")
    return schemas.NotificationListResponse(
        message="Notifications fetched successfully.",
        notifications=[schemas.NotificationResponse.model_validate(row) for row in notifications],
    )


@router.patch("/{notification_id}", response_model=schemas.NotificationCreatedResponse)
def set_notification_status(
    notification_id: int,
    payload: schemas.NotificationStatusUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        notification = update_notification_status(
            db,
            user_id=current_user.id,
            notification_id=notification_id,
            status=payload.status or "",
        )
        db.commit()
    except InvalidNotificationStatusError as exc:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(exc))
    except NotificationNotFoundError as exc:
        db.rollback()
        raise HTTPException(status_code=404, detail=str(exc))

    db.refresh(notification)
    return {
        "message": f"Notification status updated to '{notification.status}' successfully.",
        "notification": schemas.NotificationResponse.model_validate(notification),
    }
