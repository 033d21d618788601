from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class NotificationCreate(BaseModel):
    user_id: int = Field(..., gt=0)
    message: str = Field(..., min_length=1)
    type: str = "system"
    priority: Literal["low", "medium", "high"] = "medium"


class NotificationStatusUpdate(BaseModel):
    status: Optional[str] = None


class NotificationResponse(BaseModel):
    id: int
    user_id: int
    message: str
    type: str
    priority: str
    status: str
    created_at: datetime
    delivered_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class NotificationCreatedResponse(BaseModel):
    message: str
    notification: NotificationResponse


class NotificationListResponse(BaseModel):
    message: str
    notifications: List[NotificationResponse]
