from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class FeedbackCreate(BaseModel):
    project_id: int = Field(..., gt=0)
    client_id: Optional[int] = Field(default=None, gt=0)
    rating: int
    comments: Optional[str] = None


class FeedbackUpdate(BaseModel):
    rating: Optional[int] = None
    comments: Optional[str] = None


class FeedbackResponse(BaseModel):
    feedback_id: int
    project_id: int
    rating: int
    comments: Optional[str] = None
    created_at: datetime
    client_id: int
    company_name: str
    contact_person: Optional[str] = None
    client_email: Optional[str] = None


class FeedbackEnvelope(BaseModel):
    message: str
    feedback: FeedbackResponse


class ProjectFeedbackResponse(BaseModel):
    message: str
    project_id: int
    project_name: str
    feedback: List[FeedbackResponse]


FeedbackOrder = Literal["newest", "top", "low"]
