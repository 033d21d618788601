from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ClientCreate(BaseModel):
    company_name: str = Field(..., min_length=1)
    contact_person: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None


class ClientSummary(BaseModel):
    client_id: int
    company_name: str
    contact_person: Optional[str] = None
    email: Optional[str] = None


class ClientEnvelope(BaseModel):
    message: str
    client: ClientSummary


class ClientListResponse(BaseModel):
    message: str
    clients: List[ClientSummary]


class SupervisorSummary(BaseModel):
    user_id: int
    full_name: Optional[str] = None
    email: str


class ProjectCreate(BaseModel):
    client_id: int = Field(..., gt=0)
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    status: str = "Active"
    supervisor_id: Optional[int] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class ProjectResponse(BaseModel):
    project_id: int
    project_name: str
    description: Optional[str] = None
    status: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    client: Optional[ClientSummary] = None
    supervisor: Optional[SupervisorSummary] = None

    model_config = ConfigDict(from_attributes=True)


class ProjectEnvelope(BaseModel):
    message: str
    project: ProjectResponse


class ProjectListResponse(BaseModel):
    message: str
    projects: List[ProjectResponse]


class ProjectUpdate(BaseModel):
    client_id: Optional[int] = Field(default=None, gt=0)
    name: Optional[str] = None
    description: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class ProjectStatusUpdate(BaseModel):
    status: str = Field(..., min_length=1)


class SupervisorAssignment(BaseModel):
    supervisor_id: int = Field(..., gt=0)
