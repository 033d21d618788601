from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.projects.schemas import ClientSummary, SupervisorSummary


class TransactionRequest(BaseModel):
    item_id: int = Field(..., gt=0)
    project_id: int = Field(..., gt=0)
    quantity: int


class ItemSummary(BaseModel):
    name: str
    description: Optional[str] = None


class ProjectSummary(BaseModel):
    project_name: str
    description: Optional[str] = None


class TransactionResponse(BaseModel):
    transaction_id: int
    item_id: int
    project_id: int
    user_id: Optional[int] = None
    quantity: int
    action: Literal["borrow", "return"]
    date: datetime
    item: Optional[ItemSummary] = None
    project: Optional[ProjectSummary] = None

    model_config = ConfigDict(from_attributes=True)


class PoolState(BaseModel):
    item_id: int
    name: str
    quantity: int


class AllocationState(BaseModel):
    project_id: int
    item_id: int
    quantity: int


class ProjectDetail(BaseModel):
    project_id: int
    project_name: str
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    client: Optional[ClientSummary] = None
    supervisor: Optional[SupervisorSummary] = None


class LedgerMutationResponse(BaseModel):
    message: str
    transaction: TransactionResponse
    item: PoolState
    allocation: AllocationState
    project: ProjectDetail


class TransactionListResponse(BaseModel):
    message: str
    offset: int
    limit: int
    transactions: List[TransactionResponse]


class TransactionDetailResponse(BaseModel):
    message: str
    transaction: TransactionResponse


class AllocationDriftResponse(BaseModel):
    project_id: int
    item_id: int
    expected_quantity: int
    recorded_quantity: int
    delta: int


class ReconciliationResponse(BaseModel):
    message: str
    consistent: bool
    drift: List[AllocationDriftResponse]


class RebuildResponse(BaseModel):
    message: str
    rows_changed: int
