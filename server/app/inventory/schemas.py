from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ItemCreate(BaseModel):
    name: Optional[str] = None
    quantity: Optional[int] = None
    description: Optional[str] = None


class ItemUpdate(BaseModel):
    name: Optional[str] = None
    quantity: Optional[int] = Field(default=None, description="New pool quantity; must not be negative.")
    description: Optional[str] = None


class ItemResponse(BaseModel):
    item_id: int
    name: str
    quantity: int
    allocated_quantity: int = 0
    description: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class ItemEnvelope(BaseModel):
    message: str
    item: ItemResponse


class ItemListResponse(BaseModel):
    message: str
    items: List[ItemResponse]


class ProjectInventoryEntry(BaseModel):
    id: int
    project_id: int
    item_id: int
    quantity: int
    item: ItemResponse


class ProjectInventoryResponse(BaseModel):
    message: str
    inventory: List[ProjectInventoryEntry]


class MessageResponse(BaseModel):
    message: str
