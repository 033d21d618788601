from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.auth import get_current_user, require_roles
from app.db import get_db
from app.inventory import schemas
from app.inventory.service import (
    DuplicateItemNameError,
    InvalidItemError,
    ItemInUseError,
    create_item,
    delete_item,
    get_allocated_qty_map,
    list_items,
    list_project_inventory,
    update_item,
)
from app.ledger.service import ItemNotFoundError, ProjectNotFoundError, get_item
from app.models import Item, User
from app.role_keys import RoleKey


router = APIRouter(prefix="/api/inventory", tags=["inventory"])

require_manager = require_roles(RoleKey.ADMIN.value, RoleKey.SUPERVISOR.value)


def _item_response(item: Item, allocated_quantity: int = 0) -> schemas.ItemResponse:
    return schemas.ItemResponse(
        item_id=item.id,
        name=item.name,
        quantity=item.quantity,
        allocated_quantity=allocated_quantity,
        description=item.description,
    )


@router.post("/items", response_model=schemas.ItemEnvelope, status_code=status.HTTP_201_CREATED)
def create_inventory_item(
    payload: schemas.ItemCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_manager),
):
    try:
        item = create_item(
            db,
            tenant_id=current_user.tenant_id,
            user_id=current_user.id,
            name=payload.name,
            quantity=payload.quantity,
            description=payload.description,
        )
        db.commit()
    except InvalidItemError as exc:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(exc))
    except DuplicateItemNameError as exc:
        db.rollback()
        raise HTTPException(status_code=409, detail=str(exc))
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="An item with this name already exists.")

    db.refresh(item)
    return schemas.ItemEnvelope(message="Item created successfully.", item=_item_response(item))


@router.get("/items", response_model=schemas.ItemListResponse)
def list_inventory_items(
    search: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    items = list_items(db, tenant_id=current_user.tenant_id, search=search)
    if not items:
        raise HTTPException(status_code=404, detail="No items found in the inventory.")
    allocated_by_id = get_allocated_qty_map(db, [item.id for item in items])
    return schemas.ItemListResponse(
        message="Items retrieved successfully.",
        items=[_item_response(item, allocated_by_id.get(item.id, 0)) for item in items],
    )


@router.get("/items/{item_id}", response_model=schemas.ItemEnvelope)
def get_inventory_item(item_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    try:
        item = get_item(db, tenant_id=current_user.tenant_id, item_id=item_id)
    except ItemNotFoundError:
        raise HTTPException(status_code=404, detail=f"Item with ID {item_id} not found.")
    allocated = get_allocated_qty_map(db, [item.id])[item.id]
    return schemas.ItemEnvelope(message="Item retrieved successfully.", item=_item_response(item, allocated))


@router.put("/items/{item_id}", response_model=schemas.ItemEnvelope)
@router.patch("/items/{item_id}", response_model=schemas.ItemEnvelope)
def update_inventory_item(
    item_id: int,
    payload: schemas.ItemUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_manager),
):
    try:
        item = update_item(
            db,
            tenant_id=current_user.tenant_id,
            user_id=current_user.id,
            item_id=item_id,
            name=payload.name,
            quantity=payload.quantity,
            description=payload.description,
        )
        db.commit()
    except ItemNotFoundError:
        db.rollback()
        raise HTTPException(status_code=404, detail=f"Item with ID {item_id} not found.")
    except InvalidItemError as exc:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(exc))
    except DuplicateItemNameError as exc:
        db.rollback()
        raise HTTPException(status_code=409, detail=str(exc))

    db.refresh(item)
    allocated = get_allocated_qty_map(db, [item.id])[item.id]
    return schemas.ItemEnvelope(message="Item updated successfully.", item=_item_response(item, allocated))


@router.delete("/items/{item_id}", response_model=schemas.MessageResponse)
def delete_inventory_item(
    item_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_manager),
):
    try:
        delete_item(db, tenant_id=current_user.tenant_id, user_id=current_user.id, item_id=item_id)
        db.commit()
    except ItemNotFoundError:
        db.rollback()
        raise HTTPException(status_code=404, detail=f"Item with ID {item_id} not found.")
    except ItemInUseError as exc:
        db.rollback()
        raise HTTPException(status_code=409, detail=str(exc))
    return {"message": f"Item with ID {item_id} deleted successfully."}


@router.get("/projects/{project_id}", response_model=schemas.ProjectInventoryResponse)
def get_project_inventory(
    project_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        records = list_project_inventory(db, tenant_id=current_user.tenant_id, project_id=project_id)
    except ProjectNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    if not records:
        raise HTTPException(status_code=404, detail=f"No inventory items found for project ID {project_id}.")
    return schemas.ProjectInventoryResponse(
        message=f"Inventory items for project ID {project_id} retrieved successfully.",
        inventory=[
            schemas.ProjectInventoryEntry(
                id=record.id,
                project_id=record.project_id,
                item_id=record.item_id,
                quantity=record.quantity,
                item=_item_response(record.item),
            )
            for record in records
        ],
    )
