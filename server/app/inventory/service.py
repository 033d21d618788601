import logging
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload

from app.audit import record_audit_event
from app.ledger.service import get_item, get_project
from app.models import Item, ProjectInventory, Transaction


logger = logging.getLogger(__name__)


class CatalogError(ValueError):
    pass


class InvalidItemError(CatalogError):
    pass


class DuplicateItemNameError(CatalogError):
    pass


class ItemInUseError(CatalogError):
    pass


def _normalize_name(name: Optional[str]) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise InvalidItemError("Name and quantity are required.")
    return cleaned


def _ensure_unique_name(db: Session, *, tenant_id: int, name: str, exclude_item_id: int | None = None) -> None:
    query = db.query(Item.id).filter(Item.tenant_id == tenant_id, func.lower(Item.name) == name.lower())
    if exclude_item_id is not None:
        query = query.filter(Item.id != exclude_item_id)
    if query.first():
        raise DuplicateItemNameError(f"An item named '{name}' already exists.")


def get_allocated_qty_map(db: Session, item_ids: list[int]) -> dict[int, int]:
    if not item_ids:
        return {}
    rows = (
        db.query(ProjectInventory.item_id, func.coalesce(func.sum(ProjectInventory.quantity), 0))
        .filter(ProjectInventory.item_id.in_(item_ids))
        .group_by(ProjectInventory.item_id)
        .all()
    )
    allocated_by_id = {item_id: int(total or 0) for item_id, total in rows}
    for item_id in item_ids:
        allocated_by_id.setdefault(item_id, 0)
    return allocated_by_id


def create_item(
    db: Session,
    *,
    tenant_id: int,
    user_id: int | None,
    name: str,
    quantity: int,
    description: Optional[str] = None,
) -> Item:
    name = _normalize_name(name)
    if quantity is None:
        raise InvalidItemError("Name and quantity are required.")
    if quantity <= 0:
        raise InvalidItemError("Quantity cannot be zero or negative.")
    _ensure_unique_name(db, tenant_id=tenant_id, name=name)

    item = Item(tenant_id=tenant_id, name=name, quantity=quantity, description=description)
    db.add(item)
    db.flush()
    record_audit_event(
        db,
        tenant_id=tenant_id,
        user_id=user_id,
        entity_type="items",
        entity_id=item.id,
        action="INSERT",
        change_details=f"Created item '{name}' with quantity {quantity}",
    )
    return item


def list_items(db: Session, *, tenant_id: int, search: Optional[str] = None) -> list[Item]:
    query = db.query(Item).filter(Item.tenant_id == tenant_id)
    if search:
        pattern = search.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        query = query.filter(Item.name.ilike(f"%{pattern}%", escape="\\"))
    return query.order_by(Item.name).all()


def update_item(
    db: Session,
    *,
    tenant_id: int,
    user_id: int | None,
    item_id: int,
    name: Optional[str] = None,
    quantity: Optional[int] = None,
    description: Optional[str] = None,
) -> Item:
    item = get_item(db, tenant_id=tenant_id, item_id=item_id, for_update=True)
    if quantity is not None and quantity < 0:
        raise InvalidItemError("Quantity cannot be negative.")

    if name is not None:
        name = _normalize_name(name)
        _ensure_unique_name(db, tenant_id=tenant_id, name=name, exclude_item_id=item.id)
        item.name = name
    if description is not None:
        item.description = description
    if quantity is not None and quantity != item.quantity:
        previous = item.quantity
        item.quantity = quantity
        record_audit_event(
            db,
            tenant_id=tenant_id,
            user_id=user_id,
            entity_type="items",
            entity_id=item.id,
            action="ADJUST",
            change_details=f"Pool quantity of item ID {item.id} adjusted from {previous} to {quantity}",
        )
        logger.info(
            "Pool adjusted: tenant_id=%s item_id=%s from=%s to=%s",
            tenant_id,
            item.id,
            previous,
            quantity,
        )
    return item


def delete_item(db: Session, *, tenant_id: int, user_id: int | None, item_id: int) -> None:
    item = get_item(db, tenant_id=tenant_id, item_id=item_id, for_update=True)
    allocated = get_allocated_qty_map(db, [item.id])[item.id]
    if allocated > 0:
        raise ItemInUseError(f"Item with ID {item_id} is still allocated to projects ({allocated} units).")
    has_history = db.query(Transaction.id).filter(Transaction.item_id == item.id).first()
    if has_history:
        raise ItemInUseError(f"Item with ID {item_id} has transaction history and cannot be deleted.")

    db.delete(item)
    record_audit_event(
        db,
        tenant_id=tenant_id,
        user_id=user_id,
        entity_type="items",
        entity_id=item_id,
        action="DELETE",
        change_details=f"Deleted item '{item.name}'",
    )


def list_project_inventory(db: Session, *, tenant_id: int, project_id: int) -> list[ProjectInventory]:
    get_project(db, tenant_id=tenant_id, project_id=project_id)
    return (
        db.query(ProjectInventory)
        .options(selectinload(ProjectInventory.item))
        .filter(ProjectInventory.tenant_id == tenant_id, ProjectInventory.project_id == project_id)
        .order_by(ProjectInventory.id.asc())
        .all()
    )
