"""Allocation ledger: moves item quantity between a tenant's pool and its projects.

Every mutation here writes into the caller's session without committing. The
router commits once after the whole borrow/return succeeded and rolls back
otherwise, so the pool, the allocation, the transaction row and the audit
event are persisted together or not at all.
"""
from dataclasses import dataclass, field
import logging
from typing import Optional, Union

from sqlalchemy.orm import Session, selectinload

from app import config
from app.audit import record_audit_event
from app.models import Item, Project, ProjectInventory, Transaction
from app.notifications.service import notify_low_stock


logger = logging.getLogger(__name__)

ACTION_BORROW = "borrow"
ACTION_RETURN = "return"


class LedgerError(ValueError):
    pass


class InvalidQuantityError(LedgerError):
    pass


class ProjectNotFoundError(LedgerError):
    pass


class ItemNotFoundError(LedgerError):
    pass


class AllocationNotFoundError(LedgerError):
    pass


class InsufficientPoolError(LedgerError):
    pass


class OverReturnError(LedgerError):
    pass


@dataclass(frozen=True)
class NoAllocation:
    project_id: int
    item_id: int

    @property
    def quantity(self) -> int:
        return 0


@dataclass(frozen=True)
class Allocated:
    project_id: int
    item_id: int
    quantity: int
    record: ProjectInventory = field(compare=False, repr=False)

    def __post_init__(self):
        if self.quantity <= 0:
            raise ValueError("An allocation must hold a positive quantity.")


Allocation = Union[NoAllocation, Allocated]


@dataclass
class LedgerResult:
    transaction: Transaction
    item: Item
    project: Project
    allocation: Allocation


def validate_quantity(quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise InvalidQuantityError("Quantity must be greater than zero.")
    return quantity


def get_project(db: Session, *, tenant_id: int, project_id: int) -> Project:
    project = (
        db.query(Project)
        .options(selectinload(Project.client), selectinload(Project.supervisor))
        .filter(Project.id == project_id, Project.tenant_id == tenant_id)
        .first()
    )
    if not project:
        raise ProjectNotFoundError(f"Project with ID {project_id} not found in your tenancy.")
    return project


def _find_item(db: Session, *, tenant_id: int, item_id: int, for_update: bool = False) -> Optional[Item]:
    query = db.query(Item).filter(Item.id == item_id, Item.tenant_id == tenant_id)
    if for_update:
        query = query.with_for_update()
    return query.first()


def get_item(db: Session, *, tenant_id: int, item_id: int, for_update: bool = False) -> Item:
    item = _find_item(db, tenant_id=tenant_id, item_id=item_id, for_update=for_update)
    if not item:
        raise ItemNotFoundError(f"Item with ID {item_id} not found in the main inventory.")
    return item


def get_allocation(
    db: Session,
    *,
    tenant_id: int,
    project_id: int,
    item_id: int,
    for_update: bool = False,
) -> Allocation:
    query = db.query(ProjectInventory).filter(
        ProjectInventory.tenant_id == tenant_id,
        ProjectInventory.project_id == project_id,
        ProjectInventory.item_id == item_id,
    )
    if for_update:
        query = query.with_for_update()
    record = query.first()
    if record is None or record.quantity <= 0:
        return NoAllocation(project_id=project_id, item_id=item_id)
    return Allocated(project_id=project_id, item_id=item_id, quantity=record.quantity, record=record)


def _append_transaction(
    db: Session,
    *,
    tenant_id: int,
    user_id: int | None,
    item_id: int,
    project_id: int,
    quantity: int,
    action: str,
) -> Transaction:
    txn = Transaction(
        tenant_id=tenant_id,
        user_id=user_id,
        item_id=item_id,
        project_id=project_id,
        quantity=quantity,
        action=action,
    )
    db.add(txn)
    db.flush()
    verb = "borrowed" if action == ACTION_BORROW else "returned"
    record_audit_event(
        db,
        tenant_id=tenant_id,
        user_id=user_id,
        entity_type="transactions",
        entity_id=txn.id,
        action="INSERT",
        change_details=f"User with ID {user_id} {verb} {quantity} of item ID {item_id} for project ID {project_id}",
    )
    return txn


def borrow_item(
    db: Session,
    *,
    tenant_id: int,
    user_id: int | None,
    item_id: int,
    project_id: int,
    quantity: int,
) -> LedgerResult:
    validate_quantity(quantity)
    project = get_project(db, tenant_id=tenant_id, project_id=project_id)
    item = get_item(db, tenant_id=tenant_id, item_id=item_id, for_update=True)
    if item.quantity < quantity:
        logger.info(
            "Borrow rejected: tenant_id=%s item_id=%s requested=%s pool=%s",
            tenant_id,
            item_id,
            quantity,
            item.quantity,
        )
        raise InsufficientPoolError("Insufficient quantity in the main inventory.")

    current = get_allocation(db, tenant_id=tenant_id, project_id=project_id, item_id=item_id, for_update=True)
    item.quantity = item.quantity - quantity
    if isinstance(current, Allocated):
        record = current.record
        record.quantity = current.quantity + quantity
    else:
        record = ProjectInventory(tenant_id=tenant_id, project_id=project_id, item_id=item_id, quantity=quantity)
        db.add(record)

    txn = _append_transaction(
        db,
        tenant_id=tenant_id,
        user_id=user_id,
        item_id=item_id,
        project_id=project_id,
        quantity=quantity,
        action=ACTION_BORROW,
    )
    if item.quantity <= config.LOW_STOCK_THRESHOLD:
        notify_low_stock(db, tenant_id=tenant_id, item=item)

    logger.info(
        "Borrowed: tenant_id=%s item_id=%s project_id=%s quantity=%s pool=%s allocated=%s",
        tenant_id,
        item_id,
        project_id,
        quantity,
        item.quantity,
        record.quantity,
    )
    return LedgerResult(
        transaction=txn,
        item=item,
        project=project,
        allocation=Allocated(project_id=project_id, item_id=item_id, quantity=record.quantity, record=record),
    )


def return_item(
    db: Session,
    *,
    tenant_id: int,
    user_id: int | None,
    item_id: int,
    project_id: int,
    quantity: int,
) -> LedgerResult:
    validate_quantity(quantity)
    project = get_project(db, tenant_id=tenant_id, project_id=project_id)
    # Item row is locked before the allocation row, same order as borrow_item.
    item = _find_item(db, tenant_id=tenant_id, item_id=item_id, for_update=True)
    current = get_allocation(db, tenant_id=tenant_id, project_id=project_id, item_id=item_id, for_update=True)
    if isinstance(current, NoAllocation):
        raise AllocationNotFoundError(
            f"Item with ID {item_id} not found in the inventory of project with ID {project_id}."
        )
    if current.quantity < quantity:
        logger.info(
            "Return rejected: tenant_id=%s item_id=%s project_id=%s requested=%s allocated=%s",
            tenant_id,
            item_id,
            project_id,
            quantity,
            current.quantity,
        )
        raise OverReturnError("Cannot return more items than currently borrowed.")
    if not item:
        raise ItemNotFoundError(f"Item with ID {item_id} not found in the main inventory.")

    remaining = current.quantity - quantity
    after: Allocation
    if remaining == 0:
        db.delete(current.record)
        after = NoAllocation(project_id=project_id, item_id=item_id)
    else:
        current.record.quantity = remaining
        after = Allocated(project_id=project_id, item_id=item_id, quantity=remaining, record=current.record)
    item.quantity = item.quantity + quantity

    txn = _append_transaction(
        db,
        tenant_id=tenant_id,
        user_id=user_id,
        item_id=item_id,
        project_id=project_id,
        quantity=quantity,
        action=ACTION_RETURN,
    )
    logger.info(
        "Returned: tenant_id=%s item_id=%s project_id=%s quantity=%s pool=%s allocated=%s",
        tenant_id,
        item_id,
        project_id,
        quantity,
        item.quantity,
        after.quantity,
    )
    return LedgerResult(transaction=txn, item=item, project=project, allocation=after)


def list_transactions(
    db: Session,
    *,
    tenant_id: int,
    project_id: Optional[int] = None,
    item_id: Optional[int] = None,
    action: Optional[str] = None,
    offset: int = 0,
    limit: int = 100,
) -> list[Transaction]:
    query = (
        db.query(Transaction)
        .options(selectinload(Transaction.item), selectinload(Transaction.project))
        .filter(Transaction.tenant_id == tenant_id)
    )
    if project_id is not None:
        query = query.filter(Transaction.project_id == project_id)
    if item_id is not None:
        query = query.filter(Transaction.item_id == item_id)
    if action is not None:
        query = query.filter(Transaction.action == action)
    return query.order_by(Transaction.date.desc(), Transaction.id.desc()).offset(offset).limit(limit).all()


def get_transaction(db: Session, *, tenant_id: int, transaction_id: int) -> Optional[Transaction]:
    return (
        db.query(Transaction)
        .options(selectinload(Transaction.item), selectinload(Transaction.project))
        .filter(Transaction.id == transaction_id, Transaction.tenant_id == tenant_id)
        .first()
    )
