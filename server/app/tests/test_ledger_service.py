import pytest
from sqlalchemy import event

from app import config
from app.ledger import service as ledger_service
from app.ledger.service import (
    Allocated,
    AllocationNotFoundError,
    InsufficientPoolError,
    InvalidQuantityError,
    ItemNotFoundError,
    NoAllocation,
    OverReturnError,
    ProjectNotFoundError,
    borrow_item,
    get_allocation,
    return_item,
)
from app.models import AuditEvent, Notification, ProjectInventory, Transaction

from factories import create_item, create_project, create_session, seed_tenant


def _setup(quantity=10):
    db = create_session()
    tenant, admin = seed_tenant(db)
    project = create_project(db, tenant)
    item = create_item(db, tenant, quantity=quantity)
    db.commit()
    return db, tenant, admin, project, item


def _borrow(db, tenant, admin, project, item, quantity):
    return borrow_item(
        db,
        tenant_id=tenant.id,
        user_id=admin.id,
        item_id=item.id,
        project_id=project.id,
        quantity=quantity,
    )


def _return(db, tenant, admin, project, item, quantity):
    return return_item(
        db,
        tenant_id=tenant.id,
        user_id=admin.id,
        item_id=item.id,
        project_id=project.id,
        quantity=quantity,
    )


def test_borrow_moves_quantity_from_pool_to_new_allocation():
    db, tenant, admin, project, item = _setup(quantity=10)

    result = _borrow(db, tenant, admin, project, item, 4)
    db.commit()
    db.refresh(item)

    assert item.quantity == 6
    assert isinstance(result.allocation, Allocated)
    assert result.allocation.quantity == 4
    allocation = get_allocation(db, tenant_id=tenant.id, project_id=project.id, item_id=item.id)
    assert allocation.quantity == 4
    txn = db.query(Transaction).one()
    assert (txn.action, txn.quantity, txn.item_id, txn.project_id) == ("borrow", 4, item.id, project.id)
    assert txn.user_id == admin.id


def test_borrow_adds_to_existing_allocation():
    db, tenant, admin, project, item = _setup(quantity=10)

    _borrow(db, tenant, admin, project, item, 3)
    db.commit()
    _borrow(db, tenant, admin, project, item, 2)
    db.commit()

    rows = db.query(ProjectInventory).all()
    assert len(rows) == 1
    assert rows[0].quantity == 5
    db.refresh(item)
    assert item.quantity == 5


def test_return_of_all_units_removes_allocation_row():
    db, tenant, admin, project, item = _setup(quantity=10)
    _borrow(db, tenant, admin, project, item, 4)
    db.commit()

    result = _return(db, tenant, admin, project, item, 4)
    db.commit()
    db.refresh(item)

    assert item.quantity == 10
    assert isinstance(result.allocation, NoAllocation)
    assert result.allocation.quantity == 0
    assert db.query(ProjectInventory).count() == 0
    actions = [row.action for row in db.query(Transaction).order_by(Transaction.id).all()]
    assert actions == ["borrow", "return"]


def test_partial_return_keeps_remaining_allocation():
    db, tenant, admin, project, item = _setup(quantity=10)
    _borrow(db, tenant, admin, project, item, 6)
    db.commit()

    result = _return(db, tenant, admin, project, item, 2)
    db.commit()
    db.refresh(item)

    assert item.quantity == 6
    assert result.allocation.quantity == 4
    assert db.query(ProjectInventory).one().quantity == 4


def test_round_trip_restores_pre_existing_allocation():
    db, tenant, admin, project, item = _setup(quantity=10)
    _borrow(db, tenant, admin, project, item, 2)
    db.commit()

    _borrow(db, tenant, admin, project, item, 5)
    db.commit()
    _return(db, tenant, admin, project, item, 5)
    db.commit()
    db.refresh(item)

    assert item.quantity == 8
    assert db.query(ProjectInventory).one().quantity == 2


def test_borrow_more_than_pool_is_rejected_without_state_change():
    db, tenant, admin, project, item = _setup(quantity=3)

    with pytest.raises(InsufficientPoolError):
        _borrow(db, tenant, admin, project, item, 5)
    db.rollback()
    db.refresh(item)

    assert item.quantity == 3
    assert db.query(ProjectInventory).count() == 0
    assert db.query(Transaction).count() == 0


def test_return_more_than_allocated_is_rejected_without_state_change():
    db, tenant, admin, project, item = _setup(quantity=10)
    _borrow(db, tenant, admin, project, item, 2)
    db.commit()

    with pytest.raises(OverReturnError):
        _return(db, tenant, admin, project, item, 5)
    db.rollback()
    db.refresh(item)

    assert item.quantity == 8
    assert db.query(ProjectInventory).one().quantity == 2
    assert db.query(Transaction).count() == 1


@pytest.mark.parametrize("quantity", [0, -1, True, 2.5])
def test_non_positive_or_non_integer_quantity_is_rejected(quantity):
    db, tenant, admin, project, item = _setup(quantity=10)

    with pytest.raises(InvalidQuantityError):
        _borrow(db, tenant, admin, project, item, quantity)
    with pytest.raises(InvalidQuantityError):
        _return(db, tenant, admin, project, item, quantity)


def test_return_without_allocation_is_not_found():
    db, tenant, admin, project, item = _setup(quantity=10)

    with pytest.raises(AllocationNotFoundError):
        _return(db, tenant, admin, project, item, 1)


def test_missing_item_and_project_are_not_found():
    db, tenant, admin, project, item = _setup(quantity=10)

    with pytest.raises(ItemNotFoundError):
        borrow_item(db, tenant_id=tenant.id, user_id=admin.id, item_id=999, project_id=project.id, quantity=1)
    with pytest.raises(ProjectNotFoundError):
        borrow_item(db, tenant_id=tenant.id, user_id=admin.id, item_id=item.id, project_id=999, quantity=1)


def test_other_tenant_cannot_touch_items_or_projects():
    db, tenant, admin, project, item = _setup(quantity=10)
    other_tenant, other_admin = seed_tenant(db, name="Rival Corp", admin_email="rival@ledger.local")
    other_project = create_project(db, other_tenant, name="Rival Site")
    db.commit()

    with pytest.raises(ItemNotFoundError):
        borrow_item(
            db,
            tenant_id=other_tenant.id,
            user_id=other_admin.id,
            item_id=item.id,
            project_id=other_project.id,
            quantity=1,
        )
    with pytest.raises(ProjectNotFoundError):
        borrow_item(
            db,
            tenant_id=other_tenant.id,
            user_id=other_admin.id,
            item_id=item.id,
            project_id=project.id,
            quantity=1,
        )
    db.rollback()
    db.refresh(item)
    assert item.quantity == 10


def test_each_mutation_writes_one_audit_event():
    db, tenant, admin, project, item = _setup(quantity=10)

    _borrow(db, tenant, admin, project, item, 1)
    _return(db, tenant, admin, project, item, 1)
    db.commit()

    events = db.query(AuditEvent).filter(AuditEvent.entity_type == "transactions").order_by(AuditEvent.id).all()
    assert len(events) == 2
    assert "borrowed 1" in events[0].change_details
    assert "returned 1" in events[1].change_details


def test_failure_after_pool_decrement_rolls_back_everything(monkeypatch):
    db, tenant, admin, project, item = _setup(quantity=10)

    def broken_audit(*args, **kwargs):
        raise RuntimeError("audit store unavailable")

    monkeypatch.setattr(ledger_service, "record_audit_event", broken_audit)
    with pytest.raises(RuntimeError):
        _borrow(db, tenant, admin, project, item, 4)
    db.rollback()
    db.refresh(item)

    assert item.quantity == 10
    assert db.query(ProjectInventory).count() == 0
    assert db.query(Transaction).count() == 0


def test_low_stock_borrow_notifies_admins(monkeypatch):
    db, tenant, admin, project, item = _setup(quantity=5)
    monkeypatch.setattr(config, "LOW_STOCK_THRESHOLD", 2)

    _borrow(db, tenant, admin, project, item, 2)
    db.commit()
    assert db.query(Notification).count() == 0

    _borrow(db, tenant, admin, project, item, 1)
    db.commit()
    notification = db.query(Notification).one()
    assert notification.user_id == admin.id
    assert notification.type == "inventory"
    assert notification.priority == "high"
    assert "2 left" in notification.message


def test_allocated_variant_requires_positive_quantity():
    with pytest.raises(ValueError):
        Allocated(project_id=1, item_id=1, quantity=0, record=None)


def _lock_order(db, operation):
    statements = []

    def capture(conn, cursor, statement, parameters, context, executemany):
        statements.append(statement)

    engine = db.get_bind()
    event.listen(engine, "before_cursor_execute", capture)
    try:
        operation()
    finally:
        event.remove(engine, "before_cursor_execute", capture)

    def first(table):
        return next(i for i, sql in enumerate(statements) if sql.lstrip().startswith("SELECT") and f"FROM {table}" in sql)

    return first("items"), first("project_inventory")


def test_borrow_and_return_read_item_before_allocation():
    db, tenant, admin, project, item = _setup(quantity=10)

    item_at, allocation_at = _lock_order(db, lambda: _borrow(db, tenant, admin, project, item, 3))
    assert item_at < allocation_at
    db.commit()

    item_at, allocation_at = _lock_order(db, lambda: _return(db, tenant, admin, project, item, 1))
    assert item_at < allocation_at
    db.commit()
