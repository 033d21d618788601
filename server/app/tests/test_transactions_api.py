import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.auth import seed_project_statuses, seed_roles
from app.db import Base, get_db
from app.main import app
from app.models import Client, Item, Project, ProjectInventory, ProjectStatus, Tenant, Transaction, User


@pytest.fixture()
def client():
    engine = create_engine("sqlite+pysqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    Base.metadata.create_all(engine)

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db

    with TestingSessionLocal() as db:
        seed_roles(db)
        seed_project_statuses(db)
        db.flush()
        tenant = Tenant(id=1, name="Acme Builders")
        db.add(tenant)
        db.flush()
        admin = User(id=1, tenant_id=1, email="admin@ledger.local", full_name="Test Admin", password_hash="x", role="ADMIN")
        supervisor = User(tenant_id=1, email="sup@ledger.local", full_name="Sam Site", password_hash="x", role="SUPERVISOR")
        db.add_all([admin, supervisor])
        db.flush()
        customer = Client(tenant_id=1, company_name="Harbor Holdings", contact_person="Rae")
        db.add(customer)
        db.flush()
        active = db.query(ProjectStatus).filter(ProjectStatus.name == "Active").first()
        project = Project(
            tenant_id=1,
            client_id=customer.id,
            status_id=active.id,
            supervisor_id=supervisor.id,
            name="Dockside Warehouse",
        )
        ladder = Item(tenant_id=1, name="Ladder", quantity=10, description="Aluminium, 3m")
        drill = Item(tenant_id=1, name="Drill", quantity=2)
        db.add_all([project, ladder, drill])
        db.commit()

    with TestClient(app) as test_client:
        yield test_client, TestingSessionLocal

    app.dependency_overrides.clear()
    Base.metadata.drop_all(engine)


def _ids(session_factory):
    with session_factory() as db:
        project = db.query(Project).first()
        ladder = db.query(Item).filter(Item.name == "Ladder").one()
        drill = db.query(Item).filter(Item.name == "Drill").one()
        return project.id, ladder.id, drill.id


def _post(test_client, action, item_id, project_id, quantity):
    return test_client.post(
        f"/api/transactions/{action}",
        json={"item_id": item_id, "project_id": project_id, "quantity": quantity},
    )


def test_borrow_returns_created_with_pool_allocation_and_project(client):
    test_client, session_factory = client
    project_id, ladder_id, _ = _ids(session_factory)

    response = _post(test_client, "borrow", ladder_id, project_id, 4)

    assert response.status_code == 201
    body = response.json()
    assert body["message"] == "Transaction complete, item borrowed successfully."
    assert body["transaction"]["action"] == "borrow"
    assert body["transaction"]["quantity"] == 4
    assert body["transaction"]["user_id"] == 1
    assert body["transaction"]["item"]["name"] == "Ladder"
    assert body["item"] == {"item_id": ladder_id, "name": "Ladder", "quantity": 6}
    assert body["allocation"] == {"project_id": project_id, "item_id": ladder_id, "quantity": 4}
    assert body["project"]["project_name"] == "Dockside Warehouse"
    assert body["project"]["client"]["company_name"] == "Harbor Holdings"
    assert body["project"]["supervisor"]["email"] == "sup@ledger.local"


def test_return_all_units_reports_empty_allocation(client):
    test_client, session_factory = client
    project_id, ladder_id, _ = _ids(session_factory)
    assert _post(test_client, "borrow", ladder_id, project_id, 3).status_code == 201

    response = _post(test_client, "return", ladder_id, project_id, 3)

    assert response.status_code == 201
    body = response.json()
    assert body["message"] == "Transaction complete, item returned successfully."
    assert body["item"]["quantity"] == 10
    assert body["allocation"]["quantity"] == 0
    with session_factory() as db:
        assert db.query(ProjectInventory).count() == 0
        assert db.query(Transaction).count() == 2


def test_missing_field_is_rejected_as_invalid_payload(client):
    test_client, session_factory = client
    project_id, ladder_id, _ = _ids(session_factory)

    response = test_client.post("/api/transactions/borrow", json={"item_id": ladder_id, "project_id": project_id})

    assert response.status_code == 400
    body = response.json()
    assert body["message"] == "Invalid request payload."
    assert body["errors"][0]["field"] == "quantity"


@pytest.mark.parametrize("quantity", [0, -2])
def test_non_positive_quantity_is_rejected(client, quantity):
    test_client, session_factory = client
    project_id, ladder_id, _ = _ids(session_factory)

    response = _post(test_client, "borrow", ladder_id, project_id, quantity)

    assert response.status_code == 400
    assert response.json() == {"message": "Quantity must be greater than zero."}


def test_insufficient_pool_leaves_state_unchanged(client):
    test_client, session_factory = client
    project_id, _, drill_id = _ids(session_factory)

    response = _post(test_client, "borrow", drill_id, project_id, 3)

    assert response.status_code == 400
    assert response.json()["message"] == "Insufficient quantity in the main inventory."
    with session_factory() as db:
        assert db.get(Item, drill_id).quantity == 2
        assert db.query(Transaction).count() == 0


def test_over_return_is_rejected(client):
    test_client, session_factory = client
    project_id, ladder_id, _ = _ids(session_factory)
    _post(test_client, "borrow", ladder_id, project_id, 2)

    response = _post(test_client, "return", ladder_id, project_id, 5)

    assert response.status_code == 400
    assert response.json()["message"] == "Cannot return more items than currently borrowed."
    with session_factory() as db:
        assert db.query(ProjectInventory).one().quantity == 2
        assert db.get(Item, ladder_id).quantity == 8


def test_unknown_references_are_not_found(client):
    test_client, session_factory = client
    project_id, ladder_id, drill_id = _ids(session_factory)

    assert _post(test_client, "borrow", 999, project_id, 1).status_code == 404
    assert _post(test_client, "borrow", ladder_id, 999, 1).status_code == 404
    response = _post(test_client, "return", drill_id, project_id, 1)
    assert response.status_code == 404


def test_list_transactions_newest_first_with_filters(client):
    test_client, session_factory = client
    project_id, ladder_id, drill_id = _ids(session_factory)
    _post(test_client, "borrow", ladder_id, project_id, 2)
    _post(test_client, "borrow", drill_id, project_id, 1)
    _post(test_client, "return", ladder_id, project_id, 1)

    response = test_client.get("/api/transactions")
    assert response.status_code == 200
    body = response.json()
    assert (body["offset"], body["limit"]) == (0, 100)
    assert [row["action"] for row in body["transactions"]] == ["return", "borrow", "borrow"]

    filtered = test_client.get("/api/transactions", params={"item_id": ladder_id, "action": "borrow"})
    assert [row["quantity"] for row in filtered.json()["transactions"]] == [2]

    page = test_client.get("/api/transactions", params={"offset": 1, "limit": 1})
    assert len(page.json()["transactions"]) == 1
    assert page.json()["transactions"][0]["item_id"] == drill_id


def test_list_transactions_rejects_bad_paging(client):
    test_client, _ = client

    assert test_client.get("/api/transactions", params={"limit": 0}).status_code == 400
    assert test_client.get("/api/transactions", params={"offset": -1}).status_code == 400


def test_empty_log_is_not_found(client):
    test_client, _ = client

    response = test_client.get("/api/transactions")

    assert response.status_code == 404
    assert response.json() == {"message": "No transactions found."}


def test_transaction_detail(client):
    test_client, session_factory = client
    project_id, ladder_id, _ = _ids(session_factory)
    created = _post(test_client, "borrow", ladder_id, project_id, 1).json()
    transaction_id = created["transaction"]["transaction_id"]

    response = test_client.get(f"/api/transactions/{transaction_id}")
    assert response.status_code == 200
    assert response.json()["transaction"]["project"]["project_name"] == "Dockside Warehouse"

    missing = test_client.get("/api/transactions/999")
    assert missing.status_code == 404
    assert missing.json()["message"] == "Transaction with ID 999 not found."


def test_reconciliation_reports_and_rebuilds_drift(client):
    test_client, session_factory = client
    project_id, ladder_id, _ = _ids(session_factory)
    _post(test_client, "borrow", ladder_id, project_id, 4)

    clean = test_client.get("/api/transactions/reconciliation")
    assert clean.status_code == 200
    assert clean.json()["consistent"] is True

    with session_factory() as db:
        db.query(ProjectInventory).one().quantity = 9
        db.commit()

    drifted = test_client.get("/api/transactions/reconciliation").json()
    assert drifted["consistent"] is False
    assert drifted["drift"] == [
        {"project_id": project_id, "item_id": ladder_id, "expected_quantity": 4, "recorded_quantity": 9, "delta": 5}
    ]

    rebuilt = test_client.post("/api/transactions/reconciliation/rebuild")
    assert rebuilt.status_code == 200
    assert rebuilt.json()["rows_changed"] == 1
    with session_factory() as db:
        assert db.query(ProjectInventory).one().quantity == 4
        assert db.get(Item, ladder_id).quantity == 6
