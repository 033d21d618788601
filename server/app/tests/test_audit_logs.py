import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.audit import record_audit_event
from app.auth import seed_project_statuses, seed_roles
from app.db import Base, get_db
from app.main import app
from app.models import Client, Item, Project, ProjectStatus, Tenant, User


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
        db.add_all([Tenant(id=1, name="Acme Builders"), Tenant(id=2, name="Rival Corp")])
        db.flush()
        db.add(User(id=1, tenant_id=1, email="admin@ledger.local", password_hash="x", role="ADMIN"))
        customer = Client(tenant_id=1, company_name="Harbor Holdings")
        db.add(customer)
        db.flush()
        active = db.query(ProjectStatus).filter(ProjectStatus.name == "Active").first()
        db.add(Project(tenant_id=1, client_id=customer.id, status_id=active.id, name="Dockside Warehouse"))
        db.add(Item(tenant_id=1, name="Ladder", quantity=10))
        record_audit_event(db, tenant_id=2, user_id=None, entity_type="items", entity_id=99, action="INSERT")
        db.commit()

    with TestClient(app) as test_client:
        yield test_client, TestingSessionLocal

    app.dependency_overrides.clear()
    Base.metadata.drop_all(engine)


def test_logs_show_own_tenant_events_newest_first(client):
    test_client, session_factory = client
    with session_factory() as db:
        project_id = db.query(Project).first().id
        item_id = db.query(Item).first().id
    payload = {"item_id": item_id, "project_id": project_id, "quantity": 2}
    test_client.post("/api/transactions/borrow", json=payload)
    test_client.post("/api/transactions/return", json=payload)

    response = test_client.get("/api/logs")

    assert response.status_code == 200
    logs = response.json()["logs"]
    assert [row["entity_type"] for row in logs] == ["transactions", "transactions"]
    assert "returned 2" in logs[0]["change_details"]
    assert logs[1]["user_id"] == 1


def test_health_and_root(client):
    test_client, _ = client

    assert test_client.get("/health").json() == {"status": "ok"}
    assert test_client.get("/").json() == {"status": "ok"}
