import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.auth import seed_roles
from app.db import Base, get_db
from app.main import app
from app.models import Notification, Tenant, User


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
        db.flush()
        db.add_all([Tenant(id=1, name="Acme Builders"), Tenant(id=2, name="Rival Corp")])
        db.flush()
        db.add_all(
            [
                User(id=1, tenant_id=1, email="admin@ledger.local", password_hash="x", role="ADMIN"),
                User(id=2, tenant_id=1, email="crew@ledger.local", password_hash="x", role="EMPLOYEE"),
                User(id=3, tenant_id=2, email="rival@ledger.local", password_hash="x", role="ADMIN"),
            ]
        )
        db.commit()

    with TestClient(app) as test_client:
        yield test_client, TestingSessionLocal

    app.dependency_overrides.clear()
    Base.metadata.drop_all(engine)


def _send(test_client, user_id=1, message="Site inspection at 9am", **extra):
    return test_client.post("/api/notifications", json={"user_id": user_id, "message": message, **extra})


def test_send_and_list_own_notifications(client):
    test_client, _ = client

    sent = _send(test_client, priority="high", type="schedule")
    assert sent.status_code == 201
    notification = sent.json()["notification"]
    assert notification["status"] == "unread"
    assert notification["priority"] == "high"

    _send(test_client, user_id=2, message="Not for the admin")

    listed = test_client.get("/api/notifications")
    assert listed.status_code == 200
    assert [row["message"] for row in listed.json()["notifications"]] == ["Site inspection at 9am"]

    assert test_client.get("/api/notifications", params={"type": "inventory"}).status_code == 404


def test_cannot_notify_user_of_other_tenant(client):
    test_client, session_factory = client

    response = _send(test_client, user_id=3)

    assert response.status_code == 404
    with session_factory() as db:
        assert db.query(Notification).count() == 0


def test_mark_notification_read(client):
    test_client, _ = client
    notification_id = _send(test_client).json()["notification"]["id"]

    response = test_client.patch(f"/api/notifications/{notification_id}", json={"status": "read"})
    assert response.status_code == 200
    assert response.json()["notification"]["status"] == "read"

    unread = test_client.get("/api/notifications", params={"status": "unread"})
    assert unread.status_code == 404

    invalid = test_client.patch(f"/api/notifications/{notification_id}", json={"status": "archived"})
    assert invalid.status_code == 400

    missing = test_client.patch("/api/notifications/999", json={"status": "read"})
    assert missing.status_code == 404


def test_failed_status_change_rolls_back_session(client):
    test_client, session_factory = client
    notification_id = _send(test_client).json()["notification"]["id"]
    rollbacks = []

    def tracking_get_db():
        db = session_factory()
        original_rollback = db.rollback

        def rollback():
            rollbacks.append(True)
            original_rollback()

        db.rollback = rollback
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = tracking_get_db

    assert test_client.patch(f"/api/notifications/{notification_id}", json={"status": "archived"}).status_code == 400
    assert test_client.patch("/api/notifications/999", json={"status": "read"}).status_code == 404
    assert len(rollbacks) == 2
