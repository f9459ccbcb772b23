import os
import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATA_DIR", str(ROOT / "data"))
os.environ.setdefault("STOCK_MONITOR_ENABLED", "false")

from rentalstock.core.config import settings
from rentalstock.core.security import ROLE_ADMIN, ROLE_STAFF
from rentalstock.db.session import Base, enable_sqlite_savepoints, get_db
from rentalstock.deps.auth import Actor, get_actor
from rentalstock.main import app


@pytest.fixture()
def client():
    engine = enable_sqlite_savepoints(
        create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    )
    TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_actor] = lambda: Actor(subject="tester", scheme="test", role=ROLE_ADMIN)
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
        engine.dispose()


def _create_tent(client, quantity=10):
    resp = client.post(
        "/api/v1/equipment",
        json={"name": "Ridge Tent", "category": "Tents", "price": 55.0, "quantity": quantity},
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


def test_health(client):
    assert client.get("/health").json() == {"ok": True}


def test_mutation_round_trip_through_api(client):
    tent = _create_tent(client)

    resp = client.post(
        f"/api/v1/inventory/{tent['id']}/mutations",
        json={"quantity_change": -6, "reason": "Rental checkout"},
    )
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["before"]["quantity"] == 10
    assert body["after"]["quantity"] == 4
    assert body["entry"]["action"] == "stock-out"
    assert body["entry"]["performed_by"] == "tester"

    log = client.get("/api/v1/inventory/audit-log", params={"equipment_id": tent["id"]}).json()
    assert log["total"] == 2
    assert [item["action"] for item in log["items"]] == ["stock-out", "stock-in"]

    replay = client.get(f"/api/v1/inventory/{tent['id']}/replay").json()
    assert replay["consistent"] is True
    assert replay["quantity"] == 4


def test_domain_errors_use_the_envelope(client):
    tent = _create_tent(client, quantity=4)

    resp = client.post(
        f"/api/v1/inventory/{tent['id']}/mutations",
        json={"quantity_change": -5, "reason": "Rental checkout"},
    )
    assert resp.status_code == 422
    assert resp.json() == {
        "code": "negative_quantity",
        "message": resp.json()["message"],
        "details": {"equipment_id": tent["id"], "current": 4, "change": -5},
    }

    missing = client.get("/api/v1/equipment/999")
    assert missing.status_code == 404
    assert missing.json()["code"] == "not_found"

    invalid = client.post(f"/api/v1/inventory/{tent['id']}/mutations", json={"quantity_change": 1})
    assert invalid.status_code == 422
    assert invalid.json()["code"] == "validation_error"


def test_quantity_cannot_be_patched_directly(client):
    tent = _create_tent(client)
    resp = client.patch(f"/api/v1/equipment/{tent['id']}", json={"quantity": 99})
    assert resp.status_code == 422
    assert client.get(f"/api/v1/equipment/{tent['id']}").json()["quantity"] == 10


def test_batch_reports_per_item_results(client):
    tent = _create_tent(client, quantity=3)

    resp = client.post(
        "/api/v1/inventory/batch",
        json={
            "reason": "Stocktake",
            "updates": [
                {"equipment_id": tent["id"], "quantity_change": 2},
                {"equipment_id": 31337, "quantity_change": 1},
            ],
        },
    )
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["success_count"] == 1
    assert body["fail_count"] == 1

    failed = client.post(
        "/api/v1/inventory/batch",
        json={"reason": "Stocktake", "updates": [{"equipment_id": 31337, "quantity_change": 1}]},
    )
    assert failed.status_code == 400
    assert failed.json()["code"] == "batch_failed"


def test_staff_cannot_use_admin_operations(client):
    tent = _create_tent(client)
    app.dependency_overrides[get_actor] = lambda: Actor(subject="clerk", scheme="test", role=ROLE_STAFF)

    batch = client.post(
        "/api/v1/inventory/batch",
        json={"reason": "Stocktake", "updates": [{"equipment_id": tent["id"], "quantity_change": 1}]},
    )
    assert batch.status_code == 403
    assert batch.json() == {"code": "http_error", "message": "Admin role required"}

    retire = client.post(
        f"/api/v1/inventory/{tent['id']}/mutations",
        json={"new_status": "retired", "reason": "Broken poles"},
    )
    assert retire.status_code == 403

    checkout = client.post(
        f"/api/v1/inventory/{tent['id']}/mutations",
        json={"new_status": "in-use", "reason": "Rental"},
    )
    assert checkout.status_code == 200
    assert checkout.json()["entry"]["performed_by"] == "clerk"


def test_api_key_exchange_grants_admin_token(client, monkeypatch):
    monkeypatch.setattr(settings, "API_KEY", "s3cret")
    app.dependency_overrides.pop(get_actor, None)

    assert client.get("/api/v1/equipment").status_code == 401
    assert client.post("/api/v1/auth/token", json={"apiKey": "wrong"}).status_code == 401

    tokens = client.post("/api/v1/auth/token", json={"apiKey": "s3cret", "subject": "ops"}).json()
    headers = {"Authorization": f"Bearer {tokens['access_token']}"}

    created = client.post(
        "/api/v1/equipment",
        headers=headers,
        json={"name": "Headlamp", "category": "Lighting", "quantity": 2},
    )
    assert created.status_code == 201, created.text
    log = client.get("/api/v1/inventory/audit-log", headers={"X-API-Key": "s3cret"}).json()
    assert log["items"][0]["performed_by"] == "jwt:ops"


def test_stock_check_endpoint(client):
    _create_tent(client, quantity=0)
    resp = client.post("/api/v1/stock/check")
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert len(body["out_of_stock"]) == 1
    assert body["low_stock"] == []
    assert body["auto_orders"] == []


def test_staff_token_is_refused_admin_routes(client, monkeypatch):
    monkeypatch.setattr(settings, "API_KEY", "s3cret")
    app.dependency_overrides.pop(get_actor, None)

    tokens = client.post(
        "/api/v1/auth/token",
        json={"apiKey": "s3cret", "subject": "desk-1", "role": "staff"},
    ).json()
    assert tokens["role"] == "staff"
    headers = {"Authorization": f"Bearer {tokens['access_token']}"}

    denied = client.post("/api/v1/stock/check", headers=headers)
    assert denied.status_code == 403

    refreshed = client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]}).json()
    assert refreshed["role"] == "staff"
    rejected = client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["access_token"]})
    assert rejected.status_code == 401
