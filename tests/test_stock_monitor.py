import os
import sys
from pathlib import Path

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATA_DIR", str(ROOT / "data"))
os.environ.setdefault("STOCK_MONITOR_ENABLED", "false")

from rentalstock.core.config import settings
from rentalstock.crud.reorder import upsert_policy
from rentalstock.crud.suppliers import create_supplier, deactivate_supplier
from rentalstock.db.session import Base, enable_sqlite_savepoints
from rentalstock.models.stock_order import StockOrder
from rentalstock.services import notifications
from rentalstock.services.coordinator import create_equipment, mutate
from rentalstock.services.maintenance import file_damage_report, update_damage_report
from rentalstock.services.scheduler import STOCK_CHECK_JOB_ID, STOCK_CHECK_STARTUP_JOB_ID, start_scheduler, stop_scheduler
from rentalstock.services.stock_monitor import AUTO_ORDER_ACTOR, run_stock_check

# Ensure models are imported so metadata is populated
from rentalstock.models import audit as audit_model  # noqa: F401
from rentalstock.models import maintenance as maintenance_model  # noqa: F401


class RecordingNotifier:
    def __init__(self):
        self.sent = []

    def notify(self, notification):
        self.sent.append(notification)


class ExplodingNotifier:
    def notify(self, notification):
        raise RuntimeError("webhook down")


@pytest.fixture()
def db_session():
    engine = enable_sqlite_savepoints(create_engine("sqlite://", connect_args={"check_same_thread": False}))
    TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


def _item(db, name, quantity, category="Hiking", price=20.0):
    return create_equipment(
        db,
        {"name": name, "category": category, "price": price, "quantity": quantity},
        "tester",
    )


def _auto_policy(db, equipment, supplier, reorder_quantity):
    upsert_policy(
        db,
        equipment.id,
        {"auto_reorder": True, "preferred_supplier_id": supplier.id, "reorder_quantity": reorder_quantity},
        "admin",
    )


def test_check_classifies_and_alerts(db_session):
    for quantity in (0, 1, 4, 5, 6):
        _item(db_session, f"Pole x{quantity}", quantity)
    notifier = RecordingNotifier()

    result = run_stock_check(db_session, notifier)

    assert [row["name"] for row in result["out_of_stock"]] == ["Pole x0"]
    assert [row["name"] for row in result["low_stock"]] == ["Pole x1", "Pole x4"]
    assert result["auto_orders"] == []
    assert [n.kind for n in notifier.sent] == ["out_of_stock", "low_stock", "low_stock"]
    assert all(n.threshold == 5 for n in notifier.sent)


def test_auto_reorder_opens_one_order_per_supplier(db_session):
    supplier = create_supplier(db_session, {"name": "Summit Gear", "email": "sales@summit.example"})
    poles = _item(db_session, "Trekking Poles", 2, price=30.0)
    boots = _item(db_session, "Gaiters", 0, price=15.0)
    stocked = _item(db_session, "Compass", 9)
    no_supplier = _item(db_session, "Map Case", 1)
    _auto_policy(db_session, poles, supplier, 12)
    _auto_policy(db_session, boots, supplier, 4)
    _auto_policy(db_session, stocked, supplier, 3)
    upsert_policy(db_session, no_supplier.id, {"auto_reorder": True}, "admin")
    notifier = RecordingNotifier()

    result = run_stock_check(db_session, notifier)

    assert len(result["auto_orders"]) == 1
    summary = result["auto_orders"][0]
    assert summary["supplier_id"] == supplier.id
    assert summary["items"] == [
        {"equipment_id": poles.id, "quantity": 12},
        {"equipment_id": boots.id, "quantity": 4},
    ]
    assert summary["total_amount"] == 12 * 30.0 + 4 * 15.0

    order = db_session.get(StockOrder, summary["order_id"])
    assert order.status == "pending"
    assert order.is_auto_order is True
    assert order.created_by == AUTO_ORDER_ACTOR
    assert "auto_reorder" in [n.kind for n in notifier.sent]


def test_open_order_suppresses_duplicate_reorder(db_session):
    supplier = create_supplier(db_session, {"name": "Summit Gear", "email": "sales@summit.example"})
    poles = _item(db_session, "Trekking Poles", 2)
    _auto_policy(db_session, poles, supplier, 6)

    first = run_stock_check(db_session)
    second = run_stock_check(db_session)

    assert len(first["auto_orders"]) == 1
    assert second["auto_orders"] == []
    assert len(second["low_stock"]) == 1
    assert len(db_session.execute(select(StockOrder)).scalars().all()) == 1


def test_inactive_supplier_is_skipped(db_session):
    supplier = create_supplier(db_session, {"name": "Closed Outfitters", "email": "info@closed.example"})
    poles = _item(db_session, "Trekking Poles", 1)
    _auto_policy(db_session, poles, supplier, 6)
    deactivate_supplier(db_session, supplier.id)

    result = run_stock_check(db_session)

    assert result["auto_orders"] == []
    assert db_session.execute(select(StockOrder)).scalars().all() == []


def test_retired_and_lost_items_are_reported_but_never_reordered(db_session):
    supplier = create_supplier(db_session, {"name": "Acme", "email": "orders@acme.example"})
    stove = _item(db_session, "Camp Stove", 8)
    _auto_policy(db_session, stove, supplier, 10)
    lantern = _item(db_session, "Lantern", 2)
    _auto_policy(db_session, lantern, supplier, 4)

    report = file_damage_report(
        db_session,
        {"equipment_id": stove.id, "damage_type": "physical", "severity": "critical", "description": "Cracked burner"},
        "clerk",
    )
    update_damage_report(db_session, report.id, {"status": "written-off"}, "admin")
    mutate(db_session, lantern.id, new_status="lost", reason="Not returned", actor_id="admin")

    result = run_stock_check(db_session, RecordingNotifier())

    assert result["auto_orders"] == []
    assert db_session.execute(select(StockOrder)).scalars().all() == []
    assert [(row["name"], row["status"]) for row in result["out_of_stock"]] == [("Camp Stove", "retired")]
    assert [(row["name"], row["status"]) for row in result["low_stock"]] == [("Lantern", "lost")]


def test_notifier_failure_does_not_break_check_or_mutation(db_session):
    poles = _item(db_session, "Trekking Poles", 6)

    result = mutate(
        db_session,
        poles.id,
        quantity_delta=-5,
        reason="Group hike",
        actor_id="clerk",
        notifier=ExplodingNotifier(),
    )
    assert result.after["quantity"] == 1

    report = run_stock_check(db_session, ExplodingNotifier())
    assert [row["equipment_id"] for row in report["low_stock"]] == [poles.id]


def test_process_wide_notifier_is_used_by_default(db_session):
    _item(db_session, "Headlamp", 0, category="Lighting")
    recorder = RecordingNotifier()
    notifications.set_notifier(recorder)
    try:
        run_stock_check(db_session)
    finally:
        notifications.set_notifier(None)

    assert [n.kind for n in recorder.sent] == ["out_of_stock"]
    assert recorder.sent[0].as_payload()["title"]


def test_scheduler_stays_off_when_disabled(monkeypatch):
    monkeypatch.setattr(settings, "STOCK_MONITOR_ENABLED", False)
    assert start_scheduler() is None
    stop_scheduler()


def test_scheduler_registers_interval_and_startup_jobs(monkeypatch):
    monkeypatch.setattr(settings, "STOCK_MONITOR_ENABLED", True)
    monkeypatch.setattr(settings, "STOCK_CHECK_STARTUP_DELAY_SECONDS", 3600)
    scheduler = start_scheduler()
    try:
        assert scheduler is not None
        assert start_scheduler() is scheduler
        assert {job.id for job in scheduler.get_jobs()} == {STOCK_CHECK_JOB_ID, STOCK_CHECK_STARTUP_JOB_ID}
    finally:
        stop_scheduler()
