import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATA_DIR", str(ROOT / "data"))
os.environ.setdefault("STOCK_MONITOR_ENABLED", "false")

from rentalstock.core.timeutil import to_iso
from rentalstock.crud.reorder import upsert_policy
from rentalstock.db.session import Base, enable_sqlite_savepoints
from rentalstock.services.coordinator import create_equipment, mutate
from rentalstock.services.reporting import inventory_report, inventory_stats

# Ensure models are imported so metadata is populated
from rentalstock.models import audit as audit_model  # noqa: F401
from rentalstock.models import maintenance as maintenance_model  # noqa: F401
from rentalstock.models import stock_order as stock_order_model  # noqa: F401


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


NOW = datetime.now(timezone.utc)


@pytest.fixture()
def stocked(db_session):
    tent = create_equipment(
        db_session,
        {
            "name": "Tunnel Tent",
            "category": "Tents",
            "price": 100.0,
            "quantity": 3,
            "next_maintenance_scheduled": to_iso(NOW + timedelta(days=2)),
        },
        "tester",
    )
    bag = create_equipment(
        db_session,
        {"name": "Summer Bag", "category": "Sleeping Bags", "price": 30.0, "quantity": 12},
        "tester",
    )
    pot = create_equipment(
        db_session,
        {
            "name": "Billy Pot",
            "category": "Cooking",
            "price": 8.5,
            "quantity": 0,
            "next_maintenance_scheduled": to_iso(NOW + timedelta(days=30)),
        },
        "tester",
    )
    upsert_policy(db_session, bag.id, {"threshold": 15}, "admin")
    mutate(db_session, tent.id, new_status="in-use", reason="Rental", actor_id="clerk")
    return tent, bag, pot


def test_report_buckets_every_category(db_session, stocked):
    tent, bag, pot = stocked
    report = inventory_report(db_session, now=NOW)

    assert report["totals"] == {"items": 3, "units": 15, "value": 660.0}
    categories = {bucket["key"]: bucket for bucket in report["by_category"]}
    assert set(categories) >= {"Tents", "Sleeping Bags", "Cooking", "Lighting", "Hiking", "Other"}
    assert categories["Tents"]["units"] == 3
    assert categories["Tents"]["value"] == 300.0
    assert categories["Lighting"]["items"] == 0

    statuses = {bucket["key"]: bucket["items"] for bucket in report["by_status"]}
    assert statuses["in-use"] == 1
    assert statuses["available"] == 2

    assert [row["equipment_id"] for row in report["out_of_stock"]] == [pot.id]
    assert [row["equipment_id"] for row in report["low_stock"]] == [tent.id, bag.id]
    assert report["low_stock"][1]["threshold"] == 15
    assert [row["equipment_id"] for row in report["maintenance_due"]] == [tent.id]


def test_stats_count_recent_activity(db_session, stocked):
    stats = inventory_stats(db_session, now=NOW + timedelta(minutes=1))

    assert stats["total_items"] == 3
    assert stats["total_units"] == 15
    assert stats["available_items"] == 2
    assert stats["low_stock_count"] == 2
    assert stats["out_of_stock_count"] == 1
    assert stats["recent_activity"] == {"stock-in": 2, "update": 2}
