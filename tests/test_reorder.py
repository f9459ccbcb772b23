import os
import sys
from pathlib import Path

import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import sessionmaker

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATA_DIR", str(ROOT / "data"))
os.environ.setdefault("STOCK_MONITOR_ENABLED", "false")

from rentalstock.core.exceptions import InvalidInputError, NotFoundError
from rentalstock.crud.reorder import (
    LOW_STOCK,
    OUT_OF_STOCK,
    classify,
    delete_policy,
    effective_threshold,
    get_policy,
    upsert_policy,
)
from rentalstock.crud.suppliers import create_supplier
from rentalstock.db.session import Base, enable_sqlite_savepoints
from rentalstock.models.reorder import ReorderPolicy
from rentalstock.services.coordinator import create_equipment

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


@pytest.fixture()
def lantern(db_session):
    return create_equipment(
        db_session,
        {"name": "LED Lantern", "category": "Lighting", "price": 12.5, "quantity": 6},
        "tester",
    )


@pytest.mark.parametrize(
    "quantity,expected",
    [
        (0, OUT_OF_STOCK),
        (1, LOW_STOCK),
        (4, LOW_STOCK),
        (5, None),
        (6, None),
    ],
)
def test_classify_against_threshold_five(quantity, expected):
    assert classify(quantity, 5) == expected


def test_policy_is_created_lazily_with_defaults(db_session, lantern):
    count = select(func.count(ReorderPolicy.id))
    assert db_session.execute(count).scalar_one() == 0

    policy = get_policy(db_session, lantern.id)
    assert policy.threshold == 5
    assert policy.reorder_quantity == 10
    assert policy.auto_reorder is False
    assert policy.preferred_supplier_id is None

    again = get_policy(db_session, lantern.id)
    assert again.id == policy.id
    assert db_session.execute(count).scalar_one() == 1


def test_upsert_keeps_one_policy_per_item(db_session, lantern):
    supplier = create_supplier(db_session, {"name": "Trail Supply Co", "email": "orders@trail.example"})

    first = upsert_policy(db_session, lantern.id, {"threshold": 8}, "admin")
    second = upsert_policy(
        db_session,
        lantern.id,
        {"reorder_quantity": 20, "auto_reorder": True, "preferred_supplier_id": supplier.id},
        "admin",
    )

    assert first.id == second.id
    assert second.threshold == 8
    assert second.reorder_quantity == 20
    assert second.auto_reorder is True
    assert second.preferred_supplier_id == supplier.id
    assert second.updated_by == "admin"
    assert effective_threshold(db_session, lantern.id) == 8


@pytest.mark.parametrize(
    "data",
    [
        {"threshold": 0},
        {"threshold": -3},
        {"reorder_quantity": 0},
        {"threshold": "5"},
        {"threshold": True},
    ],
)
def test_upsert_rejects_non_positive_values(db_session, lantern, data):
    with pytest.raises(InvalidInputError):
        upsert_policy(db_session, lantern.id, data, "admin")


def test_upsert_rejects_unknown_supplier_and_equipment(db_session, lantern):
    with pytest.raises(NotFoundError):
        upsert_policy(db_session, lantern.id, {"preferred_supplier_id": 404}, "admin")
    with pytest.raises(NotFoundError):
        upsert_policy(db_session, 9999, {"threshold": 3}, "admin")


def test_delete_falls_back_to_defaults(db_session, lantern):
    upsert_policy(db_session, lantern.id, {"threshold": 2}, "admin")

    assert delete_policy(db_session, lantern.id) is True
    assert delete_policy(db_session, lantern.id) is False
    assert effective_threshold(db_session, lantern.id) == 5
