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

from rentalstock.core.exceptions import ConflictError, InvalidInputError, InvalidTransitionError
from rentalstock.crud.audit import verify_ledger
from rentalstock.crud.equipment import retire_equipment
from rentalstock.crud.suppliers import create_supplier, deactivate_supplier
from rentalstock.db.session import Base, enable_sqlite_savepoints
from rentalstock.models.audit import AuditLedgerEntry
from rentalstock.models.equipment import Equipment
from rentalstock.services.coordinator import create_equipment
from rentalstock.services.stock_orders import (
    advance_order_status,
    cancel_stock_order,
    create_stock_order,
    order_reference,
)

# Ensure models are imported so metadata is populated
from rentalstock.models import maintenance as maintenance_model  # noqa: F401
from rentalstock.models import reorder as reorder_model  # noqa: F401


class RecordingNotifier:
    def __init__(self):
        self.sent = []

    def notify(self, notification):
        self.sent.append(notification)


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
def stock(db_session):
    supplier = create_supplier(db_session, {"name": "Basecamp Wholesale", "email": "orders@basecamp.example"})
    stove = create_equipment(
        db_session,
        {"name": "Camp Stove", "category": "Cooking", "price": 40.0, "quantity": 0},
        "tester",
    )
    bag = create_equipment(
        db_session,
        {"name": "Down Bag", "category": "Sleeping Bags", "price": 90.0, "quantity": 5},
        "tester",
    )
    return supplier, stove, bag


def _order(db, supplier, stove, bag, notifier=None):
    return create_stock_order(
        db,
        supplier.id,
        [
            {"equipment_id": stove.id, "quantity": 3, "unit_price": 10.0},
            {"equipment_id": bag.id, "quantity": 7, "unit_price": 2.5},
        ],
        {"notes": "Spring restock"},
        "admin",
        notifier=notifier,
    )


def test_total_is_derived_from_lines(db_session, stock):
    supplier, stove, bag = stock
    order = _order(db_session, supplier, stove, bag)

    assert order.status == "pending"
    assert order.total_amount == 47.5
    assert [item.subtotal for item in order.items] == [30.0, 17.5]

    order.items[0].quantity = 5
    db_session.commit()
    db_session.refresh(order)
    assert order.total_amount == 67.5


def test_line_price_defaults_to_equipment_price(db_session, stock):
    supplier, stove, _ = stock
    order = create_stock_order(db_session, supplier.id, [{"equipment_id": stove.id, "quantity": 2}], None, "admin")
    assert order.items[0].unit_price == 40.0
    assert order.total_amount == 80.0


def test_order_validation(db_session, stock):
    supplier, stove, _ = stock
    with pytest.raises(InvalidInputError):
        create_stock_order(db_session, supplier.id, [], None, "admin")
    with pytest.raises(InvalidInputError):
        create_stock_order(db_session, supplier.id, [{"equipment_id": stove.id, "quantity": 0}], None, "admin")

    deactivate_supplier(db_session, supplier.id)
    with pytest.raises(InvalidInputError):
        create_stock_order(db_session, supplier.id, [{"equipment_id": stove.id, "quantity": 1}], None, "admin")


def test_delivery_stocks_in_each_line_once(db_session, stock):
    supplier, stove, bag = stock
    order = _order(db_session, supplier, stove, bag)
    notifier = RecordingNotifier()

    delivered = advance_order_status(db_session, order.id, "delivered", "admin", notifier=notifier)

    assert delivered.status == "delivered"
    assert delivered.delivery_date is not None
    db_session.expire_all()
    assert db_session.get(Equipment, stove.id).quantity == 3
    assert db_session.get(Equipment, bag.id).quantity == 12

    entries = db_session.execute(
        select(AuditLedgerEntry).where(AuditLedgerEntry.reference == order_reference(order.id))
    ).scalars().all()
    assert sorted((e.equipment_id, e.action, e.quantity_change) for e in entries) == sorted(
        [(stove.id, "stock-in", 3), (bag.id, "stock-in", 7)]
    )
    assert [n.kind for n in notifier.sent] == ["order_updated", "inventory_updated"]
    assert verify_ledger(db_session) == []


def test_orders_only_move_forward(db_session, stock):
    supplier, stove, bag = stock
    order = _order(db_session, supplier, stove, bag)

    advance_order_status(db_session, order.id, "confirmed", "admin")
    advance_order_status(
        db_session,
        order.id,
        "shipped",
        "admin",
        tracking={"tracking_number": "1Z999", "carrier": "UPS"},
    )

    with pytest.raises(InvalidTransitionError):
        advance_order_status(db_session, order.id, "confirmed", "admin")
    with pytest.raises(InvalidTransitionError):
        advance_order_status(db_session, order.id, "shipped", "admin")
    with pytest.raises(InvalidTransitionError):
        cancel_stock_order(db_session, order.id, "Too late", "admin")

    db_session.expire_all()
    shipped = advance_order_status(db_session, order.id, "delivered", "admin")
    assert shipped.tracking_number == "1Z999"
    with pytest.raises(InvalidTransitionError):
        advance_order_status(db_session, order.id, "shipped", "admin")


def test_cancel_appends_reason_and_leaves_stock(db_session, stock):
    supplier, stove, bag = stock
    order = _order(db_session, supplier, stove, bag)
    notifier = RecordingNotifier()

    cancelled = cancel_stock_order(db_session, order.id, "Supplier out of stock", "admin", notifier=notifier)

    assert cancelled.status == "cancelled"
    assert cancelled.notes == "Spring restock\nCancelled: Supplier out of stock"
    assert [n.kind for n in notifier.sent] == ["order_cancelled"]
    assert db_session.get(Equipment, stove.id).quantity == 0
    with pytest.raises(InvalidTransitionError):
        advance_order_status(db_session, order.id, "delivered", "admin")


def test_open_order_blocks_equipment_removal(db_session, stock):
    supplier, stove, bag = stock
    order = _order(db_session, supplier, stove, bag)

    with pytest.raises(ConflictError) as excinfo:
        retire_equipment(db_session, stove.id, "admin")
    assert excinfo.value.details["order_ids"] == [order.id]

    cancel_stock_order(db_session, order.id, None, "admin")
    retired = retire_equipment(db_session, stove.id, "admin")
    assert retired.status == "retired"
    assert retired.is_available is False
