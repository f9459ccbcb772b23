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

from rentalstock.core.exceptions import (
    BatchFailedError,
    ConflictError,
    ImmutabilityViolationError,
    InvalidInputError,
    InvalidTransitionError,
    NegativeQuantityError,
    NotFoundError,
)
from rentalstock.crud.reorder import upsert_policy
from rentalstock.db.session import Base, enable_sqlite_savepoints
from rentalstock.models.audit import AuditLedgerEntry
from rentalstock.models.equipment import Equipment
from rentalstock.services.coordinator import batch_mutate, create_equipment, mutate

# Ensure models are imported so metadata is populated
from rentalstock.models import maintenance as maintenance_model  # noqa: F401
from rentalstock.models import reorder as reorder_model  # noqa: F401
from rentalstock.models import stock_order as stock_order_model  # noqa: F401
from rentalstock.models import supplier as supplier_model  # noqa: F401


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


def _tent(db, quantity=10, **extra):
    payload = {"name": "Dome Tent", "category": "Tents", "price": 45.0, "quantity": quantity}
    payload.update(extra)
    return create_equipment(db, payload, "tester")


def _entries(db, equipment_id):
    stmt = (
        select(AuditLedgerEntry)
        .where(AuditLedgerEntry.equipment_id == equipment_id)
        .order_by(AuditLedgerEntry.id)
    )
    return db.execute(stmt).scalars().all()


def test_intake_writes_opening_entry(db_session):
    tent = _tent(db_session, quantity=10)

    assert tent.is_available is True
    entries = _entries(db_session, tent.id)
    assert len(entries) == 1
    opening = entries[0]
    assert opening.action == "stock-in"
    assert opening.quantity_before == 0
    assert opening.quantity_after == 10
    assert opening.quantity_change == 10
    assert opening.status_before is None
    assert opening.status_after == "available"
    assert opening.performed_by == "tester"


def test_stock_out_then_rejected_overdraw_keeps_quantity(db_session):
    tent = _tent(db_session, quantity=10)
    upsert_policy(db_session, tent.id, {"threshold": 5}, "tester")
    notifier = RecordingNotifier()

    result = mutate(
        db_session,
        tent.id,
        quantity_delta=-6,
        reason="Rental checkout",
        actor_id="clerk",
        notifier=notifier,
    )
    assert result.before["quantity"] == 10
    assert result.after["quantity"] == 4
    assert result.entry.action == "stock-out"
    assert [n.kind for n in notifier.sent] == ["low_stock"]
    assert notifier.sent[0].threshold == 5

    with pytest.raises(NegativeQuantityError) as excinfo:
        mutate(db_session, tent.id, quantity_delta=-5, reason="Rental checkout", actor_id="clerk")
    assert excinfo.value.details == {"equipment_id": tent.id, "current": 4, "change": -5}

    db_session.expire_all()
    assert db_session.get(Equipment, tent.id).quantity == 4
    assert len(_entries(db_session, tent.id)) == 2


def test_every_entry_states_its_net_effect(db_session):
    tent = _tent(db_session, quantity=3)
    mutate(db_session, tent.id, quantity_delta=7, reason="Restock", actor_id="clerk")
    mutate(db_session, tent.id, quantity_delta=-2, reason="Lost on trip", actor_id="clerk")
    mutate(db_session, tent.id, new_status="in-use", reason="Checkout", actor_id="clerk")

    for entry in _entries(db_session, tent.id):
        assert entry.quantity_after - entry.quantity_before == entry.quantity_change
        assert entry.quantity_after >= 0


def test_illegal_transition_is_rejected_without_entry(db_session):
    tent = _tent(db_session)
    mutate(db_session, tent.id, new_status="retired", reason="End of life", actor_id="admin")
    before = len(_entries(db_session, tent.id))

    with pytest.raises(InvalidTransitionError):
        mutate(db_session, tent.id, new_status="available", reason="Back in stock", actor_id="admin")

    db_session.expire_all()
    assert db_session.get(Equipment, tent.id).status == "retired"
    assert len(_entries(db_session, tent.id)) == before


@pytest.mark.parametrize(
    "start,target",
    [
        ("maintenance", "damaged"),
        ("damaged", "in-use"),
        ("in-use", "maintenance"),
    ],
)
def test_out_of_machine_transitions(db_session, start, target):
    tent = _tent(db_session, status=start)
    with pytest.raises(InvalidTransitionError):
        mutate(db_session, tent.id, new_status=target, reason="Try", actor_id="admin")


def test_any_status_can_be_retired_or_lost(db_session):
    for start in ("available", "in-use", "maintenance", "damaged", "retired"):
        tent = _tent(db_session, status=start)
        result = mutate(db_session, tent.id, new_status="lost", reason="Audit", actor_id="admin")
        assert result.after["status"] == "lost"


def test_availability_follows_status_and_quantity(db_session):
    tent = _tent(db_session, quantity=1)
    result = mutate(db_session, tent.id, new_status="in-use", reason="Checkout", actor_id="clerk")
    assert result.after["is_available"] is False

    result = mutate(db_session, tent.id, new_status="available", reason="Return", actor_id="clerk")
    assert result.after["is_available"] is True

    result = mutate(db_session, tent.id, quantity_delta=-1, reason="Sold", actor_id="clerk")
    assert result.after["is_available"] is False


def test_location_only_change_is_a_transfer(db_session):
    tent = _tent(db_session, location="Warehouse A")
    result = mutate(
        db_session,
        tent.id,
        changes={"location": "Warehouse B"},
        reason="Rebalance stock",
        actor_id="clerk",
    )
    assert result.entry.action == "transfer"
    assert result.entry.quantity_change == 0
    assert result.after["location"] == "Warehouse B"


def test_mutation_requires_reason_and_known_equipment(db_session):
    tent = _tent(db_session)
    with pytest.raises(InvalidInputError):
        mutate(db_session, tent.id, quantity_delta=1, reason="  ", actor_id="clerk")
    with pytest.raises(InvalidInputError):
        mutate(db_session, tent.id, reason="Nothing", actor_id="clerk")
    with pytest.raises(NotFoundError):
        mutate(db_session, 9999, quantity_delta=1, reason="Restock", actor_id="clerk")


def test_batch_skips_failing_items(db_session):
    first = _tent(db_session, quantity=5)
    second = _tent(db_session, quantity=2, name="Sleeping Bag", category="Sleeping Bags")
    third = _tent(db_session, quantity=8, name="Stove", category="Cooking")

    outcome = batch_mutate(
        db_session,
        [
            {"equipment_id": first.id, "quantity_change": -1},
            {"equipment_id": second.id, "quantity_change": 3},
            {"equipment_id": 424242, "quantity_change": -1},
            {"equipment_id": third.id, "quantity_change": -2},
        ],
        "Weekly count",
        "admin",
    )

    assert outcome["success_count"] == 3
    assert outcome["fail_count"] == 1
    failed = [r for r in outcome["results"] if not r["success"]]
    assert failed[0]["equipment_id"] == 424242
    assert failed[0]["code"] == "not_found"

    db_session.expire_all()
    assert db_session.get(Equipment, first.id).quantity == 4
    assert db_session.get(Equipment, second.id).quantity == 5
    assert db_session.get(Equipment, third.id).quantity == 6


def test_batch_item_failure_leaves_no_partial_write(db_session):
    tent = _tent(db_session, quantity=1)
    stove = _tent(db_session, quantity=4, name="Stove", category="Cooking")

    outcome = batch_mutate(
        db_session,
        [
            {"equipment_id": tent.id, "quantity_change": -3},
            {"equipment_id": stove.id, "quantity_change": -1},
        ],
        "Event kit",
        "admin",
    )

    assert outcome["success_count"] == 1
    assert outcome["results"][0]["code"] == "negative_quantity"
    db_session.expire_all()
    assert db_session.get(Equipment, tent.id).quantity == 1
    assert len(_entries(db_session, tent.id)) == 1
    assert len(_entries(db_session, stove.id)) == 2


def test_batch_fails_only_when_every_item_fails(db_session):
    tent = _tent(db_session, quantity=1)

    with pytest.raises(BatchFailedError) as excinfo:
        batch_mutate(
            db_session,
            [
                {"equipment_id": tent.id, "quantity_change": -2},
                {"equipment_id": 777, "quantity_change": 1},
            ],
            "Bad batch",
            "admin",
        )

    assert len(excinfo.value.results) == 2
    assert all(not r["success"] for r in excinfo.value.results)
    db_session.expire_all()
    assert db_session.get(Equipment, tent.id).quantity == 1
    assert len(_entries(db_session, tent.id)) == 1


def test_batch_reports_non_text_choices_as_failed_items(db_session):
    tent = _tent(db_session, quantity=3)
    stove = _tent(db_session, quantity=4, name="Stove", category="Cooking")

    outcome = batch_mutate(
        db_session,
        [
            {"equipment_id": tent.id, "new_status": 5},
            {"equipment_id": tent.id, "changes": {"condition": 3}},
            {"equipment_id": stove.id, "quantity_change": 1},
        ],
        "Shelf audit",
        "admin",
    )

    assert outcome["success_count"] == 1
    assert outcome["fail_count"] == 2
    assert [r["code"] for r in outcome["results"] if not r["success"]] == ["validation_error", "validation_error"]
    db_session.expire_all()
    assert db_session.get(Equipment, tent.id).status == "available"
    assert db_session.get(Equipment, tent.id).condition == "good"
    assert db_session.get(Equipment, stove.id).quantity == 5


def test_ledger_entries_cannot_be_edited_or_deleted(db_session):
    tent = _tent(db_session)
    entry = _entries(db_session, tent.id)[0]

    entry.reason = "rewritten history"
    with pytest.raises(ImmutabilityViolationError):
        db_session.flush()
    db_session.rollback()

    entry = _entries(db_session, tent.id)[0]
    db_session.delete(entry)
    with pytest.raises(ImmutabilityViolationError):
        db_session.flush()
    db_session.rollback()

    assert _entries(db_session, tent.id)[0].reason == "Initial intake"


def test_losing_concurrent_writer_gets_conflict(tmp_path):
    engine = enable_sqlite_savepoints(
        create_engine(f"sqlite:///{tmp_path / 'race.db'}", connect_args={"check_same_thread": False})
    )
    Base.metadata.create_all(bind=engine)
    Factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

    setup = Factory()
    tent_id = _tent(setup, quantity=10).id
    setup.close()

    slow = Factory()
    fast = Factory()
    try:
        slow.get(Equipment, tent_id)
        slow.commit()

        mutate(fast, tent_id, quantity_delta=-2, reason="Checkout", actor_id="fast")
        with pytest.raises(ConflictError):
            mutate(slow, tent_id, quantity_delta=-1, reason="Checkout", actor_id="slow")
    finally:
        slow.close()
        fast.close()

    check = Factory()
    try:
        assert check.get(Equipment, tent_id).quantity == 8
        assert len(_entries(check, tent_id)) == 2
    finally:
        check.close()
    engine.dispose()
