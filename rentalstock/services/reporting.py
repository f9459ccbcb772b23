"""Inventory report and dashboard statistics.

Reports are computed from a frozen snapshot of the equipment table taken at
the start of the call, so one report never mixes rows from before and after
a concurrent mutation.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Callable, Iterable

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.statuses import (
    CATEGORY_CHOICES,
    CONDITION_CHOICES,
    EQUIPMENT_STATUS_CHOICES,
    STATUS_AVAILABLE,
    STATUS_DAMAGED,
    STATUS_MAINTENANCE,
)
from ..core.timeutil import parse_iso, to_iso, utcnow
from ..crud.reorder import LOW_STOCK, OUT_OF_STOCK, classify, policy_map
from ..models.audit import AuditLedgerEntry
from ..models.equipment import Equipment

TWOPLACES = Decimal("0.01")


def _quantize_currency(value: Decimal) -> Decimal:
    return value.quantize(TWOPLACES, rounding=ROUND_HALF_UP) if value else Decimal("0.00")


@dataclass(frozen=True)
class EquipmentSnapshot:
    id: int
    name: str
    category: str
    status: str
    condition: str
    quantity: int
    price: Decimal
    threshold: int
    next_maintenance_scheduled: str | None

    @property
    def value(self) -> Decimal:
        return self.price * self.quantity

    @property
    def stock_level(self) -> str | None:
        return classify(self.quantity, self.threshold)


@dataclass(frozen=True)
class Bucket:
    key: str
    items: int
    units: int
    value: Decimal


def take_snapshot(db: Session) -> tuple[EquipmentSnapshot, ...]:
    policies = policy_map(db)
    rows = db.execute(select(Equipment).order_by(Equipment.id)).scalars().all()
    return tuple(
        EquipmentSnapshot(
            id=row.id,
            name=row.name,
            category=row.category,
            status=row.status,
            condition=row.condition,
            quantity=row.quantity,
            price=Decimal(str(row.price or 0)),
            threshold=policies[row.id].threshold if row.id in policies else settings.DEFAULT_REORDER_THRESHOLD,
            next_maintenance_scheduled=row.next_maintenance_scheduled,
        )
        for row in rows
    )


def bucket_by(
    snapshot: Iterable[EquipmentSnapshot],
    key: Callable[[EquipmentSnapshot], str],
    keys: Iterable[str] = (),
) -> list[Bucket]:
    """Group ``snapshot`` by ``key``; every name in ``keys`` gets a bucket even when empty."""

    items = tuple(snapshot)
    names = list(dict.fromkeys([*keys, *(key(item) for item in items)]))
    return [
        Bucket(
            key=name,
            items=sum(1 for item in items if key(item) == name),
            units=sum(item.quantity for item in items if key(item) == name),
            value=_quantize_currency(sum((item.value for item in items if key(item) == name), Decimal("0"))),
        )
        for name in names
    ]


def _stock_row(item: EquipmentSnapshot) -> dict[str, Any]:
    return {
        "equipment_id": item.id,
        "name": item.name,
        "category": item.category,
        "quantity": item.quantity,
        "threshold": item.threshold,
    }


def _maintenance_due(snapshot: Iterable[EquipmentSnapshot], horizon: datetime) -> list[dict[str, Any]]:
    due = [
        item
        for item in snapshot
        if item.next_maintenance_scheduled and parse_iso(item.next_maintenance_scheduled) <= horizon
    ]
    return [
        {
            "equipment_id": item.id,
            "name": item.name,
            "status": item.status,
            "next_maintenance_scheduled": item.next_maintenance_scheduled,
        }
        for item in sorted(due, key=lambda entry: entry.next_maintenance_scheduled)
    ]


def _bucket_dicts(buckets: list[Bucket]) -> list[dict[str, Any]]:
    return [{**asdict(bucket), "value": float(bucket.value)} for bucket in buckets]


def inventory_report(db: Session, *, due_within_days: int = 7, now: datetime | None = None) -> dict[str, Any]:
    """Category/status/condition breakdown, stock alerts and upcoming maintenance."""

    snapshot = take_snapshot(db)
    reference = now or utcnow()
    total_value = _quantize_currency(sum((item.value for item in snapshot), Decimal("0")))
    return {
        "generated_at": to_iso(reference),
        "totals": {
            "items": len(snapshot),
            "units": sum(item.quantity for item in snapshot),
            "value": float(total_value),
        },
        "by_category": _bucket_dicts(bucket_by(snapshot, lambda item: item.category, CATEGORY_CHOICES)),
        "by_status": _bucket_dicts(bucket_by(snapshot, lambda item: item.status, EQUIPMENT_STATUS_CHOICES)),
        "by_condition": _bucket_dicts(bucket_by(snapshot, lambda item: item.condition, CONDITION_CHOICES)),
        "out_of_stock": [_stock_row(item) for item in snapshot if item.stock_level == OUT_OF_STOCK],
        "low_stock": [_stock_row(item) for item in snapshot if item.stock_level == LOW_STOCK],
        "maintenance_due": _maintenance_due(snapshot, reference + timedelta(days=due_within_days)),
    }


def inventory_stats(db: Session, *, activity_days: int = 7, now: datetime | None = None) -> dict[str, Any]:
    """Headline counters for dashboards plus ledger activity over the last ``activity_days``."""

    snapshot = take_snapshot(db)
    reference = now or utcnow()
    statuses = Counter(item.status for item in snapshot)
    levels = Counter(item.stock_level for item in snapshot)

    since = to_iso(reference - timedelta(days=activity_days))
    activity_rows = db.execute(
        select(AuditLedgerEntry.action, func.count(AuditLedgerEntry.id))
        .where(AuditLedgerEntry.created_at >= since)
        .group_by(AuditLedgerEntry.action)
    ).all()

    return {
        "total_items": len(snapshot),
        "total_units": sum(item.quantity for item in snapshot),
        "total_value": float(_quantize_currency(sum((item.value for item in snapshot), Decimal("0")))),
        "available_items": statuses[STATUS_AVAILABLE],
        "in_maintenance": statuses[STATUS_MAINTENANCE],
        "damaged": statuses[STATUS_DAMAGED],
        "low_stock_count": levels[LOW_STOCK],
        "out_of_stock_count": levels[OUT_OF_STOCK],
        "recent_activity": {action: count for action, count in activity_rows},
    }
