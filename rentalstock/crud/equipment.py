# rentalstock/crud/equipment.py
from __future__ import annotations

from sqlalchemy import desc, func, or_, select
from sqlalchemy.orm import Session

from ..core.exceptions import ConflictError, InvalidInputError, NotFoundError
from ..core.statuses import (
    CATEGORY_CHOICES,
    CONDITION_CHOICES,
    EQUIPMENT_STATUS_CHOICES,
    ORDER_OPEN_STATUSES,
    STATUS_RETIRED,
    normalize_choice,
)
from ..core.timeutil import normalize_iso, utcnow_iso
from ..models.equipment import Equipment
from ..models.stock_order import StockOrder, StockOrderItem
from ..services import coordinator

# Quantity, status and availability belong to the coordinator.
_COORDINATED = {"quantity", "status", "is_available"}
_METADATA = (
    "name",
    "description",
    "category",
    "price",
    "maintenance_frequency_days",
    "serial_number",
    "barcode",
    "purchase_date",
    "purchase_price",
)


def list_equipment(
    db: Session,
    *,
    category: str | None = None,
    status: str | None = None,
    condition: str | None = None,
    search: str | None = None,
    limit: int = 100,
    offset: int = 0,
) -> list[Equipment]:
    stmt = select(Equipment).order_by(desc(Equipment.created_at), desc(Equipment.id))
    if category:
        stmt = stmt.where(Equipment.category == (normalize_choice(category, CATEGORY_CHOICES) or category))
    if status:
        stmt = stmt.where(Equipment.status == (normalize_choice(status, EQUIPMENT_STATUS_CHOICES) or status))
    if condition:
        stmt = stmt.where(Equipment.condition == (normalize_choice(condition, CONDITION_CHOICES) or condition))
    if search and search.strip():
        pattern = f"%{search.strip().lower()}%"
        stmt = stmt.where(
            or_(
                func.lower(Equipment.name).like(pattern),
                func.lower(Equipment.description).like(pattern),
                func.lower(func.coalesce(Equipment.serial_number, "")).like(pattern),
                func.lower(func.coalesce(Equipment.barcode, "")).like(pattern),
            )
        )
    return db.execute(stmt.limit(limit).offset(offset)).scalars().all()


def get_equipment(db: Session, equipment_id: int) -> Equipment:
    item = db.get(Equipment, equipment_id)
    if not item:
        raise NotFoundError("Equipment", equipment_id)
    return item


def update_equipment(db: Session, equipment_id: int, payload: dict) -> Equipment:
    """Update descriptive fields in place. Quantity and status changes are refused."""

    coordinated = _COORDINATED & {key for key, value in payload.items() if value is not None}
    if coordinated:
        raise InvalidInputError(
            "Quantity and status change only through inventory mutations",
            details={"fields": sorted(coordinated)},
        )
    item = get_equipment(db, equipment_id)
    for key, value in payload.items():
        if key not in _METADATA:
            continue
        if key == "category":
            value = normalize_choice(value, CATEGORY_CHOICES)
            if value is None:
                raise InvalidInputError("Invalid category", details={"field": key})
        elif key == "name":
            if not isinstance(value, str) or not value.strip():
                raise InvalidInputError("name cannot be empty", details={"field": key})
            value = value.strip()
        elif key == "price":
            if value is None or value < 0:
                raise InvalidInputError("price must be a non-negative number", details={"field": key})
        elif key == "maintenance_frequency_days":
            if value is None or value < 1:
                raise InvalidInputError("maintenance_frequency_days must be at least 1", details={"field": key})
        elif key == "purchase_date":
            try:
                value = normalize_iso(value)
            except ValueError as exc:
                raise InvalidInputError("purchase_date must be an ISO-8601 timestamp") from exc
        elif isinstance(value, str):
            value = value.strip()
            if key != "description" and value == "":
                value = None
        setattr(item, key, value)
    item.updated_at = utcnow_iso()
    db.commit()
    db.refresh(item)
    return item


def open_orders_referencing(db: Session, equipment_id: int) -> list[int]:
    stmt = (
        select(StockOrder.id)
        .join(StockOrderItem, StockOrderItem.order_id == StockOrder.id)
        .where(
            StockOrderItem.equipment_id == equipment_id,
            StockOrder.status.in_(ORDER_OPEN_STATUSES),
        )
        .distinct()
        .order_by(StockOrder.id)
    )
    return db.execute(stmt).scalars().all()


def retire_equipment(db: Session, equipment_id: int, actor_id: str, reason: str | None = None) -> Equipment:
    """Equipment is never hard-deleted; removal retires it through the coordinator."""

    item = get_equipment(db, equipment_id)
    open_orders = open_orders_referencing(db, equipment_id)
    if open_orders:
        raise ConflictError(
            "Equipment is referenced by open stock orders",
            details={"equipment_id": equipment_id, "order_ids": open_orders},
        )
    if item.status == STATUS_RETIRED:
        return item
    result = coordinator.mutate(
        db,
        equipment_id,
        reason=reason or "Removed from inventory",
        actor_id=actor_id,
        new_status=STATUS_RETIRED,
    )
    return result.equipment
