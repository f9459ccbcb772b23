"""Supplier stock orders: creation, status progression and delivery intake."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import desc, select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ..core.exceptions import ConflictError, InvalidInputError, InvalidTransitionError, NotFoundError
from ..core.statuses import (
    ACTION_STOCK_IN,
    ORDER_CANCELLED,
    ORDER_CONFIRMED,
    ORDER_DELIVERED,
    ORDER_PENDING,
    ORDER_SHIPPED,
    ORDER_STATUS_CHOICES,
)
from ..core.timeutil import normalize_iso, utcnow_iso
from ..crud.suppliers import lookup_supplier
from ..models.equipment import Equipment
from ..models.stock_order import StockOrder, StockOrderItem
from . import notifications
from .coordinator import apply_mutation

logger = logging.getLogger(__name__)

# Forward progression; any later step may be reached directly.
ORDER_SEQUENCE = (ORDER_PENDING, ORDER_CONFIRMED, ORDER_SHIPPED, ORDER_DELIVERED)
CANCELLABLE_STATUSES = (ORDER_PENDING, ORDER_CONFIRMED)

_META_FIELDS = ("expected_delivery_date", "notes", "tracking_number", "carrier", "tracking_url")


def can_advance(current: str, requested: str) -> bool:
    if requested == ORDER_CANCELLED:
        return current in CANCELLABLE_STATUSES
    if current not in ORDER_SEQUENCE or requested not in ORDER_SEQUENCE:
        return False
    return ORDER_SEQUENCE.index(requested) > ORDER_SEQUENCE.index(current)


def order_reference(order_id: int) -> str:
    return f"stock-order:{order_id}"


def _clean_items(db: Session, items: list[dict[str, Any]]) -> list[StockOrderItem]:
    if not items:
        raise InvalidInputError("An order needs at least one line item")
    lines: list[StockOrderItem] = []
    for index, item in enumerate(items):
        equipment_id = item.get("equipment_id")
        quantity = item.get("quantity")
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise InvalidInputError(
                "Line item quantity must be a positive integer",
                details={"item": index, "field": "quantity"},
            )
        equipment = db.get(Equipment, equipment_id) if isinstance(equipment_id, int) else None
        if not equipment:
            raise NotFoundError("Equipment", equipment_id)
        unit_price = item.get("unit_price")
        if unit_price is None:
            unit_price = equipment.price
        elif unit_price < 0:
            raise InvalidInputError("unit_price cannot be negative", details={"item": index, "field": "unit_price"})
        lines.append(
            StockOrderItem(
                equipment_id=equipment.id,
                quantity=quantity,
                unit_price=float(unit_price),
                notes=item.get("notes"),
            )
        )
    return lines


def build_stock_order(
    db: Session,
    supplier_id: int,
    items: list[dict[str, Any]],
    meta: dict[str, Any] | None = None,
    actor_id: str | None = None,
    *,
    is_auto_order: bool = False,
) -> StockOrder:
    """Validate and stage an order in the caller's transaction without committing."""

    supplier = lookup_supplier(db, supplier_id)
    if not supplier.active:
        raise InvalidInputError("Supplier is inactive", details={"supplier_id": supplier_id})
    meta = dict(meta or {})
    try:
        expected = normalize_iso(meta.get("expected_delivery_date"))
    except ValueError as exc:
        raise InvalidInputError("expected_delivery_date must be an ISO-8601 timestamp") from exc

    now = utcnow_iso()
    order = StockOrder(
        supplier_id=supplier.id,
        status=ORDER_PENDING,
        order_date=now,
        expected_delivery_date=expected,
        is_auto_order=is_auto_order,
        tracking_number=meta.get("tracking_number"),
        carrier=meta.get("carrier"),
        tracking_url=meta.get("tracking_url"),
        notes=meta.get("notes"),
        created_by=actor_id,
        updated_at=now,
    )
    order.items = _clean_items(db, items)
    db.add(order)
    db.flush()
    return order


def _notify_order(kind: str, order: StockOrder, notifier: notifications.Notifier | None, **data: Any) -> None:
    notifications.dispatch(
        notifications.Notification(
            kind=kind,
            data={
                "order_id": order.id,
                "supplier_id": order.supplier_id,
                "supplier_name": order.supplier.name if order.supplier else None,
                "status": order.status,
                "item_count": len(order.items),
                "total_amount": order.total_amount,
                **data,
            },
        ),
        notifier,
    )


def create_stock_order(
    db: Session,
    supplier_id: int,
    items: list[dict[str, Any]],
    meta: dict[str, Any] | None = None,
    actor_id: str | None = None,
    *,
    notifier: notifications.Notifier | None = None,
) -> StockOrder:
    try:
        order = build_stock_order(db, supplier_id, items, meta, actor_id)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(order)
    logger.info(
        "stock_order.created",
        extra={"extra_data": {"order_id": order.id, "supplier_id": order.supplier_id, "total_amount": order.total_amount}},
    )
    _notify_order(notifications.KIND_ORDER_CREATED, order, notifier)
    return order


def get_stock_order(db: Session, order_id: int) -> StockOrder:
    order = db.get(StockOrder, order_id)
    if not order:
        raise NotFoundError("StockOrder", order_id)
    return order


def list_stock_orders(
    db: Session,
    *,
    status: str | None = None,
    supplier_id: int | None = None,
    limit: int = 100,
    offset: int = 0,
) -> list[StockOrder]:
    stmt = select(StockOrder).order_by(desc(StockOrder.order_date), desc(StockOrder.id))
    if status:
        if status not in ORDER_STATUS_CHOICES:
            raise InvalidInputError("Invalid status filter", details={"field": "status", "value": status})
        stmt = stmt.where(StockOrder.status == status)
    if supplier_id is not None:
        stmt = stmt.where(StockOrder.supplier_id == supplier_id)
    return db.execute(stmt.limit(limit).offset(offset)).unique().scalars().all()


def _receive_items(db: Session, order: StockOrder, actor_id: str) -> None:
    for item in order.items:
        apply_mutation(
            db,
            item.equipment_id,
            reason=f"Stock order #{order.id} delivered",
            actor_id=actor_id,
            quantity_delta=item.quantity,
            reference=order_reference(order.id),
            action=ACTION_STOCK_IN,
        )


def advance_order_status(
    db: Session,
    order_id: int,
    new_status: str,
    actor_id: str,
    *,
    tracking: dict[str, Any] | None = None,
    delivery_date: str | None = None,
    notes: str | None = None,
    notifier: notifications.Notifier | None = None,
) -> StockOrder:
    """Move an order forward; delivery also stocks in every line in the same transaction."""

    if new_status not in ORDER_STATUS_CHOICES:
        raise InvalidInputError("Invalid order status", details={"field": "status", "value": new_status})
    order = get_stock_order(db, order_id)
    previous = order.status
    if not can_advance(previous, new_status):
        raise InvalidTransitionError("StockOrder", previous, new_status)

    try:
        stamped_delivery = normalize_iso(delivery_date) if delivery_date else None
    except ValueError as exc:
        raise InvalidInputError("delivery_date must be an ISO-8601 timestamp") from exc

    try:
        order.status = new_status
        for key, value in (tracking or {}).items():
            if key in ("tracking_number", "carrier", "tracking_url") and value is not None:
                setattr(order, key, value)
        if notes:
            order.notes = f"{order.notes}\n{notes}" if order.notes else notes
        if new_status == ORDER_DELIVERED:
            order.delivery_date = stamped_delivery or utcnow_iso()
            _receive_items(db, order, actor_id)
        order.updated_at = utcnow_iso()
        db.commit()
    except StaleDataError as exc:
        db.rollback()
        raise ConflictError(
            "Equipment on this order changed concurrently; retry the delivery",
            details={"order_id": order_id},
        ) from exc
    except Exception:
        db.rollback()
        raise
    db.refresh(order)
    logger.info(
        "stock_order.status_changed",
        extra={"extra_data": {"order_id": order.id, "from": previous, "to": new_status, "performed_by": actor_id}},
    )
    if new_status == ORDER_CANCELLED:
        _notify_order(notifications.KIND_ORDER_CANCELLED, order, notifier)
    else:
        _notify_order(notifications.KIND_ORDER_UPDATED, order, notifier, previous_status=previous)
    if new_status == ORDER_DELIVERED:
        _notify_order(notifications.KIND_INVENTORY_UPDATED, order, notifier)
    return order


def cancel_stock_order(
    db: Session,
    order_id: int,
    reason: str | None,
    actor_id: str,
    *,
    notifier: notifications.Notifier | None = None,
) -> StockOrder:
    note = f"Cancelled: {reason.strip()}" if reason and reason.strip() else None
    return advance_order_status(db, order_id, ORDER_CANCELLED, actor_id, notes=note, notifier=notifier)


def update_order_meta(db: Session, order_id: int, payload: dict[str, Any]) -> StockOrder:
    """Edit tracking and note fields. Status and line items are not touched here."""

    order = get_stock_order(db, order_id)
    for key, value in payload.items():
        if key not in _META_FIELDS:
            continue
        if key == "expected_delivery_date":
            try:
                value = normalize_iso(value)
            except ValueError as exc:
                raise InvalidInputError("expected_delivery_date must be an ISO-8601 timestamp") from exc
        setattr(order, key, value)
    order.updated_at = utcnow_iso()
    db.commit()
    db.refresh(order)
    return order
