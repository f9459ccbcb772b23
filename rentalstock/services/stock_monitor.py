"""Periodic stock level check and automatic reordering."""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import asdict, dataclass
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import InventoryError
from ..core.statuses import ORDER_OPEN_STATUSES, STATUS_LOST, STATUS_RETIRED
from ..crud.reorder import LOW_STOCK, OUT_OF_STOCK, classify, policy_map
from ..models.equipment import Equipment
from ..models.stock_order import StockOrder, StockOrderItem
from ..models.supplier import Supplier
from . import notifications
from .stock_orders import build_stock_order

logger = logging.getLogger(__name__)

__all__ = ["StockAlert", "classify", "run_stock_check"]

AUTO_ORDER_ACTOR = "system:stock-monitor"
# Still reported on, never reordered.
OUT_OF_SERVICE = (STATUS_RETIRED, STATUS_LOST)


@dataclass(frozen=True)
class StockAlert:
    equipment_id: int
    name: str
    quantity: int
    threshold: int
    level: str
    status: str
    auto_reorder: bool
    preferred_supplier_id: int | None
    reorder_quantity: int


def _collect_alerts(db: Session) -> list[StockAlert]:
    policies = policy_map(db)
    alerts: list[StockAlert] = []
    for equipment in db.execute(select(Equipment).order_by(Equipment.id)).scalars():
        policy = policies.get(equipment.id)
        threshold = policy.threshold if policy else settings.DEFAULT_REORDER_THRESHOLD
        level = classify(equipment.quantity, threshold)
        if level is None:
            continue
        alerts.append(
            StockAlert(
                equipment_id=equipment.id,
                name=equipment.name,
                quantity=equipment.quantity,
                threshold=threshold,
                level=level,
                status=equipment.status,
                auto_reorder=bool(policy.auto_reorder) if policy else False,
                preferred_supplier_id=policy.preferred_supplier_id if policy else None,
                reorder_quantity=policy.reorder_quantity if policy else settings.DEFAULT_REORDER_QUANTITY,
            )
        )
    return alerts


def _equipment_on_open_orders(db: Session) -> set[int]:
    stmt = (
        select(StockOrderItem.equipment_id)
        .join(StockOrder, StockOrder.id == StockOrderItem.order_id)
        .where(StockOrder.status.in_(ORDER_OPEN_STATUSES))
    )
    return set(db.execute(stmt).scalars().all())


def _place_auto_orders(
    db: Session,
    alerts: list[StockAlert],
    notifier: notifications.Notifier | None,
) -> list[dict[str, Any]]:
    candidates = [alert for alert in alerts if alert.auto_reorder and alert.preferred_supplier_id is not None]
    if not candidates:
        return []

    pending = _equipment_on_open_orders(db)
    by_supplier: dict[int, list[StockAlert]] = defaultdict(list)
    for alert in candidates:
        if alert.status in OUT_OF_SERVICE:
            reason = "out_of_service"
        elif alert.equipment_id in pending:
            reason = "open_order"
        else:
            reason = None
        if reason:
            logger.info(
                "stock_check.reorder_skipped",
                extra={"extra_data": {"equipment_id": alert.equipment_id, "reason": reason}},
            )
            continue
        by_supplier[alert.preferred_supplier_id].append(alert)

    placed: list[dict[str, Any]] = []
    for supplier_id, group in sorted(by_supplier.items()):
        supplier = db.get(Supplier, supplier_id)
        if supplier is None or not supplier.active:
            logger.warning(
                "stock_check.supplier_unavailable",
                extra={"extra_data": {"supplier_id": supplier_id, "equipment_ids": [a.equipment_id for a in group]}},
            )
            continue
        items = [{"equipment_id": alert.equipment_id, "quantity": alert.reorder_quantity} for alert in group]
        try:
            order = build_stock_order(
                db,
                supplier_id,
                items,
                {"notes": "Automatically generated by the stock monitor"},
                AUTO_ORDER_ACTOR,
                is_auto_order=True,
            )
            db.commit()
        except InventoryError as exc:
            db.rollback()
            logger.warning(
                "stock_check.auto_order_failed",
                extra={"extra_data": {"supplier_id": supplier_id, "error": exc.message}},
            )
            continue
        summary = {
            "order_id": order.id,
            "supplier_id": supplier_id,
            "supplier_name": supplier.name,
            "items": items,
            "total_amount": order.total_amount,
        }
        placed.append(summary)
        logger.info("stock_check.auto_order_created", extra={"extra_data": summary})
        notifications.dispatch(
            notifications.Notification(kind=notifications.KIND_AUTO_REORDER, data=summary),
            notifier,
        )
    return placed


def run_stock_check(db: Session, notifier: notifications.Notifier | None = None) -> dict[str, Any]:
    """Classify every item, alert on the non-nominal ones and open auto orders.

    Returns ``{out_of_stock, low_stock, auto_orders}``.
    """

    alerts = _collect_alerts(db)
    for alert in alerts:
        notifications.dispatch(
            notifications.Notification(
                kind=alert.level,
                equipment_id=alert.equipment_id,
                name=alert.name,
                quantity=alert.quantity,
                threshold=alert.threshold,
            ),
            notifier,
        )
    auto_orders = _place_auto_orders(db, alerts, notifier)

    out_of_stock = [asdict(alert) for alert in alerts if alert.level == OUT_OF_STOCK]
    low_stock = [asdict(alert) for alert in alerts if alert.level == LOW_STOCK]
    logger.info(
        "stock_check.completed",
        extra={
            "extra_data": {
                "out_of_stock": len(out_of_stock),
                "low_stock": len(low_stock),
                "auto_orders": len(auto_orders),
            }
        },
    )
    return {"out_of_stock": out_of_stock, "low_stock": low_stock, "auto_orders": auto_orders}
