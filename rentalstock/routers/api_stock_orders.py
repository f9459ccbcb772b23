from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..db.session import get_db
from ..deps.auth import Actor, require_admin
from ..schemas.stock_order import (
    OrderCancel,
    OrderStatusUpdate,
    StockOrderCreate,
    StockOrderMetaUpdate,
    StockOrderOut,
)
from ..services import stock_orders

router = APIRouter(prefix="/api/v1/stock-orders", tags=["stock-orders"], dependencies=[Depends(require_admin)])


@router.get("", response_model=list[StockOrderOut])
def api_list(
    status: Optional[str] = None,
    supplier_id: Optional[int] = None,
    limit: int = 100,
    offset: int = 0,
    db: Session = Depends(get_db),
):
    return stock_orders.list_stock_orders(db, status=status, supplier_id=supplier_id, limit=limit, offset=offset)


@router.get("/{order_id}", response_model=StockOrderOut)
def api_get(order_id: int, db: Session = Depends(get_db)):
    return stock_orders.get_stock_order(db, order_id)


@router.post("", response_model=StockOrderOut, status_code=201)
def api_create(payload: StockOrderCreate, actor: Actor = Depends(require_admin), db: Session = Depends(get_db)):
    data = payload.model_dump()
    items = data.pop("items")
    supplier_id = data.pop("supplier_id")
    return stock_orders.create_stock_order(db, supplier_id, items, data, actor.subject)


@router.patch("/{order_id}", response_model=StockOrderOut)
def api_update_meta(order_id: int, payload: StockOrderMetaUpdate, db: Session = Depends(get_db)):
    return stock_orders.update_order_meta(db, order_id, payload.model_dump(exclude_none=True))


@router.post("/{order_id}/status", response_model=StockOrderOut)
def api_advance(
    order_id: int,
    payload: OrderStatusUpdate,
    actor: Actor = Depends(require_admin),
    db: Session = Depends(get_db),
):
    tracking = payload.model_dump(include={"tracking_number", "carrier", "tracking_url"}, exclude_none=True)
    return stock_orders.advance_order_status(
        db,
        order_id,
        payload.status,
        actor.subject,
        tracking=tracking,
        delivery_date=payload.delivery_date,
        notes=payload.notes,
    )


@router.post("/{order_id}/cancel", response_model=StockOrderOut)
def api_cancel(
    order_id: int,
    payload: OrderCancel,
    actor: Actor = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return stock_orders.cancel_stock_order(db, order_id, payload.reason, actor.subject)
