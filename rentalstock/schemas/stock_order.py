from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from ..core.statuses import ORDER_STATUS_CHOICES

ORDER_STATUS_PATTERN = f"^({'|'.join(ORDER_STATUS_CHOICES)})$"


class OrderItemIn(BaseModel):
    equipment_id: int
    quantity: int = Field(ge=1)
    unit_price: Optional[float] = Field(default=None, ge=0)
    notes: Optional[str] = None


class StockOrderCreate(BaseModel):
    # Any ``total_amount`` a client sends is ignored; the server derives it.
    model_config = ConfigDict(extra="ignore")

    supplier_id: int
    items: list[OrderItemIn] = Field(min_length=1)
    expected_delivery_date: Optional[str] = None
    notes: Optional[str] = None
    tracking_number: Optional[str] = None
    carrier: Optional[str] = None
    tracking_url: Optional[str] = None


class OrderStatusUpdate(BaseModel):
    status: str = Field(pattern=ORDER_STATUS_PATTERN)
    delivery_date: Optional[str] = None
    tracking_number: Optional[str] = None
    carrier: Optional[str] = None
    tracking_url: Optional[str] = None
    notes: Optional[str] = None


class OrderCancel(BaseModel):
    reason: Optional[str] = None


class StockOrderMetaUpdate(BaseModel):
    expected_delivery_date: Optional[str] = None
    notes: Optional[str] = None
    tracking_number: Optional[str] = None
    carrier: Optional[str] = None
    tracking_url: Optional[str] = None


class StockOrderItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    equipment_id: int
    equipment_name: Optional[str] = None
    quantity: int
    unit_price: Optional[float] = None
    subtotal: float
    notes: Optional[str] = None


class StockOrderOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    supplier_id: int
    total_amount: float
    status: str
    order_date: str
    expected_delivery_date: Optional[str] = None
    delivery_date: Optional[str] = None
    is_auto_order: bool
    tracking_number: Optional[str] = None
    carrier: Optional[str] = None
    tracking_url: Optional[str] = None
    notes: Optional[str] = None
    created_by: Optional[str] = None
    updated_at: str
    items: list[StockOrderItemOut]
