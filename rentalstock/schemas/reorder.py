from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ReorderPolicyIn(BaseModel):
    threshold: Optional[int] = Field(default=None, ge=1)
    reorder_quantity: Optional[int] = Field(default=None, ge=1)
    auto_reorder: Optional[bool] = None
    preferred_supplier_id: Optional[int] = None


class ReorderPolicyOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    equipment_id: int
    threshold: int
    reorder_quantity: int
    auto_reorder: bool
    preferred_supplier_id: Optional[int] = None
    updated_by: Optional[str] = None
    last_updated: str


class StockAlertOut(BaseModel):
    equipment_id: int
    name: str
    quantity: int
    threshold: int
    level: str
    status: str
    auto_reorder: bool
    preferred_supplier_id: Optional[int] = None
    reorder_quantity: int


class AutoOrderOut(BaseModel):
    order_id: int
    supplier_id: int
    supplier_name: str
    items: list[dict]
    total_amount: float


class StockCheckOut(BaseModel):
    out_of_stock: list[StockAlertOut]
    low_stock: list[StockAlertOut]
    auto_orders: list[AutoOrderOut]
