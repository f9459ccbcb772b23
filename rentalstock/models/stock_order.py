"""Supplier purchase orders and their line items."""

from __future__ import annotations

from sqlalchemy import Boolean, Column, Float, ForeignKey, Integer, Text, event
from sqlalchemy.orm import Session, relationship

from ..core.statuses import ORDER_PENDING
from ..db.session import Base


class StockOrder(Base):
    __tablename__ = "stock_orders"

    id = Column(Integer, primary_key=True, index=True)
    supplier_id = Column(Integer, ForeignKey("suppliers.id"), nullable=False, index=True)
    # Derived from the line items on every flush; never written by callers.
    total_amount = Column(Float, nullable=False, default=0.0)
    status = Column(Text, nullable=False, default=ORDER_PENDING, index=True)
    order_date = Column(Text, nullable=False)
    expected_delivery_date = Column(Text, nullable=True)
    delivery_date = Column(Text, nullable=True)
    is_auto_order = Column(Boolean, nullable=False, default=False)
    tracking_number = Column(Text, nullable=True)
    carrier = Column(Text, nullable=True)
    tracking_url = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    created_by = Column(Text, nullable=True)
    updated_at = Column(Text, nullable=False)

    supplier = relationship("Supplier", lazy="joined")
    items = relationship(
        "StockOrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="StockOrderItem.id",
        lazy="selectin",
    )

    def compute_total(self) -> float:
        return round(sum((item.unit_price or 0.0) * item.quantity for item in self.items), 2)


class StockOrderItem(Base):
    __tablename__ = "stock_order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("stock_orders.id"), nullable=False, index=True)
    equipment_id = Column(Integer, ForeignKey("equipment.id"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Float, nullable=True)
    notes = Column(Text, nullable=True)

    order = relationship("StockOrder", back_populates="items")
    equipment = relationship("Equipment", lazy="joined")

    @property
    def equipment_name(self) -> str | None:
        return self.equipment.name if self.equipment else None

    @property
    def subtotal(self) -> float:
        return round((self.unit_price or 0.0) * self.quantity, 2)


@event.listens_for(Session, "before_flush")
def _recompute_order_totals(session, flush_context, instances):
    orders = set()
    for obj in list(session.new) + list(session.dirty) + list(session.deleted):
        if isinstance(obj, StockOrder):
            orders.add(obj)
        elif isinstance(obj, StockOrderItem) and obj.order is not None:
            orders.add(obj.order)
    for order in orders:
        if order in session.deleted:
            continue
        total = order.compute_total()
        if order.total_amount != total:
            order.total_amount = total
