"""Rentable equipment records.

Quantity and status are owned by the mutation coordinator
(``services/coordinator.py``); every other column is plain metadata.
"""

from __future__ import annotations

from sqlalchemy import Boolean, Column, Float, Integer, Text

from ..core.statuses import CONDITION_GOOD, STATUS_AVAILABLE
from ..db.session import Base


class Equipment(Base):
    __tablename__ = "equipment"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(Text, nullable=False)
    description = Column(Text, nullable=False, default="")
    category = Column(Text, nullable=False, index=True)
    price = Column(Float, nullable=False, default=0.0)
    quantity = Column(Integer, nullable=False, default=0)
    is_available = Column(Boolean, nullable=False, default=True)
    status = Column(Text, nullable=False, default=STATUS_AVAILABLE, index=True)
    condition = Column(Text, nullable=False, default=CONDITION_GOOD)
    last_maintenance = Column(Text, nullable=True)
    next_maintenance_scheduled = Column(Text, nullable=True)
    maintenance_frequency_days = Column(Integer, nullable=False, default=90)
    serial_number = Column(Text, nullable=True)
    barcode = Column(Text, nullable=True, index=True)
    location = Column(Text, nullable=True)
    purchase_date = Column(Text, nullable=True)
    purchase_price = Column(Float, nullable=True)
    created_at = Column(Text, nullable=False)
    updated_at = Column(Text, nullable=False)
    # Bumped on every UPDATE; a stale writer gets StaleDataError at flush.
    version = Column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    def snapshot(self) -> dict:
        return {
            "quantity": self.quantity,
            "status": self.status,
            "condition": self.condition,
            "is_available": self.is_available,
            "location": self.location,
        }
