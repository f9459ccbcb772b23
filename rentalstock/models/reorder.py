from __future__ import annotations

from sqlalchemy import Boolean, Column, ForeignKey, Integer, Text
from sqlalchemy.orm import relationship

from ..db.session import Base


class ReorderPolicy(Base):
    __tablename__ = "reorder_policies"

    id = Column(Integer, primary_key=True, index=True)
    equipment_id = Column(Integer, ForeignKey("equipment.id"), nullable=False, unique=True, index=True)
    threshold = Column(Integer, nullable=False, default=5)
    reorder_quantity = Column(Integer, nullable=False, default=10)
    auto_reorder = Column(Boolean, nullable=False, default=False)
    preferred_supplier_id = Column(Integer, ForeignKey("suppliers.id"), nullable=True)
    updated_by = Column(Text, nullable=True)
    last_updated = Column(Text, nullable=False)

    equipment = relationship("Equipment", lazy="joined")
    preferred_supplier = relationship("Supplier", lazy="joined")
