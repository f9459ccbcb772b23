from __future__ import annotations

from sqlalchemy import Column, ForeignKey, Integer, Text
from sqlalchemy.orm import relationship

from ..db.immutability import register_immutability_listeners
from ..db.session import Base


class AuditLedgerEntry(Base):
    """One write-once record of a coordinated change to one equipment item.

    ``quantity_change`` is the stated net effect and always equals
    ``quantity_after - quantity_before``. ``status_before`` is empty only for
    the opening entry written at intake.
    """

    __tablename__ = "audit_ledger"

    id = Column(Integer, primary_key=True, index=True)
    equipment_id = Column(Integer, ForeignKey("equipment.id"), nullable=False, index=True)
    action = Column(Text, nullable=False, index=True)
    quantity_before = Column(Integer, nullable=False)
    quantity_after = Column(Integer, nullable=False)
    quantity_change = Column(Integer, nullable=False)
    status_before = Column(Text, nullable=True)
    status_after = Column(Text, nullable=True)
    reason = Column(Text, nullable=False)
    reference = Column(Text, nullable=True)
    performed_by = Column(Text, nullable=False)
    notes = Column(Text, nullable=True)
    created_at = Column(Text, nullable=False, index=True)

    equipment = relationship("Equipment", lazy="joined")

    @property
    def equipment_name(self) -> str | None:
        return self.equipment.name if self.equipment else None


register_immutability_listeners()
