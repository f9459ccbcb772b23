from __future__ import annotations

from sqlalchemy import Column, Float, ForeignKey, Integer, Text
from sqlalchemy.orm import relationship

from ..core.statuses import DAMAGE_REPORTED, MAINTENANCE_SCHEDULED
from ..db.session import Base


class MaintenanceRecord(Base):
    __tablename__ = "maintenance_records"

    id = Column(Integer, primary_key=True, index=True)
    equipment_id = Column(Integer, ForeignKey("equipment.id"), nullable=False, index=True)
    maintenance_type = Column(Text, nullable=False)
    status = Column(Text, nullable=False, default=MAINTENANCE_SCHEDULED, index=True)
    priority = Column(Text, nullable=False, default="medium")
    description = Column(Text, nullable=False)
    scheduled_date = Column(Text, nullable=False)
    start_date = Column(Text, nullable=True)
    completion_date = Column(Text, nullable=True)
    estimated_cost = Column(Float, nullable=True)
    actual_cost = Column(Float, nullable=True)
    performed_by = Column(Text, nullable=True)
    vendor_id = Column(Integer, ForeignKey("suppliers.id"), nullable=True)
    notes = Column(Text, nullable=True)
    created_by = Column(Text, nullable=True)
    updated_by = Column(Text, nullable=True)
    created_at = Column(Text, nullable=False)
    updated_at = Column(Text, nullable=False)

    equipment = relationship("Equipment", lazy="joined")

    @property
    def equipment_name(self) -> str | None:
        return self.equipment.name if self.equipment else None


class DamageReport(Base):
    __tablename__ = "damage_reports"

    id = Column(Integer, primary_key=True, index=True)
    equipment_id = Column(Integer, ForeignKey("equipment.id"), nullable=False, index=True)
    damage_type = Column(Text, nullable=False)
    severity = Column(Text, nullable=False)
    description = Column(Text, nullable=False)
    location = Column(Text, nullable=True)
    reported_by = Column(Text, nullable=True)
    status = Column(Text, nullable=False, default=DAMAGE_REPORTED, index=True)
    maintenance_record_id = Column(Integer, ForeignKey("maintenance_records.id"), nullable=True)
    estimated_repair_cost = Column(Float, nullable=True)
    actual_repair_cost = Column(Float, nullable=True)
    resolution_notes = Column(Text, nullable=True)
    created_at = Column(Text, nullable=False)
    updated_at = Column(Text, nullable=False)

    equipment = relationship("Equipment", lazy="joined")

    @property
    def equipment_name(self) -> str | None:
        return self.equipment.name if self.equipment else None
