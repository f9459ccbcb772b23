from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from ..core.statuses import (
    DAMAGE_STATUS_CHOICES,
    DAMAGE_TYPE_CHOICES,
    MAINTENANCE_STATUS_CHOICES,
    MAINTENANCE_TYPE_CHOICES,
    PRIORITY_CHOICES,
    SEVERITY_CHOICES,
)


def _pattern(choices: tuple[str, ...]) -> str:
    return f"^({'|'.join(choices)})$"


class MaintenanceCreate(BaseModel):
    equipment_id: int
    maintenance_type: str = Field(pattern=_pattern(MAINTENANCE_TYPE_CHOICES))
    priority: str = Field(default="medium", pattern=_pattern(PRIORITY_CHOICES))
    description: str = Field(min_length=1)
    scheduled_date: str
    estimated_cost: Optional[float] = Field(default=None, ge=0)
    performed_by: Optional[str] = None
    vendor_id: Optional[int] = None
    notes: Optional[str] = None


class MaintenanceUpdate(BaseModel):
    status: Optional[str] = Field(default=None, pattern=_pattern(MAINTENANCE_STATUS_CHOICES))
    priority: Optional[str] = Field(default=None, pattern=_pattern(PRIORITY_CHOICES))
    description: Optional[str] = None
    start_date: Optional[str] = None
    completion_date: Optional[str] = None
    estimated_cost: Optional[float] = Field(default=None, ge=0)
    actual_cost: Optional[float] = Field(default=None, ge=0)
    performed_by: Optional[str] = None
    vendor_id: Optional[int] = None
    notes: Optional[str] = None


class MaintenanceOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    equipment_id: int
    equipment_name: Optional[str] = None
    maintenance_type: str
    status: str
    priority: str
    description: str
    scheduled_date: str
    start_date: Optional[str] = None
    completion_date: Optional[str] = None
    estimated_cost: Optional[float] = None
    actual_cost: Optional[float] = None
    performed_by: Optional[str] = None
    vendor_id: Optional[int] = None
    notes: Optional[str] = None
    created_by: Optional[str] = None
    updated_by: Optional[str] = None
    created_at: str
    updated_at: str


class MaintenancePage(BaseModel):
    items: list[MaintenanceOut]
    total: int
    page: int
    pages: int
    limit: int


class DamageCreate(BaseModel):
    equipment_id: int
    damage_type: str = Field(pattern=_pattern(DAMAGE_TYPE_CHOICES))
    severity: str = Field(pattern=_pattern(SEVERITY_CHOICES))
    description: str = Field(min_length=1)
    location: Optional[str] = None
    estimated_repair_cost: Optional[float] = Field(default=None, ge=0)


class DamageUpdate(BaseModel):
    status: Optional[str] = Field(default=None, pattern=_pattern(DAMAGE_STATUS_CHOICES))
    resolution_notes: Optional[str] = None
    estimated_repair_cost: Optional[float] = Field(default=None, ge=0)
    actual_repair_cost: Optional[float] = Field(default=None, ge=0)
    maintenance_record_id: Optional[int] = None


class DamageOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    equipment_id: int
    equipment_name: Optional[str] = None
    damage_type: str
    severity: str
    description: str
    location: Optional[str] = None
    reported_by: Optional[str] = None
    status: str
    maintenance_record_id: Optional[int] = None
    estimated_repair_cost: Optional[float] = None
    actual_repair_cost: Optional[float] = None
    resolution_notes: Optional[str] = None
    created_at: str
    updated_at: str


class DamagePage(BaseModel):
    items: list[DamageOut]
    total: int
    page: int
    pages: int
    limit: int
