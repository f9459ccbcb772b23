from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from ..core.statuses import CATEGORY_CHOICES, CONDITION_CHOICES, EQUIPMENT_STATUS_CHOICES

CATEGORY_PATTERN = f"^({'|'.join(CATEGORY_CHOICES)})$"
CONDITION_PATTERN = f"^({'|'.join(CONDITION_CHOICES)})$"
STATUS_PATTERN = f"^({'|'.join(EQUIPMENT_STATUS_CHOICES)})$"


class EquipmentBase(BaseModel):
    name: str = Field(min_length=1)
    description: str = ""
    category: str = Field(pattern=CATEGORY_PATTERN)
    price: float = Field(default=0.0, ge=0)
    maintenance_frequency_days: int = Field(default=90, ge=1)
    serial_number: Optional[str] = None
    barcode: Optional[str] = None
    location: Optional[str] = None
    purchase_date: Optional[str] = None
    purchase_price: Optional[float] = Field(default=None, ge=0)


class EquipmentCreate(EquipmentBase):
    quantity: int = Field(default=0, ge=0)
    status: str = Field(default="available", pattern=STATUS_PATTERN)
    condition: str = Field(default="good", pattern=CONDITION_PATTERN)
    next_maintenance_scheduled: Optional[str] = None
    notes: Optional[str] = None


class EquipmentUpdate(BaseModel):
    """Descriptive fields only; quantity and status go through inventory mutations."""

    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = Field(default=None, pattern=CATEGORY_PATTERN)
    price: Optional[float] = Field(default=None, ge=0)
    maintenance_frequency_days: Optional[int] = Field(default=None, ge=1)
    serial_number: Optional[str] = None
    barcode: Optional[str] = None
    purchase_date: Optional[str] = None
    purchase_price: Optional[float] = Field(default=None, ge=0)


class EquipmentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: str
    category: str
    price: float
    quantity: int
    is_available: bool
    status: str
    condition: str
    last_maintenance: Optional[str] = None
    next_maintenance_scheduled: Optional[str] = None
    maintenance_frequency_days: int
    serial_number: Optional[str] = None
    barcode: Optional[str] = None
    location: Optional[str] = None
    purchase_date: Optional[str] = None
    purchase_price: Optional[float] = None
    created_at: str
    updated_at: str
    version: int
