# rentalstock/crud/suppliers.py
from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..core.exceptions import InvalidInputError, NotFoundError
from ..core.timeutil import utcnow_iso
from ..models.supplier import Supplier

_EDITABLE = ("name", "email", "phone", "address", "contact_person", "notes", "active")


@dataclass(frozen=True)
class SupplierRef:
    """Read-only view handed to orders and policies."""

    id: int
    name: str
    email: str
    active: bool


def _clean(data: dict) -> dict:
    cleaned = {}
    for key, value in data.items():
        if key not in _EDITABLE:
            continue
        if isinstance(value, str):
            value = value.strip()
            if key not in ("name", "email") and value == "":
                value = None
        cleaned[key] = value
    return cleaned


def list_suppliers(db: Session, *, active: bool | None = None) -> list[Supplier]:
    stmt = select(Supplier).order_by(Supplier.name, Supplier.id)
    if active is not None:
        stmt = stmt.where(Supplier.active == active)
    return db.execute(stmt).scalars().all()


def get_supplier(db: Session, supplier_id: int) -> Supplier:
    supplier = db.get(Supplier, supplier_id)
    if not supplier:
        raise NotFoundError("Supplier", supplier_id)
    return supplier


def lookup_supplier(db: Session, supplier_id: int) -> SupplierRef:
    """Resolve a supplier id to ``{id, name, email, active}``; raises NotFoundError."""

    supplier = get_supplier(db, supplier_id)
    return SupplierRef(id=supplier.id, name=supplier.name, email=supplier.email, active=bool(supplier.active))


def create_supplier(db: Session, payload: dict) -> Supplier:
    data = _clean(payload)
    if not data.get("name"):
        raise InvalidInputError("Supplier name is required")
    if not data.get("email"):
        raise InvalidInputError("Supplier email is required")
    now = utcnow_iso()
    data.setdefault("active", True)
    obj = Supplier(**data, created_at=now, updated_at=now)
    db.add(obj)
    db.commit()
    db.refresh(obj)
    return obj


def update_supplier(db: Session, supplier_id: int, payload: dict) -> Supplier:
    supplier = get_supplier(db, supplier_id)
    data = _clean(payload)
    for key in ("name", "email"):
        if key in data and not data[key]:
            raise InvalidInputError(f"Supplier {key} cannot be empty")
    for key, value in data.items():
        setattr(supplier, key, value)
    supplier.updated_at = utcnow_iso()
    db.commit()
    db.refresh(supplier)
    return supplier


def deactivate_supplier(db: Session, supplier_id: int) -> Supplier:
    """Suppliers stay referenced by historic orders, so removal only clears ``active``."""

    supplier = get_supplier(db, supplier_id)
    supplier.active = False
    supplier.updated_at = utcnow_iso()
    db.commit()
    db.refresh(supplier)
    return supplier
