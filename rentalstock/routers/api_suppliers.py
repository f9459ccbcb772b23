from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..crud import suppliers as crud
from ..db.session import get_db
from ..deps.auth import get_actor, require_admin
from ..schemas.supplier import SupplierCreate, SupplierOut, SupplierUpdate

router = APIRouter(prefix="/api/v1/suppliers", tags=["suppliers"], dependencies=[Depends(get_actor)])


@router.get("", response_model=list[SupplierOut])
def api_list(active: Optional[bool] = None, db: Session = Depends(get_db)):
    return crud.list_suppliers(db, active=active)


@router.get("/{supplier_id}", response_model=SupplierOut)
def api_get(supplier_id: int, db: Session = Depends(get_db)):
    return crud.get_supplier(db, supplier_id)


@router.post("", response_model=SupplierOut, status_code=201, dependencies=[Depends(require_admin)])
def api_create(payload: SupplierCreate, db: Session = Depends(get_db)):
    return crud.create_supplier(db, payload.model_dump(exclude_none=True))


@router.patch("/{supplier_id}", response_model=SupplierOut, dependencies=[Depends(require_admin)])
def api_update(supplier_id: int, payload: SupplierUpdate, db: Session = Depends(get_db)):
    return crud.update_supplier(db, supplier_id, payload.model_dump(exclude_none=True))


@router.delete("/{supplier_id}", response_model=SupplierOut, dependencies=[Depends(require_admin)])
def api_deactivate(supplier_id: int, db: Session = Depends(get_db)):
    return crud.deactivate_supplier(db, supplier_id)
