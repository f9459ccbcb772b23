# rentalstock/routers/api_equipment.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..crud import equipment as crud
from ..db.session import get_db
from ..deps.auth import Actor, get_actor, require_admin
from ..schemas.equipment import EquipmentCreate, EquipmentOut, EquipmentUpdate
from ..services.coordinator import create_equipment

router = APIRouter(prefix="/api/v1/equipment", tags=["equipment"], dependencies=[Depends(get_actor)])


@router.get("", response_model=list[EquipmentOut])
def api_list(
    category: Optional[str] = None,
    status: Optional[str] = None,
    condition: Optional[str] = None,
    search: Optional[str] = None,
    limit: int = 100,
    offset: int = 0,
    db: Session = Depends(get_db),
):
    return crud.list_equipment(
        db,
        category=category,
        status=status,
        condition=condition,
        search=search,
        limit=limit,
        offset=offset,
    )


@router.get("/{equipment_id}", response_model=EquipmentOut)
def api_get(equipment_id: int, db: Session = Depends(get_db)):
    return crud.get_equipment(db, equipment_id)


@router.post("", response_model=EquipmentOut, status_code=201)
def api_create(payload: EquipmentCreate, actor: Actor = Depends(require_admin), db: Session = Depends(get_db)):
    return create_equipment(db, payload.model_dump(), actor.subject)


@router.patch("/{equipment_id}", response_model=EquipmentOut)
def api_update(
    equipment_id: int,
    payload: EquipmentUpdate,
    actor: Actor = Depends(require_admin),
    db: Session = Depends(get_db),
):
    data = payload.model_dump(exclude_none=True)
    if not data:
        return crud.get_equipment(db, equipment_id)
    return crud.update_equipment(db, equipment_id, data)


@router.delete("/{equipment_id}", response_model=EquipmentOut)
def api_retire(
    equipment_id: int,
    reason: Optional[str] = None,
    actor: Actor = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return crud.retire_equipment(db, equipment_id, actor.subject, reason)
