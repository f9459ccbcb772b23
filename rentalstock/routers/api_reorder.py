from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..crud import reorder as crud
from ..db.session import get_db
from ..deps.auth import Actor, require_admin
from ..schemas.reorder import ReorderPolicyIn, ReorderPolicyOut

router = APIRouter(prefix="/api/v1/reorder-policies", tags=["reorder"], dependencies=[Depends(require_admin)])


@router.get("", response_model=list[ReorderPolicyOut])
def api_list(db: Session = Depends(get_db)):
    return crud.list_policies(db)


@router.get("/{equipment_id}", response_model=ReorderPolicyOut)
def api_get(equipment_id: int, db: Session = Depends(get_db)):
    return crud.get_policy(db, equipment_id)


@router.put("/{equipment_id}", response_model=ReorderPolicyOut)
def api_upsert(
    equipment_id: int,
    payload: ReorderPolicyIn,
    actor: Actor = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return crud.upsert_policy(db, equipment_id, payload.model_dump(exclude_unset=True), actor.subject)


@router.delete("/{equipment_id}")
def api_delete(equipment_id: int, db: Session = Depends(get_db)):
    removed = crud.delete_policy(db, equipment_id)
    return {"status": "deleted" if removed else "default"}
