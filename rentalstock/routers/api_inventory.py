from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from ..crud import audit as audit_crud
from ..crud.equipment import get_equipment
from ..db.session import get_db
from ..deps.auth import Actor, get_actor, require_admin
from ..schemas.audit import (
    AuditPage,
    BatchRequest,
    BatchResult,
    LedgerEntryOut,
    LedgerVerification,
    MutationOut,
    MutationRequest,
    ReplayOut,
)
from ..services import coordinator, reporting

router = APIRouter(prefix="/api/v1/inventory", tags=["inventory"], dependencies=[Depends(get_actor)])


@router.post("/{equipment_id}/mutations", response_model=MutationOut, summary="Apply one coordinated change")
def api_mutate(
    equipment_id: int,
    payload: MutationRequest,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
):
    if payload.new_status in coordinator.ADMINISTRATIVE_STATUSES and not actor.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin role required")
    changes = payload.changes.model_dump(exclude_none=True) if payload.changes else None
    result = coordinator.mutate(
        db,
        equipment_id,
        reason=payload.reason,
        actor_id=actor.subject,
        quantity_delta=payload.quantity_change,
        new_status=payload.new_status,
        changes=changes,
        reference=payload.reference,
        notes=payload.notes,
        action=payload.action,
    )
    return MutationOut(
        equipment_id=result.equipment.id,
        before=result.before,
        after=result.after,
        entry=LedgerEntryOut.model_validate(result.entry),
    )


@router.post("/batch", response_model=BatchResult, summary="Apply many changes; failures are per item")
def api_batch(payload: BatchRequest, actor: Actor = Depends(require_admin), db: Session = Depends(get_db)):
    updates = [item.model_dump(exclude_none=True) for item in payload.updates]
    return coordinator.batch_mutate(db, updates, payload.reason, actor.subject)


@router.get("/audit-log", response_model=AuditPage)
def api_audit_log(
    equipment_id: Optional[int] = None,
    action: Optional[str] = None,
    start: Optional[str] = None,
    end: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
    db: Session = Depends(get_db),
):
    return audit_crud.get_audit_log(
        db,
        equipment_id=equipment_id,
        action=action,
        start=start,
        end=end,
        page=page,
        limit=limit,
    )


@router.get("/{equipment_id}/replay", response_model=ReplayOut)
def api_replay(equipment_id: int, db: Session = Depends(get_db)):
    equipment = get_equipment(db, equipment_id)
    result = audit_crud.replay_equipment(db, equipment_id)
    return ReplayOut(
        equipment_id=equipment_id,
        quantity=result.quantity,
        status=result.status,
        entry_count=result.entry_count,
        stored_quantity=equipment.quantity,
        stored_status=equipment.status,
        consistent=result.consistent and result.quantity == equipment.quantity and result.status == equipment.status,
        issues=result.issues,
    )


@router.get("/verify", response_model=LedgerVerification, dependencies=[Depends(require_admin)])
def api_verify(db: Session = Depends(get_db)):
    problems = audit_crud.verify_ledger(db)
    return {"ok": not problems, "problems": problems}


@router.get("/report", dependencies=[Depends(require_admin)])
def api_report(due_within_days: int = 7, db: Session = Depends(get_db)):
    return reporting.inventory_report(db, due_within_days=due_within_days)


@router.get("/stats")
def api_stats(activity_days: int = 7, db: Session = Depends(get_db)):
    return reporting.inventory_stats(db, activity_days=activity_days)
