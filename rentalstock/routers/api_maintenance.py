from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..db.session import get_db
from ..deps.auth import Actor, get_actor, require_admin
from ..schemas.maintenance import (
    DamageCreate,
    DamageOut,
    DamagePage,
    DamageUpdate,
    MaintenanceCreate,
    MaintenanceOut,
    MaintenancePage,
    MaintenanceUpdate,
)
from ..services import maintenance

router = APIRouter(prefix="/api/v1", tags=["maintenance"], dependencies=[Depends(get_actor)])


@router.get("/maintenance", response_model=MaintenancePage, dependencies=[Depends(require_admin)])
def api_list_maintenance(
    status: Optional[str] = None,
    priority: Optional[str] = None,
    maintenance_type: Optional[str] = None,
    equipment_id: Optional[int] = None,
    page: int = 1,
    limit: int = 20,
    db: Session = Depends(get_db),
):
    return maintenance.list_maintenance(
        db,
        status=status,
        priority=priority,
        maintenance_type=maintenance_type,
        equipment_id=equipment_id,
        page=page,
        limit=limit,
    )


@router.get("/maintenance/{record_id}", response_model=MaintenanceOut, dependencies=[Depends(require_admin)])
def api_get_maintenance(record_id: int, db: Session = Depends(get_db)):
    return maintenance.get_maintenance(db, record_id)


@router.post("/maintenance", response_model=MaintenanceOut, status_code=201)
def api_schedule(payload: MaintenanceCreate, actor: Actor = Depends(require_admin), db: Session = Depends(get_db)):
    return maintenance.schedule_maintenance(db, payload.model_dump(), actor.subject)


@router.patch("/maintenance/{record_id}", response_model=MaintenanceOut)
def api_update_maintenance(
    record_id: int,
    payload: MaintenanceUpdate,
    actor: Actor = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return maintenance.update_maintenance(db, record_id, payload.model_dump(exclude_none=True), actor.subject)


@router.delete("/maintenance/{record_id}")
def api_delete_maintenance(record_id: int, actor: Actor = Depends(require_admin), db: Session = Depends(get_db)):
    maintenance.delete_maintenance(db, record_id, actor.subject)
    return {"status": "deleted"}


@router.get("/damage-reports", response_model=DamagePage, dependencies=[Depends(require_admin)])
def api_list_damage(
    status: Optional[str] = None,
    severity: Optional[str] = None,
    damage_type: Optional[str] = None,
    equipment_id: Optional[int] = None,
    page: int = 1,
    limit: int = 20,
    db: Session = Depends(get_db),
):
    return maintenance.list_damage_reports(
        db,
        status=status,
        severity=severity,
        damage_type=damage_type,
        equipment_id=equipment_id,
        page=page,
        limit=limit,
    )


@router.get("/damage-reports/{report_id}", response_model=DamageOut)
def api_get_damage(report_id: int, db: Session = Depends(get_db)):
    return maintenance.get_damage_report(db, report_id)


# Any authenticated caller may report damage; resolving it is an admin task.
@router.post("/damage-reports", response_model=DamageOut, status_code=201)
def api_report_damage(payload: DamageCreate, actor: Actor = Depends(get_actor), db: Session = Depends(get_db)):
    return maintenance.file_damage_report(db, payload.model_dump(), actor.subject)


@router.patch("/damage-reports/{report_id}", response_model=DamageOut)
def api_update_damage(
    report_id: int,
    payload: DamageUpdate,
    actor: Actor = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return maintenance.update_damage_report(db, report_id, payload.model_dump(exclude_none=True), actor.subject)
