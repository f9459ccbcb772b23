"""Maintenance records and damage reports.

Both are small state machines of their own. They never write equipment
fields directly: each equipment effect is staged through
``coordinator.apply_mutation`` inside the workflow's own transaction, so the
workflow row, the equipment change and the ledger entry commit together.
An effect only fires while the equipment sits in the state the rule starts
from; otherwise the workflow row is saved and the equipment is left alone.
"""

from __future__ import annotations

import logging
import math
from typing import Any

from sqlalchemy import desc, func, select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ..core.config import settings
from ..core.exceptions import ConflictError, InvalidInputError, InvalidTransitionError, NotFoundError
from ..core.statuses import (
    ACTION_MAINTENANCE,
    ACTION_STOCK_OUT,
    CONDITION_FAIR,
    CONDITION_GOOD,
    CONDITION_POOR,
    DAMAGE_INSPECTED,
    DAMAGE_REPAIRABLE,
    DAMAGE_REPAIRED,
    DAMAGE_REPLACED,
    DAMAGE_REPORTED,
    DAMAGE_STATUS_CHOICES,
    DAMAGE_TYPE_CHOICES,
    DAMAGE_UNREPAIRABLE,
    DAMAGE_WRITTEN_OFF,
    MAINTENANCE_CANCELLED,
    MAINTENANCE_COMPLETED,
    MAINTENANCE_IN_PROGRESS,
    MAINTENANCE_SCHEDULED,
    MAINTENANCE_STATUS_CHOICES,
    MAINTENANCE_TYPE_CHOICES,
    PRIORITY_CHOICES,
    SEVERITY_CHOICES,
    SEVERITY_CRITICAL,
    SEVERITY_MAJOR,
    STATUS_AVAILABLE,
    STATUS_DAMAGED,
    STATUS_MAINTENANCE,
    STATUS_RETIRED,
    normalize_choice,
)
from ..core.timeutil import add_days, normalize_iso, utcnow_iso, within_hours
from ..models.equipment import Equipment
from ..models.maintenance import DamageReport, MaintenanceRecord
from ..models.supplier import Supplier
from . import notifications
from .coordinator import apply_mutation

logger = logging.getLogger(__name__)

MAINTENANCE_TRANSITIONS: dict[str, tuple[str, ...]] = {
    MAINTENANCE_SCHEDULED: (MAINTENANCE_IN_PROGRESS, MAINTENANCE_COMPLETED, MAINTENANCE_CANCELLED),
    MAINTENANCE_IN_PROGRESS: (MAINTENANCE_COMPLETED, MAINTENANCE_CANCELLED),
}
DELETABLE_MAINTENANCE = (MAINTENANCE_SCHEDULED, MAINTENANCE_CANCELLED)

# Damage reports only move forward through these stages; the last stage is terminal.
_DAMAGE_STAGE = {
    DAMAGE_REPORTED: 0,
    DAMAGE_INSPECTED: 1,
    DAMAGE_REPAIRABLE: 2,
    DAMAGE_UNREPAIRABLE: 2,
    DAMAGE_REPAIRED: 3,
    DAMAGE_REPLACED: 3,
    DAMAGE_WRITTEN_OFF: 3,
}
SEVERE_DAMAGE = {SEVERITY_CRITICAL: CONDITION_POOR, SEVERITY_MAJOR: CONDITION_FAIR}
CONDITION_AFTER_REPAIR = {CONDITION_POOR: CONDITION_FAIR, CONDITION_FAIR: CONDITION_GOOD}

MAX_PAGE_SIZE = 200


def can_advance_maintenance(current: str, requested: str) -> bool:
    return requested in MAINTENANCE_TRANSITIONS.get(current, ())


def can_advance_damage(current: str, requested: str) -> bool:
    if current == DAMAGE_UNREPAIRABLE and requested == DAMAGE_REPAIRED:
        return False
    return _DAMAGE_STAGE[requested] > _DAMAGE_STAGE[current]


def _choice(value: Any, choices: tuple[str, ...], field: str, *, required: bool = True) -> str | None:
    if value is None and not required:
        return None
    chosen = normalize_choice(value, choices) if isinstance(value, str) else None
    if chosen is None:
        raise InvalidInputError(f"Invalid {field}", details={"field": field, "value": value})
    return chosen


def _timestamp(value: Any, field: str) -> str | None:
    try:
        return normalize_iso(value)
    except (TypeError, ValueError) as exc:
        raise InvalidInputError(f"{field} must be an ISO-8601 timestamp", details={"field": field}) from exc


def _money(value: Any, field: str) -> float | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
        raise InvalidInputError(f"{field} must be a non-negative number", details={"field": field})
    return float(value)


def _require_equipment(db: Session, equipment_id: Any) -> Equipment:
    equipment = db.get(Equipment, equipment_id) if isinstance(equipment_id, int) else None
    if not equipment:
        raise NotFoundError("Equipment", equipment_id)
    return equipment


def _conflict(entity: str, entity_id: Any) -> ConflictError:
    return ConflictError(
        "Equipment changed concurrently; re-read and retry",
        details={"entity": entity, "id": entity_id},
    )


def _paginate(db: Session, stmt, count_stmt, page: int, limit: int) -> dict:
    if page < 1:
        raise InvalidInputError("page must be at least 1")
    if limit < 1 or limit > MAX_PAGE_SIZE:
        raise InvalidInputError(f"limit must be between 1 and {MAX_PAGE_SIZE}")
    total = db.execute(count_stmt).scalar_one()
    items = db.execute(stmt.limit(limit).offset((page - 1) * limit)).unique().scalars().all()
    return {
        "items": items,
        "total": total,
        "page": page,
        "pages": math.ceil(total / limit) if total else 0,
        "limit": limit,
    }


# ---------- Maintenance records ----------


def schedule_maintenance(db: Session, payload: dict[str, Any], actor_id: str) -> MaintenanceRecord:
    """Create a maintenance record.

    Work scheduled inside the immediate window takes available equipment
    out of service right away; later work only updates the next planned
    maintenance date.
    """

    equipment = _require_equipment(db, payload.get("equipment_id"))
    maintenance_type = _choice(payload.get("maintenance_type"), MAINTENANCE_TYPE_CHOICES, "maintenance_type")
    priority = _choice(payload.get("priority") or "medium", PRIORITY_CHOICES, "priority")
    description = payload.get("description")
    if not isinstance(description, str) or not description.strip():
        raise InvalidInputError("description is required", details={"field": "description"})
    scheduled_date = _timestamp(payload.get("scheduled_date"), "scheduled_date")
    if not scheduled_date:
        raise InvalidInputError("scheduled_date is required", details={"field": "scheduled_date"})
    vendor_id = payload.get("vendor_id")
    if vendor_id is not None and not db.get(Supplier, vendor_id):
        raise NotFoundError("Supplier", vendor_id)

    now = utcnow_iso()
    record = MaintenanceRecord(
        equipment_id=equipment.id,
        maintenance_type=maintenance_type,
        status=MAINTENANCE_SCHEDULED,
        priority=priority,
        description=description.strip(),
        scheduled_date=scheduled_date,
        estimated_cost=_money(payload.get("estimated_cost"), "estimated_cost"),
        performed_by=payload.get("performed_by"),
        vendor_id=vendor_id,
        notes=payload.get("notes"),
        created_by=actor_id,
        updated_by=actor_id,
        created_at=now,
        updated_at=now,
    )
    immediate = within_hours(scheduled_date, settings.MAINTENANCE_IMMEDIATE_WINDOW_HOURS)
    try:
        db.add(record)
        db.flush()
        if immediate and equipment.status == STATUS_AVAILABLE:
            apply_mutation(
                db,
                equipment.id,
                reason="Scheduled maintenance",
                actor_id=actor_id,
                new_status=STATUS_MAINTENANCE,
                changes={"next_maintenance_scheduled": scheduled_date},
                reference=f"maintenance:{record.id}",
                notes=f"{maintenance_type} maintenance scheduled",
                action=ACTION_MAINTENANCE,
            )
        elif equipment.next_maintenance_scheduled != scheduled_date:
            apply_mutation(
                db,
                equipment.id,
                reason="Maintenance planned",
                actor_id=actor_id,
                changes={"next_maintenance_scheduled": scheduled_date},
                reference=f"maintenance:{record.id}",
                action=ACTION_MAINTENANCE,
            )
        db.commit()
    except StaleDataError as exc:
        db.rollback()
        raise _conflict("Equipment", payload.get("equipment_id")) from exc
    except Exception:
        db.rollback()
        raise
    db.refresh(record)
    logger.info(
        "maintenance.scheduled",
        extra={"extra_data": {"record_id": record.id, "equipment_id": equipment.id, "immediate": immediate}},
    )
    return record


def get_maintenance(db: Session, record_id: int) -> MaintenanceRecord:
    record = db.get(MaintenanceRecord, record_id)
    if not record:
        raise NotFoundError("MaintenanceRecord", record_id)
    return record


def list_maintenance(
    db: Session,
    *,
    status: str | None = None,
    priority: str | None = None,
    maintenance_type: str | None = None,
    equipment_id: int | None = None,
    page: int = 1,
    limit: int = 20,
) -> dict:
    stmt = select(MaintenanceRecord)
    count_stmt = select(func.count(MaintenanceRecord.id))
    conditions = []
    if status:
        conditions.append(MaintenanceRecord.status == _choice(status, MAINTENANCE_STATUS_CHOICES, "status"))
    if priority:
        conditions.append(MaintenanceRecord.priority == _choice(priority, PRIORITY_CHOICES, "priority"))
    if maintenance_type:
        conditions.append(
            MaintenanceRecord.maintenance_type == _choice(maintenance_type, MAINTENANCE_TYPE_CHOICES, "maintenance_type")
        )
    if equipment_id is not None:
        conditions.append(MaintenanceRecord.equipment_id == equipment_id)
    if conditions:
        stmt = stmt.where(*conditions)
        count_stmt = count_stmt.where(*conditions)
    stmt = stmt.order_by(desc(MaintenanceRecord.scheduled_date), desc(MaintenanceRecord.id))
    return _paginate(db, stmt, count_stmt, page, limit)


def _start_effect(db: Session, record: MaintenanceRecord, equipment: Equipment, actor_id: str) -> None:
    if equipment.status != STATUS_AVAILABLE:
        return
    apply_mutation(
        db,
        equipment.id,
        reason="Maintenance started",
        actor_id=actor_id,
        new_status=STATUS_MAINTENANCE,
        reference=f"maintenance:{record.id}",
        action=ACTION_MAINTENANCE,
    )


def _complete_effect(db: Session, record: MaintenanceRecord, equipment: Equipment, actor_id: str) -> None:
    if equipment.status != STATUS_MAINTENANCE:
        return
    last = record.completion_date
    apply_mutation(
        db,
        equipment.id,
        reason="Maintenance completed",
        actor_id=actor_id,
        new_status=STATUS_AVAILABLE,
        changes={
            "last_maintenance": last,
            "next_maintenance_scheduled": add_days(last, equipment.maintenance_frequency_days),
        },
        reference=f"maintenance:{record.id}",
        notes=f"Maintenance completed on {last}",
        action=ACTION_MAINTENANCE,
    )


def _cancel_effect(
    db: Session, record: MaintenanceRecord, equipment: Equipment, previous: str, actor_id: str
) -> None:
    # Only work that already started took the item out of service.
    if previous != MAINTENANCE_IN_PROGRESS or equipment.status != STATUS_MAINTENANCE:
        return
    apply_mutation(
        db,
        equipment.id,
        reason="Maintenance cancelled",
        actor_id=actor_id,
        new_status=STATUS_AVAILABLE,
        reference=f"maintenance:{record.id}",
        action=ACTION_MAINTENANCE,
    )


def update_maintenance(db: Session, record_id: int, payload: dict[str, Any], actor_id: str) -> MaintenanceRecord:
    record = get_maintenance(db, record_id)
    previous = record.status
    requested = payload.get("status")
    if requested is not None:
        requested = _choice(requested, MAINTENANCE_STATUS_CHOICES, "status")
        if requested != previous and not can_advance_maintenance(previous, requested):
            raise InvalidTransitionError("MaintenanceRecord", previous, requested)
        if requested == previous:
            requested = None
    elif previous in (MAINTENANCE_COMPLETED, MAINTENANCE_CANCELLED):
        raise InvalidInputError("Closed maintenance records cannot be edited", details={"status": previous})

    try:
        if "priority" in payload and payload["priority"] is not None:
            record.priority = _choice(payload["priority"], PRIORITY_CHOICES, "priority")
        if "description" in payload and payload["description"]:
            record.description = payload["description"].strip()
        for key in ("estimated_cost", "actual_cost"):
            if key in payload and payload[key] is not None:
                setattr(record, key, _money(payload[key], key))
        for key in ("performed_by", "notes"):
            if key in payload and payload[key] is not None:
                setattr(record, key, payload[key])
        if "vendor_id" in payload and payload["vendor_id"] is not None:
            if not db.get(Supplier, payload["vendor_id"]):
                raise NotFoundError("Supplier", payload["vendor_id"])
            record.vendor_id = payload["vendor_id"]
        start_date = _timestamp(payload.get("start_date"), "start_date")
        completion_date = _timestamp(payload.get("completion_date"), "completion_date")
        if start_date:
            record.start_date = start_date
        if completion_date:
            record.completion_date = completion_date

        equipment = _require_equipment(db, record.equipment_id)
        if requested == MAINTENANCE_IN_PROGRESS:
            record.start_date = record.start_date or utcnow_iso()
            _start_effect(db, record, equipment, actor_id)
        elif requested == MAINTENANCE_COMPLETED:
            record.completion_date = record.completion_date or utcnow_iso()
            _complete_effect(db, record, equipment, actor_id)
        elif requested == MAINTENANCE_CANCELLED:
            _cancel_effect(db, record, equipment, previous, actor_id)
        if requested is not None:
            record.status = requested
        record.updated_by = actor_id
        record.updated_at = utcnow_iso()
        db.commit()
    except StaleDataError as exc:
        db.rollback()
        raise _conflict("MaintenanceRecord", record_id) from exc
    except Exception:
        db.rollback()
        raise
    db.refresh(record)
    if requested is not None:
        logger.info(
            "maintenance.status_changed",
            extra={"extra_data": {"record_id": record.id, "from": previous, "to": requested}},
        )
    return record


def delete_maintenance(db: Session, record_id: int, actor_id: str) -> None:
    """Remove a scheduled or cancelled record and clear the planned date it set."""

    record = get_maintenance(db, record_id)
    if record.status not in DELETABLE_MAINTENANCE:
        raise InvalidInputError(
            f"Cannot delete maintenance record with status '{record.status}'",
            details={"status": record.status},
        )
    equipment = db.get(Equipment, record.equipment_id)
    try:
        if (
            equipment is not None
            and equipment.next_maintenance_scheduled
            and equipment.next_maintenance_scheduled[:10] == record.scheduled_date[:10]
        ):
            apply_mutation(
                db,
                equipment.id,
                reason="Maintenance record deleted",
                actor_id=actor_id,
                changes={"next_maintenance_scheduled": None},
                reference=f"maintenance:{record.id}",
                action=ACTION_MAINTENANCE,
            )
        db.execute(
            DamageReport.__table__.update()
            .where(DamageReport.maintenance_record_id == record.id)
            .values(maintenance_record_id=None)
        )
        db.delete(record)
        db.commit()
    except StaleDataError as exc:
        db.rollback()
        raise _conflict("MaintenanceRecord", record_id) from exc
    except Exception:
        db.rollback()
        raise


# ---------- Damage reports ----------


def file_damage_report(
    db: Session,
    payload: dict[str, Any],
    actor_id: str,
    *,
    notifier: notifications.Notifier | None = None,
) -> DamageReport:
    """Record damage; major or critical damage takes available equipment out of service."""

    equipment = _require_equipment(db, payload.get("equipment_id"))
    damage_type = _choice(payload.get("damage_type"), DAMAGE_TYPE_CHOICES, "damage_type")
    severity = _choice(payload.get("severity"), SEVERITY_CHOICES, "severity")
    description = payload.get("description")
    if not isinstance(description, str) or not description.strip():
        raise InvalidInputError("description is required", details={"field": "description"})

    now = utcnow_iso()
    report = DamageReport(
        equipment_id=equipment.id,
        damage_type=damage_type,
        severity=severity,
        description=description.strip(),
        location=payload.get("location"),
        reported_by=actor_id,
        status=DAMAGE_REPORTED,
        estimated_repair_cost=_money(payload.get("estimated_repair_cost"), "estimated_repair_cost"),
        created_at=now,
        updated_at=now,
    )
    try:
        db.add(report)
        db.flush()
        if severity in SEVERE_DAMAGE and equipment.status == STATUS_AVAILABLE:
            apply_mutation(
                db,
                equipment.id,
                reason=f"{severity} damage reported: {damage_type}",
                actor_id=actor_id,
                new_status=STATUS_DAMAGED,
                changes={"condition": SEVERE_DAMAGE[severity]},
                reference=f"damage:{report.id}",
                notes=report.description,
            )
        db.commit()
    except StaleDataError as exc:
        db.rollback()
        raise _conflict("Equipment", payload.get("equipment_id")) from exc
    except Exception:
        db.rollback()
        raise
    db.refresh(report)
    logger.info(
        "damage.reported",
        extra={"extra_data": {"report_id": report.id, "equipment_id": equipment.id, "severity": severity}},
    )
    notifications.dispatch(
        notifications.Notification(
            kind=notifications.KIND_DAMAGE_REPORTED,
            equipment_id=equipment.id,
            name=equipment.name,
            quantity=equipment.quantity,
            data={"report_id": report.id, "severity": severity, "damage_type": damage_type, "reported_by": actor_id},
        ),
        notifier,
    )
    return report


def get_damage_report(db: Session, report_id: int) -> DamageReport:
    report = db.get(DamageReport, report_id)
    if not report:
        raise NotFoundError("DamageReport", report_id)
    return report


def list_damage_reports(
    db: Session,
    *,
    status: str | None = None,
    severity: str | None = None,
    damage_type: str | None = None,
    equipment_id: int | None = None,
    page: int = 1,
    limit: int = 20,
) -> dict:
    stmt = select(DamageReport)
    count_stmt = select(func.count(DamageReport.id))
    conditions = []
    if status:
        conditions.append(DamageReport.status == _choice(status, DAMAGE_STATUS_CHOICES, "status"))
    if severity:
        conditions.append(DamageReport.severity == _choice(severity, SEVERITY_CHOICES, "severity"))
    if damage_type:
        conditions.append(DamageReport.damage_type == _choice(damage_type, DAMAGE_TYPE_CHOICES, "damage_type"))
    if equipment_id is not None:
        conditions.append(DamageReport.equipment_id == equipment_id)
    if conditions:
        stmt = stmt.where(*conditions)
        count_stmt = count_stmt.where(*conditions)
    stmt = stmt.order_by(desc(DamageReport.created_at), desc(DamageReport.id))
    return _paginate(db, stmt, count_stmt, page, limit)


def _resolve_effect(db: Session, report: DamageReport, equipment: Equipment, resolution: str, actor_id: str) -> None:
    if equipment.status != STATUS_DAMAGED:
        return
    reference = f"damage:{report.id}"
    notes = report.resolution_notes
    if resolution == DAMAGE_REPAIRED:
        improved = CONDITION_AFTER_REPAIR.get(equipment.condition, equipment.condition)
        apply_mutation(
            db,
            equipment.id,
            reason="Item repaired",
            actor_id=actor_id,
            new_status=STATUS_AVAILABLE,
            changes={"condition": improved},
            reference=reference,
            notes=notes or "Damage repaired",
        )
    elif resolution == DAMAGE_REPLACED:
        apply_mutation(
            db,
            equipment.id,
            reason="Item replaced",
            actor_id=actor_id,
            new_status=STATUS_RETIRED,
            reference=reference,
            notes=notes or "Item replaced due to damage",
        )
    elif resolution == DAMAGE_WRITTEN_OFF:
        # The written-off units leave stock: record and ledger both drop to zero.
        apply_mutation(
            db,
            equipment.id,
            reason="Item written off",
            actor_id=actor_id,
            new_status=STATUS_RETIRED,
            new_quantity=0,
            reference=reference,
            notes=notes or "Item written off due to damage",
            action=ACTION_STOCK_OUT if equipment.quantity > 0 else None,
        )


def update_damage_report(db: Session, report_id: int, payload: dict[str, Any], actor_id: str) -> DamageReport:
    report = get_damage_report(db, report_id)
    previous = report.status
    requested = payload.get("status")
    if requested is not None:
        requested = _choice(requested, DAMAGE_STATUS_CHOICES, "status")
        if requested == previous:
            requested = None
        elif not can_advance_damage(previous, requested):
            raise InvalidTransitionError("DamageReport", previous, requested)
    elif _DAMAGE_STAGE[previous] == 3:
        raise InvalidInputError("Resolved damage reports cannot be edited", details={"status": previous})

    try:
        if payload.get("resolution_notes") is not None:
            report.resolution_notes = payload["resolution_notes"]
        for key in ("estimated_repair_cost", "actual_repair_cost"):
            if key in payload and payload[key] is not None:
                setattr(report, key, _money(payload[key], key))
        if payload.get("maintenance_record_id") is not None:
            report.maintenance_record_id = get_maintenance(db, payload["maintenance_record_id"]).id

        if requested is not None:
            equipment = _require_equipment(db, report.equipment_id)
            _resolve_effect(db, report, equipment, requested, actor_id)
            report.status = requested
        report.updated_at = utcnow_iso()
        db.commit()
    except StaleDataError as exc:
        db.rollback()
        raise _conflict("DamageReport", report_id) from exc
    except Exception:
        db.rollback()
        raise
    db.refresh(report)
    if requested is not None:
        logger.info(
            "damage.status_changed",
            extra={"extra_data": {"report_id": report.id, "from": previous, "to": requested}},
        )
    return report
