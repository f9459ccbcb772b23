"""The single write path for equipment quantity and status.

Every change to ``Equipment.quantity`` or ``Equipment.status`` goes through
``apply_mutation``, which updates the record and appends one
``AuditLedgerEntry`` in the same unit of work. ``mutate`` and
``batch_mutate`` wrap it with commit/rollback; workflows (stock orders,
maintenance, damage reports) call ``apply_mutation`` directly so their own
records and the equipment change commit together.

Alerts are only dispatched after a successful commit.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ..core.exceptions import (
    BatchFailedError,
    ConflictError,
    InvalidInputError,
    InvalidTransitionError,
    InventoryError,
    NegativeQuantityError,
    NotFoundError,
)
from ..core.statuses import (
    ACTION_CHOICES,
    ACTION_STOCK_IN,
    ACTION_STOCK_OUT,
    ACTION_TRANSFER,
    ACTION_UPDATE,
    CATEGORY_CHOICES,
    CONDITION_CHOICES,
    CONDITION_GOOD,
    EQUIPMENT_STATUS_CHOICES,
    STATUS_AVAILABLE,
    STATUS_DAMAGED,
    STATUS_IN_USE,
    STATUS_LOST,
    STATUS_MAINTENANCE,
    STATUS_RETIRED,
    normalize_choice,
)
from ..core.timeutil import normalize_iso, utcnow_iso
from ..crud.reorder import classify, effective_threshold
from ..models.audit import AuditLedgerEntry
from ..models.equipment import Equipment
from . import notifications

logger = logging.getLogger(__name__)

# Workflow driven transitions. Retiring or losing an item is allowed from
# anywhere but only through an administrative mutation.
EQUIPMENT_TRANSITIONS: dict[str, tuple[str, ...]] = {
    STATUS_AVAILABLE: (STATUS_MAINTENANCE, STATUS_DAMAGED, STATUS_IN_USE),
    STATUS_MAINTENANCE: (STATUS_AVAILABLE,),
    STATUS_DAMAGED: (STATUS_AVAILABLE, STATUS_RETIRED),
    STATUS_IN_USE: (STATUS_AVAILABLE,),
}
ADMINISTRATIVE_STATUSES = (STATUS_RETIRED, STATUS_LOST)

# Metadata the coordinator may change alongside quantity/status.
MUTABLE_FIELDS = ("condition", "location", "last_maintenance", "next_maintenance_scheduled")
_TIMESTAMP_FIELDS = ("last_maintenance", "next_maintenance_scheduled")


def can_transition(current: str, requested: str) -> bool:
    if requested in ADMINISTRATIVE_STATUSES:
        return True
    return requested in EQUIPMENT_TRANSITIONS.get(current, ())


@dataclass
class MutationResult:
    equipment: Equipment
    entry: AuditLedgerEntry
    before: dict[str, Any]
    after: dict[str, Any]

    def as_dict(self) -> dict[str, Any]:
        return {
            "equipment_id": self.equipment.id,
            "entry_id": self.entry.id,
            "action": self.entry.action,
            "before": self.before,
            "after": self.after,
        }


def derive_availability(status: str, quantity: int) -> bool:
    return status == STATUS_AVAILABLE and quantity > 0


def derive_action(
    *,
    quantity_change: int,
    status_changed: bool,
    changed_fields: set[str],
) -> str:
    if quantity_change > 0:
        return ACTION_STOCK_IN
    if quantity_change < 0:
        return ACTION_STOCK_OUT
    if not status_changed and changed_fields == {"location"}:
        return ACTION_TRANSFER
    return ACTION_UPDATE


def _require_text(value: str | None, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidInputError(f"{field} is required", details={"field": field})
    return value.strip()


def _check_int(value: Any, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidInputError(f"{field} must be an integer", details={"field": field})
    return value


def _clean_changes(changes: dict[str, Any] | None) -> dict[str, Any]:
    if not changes:
        return {}
    unknown = set(changes) - set(MUTABLE_FIELDS)
    if unknown:
        raise InvalidInputError(
            "Unsupported fields in mutation",
            details={"fields": sorted(unknown)},
        )
    cleaned: dict[str, Any] = {}
    for key, value in changes.items():
        if key == "condition":
            condition = normalize_choice(value, CONDITION_CHOICES)
            if condition is None:
                raise InvalidInputError("Invalid condition", details={"field": key, "value": value})
            value = condition
        elif key in _TIMESTAMP_FIELDS:
            try:
                value = normalize_iso(value)
            except ValueError as exc:
                raise InvalidInputError(f"{key} must be an ISO-8601 timestamp", details={"field": key}) from exc
        elif isinstance(value, str):
            value = value.strip() or None
        cleaned[key] = value
    return cleaned


def _write_entry(
    db: Session,
    *,
    equipment_id: int,
    action: str,
    quantity_before: int,
    quantity_after: int,
    status_before: str | None,
    status_after: str | None,
    reason: str,
    actor_id: str,
    reference: str | None,
    notes: str | None,
) -> AuditLedgerEntry:
    entry = AuditLedgerEntry(
        equipment_id=equipment_id,
        action=action,
        quantity_before=quantity_before,
        quantity_after=quantity_after,
        quantity_change=quantity_after - quantity_before,
        status_before=status_before,
        status_after=status_after,
        reason=reason,
        reference=reference,
        performed_by=actor_id,
        notes=notes,
        created_at=utcnow_iso(),
    )
    db.add(entry)
    return entry


def apply_mutation(
    db: Session,
    equipment_id: int,
    *,
    reason: str,
    actor_id: str,
    quantity_delta: int | None = None,
    new_quantity: int | None = None,
    new_status: str | None = None,
    changes: dict[str, Any] | None = None,
    reference: str | None = None,
    notes: str | None = None,
    action: str | None = None,
) -> MutationResult:
    """Stage one coordinated mutation in the caller's transaction.

    Validates the request, checks the status transition and the
    non-negative quantity rule, updates the record and adds the ledger
    entry, then flushes. Nothing is committed; on error nothing has been
    written to the record.
    """

    equipment_id = _check_int(equipment_id, "equipment_id")
    reason = _require_text(reason, "reason")
    actor_id = _require_text(actor_id, "actor_id")
    if quantity_delta is not None and new_quantity is not None:
        raise InvalidInputError("Provide either quantity_delta or new_quantity, not both")
    if quantity_delta is not None:
        quantity_delta = _check_int(quantity_delta, "quantity_delta")
    if new_quantity is not None:
        new_quantity = _check_int(new_quantity, "new_quantity")
    if new_status is not None:
        requested = normalize_choice(new_status, EQUIPMENT_STATUS_CHOICES)
        if requested is None:
            raise InvalidInputError("Invalid status", details={"field": "new_status", "value": new_status})
        new_status = requested
    if action is not None and action not in ACTION_CHOICES:
        raise InvalidInputError("Invalid action", details={"field": "action", "value": action})
    cleaned = _clean_changes(changes)
    if quantity_delta is None and new_quantity is None and new_status is None and not cleaned:
        raise InvalidInputError("Mutation changes nothing")

    equipment = db.get(Equipment, equipment_id)
    if not equipment:
        raise NotFoundError("Equipment", equipment_id)

    before = equipment.snapshot()
    quantity_before = equipment.quantity
    status_before = equipment.status

    if new_quantity is not None:
        quantity_after = new_quantity
    else:
        quantity_after = quantity_before + (quantity_delta or 0)
    if quantity_after < 0:
        raise NegativeQuantityError(equipment.id, quantity_before, quantity_after - quantity_before)

    status_after = status_before
    if new_status is not None and new_status != status_before:
        if not can_transition(status_before, new_status):
            raise InvalidTransitionError("Equipment", status_before, new_status)
        status_after = new_status

    changed_fields = {key for key, value in cleaned.items() if getattr(equipment, key) != value}
    quantity_change = quantity_after - quantity_before
    status_changed = status_after != status_before
    if action is None:
        action = derive_action(
            quantity_change=quantity_change,
            status_changed=status_changed,
            changed_fields=changed_fields,
        )

    equipment.quantity = quantity_after
    equipment.status = status_after
    for key, value in cleaned.items():
        setattr(equipment, key, value)
    equipment.is_available = derive_availability(status_after, quantity_after)
    equipment.updated_at = utcnow_iso()

    entry = _write_entry(
        db,
        equipment_id=equipment.id,
        action=action,
        quantity_before=quantity_before,
        quantity_after=quantity_after,
        status_before=status_before,
        status_after=status_after,
        reason=reason,
        actor_id=actor_id,
        reference=reference,
        notes=notes,
    )
    db.flush()
    return MutationResult(equipment=equipment, entry=entry, before=before, after=equipment.snapshot())


def _log_entry(result: MutationResult) -> None:
    entry = result.entry
    logger.info(
        "ledger.entry_written",
        extra={
            "extra_data": {
                "entry_id": entry.id,
                "equipment_id": entry.equipment_id,
                "action": entry.action,
                "quantity_before": entry.quantity_before,
                "quantity_after": entry.quantity_after,
                "status_before": entry.status_before,
                "status_after": entry.status_after,
                "reference": entry.reference,
                "performed_by": entry.performed_by,
            }
        },
    )


def alert_if_low(db: Session, equipment: Equipment, notifier: notifications.Notifier | None = None) -> str | None:
    """Send a low/out-of-stock notification for ``equipment`` when it sits below its threshold."""

    threshold = effective_threshold(db, equipment.id)
    level = classify(equipment.quantity, threshold)
    if level is not None:
        notifications.dispatch(
            notifications.Notification(
                kind=level,
                equipment_id=equipment.id,
                name=equipment.name,
                quantity=equipment.quantity,
                threshold=threshold,
            ),
            notifier,
        )
    return level


def _conflict(equipment_id: Any) -> ConflictError:
    return ConflictError(
        "Equipment was changed by another request; re-read and retry",
        details={"equipment_id": equipment_id},
    )


def mutate(
    db: Session,
    equipment_id: int,
    *,
    reason: str,
    actor_id: str,
    quantity_delta: int | None = None,
    new_status: str | None = None,
    changes: dict[str, Any] | None = None,
    reference: str | None = None,
    notes: str | None = None,
    action: str | None = None,
    notifier: notifications.Notifier | None = None,
) -> MutationResult:
    """Apply and commit one mutation. Returns before/after snapshots and the ledger entry."""

    try:
        result = apply_mutation(
            db,
            equipment_id,
            reason=reason,
            actor_id=actor_id,
            quantity_delta=quantity_delta,
            new_status=new_status,
            changes=changes,
            reference=reference,
            notes=notes,
            action=action,
        )
        db.commit()
    except StaleDataError as exc:
        db.rollback()
        raise _conflict(equipment_id) from exc
    except Exception:
        db.rollback()
        raise
    _log_entry(result)
    if result.entry.quantity_change < 0:
        alert_if_low(db, result.equipment, notifier)
    return result


def batch_mutate(
    db: Session,
    updates: list[dict[str, Any]],
    reason: str,
    actor_id: str,
    *,
    notifier: notifications.Notifier | None = None,
) -> dict[str, Any]:
    """Apply many mutations; failing items are skipped and reported.

    Each item runs inside its own savepoint so a failure leaves no trace.
    The surviving items commit together. If every item fails the batch
    raises ``BatchFailedError`` carrying the per-item results.
    """

    reason = _require_text(reason, "reason")
    actor_id = _require_text(actor_id, "actor_id")
    if not updates:
        raise InvalidInputError("updates must be a non-empty list")

    results: list[dict[str, Any]] = []
    applied: list[MutationResult] = []
    for item in updates:
        equipment_id = item.get("equipment_id")
        try:
            with db.begin_nested():
                result = apply_mutation(
                    db,
                    equipment_id,
                    reason=item.get("reason") or reason,
                    actor_id=actor_id,
                    quantity_delta=item.get("quantity_change"),
                    new_status=item.get("new_status"),
                    changes=item.get("changes"),
                    reference=item.get("reference"),
                    notes=item.get("notes"),
                )
        except StaleDataError:
            error = _conflict(equipment_id)
            results.append({"equipment_id": equipment_id, "success": False, "code": error.code, "error": error.message})
            continue
        except InventoryError as exc:
            results.append({"equipment_id": equipment_id, "success": False, "code": exc.code, "error": exc.message})
            continue
        applied.append(result)
        results.append({"success": True, **result.as_dict()})

    success_count = len(applied)
    fail_count = len(results) - success_count
    if success_count == 0:
        db.rollback()
        logger.warning(
            "ledger.batch_failed",
            extra={"extra_data": {"fail_count": fail_count, "performed_by": actor_id}},
        )
        raise BatchFailedError(results)

    try:
        db.commit()
    except StaleDataError as exc:
        db.rollback()
        raise _conflict(None) from exc
    except Exception:
        db.rollback()
        raise

    for result in applied:
        _log_entry(result)
    logger.info(
        "ledger.batch_committed",
        extra={"extra_data": {"success_count": success_count, "fail_count": fail_count, "performed_by": actor_id}},
    )
    for result in applied:
        if result.entry.quantity_change < 0:
            alert_if_low(db, result.equipment, notifier)
    return {"results": results, "success_count": success_count, "fail_count": fail_count}


def create_equipment(
    db: Session,
    payload: dict[str, Any],
    actor_id: str,
    *,
    reason: str = "Initial intake",
) -> Equipment:
    """Intake a new item together with its opening ledger entry."""

    actor_id = _require_text(actor_id, "actor_id")
    data = dict(payload)
    name = _require_text(data.get("name"), "name")
    category = normalize_choice(data.get("category"), CATEGORY_CHOICES)
    if category is None:
        raise InvalidInputError("Invalid category", details={"field": "category", "value": data.get("category")})
    quantity = _check_int(data.get("quantity", 0), "quantity")
    if quantity < 0:
        raise InvalidInputError("quantity cannot be negative", details={"field": "quantity"})
    price = data.get("price", 0.0)
    if price is None or isinstance(price, bool) or not isinstance(price, (int, float)) or price < 0:
        raise InvalidInputError("price must be a non-negative number", details={"field": "price"})
    status = normalize_choice(data.get("status") or STATUS_AVAILABLE, EQUIPMENT_STATUS_CHOICES)
    if status is None:
        raise InvalidInputError("Invalid status", details={"field": "status", "value": data.get("status")})
    condition = normalize_choice(data.get("condition") or CONDITION_GOOD, CONDITION_CHOICES)
    if condition is None:
        raise InvalidInputError("Invalid condition", details={"field": "condition", "value": data.get("condition")})
    frequency = _check_int(data.get("maintenance_frequency_days") or 90, "maintenance_frequency_days")
    if frequency < 1:
        raise InvalidInputError("maintenance_frequency_days must be at least 1")
    try:
        purchase_date = normalize_iso(data.get("purchase_date"))
        next_maintenance = normalize_iso(data.get("next_maintenance_scheduled"))
    except ValueError as exc:
        raise InvalidInputError("Dates must be ISO-8601 timestamps") from exc

    now = utcnow_iso()
    equipment = Equipment(
        name=name,
        description=(data.get("description") or "").strip(),
        category=category,
        price=float(price),
        quantity=quantity,
        status=status,
        condition=condition,
        is_available=derive_availability(status, quantity),
        maintenance_frequency_days=frequency,
        next_maintenance_scheduled=next_maintenance,
        serial_number=data.get("serial_number"),
        barcode=data.get("barcode"),
        location=data.get("location"),
        purchase_date=purchase_date,
        purchase_price=data.get("purchase_price"),
        created_at=now,
        updated_at=now,
    )
    try:
        db.add(equipment)
        db.flush()
        entry = _write_entry(
            db,
            equipment_id=equipment.id,
            action=ACTION_STOCK_IN if quantity > 0 else ACTION_UPDATE,
            quantity_before=0,
            quantity_after=quantity,
            status_before=None,
            status_after=status,
            reason=reason,
            actor_id=actor_id,
            reference=None,
            notes=data.get("notes"),
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(equipment)
    logger.info(
        "equipment.created",
        extra={"extra_data": {"equipment_id": equipment.id, "quantity": quantity, "entry_id": entry.id}},
    )
    return equipment
