"""Read side of the audit ledger: paginated queries, replay and verification."""

from __future__ import annotations

import math
from dataclasses import dataclass, field

from sqlalchemy import desc, func, select
from sqlalchemy.orm import Session

from ..core.exceptions import InvalidInputError, NotFoundError
from ..core.statuses import ACTION_CHOICES
from ..core.timeutil import normalize_iso
from ..models.audit import AuditLedgerEntry
from ..models.equipment import Equipment

MAX_PAGE_SIZE = 200


def _filtered(stmt, *, equipment_id: int | None, action: str | None, start: str | None, end: str | None):
    if equipment_id is not None:
        stmt = stmt.where(AuditLedgerEntry.equipment_id == equipment_id)
    if action:
        if action not in ACTION_CHOICES:
            raise InvalidInputError("Invalid action filter", details={"field": "action", "value": action})
        stmt = stmt.where(AuditLedgerEntry.action == action)
    try:
        start_iso = normalize_iso(start)
        end_iso = normalize_iso(end)
    except ValueError as exc:
        raise InvalidInputError("start/end must be ISO-8601 timestamps") from exc
    if start_iso:
        stmt = stmt.where(AuditLedgerEntry.created_at >= start_iso)
    if end_iso:
        stmt = stmt.where(AuditLedgerEntry.created_at <= end_iso)
    return stmt


def get_audit_log(
    db: Session,
    *,
    equipment_id: int | None = None,
    action: str | None = None,
    start: str | None = None,
    end: str | None = None,
    page: int = 1,
    limit: int = 20,
) -> dict:
    """Return ``{items, total, page, pages, limit}`` with the newest entries first."""

    if page < 1:
        raise InvalidInputError("page must be at least 1")
    if limit < 1 or limit > MAX_PAGE_SIZE:
        raise InvalidInputError(f"limit must be between 1 and {MAX_PAGE_SIZE}")

    filters = {"equipment_id": equipment_id, "action": action, "start": start, "end": end}
    count_stmt = _filtered(select(func.count(AuditLedgerEntry.id)), **filters)
    total = db.execute(count_stmt).scalar_one()

    stmt = (
        _filtered(select(AuditLedgerEntry), **filters)
        .order_by(desc(AuditLedgerEntry.created_at), desc(AuditLedgerEntry.id))
        .limit(limit)
        .offset((page - 1) * limit)
    )
    items = db.execute(stmt).unique().scalars().all()
    return {
        "items": items,
        "total": total,
        "page": page,
        "pages": math.ceil(total / limit) if total else 0,
        "limit": limit,
    }


def entries_for(db: Session, equipment_id: int) -> list[AuditLedgerEntry]:
    """All entries for one item in the order they were written."""

    stmt = (
        select(AuditLedgerEntry)
        .where(AuditLedgerEntry.equipment_id == equipment_id)
        .order_by(AuditLedgerEntry.created_at, AuditLedgerEntry.id)
    )
    return db.execute(stmt).unique().scalars().all()


@dataclass
class ReplayResult:
    equipment_id: int
    quantity: int
    status: str | None
    entry_count: int
    issues: list[str] = field(default_factory=list)

    @property
    def consistent(self) -> bool:
        return not self.issues


def replay_entries(equipment_id: int, entries: list[AuditLedgerEntry]) -> ReplayResult:
    """Fold ``entries`` from zero and report any break in the chain."""

    quantity = 0
    status: str | None = None
    issues: list[str] = []
    for entry in entries:
        if entry.quantity_before != quantity:
            issues.append(f"entry {entry.id}: quantity_before {entry.quantity_before} != running {quantity}")
        if entry.status_before != status:
            issues.append(f"entry {entry.id}: status_before {entry.status_before!r} != running {status!r}")
        if entry.quantity_after - entry.quantity_before != entry.quantity_change:
            issues.append(f"entry {entry.id}: quantity_change {entry.quantity_change} does not match before/after")
        if entry.quantity_after < 0:
            issues.append(f"entry {entry.id}: negative quantity {entry.quantity_after}")
        quantity = entry.quantity_after
        if entry.status_after is not None:
            status = entry.status_after
    return ReplayResult(
        equipment_id=equipment_id,
        quantity=quantity,
        status=status,
        entry_count=len(entries),
        issues=issues,
    )


def replay_equipment(db: Session, equipment_id: int) -> ReplayResult:
    if not db.get(Equipment, equipment_id):
        raise NotFoundError("Equipment", equipment_id)
    return replay_entries(equipment_id, entries_for(db, equipment_id))


def verify_ledger(db: Session) -> list[dict]:
    """Every equipment whose ledger does not reproduce its stored quantity and status."""

    problems: list[dict] = []
    for equipment in db.execute(select(Equipment).order_by(Equipment.id)).scalars():
        result = replay_entries(equipment.id, entries_for(db, equipment.id))
        issues = list(result.issues)
        if result.quantity != equipment.quantity:
            issues.append(f"replayed quantity {result.quantity} != stored {equipment.quantity}")
        if result.status != equipment.status:
            issues.append(f"replayed status {result.status!r} != stored {equipment.status!r}")
        if issues:
            problems.append({"equipment_id": equipment.id, "name": equipment.name, "issues": issues})
    return problems
