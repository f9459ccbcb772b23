"""Per-equipment reorder policies and threshold classification."""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import InvalidInputError, NotFoundError
from ..core.timeutil import utcnow_iso
from ..models.equipment import Equipment
from ..models.reorder import ReorderPolicy
from .suppliers import lookup_supplier

logger = logging.getLogger(__name__)

OUT_OF_STOCK = "out_of_stock"
LOW_STOCK = "low_stock"


def classify(quantity: int, threshold: int) -> str | None:
    """``out_of_stock`` at zero, ``low_stock`` below ``threshold``, otherwise ``None``."""

    if quantity <= 0:
        return OUT_OF_STOCK
    if quantity < threshold:
        return LOW_STOCK
    return None


def _require_equipment(db: Session, equipment_id: int) -> Equipment:
    equipment = db.get(Equipment, equipment_id)
    if not equipment:
        raise NotFoundError("Equipment", equipment_id)
    return equipment


def _find_policy(db: Session, equipment_id: int) -> ReorderPolicy | None:
    stmt = select(ReorderPolicy).where(ReorderPolicy.equipment_id == equipment_id)
    return db.execute(stmt).scalars().first()


def _default_policy(equipment_id: int) -> ReorderPolicy:
    return ReorderPolicy(
        equipment_id=equipment_id,
        threshold=settings.DEFAULT_REORDER_THRESHOLD,
        reorder_quantity=settings.DEFAULT_REORDER_QUANTITY,
        auto_reorder=False,
        preferred_supplier_id=None,
        last_updated=utcnow_iso(),
    )


def get_policy(db: Session, equipment_id: int) -> ReorderPolicy:
    """Return the stored policy, creating the default one the first time it is asked for."""

    _require_equipment(db, equipment_id)
    policy = _find_policy(db, equipment_id)
    if policy:
        return policy
    policy = _default_policy(equipment_id)
    db.add(policy)
    try:
        db.commit()
    except IntegrityError:
        # Another request created it first; the unique index kept us at one row.
        db.rollback()
        policy = _find_policy(db, equipment_id)
        if policy is None:
            raise
        return policy
    db.refresh(policy)
    return policy


def _positive_int(data: dict, key: str) -> int | None:
    if key not in data or data[key] is None:
        return None
    value = data[key]
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidInputError(f"{key} must be an integer", details={"field": key})
    if value < 1:
        raise InvalidInputError(f"{key} must be at least 1", details={"field": key})
    return value


def upsert_policy(db: Session, equipment_id: int, data: dict, actor_id: str | None = None) -> ReorderPolicy:
    """Create or replace the policy for ``equipment_id``; at most one row per equipment."""

    _require_equipment(db, equipment_id)
    threshold = _positive_int(data, "threshold")
    reorder_quantity = _positive_int(data, "reorder_quantity")

    supplier_id = data.get("preferred_supplier_id")
    if supplier_id is not None:
        lookup_supplier(db, supplier_id)

    policy = _find_policy(db, equipment_id)
    if policy is None:
        policy = _default_policy(equipment_id)
        db.add(policy)
    if threshold is not None:
        policy.threshold = threshold
    if reorder_quantity is not None:
        policy.reorder_quantity = reorder_quantity
    if "auto_reorder" in data and data["auto_reorder"] is not None:
        policy.auto_reorder = bool(data["auto_reorder"])
    if "preferred_supplier_id" in data:
        policy.preferred_supplier_id = supplier_id
    policy.updated_by = actor_id
    policy.last_updated = utcnow_iso()
    db.commit()
    db.refresh(policy)
    logger.info(
        "reorder_policy.saved",
        extra={
            "extra_data": {
                "equipment_id": equipment_id,
                "threshold": policy.threshold,
                "reorder_quantity": policy.reorder_quantity,
                "auto_reorder": policy.auto_reorder,
                "preferred_supplier_id": policy.preferred_supplier_id,
            }
        },
    )
    return policy


def delete_policy(db: Session, equipment_id: int) -> bool:
    """Drop custom settings; the item falls back to defaults. Returns False when nothing was stored."""

    policy = _find_policy(db, equipment_id)
    if policy is None:
        return False
    db.delete(policy)
    db.commit()
    return True


def list_policies(db: Session) -> list[ReorderPolicy]:
    stmt = select(ReorderPolicy).order_by(ReorderPolicy.equipment_id)
    return db.execute(stmt).scalars().all()


def policy_map(db: Session) -> dict[int, ReorderPolicy]:
    """Stored policies keyed by equipment id. Nothing is created here."""

    return {policy.equipment_id: policy for policy in list_policies(db)}


def effective_threshold(db: Session, equipment_id: int) -> int:
    policy = _find_policy(db, equipment_id)
    return policy.threshold if policy else settings.DEFAULT_REORDER_THRESHOLD
