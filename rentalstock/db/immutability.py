"""Append-only enforcement for the audit ledger.

Ledger entries are written once by the mutation coordinator and never
touched again. The listeners below fire before SQLAlchemy sends an UPDATE
or DELETE for an entry and abort the flush instead::

    session.flush()
         |
         v
    [before_update] --> _reject_ledger_update() --> ImmutabilityViolationError
    [before_delete] --> _reject_ledger_delete() --> ImmutabilityViolationError

Bulk ``session.execute(update(...))`` statements bypass mapper events; the
service layer never issues them against the ledger table.
"""

from __future__ import annotations

import logging

from sqlalchemy import event

from ..core.exceptions import ImmutabilityViolationError

logger = logging.getLogger("rentalstock.db.immutability")


def _blocked(target, operation: str) -> ImmutabilityViolationError:
    logger.error(
        "ledger.immutability_violation_blocked",
        extra={
            "extra_data": {
                "entity": "AuditLedgerEntry",
                "entity_id": target.id,
                "operation": operation,
            }
        },
    )
    return ImmutabilityViolationError("AuditLedgerEntry", target.id, operation)


def _reject_ledger_update(mapper, connection, target):
    raise _blocked(target, "update")


def _reject_ledger_delete(mapper, connection, target):
    raise _blocked(target, "delete")


def register_immutability_listeners() -> None:
    """Install the ledger listeners once; safe to call repeatedly."""

    from ..models.audit import AuditLedgerEntry

    if not event.contains(AuditLedgerEntry, "before_update", _reject_ledger_update):
        event.listen(AuditLedgerEntry, "before_update", _reject_ledger_update)
    if not event.contains(AuditLedgerEntry, "before_delete", _reject_ledger_delete):
        event.listen(AuditLedgerEntry, "before_delete", _reject_ledger_delete)


def unregister_immutability_listeners() -> None:
    """Remove the ledger listeners. Only tests that corrupt data on purpose use this."""

    from ..models.audit import AuditLedgerEntry

    if event.contains(AuditLedgerEntry, "before_update", _reject_ledger_update):
        event.remove(AuditLedgerEntry, "before_update", _reject_ledger_update)
    if event.contains(AuditLedgerEntry, "before_delete", _reject_ledger_delete):
        event.remove(AuditLedgerEntry, "before_delete", _reject_ledger_delete)
