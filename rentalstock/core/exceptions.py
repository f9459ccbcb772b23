"""Typed errors raised by the equipment engine.

Every error carries a machine-readable ``code`` (rendered as ``code`` in the
JSON error envelope), an HTTP status for the API layer and an optional
``details`` mapping. Nothing here is fatal to the process: a failed
operation raises one of these and leaves prior state untouched.

    InventoryError
    +-- InvalidInputError          malformed or missing input
    +-- NotFoundError              referenced row is absent
    +-- InvariantViolationError    rejected before any write
    |   +-- NegativeQuantityError
    |   +-- InvalidTransitionError
    |   +-- ImmutabilityViolationError
    +-- ConflictError              lost a concurrent write, re-read and retry
    +-- BatchFailedError           every item of a batch failed
"""

from __future__ import annotations

from typing import Any


class InventoryError(Exception):
    code: str = "inventory_error"
    status_code: int = 400

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details is not None:
            payload["details"] = self.details
        return payload


class InvalidInputError(InventoryError):
    code = "validation_error"
    status_code = 422


class NotFoundError(InventoryError):
    code = "not_found"
    status_code = 404

    def __init__(self, entity: str, identifier: Any) -> None:
        self.entity = entity
        self.identifier = identifier
        super().__init__(
            f"{entity} not found: {identifier}",
            details={"entity": entity, "id": identifier},
        )


class InvariantViolationError(InventoryError):
    code = "invariant_violation"
    status_code = 422


class NegativeQuantityError(InvariantViolationError):
    code = "negative_quantity"

    def __init__(self, equipment_id: int, current: int, delta: int) -> None:
        self.equipment_id = equipment_id
        self.current = current
        self.delta = delta
        super().__init__(
            f"Cannot reduce quantity below zero. Current: {current}, Change: {delta}",
            details={"equipment_id": equipment_id, "current": current, "change": delta},
        )


class InvalidTransitionError(InvariantViolationError):
    code = "invalid_transition"

    def __init__(self, entity: str, current: str | None, requested: str) -> None:
        self.entity = entity
        self.current = current
        self.requested = requested
        super().__init__(
            f"{entity} cannot move from '{current}' to '{requested}'",
            details={"entity": entity, "from": current, "to": requested},
        )


class ImmutabilityViolationError(InvariantViolationError):
    code = "immutability_violation"

    def __init__(self, entity: str, entity_id: Any, operation: str) -> None:
        self.entity = entity
        self.entity_id = entity_id
        self.operation = operation
        super().__init__(
            f"{entity} {entity_id} is append-only; {operation} is not allowed",
            details={"entity": entity, "id": entity_id, "operation": operation},
        )


class ConflictError(InventoryError):
    code = "conflict"
    status_code = 409


class BatchFailedError(InventoryError):
    code = "batch_failed"
    status_code = 400

    def __init__(self, results: list[dict[str, Any]]) -> None:
        self.results = results
        super().__init__("All inventory updates failed", details={"results": results})


__all__ = [
    "BatchFailedError",
    "ConflictError",
    "ImmutabilityViolationError",
    "InvalidInputError",
    "InvalidTransitionError",
    "InvariantViolationError",
    "InventoryError",
    "NegativeQuantityError",
    "NotFoundError",
]
