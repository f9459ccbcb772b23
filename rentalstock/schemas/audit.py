from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..core.statuses import ACTION_CHOICES, CONDITION_CHOICES, EQUIPMENT_STATUS_CHOICES

STATUS_PATTERN = f"^({'|'.join(EQUIPMENT_STATUS_CHOICES)})$"
ACTION_PATTERN = f"^({'|'.join(ACTION_CHOICES)})$"
CONDITION_PATTERN = f"^({'|'.join(CONDITION_CHOICES)})$"


class FieldChanges(BaseModel):
    model_config = ConfigDict(extra="forbid")

    condition: Optional[str] = Field(default=None, pattern=CONDITION_PATTERN)
    location: Optional[str] = None


class MutationRequest(BaseModel):
    quantity_change: Optional[int] = None
    new_status: Optional[str] = Field(default=None, pattern=STATUS_PATTERN)
    changes: Optional[FieldChanges] = None
    reason: str = Field(min_length=1)
    reference: Optional[str] = None
    notes: Optional[str] = None
    action: Optional[str] = Field(default=None, pattern=ACTION_PATTERN)

    @model_validator(mode="after")
    def validate_effect(self) -> "MutationRequest":
        has_changes = self.changes is not None and bool(self.changes.model_dump(exclude_none=True))
        if self.quantity_change is None and self.new_status is None and not has_changes:
            raise ValueError("quantity_change, new_status or changes is required")
        return self


class BatchItem(BaseModel):
    equipment_id: int
    quantity_change: Optional[int] = None
    new_status: Optional[str] = None
    reason: Optional[str] = None
    reference: Optional[str] = None
    notes: Optional[str] = None


class BatchRequest(BaseModel):
    updates: list[BatchItem] = Field(min_length=1)
    reason: str = Field(min_length=1)


class BatchItemResult(BaseModel):
    equipment_id: Optional[int] = None
    success: bool
    entry_id: Optional[int] = None
    action: Optional[str] = None
    before: Optional[dict[str, Any]] = None
    after: Optional[dict[str, Any]] = None
    code: Optional[str] = None
    error: Optional[str] = None


class BatchResult(BaseModel):
    results: list[BatchItemResult]
    success_count: int
    fail_count: int


class LedgerEntryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    equipment_id: int
    equipment_name: Optional[str] = None
    action: str
    quantity_before: int
    quantity_after: int
    quantity_change: int
    status_before: Optional[str] = None
    status_after: Optional[str] = None
    reason: str
    reference: Optional[str] = None
    performed_by: str
    notes: Optional[str] = None
    created_at: str


class MutationOut(BaseModel):
    equipment_id: int
    before: dict[str, Any]
    after: dict[str, Any]
    entry: LedgerEntryOut


class AuditPage(BaseModel):
    items: list[LedgerEntryOut]
    total: int
    page: int
    pages: int
    limit: int


class ReplayOut(BaseModel):
    equipment_id: int
    quantity: int
    status: Optional[str] = None
    entry_count: int
    stored_quantity: int
    stored_status: str
    consistent: bool
    issues: list[str] = Field(default_factory=list)


class LedgerProblem(BaseModel):
    equipment_id: int
    name: str
    issues: list[str]


class LedgerVerification(BaseModel):
    ok: bool
    problems: list[LedgerProblem]
