"""Pydantic schemas for approval workflow API endpoints."""
import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from app.schemas.application import ApplicationOut


# ─── Audit entry output ───

class ApprovalLogOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    application_id: uuid.UUID
    approver_id: uuid.UUID | None
    action: str
    comment: str | None
    status_before: str | None
    status_after: str
    step_number: int | None
    sequence: int
    is_system: bool
    created_at: datetime


# ─── Decision request body ───

class ApprovalActionRequest(BaseModel):
    action: str = Field(..., description="approve | reject | return | hold | resume")
    comment: str | None = None
    next_approver_id: uuid.UUID | None = None
    expected_status: str | None = Field(
        None, description="Status the caller last saw; the action fails if it has changed."
    )
    idempotency_key: str | None = Field(None, max_length=128)


class ApprovalActionResponse(BaseModel):
    application: ApplicationOut
    entry: ApprovalLogOut
    auto_approvals: list[ApprovalLogOut] = Field(default_factory=list)
    replayed: bool = False


# ─── History / metrics ───

class ApprovalHistoryResponse(BaseModel):
    application_id: uuid.UUID
    status: str
    entries: list[ApprovalLogOut]
    is_consistent: bool
    days_waiting: int | None


class ProcessingTimeResponse(BaseModel):
    department_id: uuid.UUID | None
    average_processing_days: float
    sample_size: int


# ─── Paginated list response ───

class PendingApprovalItem(BaseModel):
    application: ApplicationOut
    days_waiting: int | None


class PendingApprovalListResponse(BaseModel):
    items: list[PendingApprovalItem]
    total: int
