"""Pydantic schemas for approval routes and steps."""
import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


# ─── Approval Step schemas ───

class ApprovalStepIn(BaseModel):
    approver_type: str = "user"
    approver_id: uuid.UUID | None = None
    role_name: str | None = None
    department_id: uuid.UUID | None = None
    min_amount: Decimal | None = None
    max_amount: Decimal | None = None
    is_required: bool = True
    can_delegate: bool = False
    auto_approve_if_same_user: bool = False
    # Ignored on write: steps are always renumbered 1..N.
    step_number: int | None = None


class ApprovalStepOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    step_number: int
    approver_type: str
    approver_id: uuid.UUID | None
    role_name: str | None
    department_id: uuid.UUID | None
    min_amount: Decimal | None
    max_amount: Decimal | None
    is_required: bool
    can_delegate: bool
    auto_approve_if_same_user: bool


# ─── Approval Route schemas ───

class ApprovalRouteIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    department_id: uuid.UUID
    is_active: bool = True
    steps: list[ApprovalStepIn] = Field(default_factory=list)


class ApprovalRouteUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = None
    is_active: bool | None = None
    # None leaves the steps untouched; a list (even empty) replaces them all.
    steps: list[ApprovalStepIn] | None = None


class ApprovalRouteOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    description: str | None
    department_id: uuid.UUID
    is_active: bool
    created_by: uuid.UUID | None
    steps: list[ApprovalStepOut]
    created_at: datetime
    updated_at: datetime
