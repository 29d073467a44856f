"""Pydantic schemas for applications."""
import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


class ApplicationIn(BaseModel):
    type: str = Field(..., description="business_trip | expense")
    title: str = Field(..., min_length=1, max_length=255)
    department_id: uuid.UUID
    priority: str = "normal"
    total_amount: Decimal | None = None
    metadata: dict | None = None


class ApplicationUpdate(BaseModel):
    title: str | None = Field(None, min_length=1, max_length=255)
    department_id: uuid.UUID | None = None
    priority: str | None = None
    total_amount: Decimal | None = None
    metadata: dict | None = None


class ApplicationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: uuid.UUID
    type: str
    title: str
    department_id: uuid.UUID
    applicant_id: uuid.UUID
    total_amount: Decimal | None
    priority: str
    status: str
    current_approver_id: uuid.UUID | None
    approval_route_id: uuid.UUID | None
    current_step_number: int | None
    submitted_at: datetime | None
    approved_at: datetime | None
    rejection_reason: str | None
    metadata: dict | None = Field(None, validation_alias="extra")
    version: int
    created_at: datetime
    updated_at: datetime


class ApplicationListResponse(BaseModel):
    items: list[ApplicationOut]
    total: int
