import enum
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base, TimestampMixin, UUIDMixin


class ApplicationType(str, enum.Enum):
    business_trip = "business_trip"
    expense = "expense"


class ApplicationStatus(str, enum.Enum):
    draft = "draft"
    pending = "pending"
    submitted = "submitted"
    approved = "approved"
    rejected = "rejected"
    returned = "returned"
    on_hold = "on_hold"


class Priority(str, enum.Enum):
    low = "low"
    normal = "normal"
    high = "high"
    urgent = "urgent"


class Application(Base, UUIDMixin, TimestampMixin):
    """A business-trip or expense request moving through approval."""

    __tablename__ = "applications"

    type: Mapped[str] = mapped_column(String(20), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    department_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("departments.id"), nullable=False, index=True
    )
    applicant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False, index=True
    )
    total_amount: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)
    priority: Mapped[str] = mapped_column(String(20), nullable=False, default=Priority.normal.value)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ApplicationStatus.draft.value, index=True
    )  # draft, pending, submitted, approved, rejected, returned, on_hold
    current_approver_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=True, index=True
    )
    approval_route_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("approval_routes.id", ondelete="SET NULL"), nullable=True
    )
    current_step_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    extra: Mapped[dict | None] = mapped_column("metadata", JSON, nullable=True)

    # Optimistic concurrency: UPDATEs carry "WHERE version = <read version>".
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}
