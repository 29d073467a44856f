"""Approval route and step models."""
import enum
import uuid
from decimal import Decimal

from sqlalchemy import Boolean, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base, TimestampMixin, UUIDMixin


class ApproverType(str, enum.Enum):
    user = "user"
    role = "role"
    department_head = "department_head"


class ApprovalRoute(Base, UUIDMixin, TimestampMixin):
    """Department-scoped ordered chain of approval steps."""

    __tablename__ = "approval_routes"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    department_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("departments.id"), nullable=False, index=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_by: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=True
    )

    steps: Mapped[list["ApprovalStep"]] = relationship(
        "ApprovalStep",
        back_populates="route",
        order_by="ApprovalStep.step_number",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class ApprovalStep(Base, UUIDMixin, TimestampMixin):
    """One link in a route, optionally conditioned on the requested amount."""

    __tablename__ = "approval_steps"
    __table_args__ = (
        UniqueConstraint("approval_route_id", "step_number", name="uq_approval_steps_route_step"),
    )

    approval_route_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("approval_routes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    step_number: Mapped[int] = mapped_column(Integer, nullable=False)
    approver_type: Mapped[str] = mapped_column(String(30), nullable=False)  # user, role, department_head
    approver_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=True
    )
    role_name: Mapped[str | None] = mapped_column(String(50), nullable=True)
    department_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("departments.id"), nullable=True
    )
    min_amount: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)
    max_amount: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)
    is_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    can_delegate: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    auto_approve_if_same_user: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    route: Mapped["ApprovalRoute"] = relationship("ApprovalRoute", back_populates="steps")
