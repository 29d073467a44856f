import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    event,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.core.exceptions import PersistenceError
from app.db.base import Base, UUIDMixin, utcnow


class ApprovalAction(str, enum.Enum):
    approve = "approve"
    reject = "reject"
    return_ = "return"
    hold = "hold"
    resume = "resume"
    submit = "submit"
    resubmit = "resubmit"


class ApprovalLog(Base, UUIDMixin):
    """Immutable decision history for an application.

    Ordered by (created_at, sequence). approver_id is NULL for entries written
    by the system actor (auto-approval).
    """

    __tablename__ = "approval_logs"
    __table_args__ = (
        UniqueConstraint("application_id", "sequence", name="uq_approval_logs_application_sequence"),
    )

    application_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("applications.id", ondelete="CASCADE"), nullable=False, index=True
    )
    approver_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=True, index=True
    )
    action: Mapped[str] = mapped_column(String(20), nullable=False)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    status_before: Mapped[str | None] = mapped_column(String(20), nullable=True)
    status_after: Mapped[str] = mapped_column(String(20), nullable=False)
    step_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    is_system: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    idempotency_key: Mapped[str | None] = mapped_column(String(128), nullable=True, unique=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, index=True
    )


@event.listens_for(ApprovalLog, "before_update")
def _reject_log_update(mapper, connection, target):
    raise PersistenceError(
        f"approval_logs is append-only; refusing to update entry {target.id}",
        stage="update_log",
    )
