import enum
import uuid
from datetime import datetime

from sqlalchemy import JSON, DateTime, ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base, TimestampMixin, UUIDMixin


class EventType(str, enum.Enum):
    approval_required = "approval_required"
    status_changed = "status_changed"
    approval_reminder = "approval_reminder"


class WorkflowEvent(Base, UUIDMixin, TimestampMixin):
    """Domain event queued for a recipient; delivered by the notification worker."""

    __tablename__ = "workflow_events"

    event_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    application_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("applications.id", ondelete="CASCADE"), nullable=False, index=True
    )
    recipient_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=True, index=True
    )
    payload: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    dispatched_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
