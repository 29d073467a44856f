"""Workflow domain events.

The core records events in workflow_events inside the caller's transaction;
delivery is a separate concern handled by the notification worker. Call
dispatch_events() only after the transaction has committed.
"""
import logging
import uuid
from typing import Any

from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.application import Application
from app.models.workflow_event import EventType, WorkflowEvent

logger = logging.getLogger(__name__)


def record_event(
    db: Session,
    event_type: EventType | str,
    application: Application,
    recipient_id: uuid.UUID | None,
    **payload: Any,
) -> WorkflowEvent:
    """Queue a domain event for ``recipient_id`` in the current transaction."""
    event_type = event_type.value if isinstance(event_type, EventType) else event_type
    event = WorkflowEvent(
        event_type=event_type,
        application_id=application.id,
        recipient_id=recipient_id,
        payload={
            "application_id": str(application.id),
            "title": application.title,
            "status": application.status,
            **{k: (str(v) if isinstance(v, uuid.UUID) else v) for k, v in payload.items()},
        },
    )
    db.add(event)
    return event


def record_status_change(
    db: Session,
    application: Application,
    status_before: str | None,
    action: str,
    actor_id: uuid.UUID | None,
) -> list[WorkflowEvent]:
    """Queue the events that follow an accepted action.

    The applicant hears about every status change; a newly assigned approver
    gets an approval_required event.
    """
    events = [
        record_event(
            db,
            EventType.status_changed,
            application,
            application.applicant_id,
            action=action,
            status_before=status_before,
            actor_id=actor_id,
        )
    ]
    if application.current_approver_id is not None and application.current_approver_id != actor_id:
        events.append(
            record_event(
                db,
                EventType.approval_required,
                application,
                application.current_approver_id,
                step_number=application.current_step_number,
            )
        )
    return events


def dispatch_events(events: list[WorkflowEvent]) -> None:
    """Hand committed events to the notification worker.

    Broker outages are logged, not raised: the event rows stay undispatched
    and are picked up by redeliver_pending_events.
    """
    if not settings.EVENT_DISPATCH_ENABLED or not events:
        return

    from app.workers.notification_tasks import deliver_event

    for event in events:
        try:
            deliver_event.delay(str(event.id))
        except Exception as exc:
            logger.warning("dispatch_events: could not enqueue event %s: %s", event.id, exc)
