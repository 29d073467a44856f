"""Celery tasks that deliver recorded workflow events."""
import logging
import uuid
from datetime import datetime, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.workers.celery_app import celery_app

logger = logging.getLogger(__name__)

# Events younger than this are still expected to arrive via deliver_event.
REDELIVERY_GRACE = timedelta(minutes=10)


def deliver(db: Session, event_id: uuid.UUID) -> bool:
    """Send the email for one event and mark it dispatched.

    Returns False when the event is missing or was already dispatched.
    """
    from app.models.user import User
    from app.models.workflow_event import WorkflowEvent
    from app.services import email as email_svc

    event = db.execute(
        select(WorkflowEvent).where(WorkflowEvent.id == event_id)
    ).scalars().first()
    if event is None:
        logger.warning("deliver: event %s not found", event_id)
        return False
    if event.dispatched_at is not None:
        logger.info("deliver: event %s already dispatched at %s", event_id, event.dispatched_at)
        return False

    recipient = None
    if event.recipient_id is not None:
        recipient = db.execute(
            select(User).where(User.id == event.recipient_id)
        ).scalars().first()

    email_svc.send_workflow_notification(event, recipient)
    event.dispatched_at = datetime.now(timezone.utc)
    db.commit()
    logger.info("deliver: %s event %s sent to %s", event.event_type, event_id, event.recipient_id)
    return True


def undispatched_event_ids(db: Session, older_than: datetime) -> list[uuid.UUID]:
    from app.models.workflow_event import WorkflowEvent

    return list(
        db.execute(
            select(WorkflowEvent.id)
            .where(
                WorkflowEvent.dispatched_at.is_(None),
                WorkflowEvent.created_at <= older_than,
            )
            .order_by(WorkflowEvent.created_at.asc())
        ).scalars().all()
    )


@celery_app.task(
    name="app.workers.notification_tasks.deliver_event",
    bind=True,
    max_retries=3,
    default_retry_delay=60,
)
def deliver_event(self, event_id: str):
    """Deliver a single workflow event (enqueued after the action commits)."""
    from app.db.session import SessionLocal

    try:
        with SessionLocal() as db:
            return {"event_id": event_id, "delivered": deliver(db, uuid.UUID(event_id))}
    except Exception as exc:
        logger.exception("deliver_event %s failed: %s", event_id, exc)
        raise self.retry(exc=exc)


@celery_app.task(name="app.workers.notification_tasks.redeliver_pending_events")
def redeliver_pending_events():
    """Pick up events whose enqueue failed (broker outage) and deliver them."""
    from app.db.session import SessionLocal

    try:
        cutoff = datetime.now(timezone.utc) - REDELIVERY_GRACE
        delivered = 0
        with SessionLocal() as db:
            for event_id in undispatched_event_ids(db, cutoff):
                if deliver(db, event_id):
                    delivered += 1
        logger.info("redeliver_pending_events: delivered=%d", delivered)
        return {"delivered": delivered}
    except Exception as exc:
        logger.exception("redeliver_pending_events failed: %s", exc)
        return {"status": "error", "error": str(exc)}
