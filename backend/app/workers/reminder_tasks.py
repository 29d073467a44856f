"""Celery task for daily approval reminders."""
import logging
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


def queue_reminders(db: Session, now: datetime | None = None) -> dict:
    """Record an approval_reminder for every application waiting too long.

    An application qualifies once days_waiting reaches APPROVAL_REMINDER_DAYS
    and it has a current approver. Deduplicates: one reminder per application
    per day. Returns stats plus the ids of the recorded events.
    """
    from app.core.config import settings
    from app.models.application import Application
    from app.models.workflow_event import EventType, WorkflowEvent
    from app.services import audit as audit_svc
    from app.services import events as events_svc
    from app.services import state_machine

    now = now or datetime.now(timezone.utc)
    today_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    stats = {"reminders": 0, "skipped_dedup": 0, "event_ids": []}

    applications = db.execute(
        select(Application).where(
            Application.status.in_(list(state_machine.AWAITING_DECISION)),
            Application.current_approver_id.isnot(None),
        )
    ).scalars().all()

    recorded = []
    for application in applications:
        waited = audit_svc.days_waiting(application, audit_svc.history_for(db, application.id), now=now)
        if waited is None or waited < settings.APPROVAL_REMINDER_DAYS:
            continue

        existing = db.execute(
            select(func.count(WorkflowEvent.id)).where(
                WorkflowEvent.application_id == application.id,
                WorkflowEvent.event_type == EventType.approval_reminder.value,
                WorkflowEvent.created_at >= today_start,
            )
        ).scalar()
        if existing:
            stats["skipped_dedup"] += 1
            continue

        event = events_svc.record_event(
            db,
            EventType.approval_reminder,
            application,
            application.current_approver_id,
            days_waiting=waited,
        )
        event.created_at = now
        recorded.append(event)
        stats["reminders"] += 1
        logger.info(
            "Reminder: application %s waiting %d day(s) on approver %s",
            application.id, waited, application.current_approver_id,
        )

    db.commit()
    stats["event_ids"] = [str(event.id) for event in recorded]
    events_svc.dispatch_events(recorded)
    return stats


@celery_app.task(name="app.workers.reminder_tasks.send_waiting_reminders")
def send_waiting_reminders():
    """Runs daily at 9 AM UTC."""
    logger.info("send_waiting_reminders: starting daily reminder sweep")
    from app.db.session import SessionLocal

    try:
        with SessionLocal() as db:
            stats = queue_reminders(db)
        logger.info(
            "send_waiting_reminders: complete, reminders=%d, dedup_skipped=%d",
            stats["reminders"], stats["skipped_dedup"],
        )
        return stats
    except Exception as exc:
        logger.exception("send_waiting_reminders failed: %s", exc)
        return {"status": "error", "error": str(exc)}
