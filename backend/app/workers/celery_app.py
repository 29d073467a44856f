from celery import Celery
from celery.schedules import crontab

from app.core.config import settings

celery_app = Celery(
    "workflow_worker",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=[
        "app.workers.notification_tasks",
        "app.workers.reminder_tasks",
    ],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    broker_connection_retry_on_startup=True,
)

celery_app.conf.beat_schedule = {
    "send-approval-reminders-daily": {
        "task": "app.workers.reminder_tasks.send_waiting_reminders",
        "schedule": crontab(hour=9, minute=0),
    },
    "redeliver-pending-events": {
        "task": "app.workers.notification_tasks.redeliver_pending_events",
        "schedule": crontab(minute="*/15"),
    },
}
