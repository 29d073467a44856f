"""Email notification service — console mock for MVP (MAIL_ENABLED=False).

When MAIL_ENABLED is False, email content is printed to logs instead of
being sent via SMTP. Set MAIL_ENABLED=True to wire a real transport.
"""
import logging

from app.core.config import settings

logger = logging.getLogger(__name__)

SUBJECTS = {
    "approval_required": "Action Required: {title}",
    "approval_reminder": "Reminder: {title} has been waiting {days_waiting} day(s)",
    "status_changed": "Your application {title} is now {status}",
}


# ─── Workflow notification email ───

def send_workflow_notification(event, recipient) -> None:
    """Send (or mock-log) the email for a workflow event.

    Args:
        event: WorkflowEvent ORM object (event_type, payload).
        recipient: User ORM object (email, name) or None.
    """
    payload = dict(event.payload or {})
    payload.setdefault("title", "(untitled)")
    payload.setdefault("status", "unknown")
    payload.setdefault("days_waiting", "?")
    subject = SUBJECTS.get(event.event_type, "Approval workflow update: {title}").format(**payload)
    to_address = getattr(recipient, "email", None) or "unknown-recipient@example.com"
    link = f"{settings.FRONTEND_URL.rstrip('/')}/applications/{payload.get('application_id', '')}"

    if not settings.MAIL_ENABLED:
        logger.info(
            "\n"
            "=== WORKFLOW EMAIL ===\n"
            "From: %s <%s>\n"
            "To: %s\n"
            "Subject: %s\n"
            "Open: %s\n"
            "======================",
            settings.MAIL_FROM_NAME,
            settings.MAIL_FROM,
            to_address,
            subject,
            link,
        )
        return

    # Real SMTP path (not implemented in MVP)
    logger.warning(
        "MAIL_ENABLED=True but SMTP transport is not configured. "
        "Falling back to console log for event %s.",
        event.id,
    )
    logger.info("WORKFLOW EMAIL (unsent): to=%s subject=%s link=%s", to_address, subject, link)
