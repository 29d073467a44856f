"""Approval audit log — append-only writes to approval_logs, ordered reads and
the timing metrics derived from them."""
import logging
import math
import uuid
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.models.application import Application
from app.models.approval_log import ApprovalLog
from app.services import state_machine

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400


def append(
    db: Session,
    application_id: uuid.UUID,
    action: str,
    status_before: str | None,
    status_after: str,
    approver_id: uuid.UUID | None = None,
    comment: str | None = None,
    step_number: int | None = None,
    is_system: bool = False,
    idempotency_key: str | None = None,
    created_at: datetime | None = None,
) -> ApprovalLog:
    """Write a single audit entry.

    Args:
        db: Sync SQLAlchemy session. The caller controls the transaction.
        application_id: Application the decision applies to.
        action: approve, reject, return, hold, resume, submit or resubmit.
        status_before: Application status immediately before the action.
        status_after: Application status after the action.
        approver_id: Acting user; None for the system actor.
        comment: Free-text comment from the actor.
        step_number: Route step the decision satisfied, if any.
        is_system: True for entries synthesised by the workflow (auto-approval).
        idempotency_key: Caller-supplied retry key; unique across the table.
        created_at: Explicit timestamp (defaults to now, UTC).
    """
    sequence = (
        db.execute(
            select(func.coalesce(func.max(ApprovalLog.sequence), 0)).where(
                ApprovalLog.application_id == application_id
            )
        ).scalar_one()
        + 1
    )
    entry = ApprovalLog(
        application_id=application_id,
        approver_id=approver_id,
        action=action,
        comment=comment,
        status_before=status_before,
        status_after=status_after,
        step_number=step_number,
        sequence=sequence,
        is_system=is_system,
        idempotency_key=idempotency_key,
        created_at=created_at or datetime.now(timezone.utc),
    )
    db.add(entry)
    db.flush()  # get id without committing; caller controls the transaction
    logger.debug(
        "Audit: application=%s #%d %s %s->%s", application_id, sequence, action, status_before, status_after
    )
    return entry


def history_for(db: Session, application_id: uuid.UUID) -> list[ApprovalLog]:
    """Return entries for an application, oldest first (creation time, then sequence)."""
    stmt = (
        select(ApprovalLog)
        .where(ApprovalLog.application_id == application_id)
        .order_by(ApprovalLog.created_at.asc(), ApprovalLog.sequence.asc())
    )
    return list(db.execute(stmt).scalars().all())


def find_by_idempotency_key(db: Session, idempotency_key: str) -> ApprovalLog | None:
    # Keys are unique across the whole table, not per application.
    return db.execute(
        select(ApprovalLog).where(ApprovalLog.idempotency_key == idempotency_key)
    ).scalars().first()


def is_valid_walk(entries: list[ApprovalLog]) -> bool:
    """True if ``entries`` form a legal walk of the lifecycle state machine.

    Each entry must be a legal (status_before, action, status_after) transition
    and start where the previous entry ended.
    """
    previous_after: str | None = None
    for index, entry in enumerate(entries):
        if index > 0 and entry.status_before != previous_after:
            return False
        if not state_machine.is_legal_step(entry.status_before, entry.action, entry.status_after):
            return False
        previous_after = entry.status_after
    return True


# ─── Timing metrics ───

def _as_utc(value: datetime) -> datetime:
    # Some backends (SQLite) hand back naive datetimes.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _ceil_days(start: datetime, end: datetime) -> int:
    seconds = (_as_utc(end) - _as_utc(start)).total_seconds()
    return max(0, math.ceil(seconds / SECONDS_PER_DAY))


def days_waiting(
    application: Application,
    history: list[ApprovalLog],
    now: datetime | None = None,
) -> int | None:
    """Whole days since the application entered its current awaiting state.

    Returns None when the application is not in flight.
    """
    if application.status not in state_machine.IN_FLIGHT:
        return None
    entered_at = None
    for entry in reversed(history):
        if entry.status_after == application.status:
            entered_at = entry.created_at
            break
    if entered_at is None:
        entered_at = application.submitted_at or application.created_at
    return _ceil_days(entered_at, now or datetime.now(timezone.utc))


def processing_time_days(application: Application, history: list[ApprovalLog]) -> int | None:
    """Whole days between first submission and terminal resolution; None if unresolved."""
    if application.status not in state_machine.TERMINAL:
        return None
    started_at = application.submitted_at
    if started_at is None:
        first_submit = next((e for e in history if e.action == "submit"), None)
        started_at = first_submit.created_at if first_submit else None
    resolved_at = None
    for entry in reversed(history):
        if entry.status_after in state_machine.TERMINAL:
            resolved_at = entry.created_at
            break
    if resolved_at is None:
        resolved_at = application.approved_at
    if started_at is None or resolved_at is None:
        return None
    return _ceil_days(started_at, resolved_at)


def average_processing_time(
    db: Session, department_id: uuid.UUID | None = None
) -> tuple[float, int]:
    """Mean processing time (days) over terminal applications, with sample size.

    Returns (0.0, 0) when nothing has been resolved yet.
    """
    stmt = select(Application).where(Application.status.in_(list(state_machine.TERMINAL)))
    if department_id is not None:
        stmt = stmt.where(Application.department_id == department_id)
    applications = list(db.execute(stmt).scalars().all())

    durations: list[int] = []
    for application in applications:
        days = processing_time_days(application, history_for(db, application.id))
        if days is not None:
            durations.append(days)

    if not durations:
        return 0.0, 0
    return sum(durations) / len(durations), len(durations)
