"""Approval action processor.

Applies submissions and approver decisions to applications. Each call
validates the action against the lifecycle state machine, appends exactly one
audit entry for the caller's action (plus one system entry per auto-approved
step), updates the application row and commits, all in one transaction.

The application row carries a version counter; if another request changed the
row after we read it, the UPDATE matches nothing, the transaction rolls back
(taking the audit entry with it) and StaleStateError is raised.

All functions accept a sync SQLAlchemy Session — safe to call from
Celery tasks as well as the API layer.
"""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.core.config import settings
from app.core.exceptions import (
    NotFoundError,
    PersistenceError,
    StaleStateError,
    UnauthorizedActionError,
    ValidationError,
    WorkflowError,
)
from app.models.application import Application, ApplicationStatus
from app.models.approval_log import ApprovalAction, ApprovalLog
from app.models.approval_route import ApprovalRoute
from app.models.user import User
from app.services import audit as audit_svc
from app.services import events as events_svc
from app.services import routing
from app.services import state_machine

logger = logging.getLogger(__name__)


@dataclass
class ActionResult:
    """Outcome of an accepted action."""

    application: Application
    entry: ApprovalLog
    auto_approvals: list[ApprovalLog] = field(default_factory=list)
    replayed: bool = False


# ─── Process approval decision ───

def process_action(
    db: Session,
    application_id: uuid.UUID,
    actor_id: uuid.UUID,
    action: str,
    comment: str | None = None,
    next_approver_id: uuid.UUID | None = None,
    expected_status: str | None = None,
    idempotency_key: str | None = None,
) -> ActionResult:
    """Apply an approver's decision to an application.

    Args:
        db: Sync SQLAlchemy session.
        application_id: Application to act on.
        actor_id: Authenticated acting user (from the identity provider).
        action: "approve", "reject", "return", "hold" or "resume".
        comment: Optional decision comment; becomes rejection_reason on reject.
        next_approver_id: For "hold", who should pick it up next (None clears
            the approver). For "resume", who should decide next. Either way a
            step without can_delegate only accepts its own approver.
        expected_status: Status the caller based the decision on. If the stored
            status differs the call fails with StaleStateError.
        idempotency_key: Retry key. Repeating a call with the same key, actor
            and action returns the originally recorded result instead of
            acting twice.

    Returns:
        ActionResult with the updated application and the appended entries.

    Raises:
        NotFoundError: no such application, or next_approver_id is not an
            active user.
        InvalidTransitionError: action illegal for the current status.
        StaleStateError: the application changed concurrently.
        UnauthorizedActionError: actor is not the designated current approver,
            or the step does not allow delegation.
        ValidationError: unknown action, missing input, or a reused key.
        PersistenceError: the write failed; nothing was applied.
    """
    state_machine.validate_action(action)
    if action in state_machine.SUBMISSION_ACTIONS:
        raise ValidationError(f"Use submit_application/resubmit_application for '{action}'.")

    application = _load_application(db, application_id)

    previous = _previous_entry(db, application, idempotency_key)
    if previous is not None and previous.approver_id == actor_id and previous.action == action:
        logger.info("Replaying idempotent action %s on application %s", idempotency_key, application.id)
        return ActionResult(application=application, entry=previous, replayed=True)

    current = application.status
    if expected_status is not None and expected_status != current:
        raise StaleStateError(
            f"Application {application_id} is '{current}', not '{expected_status}'; re-fetch and retry.",
            current_status=current,
            action=action,
        )
    state_machine.assert_transition(current, action)

    if action == ApprovalAction.resume.value:
        _authorize_resume(db, application, actor_id)
    elif application.current_approver_id != actor_id:
        logger.warning(
            "Rejected %s on application %s: actor %s is not current approver %s",
            action, application_id, actor_id, application.current_approver_id,
        )
        raise UnauthorizedActionError(
            f"User {actor_id} is not the current approver for application {application_id}."
        )

    if previous is not None:
        raise ValidationError(
            f"Idempotency key '{idempotency_key}' was already used for a different action."
        )
    if next_approver_id is not None:
        _require_active_user(db, next_approver_id)

    now = datetime.now(timezone.utc)

    try:
        route = routing.load_route(db, application.approval_route_id)
        auto_entries: list[ApprovalLog] = []

        if action == ApprovalAction.approve.value:
            following = (
                routing.next_step(db, route, application, application.current_step_number)
                if route is not None
                else None
            )
            status_after = state_machine.next_status(current, action, has_next_step=following is not None)
            entry = _append(db, application, action, current, status_after, actor_id, comment, idempotency_key, now)
            application.status = status_after
            if following is None:
                _finalize_approved(application, now)
            else:
                auto_entries = _route_to(db, application, route, following, now)

        elif action == ApprovalAction.reject.value:
            status_after = state_machine.next_status(current, action)
            entry = _append(db, application, action, current, status_after, actor_id, comment, idempotency_key, now)
            application.status = status_after
            application.rejection_reason = comment
            application.current_approver_id = None
            application.current_step_number = None

        elif action == ApprovalAction.return_.value:
            status_after = state_machine.next_status(current, action)
            entry = _append(db, application, action, current, status_after, actor_id, comment, idempotency_key, now)
            application.status = status_after
            application.current_approver_id = None
            application.current_step_number = None

        elif action == ApprovalAction.hold.value:
            _check_delegation(db, application, route, next_approver_id)
            status_after = state_machine.next_status(current, action)
            entry = _append(db, application, action, current, status_after, actor_id, comment, idempotency_key, now)
            application.status = status_after
            application.current_approver_id = next_approver_id

        else:  # resume
            approver_id = _resume_target(db, application, route, next_approver_id)
            status_after = state_machine.next_status(current, action)
            entry = _append(db, application, action, current, status_after, actor_id, comment, idempotency_key, now)
            application.status = status_after
            application.current_approver_id = approver_id

        events = events_svc.record_status_change(db, application, current, action, actor_id)
        db.commit()
    except WorkflowError:
        db.rollback()
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        raise _storage_error(exc, application_id, action, current) from exc

    events_svc.dispatch_events(events)
    logger.info(
        "Approval action: application=%s action=%s actor=%s %s->%s auto_approved=%d",
        application_id, action, actor_id, current, application.status, len(auto_entries),
    )
    return ActionResult(application=application, entry=entry, auto_approvals=auto_entries)


# ─── Submission ───

def submit_application(db: Session, application_id: uuid.UUID, actor_id: uuid.UUID) -> ActionResult:
    """Submit a draft: route it to the first applicable step of its department's route."""
    return _submit(db, application_id, actor_id, ApprovalAction.submit.value)


def resubmit_application(db: Session, application_id: uuid.UUID, actor_id: uuid.UUID) -> ActionResult:
    """Resubmit a returned application; routing restarts from the first step."""
    return _submit(db, application_id, actor_id, ApprovalAction.resubmit.value)


def _submit(db: Session, application_id: uuid.UUID, actor_id: uuid.UUID, action: str) -> ActionResult:
    application = _load_application(db, application_id)
    current = application.status
    state_machine.assert_transition(current, action)
    if application.applicant_id != actor_id:
        raise UnauthorizedActionError(
            f"Only the applicant may {action} application {application_id}."
        )

    route = routing.resolve_route(db, application.department_id)
    if route is None:
        raise NotFoundError(
            f"No active approval route for department {application.department_id}."
        )

    now = datetime.now(timezone.utc)
    try:
        first = routing.next_step(db, route, application)
        if first is None:
            raise NotFoundError(
                f"Approval route {route.id} has no step applicable to amount {application.total_amount}."
            )
        status_after = ApplicationStatus.pending.value
        entry = _append(db, application, action, current, status_after, actor_id, None, None, now)
        application.status = status_after
        application.approval_route_id = route.id
        application.submitted_at = application.submitted_at or now
        application.approved_at = None
        application.rejection_reason = None
        auto_entries = _route_to(db, application, route, first, now)

        events = events_svc.record_status_change(db, application, current, action, actor_id)
        db.commit()
    except WorkflowError:
        db.rollback()
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        raise _storage_error(exc, application_id, action, current) from exc

    events_svc.dispatch_events(events)
    logger.info(
        "Application %s: %s via route %s -> step %s approver %s",
        action, application_id, route.id, application.current_step_number, application.current_approver_id,
    )
    return ActionResult(application=application, entry=entry, auto_approvals=auto_entries)


# ─── Listing ───

def get_pending_for_approver(db: Session, approver_id: uuid.UUID) -> list[Application]:
    """Return applications awaiting a decision from ``approver_id``, newest first."""
    stmt = select(Application).where(
        Application.current_approver_id == approver_id,
        Application.status.in_(list(state_machine.AWAITING_DECISION)),
    ).order_by(Application.created_at.desc())

    return list(db.execute(stmt).scalars().all())


# ─── Internal helpers ───

def _load_application(db: Session, application_id: uuid.UUID) -> Application:
    application = db.execute(
        select(Application).where(Application.id == application_id)
    ).scalars().first()
    if application is None:
        raise NotFoundError(f"Application {application_id} not found.")
    return application


def _append(
    db: Session,
    application: Application,
    action: str,
    status_before: str,
    status_after: str,
    actor_id: uuid.UUID | None,
    comment: str | None,
    idempotency_key: str | None,
    now: datetime,
) -> ApprovalLog:
    return audit_svc.append(
        db=db,
        application_id=application.id,
        action=action,
        status_before=status_before,
        status_after=status_after,
        approver_id=actor_id,
        comment=comment,
        step_number=application.current_step_number,
        idempotency_key=idempotency_key,
        created_at=now,
    )


def _route_to(
    db: Session,
    application: Application,
    route: ApprovalRoute,
    resolved: routing.ResolvedStep | None,
    now: datetime,
) -> list[ApprovalLog]:
    """Assign ``resolved`` as the active step, auto-approving self-approval steps.

    Each auto-approved step gets a system audit entry. If the route runs out,
    the application is approved.
    """
    auto_entries: list[ApprovalLog] = []
    while (
        resolved is not None
        and resolved.step.auto_approve_if_same_user
        and resolved.approver_id == application.applicant_id
    ):
        following = routing.next_step(db, route, application, resolved.step_number)
        status_after = state_machine.next_status(
            application.status, ApprovalAction.approve.value, has_next_step=following is not None
        )
        auto_entries.append(
            audit_svc.append(
                db=db,
                application_id=application.id,
                action=ApprovalAction.approve.value,
                status_before=application.status,
                status_after=status_after,
                approver_id=None,
                comment=settings.AUTO_APPROVE_COMMENT,
                step_number=resolved.step_number,
                is_system=True,
                created_at=now,
            )
        )
        application.status = status_after
        logger.info(
            "Auto-approved step %d of application %s (applicant is the approver)",
            resolved.step_number, application.id,
        )
        resolved = following

    if resolved is None:
        _finalize_approved(application, now)
    else:
        application.current_step_number = resolved.step_number
        application.current_approver_id = resolved.approver_id
    return auto_entries


def _finalize_approved(application: Application, now: datetime) -> None:
    application.status = ApplicationStatus.approved.value
    application.approved_at = now
    application.current_approver_id = None
    application.current_step_number = None


def _previous_entry(db: Session, application: Application, idempotency_key: str | None) -> ApprovalLog | None:
    """Entry already recorded under ``idempotency_key`` for this application, if any."""
    if not idempotency_key:
        return None
    previous = audit_svc.find_by_idempotency_key(db, idempotency_key)
    if previous is not None and previous.application_id != application.id:
        raise ValidationError(f"Idempotency key '{idempotency_key}' was already used for another application.")
    return previous


def _is_unique_violation(exc: IntegrityError) -> bool:
    pgcode = getattr(exc.orig, "pgcode", None)
    if pgcode is not None:
        return pgcode == "23505"
    message = str(exc.orig).lower()
    return "unique constraint" in message or "duplicate key" in message


def _storage_error(
    exc: SQLAlchemyError,
    application_id: uuid.UUID,
    action: str,
    current: str,
) -> WorkflowError:
    """Map a failed write to the error the caller should see.

    A version mismatch or a duplicate log sequence/idempotency key means
    another request won the race; anything else is a storage failure.
    """
    if isinstance(exc, StaleDataError) or (isinstance(exc, IntegrityError) and _is_unique_violation(exc)):
        logger.warning("Concurrent update on application %s during %s: %s", application_id, action, exc)
        return StaleStateError(
            f"Application {application_id} was modified concurrently; re-fetch and retry.",
            current_status=current,
            action=action,
        )
    logger.exception("Persisting %s on application %s failed", action, application_id)
    return PersistenceError(
        f"Failed to apply '{action}' to application {application_id}; nothing was applied.",
        stage="apply_action",
    )


def _require_active_user(db: Session, user_id: uuid.UUID) -> None:
    user = db.execute(select(User).where(User.id == user_id)).scalars().first()
    if user is None or not user.is_active:
        raise NotFoundError(f"Approver {user_id} does not exist or is inactive.")


def _check_delegation(
    db: Session,
    application: Application,
    route: ApprovalRoute | None,
    next_approver_id: uuid.UUID | None,
) -> None:
    """A step without can_delegate may only be handed to its own resolved approver."""
    step = routing.find_step(route, application.current_step_number)
    if next_approver_id is None or step is None or step.can_delegate:
        return
    if next_approver_id != routing.resolve_step_approver(db, step, application):
        raise UnauthorizedActionError(
            f"Step {step.step_number} does not allow delegation to another approver."
        )


def _is_admin(db: Session, user_id: uuid.UUID) -> bool:
    user = db.execute(select(User).where(User.id == user_id)).scalars().first()
    return user is not None and user.is_active and user.role == "ADMIN"


def _authorize_resume(db: Session, application: Application, actor_id: uuid.UUID) -> None:
    """Resume is allowed to the assigned approver; with none assigned, to whoever
    placed the hold, or an admin."""
    if application.current_approver_id is not None:
        if application.current_approver_id == actor_id:
            return
    else:
        last_hold = next(
            (
                e for e in reversed(audit_svc.history_for(db, application.id))
                if e.action == ApprovalAction.hold.value
            ),
            None,
        )
        if last_hold is not None and last_hold.approver_id == actor_id:
            return
    if _is_admin(db, actor_id):
        return
    raise UnauthorizedActionError(
        f"User {actor_id} may not resume application {application.id}."
    )


def _resume_target(
    db: Session,
    application: Application,
    route: ApprovalRoute | None,
    next_approver_id: uuid.UUID | None,
) -> uuid.UUID:
    """Who decides after resume: explicit choice, else the held approver, else the step's approver."""
    if next_approver_id is not None:
        _check_delegation(db, application, route, next_approver_id)
        return next_approver_id
    step = routing.find_step(route, application.current_step_number)
    if application.current_approver_id is not None:
        return application.current_approver_id
    if step is not None:
        return routing.resolve_step_approver(db, step, application)
    raise ValidationError("next_approver_id is required to resume this application.")
