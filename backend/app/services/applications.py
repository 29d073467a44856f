"""Application records: applicant-side CRUD and filtered listing.

Lifecycle changes (submit, decisions) go through app.services.approval; this
module only edits the request itself while the applicant still owns it.
"""
import logging
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import (
    NotFoundError,
    PersistenceError,
    UnauthorizedActionError,
    ValidationError,
)
from app.models.application import Application, ApplicationStatus, ApplicationType, Priority
from app.models.approval_log import ApprovalLog
from app.models.department import Department
from app.models.workflow_event import WorkflowEvent
from app.services import state_machine

logger = logging.getLogger(__name__)

APPLICATION_TYPES = frozenset(t.value for t in ApplicationType)
PRIORITIES = frozenset(p.value for p in Priority)
UPDATABLE_FIELDS = ("title", "department_id", "priority", "total_amount", "metadata")


def _check_department(db: Session, department_id: uuid.UUID | None) -> None:
    if department_id is None:
        raise ValidationError("department_id is required.")
    exists = db.execute(
        select(Department.id).where(Department.id == department_id)
    ).scalars().first()
    if exists is None:
        raise ValidationError(f"Department {department_id} does not exist.")


def _check_priority(priority: str) -> None:
    if priority not in PRIORITIES:
        raise ValidationError(
            f"Invalid priority '{priority}'. Must be one of: {', '.join(sorted(PRIORITIES))}."
        )


def _check_amount(amount: Decimal | None) -> None:
    if amount is not None and amount < 0:
        raise ValidationError("total_amount must not be negative.")


# ─── Create / read / update / delete ───

def create_application(
    db: Session,
    applicant_id: uuid.UUID,
    type: str,
    title: str | None,
    department_id: uuid.UUID | None,
    total_amount: Decimal | None = None,
    priority: str = Priority.normal.value,
    metadata: dict | None = None,
) -> Application:
    """Create a draft application owned by ``applicant_id``."""
    if type not in APPLICATION_TYPES:
        raise ValidationError(
            f"Invalid application type '{type}'. Must be one of: {', '.join(sorted(APPLICATION_TYPES))}."
        )
    if not title or not title.strip():
        raise ValidationError("title is required.")
    _check_priority(priority)
    _check_amount(total_amount)
    _check_department(db, department_id)

    application = Application(
        type=type,
        title=title.strip(),
        department_id=department_id,
        applicant_id=applicant_id,
        total_amount=total_amount,
        priority=priority,
        status=ApplicationStatus.draft.value,
        extra=metadata,
    )
    try:
        db.add(application)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("create_application failed for applicant %s", applicant_id)
        raise PersistenceError("Failed to create application.", stage="insert_application") from exc

    db.refresh(application)
    logger.info("Created %s application %s for applicant %s", type, application.id, applicant_id)
    return application


def get_application(db: Session, application_id: uuid.UUID) -> Application:
    application = db.execute(
        select(Application).where(Application.id == application_id)
    ).scalars().first()
    if application is None:
        raise NotFoundError(f"Application {application_id} not found.")
    return application


def update_application(
    db: Session,
    application_id: uuid.UUID,
    actor_id: uuid.UUID,
    fields: dict[str, Any],
) -> Application:
    """Edit a draft or returned application. Only the applicant may edit."""
    unknown = set(fields) - set(UPDATABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Cannot update application field(s): {', '.join(sorted(unknown))}.")

    application = get_application(db, application_id)
    if application.applicant_id != actor_id:
        raise UnauthorizedActionError(f"Only the applicant may edit application {application_id}.")
    if application.status not in state_machine.APPLICANT_EDITABLE:
        raise ValidationError(
            f"Application {application_id} is '{application.status}' and can no longer be edited."
        )

    if "title" in fields and not (fields["title"] or "").strip():
        raise ValidationError("title is required.")
    if "priority" in fields:
        _check_priority(fields["priority"])
    if "total_amount" in fields:
        _check_amount(fields["total_amount"])
    if "department_id" in fields:
        _check_department(db, fields["department_id"])

    for field, value in fields.items():
        if field == "metadata":
            application.extra = value
        elif field == "title":
            application.title = value.strip()
        else:
            setattr(application, field, value)

    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("update_application %s failed", application_id)
        raise PersistenceError(
            f"Failed to update application {application_id}.", stage="update_application"
        ) from exc

    db.refresh(application)
    logger.info("Updated application %s fields=%s", application_id, sorted(fields))
    return application


def delete_application(
    db: Session,
    application_id: uuid.UUID,
    actor_id: uuid.UUID,
    is_admin: bool = False,
) -> None:
    """Delete an application with its audit entries and events.

    The applicant may delete while the application is draft or returned;
    an admin may delete at any time.
    """
    application = get_application(db, application_id)
    if not is_admin:
        if application.applicant_id != actor_id:
            raise UnauthorizedActionError(f"Only the applicant may delete application {application_id}.")
        if application.status not in state_machine.APPLICANT_EDITABLE:
            raise ValidationError(
                f"Application {application_id} is '{application.status}' and can no longer be deleted."
            )

    stage = "delete_events"
    try:
        db.execute(delete(WorkflowEvent).where(WorkflowEvent.application_id == application_id))
        stage = "delete_logs"
        db.execute(delete(ApprovalLog).where(ApprovalLog.application_id == application_id))
        stage = "delete_application"
        db.delete(application)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("delete_application %s failed at %s", application_id, stage)
        raise PersistenceError(
            f"Failed to delete application {application_id} ({stage}).", stage=stage
        ) from exc

    logger.info("Deleted application %s (actor=%s admin=%s)", application_id, actor_id, is_admin)


# ─── Listing ───

def list_applications(
    db: Session,
    department_id: uuid.UUID | None = None,
    statuses: list[str] | None = None,
    applicant_id: uuid.UUID | None = None,
    current_approver_id: uuid.UUID | None = None,
    created_from: datetime | None = None,
    created_to: datetime | None = None,
    search: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Application], int]:
    """Filtered page of applications, newest first, with the total match count."""
    filters = []
    if department_id is not None:
        filters.append(Application.department_id == department_id)
    if statuses:
        filters.append(Application.status.in_(statuses))
    if applicant_id is not None:
        filters.append(Application.applicant_id == applicant_id)
    if current_approver_id is not None:
        filters.append(Application.current_approver_id == current_approver_id)
    if created_from is not None:
        filters.append(Application.created_at >= created_from)
    if created_to is not None:
        filters.append(Application.created_at <= created_to)
    if search:
        filters.append(Application.title.ilike(f"%{search}%"))

    total = db.execute(
        select(func.count()).select_from(Application).where(*filters)
    ).scalar_one()
    rows = db.execute(
        select(Application)
        .where(*filters)
        .order_by(Application.created_at.desc(), Application.id.desc())
        .limit(limit)
        .offset(offset)
    ).scalars().all()
    return list(rows), total
