"""Application endpoints.

  POST   /applications                  — create a draft
  GET    /applications                  — filtered list
  GET    /applications/{id}             — detail
  PATCH  /applications/{id}             — edit (applicant, draft/returned only)
  DELETE /applications/{id}             — delete with history
  POST   /applications/{id}/submit      — route to the first approver
  POST   /applications/{id}/resubmit    — resubmit after return
  GET    /applications/{id}/history     — audit trail with consistency check
  GET    /applications/{id}/history/export — audit trail as CSV
"""
import csv
import io
import uuid
from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from app.core.deps import CurrentUser, get_current_user
from app.db.session import get_session
from app.models.application import Application
from app.schemas.application import (
    ApplicationIn,
    ApplicationListResponse,
    ApplicationOut,
    ApplicationUpdate,
)
from app.schemas.approval import ApprovalActionResponse, ApprovalHistoryResponse, ApprovalLogOut
from app.services import applications as applications_svc
from app.services import approval as approval_svc
from app.services import audit as audit_svc

router = APIRouter()


def _ensure_visible(application: Application, user: CurrentUser) -> None:
    """Applicants see their own; approvers and admins see everything."""
    if user.is_admin or user.role == "APPROVER":
        return
    if user.id in (application.applicant_id, application.current_approver_id):
        return
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="You do not have access to this application.",
    )


def _action_response(result: approval_svc.ActionResult) -> ApprovalActionResponse:
    return ApprovalActionResponse(
        application=ApplicationOut.model_validate(result.application),
        entry=ApprovalLogOut.model_validate(result.entry),
        auto_approvals=[ApprovalLogOut.model_validate(e) for e in result.auto_approvals],
        replayed=result.replayed,
    )


# ─── CRUD ───

@router.post(
    "",
    response_model=ApplicationOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create a draft application",
)
def create_application(
    body: ApplicationIn,
    db: Annotated[Session, Depends(get_session)],
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
):
    application = applications_svc.create_application(
        db,
        applicant_id=current_user.id,
        type=body.type,
        title=body.title,
        department_id=body.department_id,
        total_amount=body.total_amount,
        priority=body.priority,
        metadata=body.metadata,
    )
    return ApplicationOut.model_validate(application)


@router.get("", response_model=ApplicationListResponse, summary="List applications")
def list_applications(
    db: Annotated[Session, Depends(get_session)],
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    department_id: uuid.UUID | None = None,
    status_filter: Annotated[list[str] | None, Query(alias="status")] = None,
    applicant_id: uuid.UUID | None = None,
    current_approver_id: uuid.UUID | None = None,
    created_from: datetime | None = None,
    created_to: datetime | None = None,
    search: str | None = None,
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
    offset: Annotated[int, Query(ge=0)] = 0,
):
    """Employees only ever see their own applications."""
    if not (current_user.is_admin or current_user.role == "APPROVER"):
        applicant_id = current_user.id

    rows, total = applications_svc.list_applications(
        db,
        department_id=department_id,
        statuses=status_filter,
        applicant_id=applicant_id,
        current_approver_id=current_approver_id,
        created_from=created_from,
        created_to=created_to,
        search=search,
        limit=limit,
        offset=offset,
    )
    return ApplicationListResponse(
        items=[ApplicationOut.model_validate(a) for a in rows],
        total=total,
    )


@router.get("/{application_id}", response_model=ApplicationOut, summary="Get an application")
def get_application(
    application_id: uuid.UUID,
    db: Annotated[Session, Depends(get_session)],
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
):
    application = applications_svc.get_application(db, application_id)
    _ensure_visible(application, current_user)
    return ApplicationOut.model_validate(application)


@router.patch("/{application_id}", response_model=ApplicationOut, summary="Edit a draft or returned application")
def update_application(
    application_id: uuid.UUID,
    body: ApplicationUpdate,
    db: Annotated[Session, Depends(get_session)],
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
):
    application = applications_svc.update_application(
        db, application_id, current_user.id, body.model_dump(exclude_unset=True)
    )
    return ApplicationOut.model_validate(application)


@router.delete(
    "/{application_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete an application and its history",
)
def delete_application(
    application_id: uuid.UUID,
    db: Annotated[Session, Depends(get_session)],
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
):
    applications_svc.delete_application(
        db, application_id, current_user.id, is_admin=current_user.is_admin
    )


# ─── Submission ───

@router.post("/{application_id}/submit", response_model=ApprovalActionResponse, summary="Submit a draft")
def submit_application(
    application_id: uuid.UUID,
    db: Annotated[Session, Depends(get_session)],
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
):
    return _action_response(approval_svc.submit_application(db, application_id, current_user.id))


@router.post(
    "/{application_id}/resubmit",
    response_model=ApprovalActionResponse,
    summary="Resubmit a returned application",
)
def resubmit_application(
    application_id: uuid.UUID,
    db: Annotated[Session, Depends(get_session)],
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
):
    return _action_response(approval_svc.resubmit_application(db, application_id, current_user.id))


# ─── History ───

@router.get(
    "/{application_id}/history",
    response_model=ApprovalHistoryResponse,
    summary="Approval history, oldest first",
)
def get_history(
    application_id: uuid.UUID,
    db: Annotated[Session, Depends(get_session)],
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
):
    application = applications_svc.get_application(db, application_id)
    _ensure_visible(application, current_user)
    entries = audit_svc.history_for(db, application_id)
    return ApprovalHistoryResponse(
        application_id=application.id,
        status=application.status,
        entries=[ApprovalLogOut.model_validate(e) for e in entries],
        is_consistent=audit_svc.is_valid_walk(entries),
        days_waiting=audit_svc.days_waiting(application, entries),
    )


@router.get("/{application_id}/history/export", summary="Export approval history as CSV")
def export_history(
    application_id: uuid.UUID,
    db: Annotated[Session, Depends(get_session)],
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
):
    """Columns: sequence, created_at, action, approver_id, status_before, status_after, step_number, is_system, comment"""
    application = applications_svc.get_application(db, application_id)
    _ensure_visible(application, current_user)

    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow([
        "sequence", "created_at", "action", "approver_id", "status_before",
        "status_after", "step_number", "is_system", "comment",
    ])
    for entry in audit_svc.history_for(db, application_id):
        writer.writerow([
            entry.sequence,
            entry.created_at.isoformat() if entry.created_at else "",
            entry.action,
            str(entry.approver_id) if entry.approver_id else "",
            entry.status_before or "",
            entry.status_after,
            entry.step_number if entry.step_number is not None else "",
            "true" if entry.is_system else "false",
            entry.comment or "",
        ])

    output.seek(0)
    return StreamingResponse(
        iter([output.getvalue()]),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename=application-{application_id}-history.csv"},
    )
