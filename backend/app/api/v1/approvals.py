"""Approval workflow API endpoints (JWT required).

  GET  /approvals                          — applications awaiting my decision
  POST /approvals/{application_id}/actions — approve | reject | return | hold | resume
"""
import logging
import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.deps import CurrentUser, get_current_user
from app.core.limiter import limiter
from app.db.session import get_session
from app.schemas.application import ApplicationOut
from app.schemas.approval import (
    ApprovalActionRequest,
    ApprovalActionResponse,
    ApprovalLogOut,
    PendingApprovalItem,
    PendingApprovalListResponse,
)
from app.services import approval as approval_svc
from app.services import audit as audit_svc

logger = logging.getLogger(__name__)

router = APIRouter()


# ─── In-app: list pending applications ───

@router.get(
    "",
    response_model=PendingApprovalListResponse,
    summary="List applications awaiting the current user's decision",
)
def list_my_approvals(
    db: Annotated[Session, Depends(get_session)],
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
):
    applications = approval_svc.get_pending_for_approver(db, current_user.id)
    items = [
        PendingApprovalItem(
            application=ApplicationOut.model_validate(application),
            days_waiting=audit_svc.days_waiting(application, audit_svc.history_for(db, application.id)),
        )
        for application in applications
    ]
    return PendingApprovalListResponse(items=items, total=len(items))


# ─── In-app: decision ───

@router.post(
    "/{application_id}/actions",
    response_model=ApprovalActionResponse,
    summary="Apply an approval action to an application",
)
@limiter.limit(settings.ACTION_RATE_LIMIT)
def apply_action(
    request: Request,
    application_id: uuid.UUID,
    body: ApprovalActionRequest,
    db: Annotated[Session, Depends(get_session)],
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
):
    result = approval_svc.process_action(
        db,
        application_id=application_id,
        actor_id=current_user.id,
        action=body.action,
        comment=body.comment,
        next_approver_id=body.next_approver_id,
        expected_status=body.expected_status,
        idempotency_key=body.idempotency_key,
    )
    return ApprovalActionResponse(
        application=ApplicationOut.model_validate(result.application),
        entry=ApprovalLogOut.model_validate(result.entry),
        auto_approvals=[ApprovalLogOut.model_validate(e) for e in result.auto_approvals],
        replayed=result.replayed,
    )
