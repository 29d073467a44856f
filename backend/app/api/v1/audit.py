"""Audit metrics endpoints."""
import uuid
from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.deps import CurrentUser, require_role
from app.db.session import get_session
from app.schemas.approval import ProcessingTimeResponse
from app.services import audit as audit_svc

router = APIRouter()


@router.get(
    "/processing-time",
    response_model=ProcessingTimeResponse,
    summary="Average days from submission to approval or rejection",
)
def processing_time(
    db: Annotated[Session, Depends(get_session)],
    current_user: Annotated[CurrentUser, Depends(require_role("APPROVER", "ADMIN"))],
    department_id: uuid.UUID | None = None,
):
    average, sample_size = audit_svc.average_processing_time(db, department_id)
    return ProcessingTimeResponse(
        department_id=department_id,
        average_processing_days=round(average, 2),
        sample_size=sample_size,
    )
