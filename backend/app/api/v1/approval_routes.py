"""Approval route administration endpoints (ADMIN only).

  GET    /approval-routes        — list (filter by department, active_only)
  POST   /approval-routes        — create route with steps
  GET    /approval-routes/{id}   — detail
  PUT    /approval-routes/{id}   — update fields; steps, if given, replace all steps
  DELETE /approval-routes/{id}   — delete route and steps
"""
import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.core.deps import CurrentUser, require_role
from app.db.session import get_session
from app.schemas.approval_route import ApprovalRouteIn, ApprovalRouteOut, ApprovalRouteUpdate
from app.services import route_config

router = APIRouter()

AdminUser = Annotated[CurrentUser, Depends(require_role("ADMIN"))]


@router.get("", response_model=list[ApprovalRouteOut], summary="List approval routes")
def list_routes(
    db: Annotated[Session, Depends(get_session)],
    current_user: AdminUser,
    department_id: uuid.UUID | None = None,
    active_only: bool = False,
):
    routes = route_config.list_routes(db, department_id=department_id, active_only=active_only)
    return [ApprovalRouteOut.model_validate(r) for r in routes]


@router.post(
    "",
    response_model=ApprovalRouteOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create an approval route",
)
def create_route(
    body: ApprovalRouteIn,
    db: Annotated[Session, Depends(get_session)],
    current_user: AdminUser,
):
    route = route_config.create_route(
        db,
        name=body.name,
        department_id=body.department_id,
        steps=body.steps,
        description=body.description,
        is_active=body.is_active,
        created_by=current_user.id,
    )
    return ApprovalRouteOut.model_validate(route)


@router.get("/{route_id}", response_model=ApprovalRouteOut, summary="Get an approval route")
def get_route(
    route_id: uuid.UUID,
    db: Annotated[Session, Depends(get_session)],
    current_user: AdminUser,
):
    return ApprovalRouteOut.model_validate(route_config.get_route(db, route_id))


@router.put("/{route_id}", response_model=ApprovalRouteOut, summary="Update an approval route")
def update_route(
    route_id: uuid.UUID,
    body: ApprovalRouteUpdate,
    db: Annotated[Session, Depends(get_session)],
    current_user: AdminUser,
):
    fields = body.model_dump(exclude_unset=True, exclude={"steps"})
    route = route_config.update_route(db, route_id, fields=fields, steps=body.steps)
    return ApprovalRouteOut.model_validate(route)


@router.delete("/{route_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete an approval route")
def delete_route(
    route_id: uuid.UUID,
    db: Annotated[Session, Depends(get_session)],
    current_user: AdminUser,
):
    route_config.delete_route(db, route_id)
