from fastapi import APIRouter

from app.api.v1 import applications, approval_routes, approvals, audit

api_router = APIRouter()

api_router.include_router(applications.router, prefix="/applications", tags=["applications"])
api_router.include_router(approvals.router, prefix="/approvals", tags=["approvals"])
api_router.include_router(approval_routes.router, prefix="/approval-routes", tags=["approval-routes"])
api_router.include_router(audit.router, prefix="/audit", tags=["audit"])
