from app.models.department import Department
from app.models.user import User
from app.models.approval_route import ApprovalRoute, ApprovalStep, ApproverType
from app.models.application import Application, ApplicationStatus, ApplicationType, Priority
from app.models.approval_log import ApprovalLog, ApprovalAction
from app.models.workflow_event import WorkflowEvent, EventType

__all__ = [
    "Department",
    "User",
    "ApprovalRoute", "ApprovalStep", "ApproverType",
    "Application", "ApplicationStatus", "ApplicationType", "Priority",
    "ApprovalLog", "ApprovalAction",
    "WorkflowEvent", "EventType",
]
