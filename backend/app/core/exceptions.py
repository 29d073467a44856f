"""Workflow error taxonomy.

Every service in ``app.services`` raises one of these instead of letting raw
storage or lookup errors escape. The API layer translates them to HTTP
responses in ``app.main``.
"""


class WorkflowError(Exception):
    """Base class for all workflow-core failures."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(WorkflowError):
    """Malformed or missing input to route or application operations."""

    status_code = 400


class NotFoundError(WorkflowError):
    """A referenced entity (application, route, approver) does not exist."""

    status_code = 404


class InvalidTransitionError(WorkflowError):
    """The requested action is not legal for the application's current status."""

    status_code = 409

    def __init__(self, message: str, current_status: str | None = None, action: str | None = None):
        super().__init__(message)
        self.current_status = current_status
        self.action = action


class StaleStateError(InvalidTransitionError):
    """The application changed between read and write (optimistic concurrency)."""


class UnauthorizedActionError(WorkflowError):
    """The actor is not the designated current approver (or applicant)."""

    status_code = 403


class PersistenceError(WorkflowError):
    """An underlying store operation failed; nothing was applied.

    ``stage`` names the sub-step of a multi-write operation that failed so a
    caller can decide whether and how to retry.
    """

    status_code = 503

    def __init__(self, message: str, stage: str | None = None):
        super().__init__(message)
        self.stage = stage
