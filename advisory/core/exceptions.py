"""
Workflow exception hierarchy.

Services raise these; blueprints register handlers against them once and
get consistent HTTP status codes everywhere.

Every exception carries a ``kind`` (the stable error-kind name reported to
callers of the transition engine) and a short, actionable ``user_message``.

Usage:
    from advisory.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="AdvisoryRequest", resource_id=request_id)
    raise ValidationError("billability_required")
"""

# Stable reason code → user-facing message
REASON_MESSAGES = {
    "activities_required": (
        "Please select relevant activities for estimation before proceeding to Review status."
    ),
    "billability_required": (
        "Please fill the Billability Percentage field before proceeding to Approval status."
    ),
    "allocation_required": (
        "Please fill the Allocation Percentage field before proceeding to Approved status."
    ),
    "feedback_incomplete": (
        "Please fill all mandatory fields: all star ratings, feedback text, and benefits achieved."
    ),
    "feedback_locked": "Feedback can only be submitted by the requestor while the request is Awaiting Feedback.",
    "selection_locked": "Activities can only be changed while the request is in Estimation.",
    "invalid_status": "Unknown request status.",
    "invalid_offering": "The service offering is not part of this request.",
    "invalid_percentage": "Percentage must be a number between 0 and 100.",
    "terminal_status": "Closed, Cancelled and Reject are terminal statuses.",
    "advisory_service_required": "Please choose the advisory service for this request.",
    "offerings_required": "Please choose at least one service offering.",
    "invalid_allocation": "Allocation Percentage must be at most 40 characters.",
    "name_required": "Name is required.",
    "invalid_hours": "Estimated hours must be a non-negative integer.",
    "invalid_display_order": "Display order must be an integer.",
    "invalid_flag": "Flag must be a boolean.",
}


class WorkflowError(Exception):
    """Base class for every error the workflow core reports to callers."""

    kind = "Error"
    default_message = "The operation could not be completed."

    @property
    def user_message(self) -> str:
        return self.default_message


class NotFoundError(WorkflowError):
    """Raised when a requested resource does not exist.

    Args:
        resource: Human-readable model/entity name (e.g. "AdvisoryRequest").
        resource_id: The key that was looked up. Included in logs, not in HTTP response.
    """

    kind = "NotFound"

    def __init__(self, resource: str, resource_id: str | int | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)

    @property
    def user_message(self) -> str:
        return f"{self.resource} not found."


class ValidationError(WorkflowError):
    """Raised when well-formed input violates a business rule.

    ``reason`` is a stable code (``activities_required``,
    ``billability_required``, …), never free text.

    Maps to HTTP 422.

    Args:
        reason: Stable machine-readable code.
        message: Optional override of the user-facing message.
        details: Optional field-level breakdown for structured API responses.
    """

    kind = "ValidationFailed"

    def __init__(self, reason: str, message: str | None = None, details: dict | None = None) -> None:
        self.reason = reason
        self.details = details or {}
        self._message = message or REASON_MESSAGES.get(reason, reason)
        super().__init__(self._message)

    @property
    def user_message(self) -> str:
        return self._message


class UnauthorizedError(WorkflowError):
    """Raised when the actor may not perform the operation (HTTP 403)."""

    kind = "Unauthorized"
    default_message = "You are not allowed to perform this action."

    def __init__(self, action: str, actor_id: str | None = None, detail: str | None = None) -> None:
        self.action = action
        self.actor_id = actor_id
        self.detail = detail
        msg = f"Actor {actor_id!r} may not {action}"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class NotAuthenticatedError(WorkflowError):
    """Raised when no authenticated identity is present (HTTP 401)."""

    kind = "NotAuthenticated"
    default_message = "Please sign in to continue."

    def __init__(self, detail: str = "Not authenticated") -> None:
        super().__init__(detail)


class NoAssigneeAvailableError(WorkflowError):
    """Raised when reassignment finds no eligible consultant (HTTP 409)."""

    kind = "NoAssigneeAvailable"
    default_message = "No advisory consultants are currently available to take this request."

    def __init__(self, advisory_service: str | None = None) -> None:
        self.advisory_service = advisory_service
        super().__init__(f"No consultant available for service {advisory_service!r}")


class ConcurrentModificationError(WorkflowError):
    """Raised when the request changed since the caller read it (HTTP 409)."""

    kind = "ConcurrentModification"
    default_message = "This request was updated by someone else. Please reload and try again."

    def __init__(self, request_id: str, expected_version: int | None = None) -> None:
        self.request_id = request_id
        self.expected_version = expected_version
        super().__init__(
            f"Request {request_id} was modified concurrently (expected version={expected_version})"
        )


class PersistenceError(WorkflowError):
    """Raised when the backing store fails; the operation is aborted (HTTP 500)."""

    kind = "PersistenceError"
    default_message = "The request could not be saved. Please try again later."

    def __init__(self, operation: str, cause: Exception | None = None) -> None:
        self.operation = operation
        self.cause = cause
        super().__init__(f"Persistence failure during {operation}: {cause}")
