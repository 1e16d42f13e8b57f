"""Standardised API error responses.

Usage
-----
    from advisory.utils.errors import api_error, E

    return api_error(E.NOT_FOUND, "Request not found")
    return api_error(E.VALIDATION_FAILED, msg, reason="activities_required")
"""

from __future__ import annotations

from flask import jsonify

from advisory.core.exceptions import (
    ConcurrentModificationError,
    NoAssigneeAvailableError,
    NotAuthenticatedError,
    NotFoundError,
    PersistenceError,
    UnauthorizedError,
    ValidationError,
    WorkflowError,
)


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants (``ERR_`` prefix)."""

    # Validation – HTTP 400 (malformed) / 422 (business rule)
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"
    VALIDATION_FAILED = "ERR_VALIDATION_FAILED"

    # Identity – HTTP 401 / 403
    NOT_AUTHENTICATED = "ERR_NOT_AUTHENTICATED"
    FORBIDDEN = "ERR_FORBIDDEN"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # Conflict – HTTP 409
    CONFLICT_STATE = "ERR_CONFLICT_STATE"
    NO_ASSIGNEE = "ERR_NO_ASSIGNEE_AVAILABLE"

    # Server – HTTP 500
    DATABASE = "ERR_DATABASE"
    INTERNAL = "ERR_INTERNAL"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.VALIDATION_FAILED: 422,
    E.NOT_AUTHENTICATED: 401,
    E.FORBIDDEN: 403,
    E.NOT_FOUND: 404,
    E.CONFLICT_STATE: 409,
    E.NO_ASSIGNEE: 409,
    E.DATABASE: 500,
    E.INTERNAL: 500,
}

# Exception type → error code
_EXCEPTION_CODES: tuple[tuple[type, str], ...] = (
    (NotFoundError, E.NOT_FOUND),
    (ValidationError, E.VALIDATION_FAILED),
    (UnauthorizedError, E.FORBIDDEN),
    (NotAuthenticatedError, E.NOT_AUTHENTICATED),
    (NoAssigneeAvailableError, E.NO_ASSIGNEE),
    (ConcurrentModificationError, E.CONFLICT_STATE),
    (PersistenceError, E.DATABASE),
)


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
    reason: str | None = None,
):
    """Return a standard JSON error response.

    Parameters
    ----------
    code : str
        Machine-readable error code (use ``E.*`` constants).
    message : str
        Human-readable, actionable explanation for the UI.
    status : int, optional
        HTTP status override.  Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``400``.
    details : dict, optional
        Extra structured payload.
    reason : str, optional
        Stable reason code for validation failures.

    Returns
    -------
    tuple[Response, int]
        ``(jsonify(body), http_status)`` – drop-in for Flask views.
    """

    http_status = status or _DEFAULT_STATUS.get(code, 400)

    body: dict = {
        "error": message,
        "code": code,
    }
    if reason:
        body["reason"] = reason
    if details:
        body["details"] = details

    return jsonify(body), http_status


def code_for(error: WorkflowError) -> str:
    for exc_type, code in _EXCEPTION_CODES:
        if isinstance(error, exc_type):
            return code
    return E.INTERNAL


def workflow_error_response(error: WorkflowError):
    """Translate a service-layer exception into an ``api_error`` response."""
    return api_error(
        code_for(error),
        error.user_message,
        reason=getattr(error, "reason", None),
        details=getattr(error, "details", None) or None,
    )


def register_error_handlers(bp) -> None:
    """Attach the workflow exception handlers to a blueprint."""

    @bp.errorhandler(WorkflowError)
    def _handle_workflow_error(error: WorkflowError):
        return workflow_error_response(error)
