"""
Status Transition Engine.

Admissibility comes from the ``status_transitions`` catalog; authorization
narrows it per actor; preconditions gate specific edges; the commit itself
(and any reassignment) is delegated to the assignment service's store call.

    list_available_transitions(current_status, actor)   → [StatusTransition]
    can_transition(transition, current_status, actor)   → bool
    request_transition(request_id, target, actor, …)    → TransitionResult

Preconditions:
    Estimation → Review    at least one activity or sub-activity selected;
                           then the estimation freeze runs
    Review → Approval      billability percentage set and > 0
    Approval → Approved    allocation percentage set
                           (only with ALLOCATION_REQUIRED_FOR_APPROVED)

Closed, Cancelled and Reject are terminal regardless of catalog content.

Usage:
    from advisory.services.transition_service import request_transition

    result = request_transition(request.id, "Review", actor)
    if not result.success:
        return api_error(..., result.message, reason=result.reason)
"""

import logging
from dataclasses import dataclass, field

from flask import current_app
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from advisory.core.exceptions import (
    ConcurrentModificationError,
    UnauthorizedError,
    ValidationError,
    WorkflowError,
)
from advisory.models import db
from advisory.models.request import AdvisoryRequest
from advisory.models.workflow import (
    ADVISORY_TITLES,
    DEFAULT_TRANSITIONS,
    REQUEST_STATUSES,
    STATUS_APPROVAL,
    STATUS_APPROVED,
    STATUS_ESTIMATION,
    STATUS_REVIEW,
    TERMINAL_STATUSES,
    StatusTransition,
)
from advisory.services import estimation_service
from advisory.services.assignment_service import update_request_status_and_assignee
from advisory.services.identity import Actor, actor_has_capability
from advisory.services.selection import Selection
from advisory.utils.helpers import commit_or_raise, get_or_raise

logger = logging.getLogger(__name__)


@dataclass
class TransitionResult:
    success: bool
    request_id: str | None = None
    from_status: str | None = None
    to_status: str | None = None
    reassigned: bool = False
    assignee_id: str | None = None
    estimation_frozen: bool | None = None
    version: int | None = None
    error: str | None = None
    reason: str | None = None
    message: str | None = None
    exception: WorkflowError | None = field(default=None, repr=False, compare=False)

    def to_dict(self) -> dict:
        d = {"success": self.success}
        if self.success:
            d.update({
                "request_id": self.request_id,
                "from_status": self.from_status,
                "to_status": self.to_status,
                "reassigned": self.reassigned,
                "assignee_id": self.assignee_id,
                "version": self.version,
            })
            if self.estimation_frozen is not None:
                d["estimation_frozen"] = self.estimation_frozen
        else:
            d.update({"error": self.error, "message": self.message})
            if self.reason:
                d["reason"] = self.reason
        return d

    @classmethod
    def failed(cls, exc: WorkflowError) -> "TransitionResult":
        return cls(
            success=False,
            error=exc.kind,
            reason=getattr(exc, "reason", None),
            message=exc.user_message,
            exception=exc,
        )


# ═════════════════════════════════════════════════════════════════════════════
# Authorization
# ═════════════════════════════════════════════════════════════════════════════


def _is_assignee(actor: Actor, request: AdvisoryRequest | None) -> bool:
    return request is not None and bool(actor.user_id) and actor.user_id == request.assignee_id


def can_transition(
    transition: StatusTransition,
    current_status: str,
    actor: Actor,
    request: AdvisoryRequest | None = None,
) -> bool:
    """
    Authorization rule for one catalog edge.

    Admin: always.  In "Approval" a non-admin needs to be the assignee AND
    hold an advisory title.  Elsewhere a non-admin needs to be the assignee
    and satisfy ``role_required`` through either role or title.
    """
    if actor.is_admin:
        return True
    if not _is_assignee(actor, request):
        return False
    if current_status == STATUS_APPROVAL:
        return actor.title in ADVISORY_TITLES
    return actor_has_capability(actor, transition.role_required)


def _validate_status(status: str) -> None:
    if status not in REQUEST_STATUSES:
        raise ValidationError("invalid_status", details={"status": status})


def list_available_transitions(
    current_status: str,
    actor: Actor,
    request: AdvisoryRequest | None = None,
) -> list[StatusTransition]:
    """Catalog rows out of ``current_status`` the actor may take, in catalog order."""
    _validate_status(current_status)
    if current_status in TERMINAL_STATUSES:
        return []
    rows = db.session.execute(
        select(StatusTransition)
        .where(StatusTransition.from_status == current_status)
        .order_by(StatusTransition.id)
    ).scalars().all()
    return [t for t in rows if can_transition(t, current_status, actor, request)]


# ═════════════════════════════════════════════════════════════════════════════
# Preconditions
# ═════════════════════════════════════════════════════════════════════════════


def _check_preconditions(request: AdvisoryRequest, target: str) -> None:
    current = request.status

    if current == STATUS_REVIEW and target == STATUS_APPROVAL:
        if not request.billability_percentage or request.billability_percentage <= 0:
            raise ValidationError("billability_required")

    if current == STATUS_ESTIMATION and target == STATUS_REVIEW:
        if not Selection.from_request(request).has_selection():
            raise ValidationError("activities_required")

    if (
        current == STATUS_APPROVAL
        and target == STATUS_APPROVED
        and current_app.config.get("ALLOCATION_REQUIRED_FOR_APPROVED")
        and not (request.allocation_percentage or "").strip()
    ):
        raise ValidationError("allocation_required")


def _freeze_in_savepoint(request: AdvisoryRequest) -> bool:
    """Run the estimation freeze in a savepoint.  A failure is logged, not raised."""
    try:
        with db.session.begin_nested():
            estimation_service.freeze_estimation(request)
        return True
    except (SQLAlchemyError, ArithmeticError, TypeError, ValueError) as exc:
        logger.warning(
            "Estimation freeze failed for %s: %s", request.request_id, exc,
            extra={"event_type": "estimation_freeze_failed", "request_id": request.request_id},
        )
        return False


# ═════════════════════════════════════════════════════════════════════════════
# Engine
# ═════════════════════════════════════════════════════════════════════════════


def perform_transition(
    request: AdvisoryRequest,
    target_status: str,
    actor: Actor,
    expected_version: int | None = None,
) -> TransitionResult:
    """
    Execute a transition on a loaded request.  Raises WorkflowError subclasses;
    ``request_transition`` is the non-raising wrapper.
    """
    _validate_status(target_status)
    if expected_version is not None and expected_version != request.version:
        raise ConcurrentModificationError(request.request_id, expected_version)

    current = request.status
    allowed = {t.to_status for t in list_available_transitions(current, actor, request)}
    if target_status not in allowed:
        raise UnauthorizedError(
            f"move request from {current!r} to {target_status!r}",
            actor.user_id,
        )

    _check_preconditions(request, target_status)

    frozen = None
    if current == STATUS_ESTIMATION and target_status == STATUS_REVIEW:
        frozen = _freeze_in_savepoint(request)

    outcome = update_request_status_and_assignee(
        request, target_status, actor.user_id, expected_version=expected_version,
    )
    return TransitionResult(
        success=True,
        request_id=request.request_id,
        from_status=current,
        to_status=outcome.status,
        reassigned=outcome.reassigned,
        assignee_id=outcome.assignee_id,
        estimation_frozen=frozen,
        version=outcome.version,
    )


def request_transition(
    request_id: str,
    target_status: str,
    actor: Actor,
    expected_version: int | None = None,
) -> TransitionResult:
    """
    Move a request to ``target_status`` on behalf of ``actor``.

    Never raises for workflow failures: they come back as
    ``TransitionResult(success=False, error=<kind>, reason=…, message=…)``.
    """
    try:
        request = get_or_raise(AdvisoryRequest, request_id, "AdvisoryRequest")
        return perform_transition(request, target_status, actor, expected_version)
    except WorkflowError as exc:
        db.session.rollback()
        logger.info(
            "Transition of %s to %r refused: %s", request_id, target_status, exc,
            extra={"event_type": "transition_refused", "request_id": request_id},
        )
        return TransitionResult.failed(exc)


# ═════════════════════════════════════════════════════════════════════════════
# Catalog seeding
# ═════════════════════════════════════════════════════════════════════════════


def seed_default_transitions(rows=DEFAULT_TRANSITIONS) -> int:
    """
    Insert missing catalog rows.  Idempotent; returns the number inserted.

    Rows sourced from a terminal status are refused.
    """
    existing = {
        (t.from_status, t.to_status)
        for t in db.session.execute(select(StatusTransition)).scalars()
    }
    created = 0
    for from_status, to_status, role_required in rows:
        _validate_status(from_status)
        _validate_status(to_status)
        if from_status in TERMINAL_STATUSES:
            raise ValidationError("terminal_status", details={"from_status": from_status})
        if (from_status, to_status) in existing:
            continue
        db.session.add(StatusTransition(
            from_status=from_status, to_status=to_status, role_required=role_required,
        ))
        existing.add((from_status, to_status))
        created += 1
    commit_or_raise("seed_default_transitions")
    logger.info("Seeded %s status transitions", created,
                extra={"event_type": "transitions_seeded"})
    return created
