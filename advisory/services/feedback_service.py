"""
Feedback Gate.

Who may see the feedback section, when it is shown, who may edit it, and
what counts as complete.  Submitting complete feedback upserts the record
keyed by (request, submitting user) and moves the request to
"Feedback Received" through the transition engine, which hands it back to
the original assignee.
"""

import logging

from sqlalchemy import select

from advisory.core.exceptions import UnauthorizedError, ValidationError, WorkflowError
from advisory.models import db
from advisory.models.feedback import RATING_FIELDS, TEXT_FIELDS, RequestFeedback
from advisory.models.request import AdvisoryRequest
from advisory.models.workflow import (
    STATUS_AWAITING_FEEDBACK,
    STATUS_CLOSED,
    STATUS_FEEDBACK_RECEIVED,
    TITLE_ADVISORY_SERVICE_HEAD,
)
from advisory.services.transition_service import perform_transition
from advisory.utils.helpers import get_or_raise

logger = logging.getLogger(__name__)

FEEDBACK_VISIBLE_STATUSES = frozenset({
    STATUS_AWAITING_FEEDBACK,
    STATUS_FEEDBACK_RECEIVED,
    STATUS_CLOSED,
})

MANDATORY_TEXT_FIELDS = ("feedback_text", "benefits_achieved")


def can_view(request: AdvisoryRequest, actor) -> bool:
    if actor is None:
        return False
    return (
        actor.is_admin
        or actor.title == TITLE_ADVISORY_SERVICE_HEAD
        or (bool(actor.user_id) and actor.user_id in (request.requestor_id, request.original_assignee_id))
    )


def is_section_visible(request: AdvisoryRequest) -> bool:
    return request.status in FEEDBACK_VISIBLE_STATUSES


def can_edit(request: AdvisoryRequest, actor) -> bool:
    return (
        actor is not None
        and bool(actor.user_id)
        and actor.user_id == request.requestor_id
        and request.status == STATUS_AWAITING_FEEDBACK
    )


def _rating(value) -> int:
    if value is None or isinstance(value, bool):
        return 0
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def missing_fields(data: dict) -> list[str]:
    """Mandatory fields that are absent, blank or out of range."""
    missing = [f for f in RATING_FIELDS if not 0 < _rating(data.get(f)) <= 5]
    missing += [f for f in MANDATORY_TEXT_FIELDS if not str(data.get(f) or "").strip()]
    return missing


def is_mandatory_complete(data: dict) -> bool:
    """All five ratings in 1–5 and non-blank feedback text and benefits achieved."""
    return not missing_fields(data)


def _feedback_for(request: AdvisoryRequest, user_id: str | None = None) -> RequestFeedback | None:
    stmt = select(RequestFeedback).where(RequestFeedback.request_id == request.id)
    if user_id:
        stmt = stmt.where(RequestFeedback.user_id == user_id)
    stmt = stmt.order_by(RequestFeedback.updated_at.desc())
    return db.session.execute(stmt).scalars().first()


def get_feedback_view(request_id: str, actor) -> dict:
    request = get_or_raise(AdvisoryRequest, request_id, "AdvisoryRequest")
    visible = can_view(request, actor) and is_section_visible(request)
    feedback = None
    if visible:
        feedback = _feedback_for(request, request.requestor_id) or _feedback_for(request)
    return {
        "visible": visible,
        "editable": can_edit(request, actor),
        "submitted": feedback is not None,
        "feedback": feedback.to_dict() if feedback else None,
    }


def submit_feedback(request_id: str, data: dict, actor) -> dict:
    """
    Validate, upsert and transition to "Feedback Received".

    Incomplete input is rejected before anything is written.  The upsert and
    the status change commit together.
    """
    request = get_or_raise(AdvisoryRequest, request_id, "AdvisoryRequest")
    if not actor.user_id or actor.user_id != request.requestor_id:
        raise UnauthorizedError("submit feedback", actor.user_id, "only the requestor may submit feedback")
    if request.status != STATUS_AWAITING_FEEDBACK:
        raise ValidationError("feedback_locked", details={"status": request.status})

    missing = missing_fields(data)
    if missing:
        raise ValidationError("feedback_incomplete", details={"missing": missing})

    feedback = _feedback_for(request, actor.user_id)
    if feedback is None:
        feedback = RequestFeedback(request_id=request.id, user_id=actor.user_id)
        db.session.add(feedback)
    for field in RATING_FIELDS:
        setattr(feedback, field, _rating(data.get(field)))
    for field in TEXT_FIELDS:
        value = data.get(field)
        setattr(feedback, field, str(value).strip() if value is not None else None)
    db.session.flush()

    try:
        result = perform_transition(request, STATUS_FEEDBACK_RECEIVED, actor)
    except WorkflowError:
        db.session.rollback()
        raise

    logger.info(
        "Feedback submitted on %s by %s", request.request_id, actor.user_id,
        extra={"event_type": "feedback_submitted", "request_id": request.request_id},
    )
    return {
        "feedback": feedback.to_dict(),
        "transition": result.to_dict(),
    }
