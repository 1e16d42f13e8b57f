"""
Request intake and administration.

    submit_request       create a request in "New", auto-assign a consultant
    get_request          load by primary key
    update_billability   0–100 gate value for Review → Approval
    update_allocation    free-text allocation for Approval → Approved
    get_timeline         audit entries, oldest first

Intake never fails for lack of consultants: the request stays unassigned
and the first transition out of "New" picks one.
"""

import logging
import secrets
import string
import time

from sqlalchemy import select

from advisory.core.exceptions import UnauthorizedError, ValidationError
from advisory.models import db
from advisory.models.catalog import ServiceOffering
from advisory.models.request import (
    TIMELINE_ALLOCATION,
    TIMELINE_BILLABILITY,
    TIMELINE_SUBMITTED,
    AdvisoryRequest,
    RequestTimeline,
    write_timeline,
)
from advisory.models.workflow import INITIAL_STATUS, TERMINAL_STATUSES
from advisory.services.assignment_service import pick_available_consultant
from advisory.utils.helpers import commit_or_raise, get_or_raise, parse_percentage

logger = logging.getLogger(__name__)

_BASE36 = string.digits + string.ascii_uppercase
MAX_ALLOCATION_LENGTH = 40


def _to_base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, rem = divmod(number, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_request_id() -> str:
    """REQ-<base36 epoch ms>-<5 random chars>, upper case."""
    suffix = "".join(secrets.choice(_BASE36) for _ in range(5))
    return f"REQ-{_to_base36(int(time.time() * 1000))}-{suffix}"


def get_request(request_id: str) -> AdvisoryRequest:
    return get_or_raise(AdvisoryRequest, request_id, "AdvisoryRequest")


def _validate_offerings(advisory_service: str, offering_ids) -> list[str]:
    if not isinstance(offering_ids, list) or not offering_ids:
        raise ValidationError("offerings_required")
    ids = [str(oid) for oid in dict.fromkeys(offering_ids)]
    found = db.session.execute(
        select(ServiceOffering).where(ServiceOffering.id.in_(ids))
    ).scalars().all()
    valid = {
        o.id for o in found
        if o.is_active and o.advisory_service == advisory_service
    }
    unknown = [oid for oid in ids if oid not in valid]
    if unknown:
        raise ValidationError("invalid_offering", details={"offering_ids": unknown})
    return ids


def submit_request(data: dict, actor=None) -> AdvisoryRequest:
    """Create a request from the intake payload.  ``actor`` may be None (anonymous)."""
    advisory_service = str(data.get("advisory_service") or "").strip()
    if not advisory_service:
        raise ValidationError("advisory_service_required")
    offerings = _validate_offerings(advisory_service, data.get("service_offerings"))

    project_data = data.get("project_data") or {}
    if not isinstance(project_data, dict):
        raise ValidationError("invalid_project_data", "project_data must be an object.")

    member = pick_available_consultant(advisory_service)
    assignee_id = member.user_id if member else None

    request = AdvisoryRequest(
        request_id=generate_request_id(),
        status=INITIAL_STATUS,
        requestor_id=actor.user_id if actor else None,
        assignee_id=assignee_id,
        original_assignee_id=assignee_id,
        advisory_service=advisory_service,
        service_offerings=offerings,
        description=data.get("description"),
        project_data=project_data,
        service_offering_activities={},
    )
    db.session.add(request)
    db.session.flush()
    write_timeline(
        request_id=request.id,
        action=TIMELINE_SUBMITTED,
        new_value=INITIAL_STATUS,
        performed_by=actor.user_id if actor else None,
    )
    commit_or_raise("submit_request")

    if assignee_id is None:
        logger.warning(
            "Request %s submitted without an assignee: no consultant available for %s",
            request.request_id, advisory_service,
            extra={"event_type": "request_unassigned", "request_id": request.request_id},
        )
    logger.info(
        "Request %s submitted (assignee=%s)", request.request_id, assignee_id,
        extra={"event_type": "request_submitted", "request_id": request.request_id},
    )
    return request


def _load_for_update(request_id: str, actor, action: str) -> AdvisoryRequest:
    request = get_request(request_id)
    if not (actor.is_admin or (actor.user_id and actor.user_id == request.assignee_id)):
        raise UnauthorizedError(action, actor.user_id)
    if request.status in TERMINAL_STATUSES:
        raise ValidationError("terminal_status", details={"status": request.status})
    return request


def _fmt(value):
    return None if value is None else str(value)


def update_billability(request_id: str, value, actor) -> AdvisoryRequest:
    request = _load_for_update(request_id, actor, "update billability")
    pct = parse_percentage(value)
    old = request.billability_percentage
    request.billability_percentage = pct
    write_timeline(
        request_id=request.id,
        action=TIMELINE_BILLABILITY,
        old_value=_fmt(old),
        new_value=_fmt(pct),
        performed_by=actor.user_id,
    )
    commit_or_raise("update_billability")
    logger.info("Billability on %s: %s -> %s", request.request_id, old, pct,
                extra={"event_type": "billability_updated", "request_id": request.request_id})
    return request


def update_allocation(request_id: str, value, actor) -> AdvisoryRequest:
    request = _load_for_update(request_id, actor, "update allocation")
    allocation = str(value).strip() if value is not None else ""
    if len(allocation) > MAX_ALLOCATION_LENGTH:
        raise ValidationError("invalid_allocation")
    old = request.allocation_percentage
    request.allocation_percentage = allocation or None
    write_timeline(
        request_id=request.id,
        action=TIMELINE_ALLOCATION,
        old_value=old,
        new_value=request.allocation_percentage,
        performed_by=actor.user_id,
    )
    commit_or_raise("update_allocation")
    logger.info("Allocation on %s: %s -> %s", request.request_id, old, request.allocation_percentage,
                extra={"event_type": "allocation_updated", "request_id": request.request_id})
    return request


def get_timeline(request_id: str) -> list[RequestTimeline]:
    get_request(request_id)
    return list(db.session.execute(
        select(RequestTimeline)
        .where(RequestTimeline.request_id == request_id)
        .order_by(RequestTimeline.performed_at, RequestTimeline.id)
    ).scalars())
