"""
Status commit and auto-reassignment.

``update_request_status_and_assignee`` is the workflow's single store call:
it decides the next assignee, writes the status (and assignee) with a
conditional ``UPDATE … WHERE version = :expected`` and appends the timeline
entries, all in one transaction.  The reassignment decision is made before
anything is written, so a failed decision leaves the request untouched.

Reassignment rules:
    → Awaiting Feedback   assign to the requestor
    → Feedback Received   assign back to the original assignee
    anything else         keep the assignee; if there is none, pick the
                          least-loaded available Advisory Consultant
"""

import logging
from dataclasses import dataclass

from sqlalchemy import func, select, update

from advisory.core.exceptions import ConcurrentModificationError, NoAssigneeAvailableError
from advisory.models import db
from advisory.models.request import (
    TIMELINE_REASSIGNED,
    TIMELINE_STATUS_CHANGE,
    AdvisoryRequest,
    write_timeline,
)
from advisory.models.team import AdvisoryTeamMember
from advisory.models.workflow import (
    STATUS_AWAITING_FEEDBACK,
    STATUS_FEEDBACK_RECEIVED,
    TERMINAL_STATUSES,
    TITLE_ADVISORY_CONSULTANT,
)
from advisory.utils.helpers import commit_or_raise

logger = logging.getLogger(__name__)


@dataclass
class AssignmentOutcome:
    status: str
    assignee_id: str | None
    previous_assignee_id: str | None
    reassigned: bool
    version: int


def _open_request_counts(user_ids: list[str]) -> dict[str, int]:
    if not user_ids:
        return {}
    rows = db.session.execute(
        select(AdvisoryRequest.assignee_id, func.count(AdvisoryRequest.id))
        .where(
            AdvisoryRequest.assignee_id.in_(user_ids),
            AdvisoryRequest.status.notin_(TERMINAL_STATUSES),
        )
        .group_by(AdvisoryRequest.assignee_id)
    ).all()
    return {user_id: count for user_id, count in rows}


def pick_available_consultant(advisory_service: str | None = None) -> AdvisoryTeamMember | None:
    """
    Active Advisory Consultant covering ``advisory_service`` with the fewest
    open requests (ties broken by name).  Members with an empty service list
    cover every service.
    """
    members = db.session.execute(
        select(AdvisoryTeamMember).where(
            AdvisoryTeamMember.is_active.is_(True),
            AdvisoryTeamMember.title == TITLE_ADVISORY_CONSULTANT,
            AdvisoryTeamMember.user_id.is_not(None),
        )
    ).scalars().all()

    if advisory_service:
        members = [
            m for m in members
            if not m.advisory_services or advisory_service in m.advisory_services
        ]
    if not members:
        return None

    load = _open_request_counts([m.user_id for m in members])
    return min(members, key=lambda m: (load.get(m.user_id, 0), m.name))


def decide_assignee(request: AdvisoryRequest, new_status: str) -> str | None:
    """Return the assignee the request should have after moving to ``new_status``."""
    if new_status == STATUS_AWAITING_FEEDBACK and request.requestor_id:
        return request.requestor_id
    if new_status == STATUS_FEEDBACK_RECEIVED and request.original_assignee_id:
        return request.original_assignee_id
    if request.assignee_id or new_status in TERMINAL_STATUSES:
        return request.assignee_id

    member = pick_available_consultant(request.advisory_service)
    if member is None:
        raise NoAssigneeAvailableError(request.advisory_service)
    return member.user_id


def update_request_status_and_assignee(
    request: AdvisoryRequest,
    new_status: str,
    performed_by: str | None,
    expected_version: int | None = None,
) -> AssignmentOutcome:
    """
    Commit a status change, reassigning when the rules above say so.

    Raises:
        NoAssigneeAvailableError: nothing written.
        ConcurrentModificationError: the row's version moved; nothing written.
        PersistenceError: the commit failed and was rolled back.
    """
    old_status = request.status
    old_assignee = request.assignee_id
    version = request.version if expected_version is None else expected_version

    try:
        new_assignee = decide_assignee(request, new_status)
    except NoAssigneeAvailableError:
        db.session.rollback()
        raise

    values = {
        "status": new_status,
        "assignee_id": new_assignee,
        "version": AdvisoryRequest.version + 1,
    }
    # First pick for a never-assigned request also becomes the original assignee
    if not request.original_assignee_id and not old_assignee and new_assignee:
        values["original_assignee_id"] = new_assignee

    result = db.session.execute(
        update(AdvisoryRequest)
        .where(AdvisoryRequest.id == request.id, AdvisoryRequest.version == version)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.session.rollback()
        logger.warning(
            "Concurrent modification on %s (expected version %s)", request.request_id, version,
            extra={"event_type": "concurrent_modification", "request_id": request.request_id},
        )
        raise ConcurrentModificationError(request.request_id, version)

    write_timeline(
        request_id=request.id,
        action=TIMELINE_STATUS_CHANGE,
        old_value=old_status,
        new_value=new_status,
        performed_by=performed_by,
    )
    reassigned = new_assignee != old_assignee
    if reassigned:
        write_timeline(
            request_id=request.id,
            action=TIMELINE_REASSIGNED,
            old_value=old_assignee,
            new_value=new_assignee,
            performed_by=performed_by,
        )

    commit_or_raise("update_request_status_and_assignee")
    db.session.refresh(request)

    logger.info(
        "Request %s: %s -> %s%s",
        request.request_id, old_status, new_status,
        f" (reassigned {old_assignee} -> {new_assignee})" if reassigned else "",
        extra={"event_type": "status_changed", "request_id": request.request_id},
    )
    return AssignmentOutcome(
        status=request.status,
        assignee_id=request.assignee_id,
        previous_assignee_id=old_assignee,
        reassigned=reassigned,
        version=request.version,
    )
