"""
Selection persistence.

Every mutation loads the request's selection through ``Selection.from_request``,
applies one change and upserts the whole nested structure back into
``service_offering_activities`` with names and hours denormalized from the
catalog.  Frozen estimation columns are never touched here.
"""

import logging

from advisory.core.exceptions import NotFoundError, UnauthorizedError, ValidationError
from advisory.models.catalog import Activity, SubActivity
from advisory.models.request import AdvisoryRequest
from advisory.models.workflow import STATUS_ESTIMATION
from advisory.services.catalog_service import build_catalog_index, catalog_hours
from advisory.services.selection import Selection
from advisory.utils.helpers import commit_or_raise, get_or_raise

logger = logging.getLogger(__name__)


def _load_for_edit(request_id: str, offering_id: str, actor) -> AdvisoryRequest:
    request = get_or_raise(AdvisoryRequest, request_id, "AdvisoryRequest")
    if not (actor.is_admin or actor.user_id == request.assignee_id):
        raise UnauthorizedError("change activity selection", actor.user_id)
    if request.status != STATUS_ESTIMATION:
        raise ValidationError("selection_locked", details={"status": request.status})
    if offering_id not in (request.service_offerings or []):
        raise ValidationError("invalid_offering", details={"offering_id": offering_id})
    return request


def _load_activity(offering_id: str, activity_id: str, selecting: bool) -> Activity:
    activity = get_or_raise(Activity, activity_id, "Activity")
    if activity.service_offering_id != offering_id:
        raise NotFoundError("Activity", activity_id)
    if selecting and not activity.is_active:
        raise NotFoundError("Activity", activity_id)
    return activity


def _save(request: AdvisoryRequest, selection: Selection, operation: str) -> dict:
    index = build_catalog_index(request.service_offerings)
    request.service_offering_activities = selection.to_persisted(index)
    # The legacy flat selection is folded into the nested shape above
    request.selected_activities = None
    commit_or_raise(operation)
    return selection_summary(request)


def selection_summary(request: AdvisoryRequest) -> dict:
    """Current selection with its live hour total."""
    selection = Selection.from_request(request)
    activity_hours, sub_hours = catalog_hours(request.service_offerings)
    return {
        "request_id": request.id,
        "service_offering_activities": request.service_offering_activities or {},
        "has_selection": selection.has_selection(),
        "total_estimated_hours": selection.total_estimated_hours(activity_hours, sub_hours),
    }


def set_activity_selected(
    request_id: str, offering_id: str, activity_id: str, selected: bool, actor,
) -> dict:
    """Select or deselect an activity.  Deselecting also clears its sub-activities."""
    request = _load_for_edit(request_id, offering_id, actor)
    _load_activity(offering_id, activity_id, selecting=bool(selected))

    selection = Selection.from_request(request)
    cleared = 0
    if not selected:
        cleared = selection.selected_sub_activity_count(offering_id, activity_id)
    selection.set_activity_selected(offering_id, activity_id, bool(selected))

    summary = _save(request, selection, "set_activity_selected")
    logger.info(
        "Activity %s %s on %s%s",
        activity_id, "selected" if selected else "deselected", request.request_id,
        f" ({cleared} sub-activities cleared)" if cleared else "",
        extra={"event_type": "selection_changed", "request_id": request.request_id},
    )
    return summary


def set_sub_activity_selected(
    request_id: str,
    offering_id: str,
    activity_id: str,
    sub_activity_id: str,
    selected: bool,
    actor,
) -> dict:
    """Select or deselect a sub-activity; the parent's own flag is not changed."""
    request = _load_for_edit(request_id, offering_id, actor)
    _load_activity(offering_id, activity_id, selecting=False)
    sub = get_or_raise(SubActivity, sub_activity_id, "SubActivity")
    if sub.activity_id != activity_id or (selected and not sub.is_active):
        raise NotFoundError("SubActivity", sub_activity_id)

    selection = Selection.from_request(request)
    selection.set_sub_activity_selected(offering_id, activity_id, sub_activity_id, bool(selected))

    summary = _save(request, selection, "set_sub_activity_selected")
    logger.info(
        "Sub-activity %s %s on %s",
        sub_activity_id, "selected" if selected else "deselected", request.request_id,
        extra={"event_type": "selection_changed", "request_id": request.request_id},
    )
    return summary
