"""
Advisory request blueprint.

Routes:
  POST   /requests                          – submit a request (anonymous allowed)
  GET    /requests/<rid>                    – request detail
  GET    /requests/<rid>/transitions        – statuses the caller may move to
  POST   /requests/<rid>/transition         – move to a new status
  GET    /requests/<rid>/timeline           – audit trail, oldest first
  PUT    /requests/<rid>/activities         – select / deselect an activity
  PUT    /requests/<rid>/sub-activities     – select / deselect a sub-activity
  GET    /requests/<rid>/estimation         – live or frozen estimation figures
  PUT    /requests/<rid>/billability        – set billability percentage
  PUT    /requests/<rid>/allocation         – set allocation percentage
"""

from flask import Blueprint, jsonify

from advisory.blueprints import flag, json_body, require_fields
from advisory.services import estimation_service, request_service, selection_service
from advisory.services.identity import get_current_actor
from advisory.services.transition_service import list_available_transitions, request_transition
from advisory.utils.errors import E, api_error, register_error_handlers, workflow_error_response

request_bp = Blueprint("request", __name__, url_prefix="/api/v1")
register_error_handlers(request_bp)


# ═════════════════════════════════════════════════════════════════════════════
# INTAKE & DETAIL
# ═════════════════════════════════════════════════════════════════════════════

@request_bp.route("/requests", methods=["POST"])
def submit_request():
    """Submit a new request.

    Body: { advisory_service, service_offerings: [id], description?, project_data? }
    """
    data = json_body()
    actor = get_current_actor(required=False)
    req = request_service.submit_request(data, actor)
    return jsonify(req.to_dict()), 201


@request_bp.route("/requests/<rid>", methods=["GET"])
def get_request(rid):
    get_current_actor()
    return jsonify(request_service.get_request(rid).to_dict())


@request_bp.route("/requests/<rid>/timeline", methods=["GET"])
def get_timeline(rid):
    get_current_actor()
    return jsonify([e.to_dict() for e in request_service.get_timeline(rid)])


# ═════════════════════════════════════════════════════════════════════════════
# STATUS TRANSITIONS
# ═════════════════════════════════════════════════════════════════════════════

@request_bp.route("/requests/<rid>/transitions", methods=["GET"])
def available_transitions(rid):
    actor = get_current_actor()
    req = request_service.get_request(rid)
    transitions = list_available_transitions(req.status, actor, req)
    return jsonify({
        "current_status": req.status,
        "transitions": [t.to_dict() for t in transitions],
    })


@request_bp.route("/requests/<rid>/transition", methods=["POST"])
def transition(rid):
    """Move a request to a new status.

    Body: { to_status, expected_version? }
    """
    actor = get_current_actor()
    data = json_body()
    require_fields(data, "to_status")

    expected_version = data.get("expected_version")
    if expected_version is not None:
        try:
            expected_version = int(expected_version)
        except (TypeError, ValueError):
            return api_error(E.VALIDATION_INVALID, "expected_version must be an integer")

    result = request_transition(rid, data["to_status"], actor, expected_version)
    if not result.success:
        return workflow_error_response(result.exception)
    return jsonify(result.to_dict())


# ═════════════════════════════════════════════════════════════════════════════
# ACTIVITY SELECTION & ESTIMATION
# ═════════════════════════════════════════════════════════════════════════════

@request_bp.route("/requests/<rid>/activities", methods=["PUT"])
def set_activity(rid):
    """Body: { offering_id, activity_id, selected }"""
    actor = get_current_actor()
    data = json_body()
    require_fields(data, "offering_id", "activity_id")
    summary = selection_service.set_activity_selected(
        rid, data["offering_id"], data["activity_id"], flag(data, "selected"), actor,
    )
    return jsonify(summary)


@request_bp.route("/requests/<rid>/sub-activities", methods=["PUT"])
def set_sub_activity(rid):
    """Body: { offering_id, activity_id, sub_activity_id, selected }"""
    actor = get_current_actor()
    data = json_body()
    require_fields(data, "offering_id", "activity_id", "sub_activity_id")
    summary = selection_service.set_sub_activity_selected(
        rid,
        data["offering_id"],
        data["activity_id"],
        data["sub_activity_id"],
        flag(data, "selected"),
        actor,
    )
    return jsonify(summary)


@request_bp.route("/requests/<rid>/estimation", methods=["GET"])
def estimation(rid):
    get_current_actor()
    req = request_service.get_request(rid)
    return jsonify(estimation_service.live_estimate(req))


# ═════════════════════════════════════════════════════════════════════════════
# GATES
# ═════════════════════════════════════════════════════════════════════════════

@request_bp.route("/requests/<rid>/billability", methods=["PUT"])
def update_billability(rid):
    """Body: { billability_percentage }  (0–100, null clears)"""
    actor = get_current_actor()
    data = json_body()
    req = request_service.update_billability(rid, data.get("billability_percentage"), actor)
    return jsonify(req.to_dict())


@request_bp.route("/requests/<rid>/allocation", methods=["PUT"])
def update_allocation(rid):
    """Body: { allocation_percentage }"""
    actor = get_current_actor()
    data = json_body()
    req = request_service.update_allocation(rid, data.get("allocation_percentage"), actor)
    return jsonify(req.to_dict())
