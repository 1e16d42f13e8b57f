"""
Requestor feedback blueprint.

Routes:
  GET    /requests/<rid>/feedback   – visibility, editability and the record
  POST   /requests/<rid>/feedback   – submit feedback (moves to Feedback Received)
"""

from flask import Blueprint, jsonify

from advisory.blueprints import json_body
from advisory.services import feedback_service
from advisory.services.identity import get_current_actor
from advisory.utils.errors import register_error_handlers

feedback_bp = Blueprint("feedback", __name__, url_prefix="/api/v1")
register_error_handlers(feedback_bp)


@feedback_bp.route("/requests/<rid>/feedback", methods=["GET"])
def get_feedback(rid):
    actor = get_current_actor()
    return jsonify(feedback_service.get_feedback_view(rid, actor))


@feedback_bp.route("/requests/<rid>/feedback", methods=["POST"])
def submit_feedback(rid):
    """Submit requestor feedback.

    Body: { quality_rating, response_time_rating, satisfaction_rating,
            communication_rating, overall_rating, feedback_text,
            benefits_achieved, suggestions_for_improvement? }
    """
    actor = get_current_actor()
    result = feedback_service.submit_feedback(rid, json_body(), actor)
    return jsonify(result), 201
