"""
Activity catalog blueprint.

Routes:
  GET    /catalog/offerings                         – active offerings (?advisory_service=)
  GET    /catalog/offerings/<oid>/activities        – active activities with sub-activities
  POST   /catalog/offerings/<oid>/activities        – create activity (admin)
  POST   /catalog/activities/<aid>/sub-activities   – create sub-activity (admin)
  DELETE /catalog/activities/<aid>                  – deactivate activity (admin)
  DELETE /catalog/sub-activities/<sid>              – deactivate sub-activity (admin)
"""

from flask import Blueprint, jsonify, request

from advisory.blueprints import json_body
from advisory.services import catalog_service
from advisory.services.identity import get_current_actor
from advisory.utils.errors import register_error_handlers

catalog_bp = Blueprint("catalog", __name__, url_prefix="/api/v1/catalog")
register_error_handlers(catalog_bp)


@catalog_bp.route("/offerings", methods=["GET"])
def list_offerings():
    offerings = catalog_service.list_offerings(request.args.get("advisory_service"))
    return jsonify([o.to_dict() for o in offerings])


@catalog_bp.route("/offerings/<oid>/activities", methods=["GET"])
def list_activities(oid):
    return jsonify([a.to_dict() for a in catalog_service.list_activities(oid)])


@catalog_bp.route("/offerings/<oid>/activities", methods=["POST"])
def create_activity(oid):
    """Body: { name, estimated_hours, display_order? }"""
    actor = get_current_actor()
    activity = catalog_service.create_activity(oid, json_body(), actor)
    return jsonify(activity.to_dict()), 201


@catalog_bp.route("/activities/<aid>/sub-activities", methods=["POST"])
def create_sub_activity(aid):
    """Body: { name, estimated_hours, associated_tool?, display_order? }"""
    actor = get_current_actor()
    sub = catalog_service.create_sub_activity(aid, json_body(), actor)
    return jsonify(sub.to_dict()), 201


@catalog_bp.route("/activities/<aid>", methods=["DELETE"])
def deactivate_activity(aid):
    actor = get_current_actor()
    activity = catalog_service.deactivate_activity(aid, actor)
    return jsonify(activity.to_dict(active_only=False))


@catalog_bp.route("/sub-activities/<sid>", methods=["DELETE"])
def deactivate_sub_activity(sid):
    actor = get_current_actor()
    return jsonify(catalog_service.deactivate_sub_activity(sid, actor).to_dict())
