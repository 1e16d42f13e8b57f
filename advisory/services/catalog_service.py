"""
Activity catalog service.

Read side (consumed by the selection and estimation code):
    list_offerings, list_activities, build_catalog_index, catalog_hours

Admin side (soft-delete only; rows referenced by requests are never removed):
    create_activity, create_sub_activity,
    deactivate_activity, deactivate_sub_activity
"""

import logging

from sqlalchemy import select

from advisory.core.exceptions import UnauthorizedError, ValidationError
from advisory.models import db
from advisory.models.catalog import Activity, ServiceOffering, SubActivity
from advisory.services.selection import CatalogEntry
from advisory.utils.helpers import commit_or_raise, get_or_raise

logger = logging.getLogger(__name__)


def _require_admin(actor, action: str) -> None:
    if actor is None or not actor.is_admin:
        raise UnauthorizedError(action, getattr(actor, "user_id", None), "admin only")


def _parse_hours(value) -> int:
    if value is None or value == "":
        return 0
    if isinstance(value, bool):
        raise ValidationError("invalid_hours")
    try:
        hours = int(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError("invalid_hours") from exc
    if hours < 0:
        raise ValidationError("invalid_hours")
    return hours


def _parse_display_order(value) -> int:
    if value is None or value == "":
        return 0
    if isinstance(value, bool):
        raise ValidationError("invalid_display_order")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError("invalid_display_order") from exc


# ═════════════════════════════════════════════════════════════════════════════
# Read side
# ═════════════════════════════════════════════════════════════════════════════


def list_offerings(advisory_service: str | None = None) -> list[ServiceOffering]:
    """Active offerings ordered by display_order, optionally for one service."""
    stmt = select(ServiceOffering).where(ServiceOffering.is_active.is_(True))
    if advisory_service:
        stmt = stmt.where(ServiceOffering.advisory_service == advisory_service)
    stmt = stmt.order_by(ServiceOffering.display_order, ServiceOffering.name)
    return list(db.session.execute(stmt).scalars())


def list_activities(offering_id: str) -> list[Activity]:
    """Active activities of one offering, ordered by display_order."""
    get_or_raise(ServiceOffering, offering_id, "ServiceOffering")
    stmt = (
        select(Activity)
        .where(Activity.service_offering_id == offering_id, Activity.is_active.is_(True))
        .order_by(Activity.display_order, Activity.name)
    )
    return list(db.session.execute(stmt).scalars())


def build_catalog_index(offering_ids) -> dict[str, CatalogEntry]:
    """
    activity_id → CatalogEntry for every activity of the given offerings.

    Inactive rows are included so that a selection recorded before a
    deactivation keeps its denormalized name and hours on the next write.
    """
    offering_ids = [oid for oid in offering_ids or [] if oid]
    if not offering_ids:
        return {}
    activities = db.session.execute(
        select(Activity).where(Activity.service_offering_id.in_(offering_ids))
    ).scalars().all()
    if not activities:
        return {}
    subs_by_activity: dict[str, dict] = {}
    sub_rows = db.session.execute(
        select(SubActivity).where(SubActivity.activity_id.in_([a.id for a in activities]))
    ).scalars()
    for sub in sub_rows:
        subs_by_activity.setdefault(sub.activity_id, {})[sub.id] = (sub.name, sub.estimated_hours)
    return {
        a.id: CatalogEntry(
            name=a.name,
            estimated_hours=a.estimated_hours or 0,
            sub_activities=subs_by_activity.get(a.id, {}),
        )
        for a in activities
    }


def catalog_hours(offering_ids) -> tuple[dict, dict]:
    """(activity_id → hours, sub_activity_id → hours) for hour fallback lookups."""
    index = build_catalog_index(offering_ids)
    activity_hours = {aid: entry.estimated_hours for aid, entry in index.items()}
    sub_hours = {}
    for entry in index.values():
        for sid, (_name, hours) in entry.sub_activities.items():
            sub_hours[sid] = hours or 0
    return activity_hours, sub_hours


# ═════════════════════════════════════════════════════════════════════════════
# Admin side
# ═════════════════════════════════════════════════════════════════════════════


def create_activity(offering_id: str, data: dict, actor) -> Activity:
    _require_admin(actor, "create activity")
    get_or_raise(ServiceOffering, offering_id, "ServiceOffering")
    name = str(data.get("name") or "").strip()
    if not name:
        raise ValidationError("name_required", "Activity name is required.")
    activity = Activity(
        service_offering_id=offering_id,
        name=name,
        estimated_hours=_parse_hours(data.get("estimated_hours")),
        display_order=_parse_display_order(data.get("display_order")),
    )
    db.session.add(activity)
    commit_or_raise("create_activity")
    logger.info(
        "Activity created",
        extra={"event_type": "catalog_activity_created", "activity_id": activity.id,
               "offering_id": offering_id},
    )
    return activity


def create_sub_activity(activity_id: str, data: dict, actor) -> SubActivity:
    _require_admin(actor, "create sub-activity")
    get_or_raise(Activity, activity_id, "Activity")
    name = str(data.get("name") or "").strip()
    if not name:
        raise ValidationError("name_required", "Sub-activity name is required.")
    sub = SubActivity(
        activity_id=activity_id,
        name=name,
        estimated_hours=_parse_hours(data.get("estimated_hours")),
        associated_tool=data.get("associated_tool"),
        display_order=_parse_display_order(data.get("display_order")),
    )
    db.session.add(sub)
    commit_or_raise("create_sub_activity")
    logger.info(
        "Sub-activity created",
        extra={"event_type": "catalog_sub_activity_created", "sub_activity_id": sub.id,
               "activity_id": activity_id},
    )
    return sub


def deactivate_activity(activity_id: str, actor) -> Activity:
    """Soft-delete an activity and its sub-activities."""
    _require_admin(actor, "deactivate activity")
    activity = get_or_raise(Activity, activity_id, "Activity")
    activity.is_active = False
    for sub in activity.sub_activities:
        sub.is_active = False
    commit_or_raise("deactivate_activity")
    logger.info("Activity deactivated", extra={"event_type": "catalog_activity_deactivated",
                                               "activity_id": activity_id})
    return activity


def deactivate_sub_activity(sub_activity_id: str, actor) -> SubActivity:
    _require_admin(actor, "deactivate sub-activity")
    sub = get_or_raise(SubActivity, sub_activity_id, "SubActivity")
    sub.is_active = False
    commit_or_raise("deactivate_sub_activity")
    logger.info("Sub-activity deactivated", extra={"event_type": "catalog_sub_activity_deactivated",
                                                   "sub_activity_id": sub_activity_id})
    return sub
