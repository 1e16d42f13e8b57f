"""
Estimation — live figures and the Estimation → Review freeze.

    total_hours        Σ selected activity hours + Σ selected sub-activity hours
    total_pd_estimate  ceil(total_hours / HOURS_PER_PERSON_DAY)
    assignee_rate      rate_per_hour of the assignee, 0 without a billing profile
    total_cost         total_hours × assignee_rate
    assignee_role      designation or title or "Not assigned"

The freeze copies these onto the request's ``saved_*`` columns and stamps
``estimation_saved_at``.  Nothing else writes those columns, so selection
edits after a freeze leave the frozen figures untouched until the next
Estimation → Review recomputes them.
"""

import logging
import math
from dataclasses import asdict, dataclass
from datetime import datetime, timezone

from flask import current_app, has_app_context
from sqlalchemy import select

from advisory.models import db
from advisory.models.team import AdvisoryTeamMember
from advisory.services.catalog_service import catalog_hours
from advisory.services.selection import Selection

logger = logging.getLogger(__name__)

DEFAULT_HOURS_PER_PERSON_DAY = 8
NOT_ASSIGNED_ROLE = "Not assigned"


def hours_per_person_day() -> int:
    if has_app_context():
        return int(current_app.config.get("HOURS_PER_PERSON_DAY", DEFAULT_HOURS_PER_PERSON_DAY))
    return DEFAULT_HOURS_PER_PERSON_DAY


@dataclass
class EstimationFigures:
    total_hours: int
    total_pd_estimate: int
    total_cost: float
    assignee_rate: float
    assignee_role: str

    def to_dict(self) -> dict:
        return asdict(self)


def person_days(total_hours: int, hours_per_day: int | None = None) -> int:
    hours_per_day = hours_per_day or hours_per_person_day()
    return math.ceil(total_hours / hours_per_day) if total_hours > 0 else 0


def billable_assignment_days(total_hours, billability_percentage) -> int:
    """ceil(hours / (hours_per_day × pct / 100)); 0 when either input is 0 or missing."""
    if not total_hours or not billability_percentage:
        return 0
    billable_hours_per_day = hours_per_person_day() * float(billability_percentage) / 100
    return math.ceil(float(total_hours) / billable_hours_per_day)


def get_billing_profile(user_id: str | None) -> AdvisoryTeamMember | None:
    if not user_id:
        return None
    return db.session.execute(
        select(AdvisoryTeamMember).where(AdvisoryTeamMember.user_id == user_id)
    ).scalar_one_or_none()


def compute_estimation(request) -> EstimationFigures:
    """Live figures for a request from its current selection and assignee."""
    selection = Selection.from_request(request)
    activity_hours, sub_hours = catalog_hours(request.service_offerings)
    total_hours = selection.total_estimated_hours(activity_hours, sub_hours)

    member = get_billing_profile(request.assignee_id)
    rate = (member.rate_per_hour if member else None) or 0.0
    if member:
        role = member.designation or member.title or NOT_ASSIGNED_ROLE
    else:
        role = NOT_ASSIGNED_ROLE

    return EstimationFigures(
        total_hours=total_hours,
        total_pd_estimate=person_days(total_hours),
        total_cost=float(total_hours * rate),
        assignee_rate=rate,
        assignee_role=role,
    )


def freeze_estimation(request) -> EstimationFigures:
    """
    Write the frozen snapshot onto ``request``.  Caller owns the transaction.

    A repeated freeze (after Review → Estimation → Review) overwrites the
    previous snapshot.
    """
    figures = compute_estimation(request)
    request.saved_total_hours = figures.total_hours
    request.saved_total_pd_estimate = figures.total_pd_estimate
    request.saved_total_cost = figures.total_cost
    request.saved_assignee_rate = figures.assignee_rate
    request.saved_assignee_role = figures.assignee_role
    request.estimation_saved_at = datetime.now(timezone.utc)
    db.session.flush()

    logger.info(
        "Estimation frozen for %s: %sh, %s PD, cost %.2f",
        request.request_id, figures.total_hours, figures.total_pd_estimate, figures.total_cost,
        extra={"event_type": "estimation_frozen", "request_id": request.request_id},
    )
    return figures


def live_estimate(request) -> dict:
    """
    Estimation panel payload.

    Frozen figures once ``estimation_saved_at`` is set, otherwise live
    figures from the current selection and the current assignee's rate.
    """
    if request.is_estimation_frozen:
        figures = EstimationFigures(
            total_hours=request.saved_total_hours or 0,
            total_pd_estimate=request.saved_total_pd_estimate or 0,
            total_cost=request.saved_total_cost or 0.0,
            assignee_rate=request.saved_assignee_rate or 0.0,
            assignee_role=request.saved_assignee_role or NOT_ASSIGNED_ROLE,
        )
    else:
        figures = compute_estimation(request)

    result = figures.to_dict()
    result["is_frozen"] = request.is_estimation_frozen
    result["estimation_saved_at"] = (
        request.estimation_saved_at.isoformat() if request.estimation_saved_at else None
    )
    result["billability_percentage"] = request.billability_percentage
    result["billable_assignment_days"] = billable_assignment_days(
        figures.total_hours, request.billability_percentage,
    )
    return result
