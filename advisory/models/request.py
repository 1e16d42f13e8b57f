"""
Advisory Request Workflow
Request aggregate and its append-only timeline.

Models:
    - AdvisoryRequest: the central aggregate (status, assignees, selection,
      frozen estimation figures, billability / allocation gates).
    - RequestTimeline: immutable audit entries, one per mutating operation.
"""

import uuid
from datetime import datetime, timezone

from advisory.models import db
from advisory.models.workflow import INITIAL_STATUS

# ── Timeline actions ─────────────────────────────────────────────────────────

TIMELINE_SUBMITTED = "Request Submitted"
TIMELINE_STATUS_CHANGE = "Status Change"
TIMELINE_REASSIGNED = "Reassigned"
TIMELINE_BILLABILITY = "Billability Updated"
TIMELINE_ALLOCATION = "Allocation Updated"

TIMELINE_ACTIONS = {
    TIMELINE_SUBMITTED,
    TIMELINE_STATUS_CHANGE,
    TIMELINE_REASSIGNED,
    TIMELINE_BILLABILITY,
    TIMELINE_ALLOCATION,
}


def _utcnow():
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


class AdvisoryRequest(db.Model):
    """
    Advisory service request.

    Frozen estimation columns (``saved_*`` and ``estimation_saved_at``) are
    written only by the estimation freeze at Estimation → Review.  Selection
    edits never touch them.

    ``version`` is bumped by every status commit; the store call updates
    conditionally on it so that concurrent transitions serialize in the DB.
    """

    __tablename__ = "advisory_requests"
    __table_args__ = (
        db.Index("idx_request_status", "status"),
        db.Index("idx_request_assignee", "assignee_id"),
        db.Index("idx_request_requestor", "requestor_id"),
    )

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    request_id = db.Column(db.String(40), nullable=False, unique=True)
    status = db.Column(db.String(40), nullable=False, default=INITIAL_STATUS)

    # Weak identity references (profiles.user_id)
    requestor_id = db.Column(db.String(64), nullable=True)
    assignee_id = db.Column(db.String(64), nullable=True)
    original_assignee_id = db.Column(db.String(64), nullable=True)

    # Intake
    advisory_service = db.Column(db.String(120), nullable=True)
    service_offerings = db.Column(db.JSON, nullable=False, default=list)
    description = db.Column(db.Text, nullable=True)
    project_data = db.Column(db.JSON, nullable=False, default=dict)
    submission_date = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    # Selection: nested per-offering (current) and flat (legacy) encodings
    service_offering_activities = db.Column(db.JSON, nullable=True)
    selected_activities = db.Column(
        db.JSON, nullable=True,
        comment="Legacy flat selection shape; folded into the nested shape on the next selection write",
    )

    # Frozen estimation snapshot
    saved_total_hours = db.Column(db.Integer, nullable=True)
    saved_total_cost = db.Column(db.Float, nullable=True)
    saved_total_pd_estimate = db.Column(db.Integer, nullable=True)
    saved_assignee_rate = db.Column(db.Float, nullable=True)
    saved_assignee_role = db.Column(db.String(120), nullable=True)
    estimation_saved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Gates
    billability_percentage = db.Column(db.Float, nullable=True)
    allocation_percentage = db.Column(db.String(40), nullable=True)

    version = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    timeline = db.relationship(
        "RequestTimeline",
        back_populates="request",
        order_by="RequestTimeline.id",
        lazy="select",
    )

    @property
    def is_estimation_frozen(self) -> bool:
        return self.estimation_saved_at is not None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "request_id": self.request_id,
            "status": self.status,
            "requestor_id": self.requestor_id,
            "assignee_id": self.assignee_id,
            "original_assignee_id": self.original_assignee_id,
            "advisory_service": self.advisory_service,
            "service_offerings": list(self.service_offerings or []),
            "description": self.description,
            "project_data": self.project_data or {},
            "submission_date": _iso(self.submission_date),
            "service_offering_activities": self.service_offering_activities or {},
            "saved_total_hours": self.saved_total_hours,
            "saved_total_cost": self.saved_total_cost,
            "saved_total_pd_estimate": self.saved_total_pd_estimate,
            "saved_assignee_rate": self.saved_assignee_rate,
            "saved_assignee_role": self.saved_assignee_role,
            "estimation_saved_at": _iso(self.estimation_saved_at),
            "billability_percentage": self.billability_percentage,
            "allocation_percentage": self.allocation_percentage,
            "version": self.version,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def __repr__(self):
        return f"<AdvisoryRequest {self.request_id}: {self.status}>"


class RequestTimeline(db.Model):
    """Immutable audit entry.  Never updated or deleted."""

    __tablename__ = "request_timeline"
    __table_args__ = (
        db.Index("idx_timeline_request", "request_id", "performed_at"),
    )

    id = db.Column(db.Integer, primary_key=True)
    request_id = db.Column(
        db.String(36),
        db.ForeignKey("advisory_requests.id", ondelete="CASCADE"),
        nullable=False,
    )
    action = db.Column(
        db.String(60), nullable=False,
        comment="Status Change | Reassigned | Request Submitted | …",
    )
    old_value = db.Column(db.String(255), nullable=True)
    new_value = db.Column(db.String(255), nullable=True)
    performed_by = db.Column(db.String(64), nullable=True)
    performed_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    request = db.relationship("AdvisoryRequest", back_populates="timeline")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "request_id": self.request_id,
            "action": self.action,
            "old_value": self.old_value,
            "new_value": self.new_value,
            "performed_by": self.performed_by,
            "performed_at": _iso(self.performed_at),
        }

    def __repr__(self):
        return f"<RequestTimeline {self.id}: {self.action} {self.old_value} -> {self.new_value}>"


# ── Convenience writer ───────────────────────────────────────────────────────

def write_timeline(
    *,
    request_id: str,
    action: str,
    old_value: str | None = None,
    new_value: str | None = None,
    performed_by: str | None = None,
) -> RequestTimeline:
    """
    Append a single timeline row.  Uses ``flush`` so callers keep
    transaction control.
    """
    entry = RequestTimeline(
        request_id=request_id,
        action=action,
        old_value=old_value,
        new_value=new_value,
        performed_by=performed_by,
    )
    db.session.add(entry)
    db.session.flush()
    return entry
