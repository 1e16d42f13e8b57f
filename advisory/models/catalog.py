"""
Advisory Request Workflow
Activity catalog models.

Models:
    - ServiceOffering: purchasable advisory package a request is scoped to.
    - Activity: estimable unit of work under an offering.
    - SubActivity: finer-grained unit owned by exactly one activity.

Deactivation is a soft flag (``is_active``).  Rows are never deleted once a
request may reference them.
"""

import uuid
from datetime import datetime, timezone

from advisory.models import db


def _uuid():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


class ServiceOffering(db.Model):
    """Advisory offering (e.g. a tool-enablement package)."""

    __tablename__ = "service_offerings"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    advisory_service = db.Column(
        db.String(120), nullable=False,
        comment="Advisory service this offering belongs to",
    )
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    display_order = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    activities = db.relationship(
        "Activity",
        back_populates="offering",
        order_by="Activity.display_order",
        lazy="select",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "advisory_service": self.advisory_service,
            "name": self.name,
            "description": self.description,
            "display_order": self.display_order,
            "is_active": self.is_active,
        }

    def __repr__(self):
        return f"<ServiceOffering {self.id}: {self.name}>"


class Activity(db.Model):
    """Catalog activity with an estimated-hours weight."""

    __tablename__ = "activities"
    __table_args__ = (
        db.Index("idx_activity_offering_order", "service_offering_id", "display_order"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    service_offering_id = db.Column(
        db.String(36),
        db.ForeignKey("service_offerings.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = db.Column(db.String(255), nullable=False)
    estimated_hours = db.Column(db.Integer, nullable=False, default=0)
    display_order = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    offering = db.relationship("ServiceOffering", back_populates="activities")
    sub_activities = db.relationship(
        "SubActivity",
        back_populates="activity",
        order_by="SubActivity.display_order",
        lazy="select",
    )

    def to_dict(self, include_sub_activities: bool = True, active_only: bool = True) -> dict:
        d = {
            "id": self.id,
            "service_offering_id": self.service_offering_id,
            "name": self.name,
            "estimated_hours": self.estimated_hours,
            "display_order": self.display_order,
            "is_active": self.is_active,
        }
        if include_sub_activities:
            d["sub_activities"] = [
                s.to_dict() for s in self.sub_activities
                if s.is_active or not active_only
            ]
        return d

    def __repr__(self):
        return f"<Activity {self.id}: {self.name} ({self.estimated_hours}h)>"


class SubActivity(db.Model):
    """Catalog sub-activity owned by one activity."""

    __tablename__ = "sub_activities"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    activity_id = db.Column(
        db.String(36),
        db.ForeignKey("activities.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = db.Column(db.String(255), nullable=False)
    estimated_hours = db.Column(db.Integer, nullable=False, default=0)
    associated_tool = db.Column(db.String(120), nullable=True)
    display_order = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    activity = db.relationship("Activity", back_populates="sub_activities")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "activity_id": self.activity_id,
            "name": self.name,
            "estimated_hours": self.estimated_hours,
            "associated_tool": self.associated_tool,
            "display_order": self.display_order,
            "is_active": self.is_active,
        }

    def __repr__(self):
        return f"<SubActivity {self.id}: {self.name} ({self.estimated_hours}h)>"
