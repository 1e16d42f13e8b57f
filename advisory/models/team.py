"""
Advisory Request Workflow
Identity and billing-profile models.

Models:
    - Profile: authenticated user with a system role and a job title.
    - AdvisoryTeamMember: consultant billing profile (rate, designation) and
      the advisory services the member covers.
"""

from datetime import datetime, timezone

from advisory.models import db


def _utcnow():
    return datetime.now(timezone.utc)


class Profile(db.Model):
    """User profile.  ``role`` is the system role, ``title`` the job title."""

    __tablename__ = "profiles"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), nullable=False, unique=True)
    username = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(255), nullable=False)
    role = db.Column(
        db.String(50), nullable=False, default="Standard User",
        comment="Admin | Standard User | Requestor | …",
    )
    title = db.Column(
        db.String(80), nullable=True,
        comment="Advisory Consultant | Advisory Service Lead | Advisory Service Head | …",
    )
    status = db.Column(db.String(20), nullable=False, default="active")
    last_login = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "username": self.username,
            "email": self.email,
            "role": self.role,
            "title": self.title,
            "status": self.status,
        }

    def __repr__(self):
        return f"<Profile {self.user_id}: {self.role}/{self.title}>"


class AdvisoryTeamMember(db.Model):
    """Consultant billing profile consumed by estimation and auto-assignment."""

    __tablename__ = "advisory_team_members"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), nullable=True, unique=True)
    name = db.Column(db.String(200), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    title = db.Column(db.String(80), nullable=False)
    designation = db.Column(db.String(120), nullable=True)
    rate_per_hour = db.Column(db.Float, nullable=True)
    advisory_services = db.Column(db.JSON, nullable=False, default=list)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "name": self.name,
            "email": self.email,
            "title": self.title,
            "designation": self.designation,
            "rate_per_hour": self.rate_per_hour,
            "advisory_services": list(self.advisory_services or []),
            "is_active": self.is_active,
        }

    def __repr__(self):
        return f"<AdvisoryTeamMember {self.name} ({self.title})>"
