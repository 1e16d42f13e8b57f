"""
Advisory Request Workflow
Requestor feedback model.

One record per (request, user).  The user key is always the authenticated
submitter, never the request's requestor_id.
"""

from datetime import datetime, timezone

from advisory.models import db

RATING_FIELDS = (
    "quality_rating",
    "response_time_rating",
    "satisfaction_rating",
    "communication_rating",
    "overall_rating",
)

TEXT_FIELDS = (
    "feedback_text",
    "benefits_achieved",
    "suggestions_for_improvement",
)


def _utcnow():
    return datetime.now(timezone.utc)


class RequestFeedback(db.Model):
    """Five 1–5 ratings plus free text."""

    __tablename__ = "request_feedback"
    __table_args__ = (
        db.UniqueConstraint("request_id", "user_id", name="uq_feedback_request_user"),
    )

    id = db.Column(db.Integer, primary_key=True)
    request_id = db.Column(
        db.String(36),
        db.ForeignKey("advisory_requests.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id = db.Column(db.String(64), nullable=False)

    quality_rating = db.Column(db.Integer, nullable=False)
    response_time_rating = db.Column(db.Integer, nullable=False)
    satisfaction_rating = db.Column(db.Integer, nullable=False)
    communication_rating = db.Column(db.Integer, nullable=False)
    overall_rating = db.Column(db.Integer, nullable=False)

    feedback_text = db.Column(db.Text, nullable=True)
    benefits_achieved = db.Column(db.Text, nullable=True)
    suggestions_for_improvement = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    def to_dict(self) -> dict:
        d = {
            "id": self.id,
            "request_id": self.request_id,
            "user_id": self.user_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        for field in RATING_FIELDS + TEXT_FIELDS:
            d[field] = getattr(self, field)
        return d

    def __repr__(self):
        return f"<RequestFeedback {self.request_id}/{self.user_id}>"
