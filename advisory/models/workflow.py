"""
Advisory Request Workflow
Status vocabulary and the status-transition catalog.

Status values and role/title strings are the workflow's only "protocol":
they are shared verbatim between the ``status_transitions`` rows and the
authorization rule in ``advisory.services.transition_service``.
"""

from datetime import datetime, timezone

from advisory.models import db

# ── Status vocabulary ────────────────────────────────────────────────────────

STATUS_NEW = "New"
STATUS_PENDING_REVIEW = "Pending Review"
STATUS_REVIEW = "Review"
STATUS_UNDER_DISCUSSION = "Under Discussion"
STATUS_ESTIMATION = "Estimation"
STATUS_APPROVAL = "Approval"
STATUS_APPROVED = "Approved"
STATUS_IMPLEMENTING = "Implementing"
STATUS_AWAITING_FEEDBACK = "Awaiting Feedback"
STATUS_FEEDBACK_RECEIVED = "Feedback Received"
STATUS_IMPLEMENTED = "Implemented"
STATUS_CLOSED = "Closed"
STATUS_CANCELLED = "Cancelled"
STATUS_REJECT = "Reject"

REQUEST_STATUSES = (
    STATUS_NEW,
    STATUS_PENDING_REVIEW,
    STATUS_REVIEW,
    STATUS_UNDER_DISCUSSION,
    STATUS_ESTIMATION,
    STATUS_APPROVAL,
    STATUS_APPROVED,
    STATUS_IMPLEMENTING,
    STATUS_AWAITING_FEEDBACK,
    STATUS_FEEDBACK_RECEIVED,
    STATUS_IMPLEMENTED,
    STATUS_CLOSED,
    STATUS_CANCELLED,
    STATUS_REJECT,
)

INITIAL_STATUS = STATUS_NEW
TERMINAL_STATUSES = frozenset({STATUS_CLOSED, STATUS_CANCELLED, STATUS_REJECT})

# ── Roles and titles ─────────────────────────────────────────────────────────

ROLE_ADMIN = "Admin"
ROLE_STANDARD_USER = "Standard User"
ROLE_REQUESTOR = "Requestor"

TITLE_ADVISORY_CONSULTANT = "Advisory Consultant"
TITLE_ADVISORY_SERVICE_LEAD = "Advisory Service Lead"
TITLE_ADVISORY_SERVICE_HEAD = "Advisory Service Head"

ADVISORY_TITLES = frozenset({
    TITLE_ADVISORY_CONSULTANT,
    TITLE_ADVISORY_SERVICE_LEAD,
    TITLE_ADVISORY_SERVICE_HEAD,
})

# role_required == "Requestor" is satisfied by either of these system roles
REQUESTOR_ROLES = frozenset({ROLE_STANDARD_USER, ROLE_REQUESTOR})

# ── Default workflow (seeded by `flask seed-workflow`) ───────────────────────

DEFAULT_TRANSITIONS = (
    (STATUS_NEW, STATUS_PENDING_REVIEW, TITLE_ADVISORY_CONSULTANT),
    (STATUS_NEW, STATUS_CANCELLED, TITLE_ADVISORY_CONSULTANT),
    (STATUS_PENDING_REVIEW, STATUS_UNDER_DISCUSSION, TITLE_ADVISORY_CONSULTANT),
    (STATUS_PENDING_REVIEW, STATUS_REJECT, TITLE_ADVISORY_CONSULTANT),
    (STATUS_UNDER_DISCUSSION, STATUS_ESTIMATION, TITLE_ADVISORY_CONSULTANT),
    (STATUS_UNDER_DISCUSSION, STATUS_CANCELLED, TITLE_ADVISORY_CONSULTANT),
    (STATUS_ESTIMATION, STATUS_REVIEW, TITLE_ADVISORY_CONSULTANT),
    (STATUS_ESTIMATION, STATUS_UNDER_DISCUSSION, TITLE_ADVISORY_CONSULTANT),
    (STATUS_REVIEW, STATUS_APPROVAL, TITLE_ADVISORY_CONSULTANT),
    (STATUS_REVIEW, STATUS_ESTIMATION, TITLE_ADVISORY_CONSULTANT),
    (STATUS_APPROVAL, STATUS_APPROVED, TITLE_ADVISORY_SERVICE_LEAD),
    (STATUS_APPROVAL, STATUS_ESTIMATION, TITLE_ADVISORY_SERVICE_LEAD),
    (STATUS_APPROVAL, STATUS_REJECT, TITLE_ADVISORY_SERVICE_LEAD),
    (STATUS_APPROVED, STATUS_IMPLEMENTING, TITLE_ADVISORY_CONSULTANT),
    (STATUS_IMPLEMENTING, STATUS_IMPLEMENTED, TITLE_ADVISORY_CONSULTANT),
    (STATUS_IMPLEMENTED, STATUS_AWAITING_FEEDBACK, TITLE_ADVISORY_CONSULTANT),
    (STATUS_AWAITING_FEEDBACK, STATUS_FEEDBACK_RECEIVED, ROLE_REQUESTOR),
    (STATUS_FEEDBACK_RECEIVED, STATUS_CLOSED, TITLE_ADVISORY_CONSULTANT),
)


class StatusTransition(db.Model):
    """
    One nominally legal edge of the request state machine.

    The set of rows sharing a ``from_status`` is the full list of candidate
    next states; authorization narrows it per actor.
    """

    __tablename__ = "status_transitions"
    __table_args__ = (
        db.UniqueConstraint("from_status", "to_status", name="uq_status_transition_edge"),
    )

    id = db.Column(db.Integer, primary_key=True)
    from_status = db.Column(db.String(40), nullable=False, index=True)
    to_status = db.Column(db.String(40), nullable=False)
    role_required = db.Column(
        db.String(80), nullable=False,
        comment="System role or job title; 'Requestor' matches Standard User | Requestor",
    )
    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "role_required": self.role_required,
        }

    def __repr__(self):
        return f"<StatusTransition {self.from_status} -> {self.to_status} ({self.role_required})>"
