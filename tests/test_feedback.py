"""
Feedback Gate tests — visibility, editability, completeness and the
submit → Feedback Received hand-back.
"""

import pytest
from sqlalchemy import func, select

from advisory.core.exceptions import UnauthorizedError, ValidationError
from advisory.models import db
from advisory.models.feedback import RequestFeedback
from advisory.models.request import AdvisoryRequest
from advisory.services.feedback_service import (
    can_edit,
    can_view,
    get_feedback_view,
    is_mandatory_complete,
    is_section_visible,
    missing_fields,
    submit_feedback,
)
from advisory.services.identity import Actor


COMPLETE = {
    "quality_rating": 5,
    "response_time_rating": 4,
    "satisfaction_rating": 5,
    "communication_rating": 3,
    "overall_rating": 4,
    "feedback_text": "Clear recommendations.",
    "benefits_achieved": "Shorter close cycle.",
    "suggestions_for_improvement": "",
}


def _feedback_count(req):
    return db.session.execute(
        select(func.count(RequestFeedback.id)).where(RequestFeedback.request_id == req.id)
    ).scalar()


def _awaiting(make_request):
    return make_request("Awaiting Feedback", assignee_id="requestor-1",
                        original_assignee_id="consultant-1")


# ═══════════════════════════════════════════════════════════════════════════
# Visibility & editability
# ═══════════════════════════════════════════════════════════════════════════


class TestVisibility:

    @pytest.mark.parametrize("actor, expected", [
        (Actor("requestor-1"), True),
        (Actor("consultant-1", title="Advisory Consultant"), True),
        (Actor("admin-9", role="Admin"), True),
        (Actor("head-1", title="Advisory Service Head"), True),
        (Actor("lead-1", title="Advisory Service Lead"), False),
        (Actor("stranger"), False),
    ])
    def test_can_view(self, make_request, actor, expected):
        req = _awaiting(make_request)
        assert can_view(req, actor) is expected

    def test_anonymous_cannot_view(self, make_request):
        assert can_view(_awaiting(make_request), None) is False

    @pytest.mark.parametrize("status, expected", [
        ("Implemented", False),
        ("Awaiting Feedback", True),
        ("Feedback Received", True),
        ("Closed", True),
        ("Cancelled", False),
    ])
    def test_section_visible_by_status(self, make_request, status, expected):
        assert is_section_visible(make_request(status)) is expected

    def test_only_requestor_edits_while_awaiting(self, make_request):
        req = _awaiting(make_request)
        assert can_edit(req, Actor("requestor-1")) is True
        assert can_edit(req, Actor("consultant-1")) is False
        assert can_edit(req, Actor("admin-9", role="Admin")) is False

        done = make_request("Feedback Received")
        assert can_edit(done, Actor("requestor-1")) is False


# ═══════════════════════════════════════════════════════════════════════════
# Completeness
# ═══════════════════════════════════════════════════════════════════════════


class TestCompleteness:

    def test_complete_payload(self):
        assert is_mandatory_complete(COMPLETE) is True

    def test_suggestions_are_optional(self):
        data = {k: v for k, v in COMPLETE.items() if k != "suggestions_for_improvement"}
        assert is_mandatory_complete(data) is True

    def test_missing_rating_and_blank_text(self):
        data = dict(COMPLETE, overall_rating=0, feedback_text="   ")
        assert set(missing_fields(data)) == {"overall_rating", "feedback_text"}

    @pytest.mark.parametrize("value", [None, 0, 6, -1, "x", True])
    def test_invalid_rating_values(self, value):
        assert is_mandatory_complete(dict(COMPLETE, quality_rating=value)) is False

    def test_incomplete_rejected_before_any_write(self, make_request):
        req = _awaiting(make_request)
        data = dict(COMPLETE, communication_rating=None, feedback_text="")

        with pytest.raises(ValidationError) as exc:
            submit_feedback(req.id, data, Actor("requestor-1", role="Standard User"))

        assert exc.value.reason == "feedback_incomplete"
        assert set(exc.value.details["missing"]) == {"communication_rating", "feedback_text"}
        assert _feedback_count(req) == 0
        assert db.session.get(AdvisoryRequest, req.id).status == "Awaiting Feedback"


# ═══════════════════════════════════════════════════════════════════════════
# Submission
# ═══════════════════════════════════════════════════════════════════════════


class TestSubmission:

    def test_submit_moves_to_feedback_received(self, make_request, requestor):
        req = _awaiting(make_request)
        result = submit_feedback(req.id, COMPLETE, requestor)

        assert result["feedback"]["overall_rating"] == 4
        assert result["transition"]["to_status"] == "Feedback Received"
        req = db.session.get(AdvisoryRequest, req.id)
        assert req.status == "Feedback Received"
        assert req.assignee_id == "consultant-1"
        assert _feedback_count(req) == 1

    def test_upsert_updates_existing_record(self, make_request, requestor):
        req = _awaiting(make_request)
        db.session.add(RequestFeedback(
            request_id=req.id, user_id="requestor-1",
            quality_rating=1, response_time_rating=1, satisfaction_rating=1,
            communication_rating=1, overall_rating=1,
        ))
        db.session.commit()

        submit_feedback(req.id, COMPLETE, requestor)

        assert _feedback_count(req) == 1
        record = db.session.execute(
            select(RequestFeedback).where(RequestFeedback.request_id == req.id)
        ).scalar_one()
        assert record.quality_rating == 5
        assert record.benefits_achieved == "Shorter close cycle."

    def test_non_requestor_refused(self, make_request, consultant):
        req = _awaiting(make_request)
        with pytest.raises(UnauthorizedError):
            submit_feedback(req.id, COMPLETE, consultant)

    def test_wrong_status_locked(self, make_request, requestor):
        req = make_request("Implementing")
        with pytest.raises(ValidationError) as exc:
            submit_feedback(req.id, COMPLETE, requestor)
        assert exc.value.reason == "feedback_locked"

    def test_view_after_submit(self, make_request, requestor, admin):
        req = _awaiting(make_request)
        before = get_feedback_view(req.id, requestor)
        assert before == {"visible": True, "editable": True, "submitted": False, "feedback": None}

        submit_feedback(req.id, COMPLETE, requestor)

        view = get_feedback_view(req.id, admin)
        assert view["visible"] is True
        assert view["editable"] is False
        assert view["submitted"] is True
        assert view["feedback"]["feedback_text"] == "Clear recommendations."

    def test_view_hidden_for_stranger(self, make_request, make_profile):
        stranger = make_profile("stranger-1")
        req = _awaiting(make_request)
        view = get_feedback_view(req.id, stranger)
        assert view["visible"] is False
        assert view["feedback"] is None
