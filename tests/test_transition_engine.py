"""
Status Transition Engine tests — comprehensive coverage for:
  - Available transitions per status / actor (authorization closure)
  - Approval special-case for advisory titles
  - Gates: billability (Review → Approval), activities (Estimation → Review),
    optional allocation (Approval → Approved)
  - Estimation freeze on Estimation → Review, including a failing freeze
  - Auto-reassignment and NoAssigneeAvailable
  - Optimistic concurrency
  - Terminal states and catalog seeding
"""

import pytest
from sqlalchemy import select, update

from advisory.core.exceptions import (
    ConcurrentModificationError,
    NoAssigneeAvailableError,
    ValidationError,
)
from advisory.models import db
from advisory.models.request import AdvisoryRequest, RequestTimeline
from advisory.models.workflow import REQUEST_STATUSES, TERMINAL_STATUSES, StatusTransition
from advisory.services import estimation_service
from advisory.services.assignment_service import (
    pick_available_consultant,
    update_request_status_and_assignee,
)
from advisory.services.identity import Actor, actor_has_capability
from advisory.services.transition_service import (
    can_transition,
    list_available_transitions,
    request_transition,
    seed_default_transitions,
)


# ═══════════════════════════════════════════════════════════════════════════
# Helpers
# ═══════════════════════════════════════════════════════════════════════════


def _timeline(req, action=None):
    stmt = select(RequestTimeline).where(RequestTimeline.request_id == req.id)
    if action:
        stmt = stmt.where(RequestTimeline.action == action)
    return db.session.execute(stmt.order_by(RequestTimeline.id)).scalars().all()


def _targets(status, actor, req):
    return [t.to_status for t in list_available_transitions(status, actor, req)]


def _full_nested(catalog):
    return {catalog.offering: {"activities": {
        catalog.activity_a: {
            "selected": True, "name": "Discovery", "estimated_hours": 10,
            "subActivities": {
                catalog.sub_a1: {"selected": True, "name": "Interviews", "estimated_hours": 4},
                catalog.sub_a2: {"selected": True, "name": "Workshop", "estimated_hours": 6},
            },
        },
    }}}


# ═══════════════════════════════════════════════════════════════════════════
# TestAvailableTransitions
# ═══════════════════════════════════════════════════════════════════════════


class TestAvailableTransitions:

    def test_assignee_consultant_in_new(self, make_request, consultant):
        req = make_request("New")
        assert _targets("New", consultant, req) == ["Pending Review", "Cancelled"]

    def test_non_assignee_gets_nothing(self, make_request, make_profile):
        other = make_profile("consultant-2", title="Advisory Consultant")
        req = make_request("New")
        assert _targets("New", other, req) == []

    def test_admin_gets_every_row(self, make_request, admin):
        req = make_request("Approval", assignee_id="someone-else")
        assert _targets("Approval", admin, req) == ["Approved", "Estimation", "Reject"]

    def test_authorization_closure(self, make_request, admin, consultant, lead, requestor, make_profile):
        outsider = make_profile("outsider-1", title="Stakeholder")
        actors = [admin, consultant, lead, requestor, outsider]
        for status in REQUEST_STATUSES:
            req = make_request(status)
            catalog_targets = {
                t.to_status for t in db.session.execute(
                    select(StatusTransition).where(StatusTransition.from_status == status)
                ).scalars()
            }
            for actor in actors:
                returned = list_available_transitions(status, actor, req)
                assert {t.to_status for t in returned} <= catalog_targets
                assert all(can_transition(t, status, actor, req) for t in returned)

    def test_terminal_status_returns_empty_even_with_catalog_row(self, make_request, admin):
        db.session.add(StatusTransition(from_status="Closed", to_status="New",
                                        role_required="Admin"))
        db.session.commit()
        req = make_request("Closed")
        for status in TERMINAL_STATUSES:
            assert list_available_transitions(status, admin, req) == []

    def test_invalid_status_rejected(self, admin):
        with pytest.raises(ValidationError) as exc:
            list_available_transitions("Bogus", admin)
        assert exc.value.reason == "invalid_status"

    def test_requestor_rule_matches_standard_user(self, make_request, requestor):
        req = make_request("Awaiting Feedback", assignee_id="requestor-1")
        assert _targets("Awaiting Feedback", requestor, req) == ["Feedback Received"]

    def test_requestor_rule_ignores_job_title(self, make_request, make_profile):
        titled = make_profile("consultant-7", role="Advisory Consultant", title="Requestor")
        req = make_request("Awaiting Feedback", assignee_id="consultant-7")
        assert "Feedback Received" not in _targets("Awaiting Feedback", titled, req)
        assert actor_has_capability(titled, "Requestor") is False

    def test_role_required_matched_by_role_field(self, make_request, make_profile):
        # Catalog names a title; the actor carries it as its system role
        odd = make_profile("consultant-9", role="Advisory Consultant", title=None)
        req = make_request("New", assignee_id="consultant-9")
        assert "Pending Review" in _targets("New", odd, req)


# ═══════════════════════════════════════════════════════════════════════════
# TestApprovalSpecialCase
# ═══════════════════════════════════════════════════════════════════════════


class TestApprovalSpecialCase:

    def test_assignee_with_advisory_title_can_transition(self, make_request):
        actor = Actor(user_id="consultant-1", role="Standard User", title="Advisory Consultant")
        req = make_request("Approval", assignee_id="consultant-1")
        assert _targets("Approval", actor, req) == ["Approved", "Estimation", "Reject"]

    def test_assignee_with_other_title_cannot(self, make_request):
        actor = Actor(user_id="consultant-1", role="Standard User", title="Stakeholder")
        req = make_request("Approval", assignee_id="consultant-1")
        assert _targets("Approval", actor, req) == []

    def test_advisory_title_without_assignment_cannot(self, make_request):
        actor = Actor(user_id="lead-2", role="Standard User", title="Advisory Service Lead")
        req = make_request("Approval", assignee_id="consultant-1")
        assert _targets("Approval", actor, req) == []

    def test_consultant_completes_approval(self, make_request, consultant):
        req = make_request("Approval")
        result = request_transition(req.id, "Approved", consultant)
        assert result.success is True
        assert db.session.get(AdvisoryRequest, req.id).status == "Approved"


# ═══════════════════════════════════════════════════════════════════════════
# TestGates
# ═══════════════════════════════════════════════════════════════════════════


class TestGates:

    def test_billability_required_for_approval(self, make_request, admin):
        req = make_request("Review", billability=None)
        result = request_transition(req.id, "Approval", admin)

        assert result.success is False
        assert result.error == "ValidationFailed"
        assert result.reason == "billability_required"
        assert "Billability Percentage" in result.message
        assert db.session.get(AdvisoryRequest, req.id).status == "Review"
        assert _timeline(req) == []

    def test_zero_billability_is_not_enough(self, make_request, admin):
        req = make_request("Review", billability=0)
        result = request_transition(req.id, "Approval", admin)
        assert result.reason == "billability_required"

    def test_billability_set_allows_approval(self, make_request, consultant):
        req = make_request("Review", billability=75)
        result = request_transition(req.id, "Approval", consultant)
        assert result.success is True
        assert result.to_status == "Approval"

    def test_activities_required_for_review(self, make_request, consultant):
        req = make_request("Estimation")
        result = request_transition(req.id, "Review", consultant)

        assert result.success is False
        assert result.reason == "activities_required"
        assert db.session.get(AdvisoryRequest, req.id).status == "Estimation"

    def test_legacy_selection_satisfies_activity_gate(self, make_request, consultant, catalog):
        legacy = {"activities": {catalog.activity_b: {"selected": True, "estimatedHours": 5}}}
        req = make_request("Estimation", legacy=legacy)
        result = request_transition(req.id, "Review", consultant)
        assert result.success is True
        assert db.session.get(AdvisoryRequest, req.id).saved_total_hours == 5

    def test_legacy_selection_behind_empty_nested_entry(self, make_request, consultant, catalog):
        legacy = {"activities": {catalog.activity_b: {"selected": True, "estimatedHours": 5}}}
        req = make_request("Estimation", nested={catalog.offering: {"activities": {}}}, legacy=legacy)
        result = request_transition(req.id, "Review", consultant)
        assert result.success is True
        assert db.session.get(AdvisoryRequest, req.id).saved_total_hours == 5

    def test_allocation_gate_off_by_default(self, make_request, lead):
        req = make_request("Approval", assignee_id="lead-1")
        assert request_transition(req.id, "Approved", lead).success is True

    def test_allocation_gate_when_enabled(self, app, make_request, lead, monkeypatch):
        monkeypatch.setitem(app.config, "ALLOCATION_REQUIRED_FOR_APPROVED", True)
        req = make_request("Approval", assignee_id="lead-1")
        result = request_transition(req.id, "Approved", lead)
        assert result.reason == "allocation_required"

        req.allocation_percentage = "50%"
        db.session.commit()
        assert request_transition(req.id, "Approved", lead).success is True


# ═══════════════════════════════════════════════════════════════════════════
# TestEstimationFreeze
# ═══════════════════════════════════════════════════════════════════════════


class TestEstimationFreeze:

    def test_successful_freeze(self, make_request, consultant, catalog):
        req = make_request("Estimation", nested=_full_nested(catalog))
        result = request_transition(req.id, "Review", consultant)

        assert result.success is True
        assert result.estimation_frozen is True
        req = db.session.get(AdvisoryRequest, req.id)
        assert req.status == "Review"
        assert req.saved_total_hours == 20
        assert req.saved_total_pd_estimate == 3
        assert req.saved_total_cost == 1000
        assert req.saved_assignee_rate == 50
        assert req.saved_assignee_role == "Senior Consultant"
        assert req.estimation_saved_at is not None

    def test_freeze_failure_does_not_block_transition(self, make_request, consultant, catalog, monkeypatch):
        def _boom(request):
            raise ValueError("rate lookup failed")

        monkeypatch.setattr(estimation_service, "freeze_estimation", _boom)
        req = make_request("Estimation", nested=_full_nested(catalog))
        result = request_transition(req.id, "Review", consultant)

        assert result.success is True
        assert result.estimation_frozen is False
        req = db.session.get(AdvisoryRequest, req.id)
        assert req.status == "Review"
        assert req.estimation_saved_at is None

    def test_refreeze_overwrites_snapshot(self, make_request, consultant, catalog):
        req = make_request("Estimation", nested=_full_nested(catalog))
        assert request_transition(req.id, "Review", consultant).success
        assert request_transition(req.id, "Estimation", consultant).success

        req = db.session.get(AdvisoryRequest, req.id)
        req.service_offering_activities = {catalog.offering: {"activities": {
            catalog.activity_b: {"selected": True, "name": "Design", "estimated_hours": 5,
                                 "subActivities": {}},
        }}}
        db.session.commit()

        assert request_transition(req.id, "Review", consultant).success
        req = db.session.get(AdvisoryRequest, req.id)
        assert req.saved_total_hours == 5
        assert req.saved_total_cost == 250

    def test_other_transitions_do_not_freeze(self, make_request, consultant, catalog):
        req = make_request("Review", nested=_full_nested(catalog), billability=50)
        result = request_transition(req.id, "Approval", consultant)
        assert result.estimation_frozen is None
        assert db.session.get(AdvisoryRequest, req.id).estimation_saved_at is None


# ═══════════════════════════════════════════════════════════════════════════
# TestReassignment
# ═══════════════════════════════════════════════════════════════════════════


class TestReassignment:

    def test_awaiting_feedback_assigns_requestor(self, make_request, consultant):
        req = make_request("Implemented")
        result = request_transition(req.id, "Awaiting Feedback", consultant)

        assert result.success is True
        assert result.reassigned is True
        assert result.assignee_id == "requestor-1"
        entries = _timeline(req, "Reassigned")
        assert [(e.old_value, e.new_value) for e in entries] == [("consultant-1", "requestor-1")]

    def test_feedback_received_returns_to_original_assignee(self, make_request, requestor):
        req = make_request("Awaiting Feedback", assignee_id="requestor-1",
                           original_assignee_id="consultant-1")
        result = request_transition(req.id, "Feedback Received", requestor)
        assert result.success is True
        assert result.assignee_id == "consultant-1"

    def test_plain_transition_keeps_assignee(self, make_request, consultant):
        req = make_request("New")
        result = request_transition(req.id, "Pending Review", consultant)
        assert result.reassigned is False
        assert result.assignee_id == "consultant-1"
        assert _timeline(req, "Reassigned") == []

    def test_unassigned_request_picks_consultant(self, make_request, make_member, admin):
        make_member("consultant-7", name="Quinn")
        req = make_request("New", assignee_id=None, original_assignee_id=None)
        result = request_transition(req.id, "Pending Review", admin)

        assert result.success is True
        assert result.reassigned is True
        req = db.session.get(AdvisoryRequest, req.id)
        assert req.assignee_id == "consultant-7"
        assert req.original_assignee_id == "consultant-7"

    def test_no_consultant_available(self, make_request, admin):
        req = make_request("New", assignee_id=None, original_assignee_id=None)
        result = request_transition(req.id, "Pending Review", admin)

        assert result.success is False
        assert result.error == "NoAssigneeAvailable"
        assert db.session.get(AdvisoryRequest, req.id).status == "New"
        assert _timeline(req) == []

    def test_cancel_unassigned_needs_no_consultant(self, make_request, admin):
        req = make_request("New", assignee_id=None, original_assignee_id=None)
        assert request_transition(req.id, "Cancelled", admin).success is True

    def test_pick_prefers_least_loaded_then_name(self, make_request, make_member):
        make_member("c-busy", name="Alex")
        make_member("c-free", name="Blake")
        make_member("c-free-2", name="Charlie")
        make_member("c-other-service", name="Aaron", services=["Other Service"])
        make_member("c-inactive", name="Aardvark", is_active=False)
        make_member("c-lead", name="Abe", title="Advisory Service Lead")
        make_request("Estimation", assignee_id="c-busy")
        make_request("Closed", assignee_id="c-free")

        member = pick_available_consultant("SAP Advisory")
        assert member.user_id == "c-free"

    def test_member_without_service_list_covers_everything(self, make_member):
        make_member("c-generalist", name="Gen", services=[])
        assert pick_available_consultant("Anything").user_id == "c-generalist"


# ═══════════════════════════════════════════════════════════════════════════
# TestCommitAndConcurrency
# ═══════════════════════════════════════════════════════════════════════════


class TestCommitAndConcurrency:

    def test_status_change_timeline_and_version(self, make_request, consultant):
        req = make_request("New")
        result = request_transition(req.id, "Pending Review", consultant)

        assert result.version == 2
        entries = _timeline(req, "Status Change")
        assert len(entries) == 1
        assert (entries[0].old_value, entries[0].new_value) == ("New", "Pending Review")
        assert entries[0].performed_by == "consultant-1"

    def test_stale_expected_version_refused(self, make_request, consultant):
        req = make_request("New")
        result = request_transition(req.id, "Pending Review", consultant, expected_version=7)
        assert result.success is False
        assert result.error == "ConcurrentModification"
        assert db.session.get(AdvisoryRequest, req.id).status == "New"

    def test_conditional_update_detects_lost_race(self, make_request):
        req = make_request("New")
        stale = req.version
        db.session.execute(
            update(AdvisoryRequest)
            .where(AdvisoryRequest.id == req.id)
            .values(version=AdvisoryRequest.version + 1, status="Pending Review")
        )
        db.session.commit()

        with pytest.raises(ConcurrentModificationError):
            update_request_status_and_assignee(req, "Cancelled", "consultant-1", expected_version=stale)
        req = db.session.get(AdvisoryRequest, req.id)
        assert req.status == "Pending Review"
        assert _timeline(req) == []

    def test_second_transition_with_same_version_loses(self, make_request, consultant):
        req = make_request("New")
        first = request_transition(req.id, "Pending Review", consultant, expected_version=1)
        second = request_transition(req.id, "Cancelled", consultant, expected_version=1)
        assert first.success is True
        assert second.success is False
        assert second.error == "ConcurrentModification"

    def test_no_assignee_raises_before_write(self, make_request):
        req = make_request("New", assignee_id=None, original_assignee_id=None)
        with pytest.raises(NoAssigneeAvailableError):
            update_request_status_and_assignee(req, "Pending Review", "admin-1")
        assert db.session.get(AdvisoryRequest, req.id).version == 1

    def test_unknown_request(self, admin):
        result = request_transition("does-not-exist", "Review", admin)
        assert result.success is False
        assert result.error == "NotFound"

    def test_unauthorized_target(self, make_request, consultant):
        req = make_request("New")
        result = request_transition(req.id, "Closed", consultant)
        assert result.success is False
        assert result.error == "Unauthorized"


# ═══════════════════════════════════════════════════════════════════════════
# TestSeeding
# ═══════════════════════════════════════════════════════════════════════════


class TestSeeding:

    def test_seed_is_idempotent(self):
        # autouse fixture already seeded
        assert seed_default_transitions() == 0
        count = len(db.session.execute(select(StatusTransition)).scalars().all())
        assert count == 18

    def test_seed_refuses_terminal_source(self):
        with pytest.raises(ValidationError) as exc:
            seed_default_transitions([("Cancelled", "New", "Admin")])
        assert exc.value.reason == "terminal_status"

    def test_seed_refuses_unknown_status(self):
        with pytest.raises(ValidationError):
            seed_default_transitions([("New", "Bogus", "Admin")])
