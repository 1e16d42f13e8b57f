"""
Shared pytest fixtures for the Advisory Request Workflow test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate, default workflow seeded (autouse)
    - client: Flask test client (function-scoped)
    - make_profile / make_member / make_request: model factories
    - catalog: one offering with two activities and three sub-activities
    - admin / consultant / lead / requestor: ready-made actors
"""

from types import SimpleNamespace

import pytest

from advisory import create_app
from advisory.models import db as _db
from advisory.models.catalog import Activity, ServiceOffering, SubActivity
from advisory.models.request import AdvisoryRequest
from advisory.models.team import AdvisoryTeamMember, Profile
from advisory.services.identity import Actor
from advisory.services.request_service import generate_request_id
from advisory.services.transition_service import seed_default_transitions

ADVISORY_SERVICE = "SAP Advisory"


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, seed the workflow, rollback + recreate after."""
    with app.app_context():
        seed_default_transitions()
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Factories ────────────────────────────────────────────────────────────


@pytest.fixture()
def make_profile():
    """Create a Profile and return the matching Actor."""

    def _make(user_id, *, role="Standard User", title=None, status="active"):
        profile = Profile(
            user_id=user_id,
            username=user_id.replace("-", " ").title(),
            email=f"{user_id}@example.com",
            role=role,
            title=title,
            status=status,
        )
        _db.session.add(profile)
        _db.session.commit()
        return Actor.from_profile(profile)

    return _make


@pytest.fixture()
def make_member():
    """Create an AdvisoryTeamMember billing profile."""

    def _make(user_id, *, name=None, title="Advisory Consultant", designation=None,
              rate=None, services=None, is_active=True):
        member = AdvisoryTeamMember(
            user_id=user_id,
            name=name or user_id,
            title=title,
            designation=designation,
            rate_per_hour=rate,
            advisory_services=services if services is not None else [ADVISORY_SERVICE],
            is_active=is_active,
        )
        _db.session.add(member)
        _db.session.commit()
        return member

    return _make


@pytest.fixture()
def catalog():
    """
    One offering:
        activity_a (10h) → sub_a1 (4h), sub_a2 (6h)
        activity_b (5h)  → sub_b1 (3h)
    """
    offering = ServiceOffering(advisory_service=ADVISORY_SERVICE, name="Tool Enablement")
    _db.session.add(offering)
    _db.session.flush()
    activity_a = Activity(service_offering_id=offering.id, name="Discovery", estimated_hours=10,
                          display_order=1)
    activity_b = Activity(service_offering_id=offering.id, name="Design", estimated_hours=5,
                          display_order=2)
    _db.session.add_all([activity_a, activity_b])
    _db.session.flush()
    sub_a1 = SubActivity(activity_id=activity_a.id, name="Interviews", estimated_hours=4, display_order=1)
    sub_a2 = SubActivity(activity_id=activity_a.id, name="Workshop", estimated_hours=6, display_order=2)
    sub_b1 = SubActivity(activity_id=activity_b.id, name="Blueprint", estimated_hours=3, display_order=1)
    _db.session.add_all([sub_a1, sub_a2, sub_b1])
    _db.session.commit()
    return SimpleNamespace(
        offering=offering.id,
        activity_a=activity_a.id,
        activity_b=activity_b.id,
        sub_a1=sub_a1.id,
        sub_a2=sub_a2.id,
        sub_b1=sub_b1.id,
    )


@pytest.fixture()
def make_request(catalog):
    """Insert an AdvisoryRequest directly in any status."""

    def _make(status="New", *, requestor_id="requestor-1", assignee_id="consultant-1",
              original_assignee_id="__same__", offerings=None, billability=None,
              allocation=None, nested=None, legacy=None, advisory_service=ADVISORY_SERVICE):
        req = AdvisoryRequest(
            request_id=generate_request_id(),
            status=status,
            requestor_id=requestor_id,
            assignee_id=assignee_id,
            original_assignee_id=(
                assignee_id if original_assignee_id == "__same__" else original_assignee_id
            ),
            advisory_service=advisory_service,
            service_offerings=offerings if offerings is not None else [catalog.offering],
            project_data={},
            service_offering_activities=nested or {},
            selected_activities=legacy,
            billability_percentage=billability,
            allocation_percentage=allocation,
        )
        _db.session.add(req)
        _db.session.commit()
        return req

    return _make


# ── Actors ───────────────────────────────────────────────────────────────


@pytest.fixture()
def admin(make_profile):
    return make_profile("admin-1", role="Admin")


@pytest.fixture()
def consultant(make_profile, make_member):
    make_member("consultant-1", name="Casey Consultant", designation="Senior Consultant", rate=50)
    return make_profile("consultant-1", title="Advisory Consultant")


@pytest.fixture()
def lead(make_profile, make_member):
    make_member("lead-1", name="Lee Lead", title="Advisory Service Lead", rate=80)
    return make_profile("lead-1", title="Advisory Service Lead")


@pytest.fixture()
def requestor(make_profile):
    return make_profile("requestor-1", role="Standard User", title="Project Manager")

