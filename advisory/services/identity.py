"""
Acting-user resolution and capability matching.

An ``Actor`` is the authenticated caller: a Profile's ``user_id`` with its
system role and job title.  Workflow rules name either one in the same
``role_required`` string, so a required capability is modelled as a tagged
union (``SystemRole`` | ``JobTitle``) and matched against both actor fields.
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app, g, request
from sqlalchemy import select

from advisory.core.exceptions import NotAuthenticatedError
from advisory.models import db
from advisory.models.team import Profile
from advisory.models.workflow import ADVISORY_TITLES, REQUESTOR_ROLES, ROLE_ADMIN, ROLE_REQUESTOR


@dataclass(frozen=True)
class Actor:
    user_id: str
    role: str | None = None
    title: str | None = None
    username: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @classmethod
    def from_profile(cls, profile: Profile) -> Actor:
        return cls(
            user_id=profile.user_id,
            role=profile.role,
            title=profile.title,
            username=profile.username,
        )


# ── Capabilities ─────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class SystemRole:
    name: str

    def matches(self, actor: Actor) -> bool:
        if self.name == ROLE_REQUESTOR:
            return actor.role in REQUESTOR_ROLES
        return actor.role == self.name


@dataclass(frozen=True)
class JobTitle:
    name: str

    def matches(self, actor: Actor) -> bool:
        return actor.title == self.name


PrincipalCapability = SystemRole | JobTitle


def capability_for(role_required: str) -> PrincipalCapability:
    """Classify a ``role_required`` string from the transition catalog."""
    if role_required in ADVISORY_TITLES:
        return JobTitle(role_required)
    return SystemRole(role_required)


def actor_has_capability(actor: Actor, role_required: str) -> bool:
    """
    True if the actor's role OR title satisfies ``role_required``.

    Catalog rows are not always consistent about which field they name, so a
    capability of either kind is accepted from either actor field.  The
    "Requestor" rule is the exception: it is satisfied by any of
    ``REQUESTOR_ROLES`` and never by a job title.
    """
    cap = capability_for(role_required)
    if cap.matches(actor):
        return True
    if isinstance(cap, JobTitle):
        return actor.role == cap.name
    if cap.name == ROLE_REQUESTOR:
        return False
    return actor.title == cap.name


# ── Current actor ────────────────────────────────────────────────────────────


def _incoming_user_id() -> str | None:
    user_id = getattr(g, "jwt_user_id", None)
    if user_id:
        return str(user_id)
    if current_app.config.get("TRUST_USER_HEADER"):
        header = (request.headers.get("X-User") or "").strip()
        return header or None
    return None


def load_actor(user_id: str) -> Actor:
    profile = db.session.execute(
        select(Profile).where(Profile.user_id == user_id)
    ).scalar_one_or_none()
    if profile is None or profile.status != "active":
        raise NotAuthenticatedError(f"No active profile for user {user_id!r}")
    return Actor.from_profile(profile)


def get_current_actor(required: bool = True) -> Actor | None:
    """
    Resolve the acting user for this request.

    Raises NotAuthenticatedError when ``required`` and no identity is present,
    or whenever a presented identity has no active Profile.
    """
    user_id = _incoming_user_id()
    if not user_id:
        if required:
            raise NotAuthenticatedError()
        return None
    return load_actor(user_id)
