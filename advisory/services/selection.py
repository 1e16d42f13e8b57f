"""
Activity selection model — normalization, mutation and hour aggregation.

Two storage shapes exist on a request:

    service_offering_activities (current, nested per offering)
        {offering_id: {"activities": {activity_id: {
            "selected": bool, "name": str, "estimated_hours": int,
            "subActivities": {sub_id: bool | {"selected", "name", "estimated_hours"}}
        }}}}

    selected_activities (legacy, flat — no offering key)
        {"activities": {id: {"selected", "estimatedHours"}},
         "subActivities": {id: {"selected", "estimatedHours"}}}
      or the older per-activity form
        {activity_id: {"selected": bool, "subActivities": {sub_id: bool}}}

Both are normalized into one ``Selection`` at the boundary
(``Selection.from_request``); aggregation and validation only ever run on
the normalized form.  The two shapes are alternative encodings of the same
logical selection and are never summed together: the nested shape wins
whenever it selects anything, the legacy shape only fills in for rows whose
nested shape selects nothing.

Pure module: no database access.  Persistence lives in selection_service.
"""

from __future__ import annotations

from dataclasses import dataclass, field

# Key used for sub-activities stored without an owning activity
# (offering-level or legacy flat "subActivities" maps).
UNGROUPED_ACTIVITY = "_ungrouped"

# Offering key for legacy flat selections on requests without offerings
LEGACY_OFFERING = "_legacy"


def _coerce_hours(value) -> int | None:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


def _entry_hours(entry: dict) -> int | None:
    if "estimated_hours" in entry:
        return _coerce_hours(entry.get("estimated_hours"))
    return _coerce_hours(entry.get("estimatedHours"))


@dataclass
class SubActivityChoice:
    selected: bool = False
    name: str | None = None
    estimated_hours: int | None = None

    @classmethod
    def parse(cls, raw) -> SubActivityChoice:
        if isinstance(raw, dict):
            return cls(
                selected=bool(raw.get("selected")),
                name=raw.get("name"),
                estimated_hours=_entry_hours(raw),
            )
        return cls(selected=bool(raw))


@dataclass
class ActivityChoice:
    selected: bool = False
    name: str | None = None
    estimated_hours: int | None = None
    sub_activities: dict[str, SubActivityChoice] = field(default_factory=dict)

    @classmethod
    def parse(cls, raw) -> ActivityChoice:
        if not isinstance(raw, dict):
            return cls(selected=bool(raw))
        subs_raw = raw.get("subActivities") or raw.get("sub_activities") or {}
        subs = {}
        if isinstance(subs_raw, dict):
            subs = {str(k): SubActivityChoice.parse(v) for k, v in subs_raw.items()}
        return cls(
            selected=bool(raw.get("selected")),
            name=raw.get("name"),
            estimated_hours=_entry_hours(raw),
            sub_activities=subs,
        )

    def selected_sub_ids(self) -> list[str]:
        return [sid for sid, sub in self.sub_activities.items() if sub.selected]

    def is_empty(self) -> bool:
        return not self.selected and not self.selected_sub_ids()


@dataclass
class OfferingChoice:
    activities: dict[str, ActivityChoice] = field(default_factory=dict)

    def is_empty(self) -> bool:
        return all(a.is_empty() for a in self.activities.values())


@dataclass(frozen=True)
class CatalogEntry:
    """Denormalization source for one activity (and its sub-activities)."""

    name: str
    estimated_hours: int
    sub_activities: dict  # sub_id -> (name, estimated_hours)


class Selection:
    """Normalized selection: offering → activity → {selected, sub selections}."""

    def __init__(self, offerings: dict[str, OfferingChoice] | None = None):
        self.offerings: dict[str, OfferingChoice] = offerings or {}

    # ── Construction ────────────────────────────────────────────────────

    @classmethod
    def from_nested(cls, raw) -> Selection:
        """Parse the per-offering ``service_offering_activities`` shape."""
        offerings: dict[str, OfferingChoice] = {}
        if not isinstance(raw, dict):
            return cls(offerings)
        for offering_id, offering_raw in raw.items():
            if not isinstance(offering_raw, dict):
                continue
            choice = OfferingChoice()
            for activity_id, activity_raw in (offering_raw.get("activities") or {}).items():
                choice.activities[str(activity_id)] = ActivityChoice.parse(activity_raw)
            ungrouped = offering_raw.get("subActivities")
            if isinstance(ungrouped, dict) and ungrouped:
                bucket = choice.activities.setdefault(UNGROUPED_ACTIVITY, ActivityChoice())
                for sub_id, sub_raw in ungrouped.items():
                    bucket.sub_activities[str(sub_id)] = SubActivityChoice.parse(sub_raw)
            offerings[str(offering_id)] = choice
        return cls(offerings)

    @classmethod
    def from_legacy(cls, raw, offering_id: str | None = None) -> Selection:
        """Parse the flat ``selected_activities`` shape (both historical variants)."""
        offering_key = offering_id or LEGACY_OFFERING
        choice = OfferingChoice()
        if not isinstance(raw, dict) or not raw:
            return cls({})

        if "activities" in raw or "subActivities" in raw:
            for activity_id, activity_raw in (raw.get("activities") or {}).items():
                choice.activities[str(activity_id)] = ActivityChoice.parse(activity_raw)
            subs = raw.get("subActivities") or {}
            if isinstance(subs, dict) and subs:
                bucket = choice.activities.setdefault(UNGROUPED_ACTIVITY, ActivityChoice())
                for sub_id, sub_raw in subs.items():
                    bucket.sub_activities[str(sub_id)] = SubActivityChoice.parse(sub_raw)
        else:
            for activity_id, activity_raw in raw.items():
                choice.activities[str(activity_id)] = ActivityChoice.parse(activity_raw)

        return cls({offering_key: choice})

    @classmethod
    def from_request(cls, request) -> Selection:
        """Normalize whichever encoding the request carries.

        The nested shape wins whenever it selects anything.  Otherwise a
        historical row may still carry its selection in the legacy flat
        shape, which is used when it selects something.  Selection writes
        clear the legacy column, so a cleared nested selection never falls
        back to stale legacy data.
        """
        nested = cls.from_nested(request.service_offering_activities)
        if nested.has_selection():
            return nested
        offerings = list(request.service_offerings or [])
        legacy = cls.from_legacy(
            request.selected_activities,
            offering_id=offerings[0] if offerings else None,
        )
        return legacy if legacy.has_selection() else nested

    # ── Mutation ────────────────────────────────────────────────────────

    def _activity(self, offering_id: str, activity_id: str) -> ActivityChoice:
        offering = self.offerings.setdefault(offering_id, OfferingChoice())
        return offering.activities.setdefault(activity_id, ActivityChoice())

    def set_activity_selected(self, offering_id: str, activity_id: str, selected: bool) -> None:
        """Set an activity's flag.  Deselecting clears all of its sub-activity selections."""
        activity = self._activity(offering_id, activity_id)
        activity.selected = bool(selected)
        if not selected:
            activity.sub_activities = {}

    def set_sub_activity_selected(
        self, offering_id: str, activity_id: str, sub_activity_id: str, selected: bool,
    ) -> None:
        """Set a sub-activity's flag; independent of the parent's own flag."""
        activity = self._activity(offering_id, activity_id)
        sub = activity.sub_activities.setdefault(sub_activity_id, SubActivityChoice())
        sub.selected = bool(selected)

    # ── Derived queries ─────────────────────────────────────────────────

    def get_activity(self, offering_id: str, activity_id: str) -> ActivityChoice | None:
        offering = self.offerings.get(offering_id)
        if offering is None:
            return None
        return offering.activities.get(activity_id)

    def selected_sub_activity_count(self, offering_id: str, activity_id: str) -> int:
        activity = self.get_activity(offering_id, activity_id)
        return len(activity.selected_sub_ids()) if activity else 0

    def has_any_selection(self, offering_id: str, activity_id: str) -> bool:
        return self.selected_sub_activity_count(offering_id, activity_id) > 0

    def has_selection(self) -> bool:
        """True when any activity or sub-activity anywhere is selected."""
        for offering in self.offerings.values():
            for activity in offering.activities.values():
                if activity.selected or activity.selected_sub_ids():
                    return True
        return False

    def total_estimated_hours(
        self,
        activity_hours: dict | None = None,
        sub_activity_hours: dict | None = None,
    ) -> int:
        """Σ selected activity hours + Σ selected sub-activity hours.

        Hours denormalized into the selection take precedence; the optional
        catalog maps fill in entries that carry none (e.g. bare-boolean
        sub-activity flags).  Missing everywhere counts as 0.
        """
        activity_hours = activity_hours or {}
        sub_activity_hours = sub_activity_hours or {}
        total = 0
        for offering in self.offerings.values():
            for activity_id, activity in offering.activities.items():
                if activity.selected:
                    hours = activity.estimated_hours
                    if hours is None:
                        hours = activity_hours.get(activity_id)
                    total += hours or 0
                for sub_id, sub in activity.sub_activities.items():
                    if not sub.selected:
                        continue
                    hours = sub.estimated_hours
                    if hours is None:
                        hours = sub_activity_hours.get(sub_id)
                    total += hours or 0
        return total

    # ── Serialization ───────────────────────────────────────────────────

    def to_persisted(self, catalog: dict[str, CatalogEntry]) -> dict:
        """Denormalize into the nested storage shape.

        Only selected entries are written.  ``name`` and ``estimated_hours``
        are copied from ``catalog`` (activity_id → CatalogEntry) at write time
        so that later catalog edits never change what was recorded.  Entries
        unknown to the catalog keep whatever they already carried.
        """
        out: dict = {}
        for offering_id, offering in self.offerings.items():
            activities_out: dict = {}
            for activity_id, activity in offering.activities.items():
                entry = catalog.get(activity_id)
                subs_out: dict = {}
                for sub_id in activity.selected_sub_ids():
                    known = entry.sub_activities.get(sub_id) if entry else None
                    current = activity.sub_activities[sub_id]
                    name, hours = known if known else (current.name, current.estimated_hours)
                    subs_out[sub_id] = {
                        "selected": True,
                        "name": name,
                        "estimated_hours": hours or 0,
                    }
                if not activity.selected and not subs_out:
                    continue
                activities_out[activity_id] = {
                    "selected": activity.selected,
                    "name": entry.name if entry else activity.name,
                    "estimated_hours": (
                        entry.estimated_hours if entry else (activity.estimated_hours or 0)
                    ),
                    "subActivities": subs_out,
                }
            out[offering_id] = {"activities": activities_out}
        return out

    def to_flags(self) -> dict:
        """Transient boolean view used by the API (offering → activity → flags)."""
        return {
            offering_id: {
                "activities": {
                    activity_id: {
                        "selected": activity.selected,
                        "subActivities": {
                            sid: sub.selected for sid, sub in activity.sub_activities.items()
                        },
                    }
                    for activity_id, activity in offering.activities.items()
                }
            }
            for offering_id, offering in self.offerings.items()
        }
