"""Closed allow-lists for every caller-supplied field, sort and filter name.

Caller names are mapped to storage identifiers here. Nothing outside these
tables is ever placed into a statement; unknown names fail with
``INVALID_FIELD`` before any store call.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from certtrack.errors import ApiError, invalid_argument
from certtrack.tiers import ARTIFACTS, TIER_ARTIFACTS, TIER_LABELS, Artifact

_ARTIFACT_ALIASES: dict[str, str] = {
    "session#1": "session1",
    "session#2": "session2",
    "session#3": "session3",
}

_SCHEDULE_ALIASES: dict[str, str] = {
    "scheduleSession#1": "scheduleSession1",
    "scheduleSession#2": "scheduleSession2",
    "scheduleSession#3": "scheduleSession3",
}

_SCHEDULE_KEYS: dict[str, Artifact] = {a.schedule_key: a for a in ARTIFACTS.values()}

RECORD_FIELDS: dict[str, str] = {
    "assignedDate": "assigned_date",
    "completedDate": "completed_date",
    "conferenceCompleted": "conference_completed",
    "awaiting": "awaiting",
    "awarded": "awarded",
    "awardedDate": "awarded_date",
    "notes": "notes",
    "advisorId": "advisor_id",
    **{a.key: a.complete_column for a in ARTIFACTS.values()},
    **{a.schedule_key: a.schedule_column for a in ARTIFACTS.values()},
}

DATE_FILTER_FIELDS: dict[str, tuple[str, ...]] = {
    "assignedDate": ("assigned_date",),
    "completedDate": ("completed_date",),
    "conferenceCompleted": ("conference_completed",),
    "awardedDate": ("awarded_date",),
    **{a.key: (a.complete_column, a.schedule_column) for a in ARTIFACTS.values()},
    **{a.schedule_key: (a.schedule_column,) for a in ARTIFACTS.values()},
}

OPTION_COLUMNS: dict[str, str] = {
    "facility": "facility",
    "area": "area",
    "jobTitle": "job_title",
}

RECORD_SORTS: frozenset[str] = frozenset({"latest", "conference", "name", "facility", "area", "jobTitle", "employeeId"})
RECORD_SORT_DEFAULT = "name"

READINESS_SORTS: frozenset[str] = frozenset({"name", "facility", "area", "employeeId"})
READINESS_SORT_DEFAULT = "area"

# sort key -> ordered storage columns; "area" sorts by area then name.
SORT_COLUMNS: dict[str, tuple[str, ...]] = {
    "name": ("name",),
    "facility": ("facility", "name"),
    "area": ("area", "name"),
    "jobTitle": ("job_title", "name"),
    "employeeId": ("employee_number",),
    "conference": ("conference_completed", "employee_id"),
    "latest": ("latest_activity", "employee_id"),
}


def _canonical(name: Any) -> str:
    key = str(name)
    return _ARTIFACT_ALIASES.get(key, _SCHEDULE_ALIASES.get(key, key))


def _invalid_field(name: Any) -> ApiError:
    return invalid_argument(f"field not allowed: {name}", code="INVALID_FIELD")


def resolve_artifact(key: str) -> Artifact:
    canonical = _ARTIFACT_ALIASES.get(key, key)
    artifact = ARTIFACTS.get(canonical)
    if artifact is None:
        raise _invalid_field(key)
    return artifact


def resolve_schedule_key(key: str) -> Artifact:
    canonical = _SCHEDULE_ALIASES.get(key, key)
    artifact = _SCHEDULE_KEYS.get(canonical)
    if artifact is None:
        raise _invalid_field(key)
    return artifact


def resolve_artifact_pair(schedule_key: str, complete_key: str) -> Artifact:
    """Both keys must name the same artifact."""
    scheduled = resolve_schedule_key(schedule_key)
    completed = resolve_artifact(complete_key)
    if scheduled.key != completed.key:
        raise invalid_argument(
            f"schedule key {schedule_key} does not pair with {complete_key}",
            code="INVALID_FIELD",
        )
    return completed


def require_tier_artifact(tier: str, artifact: Artifact) -> None:
    if artifact.key not in TIER_ARTIFACTS.get(tier, ()):
        raise invalid_argument(
            f"{artifact.key} is not a {TIER_LABELS.get(tier, tier)} artifact",
            code="INVALID_FIELD",
        )


def validate_mutation_fields(fields: Mapping[str, Any]) -> dict[str, Any]:
    """Map caller field names to storage columns; reject the whole set on any unknown name."""
    if not isinstance(fields, Mapping) or not fields:
        raise invalid_argument("at least one field is required")
    invalid = [name for name in fields if _canonical(name) not in RECORD_FIELDS]
    if invalid:
        raise _invalid_field(", ".join(sorted(str(x) for x in invalid)))
    out: dict[str, Any] = {}
    for name, value in fields.items():
        out[RECORD_FIELDS[_canonical(name)]] = value
    return out


def date_filter_columns(name: str) -> tuple[str, ...]:
    columns = DATE_FILTER_FIELDS.get(_canonical(name))
    if columns is None:
        raise _invalid_field(name)
    return columns


def option_column(name: str) -> str:
    column = OPTION_COLUMNS.get(name)
    if column is None:
        raise _invalid_field(name)
    return column
