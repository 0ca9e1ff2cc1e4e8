"""Collapse historical rows into one canonical record per group.

Every listing, readiness check and aggregate dedups through ``resolve`` so the
recency rule lives in exactly one place.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import date

from certtrack.models import CertificationRecord

BY_EMPLOYEE = "employee"
BY_TIER = "tier"
BY_OUTCOME = "outcome"

_EPOCH = date.min

_KEY_FUNCS: dict[str, Callable[[CertificationRecord], tuple[str, ...]]] = {
    BY_EMPLOYEE: lambda r: (r.employee_number,),
    BY_TIER: lambda r: (r.employee_number, r.tier),
    BY_OUTCOME: lambda r: (r.employee_number, r.tier, r.approval_state),
}


def activity_dates(record: CertificationRecord) -> list[date | None]:
    """Dates in significance order: award, conference, completion, artifacts, assignment."""
    dates: list[date | None] = [
        record.awarded_date,
        record.conference_completed,
        record.completed_date,
    ]
    dates.extend(record.completed.get(key) for key in sorted(record.completed))
    dates.append(record.assigned_date)
    return dates


def latest_activity(record: CertificationRecord) -> date:
    present = [d for d in activity_dates(record) if d is not None]
    return max(present) if present else _EPOCH


def canonical_key(record: CertificationRecord) -> tuple[date, int]:
    return latest_activity(record), record.employee_id


def resolve(records: Iterable[CertificationRecord], key: str = BY_EMPLOYEE) -> list[CertificationRecord]:
    """Keep the record with the greatest ``(latest_activity, employee_id)`` per group.

    Groups come back in first-seen order. The result is a fixed point:
    resolving it again returns the same list.
    """
    key_func = _KEY_FUNCS.get(key)
    if key_func is None:
        raise ValueError(f"unknown grouping: {key}")
    winners: dict[tuple[str, ...], CertificationRecord] = {}
    for record in records:
        group = key_func(record)
        current = winners.get(group)
        if current is None or canonical_key(record) > canonical_key(current):
            winners[group] = record
    return list(winners.values())


def index_by_tier(records: Iterable[CertificationRecord]) -> dict[str, dict[str, CertificationRecord]]:
    """employeeNumber -> tier -> canonical record."""
    out: dict[str, dict[str, CertificationRecord]] = {}
    for record in resolve(records, BY_TIER):
        out.setdefault(record.employee_number, {})[record.tier] = record
    return out
