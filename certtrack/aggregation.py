"""Dashboard and analytics views derived from a record snapshot.

Every function is a pure full scan over the rows it is handed (O(n) per
request); nothing is maintained incrementally. Counts that dedup go through
``resolver.resolve``; the ``basis`` map in the dashboard summary names the
row set each figure was counted over.
"""

from __future__ import annotations

from collections import Counter, defaultdict
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any

from certtrack.models import CertificationRecord, iso
from certtrack.progression import (
    employee_progress,
    is_awaiting_approval,
    is_in_progress,
    is_overdue,
    is_rejected,
)
from certtrack.resolver import BY_OUTCOME, index_by_tier, resolve
from certtrack.tiers import ARTIFACTS, TIER_LABELS, TIERS, previous_tier

WEIGHT_COMPLETED = 0.8
WEIGHT_IN_PROGRESS = 0.2
RANKING_SIZE = 5
ACTIVITY_PER_TYPE = 5
TREND_MONTHS = 6
RECENT_COMPLETION_DAYS = 7
RECENT_COMPLETIONS_LIMIT = 10
DISPLAY_NAME_MAX = 25

TIER_TARGETS: dict[str, float] = {
    "Tier1": 0.8,
    "Tier2": 0.6,
    "Tier3": 0.4,
    "Tier4": 0.2,
    "Tier5": 0.1,
}

_MONTH_NAMES = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")

_ARTIFACT_NAMES: dict[str, str] = {
    "standingVideo": "Standing Video",
    "sleepingVideo": "Sleeping Video",
    "feedGradVideo": "Feed/Grad Video",
    "noHandnoSpeak": "No Hand No Speak",
    "session1": "Session 1",
    "session2": "Session 2",
    "session3": "Session 3",
}


@dataclass(frozen=True)
class DateWindow:
    """Inclusive date range; either bound may be open."""

    start: date | None = None
    end: date | None = None

    @property
    def is_open(self) -> bool:
        return self.start is None and self.end is None

    def contains(self, value: date | None) -> bool:
        if self.is_open:
            return True
        if value is None:
            return False
        if self.start is not None and value < self.start:
            return False
        if self.end is not None and value > self.end:
            return False
        return True

    def cache_key(self) -> tuple[str | None, str | None]:
        return iso(self.start), iso(self.end)


def _percent(part: int, whole: int) -> int:
    return round(part / max(whole, 1) * 100)


def _days_between(start: date | None, end: date | None) -> int | None:
    if start is None or end is None:
        return None
    return (end - start).days


def _average(values: Iterable[int | None]) -> float | None:
    present = [v for v in values if v is not None]
    if not present:
        return None
    return round(sum(present) / len(present), 1)


# -- dashboard ---------------------------------------------------------------


def tier_counts(
    raw: Sequence[CertificationRecord],
    *,
    today: date,
    sla_days: Mapping[str, int | None],
) -> dict[str, dict[str, int]]:
    outcome = resolve(raw, BY_OUTCOME)
    tiers_by_employee: dict[str, set[str]] = defaultdict(set)
    for record in raw:
        tiers_by_employee[record.employee_number].add(record.tier)

    counts: dict[str, dict[str, int]] = {}
    for tier in TIERS:
        canonical = [r for r in outcome if r.tier == tier]
        completed = sum(1 for r in canonical if r.is_awarded)
        in_progress = sum(1 for r in canonical if is_in_progress(r))
        prior = previous_tier(tier)
        if prior is None:
            pending = sum(1 for r in raw if r.tier == tier and r.assigned_date is None)
        else:
            # keyed by employeeNumber: row ids differ per tier.
            ready = {r.employee_number for r in raw if r.tier == prior and r.is_awarded}
            pending = sum(1 for number in ready if tier not in tiers_by_employee[number])
        overdue = sum(1 for r in raw if r.tier == tier and is_overdue(r, today, sla_days))
        counts[tier] = {
            "completed": completed,
            "inProgress": in_progress,
            "pending": pending,
            "overdue": overdue,
            "total": len(canonical),
            "completionPercent": _percent(completed, len(canonical)),
        }
    return counts


COUNT_BASIS: dict[str, str] = {
    "total": "distinct employeeNumber over all rows",
    "completed": "canonical rows per (employeeNumber, tier, approvalState)",
    "inProgress": "canonical rows per (employeeNumber, tier, approvalState)",
    "pending": "all rows, keyed by employeeNumber",
    "overdue": "all rows",
    "awaitingApprovals": "all rows",
    "rejectedApprovals": "all rows",
    "facilityRankings": "all rows",
}


def dashboard_summary(
    raw: Sequence[CertificationRecord],
    *,
    today: date,
    sla_days: Mapping[str, int | None],
) -> dict[str, Any]:
    counts = tier_counts(raw, today=today, sla_days=sla_days)
    feed = activity_feed(raw)
    return {
        "stats": {
            "total": len({r.employee_number for r in raw}),
            "totalCompleted": sum(c["completed"] for c in counts.values()),
            "totalInProgress": sum(c["inProgress"] for c in counts.values()),
            "totalPending": sum(c["pending"] for c in counts.values()),
            "totalOverdue": sum(c["overdue"] for c in counts.values()),
            "awaitingApprovals": sum(1 for r in raw if r.tier != "Tier1" and r.awaiting is True),
            "rejectedApprovals": sum(1 for r in raw if is_rejected(r)),
            "completion": {tier: c["completionPercent"] for tier, c in counts.items()},
            "counts": counts,
        },
        "basis": dict(COUNT_BASIS),
        "facilityRankings": top_and_bottom(group_rankings(raw, lambda r: r.facility)),
        "recentActivity": feed["recentActivity"],
        "activityCounts": feed["activityCounts"],
    }


# -- rankings ----------------------------------------------------------------


def normalize_group_name(value: str | None) -> str:
    return " ".join((value or "").strip().lower().split())


def display_name(normalized: str) -> str:
    return " ".join(word[:1].upper() + word[1:] for word in normalized.split(" ") if word)


def group_rankings(
    rows: Iterable[CertificationRecord],
    key: Callable[[CertificationRecord], str | None],
) -> list[dict[str, Any]]:
    """Score groups by ``0.8 * completedRatio + 0.2 * normalizedInProgress`` (both as percentages)."""
    buckets: dict[str, Counter[str]] = {}
    for record in rows:
        name = normalize_group_name(key(record))
        if not name:
            continue
        bucket = buckets.setdefault(name, Counter())
        bucket["total"] += 1
        if record.is_awarded:
            bucket["completed"] += 1
        elif record.awaiting is True:
            bucket["awaiting"] += 1
        else:
            bucket["inProgress"] += 1
    if not buckets:
        return []
    max_in_progress = max(max(b["inProgress"] for b in buckets.values()), 1)
    ranked: list[dict[str, Any]] = []
    for name, bucket in buckets.items():
        denom = max(bucket["completed"] + bucket["inProgress"], 1)
        completed_ratio = bucket["completed"] / denom * 100
        in_progress_score = bucket["inProgress"] / max_in_progress * 100
        full = display_name(name)
        ranked.append(
            {
                "name": full if len(full) <= DISPLAY_NAME_MAX else f"{full[:DISPLAY_NAME_MAX]}...",
                "fullName": full,
                "completedRatio": round(completed_ratio),
                "inProgressRatio": round(bucket["inProgress"] / denom * 100),
                "inProgressScore": round(in_progress_score),
                "combinedScore": WEIGHT_COMPLETED * completed_ratio + WEIGHT_IN_PROGRESS * in_progress_score,
                "completedCount": bucket["completed"],
                "inProgressCount": bucket["inProgress"],
                "awaitingCount": bucket["awaiting"],
                "totalCount": bucket["total"],
            }
        )
    ranked.sort(key=lambda g: (-g["combinedScore"], g["fullName"]))
    return ranked


def top_and_bottom(ranked: Sequence[dict[str, Any]], size: int = RANKING_SIZE) -> dict[str, list[dict[str, Any]]]:
    return {"top": list(ranked[:size]), "bottom": list(reversed(ranked[-size:]))}


# -- trends and metrics --------------------------------------------------------


def _month_start(today: date, months_back: int) -> tuple[int, int]:
    index = today.year * 12 + (today.month - 1) - months_back
    return index // 12, index % 12 + 1


def monthly_trends(raw: Iterable[CertificationRecord], *, today: date, months: int = TREND_MONTHS) -> list[dict[str, Any]]:
    """Oldest month first; completions by award month, starts by assignment month."""
    completed: Counter[tuple[int, int]] = Counter()
    started: Counter[tuple[int, int]] = Counter()
    for record in raw:
        if record.awarded_date is not None:
            completed[(record.awarded_date.year, record.awarded_date.month)] += 1
        if not record.is_awarded and record.assigned_date is not None:
            started[(record.assigned_date.year, record.assigned_date.month)] += 1
    out: list[dict[str, Any]] = []
    for back in range(months - 1, -1, -1):
        year, month = _month_start(today, back)
        out.append(
            {
                "month": _MONTH_NAMES[month - 1],
                "year": year,
                "completed": completed[(year, month)],
                "inProgress": started[(year, month)],
            }
        )
    return out


def summary_metrics(
    raw: Sequence[CertificationRecord],
    *,
    today: date,
    sla_days: Mapping[str, int | None],
) -> dict[str, Any]:
    recent_since = today - timedelta(days=RECENT_COMPLETION_DAYS)
    completed = sum(1 for r in raw if r.is_awarded)
    return {
        "activeTrainingSessions": sum(1 for r in raw if r.assigned_date is not None and not r.is_awarded),
        "overdueTraining": sum(1 for r in raw if is_overdue(r, today, sla_days)),
        "recentCompletions": sum(1 for r in raw if r.awarded_date is not None and r.awarded_date >= recent_since),
        "trainingEfficiency": round(completed / len(raw) * 100, 1) if raw else 0.0,
    }


# -- analytics -----------------------------------------------------------------


def analytics_overview(raw: Sequence[CertificationRecord], *, window: DateWindow = DateWindow()) -> dict[str, Any]:
    def _completed_in_window(r: CertificationRecord) -> bool:
        return r.is_awarded and window.contains(r.awarded_date)

    out: dict[str, Any] = {
        "totalEmployees": len(raw),
        "completedCertifications": sum(1 for r in raw if _completed_in_window(r)),
        "inProgress": sum(1 for r in raw if not r.is_awarded),
        "notStarted": sum(1 for r in raw if r.assigned_date is None),
        "completedByTier": {
            tier: sum(1 for r in raw if r.tier == tier and _completed_in_window(r)) for tier in TIERS
        },
        "averageCompletionTime": _average(
            _days_between(r.assigned_date, r.awarded_date) for r in raw if window.contains(r.awarded_date)
        ),
    }
    return out


def group_performance(
    raw: Iterable[CertificationRecord],
    *,
    key: Callable[[CertificationRecord], str | None],
    label: str,
    window: DateWindow = DateWindow(),
) -> list[dict[str, Any]]:
    groups: dict[str, list[CertificationRecord]] = defaultdict(list)
    for record in raw:
        name = (key(record) or "").strip()
        if not name or not window.contains(record.awarded_date):
            continue
        groups[name].append(record)
    out: list[dict[str, Any]] = []
    for name, rows in groups.items():
        completed = sum(1 for r in rows if r.is_awarded)
        out.append(
            {
                label: name,
                "total": len(rows),
                "completed": completed,
                "inProgress": len(rows) - completed,
                "completionRate": completed / len(rows) * 100,
                "avgTime": round(_average(_days_between(r.assigned_date, r.awarded_date) for r in rows) or 0),
            }
        )
    out.sort(key=lambda g: (-g["completionRate"], g[label]))
    return out


def facility_performance(raw: Iterable[CertificationRecord], *, window: DateWindow = DateWindow()) -> list[dict[str, Any]]:
    return group_performance(raw, key=lambda r: r.facility, label="facility", window=window)


def area_performance(raw: Iterable[CertificationRecord], *, window: DateWindow = DateWindow()) -> list[dict[str, Any]]:
    return group_performance(raw, key=lambda r: r.area, label="area", window=window)


def certification_progress(raw: Sequence[CertificationRecord], *, window: DateWindow = DateWindow()) -> list[dict[str, Any]]:
    rows = [r for r in raw if window.contains(r.awarded_date)]
    total = len(rows)
    out: list[dict[str, Any]] = []
    for tier in TIERS:
        tier_rows = [r for r in rows if r.tier == tier]
        if not tier_rows:
            continue
        completed = sum(1 for r in tier_rows if r.is_awarded)
        out.append(
            {
                "tier": tier,
                "label": TIER_LABELS[tier],
                "completed": completed,
                "inProgress": len(tier_rows) - completed,
                "target": round(total * TIER_TARGETS[tier]),
                "efficiency": completed / total * 100 if total else 0.0,
                "avgTime": round(_average(_days_between(r.assigned_date, r.awarded_date) for r in tier_rows) or 0),
            }
        )
    return out


def performance_label(days: int) -> str:
    if days < 120:
        return "Excellent"
    if days < 180:
        return "Good"
    return "Average"


def recent_completions(raw: Iterable[CertificationRecord], *, limit: int = RECENT_COMPLETIONS_LIMIT) -> list[dict[str, Any]]:
    """Newest approved conferences with time from assignment to conference."""
    approved = [r for r in raw if r.conference_completed is not None and r.awaiting is False]
    approved.sort(key=lambda r: (r.conference_completed, r.employee_id), reverse=True)
    out: list[dict[str, Any]] = []
    for record in approved[:limit]:
        days = _days_between(record.assigned_date, record.conference_completed) or 0
        out.append(
            {
                "employee": record.name,
                "employeeNumber": record.employee_number,
                "facility": record.facility,
                "tier": record.tier,
                "achievement": TIER_LABELS.get(record.tier, record.tier),
                "date": iso(record.conference_completed),
                "timeToComplete": days,
                "performance": performance_label(days),
            }
        )
    return out


def _has_open_schedule(record: CertificationRecord) -> bool:
    return any(key not in record.completed for key in record.scheduled)


def completions_aggregates(raw: Sequence[CertificationRecord], *, window: DateWindow = DateWindow()) -> dict[str, Any]:
    """Totals for the completions page over canonical per-outcome rows; rejections over all rows."""
    outcome = resolve(raw, BY_OUTCOME)

    def _scheduled(r: CertificationRecord) -> bool:
        if r.is_awarded or not _has_open_schedule(r):
            return False
        return window.is_open or any(window.contains(d) for d in r.scheduled.values())

    def _in_progress(r: CertificationRecord) -> bool:
        if not is_in_progress(r):
            return False
        return window.is_open or window.contains(r.assigned_date) or window.contains(r.conference_completed)

    def _completed(r: CertificationRecord) -> bool:
        return r.is_awarded and window.contains(r.awarded_date)

    by_tier = []
    for tier in TIERS:
        rows = [r for r in outcome if r.tier == tier]
        if rows:
            by_tier.append(
                {
                    "tier": tier,
                    "completed": sum(1 for r in rows if _completed(r)),
                    "inProgress": sum(1 for r in rows if _in_progress(r)),
                }
            )
    return {
        "totals": {
            "total": len({r.employee_number for r in raw}),
            "completed": sum(1 for r in outcome if _completed(r)),
            "scheduled": sum(1 for r in outcome if _scheduled(r)),
            "inProgress": sum(1 for r in outcome if _in_progress(r)),
            "awaiting": sum(
                1
                for r in outcome
                if r.tier != "Tier1" and r.awaiting is True and window.contains(r.conference_completed)
            ),
            "rejected": sum(1 for r in raw if is_rejected(r) and window.contains(r.conference_completed)),
        },
        "byTier": by_tier,
    }


# -- activity feed ---------------------------------------------------------------


def _activities(record: CertificationRecord) -> list[dict[str, Any]]:
    label = TIER_LABELS.get(record.tier, record.tier)
    who = record.employee_number or str(record.employee_id)
    name = record.name or "Unknown"
    items: list[tuple[str, str, date, str]] = []
    if record.assigned_date is not None:
        items.append(("scheduled", "assigned", record.assigned_date, f"Assigned to {label}"))
    if record.completed_date is not None:
        items.append(("completed", "course-completed", record.completed_date, f"Completed coursework for {label}"))
    if record.conference_completed is not None:
        if is_awaiting_approval(record):
            items.append(
                ("awaiting", "conference-awaiting", record.conference_completed, f"Conference completed, awaiting approval for {label}")
            )
        elif record.awaiting is False:
            items.append(("conference", "conference-approved", record.conference_completed, f"Conference approved for {label}"))
    for key, artifact in ARTIFACTS.items():
        scheduled = record.scheduled.get(key)
        completed = record.completed.get(key)
        if scheduled is not None and completed is None:
            items.append(("scheduled", artifact.schedule_key, scheduled, f"Scheduled for {_ARTIFACT_NAMES[key]} in {label}"))
        if completed is not None:
            items.append(("completed", key, completed, f"Completed {_ARTIFACT_NAMES[key]} in {label}"))
    awarded_on = record.awarded_date or record.completed_date or record.conference_completed or record.assigned_date
    if record.is_awarded and awarded_on is not None:
        items.append(("awarded", "awarded", awarded_on, f"Awarded {label}"))
    return [
        {
            "id": f"{who}-{record.tier}-{tag}-{day.isoformat()}",
            "type": kind,
            "employeeName": name,
            "employeeNumber": record.employee_number,
            "tier": record.tier,
            "date": day.isoformat(),
            "description": description,
        }
        for kind, tag, day, description in items
    ]


def activity_feed(raw: Iterable[CertificationRecord], *, per_type: int = ACTIVITY_PER_TYPE) -> dict[str, Any]:
    """Newest activities, at most ``per_type`` of each type, plus per-type totals."""
    activities: list[dict[str, Any]] = []
    for record in raw:
        activities.extend(_activities(record))
    activities.sort(key=lambda a: a["date"], reverse=True)
    counts = Counter(a["type"] for a in activities)
    grouped: dict[str, list[dict[str, Any]]] = {}
    for activity in activities:
        bucket = grouped.setdefault(activity["type"], [])
        if len(bucket) < per_type:
            bucket.append(activity)
    recent = [activity for bucket in grouped.values() for activity in bucket]
    return {"recentActivity": recent, "activityCounts": dict(counts)}


# -- employee overview ---------------------------------------------------------------


def employee_progress_matrix(raw: Iterable[CertificationRecord]) -> list[dict[str, Any]]:
    """One row per employee with a status for every tier."""
    out: list[dict[str, Any]] = []
    for number, tier_records in index_by_tier(raw).items():
        latest = max(tier_records.values(), key=lambda r: (TIERS.index(r.tier), r.employee_id))
        row = {
            "employeeNumber": number,
            "name": latest.name,
            "facility": latest.facility,
            "area": latest.area,
            "jobTitle": latest.job_title,
            "tiers": {tier: rec.employee_id for tier, rec in tier_records.items()},
        }
        row.update(employee_progress(tier_records))
        out.append(row)
    out.sort(key=lambda r: (r["name"].lower(), r["employeeNumber"]))
    return out
