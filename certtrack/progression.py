from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any

from certtrack.models import CertificationRecord
from certtrack.resolver import index_by_tier
from certtrack.tiers import READINESS_RULES, TIER_ARTIFACTS, TIERS

AWARDED = "Awarded"
CONFERENCE_APPROVED = "ConferenceApproved"
CONFERENCE_AWAITING = "ConferenceAwaitingApproval"
CONFERENCE_REJECTED = "ConferenceRejected"
ASSIGNED = "Assigned"
UNASSIGNED = "Unassigned"

STATUS_PRIORITY: tuple[str, ...] = (
    AWARDED,
    CONFERENCE_APPROVED,
    CONFERENCE_AWAITING,
    CONFERENCE_REJECTED,
    ASSIGNED,
    UNASSIGNED,
)


def record_status(record: CertificationRecord) -> str:
    if record.is_awarded:
        return AWARDED
    if record.conference_completed is not None:
        if record.awaiting is False:
            return CONFERENCE_APPROVED
        if record.awaiting is True:
            return CONFERENCE_AWAITING
        return CONFERENCE_REJECTED
    if record.assigned_date is not None:
        return ASSIGNED
    return UNASSIGNED


def is_in_progress(record: CertificationRecord) -> bool:
    if record.is_awarded:
        return False
    if record.tier == "Tier1":
        return record.assigned_date is not None
    return record_status(record) == CONFERENCE_APPROVED


def is_awaiting_approval(record: CertificationRecord) -> bool:
    return record.conference_completed is not None and record.awaiting is True


def is_rejected(record: CertificationRecord) -> bool:
    return record.conference_completed is not None and record.awaiting is None


def is_overdue(record: CertificationRecord, today: date, sla_days: Mapping[str, int | None]) -> bool:
    """Strictly past ``assigned + SLA``; the boundary day itself is on time."""
    if record.is_awarded or record.assigned_date is None:
        return False
    sla = sla_days.get(record.tier)
    if sla is None:
        return False
    return today > record.assigned_date + timedelta(days=sla)


def matches_status(record: CertificationRecord, kind: str, tier: str | None) -> bool:
    if kind == "awaiting":
        return is_awaiting_approval(record)
    if kind == "rejected":
        return is_rejected(record)
    if record.tier != tier:
        return False
    if kind == "completed":
        return record.is_awarded
    if kind == "in_progress":
        return is_in_progress(record)
    raise ValueError(f"unknown status kind: {kind}")


def has_completion_evidence(record: CertificationRecord) -> bool:
    """Tier1 needs its completion date; every other tier needs each artifact completed."""
    if record.tier == "Tier1":
        return record.completed_date is not None
    return all(record.completed.get(key) is not None for key in TIER_ARTIFACTS[record.tier])


@dataclass
class ReadyEntry:
    record: CertificationRecord
    tiers: dict[str, CertificationRecord] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        out = self.record.to_dict()
        out["tierStatus"] = {
            tier: {
                "employeeId": rec.employee_id,
                "status": record_status(rec),
                "awarded": rec.is_awarded,
            }
            for tier, rec in sorted(self.tiers.items(), key=lambda kv: TIERS.index(kv[0]))
        }
        return out


def prerequisites_met(tier_records: Mapping[str, CertificationRecord], target: str) -> bool:
    for prerequisite, required in READINESS_RULES[target]:
        if not required:
            continue
        rec = tier_records.get(prerequisite)
        if rec is None or not rec.is_awarded:
            return False
    return True


def evaluate_readiness(records: Iterable[CertificationRecord], target: str) -> list[ReadyEntry]:
    """Employees ready to be awarded ``target``.

    Works on canonical per-(employee, tier) records: every required
    prerequisite awarded, optional ones ignored, and the target record present,
    not awarded, with all of its completion evidence.
    """
    if target not in READINESS_RULES:
        raise ValueError(f"unknown tier: {target}")
    out: list[ReadyEntry] = []
    for tier_records in index_by_tier(records).values():
        candidate = tier_records.get(target)
        if candidate is None or candidate.is_awarded:
            continue
        if not has_completion_evidence(candidate):
            continue
        if not prerequisites_met(tier_records, target):
            continue
        out.append(ReadyEntry(record=candidate, tiers=dict(tier_records)))
    return out


def employee_progress(tier_records: Mapping[str, CertificationRecord]) -> dict[str, Any]:
    """Per-employee snapshot across the ladder: highest award, current tier, per-tier status."""
    highest: str | None = None
    current: str | None = None
    statuses: dict[str, str] = {}
    for tier in TIERS:
        rec = tier_records.get(tier)
        if rec is None:
            statuses[tier] = UNASSIGNED
            continue
        statuses[tier] = record_status(rec)
        if rec.is_awarded:
            highest = tier
        else:
            current = current or tier
    return {"highestAwarded": highest, "currentTier": current, "statuses": statuses}
