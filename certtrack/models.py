from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import UTC, date, datetime
from typing import Any

from certtrack.tiers import ARTIFACTS

APPROVED = "approved"
AWAITING = "awaiting"
REJECTED = "rejected"

AUDIT_ACTIONS: dict[str, str] = {
    "TRAINING_SCHEDULED": "Training Scheduled",
    "TRAINING_COMPLETED": "Training Completed",
    "DATE_EDITED": "Date Edited",
    "CONFERENCE_APPROVED": "Conference Approved",
    "CONFERENCE_REJECTED": "Conference Rejected",
    "NOTES_UPDATED": "Notes Updated",
    "ADVISOR_CHANGED": "Advisor Changed",
    "ADVISOR_ADDED": "Advisor Added",
    "TIER_ASSIGNED": "Tier Assigned",
    "TIER_AWARDED": "Tier Awarded",
}

SCALAR_COLUMNS: tuple[str, ...] = (
    "employee_number",
    "tier",
    "name",
    "facility",
    "area",
    "job_title",
    "assigned_date",
    "completed_date",
    "conference_completed",
    "awaiting",
    "awarded",
    "awarded_date",
    "notes",
    "advisor_id",
)

DATE_COLUMNS: frozenset[str] = frozenset(
    {"assigned_date", "completed_date", "conference_completed", "awarded_date"}
    | {a.complete_column for a in ARTIFACTS.values()}
    | {a.schedule_column for a in ARTIFACTS.values()}
)

_COMPLETE_BY_COLUMN = {a.complete_column: a.key for a in ARTIFACTS.values()}
_SCHEDULE_BY_COLUMN = {a.schedule_column: a.key for a in ARTIFACTS.values()}

RECORD_COLUMNS: tuple[str, ...] = (
    SCALAR_COLUMNS
    + tuple(a.schedule_column for a in ARTIFACTS.values())
    + tuple(a.complete_column for a in ARTIFACTS.values())
)


def parse_date(value: Any) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return date.fromisoformat(text[:10])
    except ValueError as exc:
        raise ValueError(f"malformed date: {value}") from exc


def iso(value: date | None) -> str | None:
    return value.isoformat() if value is not None else None


def awaiting_from_storage(value: Any) -> bool | None:
    if value is None:
        return None
    return bool(int(value))


def awaiting_to_storage(value: bool | None) -> int | None:
    if value is None:
        return None
    return 1 if value else 0


@dataclass
class CertificationRecord:
    employee_id: int
    employee_number: str
    tier: str
    name: str = ""
    facility: str = ""
    area: str = ""
    job_title: str = ""
    assigned_date: date | None = None
    completed_date: date | None = None
    conference_completed: date | None = None
    awaiting: bool | None = None
    awarded: bool = False
    awarded_date: date | None = None
    notes: str = ""
    advisor_id: int | None = None
    scheduled: dict[str, date] = field(default_factory=dict)
    completed: dict[str, date] = field(default_factory=dict)

    @property
    def is_awarded(self) -> bool:
        return bool(self.awarded) or self.awarded_date is not None

    @property
    def approval_state(self) -> str:
        if self.awaiting is None:
            return REJECTED
        return AWAITING if self.awaiting else APPROVED

    def get_column(self, column: str) -> Any:
        if column in _COMPLETE_BY_COLUMN:
            return self.completed.get(_COMPLETE_BY_COLUMN[column])
        if column in _SCHEDULE_BY_COLUMN:
            return self.scheduled.get(_SCHEDULE_BY_COLUMN[column])
        if column in SCALAR_COLUMNS:
            return getattr(self, column)
        raise KeyError(column)

    def with_column(self, column: str, value: Any) -> CertificationRecord:
        """Return a copy with one storage column replaced."""
        if column in _COMPLETE_BY_COLUMN:
            completed = dict(self.completed)
            _put(completed, _COMPLETE_BY_COLUMN[column], value)
            return replace(self, completed=completed)
        if column in _SCHEDULE_BY_COLUMN:
            scheduled = dict(self.scheduled)
            _put(scheduled, _SCHEDULE_BY_COLUMN[column], value)
            return replace(self, scheduled=scheduled)
        if column not in SCALAR_COLUMNS:
            raise KeyError(column)
        return replace(self, **{column: value})

    def to_row(self) -> dict[str, Any]:
        row: dict[str, Any] = {}
        for column in RECORD_COLUMNS:
            value = self.get_column(column)
            if column in DATE_COLUMNS:
                value = iso(value)
            elif column == "awaiting":
                value = awaiting_to_storage(value)
            elif column == "awarded":
                value = 1 if value else 0
            row[column] = value
        return row

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> CertificationRecord:
        scheduled: dict[str, date] = {}
        completed: dict[str, date] = {}
        for artifact in ARTIFACTS.values():
            _put(scheduled, artifact.key, parse_date(row.get(artifact.schedule_column)))
            _put(completed, artifact.key, parse_date(row.get(artifact.complete_column)))
        advisor_id = row.get("advisor_id")
        return cls(
            employee_id=int(row["employee_id"]),
            employee_number=str(row.get("employee_number") or ""),
            tier=str(row.get("tier") or ""),
            name=str(row.get("name") or ""),
            facility=str(row.get("facility") or ""),
            area=str(row.get("area") or ""),
            job_title=str(row.get("job_title") or ""),
            assigned_date=parse_date(row.get("assigned_date")),
            completed_date=parse_date(row.get("completed_date")),
            conference_completed=parse_date(row.get("conference_completed")),
            awaiting=awaiting_from_storage(row.get("awaiting")),
            awarded=bool(row.get("awarded") or False),
            awarded_date=parse_date(row.get("awarded_date")),
            notes=str(row.get("notes") or ""),
            advisor_id=int(advisor_id) if advisor_id is not None else None,
            scheduled=scheduled,
            completed=completed,
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "employeeId": self.employee_id,
            "employeeNumber": self.employee_number,
            "tier": self.tier,
            "name": self.name,
            "facility": self.facility,
            "area": self.area,
            "jobTitle": self.job_title,
            "assignedDate": iso(self.assigned_date),
            "completedDate": iso(self.completed_date),
            "conferenceCompleted": iso(self.conference_completed),
            "approvalState": self.approval_state,
            "awaiting": self.awaiting,
            "awarded": self.is_awarded,
            "awardedDate": iso(self.awarded_date),
            "notes": self.notes,
            "advisorId": self.advisor_id,
        }
        for artifact in ARTIFACTS.values():
            out[artifact.schedule_key] = iso(self.scheduled.get(artifact.key))
            out[artifact.key] = iso(self.completed.get(artifact.key))
        return out


def _put(target: dict[str, date], key: str, value: Any) -> None:
    parsed = parse_date(value)
    if parsed is None:
        target.pop(key, None)
    else:
        target[key] = parsed


@dataclass
class Advisor:
    advisor_id: int
    first_name: str
    last_name: str

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def to_dict(self) -> dict[str, Any]:
        return {
            "advisorId": self.advisor_id,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "fullName": self.full_name,
        }


@dataclass(frozen=True)
class AuditEvent:
    action: str
    actor: str = "unknown"
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    record_id: str | None = None
    employee_number: str | None = None
    employee_name: str | None = None
    tier: str | None = None
    field_name: str | None = None
    old_value: str | None = None
    new_value: str | None = None
    details: str | None = None
    source_address: str | None = None
    event_id: str | None = None

    @classmethod
    def create(cls, *, action: str, actor: str | None = None, **values: Any) -> AuditEvent:
        if action not in AUDIT_ACTIONS:
            raise ValueError(f"unknown audit action: {action}")
        cleaned = {key: _stringify(value) for key, value in values.items() if key != "timestamp"}
        timestamp = values.get("timestamp") or datetime.now(UTC)
        return cls(action=action, actor=(actor or "").strip() or "unknown", timestamp=timestamp, **cleaned)

    @property
    def action_label(self) -> str:
        return AUDIT_ACTIONS.get(self.action, self.action)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.event_id,
            "timestamp": self.timestamp.isoformat(),
            "actor": self.actor,
            "action": self.action,
            "actionLabel": self.action_label,
            "recordId": self.record_id,
            "employeeNumber": self.employee_number,
            "employeeName": self.employee_name,
            "tier": self.tier,
            "fieldName": self.field_name,
            "oldValue": self.old_value,
            "newValue": self.new_value,
            "details": self.details,
            "sourceAddress": self.source_address,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> AuditEvent:
        raw_ts = data.get("timestamp")
        timestamp = raw_ts if isinstance(raw_ts, datetime) else datetime.fromisoformat(str(raw_ts))
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=UTC)
        return cls(
            action=str(data.get("action") or ""),
            actor=str(data.get("actor") or "unknown"),
            timestamp=timestamp,
            record_id=_stringify(data.get("recordId")),
            employee_number=_stringify(data.get("employeeNumber")),
            employee_name=_stringify(data.get("employeeName")),
            tier=_stringify(data.get("tier")),
            field_name=_stringify(data.get("fieldName")),
            old_value=_stringify(data.get("oldValue")),
            new_value=_stringify(data.get("newValue")),
            details=_stringify(data.get("details")),
            source_address=_stringify(data.get("sourceAddress")),
            event_id=_stringify(data.get("id")),
        )


def _stringify(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value)
