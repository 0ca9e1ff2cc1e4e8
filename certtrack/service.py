"""Operations exposed to the HTTP layer and scripts.

Mutations run in a fixed order: validate caller names and dates (no store
call on failure), load the record, check the artifact belongs to the
record's tier, write the single row, then append the audit event. The audit
write is best-effort and never turns a committed mutation into an error.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Mapping
from datetime import UTC, date, datetime
from typing import Any

from certtrack import aggregation
from certtrack.aggregation import DateWindow
from certtrack.config import Settings
from certtrack.db.pool import PostgresPool, SqliteTxRunner, TxRunner
from certtrack.errors import forbidden, invalid_argument, not_found
from certtrack.field_whitelist import (
    READINESS_SORT_DEFAULT,
    READINESS_SORTS,
    RECORD_SORT_DEFAULT,
    RECORD_SORTS,
    require_tier_artifact,
    resolve_artifact,
    resolve_artifact_pair,
    resolve_schedule_key,
)
from certtrack.filters import Pagination, RecordFilters, Sort
from certtrack.models import AUDIT_ACTIONS, AuditEvent, CertificationRecord, iso, parse_date
from certtrack.progression import evaluate_readiness, prerequisites_met, record_status
from certtrack.repositories import (
    AuditFilters,
    AuditTrail,
    InMemoryAdvisorsRepository,
    InMemoryRecordsRepository,
    PostgresAdvisorsRepository,
    PostgresRecordsRepository,
    SqliteAdvisorsRepository,
    SqliteRecordsRepository,
    create_audit_trail,
)
from certtrack.repositories.advisors import SqlAdvisorsRepository
from certtrack.repositories.records import RecordsRepository, SqlRecordsRepository
from certtrack.resolver import BY_EMPLOYEE, index_by_tier, resolve
from certtrack.tiers import TIER_LABELS, TIERS, Artifact, normalize_tier, status_names

logger = logging.getLogger(__name__)

AUDIT_PAGE_SIZE = 50


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _require_tier(value: str | None) -> str:
    try:
        tier = normalize_tier(value)
    except ValueError as exc:
        raise invalid_argument(str(exc)) from exc
    if tier is None:
        raise invalid_argument("tier is required")
    return tier


def _optional_tier(value: str | None) -> str | None:
    try:
        return normalize_tier(value)
    except ValueError as exc:
        raise invalid_argument(str(exc)) from exc


def _require_date(value: Any, name: str) -> date:
    try:
        parsed = parse_date(value)
    except ValueError as exc:
        raise invalid_argument(str(exc)) from exc
    if parsed is None:
        raise invalid_argument(f"{name} is required")
    return parsed


def _window(start_date: Any = None, end_date: Any = None) -> DateWindow:
    try:
        return DateWindow(start=parse_date(start_date), end=parse_date(end_date))
    except ValueError as exc:
        raise invalid_argument(str(exc)) from exc


def _schedule_artifact_for(key: str) -> Artifact:
    if str(key).startswith("schedule"):
        return resolve_schedule_key(key)
    return resolve_artifact(key)


class CertificationService:
    def __init__(
        self,
        *,
        records: RecordsRepository,
        advisors: Any,
        audit: AuditTrail,
        settings: Settings | None = None,
        clock: Callable[[], datetime] | None = None,
        pool: TxRunner | None = None,
    ) -> None:
        self.records = records
        self.advisors = advisors
        self.audit = audit
        self.settings = settings or Settings()
        self._clock = clock or _utcnow
        self._pool = pool
        self._cache_lock = threading.Lock()
        self._analytics_cache: dict[tuple[Any, ...], tuple[float, dict[str, Any]]] = {}

    def close(self) -> None:
        if self._pool is not None:
            self._pool.close()

    def today(self) -> date:
        return self._clock().date()

    # -- helpers -------------------------------------------------------------

    def _advisor_names(self) -> dict[int, str]:
        return {a.advisor_id: a.full_name for a in self.advisors.list_all()}

    def _present(self, records: list[CertificationRecord], names: Mapping[int, str] | None = None) -> list[dict[str, Any]]:
        names = self._advisor_names() if names is None else names
        out: list[dict[str, Any]] = []
        for record in records:
            item = record.to_dict()
            item["status"] = record_status(record)
            item["advisorName"] = names.get(record.advisor_id) if record.advisor_id is not None else None
            out.append(item)
        return out

    def _load(self, employee_id: int, tier: str | None = None) -> CertificationRecord:
        record = self.records.get(employee_id=int(employee_id))
        if record is None or (tier is not None and record.tier != tier):
            raise not_found(f"record {employee_id} not found")
        return record

    def _snapshot(self, filters: RecordFilters | None = None) -> list[CertificationRecord]:
        return self.records.fetch(filters=filters or RecordFilters())

    def _audit(
        self,
        action: str,
        *,
        actor: str | None,
        source_address: str | None = None,
        record: CertificationRecord | None = None,
        **values: Any,
    ) -> bool:
        if record is not None:
            values.setdefault("record_id", record.employee_id)
            values.setdefault("employee_number", record.employee_number)
            values.setdefault("employee_name", record.name)
            values.setdefault("tier", record.tier)
        event = AuditEvent.create(
            action=action,
            actor=actor,
            timestamp=self._clock(),
            source_address=source_address,
            **values,
        )
        return self.audit.log_event(event).ok

    def _mutated(self, record: CertificationRecord, audit_logged: bool) -> dict[str, Any]:
        with self._cache_lock:
            self._analytics_cache.clear()
        data = self._present([record])[0]
        data["auditLogged"] = audit_logged
        return data

    def _cached(self, key: tuple[Any, ...], build: Callable[[], dict[str, Any]]) -> dict[str, Any]:
        ttl = self.settings.analytics_cache_ttl_s
        if ttl <= 0:
            return build()
        now = time.monotonic()
        with self._cache_lock:
            expired = [k for k, (expires, _) in self._analytics_cache.items() if expires <= now]
            for stale in expired:
                del self._analytics_cache[stale]
            hit = self._analytics_cache.get(key)
            if hit is not None and hit[0] > now:
                return hit[1]
        value = build()
        with self._cache_lock:
            self._analytics_cache[key] = (now + ttl, value)
        return value

    # -- record reads ----------------------------------------------------------

    def get_records(
        self,
        *,
        filters: RecordFilters | None = None,
        page: Any = None,
        limit: Any = None,
        sort_by: str | None = None,
        sort_order: str | None = None,
    ) -> dict[str, Any]:
        pagination = Pagination.normalize(page, limit)
        sort = Sort.normalize(sort_by, sort_order, allowed=RECORD_SORTS, default=RECORD_SORT_DEFAULT)
        rows, total = self.records.query(filters=filters or RecordFilters(), pagination=pagination, sort=sort)
        return {"items": self._present(rows), "pagination": pagination.meta(total)}

    def get_unique_records(
        self,
        *,
        filters: RecordFilters | None = None,
        page: Any = None,
        limit: Any = None,
        sort_by: str | None = None,
        sort_order: str | None = None,
    ) -> dict[str, Any]:
        """One canonical record per employee; the total counts the deduplicated set."""
        pagination = Pagination.normalize(page, limit)
        sort = Sort.normalize(sort_by, sort_order, allowed=RECORD_SORTS, default=RECORD_SORT_DEFAULT)
        canonical = sort.apply(resolve(self._snapshot(filters), BY_EMPLOYEE))
        return {"items": self._present(pagination.slice(canonical)), "pagination": pagination.meta(len(canonical))}

    def get_record_by_id(self, employee_id: int) -> dict[str, Any]:
        return self._present([self._load(employee_id)])[0]

    def get_tier_history(self, employee_id: int) -> dict[str, Any]:
        record = self._load(employee_id)
        rows = self.records.list_for_employee_number(employee_number=record.employee_number)
        return {
            "employeeNumber": record.employee_number,
            "name": record.name,
            "items": self._present(rows),
        }

    def get_ready_for_tier(
        self,
        target_tier: str,
        *,
        filters: RecordFilters | None = None,
        page: Any = None,
        limit: Any = None,
        sort_by: str | None = None,
        sort_order: str | None = None,
    ) -> dict[str, Any]:
        tier = _require_tier(target_tier)
        pagination = Pagination.normalize(page, limit)
        sort = Sort.normalize(sort_by, sort_order, allowed=READINESS_SORTS, default=READINESS_SORT_DEFAULT)
        scope = (filters or RecordFilters()).without_tier()
        entries = evaluate_readiness(self._snapshot(scope), tier)
        by_id = {entry.record.employee_id: entry for entry in entries}
        ordered = sort.apply(entry.record for entry in entries)
        names = self._advisor_names()
        items = []
        for record in pagination.slice(ordered):
            item = by_id[record.employee_id].to_dict()
            item["advisorName"] = names.get(record.advisor_id) if record.advisor_id is not None else None
            items.append(item)
        return {"tier": tier, "items": items, "pagination": pagination.meta(len(ordered))}

    def get_filter_options(self) -> dict[str, Any]:
        return {
            "facilities": self.records.distinct_values(name="facility"),
            "areas": self.records.distinct_values(name="area"),
            "jobTitles": self.records.distinct_values(name="jobTitle"),
            "tiers": [{"value": tier, "label": TIER_LABELS[tier]} for tier in TIERS],
            "statuses": status_names(),
        }

    # -- dashboard and analytics -------------------------------------------------

    def get_dashboard_summary(self, *, filters: RecordFilters | None = None) -> dict[str, Any]:
        return aggregation.dashboard_summary(
            self._snapshot(filters),
            today=self.today(),
            sla_days=self.settings.sla_days,
        )

    def get_analytics_overview(
        self,
        *,
        filters: RecordFilters | None = None,
        start_date: Any = None,
        end_date: Any = None,
    ) -> dict[str, Any]:
        scope = filters or RecordFilters()
        window = _window(start_date, end_date)
        return self._cached(
            ("overview", scope, window.cache_key()),
            lambda: aggregation.analytics_overview(self._snapshot(scope), window=window),
        )

    def get_facility_performance(
        self, *, filters: RecordFilters | None = None, start_date: Any = None, end_date: Any = None
    ) -> list[dict[str, Any]]:
        return aggregation.facility_performance(self._snapshot(filters), window=_window(start_date, end_date))

    def get_area_performance(
        self, *, filters: RecordFilters | None = None, start_date: Any = None, end_date: Any = None
    ) -> list[dict[str, Any]]:
        return aggregation.area_performance(self._snapshot(filters), window=_window(start_date, end_date))

    def get_monthly_trends(self, *, filters: RecordFilters | None = None) -> list[dict[str, Any]]:
        return aggregation.monthly_trends(self._snapshot(filters), today=self.today())

    def get_certification_progress(
        self, *, filters: RecordFilters | None = None, start_date: Any = None, end_date: Any = None
    ) -> list[dict[str, Any]]:
        return aggregation.certification_progress(self._snapshot(filters), window=_window(start_date, end_date))

    def get_recent_activity(self, *, filters: RecordFilters | None = None) -> list[dict[str, Any]]:
        return aggregation.recent_completions(self._snapshot(filters))

    def get_summary_metrics(self, *, filters: RecordFilters | None = None) -> dict[str, Any]:
        return aggregation.summary_metrics(
            self._snapshot(filters),
            today=self.today(),
            sla_days=self.settings.sla_days,
        )

    def get_completions(
        self, *, filters: RecordFilters | None = None, start_date: Any = None, end_date: Any = None
    ) -> dict[str, Any]:
        return aggregation.completions_aggregates(self._snapshot(filters), window=_window(start_date, end_date))

    def get_employee_overview(
        self,
        *,
        filters: RecordFilters | None = None,
        page: Any = None,
        limit: Any = None,
    ) -> dict[str, Any]:
        """Dashboard matrix; accepts bulk page sizes."""
        pagination = Pagination.normalize(page, limit, bulk=True)
        scope = (filters or RecordFilters()).without_tier()
        rows = aggregation.employee_progress_matrix(self._snapshot(scope))
        return {"items": pagination.slice(rows), "pagination": pagination.meta(len(rows))}

    # -- advisors --------------------------------------------------------------

    def list_advisors(self) -> list[dict[str, Any]]:
        return [advisor.to_dict() for advisor in self.advisors.list_all()]

    def add_advisor(
        self,
        first_name: str,
        last_name: str,
        *,
        actor: str | None = None,
        source_address: str | None = None,
    ) -> dict[str, Any]:
        first = (first_name or "").strip()
        last = (last_name or "").strip()
        if not first or not last:
            raise invalid_argument("first and last name are required")
        advisor = self.advisors.add(first_name=first, last_name=last)
        logged = self._audit(
            "ADVISOR_ADDED",
            actor=actor,
            source_address=source_address,
            new_value=advisor.full_name,
            details=f"advisor {advisor.advisor_id} added",
        )
        data = advisor.to_dict()
        data["auditLogged"] = logged
        return data

    # -- mutations ----------------------------------------------------------------

    def schedule_artifact(
        self,
        employee_id: int,
        artifact_key: str,
        scheduled_on: Any,
        *,
        actor: str | None = None,
        source_address: str | None = None,
    ) -> dict[str, Any]:
        artifact = _schedule_artifact_for(artifact_key)
        when = _require_date(scheduled_on, "date")
        record = self._load(employee_id)
        require_tier_artifact(record.tier, artifact)
        previous = record.scheduled.get(artifact.key)
        updated = self.records.mutate(
            employee_id=record.employee_id,
            fields={artifact.schedule_key: when},
            tier=record.tier,
        )
        logged = self._audit(
            "TRAINING_SCHEDULED",
            actor=actor,
            source_address=source_address,
            record=updated,
            field_name=artifact.schedule_key,
            old_value=iso(previous),
            new_value=iso(when),
        )
        return self._mutated(updated, logged)

    def complete_artifact(
        self,
        employee_id: int,
        schedule_key: str,
        complete_key: str,
        *,
        actor: str | None = None,
        source_address: str | None = None,
    ) -> dict[str, Any]:
        """Mark an artifact done on the date it was scheduled for."""
        artifact = resolve_artifact_pair(schedule_key, complete_key)
        record = self._load(employee_id)
        require_tier_artifact(record.tier, artifact)
        scheduled = record.scheduled.get(artifact.key)
        if scheduled is None:
            raise invalid_argument(f"{artifact.key} has no scheduled date", code="NOT_SCHEDULED")
        updated = self.records.mutate(
            employee_id=record.employee_id,
            fields={artifact.key: scheduled},
            tier=record.tier,
        )
        logged = self._audit(
            "TRAINING_COMPLETED",
            actor=actor,
            source_address=source_address,
            record=updated,
            field_name=artifact.key,
            old_value=iso(record.completed.get(artifact.key)),
            new_value=iso(scheduled),
        )
        return self._mutated(updated, logged)

    def edit_completed_date(
        self,
        employee_id: int,
        schedule_key: str,
        complete_key: str,
        new_date: Any,
        *,
        actor: str | None = None,
        source_address: str | None = None,
    ) -> dict[str, Any]:
        """Reopen a completed artifact: write the new schedule date and clear the completion."""
        if not self.settings.can_edit_completed_date(actor):
            raise forbidden("not allowed to edit completed dates")
        artifact = resolve_artifact_pair(schedule_key, complete_key)
        when = _require_date(new_date, "date")
        record = self._load(employee_id)
        require_tier_artifact(record.tier, artifact)
        old_completed = record.completed.get(artifact.key)
        updated = self.records.mutate(
            employee_id=record.employee_id,
            fields={artifact.schedule_key: when, artifact.key: None},
            tier=record.tier,
        )
        logged = self._audit(
            "DATE_EDITED",
            actor=actor,
            source_address=source_address,
            record=updated,
            field_name=artifact.key,
            old_value=iso(old_completed),
            new_value=iso(when),
            details=f"{artifact.key} reopened, rescheduled for {when.isoformat()}",
        )
        return self._mutated(updated, logged)

    def _set_approval(
        self,
        employee_id: int,
        *,
        awaiting: bool | None,
        action: str,
        actor: str | None,
        source_address: str | None,
    ) -> dict[str, Any]:
        record = self._load(employee_id)
        previous = record.approval_state
        updated = self.records.mutate(
            employee_id=record.employee_id,
            fields={"awaiting": awaiting},
            tier=record.tier,
        )
        logged = self._audit(
            action,
            actor=actor,
            source_address=source_address,
            record=updated,
            field_name="awaiting",
            old_value=previous,
            new_value=updated.approval_state,
        )
        return self._mutated(updated, logged)

    def approve_conference(
        self, employee_id: int, *, actor: str | None = None, source_address: str | None = None
    ) -> dict[str, Any]:
        return self._set_approval(
            employee_id, awaiting=False, action="CONFERENCE_APPROVED", actor=actor, source_address=source_address
        )

    def reject_conference(
        self, employee_id: int, *, actor: str | None = None, source_address: str | None = None
    ) -> dict[str, Any]:
        return self._set_approval(
            employee_id, awaiting=None, action="CONFERENCE_REJECTED", actor=actor, source_address=source_address
        )

    def update_notes(
        self,
        employee_id: int,
        notes: str,
        *,
        tier: str | None = None,
        actor: str | None = None,
        source_address: str | None = None,
    ) -> dict[str, Any]:
        tier_name = _optional_tier(tier)
        record = self._load(employee_id, tier_name)
        updated = self.records.mutate(
            employee_id=record.employee_id,
            fields={"notes": notes or ""},
            tier=record.tier,
        )
        logged = self._audit(
            "NOTES_UPDATED",
            actor=actor,
            source_address=source_address,
            record=updated,
            field_name="notes",
            old_value=record.notes,
            new_value=updated.notes,
        )
        return self._mutated(updated, logged)

    def update_advisor(
        self,
        employee_id: int,
        advisor_id: int | None,
        *,
        tier: str | None = None,
        actor: str | None = None,
        source_address: str | None = None,
    ) -> dict[str, Any]:
        """Point the record at an existing advisor; ``None`` clears it."""
        tier_name = _optional_tier(tier)
        advisor = None
        if advisor_id is not None:
            advisor = self.advisors.get(advisor_id=int(advisor_id))
            if advisor is None:
                raise not_found(f"advisor {advisor_id} not found", code="ADVISOR_NOT_FOUND")
        record = self._load(employee_id, tier_name)
        names = self._advisor_names()
        updated = self.records.mutate(
            employee_id=record.employee_id,
            fields={"advisorId": advisor.advisor_id if advisor else None},
            tier=record.tier,
        )
        logged = self._audit(
            "ADVISOR_CHANGED",
            actor=actor,
            source_address=source_address,
            record=updated,
            field_name="advisorId",
            old_value=names.get(record.advisor_id) if record.advisor_id is not None else None,
            new_value=advisor.full_name if advisor else None,
        )
        return self._mutated(updated, logged)

    def assign_tier(
        self,
        employee_number: str,
        tier: str,
        *,
        assigned_date: Any = None,
        actor: str | None = None,
        source_address: str | None = None,
    ) -> dict[str, Any]:
        """Open a record for the next tier once every required earlier tier is awarded."""
        tier_name = _require_tier(tier)
        try:
            assigned_on = parse_date(assigned_date) or self.today()
        except ValueError as exc:
            raise invalid_argument(str(exc)) from exc
        history = self.records.list_for_employee_number(employee_number=str(employee_number))
        if not history:
            raise not_found(f"employee {employee_number} not found")
        tier_records = index_by_tier(history).get(str(employee_number), {})
        if tier_name in tier_records:
            raise invalid_argument(f"{tier_name} already assigned", code="TIER_ALREADY_ASSIGNED")
        if not prerequisites_met(tier_records, tier_name):
            raise invalid_argument(f"prerequisites for {tier_name} not met", code="PREREQUISITES_NOT_MET")
        latest = history[-1]
        created = self.records.insert(
            record=CertificationRecord(
                employee_id=0,
                employee_number=latest.employee_number,
                tier=tier_name,
                name=latest.name,
                facility=latest.facility,
                area=latest.area,
                job_title=latest.job_title,
                assigned_date=assigned_on,
                advisor_id=latest.advisor_id,
            )
        )
        logged = self._audit(
            "TIER_ASSIGNED",
            actor=actor,
            source_address=source_address,
            record=created,
            field_name="assignedDate",
            new_value=iso(assigned_on),
        )
        return self._mutated(created, logged)

    def award_tier(
        self,
        employee_id: int,
        *,
        awarded_date: Any = None,
        actor: str | None = None,
        source_address: str | None = None,
    ) -> dict[str, Any]:
        try:
            awarded_on = parse_date(awarded_date) or self.today()
        except ValueError as exc:
            raise invalid_argument(str(exc)) from exc
        record = self._load(employee_id)
        if record.is_awarded:
            raise invalid_argument(f"{record.tier} already awarded", code="ALREADY_AWARDED")
        history = self.records.list_for_employee_number(employee_number=record.employee_number)
        ready = evaluate_readiness(history, record.tier)
        if not any(entry.record.employee_id == record.employee_id for entry in ready):
            raise invalid_argument(f"record {employee_id} is not ready for {record.tier}", code="NOT_READY")
        updated = self.records.mutate(
            employee_id=record.employee_id,
            fields={"awarded": True, "awardedDate": awarded_on},
            tier=record.tier,
        )
        logged = self._audit(
            "TIER_AWARDED",
            actor=actor,
            source_address=source_address,
            record=updated,
            field_name="awardedDate",
            new_value=iso(awarded_on),
        )
        return self._mutated(updated, logged)

    # -- audit reads ----------------------------------------------------------------

    def get_audit_log(
        self,
        *,
        start_date: Any = None,
        end_date: Any = None,
        actor: str | None = None,
        action: str | None = None,
        search: str | None = None,
        page: Any = None,
        limit: Any = None,
    ) -> dict[str, Any]:
        filters = AuditFilters.build(
            start_date=start_date,
            end_date=end_date,
            actor=actor,
            action=action,
            search=search,
        )
        if filters.action is not None and filters.action not in AUDIT_ACTIONS:
            raise invalid_argument(f"unknown audit action: {filters.action}")
        pagination = Pagination.normalize(page, limit, default_limit=AUDIT_PAGE_SIZE)
        events, total = self.audit.list_events(filters=filters, pagination=pagination)
        return {
            "items": [event.to_dict() for event in events],
            "pagination": pagination.meta(total),
            "backend": self.audit.backend_name,
        }

    def get_audit_actors(self) -> list[str]:
        return self.audit.list_actors()

    def get_audit_stats(self) -> dict[str, Any]:
        stats = self.audit.stats(today=self.today())
        stats["actions"] = [{"value": key, "label": label} for key, label in AUDIT_ACTIONS.items()]
        return stats


def create_service_from_env(
    environ: Mapping[str, str] | None = None,
    *,
    clock: Callable[[], datetime] | None = None,
) -> CertificationService:
    settings = Settings.from_env(environ)
    pool: TxRunner | None = None
    records: RecordsRepository
    if settings.store_backend == "memory":
        records = InMemoryRecordsRepository()
        advisors: Any = InMemoryAdvisorsRepository()
    else:
        if settings.store_backend == "postgres":
            pool = PostgresPool(
                dsn=settings.postgres_dsn,
                max_size=settings.pool_max_size,
                timeout_s=settings.pool_timeout_s,
            )
            records_cls: type[SqlRecordsRepository] = PostgresRecordsRepository
            advisors_cls: type[SqlAdvisorsRepository] = PostgresAdvisorsRepository
        else:
            pool = SqliteTxRunner(settings.sqlite_path, timeout_s=settings.pool_timeout_s)
            records_cls = SqliteRecordsRepository
            advisors_cls = SqliteAdvisorsRepository
        pool.open()
        records = records_cls(pool=pool)
        advisors = advisors_cls(pool=pool)
        records.create_schema()
        advisors.create_schema()
    logger.info("store_backend_selected backend=%s", settings.store_backend)
    audit = create_audit_trail(settings, pool=pool)
    return CertificationService(
        records=records,
        advisors=advisors,
        audit=audit,
        settings=settings,
        clock=clock,
        pool=pool,
    )

