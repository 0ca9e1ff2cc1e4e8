"""Append-only audit trail behind one interface.

Backends: in-memory, relational (SQLite or PostgreSQL table), and a
month-partitioned Redis log whose row keys sort newest first. ``log_event``
never raises; a failed write comes back as ``AuditWriteResult(ok=False)``.
"""

from __future__ import annotations

import json
import logging
import re
import threading
import uuid
from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, replace
from datetime import UTC, date, datetime, time, timedelta
from typing import Any, Protocol

from certtrack.config import Settings
from certtrack.db.dialect import POSTGRES, SQLITE, Dialect
from certtrack.db.pool import TxRunner
from certtrack.errors import invalid_argument
from certtrack.filters import Pagination
from certtrack.models import AuditEvent, parse_date

logger = logging.getLogger(__name__)

MAX_TIMESTAMP = 9999999999999
MAX_SCAN_ENTITIES = 10000
STATS_DAYS = 7
TOP_ACTORS = 5


def _validate_identifier(name: str) -> str:
    if not re.fullmatch(r"[A-Za-z_][A-Za-z0-9_]*", name):
        raise ValueError(f"invalid SQL identifier: {name}")
    return name


def _clean(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    if not text or text.lower() == "all":
        return None
    return text


def _utc_iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="microseconds")


@dataclass(frozen=True)
class AuditWriteResult:
    ok: bool
    error: str | None = None


@dataclass(frozen=True)
class AuditFilters:
    start_date: date | None = None
    end_date: date | None = None
    actor: str | None = None
    action: str | None = None
    search: str | None = None

    @classmethod
    def build(
        cls,
        *,
        start_date: Any = None,
        end_date: Any = None,
        actor: str | None = None,
        action: str | None = None,
        search: str | None = None,
    ) -> AuditFilters:
        try:
            start = parse_date(start_date)
            end = parse_date(end_date)
        except ValueError as exc:
            raise invalid_argument(str(exc)) from exc
        return cls(start_date=start, end_date=end, actor=_clean(actor), action=_clean(action), search=_clean(search))

    @property
    def since(self) -> datetime | None:
        if self.start_date is None:
            return None
        return datetime.combine(self.start_date, time.min, tzinfo=UTC)

    @property
    def until(self) -> datetime | None:
        """Exclusive upper bound; the end date itself is included."""
        if self.end_date is None:
            return None
        return datetime.combine(self.end_date + timedelta(days=1), time.min, tzinfo=UTC)

    def matches(self, event: AuditEvent) -> bool:
        if self.since is not None and event.timestamp < self.since:
            return False
        if self.until is not None and event.timestamp >= self.until:
            return False
        if self.actor and event.actor != self.actor:
            return False
        if self.action and event.action != self.action:
            return False
        if self.search:
            needle = self.search.lower()
            name = (event.employee_name or "").lower()
            number = (event.employee_number or "").lower()
            if needle not in name and needle not in number:
                return False
        return True


class AuditTrail(Protocol):
    backend_name: str

    def log_event(self, event: AuditEvent) -> AuditWriteResult: ...

    def list_events(self, *, filters: AuditFilters, pagination: Pagination) -> tuple[list[AuditEvent], int]: ...

    def list_actors(self) -> list[str]: ...

    def stats(self, *, today: date) -> dict[str, Any]: ...


def build_stats(events: Iterable[AuditEvent], *, today: date) -> dict[str, Any]:
    actions: Counter[str] = Counter()
    actors: Counter[str] = Counter()
    daily: Counter[str] = Counter()
    since = today - timedelta(days=STATS_DAYS)
    for event in events:
        actions[event.action] += 1
        actors[event.actor] += 1
        day = event.timestamp.astimezone(UTC).date()
        if day >= since:
            daily[day.isoformat()] += 1
    return _format_stats(actions, daily, actors)


def _format_stats(actions: Counter[str], daily: Counter[str], actors: Counter[str]) -> dict[str, Any]:
    return {
        "actionCounts": [
            {"action": name, "count": count} for name, count in sorted(actions.items(), key=lambda kv: (-kv[1], kv[0]))
        ],
        "last7Days": [{"date": day, "count": count} for day, count in sorted(daily.items(), reverse=True)],
        "topActors": [
            {"actor": name, "count": count}
            for name, count in sorted(actors.items(), key=lambda kv: (-kv[1], kv[0]))[:TOP_ACTORS]
        ],
    }


class _AuditTrailBase:
    backend_name = "base"

    def _append(self, event: AuditEvent) -> None:
        raise NotImplementedError

    def log_event(self, event: AuditEvent) -> AuditWriteResult:
        try:
            self._append(event)
        except Exception as exc:
            logger.warning(
                "audit_write_failed backend=%s action=%s error=%s",
                self.backend_name,
                event.action,
                exc,
            )
            return AuditWriteResult(ok=False, error=str(exc) or type(exc).__name__)
        return AuditWriteResult(ok=True)


class InMemoryAuditTrail(_AuditTrailBase):
    backend_name = "memory"

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._events: list[AuditEvent] = []

    def _append(self, event: AuditEvent) -> None:
        stored = event if event.event_id else _with_id(event, uuid.uuid4().hex)
        with self._lock:
            self._events.append(stored)

    def _newest_first(self) -> list[AuditEvent]:
        with self._lock:
            indexed = list(enumerate(self._events))
        indexed.sort(key=lambda pair: (pair[1].timestamp, pair[0]), reverse=True)
        return [event for _, event in indexed]

    def list_events(self, *, filters: AuditFilters, pagination: Pagination) -> tuple[list[AuditEvent], int]:
        matched = [e for e in self._newest_first() if filters.matches(e)]
        return pagination.slice(matched), len(matched)

    def list_actors(self) -> list[str]:
        with self._lock:
            return sorted({e.actor for e in self._events if e.actor})

    def stats(self, *, today: date) -> dict[str, Any]:
        with self._lock:
            events = list(self._events)
        return build_stats(events, today=today)


def _with_id(event: AuditEvent, event_id: str) -> AuditEvent:
    return replace(event, event_id=event_id)


_EVENT_COLUMNS: tuple[str, ...] = (
    "event_id",
    "occurred_at",
    "actor",
    "action",
    "record_id",
    "employee_number",
    "employee_name",
    "tier",
    "field_name",
    "old_value",
    "new_value",
    "details",
    "source_address",
)


def _as_datetime(raw: Any) -> datetime:
    value = raw if isinstance(raw, datetime) else datetime.fromisoformat(str(raw))
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value


def _event_from_row(row: dict[str, Any]) -> AuditEvent:
    return AuditEvent(
        action=str(row.get("action") or ""),
        actor=str(row.get("actor") or "unknown"),
        timestamp=_as_datetime(row.get("occurred_at")),
        record_id=row.get("record_id"),
        employee_number=row.get("employee_number"),
        employee_name=row.get("employee_name"),
        tier=row.get("tier"),
        field_name=row.get("field_name"),
        old_value=row.get("old_value"),
        new_value=row.get("new_value"),
        details=row.get("details"),
        source_address=row.get("source_address"),
        event_id=str(row.get("event_id")) if row.get("event_id") is not None else None,
    )


class SqlAuditTrail(_AuditTrailBase):
    """One row per event; filtering, counting and paging run in the database."""

    dialect: Dialect = SQLITE
    backend_name = "relational"

    def __init__(self, *, pool: TxRunner, table_name: str = "audit_log") -> None:
        self._pool = pool
        self._table_name = _validate_identifier(table_name)

    def create_schema(self) -> None:
        ts_type = "TIMESTAMPTZ" if self.dialect is POSTGRES else "TEXT"
        sql = f"""
            CREATE TABLE IF NOT EXISTS {self._table_name} (
                event_id TEXT PRIMARY KEY,
                occurred_at {ts_type} NOT NULL,
                actor TEXT NOT NULL,
                action TEXT NOT NULL,
                record_id TEXT,
                employee_number TEXT,
                employee_name TEXT,
                tier TEXT,
                field_name TEXT,
                old_value TEXT,
                new_value TEXT,
                details TEXT,
                source_address TEXT
            )
        """
        index_sql = (
            f"CREATE INDEX IF NOT EXISTS idx_{self._table_name}_occurred "
            f"ON {self._table_name}(occurred_at)"
        )

        def _op(conn: Any) -> None:
            self.dialect.execute(conn, sql)
            self.dialect.execute(conn, index_sql)

        self._pool.run_in_tx(_op)

    def _append(self, event: AuditEvent) -> None:
        ph = self.dialect.placeholder
        sql = f"""
            INSERT INTO {self._table_name} ({', '.join(_EVENT_COLUMNS)})
            VALUES ({', '.join(ph for _ in _EVENT_COLUMNS)})
        """
        params = (
            event.event_id or uuid.uuid4().hex,
            _utc_iso(event.timestamp),
            event.actor,
            event.action,
            event.record_id,
            event.employee_number,
            event.employee_name,
            event.tier,
            event.field_name,
            event.old_value,
            event.new_value,
            event.details,
            event.source_address,
        )
        self._pool.run_in_tx(lambda conn: self.dialect.execute(conn, sql, params))

    def _where(self, filters: AuditFilters) -> tuple[str, list[Any]]:
        ph = self.dialect.placeholder
        clauses: list[str] = []
        params: list[Any] = []
        if filters.since is not None:
            clauses.append(f"occurred_at >= {ph}")
            params.append(_utc_iso(filters.since))
        if filters.until is not None:
            clauses.append(f"occurred_at < {ph}")
            params.append(_utc_iso(filters.until))
        if filters.actor:
            clauses.append(f"actor = {ph}")
            params.append(filters.actor)
        if filters.action:
            clauses.append(f"action = {ph}")
            params.append(filters.action)
        if filters.search:
            clauses.append(f"(LOWER(employee_name) LIKE {ph} OR LOWER(employee_number) LIKE {ph})")
            needle = f"%{filters.search.lower()}%"
            params.extend([needle, needle])
        if not clauses:
            return "", params
        return "WHERE " + " AND ".join(clauses), params

    def list_events(self, *, filters: AuditFilters, pagination: Pagination) -> tuple[list[AuditEvent], int]:
        ph = self.dialect.placeholder
        where, params = self._where(filters)
        count_sql = f"SELECT COUNT(1) AS cnt FROM {self._table_name} {where}"
        page_sql = f"""
            SELECT {', '.join(_EVENT_COLUMNS)}
            FROM {self._table_name} {where}
            ORDER BY occurred_at DESC, event_id DESC
            LIMIT {ph} OFFSET {ph}
        """

        def _op(conn: Any) -> tuple[list[AuditEvent], int]:
            counted = self.dialect.execute(conn, count_sql, tuple(params), fetch=True)
            total = int(counted[0]["cnt"]) if counted else 0
            rows = self.dialect.execute(conn, page_sql, (*params, pagination.limit, pagination.offset), fetch=True)
            return [_event_from_row(row) for row in rows], total

        return self._pool.run_in_tx(_op)

    def list_actors(self) -> list[str]:
        sql = f"SELECT DISTINCT actor FROM {self._table_name} ORDER BY actor ASC"
        rows = self._pool.run_in_tx(lambda conn: self.dialect.execute(conn, sql, (), fetch=True))
        return [str(row["actor"]) for row in rows if row.get("actor")]

    def stats(self, *, today: date) -> dict[str, Any]:
        ph = self.dialect.placeholder
        since = datetime.combine(today - timedelta(days=STATS_DAYS), time.min, tzinfo=UTC)
        action_sql = f"SELECT action AS name, COUNT(1) AS cnt FROM {self._table_name} GROUP BY action"
        actor_sql = f"SELECT actor AS name, COUNT(1) AS cnt FROM {self._table_name} GROUP BY actor"
        recent_sql = f"SELECT occurred_at FROM {self._table_name} WHERE occurred_at >= {ph}"

        def _op(conn: Any) -> dict[str, Any]:
            actions = Counter({str(r["name"]): int(r["cnt"]) for r in self.dialect.execute(conn, action_sql, (), fetch=True)})
            actors = Counter({str(r["name"]): int(r["cnt"]) for r in self.dialect.execute(conn, actor_sql, (), fetch=True)})
            daily: Counter[str] = Counter()
            for row in self.dialect.execute(conn, recent_sql, (_utc_iso(since),), fetch=True):
                daily[_as_datetime(row["occurred_at"]).astimezone(UTC).date().isoformat()] += 1
            return _format_stats(actions, daily, actors)

        return self._pool.run_in_tx(_op)


class SqliteAuditTrail(SqlAuditTrail):
    dialect = SQLITE


class PostgresAuditTrail(SqlAuditTrail):
    dialect = POSTGRES


def _import_redis() -> Any:
    try:
        import redis  # type: ignore
    except ImportError as exc:
        raise RuntimeError("redis is required for the partitioned audit log; install redis>=5") from exc
    return redis


def partition_key(moment: datetime) -> str:
    return moment.astimezone(UTC).strftime("%Y-%m")


def row_key(moment: datetime, suffix: str | None = None) -> str:
    """Inverted millisecond timestamp; ascending key order is newest first."""
    now_ms = int(moment.timestamp() * 1000)
    return f"{MAX_TIMESTAMP - now_ms:013d}_{suffix or uuid.uuid4().hex[:8]}"


class RedisAuditTrail(_AuditTrailBase):
    """Month partitions of lexicographically ordered row keys.

    Layout under ``{namespace}:audit``: a set of partition names, and per
    partition a zero-score sorted set of row keys plus a hash of entities.
    Free-text search has no server-side support and runs after the scan.
    """

    backend_name = "partitioned"

    def __init__(self, *, dsn: str, namespace: str = "certtrack", max_scan: int = MAX_SCAN_ENTITIES) -> None:
        if not dsn.strip():
            raise ValueError("CERTTRACK_AUDIT_REDIS_DSN must be provided for the partitioned audit log")
        self._namespace = namespace.strip() or "certtrack"
        self._max_scan = max_scan
        redis = _import_redis()
        self._client = redis.Redis.from_url(dsn.strip(), decode_responses=True)

    def _partitions_key(self) -> str:
        return f"{self._namespace}:audit:partitions"

    def _actors_key(self) -> str:
        return f"{self._namespace}:audit:actors"

    def _keys_key(self, partition: str) -> str:
        return f"{self._namespace}:audit:{partition}:keys"

    def _entities_key(self, partition: str) -> str:
        return f"{self._namespace}:audit:{partition}:entities"

    def _append(self, event: AuditEvent) -> None:
        partition = partition_key(event.timestamp)
        key = row_key(event.timestamp)
        entity = event.to_dict()
        entity["id"] = f"{partition}/{key}"
        with self._client.pipeline(transaction=True) as pipe:
            pipe.hset(
                self._entities_key(partition),
                key,
                json.dumps(entity, ensure_ascii=True, sort_keys=True, separators=(",", ":")),
            )
            pipe.zadd(self._keys_key(partition), {key: 0})
            pipe.sadd(self._partitions_key(), partition)
            pipe.sadd(self._actors_key(), event.actor)
            pipe.execute()

    def _partitions(self, filters: AuditFilters | None = None) -> list[str]:
        names = sorted(self._client.smembers(self._partitions_key()) or [], reverse=True)
        if filters is None:
            return names
        low = partition_key(filters.since) if filters.since is not None else None
        high = partition_key(filters.until - timedelta(microseconds=1)) if filters.until is not None else None
        return [p for p in names if (low is None or p >= low) and (high is None or p <= high)]

    def _scan(self, filters: AuditFilters | None = None) -> list[AuditEvent]:
        out: list[AuditEvent] = []
        for partition in self._partitions(filters):
            keys = self._client.zrangebylex(self._keys_key(partition), "-", "+") or []
            if not keys:
                continue
            payloads = self._client.hmget(self._entities_key(partition), keys) or []
            for raw in payloads:
                if not isinstance(raw, str) or not raw:
                    continue
                try:
                    event = AuditEvent.from_dict(json.loads(raw))
                except (json.JSONDecodeError, TypeError, ValueError):
                    logger.warning("audit_entity_unreadable partition=%s", partition)
                    continue
                if filters is not None and not filters.matches(event):
                    continue
                out.append(event)
                if len(out) >= self._max_scan:
                    logger.warning("audit_scan_limit_reached limit=%s", self._max_scan)
                    return out
        return out

    def list_events(self, *, filters: AuditFilters, pagination: Pagination) -> tuple[list[AuditEvent], int]:
        matched = self._scan(filters)
        return pagination.slice(matched), len(matched)

    def list_actors(self) -> list[str]:
        return sorted(x for x in (self._client.smembers(self._actors_key()) or []) if x)

    def stats(self, *, today: date) -> dict[str, Any]:
        return build_stats(self._scan(), today=today)


def create_audit_trail(
    settings: Settings,
    *,
    pool: TxRunner | None = None,
) -> InMemoryAuditTrail | SqlAuditTrail | RedisAuditTrail:
    """Pick the backend once: Redis DSN first, then the records store, then memory."""
    if settings.audit_redis_dsn:
        trail: InMemoryAuditTrail | SqlAuditTrail | RedisAuditTrail = RedisAuditTrail(
            dsn=settings.audit_redis_dsn,
            namespace=settings.audit_key_prefix,
        )
    elif pool is not None and settings.store_backend == "postgres":
        trail = PostgresAuditTrail(pool=pool, table_name=settings.audit_table)
        trail.create_schema()
    elif pool is not None and settings.store_backend == "sqlite":
        trail = SqliteAuditTrail(pool=pool, table_name=settings.audit_table)
        trail.create_schema()
    else:
        trail = InMemoryAuditTrail()
    logger.info("audit_backend_selected backend=%s", trail.backend_name)
    return trail
