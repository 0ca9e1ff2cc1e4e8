from __future__ import annotations

import re
import threading
from dataclasses import replace
from typing import Any, Protocol

from certtrack.db.dialect import POSTGRES, SQLITE, Dialect
from certtrack.db.pool import TxRunner
from certtrack.errors import invalid_argument, not_found
from certtrack.field_whitelist import date_filter_columns, option_column, validate_mutation_fields
from certtrack.filters import Pagination, RecordFilters, Sort
from certtrack.models import DATE_COLUMNS, RECORD_COLUMNS, CertificationRecord, parse_date
from certtrack.tiers import ARTIFACTS, TIERS

_AWARDED_SQL = "(awarded = 1 OR awarded_date IS NOT NULL)"

_ACTIVITY_COLUMNS: tuple[str, ...] = (
    "awarded_date",
    "conference_completed",
    "completed_date",
    *(a.complete_column for a in ARTIFACTS.values()),
    "assigned_date",
)
_TEXT_SORT_COLUMNS = frozenset({"name", "facility", "area", "job_title", "employee_number"})


def _validate_identifier(name: str) -> str:
    if not re.fullmatch(r"[A-Za-z_][A-Za-z0-9_]*", name):
        raise ValueError(f"invalid SQL identifier: {name}")
    return name


def _coerce(column: str, value: Any) -> Any:
    if column in DATE_COLUMNS:
        try:
            return parse_date(value)
        except ValueError as exc:
            raise invalid_argument(str(exc)) from exc
    if column == "awaiting":
        return None if value is None else bool(value)
    if column == "awarded":
        return bool(value)
    if column == "advisor_id":
        return None if value is None else int(value)
    if column == "notes":
        return "" if value is None else str(value)
    return value


def _tier_order(record: CertificationRecord) -> tuple[int, int]:
    idx = TIERS.index(record.tier) if record.tier in TIERS else len(TIERS)
    return idx, record.employee_id


class RecordsRepository(Protocol):
    def query(
        self, *, filters: RecordFilters, pagination: Pagination, sort: Sort
    ) -> tuple[list[CertificationRecord], int]: ...

    def fetch(self, *, filters: RecordFilters) -> list[CertificationRecord]: ...

    def get(self, *, employee_id: int) -> CertificationRecord | None: ...

    def list_for_employee_number(self, *, employee_number: str) -> list[CertificationRecord]: ...

    def insert(self, *, record: CertificationRecord) -> CertificationRecord: ...

    def mutate(
        self, *, employee_id: int, fields: dict[str, Any], tier: str | None = None
    ) -> CertificationRecord: ...

    def distinct_values(self, *, name: str) -> list[str]: ...


class InMemoryRecordsRepository:
    def __init__(self, records: list[CertificationRecord] | None = None) -> None:
        self._lock = threading.RLock()
        self._rows: dict[int, CertificationRecord] = {}
        self._next_id = 1
        for record in records or []:
            self.insert(record=record)

    def query(
        self, *, filters: RecordFilters, pagination: Pagination, sort: Sort
    ) -> tuple[list[CertificationRecord], int]:
        rows = sort.apply(self.fetch(filters=filters))
        return pagination.slice(rows), len(rows)

    def fetch(self, *, filters: RecordFilters) -> list[CertificationRecord]:
        with self._lock:
            return [r for r in self._rows.values() if filters.matches(r)]

    def get(self, *, employee_id: int) -> CertificationRecord | None:
        with self._lock:
            return self._rows.get(int(employee_id))

    def list_for_employee_number(self, *, employee_number: str) -> list[CertificationRecord]:
        with self._lock:
            rows = [r for r in self._rows.values() if r.employee_number == employee_number]
        return sorted(rows, key=_tier_order)

    def insert(self, *, record: CertificationRecord) -> CertificationRecord:
        with self._lock:
            if record.employee_id and record.employee_id not in self._rows:
                employee_id = record.employee_id
            else:
                employee_id = self._next_id
            self._next_id = max(self._next_id, employee_id) + 1
            stored = replace(record, employee_id=employee_id)
            self._rows[employee_id] = stored
            return stored

    def mutate(self, *, employee_id: int, fields: dict[str, Any], tier: str | None = None) -> CertificationRecord:
        columns = validate_mutation_fields(fields)
        values = {column: _coerce(column, value) for column, value in columns.items()}
        with self._lock:
            current = self._rows.get(int(employee_id))
            if current is None or (tier is not None and current.tier != tier):
                raise not_found(f"record {employee_id} not found")
            updated = current
            for column, value in values.items():
                updated = updated.with_column(column, value)
            self._rows[updated.employee_id] = updated
            return updated

    def distinct_values(self, *, name: str) -> list[str]:
        column = option_column(name)
        with self._lock:
            values = {str(r.get_column(column)) for r in self._rows.values() if r.get_column(column)}
        return sorted(values)


class SqlRecordsRepository:
    """Shared implementation for the relational backends; subclasses pick the dialect."""

    dialect: Dialect = SQLITE

    def __init__(self, *, pool: TxRunner, table_name: str = "certification_records") -> None:
        self._pool = pool
        self._table_name = _validate_identifier(table_name)

    def create_schema(self) -> None:
        d = self.dialect
        date_columns = ",\n".join(f"    {c} {d.date_type}" for c in RECORD_COLUMNS if c in DATE_COLUMNS)
        sql = f"""
            CREATE TABLE IF NOT EXISTS {self._table_name} (
                employee_id {d.serial_pk},
                employee_number TEXT NOT NULL,
                tier TEXT NOT NULL,
                name TEXT NOT NULL DEFAULT '',
                facility TEXT NOT NULL DEFAULT '',
                area TEXT NOT NULL DEFAULT '',
                job_title TEXT NOT NULL DEFAULT '',
                awaiting SMALLINT,
                awarded SMALLINT NOT NULL DEFAULT 0,
                notes TEXT NOT NULL DEFAULT '',
                advisor_id INTEGER,
            {date_columns}
            )
        """
        index_sql = (
            f"CREATE INDEX IF NOT EXISTS idx_{self._table_name}_employee "
            f"ON {self._table_name}(employee_number, tier)"
        )

        def _op(conn: Any) -> None:
            d.execute(conn, sql)
            d.execute(conn, index_sql)

        self._pool.run_in_tx(_op)

    def _where(self, filters: RecordFilters) -> tuple[str, list[Any]]:
        ph = self.dialect.placeholder
        clauses: list[str] = []
        params: list[Any] = []
        if filters.tier:
            clauses.append(f"tier = {ph}")
            params.append(filters.tier)
        if filters.facilities:
            clauses.append(f"facility IN ({', '.join(ph for _ in filters.facilities)})")
            params.extend(filters.facilities)
        if filters.area:
            clauses.append(f"area = {ph}")
            params.append(filters.area)
        if filters.job_title:
            clauses.append(f"job_title = {ph}")
            params.append(filters.job_title)
        if filters.search:
            clauses.append(f"(LOWER(name) LIKE {ph} OR LOWER(employee_number) LIKE {ph})")
            needle = f"%{filters.search.lower()}%"
            params.extend([needle, needle])
        if filters.date_field and filters.date is not None:
            columns = date_filter_columns(filters.date_field)
            clauses.append("(" + " OR ".join(f"{c} = {ph}" for c in columns) + ")")
            params.extend(filters.date.isoformat() for _ in columns)
        if filters.status is not None:
            clause, extra = self._status_clause(*filters.status)
            clauses.append(clause)
            params.extend(extra)
        if not clauses:
            return "", params
        return "WHERE " + " AND ".join(clauses), params

    def _status_clause(self, kind: str, tier: str | None) -> tuple[str, list[Any]]:
        ph = self.dialect.placeholder
        if kind == "awaiting":
            return "(conference_completed IS NOT NULL AND awaiting = 1)", []
        if kind == "rejected":
            return "(conference_completed IS NOT NULL AND awaiting IS NULL)", []
        if kind == "completed":
            return f"(tier = {ph} AND {_AWARDED_SQL})", [tier]
        if tier == "Tier1":
            return f"(tier = {ph} AND assigned_date IS NOT NULL AND NOT {_AWARDED_SQL})", [tier]
        return (
            f"(tier = {ph} AND conference_completed IS NOT NULL AND awaiting = 0 AND NOT {_AWARDED_SQL})",
            [tier],
        )

    def _order_by(self, sort: Sort) -> str:
        """Same order as ``Sort.apply``: text folded to lower case, empty text treated as missing, missing last."""
        direction = "DESC" if sort.descending else "ASC"
        parts: list[str] = []
        for column in sort.columns:
            if column == "latest_activity":
                expr = self.dialect.greatest(_ACTIVITY_COLUMNS)
            elif column in _TEXT_SORT_COLUMNS:
                expr = f"LOWER(NULLIF({column}, ''))"
            else:
                expr = column
            if column == "employee_id":
                parts.append(f"{expr} {direction}")
                continue
            parts.append(f"CASE WHEN {expr} IS NULL THEN 1 ELSE 0 END")
            parts.append(f"{expr} {direction}")
        if "employee_id" not in sort.columns:
            parts.append(f"employee_id {direction}")
        return "ORDER BY " + ", ".join(parts)

    def _rows(self, conn: Any, sql: str, params: list[Any]) -> list[CertificationRecord]:
        return [CertificationRecord.from_row(row) for row in self.dialect.execute(conn, sql, tuple(params), fetch=True)]

    def query(
        self, *, filters: RecordFilters, pagination: Pagination, sort: Sort
    ) -> tuple[list[CertificationRecord], int]:
        ph = self.dialect.placeholder
        where, params = self._where(filters)
        count_sql = f"SELECT COUNT(1) AS cnt FROM {self._table_name} {where}"
        page_sql = f"SELECT * FROM {self._table_name} {where} {self._order_by(sort)} LIMIT {ph} OFFSET {ph}"

        def _op(conn: Any) -> tuple[list[CertificationRecord], int]:
            counted = self.dialect.execute(conn, count_sql, tuple(params), fetch=True)
            total = int(counted[0]["cnt"]) if counted else 0
            rows = self._rows(conn, page_sql, [*params, pagination.limit, pagination.offset])
            return rows, total

        return self._pool.run_in_tx(_op)

    def fetch(self, *, filters: RecordFilters) -> list[CertificationRecord]:
        where, params = self._where(filters)
        sql = f"SELECT * FROM {self._table_name} {where} ORDER BY employee_id ASC"
        return self._pool.run_in_tx(lambda conn: self._rows(conn, sql, params))

    def get(self, *, employee_id: int) -> CertificationRecord | None:
        ph = self.dialect.placeholder
        sql = f"SELECT * FROM {self._table_name} WHERE employee_id = {ph}"
        rows = self._pool.run_in_tx(lambda conn: self._rows(conn, sql, [int(employee_id)]))
        return rows[0] if rows else None

    def list_for_employee_number(self, *, employee_number: str) -> list[CertificationRecord]:
        ph = self.dialect.placeholder
        sql = f"SELECT * FROM {self._table_name} WHERE employee_number = {ph}"
        rows = self._pool.run_in_tx(lambda conn: self._rows(conn, sql, [employee_number]))
        return sorted(rows, key=_tier_order)

    def insert(self, *, record: CertificationRecord) -> CertificationRecord:
        ph = self.dialect.placeholder
        row = record.to_row()
        columns = list(row)
        sql = f"""
            INSERT INTO {self._table_name} ({', '.join(columns)})
            VALUES ({', '.join(ph for _ in columns)})
            RETURNING *
        """
        rows = self._pool.run_in_tx(lambda conn: self._rows(conn, sql, [row[c] for c in columns]))
        return rows[0]

    def mutate(self, *, employee_id: int, fields: dict[str, Any], tier: str | None = None) -> CertificationRecord:
        columns = validate_mutation_fields(fields)
        ph = self.dialect.placeholder
        staged = CertificationRecord(employee_id=int(employee_id), employee_number="", tier="")
        for column, value in columns.items():
            staged = staged.with_column(column, _coerce(column, value))
        stored = staged.to_row()
        assignments = ", ".join(f"{column} = {ph}" for column in columns)
        params: list[Any] = [stored[column] for column in columns]
        sql = f"UPDATE {self._table_name} SET {assignments} WHERE employee_id = {ph}"
        params.append(int(employee_id))
        if tier is not None:
            sql += f" AND tier = {ph}"
            params.append(tier)
        sql += " RETURNING *"
        rows = self._pool.run_in_tx(lambda conn: self._rows(conn, sql, params))
        if not rows:
            raise not_found(f"record {employee_id} not found")
        return rows[0]

    def distinct_values(self, *, name: str) -> list[str]:
        column = option_column(name)
        sql = f"""
            SELECT DISTINCT {column} AS value
            FROM {self._table_name}
            WHERE {column} IS NOT NULL AND {column} <> ''
            ORDER BY {column} ASC
        """
        rows = self._pool.run_in_tx(lambda conn: self.dialect.execute(conn, sql, (), fetch=True))
        return [str(row["value"]) for row in rows]


class SqliteRecordsRepository(SqlRecordsRepository):
    dialect = SQLITE


class PostgresRecordsRepository(SqlRecordsRepository):
    dialect = POSTGRES
