from __future__ import annotations

import re
import threading
from typing import Any

from certtrack.db.dialect import POSTGRES, SQLITE, Dialect
from certtrack.db.pool import TxRunner
from certtrack.models import Advisor


def _validate_identifier(name: str) -> str:
    if not re.fullmatch(r"[A-Za-z_][A-Za-z0-9_]*", name):
        raise ValueError(f"invalid SQL identifier: {name}")
    return name


def _from_row(row: dict[str, Any]) -> Advisor:
    return Advisor(
        advisor_id=int(row["advisor_id"]),
        first_name=str(row.get("first_name") or ""),
        last_name=str(row.get("last_name") or ""),
    )


class InMemoryAdvisorsRepository:
    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._items: dict[int, Advisor] = {}

    def list_all(self) -> list[Advisor]:
        with self._lock:
            items = list(self._items.values())
        return sorted(items, key=lambda a: (a.last_name.lower(), a.first_name.lower(), a.advisor_id))

    def get(self, *, advisor_id: int) -> Advisor | None:
        with self._lock:
            return self._items.get(int(advisor_id))

    def add(self, *, first_name: str, last_name: str) -> Advisor:
        with self._lock:
            advisor_id = max(self._items, default=0) + 1
            advisor = Advisor(advisor_id=advisor_id, first_name=first_name, last_name=last_name)
            self._items[advisor_id] = advisor
            return advisor


class SqlAdvisorsRepository:
    dialect: Dialect = SQLITE

    def __init__(self, *, pool: TxRunner, table_name: str = "advisors") -> None:
        self._pool = pool
        self._table_name = _validate_identifier(table_name)

    def create_schema(self) -> None:
        sql = f"""
            CREATE TABLE IF NOT EXISTS {self._table_name} (
                advisor_id {self.dialect.serial_pk},
                first_name TEXT NOT NULL,
                last_name TEXT NOT NULL
            )
        """
        self._pool.run_in_tx(lambda conn: self.dialect.execute(conn, sql))

    def list_all(self) -> list[Advisor]:
        sql = f"""
            SELECT advisor_id, first_name, last_name
            FROM {self._table_name}
            ORDER BY LOWER(last_name) ASC, LOWER(first_name) ASC, advisor_id ASC
        """
        rows = self._pool.run_in_tx(lambda conn: self.dialect.execute(conn, sql, (), fetch=True))
        return [_from_row(row) for row in rows]

    def get(self, *, advisor_id: int) -> Advisor | None:
        ph = self.dialect.placeholder
        sql = f"SELECT advisor_id, first_name, last_name FROM {self._table_name} WHERE advisor_id = {ph}"
        rows = self._pool.run_in_tx(lambda conn: self.dialect.execute(conn, sql, (int(advisor_id),), fetch=True))
        return _from_row(rows[0]) if rows else None

    def add(self, *, first_name: str, last_name: str) -> Advisor:
        ph = self.dialect.placeholder
        sql = f"""
            INSERT INTO {self._table_name} (first_name, last_name)
            VALUES ({ph}, {ph})
            RETURNING advisor_id, first_name, last_name
        """
        rows = self._pool.run_in_tx(lambda conn: self.dialect.execute(conn, sql, (first_name, last_name), fetch=True))
        return _from_row(rows[0])


class SqliteAdvisorsRepository(SqlAdvisorsRepository):
    dialect = SQLITE


class PostgresAdvisorsRepository(SqlAdvisorsRepository):
    dialect = POSTGRES
