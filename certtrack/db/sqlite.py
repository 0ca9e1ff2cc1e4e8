from __future__ import annotations

import sqlite3
from collections.abc import Callable
from pathlib import Path
from typing import Any


def sqlite_connection_factory(db_path: str | Path, *, timeout_s: float = 15.0) -> Callable[[], sqlite3.Connection]:
    path = Path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)

    def _connect() -> sqlite3.Connection:
        conn = sqlite3.connect(path, timeout=timeout_s, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    return _connect


def execute(conn: sqlite3.Connection, sql: str, params: tuple[Any, ...] = (), *, fetch: bool = False) -> list[dict[str, Any]]:
    cur = conn.execute(sql, params)
    rows = cur.fetchall() if fetch else []
    return [dict(row) for row in rows]
