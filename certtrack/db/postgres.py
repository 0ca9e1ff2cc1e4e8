from __future__ import annotations

from typing import Any


def _import_psycopg() -> Any:
    try:
        import psycopg  # type: ignore
        import psycopg.rows  # type: ignore  # noqa: F401
    except ImportError as exc:
        raise RuntimeError("psycopg is required for PostgreSQL backends; install psycopg[binary]") from exc
    return psycopg


def execute(conn: Any, sql: str, params: tuple[Any, ...] = (), *, fetch: bool = False) -> list[dict[str, Any]]:
    with conn.cursor() as cur:
        cur.execute(sql, params)
        rows = (cur.fetchall() or []) if fetch else []
    return [dict(row) for row in rows]
