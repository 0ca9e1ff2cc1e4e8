"""Transaction runners owned by the process entry point.

Repositories only see ``run_in_tx(fn)``. PostgreSQL borrows connections from
a ``psycopg_pool.ConnectionPool``; SQLite opens one connection per
transaction the way the queue backend does.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Callable
from pathlib import Path
from typing import Any, Protocol

from certtrack.db.postgres import _import_psycopg
from certtrack.db.sqlite import sqlite_connection_factory
from certtrack.errors import ApiError, storage_failure, storage_timeout

logger = logging.getLogger(__name__)


def _import_psycopg_pool() -> Any:
    try:
        import psycopg_pool  # type: ignore
    except ImportError as exc:
        raise RuntimeError("psycopg_pool is required for PostgreSQL backends; install psycopg-pool") from exc
    return psycopg_pool


class TxRunner(Protocol):
    @property
    def closed(self) -> bool: ...

    def open(self) -> TxRunner: ...

    def close(self) -> None: ...

    def run_in_tx(self, fn: Callable[[Any], Any]) -> Any: ...


def _store_failure(exc: Exception) -> ApiError:
    logger.warning("store_operation_failed error=%s", type(exc).__name__)
    return storage_failure(f"store operation failed: {type(exc).__name__}")


class PostgresPool:
    """At most ``max_size`` connections in use; waiters give up after ``timeout_s``."""

    def __init__(self, *, dsn: str, max_size: int = 10, timeout_s: float = 15.0) -> None:
        if not dsn.strip():
            raise ValueError("POSTGRES_DSN must not be empty")
        if max_size < 1:
            raise ValueError("max_size must be >= 1")
        psycopg_pool = _import_psycopg_pool()
        psycopg = _import_psycopg()
        self._timeout = timeout_s
        self._pool_timeout_error = psycopg_pool.PoolTimeout
        self._pool = psycopg_pool.ConnectionPool(
            conninfo=dsn.strip(),
            min_size=1,
            max_size=max_size,
            timeout=timeout_s,
            kwargs={"row_factory": psycopg.rows.dict_row},
            open=False,
        )

    @property
    def closed(self) -> bool:
        return self._pool.closed

    def open(self) -> PostgresPool:
        self._pool.open()
        return self

    def close(self) -> None:
        self._pool.close()

    def run_in_tx(self, fn: Callable[[Any], Any]) -> Any:
        """Run ``fn(conn)``; the pool commits on success and rolls back on error."""
        try:
            with self._pool.connection() as conn:
                return fn(conn)
        except ApiError:
            raise
        except self._pool_timeout_error as exc:
            logger.warning("pool_acquire_timeout timeout_s=%s", self._timeout)
            raise storage_timeout(f"no connection available within {self._timeout:g}s") from exc
        except Exception as exc:
            raise _store_failure(exc) from exc


class SqliteTxRunner:
    """One connection per transaction; a locked database surfaces as ``STORAGE_TIMEOUT``."""

    def __init__(self, db_path: str | Path, *, timeout_s: float = 15.0) -> None:
        self._timeout = timeout_s
        self._connect = sqlite_connection_factory(db_path, timeout_s=timeout_s)
        self._closed = True

    @property
    def closed(self) -> bool:
        return self._closed

    def open(self) -> SqliteTxRunner:
        self._closed = False
        return self

    def close(self) -> None:
        self._closed = True

    def run_in_tx(self, fn: Callable[[Any], Any]) -> Any:
        if self._closed:
            raise storage_failure("record store is closed")
        try:
            conn = self._connect()
        except sqlite3.Error as exc:
            logger.warning("store_connect_failed error=%s", type(exc).__name__)
            raise storage_failure("could not connect to the record store") from exc
        try:
            result = fn(conn)
            conn.commit()
            return result
        except ApiError:
            conn.rollback()
            raise
        except sqlite3.OperationalError as exc:
            conn.rollback()
            if "locked" in str(exc).lower():
                logger.warning("store_locked timeout_s=%s", self._timeout)
                raise storage_timeout(f"record store stayed locked for {self._timeout:g}s") from exc
            raise _store_failure(exc) from exc
        except Exception as exc:
            conn.rollback()
            raise _store_failure(exc) from exc
        finally:
            conn.close()
