from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

from certtrack.db import postgres as _postgres
from certtrack.db import sqlite as _sqlite


@dataclass(frozen=True)
class Dialect:
    name: str
    placeholder: str
    serial_pk: str
    date_type: str
    execute: Callable[..., list[dict[str, Any]]]

    def greatest(self, columns: Sequence[str]) -> str:
        """Latest non-null value across ``columns``; NULL when all are NULL."""
        if self.name == "postgres":
            return f"GREATEST({', '.join(columns)})"
        coalesced = ", ".join(f"COALESCE({c}, '')" for c in columns)
        return f"NULLIF(MAX({coalesced}), '')"


SQLITE = Dialect(
    name="sqlite",
    placeholder="?",
    serial_pk="INTEGER PRIMARY KEY AUTOINCREMENT",
    date_type="TEXT",
    execute=_sqlite.execute,
)

POSTGRES = Dialect(
    name="postgres",
    placeholder="%s",
    serial_pk="BIGSERIAL PRIMARY KEY",
    date_type="DATE",
    execute=_postgres.execute,
)
