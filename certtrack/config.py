from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field

from certtrack.tiers import DEFAULT_SLA_DAYS, parse_sla_overrides

_STORE_BACKENDS = frozenset({"memory", "sqlite", "postgres"})


def _split_csv(raw: str) -> tuple[str, ...]:
    return tuple(x.strip() for x in raw.split(",") if x.strip())


def _as_int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{key} must be an integer") from exc


def _as_float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{key} must be a number") from exc


@dataclass(frozen=True)
class Settings:
    store_backend: str = "memory"
    sqlite_path: str = ".local/certtrack.sqlite3"
    postgres_dsn: str = ""
    pool_max_size: int = 10
    pool_timeout_s: float = 15.0
    audit_redis_dsn: str = ""
    audit_key_prefix: str = "certtrack"
    audit_table: str = "audit_log"
    edit_date_permissions: frozenset[str] = frozenset()
    sla_days: dict[str, int | None] = field(default_factory=lambda: dict(DEFAULT_SLA_DAYS))
    analytics_cache_ttl_s: float = 300.0
    cors_allow_origins: tuple[str, ...] = ("http://127.0.0.1:5173", "http://localhost:5173")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        env = os.environ if environ is None else environ
        backend = env.get("CERTTRACK_STORE_BACKEND", "memory").strip().lower() or "memory"
        if backend not in _STORE_BACKENDS:
            raise RuntimeError(f"unsupported store backend: {backend}")
        dsn = env.get("POSTGRES_DSN", "").strip()
        if backend == "postgres" and not dsn:
            raise ValueError("POSTGRES_DSN must be set when CERTTRACK_STORE_BACKEND=postgres")
        pool_max = _as_int(env, "CERTTRACK_POOL_MAX_SIZE", 10)
        if pool_max < 1:
            raise ValueError("CERTTRACK_POOL_MAX_SIZE must be >= 1")
        return cls(
            store_backend=backend,
            sqlite_path=env.get("CERTTRACK_SQLITE_PATH", ".local/certtrack.sqlite3").strip() or ".local/certtrack.sqlite3",
            postgres_dsn=dsn,
            pool_max_size=pool_max,
            pool_timeout_s=_as_float(env, "CERTTRACK_POOL_TIMEOUT_S", 15.0),
            audit_redis_dsn=env.get("CERTTRACK_AUDIT_REDIS_DSN", "").strip(),
            audit_key_prefix=env.get("CERTTRACK_AUDIT_KEY_PREFIX", "certtrack").strip() or "certtrack",
            audit_table=env.get("CERTTRACK_AUDIT_TABLE", "audit_log").strip() or "audit_log",
            edit_date_permissions=frozenset(
                x.lower() for x in _split_csv(env.get("EDIT_COMPLETED_DATE_PERMISSIONS", ""))
            ),
            sla_days=parse_sla_overrides(env.get("CERTTRACK_TIER_SLA_DAYS", "")),
            analytics_cache_ttl_s=_as_float(env, "CERTTRACK_ANALYTICS_CACHE_TTL_S", 300.0),
            cors_allow_origins=_split_csv(
                env.get("CORS_ALLOW_ORIGINS", "http://127.0.0.1:5173,http://localhost:5173")
            ),
        )

    def can_edit_completed_date(self, actor: str | None) -> bool:
        return bool(actor) and actor.strip().lower() in self.edit_date_permissions
