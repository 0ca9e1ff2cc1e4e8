from certtrack.repositories.advisors import (
    InMemoryAdvisorsRepository,
    PostgresAdvisorsRepository,
    SqliteAdvisorsRepository,
)
from certtrack.repositories.audit_logs import (
    AuditFilters,
    AuditTrail,
    AuditWriteResult,
    InMemoryAuditTrail,
    PostgresAuditTrail,
    RedisAuditTrail,
    SqliteAuditTrail,
    create_audit_trail,
)
from certtrack.repositories.records import (
    InMemoryRecordsRepository,
    PostgresRecordsRepository,
    SqliteRecordsRepository,
)

__all__ = [
    "InMemoryAdvisorsRepository",
    "PostgresAdvisorsRepository",
    "SqliteAdvisorsRepository",
    "AuditFilters",
    "AuditTrail",
    "AuditWriteResult",
    "InMemoryAuditTrail",
    "PostgresAuditTrail",
    "RedisAuditTrail",
    "SqliteAuditTrail",
    "create_audit_trail",
    "InMemoryRecordsRepository",
    "PostgresRecordsRepository",
    "SqliteRecordsRepository",
]
