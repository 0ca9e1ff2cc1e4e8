import pathlib
import sys
from datetime import UTC, date, datetime

import pytest
from fastapi.testclient import TestClient

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from certtrack.config import Settings
from certtrack.main import create_app
from certtrack.models import CertificationRecord
from certtrack.repositories import InMemoryAdvisorsRepository, InMemoryAuditTrail, InMemoryRecordsRepository
from certtrack.service import CertificationService

NOW = datetime(2026, 6, 15, 12, 0, tzinfo=UTC)
EDITOR = "editor@example.com"


def build_record(employee_id: int = 0, employee_number: str = "E1", tier: str = "Tier1", **values) -> CertificationRecord:
    values.setdefault("name", f"Employee {employee_number}")
    values.setdefault("facility", "North")
    values.setdefault("area", "Area 1")
    values.setdefault("job_title", "Nurse")
    for key in ("assigned_date", "completed_date", "conference_completed", "awarded_date"):
        if isinstance(values.get(key), str):
            values[key] = date.fromisoformat(values[key])
    for key in ("scheduled", "completed"):
        if key in values:
            values[key] = {k: date.fromisoformat(v) if isinstance(v, str) else v for k, v in values[key].items()}
    return CertificationRecord(employee_id=employee_id, employee_number=employee_number, tier=tier, **values)


@pytest.fixture
def make_record():
    return build_record


@pytest.fixture
def settings() -> Settings:
    return Settings(edit_date_permissions=frozenset({EDITOR}))


@pytest.fixture
def records_repo() -> InMemoryRecordsRepository:
    return InMemoryRecordsRepository()


@pytest.fixture
def service(records_repo: InMemoryRecordsRepository, settings: Settings) -> CertificationService:
    return CertificationService(
        records=records_repo,
        advisors=InMemoryAdvisorsRepository(),
        audit=InMemoryAuditTrail(),
        settings=settings,
        clock=lambda: NOW,
    )


@pytest.fixture
def client(service: CertificationService) -> TestClient:
    return TestClient(create_app(service))
