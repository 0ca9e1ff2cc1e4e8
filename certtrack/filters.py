from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date
from typing import Any

from certtrack.errors import invalid_argument
from certtrack.field_whitelist import SORT_COLUMNS, date_filter_columns
from certtrack.models import CertificationRecord, parse_date
from certtrack.progression import matches_status
from certtrack.resolver import latest_activity
from certtrack.tiers import normalize_tier, parse_status

DEFAULT_PAGE_SIZE = 50
INTERACTIVE_LIMIT = 100
BULK_LIMIT = 10000


def _clean(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    if not text or text.lower() == "all":
        return None
    return text


@dataclass(frozen=True)
class RecordFilters:
    tier: str | None = None
    facilities: tuple[str, ...] = ()
    area: str | None = None
    search: str | None = None
    job_title: str | None = None
    date_field: str | None = None
    date: date | None = None
    status: tuple[str, str | None] | None = None

    @classmethod
    def build(
        cls,
        *,
        tier: str | None = None,
        facility: str | Sequence[str] | None = None,
        area: str | None = None,
        search: str | None = None,
        job_title: str | None = None,
        date_field: str | None = None,
        date: Any = None,
        status: str | None = None,
    ) -> RecordFilters:
        """Normalise caller filters; ``"all"`` and blanks mean absent."""
        try:
            tier_name = normalize_tier(tier)
            status_value = parse_status(status) if _clean(status) else None
            on_date = parse_date(date)
        except ValueError as exc:
            raise invalid_argument(str(exc)) from exc
        if isinstance(facility, str):
            facilities = tuple(x for x in [_clean(facility)] if x)
        else:
            facilities = tuple(x for x in (_clean(f) for f in facility or ()) if x)
        field_name = _clean(date_field)
        if field_name and on_date is not None:
            date_filter_columns(field_name)
        else:
            field_name, on_date = None, None
        return cls(
            tier=tier_name,
            facilities=facilities,
            area=_clean(area),
            search=_clean(search),
            job_title=_clean(job_title),
            date_field=field_name,
            date=on_date,
            status=status_value,
        )

    def without_tier(self) -> RecordFilters:
        return RecordFilters(
            facilities=self.facilities,
            area=self.area,
            search=self.search,
            job_title=self.job_title,
            date_field=self.date_field,
            date=self.date,
            status=self.status,
        )

    def matches(self, record: CertificationRecord) -> bool:
        if self.tier and record.tier != self.tier:
            return False
        if self.facilities and record.facility not in self.facilities:
            return False
        if self.area and record.area != self.area:
            return False
        if self.job_title and record.job_title != self.job_title:
            return False
        if self.search:
            needle = self.search.lower()
            if needle not in record.name.lower() and needle not in record.employee_number.lower():
                return False
        if self.date_field and self.date is not None:
            columns = date_filter_columns(self.date_field)
            if not any(record.get_column(column) == self.date for column in columns):
                return False
        if self.status is not None:
            kind, tier = self.status
            if not matches_status(record, kind, tier):
                return False
        return True


@dataclass(frozen=True)
class Pagination:
    page: int = 1
    limit: int = DEFAULT_PAGE_SIZE

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    @classmethod
    def normalize(
        cls,
        page: Any = None,
        limit: Any = None,
        *,
        default_limit: int = DEFAULT_PAGE_SIZE,
        bulk: bool = False,
    ) -> Pagination:
        """Interactive views cap ``limit`` at 100; bulk dashboard views allow up to 10,000."""
        page_num = _as_int(page, 1)
        size = _as_int(limit, default_limit)
        if page_num < 1:
            page_num = 1
        if size < 1:
            size = default_limit
        size = min(size, BULK_LIMIT if bulk else INTERACTIVE_LIMIT)
        return cls(page=page_num, limit=size)

    def slice(self, items: Sequence[Any]) -> list[Any]:
        return list(items[self.offset : self.offset + self.limit])

    def meta(self, total: int) -> dict[str, int]:
        pages = (total + self.limit - 1) // self.limit if total else 0
        return {"page": self.page, "limit": self.limit, "total": total, "totalPages": pages}


def _as_int(value: Any, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class Sort:
    key: str
    descending: bool = False

    @classmethod
    def normalize(cls, sort_by: str | None, sort_order: str | None, *, allowed: Iterable[str], default: str) -> Sort:
        """Unknown keys fall back to ``default``; order is ``asc`` unless ``desc`` is asked for."""
        key = sort_by if sort_by in set(allowed) else default
        descending = str(sort_order or "").strip().lower() == "desc"
        return cls(key=key, descending=descending)

    @property
    def columns(self) -> tuple[str, ...]:
        return SORT_COLUMNS[self.key]

    def apply(self, records: Iterable[CertificationRecord]) -> list[CertificationRecord]:
        """In-process ordering that mirrors the SQL ORDER BY; nulls always last."""
        rows = sorted(records, key=lambda r: r.employee_id, reverse=self.descending)
        for column in reversed(self.columns):
            present = [r for r in rows if _sort_value(r, column) is not None]
            missing = [r for r in rows if _sort_value(r, column) is None]
            present.sort(key=lambda r: _sort_value(r, column), reverse=self.descending)
            rows = present + missing
        return rows


def _sort_value(record: CertificationRecord, column: str) -> Any:
    if column == "latest_activity":
        value = latest_activity(record)
        return None if value == date.min else value
    value = record.get_column(column) if column != "employee_id" else record.employee_id
    if isinstance(value, str):
        return value.lower() if value else None
    return value
