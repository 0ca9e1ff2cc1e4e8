from __future__ import annotations

from datetime import date

import pytest

from certtrack.errors import ApiError
from certtrack.field_whitelist import (
    RECORD_FIELDS,
    date_filter_columns,
    option_column,
    require_tier_artifact,
    resolve_artifact,
    resolve_artifact_pair,
    resolve_schedule_key,
    validate_mutation_fields,
)
from certtrack.filters import BULK_LIMIT, INTERACTIVE_LIMIT, Pagination, RecordFilters, Sort
from certtrack.field_whitelist import READINESS_SORT_DEFAULT, READINESS_SORTS, RECORD_SORTS


def test_mutation_fields_map_to_storage_columns():
    columns = validate_mutation_fields({"scheduleSession#2": "2026-01-01", "session#2": None, "notes": "x"})
    assert columns == {"schedule_session_2": "2026-01-01", "session_2": None, "notes": "x"}


def test_writable_fields_are_a_closed_set():
    identity = {"employee_id", "employee_number", "name", "tier", "facility", "area", "job_title"}
    assert identity.isdisjoint(RECORD_FIELDS.values())
    assert {"assignedDate", "conferenceCompleted", "awaiting", "awarded", "notes", "advisorId"} <= set(RECORD_FIELDS)
    for field, column in RECORD_FIELDS.items():
        assert validate_mutation_fields({field: None}) == {column: None}


@pytest.mark.parametrize(
    "fields",
    [
        {"notes": "ok", "name; DROP TABLE certification_records": "x"},
        {"employee_number": "E9"},
        {"tier": "Tier5"},
        {"awardedDate ": "2026-01-01"},
    ],
)
def test_unknown_mutation_field_rejects_whole_set(fields):
    with pytest.raises(ApiError) as exc:
        validate_mutation_fields(fields)
    assert exc.value.code == "INVALID_FIELD"
    assert exc.value.http_status == 400


def test_empty_mutation_set_is_invalid():
    with pytest.raises(ApiError) as exc:
        validate_mutation_fields({})
    assert exc.value.code == "INVALID_ARGUMENT"


def test_artifact_pair_must_match():
    assert resolve_artifact_pair("scheduleStandingVideo", "standingVideo").key == "standingVideo"
    assert resolve_artifact_pair("scheduleSession#1", "session#1").key == "session1"
    with pytest.raises(ApiError) as exc:
        resolve_artifact_pair("scheduleStandingVideo", "sleepingVideo")
    assert exc.value.code == "INVALID_FIELD"


def test_artifact_must_belong_to_tier():
    require_tier_artifact("Tier3", resolve_artifact("noHandnoSpeak"))
    with pytest.raises(ApiError):
        require_tier_artifact("Tier2", resolve_artifact("noHandnoSpeak"))
    with pytest.raises(ApiError):
        require_tier_artifact("Tier1", resolve_schedule_key("scheduleStandingVideo"))


def test_date_filter_and_option_names():
    assert date_filter_columns("standingVideo") == ("standing_video", "schedule_standing_video")
    assert date_filter_columns("scheduleStandingVideo") == ("schedule_standing_video",)
    assert option_column("jobTitle") == "job_title"
    with pytest.raises(ApiError):
        date_filter_columns("name")
    with pytest.raises(ApiError):
        option_column("notes")


def test_record_filters_normalise_all_and_blanks():
    filters = RecordFilters.build(tier="All Levels", facility=["North", "", "all"], area=" ", status="Level 2 Completed")
    assert filters.tier is None
    assert filters.facilities == ("North",)
    assert filters.area is None
    assert filters.status == ("completed", "Tier2")


def test_record_filters_reject_bad_input():
    for kwargs in ({"tier": "Tier9"}, {"status": "Tier2 Stalled"}, {"date_field": "completedDate", "date": "13/45/2026"}):
        try:
            RecordFilters.build(**kwargs)
        except ApiError as exc:
            assert exc.code == "INVALID_ARGUMENT"
        else:
            raise AssertionError(f"expected ApiError for {kwargs}")


def test_date_filter_needs_field_and_date():
    assert RecordFilters.build(date_field="completedDate").date_field is None
    filters = RecordFilters.build(date_field="completedDate", date="2026-03-01")
    assert filters.date == date(2026, 3, 1)
    with pytest.raises(ApiError):
        RecordFilters.build(date_field="name", date="2026-03-01")


def test_pagination_limits():
    assert Pagination.normalize(None, None) == Pagination(page=1, limit=50)
    assert Pagination.normalize("0", "-3") == Pagination(page=1, limit=50)
    assert Pagination.normalize(3, 20).offset == 40
    assert Pagination.normalize(1, 500).limit == INTERACTIVE_LIMIT
    assert Pagination.normalize(1, 50000).limit == INTERACTIVE_LIMIT
    assert Pagination.normalize(1, 500, bulk=True).limit == 500
    assert Pagination.normalize(1, 50000, bulk=True).limit == BULK_LIMIT
    assert Pagination(page=2, limit=10).meta(21) == {"page": 2, "limit": 10, "total": 21, "totalPages": 3}


def test_sort_falls_back_to_default():
    sort = Sort.normalize("salary", "DESC", allowed=READINESS_SORTS, default=READINESS_SORT_DEFAULT)
    assert sort.key == "area"
    assert sort.descending is True
    assert sort.columns == ("area", "name")
    assert Sort.normalize("latest", None, allowed=RECORD_SORTS, default="name").descending is False


def test_sort_puts_nulls_last(make_record):
    rows = [
        make_record(1, "E1", name="Zed", area=""),
        make_record(2, "E2", name="amy", area="B"),
        make_record(3, "E3", name="Bob", area="A"),
        make_record(4, "E4", name="Al", area="B"),
    ]
    ordered = Sort(key="area").apply(rows)
    assert [r.employee_id for r in ordered] == [3, 4, 2, 1]
    ordered_desc = Sort(key="area", descending=True).apply(rows)
    assert [r.employee_id for r in ordered_desc] == [2, 4, 3, 1]
