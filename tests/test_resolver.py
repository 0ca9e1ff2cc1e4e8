from __future__ import annotations

from datetime import date

from certtrack.resolver import BY_EMPLOYEE, BY_OUTCOME, BY_TIER, index_by_tier, latest_activity, resolve


def test_latest_activity_takes_max_present_date(make_record):
    record = make_record(
        1,
        assigned_date="2024-01-01",
        completed_date="2024-03-01",
        completed={"standingVideo": "2024-04-01"},
    )
    assert latest_activity(record) == date(2024, 4, 1)
    assert latest_activity(make_record(2)) == date.min


def test_resolve_is_idempotent(make_record):
    rows = [
        make_record(1, "E1", "Tier1", assigned_date="2024-01-01"),
        make_record(2, "E1", "Tier1", assigned_date="2024-02-01"),
        make_record(3, "E1", "Tier2", assigned_date="2024-03-01"),
        make_record(4, "E2", "Tier1"),
        make_record(5, "E2", "Tier1", conference_completed="2024-01-05", awaiting=True),
    ]
    for key in (BY_EMPLOYEE, BY_TIER, BY_OUTCOME):
        once = resolve(rows, key)
        assert resolve(once, key) == once


def test_ties_resolve_to_higher_row_id(make_record):
    low = make_record(7, "E1", "Tier2", assigned_date="2024-05-01")
    high = make_record(9, "E1", "Tier2", assigned_date="2024-05-01")
    assert resolve([high, low], BY_TIER) == [high]
    assert resolve([low, high], BY_TIER) == [high]


def test_outcome_grouping_keeps_each_approval_state(make_record):
    rejected = make_record(10, "E2", "Tier2", conference_completed="2024-01-01", awaiting=None)
    approved = make_record(11, "E2", "Tier2", conference_completed="2024-03-01", awaiting=False)

    by_outcome = resolve([rejected, approved], BY_OUTCOME)
    assert {r.employee_id for r in by_outcome} == {10, 11}

    by_employee = resolve([rejected, approved], BY_EMPLOYEE)
    assert [r.employee_id for r in by_employee] == [11]


def test_groups_come_back_in_first_seen_order(make_record):
    rows = [
        make_record(1, "E3"),
        make_record(2, "E1"),
        make_record(3, "E2"),
        make_record(4, "E1", assigned_date="2024-01-01"),
    ]
    assert [r.employee_number for r in resolve(rows)] == ["E3", "E1", "E2"]
    assert [r.employee_id for r in resolve(rows)] == [1, 4, 3]


def test_index_by_tier_maps_employee_to_canonical_tier_rows(make_record):
    rows = [
        make_record(1, "E1", "Tier1", awarded=True, awarded_date="2024-01-10"),
        make_record(2, "E1", "Tier2", assigned_date="2024-01-11"),
        make_record(3, "E1", "Tier2", assigned_date="2024-02-11"),
    ]
    index = index_by_tier(rows)
    assert set(index) == {"E1"}
    assert index["E1"]["Tier1"].employee_id == 1
    assert index["E1"]["Tier2"].employee_id == 3


def test_unknown_grouping_is_rejected(make_record):
    try:
        resolve([make_record(1)], "facility")
    except ValueError as exc:
        assert "unknown grouping" in str(exc)
    else:
        raise AssertionError("expected ValueError for an unknown grouping key")
