from __future__ import annotations

from dataclasses import replace
from datetime import date, timedelta

import pytest

from certtrack.progression import (
    ASSIGNED,
    AWARDED,
    CONFERENCE_APPROVED,
    CONFERENCE_AWAITING,
    CONFERENCE_REJECTED,
    UNASSIGNED,
    employee_progress,
    evaluate_readiness,
    has_completion_evidence,
    is_in_progress,
    is_overdue,
    record_status,
)
from certtrack.tiers import DEFAULT_SLA_DAYS, parse_sla_overrides

TODAY = date(2026, 6, 15)
TIER2_DONE = {"standingVideo": "2024-02-05", "sleepingVideo": "2024-02-06", "feedGradVideo": "2024-02-07"}
SESSIONS_DONE = {"session1": "2024-05-01", "session2": "2024-05-02", "session3": "2024-05-03"}


def test_status_priority(make_record):
    assert record_status(make_record(1, awarded=True, conference_completed="2024-01-01", awaiting=True)) == AWARDED
    assert record_status(make_record(2, conference_completed="2024-01-01", awaiting=False)) == CONFERENCE_APPROVED
    assert record_status(make_record(3, conference_completed="2024-01-01", awaiting=True)) == CONFERENCE_AWAITING
    assert record_status(make_record(4, conference_completed="2024-01-01", awaiting=None)) == CONFERENCE_REJECTED
    assert record_status(make_record(5, assigned_date="2024-01-01")) == ASSIGNED
    assert record_status(make_record(6)) == UNASSIGNED


def test_awarded_date_alone_counts_as_awarded(make_record):
    record = make_record(1, awarded_date="2024-01-10")
    assert record.is_awarded is True
    assert is_in_progress(record) is False


def test_in_progress_differs_for_tier1(make_record):
    assert is_in_progress(make_record(1, tier="Tier1", assigned_date="2024-01-01")) is True
    assert is_in_progress(make_record(2, tier="Tier2", assigned_date="2024-01-01")) is False
    assert is_in_progress(make_record(3, tier="Tier2", conference_completed="2024-01-01", awaiting=False)) is True
    assert is_in_progress(make_record(4, tier="Tier2", conference_completed="2024-01-01", awaiting=True)) is False


@pytest.mark.parametrize("tier", ["Tier1", "Tier2", "Tier3"])
def test_overdue_boundary(make_record, tier):
    sla = DEFAULT_SLA_DAYS[tier]
    on_boundary = make_record(1, tier=tier, assigned_date=TODAY - timedelta(days=sla))
    past_boundary = make_record(2, tier=tier, assigned_date=TODAY - timedelta(days=sla + 1))
    assert is_overdue(on_boundary, TODAY, DEFAULT_SLA_DAYS) is False
    assert is_overdue(past_boundary, TODAY, DEFAULT_SLA_DAYS) is True


def test_overdue_ignores_awarded_and_unassigned(make_record):
    old = TODAY - timedelta(days=400)
    assert is_overdue(make_record(1, assigned_date=old, awarded=True), TODAY, DEFAULT_SLA_DAYS) is False
    assert is_overdue(make_record(2), TODAY, DEFAULT_SLA_DAYS) is False


def test_consultant_and_coach_sla_is_configurable(make_record):
    record = make_record(1, tier="Tier4", assigned_date=TODAY - timedelta(days=120))
    assert is_overdue(record, TODAY, DEFAULT_SLA_DAYS) is False
    assert is_overdue(record, TODAY, parse_sla_overrides("Tier4=90")) is True


def test_completion_evidence_requires_every_artifact(make_record):
    assert has_completion_evidence(make_record(1, tier="Tier1", completed_date="2024-01-01")) is True
    assert has_completion_evidence(make_record(2, tier="Tier1")) is False
    partial = make_record(3, tier="Tier2", completed={"standingVideo": "2024-02-05"})
    assert has_completion_evidence(partial) is False
    scheduled_only = make_record(
        4,
        tier="Tier2",
        scheduled={"standingVideo": "2024-02-05", "sleepingVideo": "2024-02-06", "feedGradVideo": "2024-02-07"},
    )
    assert has_completion_evidence(scheduled_only) is False
    assert has_completion_evidence(make_record(5, tier="Tier2", completed=TIER2_DONE)) is True


def test_e1_becomes_ready_for_tier2_award_then_tier3(make_record):
    tier1 = make_record(1, "E1", "Tier1", awarded=True, awarded_date="2024-01-10")
    tier2 = make_record(
        2,
        "E1",
        "Tier2",
        conference_completed="2024-02-01",
        awaiting=False,
        completed=TIER2_DONE,
    )
    ready = evaluate_readiness([tier1, tier2], "Tier2")
    assert [entry.record.employee_id for entry in ready] == [2]
    assert set(ready[0].tiers) == {"Tier1", "Tier2"}

    tier3 = make_record(
        3,
        "E1",
        "Tier3",
        completed={"standingVideo": "2024-04-01", "noHandnoSpeak": "2024-04-02", "sleepingVideo": "2024-04-03"},
    )
    assert evaluate_readiness([tier1, tier2, tier3], "Tier3") == []

    awarded_tier2 = replace(tier2, awarded=True, awarded_date=date(2024, 3, 1))
    ready3 = evaluate_readiness([tier1, awarded_tier2, tier3], "Tier3")
    assert [entry.record.employee_id for entry in ready3] == [3]
    assert evaluate_readiness([tier1, awarded_tier2, tier3], "Tier2") == []


def test_readiness_is_monotonic_in_prior_award(make_record):
    rows = []
    for idx in range(5):
        number = f"E{idx}"
        rows.append(make_record(idx * 10 + 1, number, "Tier1", assigned_date="2024-01-01", awarded=idx % 2 == 0))
        rows.append(make_record(idx * 10 + 2, number, "Tier2", completed=TIER2_DONE))
    ready = {entry.record.employee_number for entry in evaluate_readiness(rows, "Tier2")}
    assert ready == {"E0", "E2", "E4"}


def test_readiness_uses_canonical_prior_tier_row(make_record):
    older_awarded = make_record(1, "E1", "Tier1", awarded=True, awarded_date="2024-01-10")
    newer_reassigned = make_record(2, "E1", "Tier1", assigned_date="2024-06-01")
    tier2 = make_record(3, "E1", "Tier2", completed=TIER2_DONE)
    assert evaluate_readiness([older_awarded, newer_reassigned, tier2], "Tier2") == []


def test_optional_tier3_never_blocks_consultant(make_record):
    base = [
        make_record(1, "E1", "Tier1", awarded=True),
        make_record(2, "E1", "Tier2", awarded=True),
        make_record(3, "E1", "Tier4", completed=SESSIONS_DONE),
    ]
    assert [e.record.employee_id for e in evaluate_readiness(base, "Tier4")] == [3]

    with_open_tier3 = [*base, make_record(4, "E1", "Tier3", assigned_date="2024-04-01")]
    assert [e.record.employee_id for e in evaluate_readiness(with_open_tier3, "Tier4")] == [3]


def test_coach_requires_consultant_award(make_record):
    rows = [
        make_record(1, "E1", "Tier1", awarded=True),
        make_record(2, "E1", "Tier2", awarded=True),
        make_record(3, "E1", "Tier4", completed=SESSIONS_DONE),
        make_record(4, "E1", "Tier5", completed=SESSIONS_DONE),
    ]
    assert evaluate_readiness(rows, "Tier5") == []
    rows[2] = replace(rows[2], awarded=True)
    assert [e.record.employee_id for e in evaluate_readiness(rows, "Tier5")] == [4]


def test_readiness_rejects_unknown_tier(make_record):
    with pytest.raises(ValueError, match="unknown tier"):
        evaluate_readiness([make_record(1)], "Tier9")


def test_employee_progress_summary(make_record):
    tiers = {
        "Tier1": make_record(1, tier="Tier1", awarded=True),
        "Tier2": make_record(2, tier="Tier2", conference_completed="2024-02-01", awaiting=True),
    }
    progress = employee_progress(tiers)
    assert progress["highestAwarded"] == "Tier1"
    assert progress["currentTier"] == "Tier2"
    assert progress["statuses"]["Tier2"] == CONFERENCE_AWAITING
    assert progress["statuses"]["Tier5"] == UNASSIGNED
