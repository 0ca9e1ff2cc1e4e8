from __future__ import annotations

from datetime import date, timedelta

import pytest

from certtrack.aggregation import (
    DateWindow,
    activity_feed,
    analytics_overview,
    area_performance,
    certification_progress,
    completions_aggregates,
    dashboard_summary,
    display_name,
    employee_progress_matrix,
    facility_performance,
    group_rankings,
    monthly_trends,
    performance_label,
    recent_completions,
    summary_metrics,
    top_and_bottom,
)
from certtrack.tiers import DEFAULT_SLA_DAYS

TODAY = date(2026, 6, 15)


@pytest.fixture
def snapshot(make_record):
    return [
        make_record(1, "E1", "Tier1", assigned_date="2026-01-01", awarded=True, awarded_date="2026-02-01"),
        make_record(2, "E1", "Tier2", conference_completed="2026-03-01", awaiting=True),
        make_record(3, "E1", "Tier2", conference_completed="2026-02-15", awaiting=None),
        make_record(4, "E2", "Tier1", assigned_date="2026-05-01", facility="South"),
        make_record(5, "E3", "Tier1", facility="South"),
        make_record(6, "E4", "Tier1", assigned_date="2026-01-05", awarded=True, awarded_date="2026-02-10"),
    ]


def _facility_rows(make_record, facility: str, completed: int, in_progress: int, start_id: int):
    rows = []
    for idx in range(completed):
        rows.append(make_record(start_id + idx, f"{facility}-c{idx}", facility=facility, awarded=True))
    for idx in range(in_progress):
        rows.append(
            make_record(start_id + completed + idx, f"{facility}-p{idx}", facility=facility, assigned_date="2026-05-01")
        )
    return rows


def test_facility_ranking_weights_completion_over_volume(make_record):
    rows = _facility_rows(make_record, "North", 10, 5, 1) + _facility_rows(make_record, "South", 2, 8, 100)
    ranked = group_rankings(rows, lambda r: r.facility)

    assert [g["fullName"] for g in ranked] == ["North", "South"]
    north, south = ranked
    assert north["combinedScore"] == pytest.approx(0.8 * (10 / 15 * 100) + 0.2 * (5 / 8 * 100))
    assert north["combinedScore"] == pytest.approx(65.83, abs=0.01)
    assert south["combinedScore"] == pytest.approx(36.0)
    assert north["completedRatio"] == 67
    assert south["inProgressScore"] == 100
    assert north["completedCount"] == 10
    assert south["inProgressCount"] == 8


def test_ranking_normalizes_names_and_skips_blanks(make_record):
    rows = [
        make_record(1, "A", facility="  north   campus "),
        make_record(2, "B", facility="North Campus"),
        make_record(3, "C", facility=""),
        make_record(4, "D", facility="saint mary's regional medical center", awarded=True),
        make_record(5, "E", facility="north campus", conference_completed="2026-01-01", awaiting=True),
    ]
    ranked = {g["fullName"]: g for g in group_rankings(rows, lambda r: r.facility)}
    assert set(ranked) == {"North Campus", "Saint Mary's Regional Medical Center"}
    assert ranked["North Campus"]["totalCount"] == 3
    assert ranked["North Campus"]["awaitingCount"] == 1
    long_name = ranked["Saint Mary's Regional Medical Center"]["name"]
    assert long_name.endswith("...")
    assert len(long_name) == 28


def test_display_name_title_cases_each_word():
    assert display_name("saint mary's east") == "Saint Mary's East"


def test_top_and_bottom_slices():
    ranked = [{"fullName": str(idx)} for idx in range(7)]
    out = top_and_bottom(ranked)
    assert [g["fullName"] for g in out["top"]] == ["0", "1", "2", "3", "4"]
    assert [g["fullName"] for g in out["bottom"]] == ["6", "5", "4", "3", "2"]


def test_dashboard_summary_counts(snapshot):
    summary = dashboard_summary(snapshot, today=TODAY, sla_days=DEFAULT_SLA_DAYS)
    stats = summary["stats"]
    tier1 = stats["counts"]["Tier1"]
    tier2 = stats["counts"]["Tier2"]

    assert stats["total"] == 4
    assert tier1 == {
        "completed": 2,
        "inProgress": 1,
        "pending": 1,
        "overdue": 1,
        "total": 4,
        "completionPercent": 50,
    }
    assert tier2["total"] == 2
    assert tier2["completed"] == 0
    assert tier2["pending"] == 1
    assert stats["awaitingApprovals"] == 1
    assert stats["rejectedApprovals"] == 1
    assert stats["completion"]["Tier1"] == 50
    assert summary["basis"]["awaitingApprovals"] == "all rows"
    assert summary["facilityRankings"]["top"][0]["fullName"] == "North"


def test_pending_next_tier_is_keyed_by_employee_number(make_record):
    rows = [
        make_record(1, "E1", "Tier1", awarded=True),
        make_record(2, "E1", "Tier2", assigned_date="2026-06-01"),
        make_record(3, "E2", "Tier1", awarded=True),
    ]
    counts = dashboard_summary(rows, today=TODAY, sla_days=DEFAULT_SLA_DAYS)["stats"]["counts"]
    assert counts["Tier2"]["pending"] == 1


def test_activity_feed_caps_each_type(make_record):
    rows = [
        make_record(idx, f"E{idx}", "Tier1", completed_date=(TODAY - timedelta(days=idx)).isoformat())
        for idx in range(1, 8)
    ]
    feed = activity_feed(rows)
    completed = [a for a in feed["recentActivity"] if a["type"] == "completed"]
    assert len(completed) == 5
    assert completed[0]["employeeNumber"] == "E1"
    assert feed["activityCounts"]["completed"] == 7


def test_activity_feed_describes_artifacts_and_awards(make_record):
    record = make_record(
        1,
        "E1",
        "Tier2",
        scheduled={"standingVideo": "2026-03-01", "sleepingVideo": "2026-03-02"},
        completed={"standingVideo": "2026-03-05"},
        conference_completed="2026-04-01",
        awaiting=False,
        awarded=True,
    )
    feed = activity_feed([record])
    assert feed["activityCounts"] == {"scheduled": 1, "completed": 1, "conference": 1, "awarded": 1}
    awarded = [a for a in feed["recentActivity"] if a["type"] == "awarded"][0]
    assert awarded["date"] == "2026-04-01"


def test_monthly_trends_cover_last_six_months(snapshot):
    trends = monthly_trends(snapshot, today=TODAY)
    assert [t["month"] for t in trends] == ["Jan", "Feb", "Mar", "Apr", "May", "Jun"]
    by_month = {t["month"]: t for t in trends}
    assert by_month["Feb"]["completed"] == 2
    assert by_month["May"]["inProgress"] == 1
    assert by_month["Jan"]["inProgress"] == 0


def test_monthly_trends_cross_year_boundary():
    trends = monthly_trends([], today=date(2026, 2, 10))
    assert [(t["month"], t["year"]) for t in trends] == [
        ("Sep", 2025),
        ("Oct", 2025),
        ("Nov", 2025),
        ("Dec", 2025),
        ("Jan", 2026),
        ("Feb", 2026),
    ]


def test_summary_metrics(make_record):
    rows = [
        make_record(1, "E1", assigned_date="2026-01-01", awarded=True, awarded_date="2026-06-10"),
        make_record(2, "E2", assigned_date="2026-06-01"),
        make_record(3, "E3", assigned_date="2026-04-01"),
    ]
    metrics = summary_metrics(rows, today=TODAY, sla_days=DEFAULT_SLA_DAYS)
    assert metrics == {
        "activeTrainingSessions": 2,
        "overdueTraining": 1,
        "recentCompletions": 1,
        "trainingEfficiency": 33.3,
    }
    assert summary_metrics([], today=TODAY, sla_days=DEFAULT_SLA_DAYS)["trainingEfficiency"] == 0.0


def test_analytics_overview_window_applies_to_award_date(snapshot):
    overview = analytics_overview(snapshot)
    assert overview["totalEmployees"] == 6
    assert overview["completedCertifications"] == 2
    assert overview["notStarted"] == 3
    assert overview["completedByTier"]["Tier1"] == 2
    assert overview["averageCompletionTime"] == pytest.approx((31 + 36) / 2, abs=0.1)

    narrowed = analytics_overview(snapshot, window=DateWindow(start=date(2026, 2, 5), end=date(2026, 2, 28)))
    assert narrowed["completedCertifications"] == 1
    assert narrowed["averageCompletionTime"] == 36


def test_facility_and_area_performance(snapshot):
    facilities = facility_performance(snapshot)
    assert [f["facility"] for f in facilities] == ["North", "South"]
    north = facilities[0]
    assert north["total"] == 4
    assert north["completed"] == 2
    assert north["completionRate"] == pytest.approx(50.0)
    assert facilities[1]["completionRate"] == 0
    areas = area_performance(snapshot)
    assert areas[0]["area"] == "Area 1"
    assert areas[0]["total"] == 6


def test_certification_progress_targets(snapshot):
    progress = {p["tier"]: p for p in certification_progress(snapshot)}
    assert set(progress) == {"Tier1", "Tier2"}
    assert progress["Tier1"]["target"] == round(6 * 0.8)
    assert progress["Tier2"]["target"] == round(6 * 0.6)
    assert progress["Tier1"]["completed"] == 2
    assert progress["Tier1"]["efficiency"] == pytest.approx(2 / 6 * 100)


def test_recent_completions_use_approved_conferences(make_record):
    rows = [
        make_record(1, "E1", "Tier2", assigned_date="2026-01-01", conference_completed="2026-03-01", awaiting=False),
        make_record(2, "E2", "Tier2", assigned_date="2025-06-01", conference_completed="2026-04-01", awaiting=False),
        make_record(3, "E3", "Tier2", assigned_date="2026-01-01", conference_completed="2026-05-01", awaiting=True),
    ]
    recent = recent_completions(rows)
    assert [r["employeeNumber"] for r in recent] == ["E2", "E1"]
    assert recent[1]["timeToComplete"] == 59
    assert recent[1]["performance"] == "Excellent"
    assert recent[0]["performance"] == "Average"


def test_performance_label_thresholds():
    assert performance_label(119) == "Excellent"
    assert performance_label(120) == "Good"
    assert performance_label(179) == "Good"
    assert performance_label(180) == "Average"


def test_completions_aggregates(snapshot):
    out = completions_aggregates(snapshot)
    assert out["totals"]["total"] == 4
    assert out["totals"]["completed"] == 2
    assert out["totals"]["awaiting"] == 1
    assert out["totals"]["rejected"] == 1
    assert {t["tier"] for t in out["byTier"]} == {"Tier1", "Tier2"}


def test_employee_progress_matrix(snapshot):
    rows = {r["employeeNumber"]: r for r in employee_progress_matrix(snapshot)}
    assert set(rows) == {"E1", "E2", "E3", "E4"}
    assert rows["E1"]["highestAwarded"] == "Tier1"
    assert rows["E1"]["currentTier"] == "Tier2"
    assert rows["E1"]["tiers"]["Tier2"] == 2
