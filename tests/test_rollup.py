import pytest

from fitchallenge.scoring.rollup import period_key, rollup
from fitchallenge.scoring.types import ScoreBreakdown, ScoringResult, StreakInfo


def scored(auto, coach=0, steps=0):
    breakdown = ScoreBreakdown(checkin=10, steps=steps, streak=auto - 10 - steps)
    return ScoringResult(
        auto_score=auto,
        coach_score=coach,
        total_score=auto + coach,
        breakdown=breakdown,
        streak=StreakInfo(current_streak=1, longest_streak=1),
    )


def test_period_keys():
    assert period_key("2025-03-03", "week") == "2025-W10"
    assert period_key("2025-03-10", "week") == "2025-W11"
    assert period_key("2025-03-10", "month") == "2025-03"
    # ISO week belongs to the following year
    assert period_key("2024-12-30", "week") == "2025-W01"


def test_weekly_rollup_sums_breakdown():
    entries = [
        ("2025-03-10", scored(12)),
        ("2025-03-03", scored(15, coach=2, steps=4)),
        ("2025-03-04", scored(11)),
    ]
    weeks = rollup(entries, "week")

    assert [w.period for w in weeks] == ["2025-W10", "2025-W11"]
    first = weeks[0]
    assert first.checkins == 2
    assert first.auto_score == 26
    assert first.total_score == 28
    assert first.checkin == 20
    assert first.steps == 4
    assert weeks[1].checkins == 1


def test_monthly_rollup():
    entries = [("2025-03-03", scored(15)), ("2025-03-31", scored(11)), ("2025-04-01", scored(10))]
    months = rollup(entries, "month")
    assert [(m.period, m.auto_score) for m in months] == [("2025-03", 26), ("2025-04", 10)]


def test_rollup_does_not_mutate_accumulators():
    entries = [("2025-03-03", scored(15)), ("2025-03-04", scored(11))]
    assert rollup(entries) == rollup(entries)


def test_unreadable_dates_skipped():
    assert rollup([("someday", scored(10))]) == []


def test_unknown_period_rejected():
    with pytest.raises(ValueError):
        rollup([], "fortnight")
