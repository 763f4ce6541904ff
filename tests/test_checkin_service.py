import pytest
from prometheus_client import REGISTRY

from fitchallenge.models.challenge import Challenge as ChallengeRow, Enrolment as EnrolmentRow
from fitchallenge.scoring.types import ChallengeType, EnrolmentStatus
from fitchallenge.services.checkins import (
    CheckinConflict,
    CheckinRejected,
    CheckinSubmission,
    NotFound,
    set_coach_score,
    submit_checkin,
)
from fitchallenge.services.leaderboard import challenge_leaderboard, enrolment_rollup

from conftest import noon_ts

SCORING = {
    "checkin_points": 10,
    "workout_points": 5,
    "nutrition_points": 10,
    "steps_buckets": [5000, 8000, 10000],
    "progress_points": 5,
    "streak_bonus": 1,
    "team_bonus": 5,
}


def scored_count(status):
    return REGISTRY.get_sample_value("checkins_scored_total", {"status": status}) or 0.0


async def seed(db, timezone="UTC", team_id=None, **anti_cheat):
    challenge = ChallengeRow(
        id="ch-1",
        name="Spring Shred",
        challenge_type=ChallengeType.FITNESS,
        timezone=timezone,
        scoring=SCORING,
        anti_cheat=anti_cheat,
    )
    enrolment = EnrolmentRow(id="en-1", user_id="user-1", challenge_id="ch-1", team_id=team_id)
    db.add_all([challenge, enrolment])
    await db.commit()
    return challenge, enrolment


async def test_first_checkin_scored_and_aggregated(session):
    _, enrolment = await seed(session)
    submission = CheckinSubmission(date="2025-03-01", steps=9000, workouts=1)

    row, result = await submit_checkin(session, "ch-1", "en-1", submission, now=noon_ts("2025-03-01"))

    # 10 base + 5 workout + 4 steps + 1 streak
    assert result.auto_score == 20
    assert row.auto_score == 20
    assert row.total_score == 20
    assert row.submitted_at == noon_ts("2025-03-01")
    assert row.score_result["auto_score"] == 20
    assert enrolment.total_score == 20
    assert enrolment.checkins_completed == 1
    assert enrolment.current_streak == 1
    assert enrolment.last_checkin_date == "2025-03-01"


async def test_consecutive_days_build_streak(session):
    _, enrolment = await seed(session)
    for day in ("2025-03-01", "2025-03-02"):
        await submit_checkin(
            session, "ch-1", "en-1",
            CheckinSubmission(date=day, steps=9000, workouts=1),
            now=noon_ts(day),
        )

    assert enrolment.current_streak == 2
    assert enrolment.longest_streak == 2
    assert enrolment.total_score == 20 + 21


async def test_same_day_resubmission_conflicts(session):
    await seed(session)
    await submit_checkin(session, "ch-1", "en-1", CheckinSubmission(date="2025-03-01"), now=noon_ts("2025-03-01"))

    with pytest.raises(CheckinConflict):
        await submit_checkin(
            session, "ch-1", "en-1",
            CheckinSubmission(date="2025-03-01"),
            now=noon_ts("2025-03-01") + 7200,
        )


async def test_cooldown_block_is_not_persisted(session):
    _, enrolment = await seed(session, cooldown_minutes=60)
    first = noon_ts("2025-03-01")
    await submit_checkin(session, "ch-1", "en-1", CheckinSubmission(date="2025-03-01"), now=first)

    with pytest.raises(CheckinRejected) as excinfo:
        await submit_checkin(
            session, "ch-1", "en-1",
            CheckinSubmission(date="2025-03-02"),
            now=first + 30 * 60,
        )

    assert excinfo.value.result.cheat_detections[0].action.value == "block"
    assert enrolment.checkins_completed == 1
    rollup = await enrolment_rollup(session, "en-1")
    assert sum(w.checkins for w in rollup) == 1


async def test_client_timestamp_cannot_skip_cooldown(session):
    _, enrolment = await seed(session, cooldown_minutes=60)
    first = noon_ts("2025-03-01")
    await submit_checkin(session, "ch-1", "en-1", CheckinSubmission(date="2025-03-01"), now=first)

    # a client-supplied timestamp is dropped; the server clock decides
    submission = CheckinSubmission.model_validate({"date": "2025-03-02", "created_at": first + 86400 * 365})
    with pytest.raises(CheckinRejected):
        await submit_checkin(session, "ch-1", "en-1", submission, now=first + 5 * 60)

    assert enrolment.checkins_completed == 1
    assert enrolment.last_checkin_date == "2025-03-01"


async def test_date_derived_from_cohort_timezone(session):
    await seed(session, timezone="Australia/Perth")
    # 20:00 UTC on the 1st is already the 2nd in Perth
    now = noon_ts("2025-03-01") + 8 * 3600
    row, _ = await submit_checkin(session, "ch-1", "en-1", CheckinSubmission(), now=now)
    assert row.date == "2025-03-02"


async def test_team_bonus_from_teammates(session):
    await seed(session, team_id="team-a")
    session.add_all([
        EnrolmentRow(id=f"en-{i}", user_id=f"user-{i}", challenge_id="ch-1", team_id="team-a", checkins_completed=1)
        for i in (2, 3)
    ])
    await session.commit()

    _, result = await submit_checkin(
        session, "ch-1", "en-1", CheckinSubmission(date="2025-03-01"), now=noon_ts("2025-03-01")
    )
    assert result.team_bonus == 5
    assert result.auto_score == 16


async def test_coach_override_adjusts_totals(session):
    _, enrolment = await seed(session)
    row, result = await submit_checkin(
        session, "ch-1", "en-1", CheckinSubmission(date="2025-03-01"), now=noon_ts("2025-03-01")
    )
    assert result.auto_score == 11

    row, updated = await set_coach_score(session, row.id, 5)
    assert row.total_score == 16
    assert updated.total_score == 16
    assert enrolment.total_score == 16

    row, updated = await set_coach_score(session, row.id, 3)
    assert updated.auto_score == 11
    assert enrolment.total_score == 14


async def test_unknown_enrolment(session):
    await seed(session)
    with pytest.raises(NotFound):
        await submit_checkin(session, "ch-1", "missing", CheckinSubmission(date="2025-03-01"))
    with pytest.raises(NotFound):
        await submit_checkin(session, "missing", "en-1", CheckinSubmission(date="2025-03-01"))


async def test_submissions_recorded_in_metrics(session):
    await seed(session, cooldown_minutes=60)
    first = noon_ts("2025-03-01")
    scored, blocked = scored_count("scored"), scored_count("blocked")

    await submit_checkin(session, "ch-1", "en-1", CheckinSubmission(date="2025-03-01"), now=first)
    with pytest.raises(CheckinRejected):
        await submit_checkin(session, "ch-1", "en-1", CheckinSubmission(date="2025-03-02"), now=first + 60)

    assert scored_count("scored") == scored + 1
    assert scored_count("blocked") == blocked + 1


async def test_leaderboard_ranks_enrolments(session):
    await seed(session)
    session.add_all([
        EnrolmentRow(id="en-2", user_id="user-2", challenge_id="ch-1", total_score=50),
        EnrolmentRow(id="en-3", user_id="user-3", challenge_id="ch-1", total_score=20),
        EnrolmentRow(id="en-4", user_id="user-4", challenge_id="ch-1", total_score=99, status=EnrolmentStatus.WITHDRAWN),
    ])
    await session.commit()
    await submit_checkin(
        session, "ch-1", "en-1",
        CheckinSubmission(date="2025-03-01", steps=9000, workouts=1),
        now=noon_ts("2025-03-01"),
    )

    board = await challenge_leaderboard(session, "ch-1")
    assert [(p.enrolment_id, p.rank) for p in board.participants] == [("en-2", 1), ("en-1", 2), ("en-3", 2)]
    assert board.distribution.total_participants == 3
    assert board.distribution.top_score == 50


async def test_weekly_rollup_from_stored_results(session):
    await seed(session)
    for day in ("2025-03-02", "2025-03-03", "2025-03-04"):
        await submit_checkin(session, "ch-1", "en-1", CheckinSubmission(date=day), now=noon_ts(day))

    weeks = await enrolment_rollup(session, "en-1", "week")
    # Sunday the 2nd closes ISO week 9
    assert [(w.period, w.checkins) for w in weeks] == [("2025-W09", 1), ("2025-W10", 2)]
    assert [w.auto_score for w in weeks] == [11, 12 + 13]
