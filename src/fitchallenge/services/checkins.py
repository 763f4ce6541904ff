# src/fitchallenge/services/checkins.py

"""Check-in submission flow.

Loads a challenge, the participant's enrolment, their prior check-ins and
teammates, runs the scoring engine and persists the outcome. Submissions that
the engine blocks are rejected before anything is written.
"""

import time
from typing import List, Optional, Tuple

from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..metrics import checkins_scored_total, cheat_detections_total, scoring_duration
from ..models.challenge import Challenge as ChallengeRow, Checkin as CheckinRow, Enrolment as EnrolmentRow
from ..scoring.calculator import DEFAULT_POLICY
from ..scoring.engine import ScoringInput, apply_coach_score, compute_score, is_blocked
from ..scoring.types import (
    AntiCheatConfig,
    Challenge,
    Checkin,
    DetectionAction,
    Enrolment,
    Measurements,
    ScoringConfig,
    ScoringPolicy,
    ScoringResult,
)
from ..utils.dates import format_day, local_day, parse_day, utc_now_ts
from ..utils.logging import setup_logger

logger = setup_logger(__name__, level=settings.log_level)


class ScoringServiceError(Exception):
    """Base error for the check-in service."""


class NotFound(ScoringServiceError):
    pass


class CheckinConflict(ScoringServiceError):
    """A check-in already exists for this enrolment and date."""


class CheckinRejected(ScoringServiceError):
    """The engine returned a blocking anti-cheat detection."""

    def __init__(self, result: ScoringResult):
        self.result = result
        reasons = "; ".join(
            d.details for d in result.cheat_detections if d.action == DetectionAction.BLOCK
        )
        super().__init__(f"Check-in rejected: {reasons}")


class CheckinSubmission(BaseModel):
    date: Optional[str] = None
    steps: Optional[int] = Field(default=None, ge=0, le=100000)
    workouts: Optional[int] = Field(default=None, ge=0, le=10)
    nutrition_score: Optional[float] = Field(default=None, ge=0, le=10)
    weight_kg: Optional[float] = Field(default=None, ge=20, le=300)
    measurements: Optional[Measurements] = None
    sleep_hours: Optional[float] = Field(default=None, ge=0, le=24)
    water_liters: Optional[float] = Field(default=None, ge=0)
    meditation_minutes: Optional[int] = Field(default=None, ge=0)
    notes: Optional[str] = Field(default=None, max_length=500)
    photos: List[str] = Field(default_factory=list, max_length=4)


def to_challenge(row: ChallengeRow) -> Challenge:
    return Challenge(
        id=row.id,
        name=row.name,
        challenge_type=row.challenge_type,
        timezone=row.timezone,
        scoring=ScoringConfig.model_validate(row.scoring),
        anti_cheat=AntiCheatConfig.model_validate(row.anti_cheat or {}),
    )


def to_enrolment(row: EnrolmentRow) -> Enrolment:
    return Enrolment.model_validate(row)


def to_checkin(row: CheckinRow) -> Checkin:
    return Checkin(
        id=row.id,
        enrolment_id=row.enrolment_id,
        challenge_id=row.challenge_id,
        user_id=row.user_id,
        date=row.date,
        created_at=row.submitted_at,
        steps=row.steps,
        workouts=row.workouts,
        nutrition_score=row.nutrition_score,
        weight_kg=row.weight_kg,
        measurements=Measurements.model_validate(row.measurements) if row.measurements else None,
        sleep_hours=row.sleep_hours,
        water_liters=row.water_liters,
        meditation_minutes=row.meditation_minutes,
        notes=row.notes,
        photos=row.photos or [],
        coach_score=row.coach_score,
    )


def stored_result(row: CheckinRow) -> Optional[ScoringResult]:
    if not row.score_result:
        return None
    result = ScoringResult.model_validate(row.score_result)
    return apply_coach_score(result, row.coach_score or 0)


async def _load_enrolment(db: AsyncSession, challenge_id: str, enrolment_id: str) -> Tuple[ChallengeRow, EnrolmentRow]:
    challenge = await db.get(ChallengeRow, challenge_id)
    if challenge is None:
        raise NotFound(f"Challenge {challenge_id} not found")
    enrolment = await db.get(EnrolmentRow, enrolment_id)
    if enrolment is None or enrolment.challenge_id != challenge_id:
        raise NotFound(f"Enrolment {enrolment_id} not found in challenge {challenge_id}")
    return challenge, enrolment


async def prior_checkins(db: AsyncSession, enrolment_id: str) -> List[CheckinRow]:
    stmt = (
        select(CheckinRow)
        .where(CheckinRow.enrolment_id == enrolment_id)
        .order_by(CheckinRow.date.desc())
    )
    return list((await db.execute(stmt)).scalars().all())


async def team_members(db: AsyncSession, enrolment: EnrolmentRow) -> Optional[List[EnrolmentRow]]:
    if not enrolment.team_id:
        return None
    stmt = select(EnrolmentRow).where(
        EnrolmentRow.challenge_id == enrolment.challenge_id,
        EnrolmentRow.team_id == enrolment.team_id,
        EnrolmentRow.id != enrolment.id,
    )
    return list((await db.execute(stmt)).scalars().all())


def record_scoring(result: ScoringResult, duration: float) -> None:
    status = "blocked" if is_blocked(result) else "scored"
    checkins_scored_total.labels(status=status).inc()
    for detection in result.cheat_detections:
        cheat_detections_total.labels(type=detection.type.value, action=detection.action.value).inc()
    scoring_duration.observe(duration)


async def submit_checkin(
    db: AsyncSession,
    challenge_id: str,
    enrolment_id: str,
    submission: CheckinSubmission,
    now: Optional[float] = None,
    policy: ScoringPolicy = DEFAULT_POLICY,
) -> Tuple[CheckinRow, ScoringResult]:
    """Score and store a check-in, updating the enrolment's aggregates.

    Raises ``CheckinConflict`` on a second check-in for the same date and
    ``CheckinRejected`` when the engine blocks the submission.
    """
    challenge_row, enrolment_row = await _load_enrolment(db, challenge_id, enrolment_id)
    challenge = to_challenge(challenge_row)

    created_at = now if now is not None else utc_now_ts()
    day = parse_day(submission.date)
    if day is None:
        day = local_day(created_at, challenge.timezone, settings.default_timezone)
    date = format_day(day)

    history = await prior_checkins(db, enrolment_id)
    if any(r.date == date for r in history):
        raise CheckinConflict(f"A check-in for {date} already exists")

    teammates = await team_members(db, enrolment_row)

    checkin = Checkin(
        enrolment_id=enrolment_id,
        challenge_id=challenge_id,
        user_id=enrolment_row.user_id,
        date=date,
        created_at=created_at,
        **submission.model_dump(exclude={"date", "measurements"}),
        measurements=submission.measurements,
    )

    start_time = time.time()
    result = compute_score(
        ScoringInput(
            checkin=checkin,
            challenge=challenge,
            enrolment=to_enrolment(enrolment_row),
            prior_checkins=[to_checkin(r) for r in history],
            team_members=[to_enrolment(m) for m in teammates] if teammates is not None else None,
        ),
        policy,
    )
    record_scoring(result, time.time() - start_time)

    if is_blocked(result):
        logger.warning(f"Rejected check-in for enrolment {enrolment_id} on {date}")
        raise CheckinRejected(result)

    row = CheckinRow(
        challenge_id=challenge_id,
        enrolment_id=enrolment_id,
        user_id=enrolment_row.user_id,
        date=date,
        submitted_at=created_at,
        steps=checkin.steps,
        workouts=checkin.workouts,
        nutrition_score=checkin.nutrition_score,
        weight_kg=checkin.weight_kg,
        measurements=checkin.measurements.model_dump(exclude_none=True) if checkin.measurements else None,
        sleep_hours=checkin.sleep_hours,
        water_liters=checkin.water_liters,
        meditation_minutes=checkin.meditation_minutes,
        notes=checkin.notes,
        photos=list(checkin.photos),
        auto_score=result.auto_score,
        total_score=result.total_score,
        score_result=result.model_dump(mode="json"),
        needs_review=bool(result.cheat_detections),
    )
    db.add(row)

    enrolment_row.total_score = (enrolment_row.total_score or 0) + result.total_score
    enrolment_row.checkins_completed = (enrolment_row.checkins_completed or 0) + 1
    enrolment_row.longest_streak = max(enrolment_row.longest_streak or 0, result.streak.longest_streak)
    if not enrolment_row.last_checkin_date or date >= enrolment_row.last_checkin_date:
        enrolment_row.current_streak = result.streak.current_streak
        enrolment_row.last_checkin_date = date

    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        logger.warning(f"Concurrent check-in for enrolment {enrolment_id} on {date}: {e}")
        raise CheckinConflict(f"A check-in for {date} already exists")

    logger.info(f"Scored check-in {row.id} for enrolment {enrolment_id}: auto={result.auto_score}")
    return row, result


async def set_coach_score(db: AsyncSession, checkin_id: str, coach_score: int) -> Tuple[CheckinRow, ScoringResult]:
    """Record a coach override; it is added to the automatic score."""
    row = await db.get(CheckinRow, checkin_id)
    if row is None:
        raise NotFound(f"Check-in {checkin_id} not found")
    enrolment = await db.get(EnrolmentRow, row.enrolment_id)

    delta = coach_score - (row.coach_score or 0)
    row.coach_score = coach_score
    row.total_score = row.auto_score + coach_score
    if enrolment is not None:
        enrolment.total_score = (enrolment.total_score or 0) + delta

    await db.commit()
    logger.info(f"Coach score {coach_score} set on check-in {checkin_id}")
    return row, stored_result(row)
