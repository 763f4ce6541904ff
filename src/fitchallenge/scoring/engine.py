# src/fitchallenge/scoring/engine.py

"""Scoring orchestrator.

Runs the streak tracker, the score calculator and the anti-cheat detector
over one check-in and merges their outputs into a single ``ScoringResult``.
Nothing here performs I/O: callers fetch prior check-ins (same participant,
same challenge) and teammates, and must serialise scoring per participant and
date.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..utils.dates import format_day, local_day, parse_day
from ..utils.logging import setup_logger
from .anticheat import perform_anti_cheat_checks
from .calculator import DEFAULT_POLICY, calculate_score
from .streak import calculate_streak
from .types import (
    Challenge,
    Checkin,
    DetectionAction,
    Enrolment,
    ScoringPolicy,
    ScoringResult,
)

logger = setup_logger(__name__)


class ScoringInput(BaseModel):
    model_config = ConfigDict(frozen=True)

    checkin: Checkin
    challenge: Challenge
    enrolment: Enrolment
    prior_checkins: List[Checkin] = Field(default_factory=list)
    team_members: Optional[List[Enrolment]] = None


def _checkin_day(checkin: Checkin, challenge: Challenge, policy: ScoringPolicy) -> str:
    day = parse_day(checkin.date)
    if day is not None:
        return format_day(day)
    fallback = local_day(checkin.created_at, challenge.timezone, policy.fallback_timezone)
    logger.warning(f"Check-in {checkin.id} has unreadable date {checkin.date!r}, using {fallback}")
    return format_day(fallback)


def compute_score(data: ScoringInput, policy: ScoringPolicy = DEFAULT_POLICY) -> ScoringResult:
    """Score one check-in against the participant's history."""
    challenge = data.challenge
    checkin = data.checkin

    day = _checkin_day(checkin, challenge, policy)
    if day != checkin.date:
        checkin = checkin.model_copy(update={"date": day})

    streak = calculate_streak(day, data.prior_checkins)

    computation = calculate_score(
        challenge.scoring,
        checkin,
        data.prior_checkins,
        streak,
        challenge_type=challenge.challenge_type,
        enrolment=data.enrolment,
        team_members=data.team_members,
        policy=policy,
    )

    report = perform_anti_cheat_checks(checkin, data.prior_checkins, challenge.anti_cheat)

    coach_score = checkin.coach_score or 0
    result = ScoringResult(
        auto_score=computation.auto_score,
        coach_score=coach_score,
        total_score=computation.auto_score + coach_score,
        streak_bonus=computation.breakdown.streak,
        team_bonus=computation.breakdown.team,
        breakdown=computation.breakdown,
        streak=streak,
        cheat_detections=report.detections,
        anomalies=computation.anomalies + report.anomalies,
    )
    return result


def is_blocked(result: ScoringResult) -> bool:
    """True when a detection requires rejecting the submission outright."""
    return any(d.action == DetectionAction.BLOCK for d in result.cheat_detections)


def apply_coach_score(result: ScoringResult, coach_score: int) -> ScoringResult:
    """Return a copy with a coach override added on top of the automatic score."""
    return result.model_copy(update={
        "coach_score": coach_score,
        "total_score": result.auto_score + coach_score,
    })
