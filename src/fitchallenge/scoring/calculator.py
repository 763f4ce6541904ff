# src/fitchallenge/scoring/calculator.py

import math
from typing import Iterable, List, NamedTuple, Optional, Sequence, Tuple

from ..utils.dates import parse_day
from ..utils.logging import setup_logger
from .types import (
    ChallengeType,
    Checkin,
    Enrolment,
    EnrolmentStatus,
    ScoreBreakdown,
    ScoringConfig,
    ScoringPolicy,
    StreakInfo,
)

logger = setup_logger(__name__)

DEFAULT_POLICY = ScoringPolicy()


class ScoreComputation(NamedTuple):
    breakdown: ScoreBreakdown
    auto_score: int
    anomalies: List[str]


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positives."""
    return int(math.floor(value + 0.5))


def workout_points(workouts: int, config: ScoringConfig, policy: ScoringPolicy = DEFAULT_POLICY) -> Tuple[int, Optional[str]]:
    capped = max(0, min(workouts, policy.max_workouts_per_day))
    note = None
    if workouts > policy.max_workouts_per_day:
        note = f"Workouts capped at {policy.max_workouts_per_day} per day"
    return capped * config.workout_points, note


def nutrition_points(nutrition_score: float, config: ScoringConfig) -> int:
    score = max(0.0, min(float(nutrition_score), 10.0))
    return round_half_up(score / 10 * config.nutrition_points)


def steps_points(steps: int, buckets: Sequence[int], policy: ScoringPolicy = DEFAULT_POLICY) -> int:
    """Every threshold at or below ``steps`` contributes independently."""
    met = len([b for b in buckets if steps >= b])
    return met * policy.points_per_step_bucket


def _latest_prior(checkin: Checkin, prior_checkins: Iterable[Checkin]) -> Optional[Checkin]:
    new_day = parse_day(checkin.date)
    candidates = []
    for c in prior_checkins:
        day = parse_day(c.date)
        if day is None:
            continue
        if new_day is not None and day > new_day:
            continue
        candidates.append((day, c.created_at, c))
    if not candidates:
        return None
    return max(candidates, key=lambda t: (t[0], t[1]))[2]


def calculate_progress_points(
    checkin: Checkin,
    prior_checkins: Sequence[Checkin],
    max_points: int,
    policy: ScoringPolicy = DEFAULT_POLICY,
) -> int:
    """Reward small, realistic body changes since the most recent prior check-in.

    Every metric present on both check-ins is averaged in, rewarded or not.
    Gains and implausibly large drops score zero.
    """
    previous = _latest_prior(checkin, prior_checkins)
    if previous is None:
        return 0

    total = 0.0
    compared = 0

    if checkin.weight_kg is not None and previous.weight_kg is not None:
        loss = previous.weight_kg - checkin.weight_kg
        if 0 < loss <= policy.max_healthy_weight_loss_kg:
            total += min(loss * policy.weight_points_per_kg, policy.weight_points_cap)
        compared += 1

    if checkin.measurements is not None and previous.measurements is not None:
        before = previous.measurements.tracked()
        for name, value in checkin.measurements.tracked().items():
            if name not in before:
                continue
            decrease = before[name] - value
            if 0 < decrease <= policy.max_healthy_measurement_decrease:
                total += min(decrease * policy.measurement_points_per_unit, policy.measurement_points_cap)
            compared += 1

    if compared == 0:
        return 0

    return min(round_half_up(total / compared), max_points)


def weight_loss_points(
    checkin: Checkin,
    prior_checkins: Sequence[Checkin],
    rate: int,
    policy: ScoringPolicy = DEFAULT_POLICY,
) -> int:
    """Points per kg lost since the latest prior weigh-in, capped at a multiple of the rate."""
    if checkin.weight_kg is None:
        return 0
    previous = _latest_prior(checkin, prior_checkins)
    if previous is None or previous.weight_kg is None:
        return 0
    loss = previous.weight_kg - checkin.weight_kg
    if loss <= 0:
        return 0
    return round_half_up(min(loss * rate, rate * policy.weight_loss_cap_multiple))


def consistency_points(current_streak: int, cap: int, policy: ScoringPolicy = DEFAULT_POLICY) -> int:
    return round_half_up(min(current_streak * policy.consistency_points_per_day, cap))


def wellness_points(checkin: Checkin) -> int:
    points = 0
    if checkin.sleep_hours is not None:
        if 7 <= checkin.sleep_hours <= 9:
            points += 2
        elif 6 <= checkin.sleep_hours <= 10:
            points += 1
    if checkin.water_liters is not None and checkin.water_liters >= 2:
        points += 1
    if checkin.meditation_minutes is not None and checkin.meditation_minutes >= 10:
        points += 1
    return points


def streak_bonus_points(current_streak: int, config: ScoringConfig, policy: ScoringPolicy = DEFAULT_POLICY) -> int:
    return min(current_streak * config.streak_bonus, policy.streak_bonus_cap)


def count_active_team_members(
    enrolment: Optional[Enrolment],
    team_members: Sequence[Enrolment],
) -> int:
    """Members with an active enrolment and at least one completed check-in.

    The submitting participant counts: this check-in completes one for them.
    """
    active = {
        m.id for m in team_members
        if m.status == EnrolmentStatus.ACTIVE and m.checkins_completed > 0
    }
    if enrolment is not None and enrolment.status == EnrolmentStatus.ACTIVE:
        active.add(enrolment.id)
    return len(active)


def team_bonus_points(
    enrolment: Optional[Enrolment],
    team_members: Optional[Sequence[Enrolment]],
    config: ScoringConfig,
    policy: ScoringPolicy = DEFAULT_POLICY,
) -> int:
    if not team_members:
        return 0
    if count_active_team_members(enrolment, team_members) >= policy.team_min_active_members:
        return config.team_bonus
    return 0


def streak_multiplier(current_streak: int, config: ScoringConfig, policy: ScoringPolicy = DEFAULT_POLICY) -> float:
    if not config.streak_multiplier or current_streak < policy.streak_multiplier_min_days:
        return 1.0
    weeks = current_streak // 7
    return 1 + weeks * config.streak_multiplier


def challenge_type_multiplier(challenge_type: ChallengeType, checkin: Checkin, policy: ScoringPolicy = DEFAULT_POLICY) -> float:
    if challenge_type == ChallengeType.STRENGTH:
        if checkin.workouts is not None and checkin.workouts >= policy.strength_min_workouts:
            return policy.strength_multiplier
    elif challenge_type == ChallengeType.ENDURANCE:
        if checkin.steps is not None and checkin.steps >= policy.endurance_min_steps:
            return policy.endurance_multiplier
    elif challenge_type == ChallengeType.WELLNESS:
        if checkin.meditation_minutes is not None and checkin.meditation_minutes >= policy.wellness_min_meditation_minutes:
            return policy.wellness_multiplier
    return 1.0


def calculate_score(
    config: ScoringConfig,
    checkin: Checkin,
    prior_checkins: Sequence[Checkin],
    streak: StreakInfo,
    challenge_type: ChallengeType = ChallengeType.FITNESS,
    enrolment: Optional[Enrolment] = None,
    team_members: Optional[Sequence[Enrolment]] = None,
    policy: ScoringPolicy = DEFAULT_POLICY,
) -> ScoreComputation:
    """Compute the automatic score for one check-in.

    Components are added in a fixed order and the streak and challenge-type
    multipliers are then applied to the subtotal, never to a single component.
    """
    anomalies: List[str] = []
    parts = {"checkin": config.checkin_points}

    if checkin.workouts is not None:
        points, note = workout_points(checkin.workouts, config, policy)
        parts["workouts"] = points
        if note:
            anomalies.append(note)

    if checkin.nutrition_score is not None:
        parts["nutrition"] = nutrition_points(checkin.nutrition_score, config)

    if checkin.steps is not None:
        parts["steps"] = steps_points(checkin.steps, config.steps_buckets, policy)

    if checkin.weight_kg is not None or checkin.measurements is not None:
        parts["progress"] = calculate_progress_points(checkin, prior_checkins, config.progress_points, policy)

    if config.weight_loss_points:
        parts["weight_loss"] = weight_loss_points(checkin, prior_checkins, config.weight_loss_points, policy)

    if config.wellness_habits:
        parts["wellness"] = wellness_points(checkin)

    if config.consistency_bonus:
        parts["consistency"] = consistency_points(streak.current_streak, config.consistency_bonus, policy)

    parts["streak"] = streak_bonus_points(streak.current_streak, config, policy)
    parts["team"] = team_bonus_points(enrolment, team_members, config, policy)

    multiplier = (
        streak_multiplier(streak.current_streak, config, policy)
        * challenge_type_multiplier(challenge_type, checkin, policy)
    )
    breakdown = ScoreBreakdown(multiplier=multiplier, **parts)

    auto_score = max(round_half_up(breakdown.subtotal * multiplier), config.checkin_points)
    logger.debug(f"Scored check-in {checkin.id}: subtotal={breakdown.subtotal} multiplier={multiplier:.3f} auto={auto_score}")

    return ScoreComputation(breakdown=breakdown, auto_score=auto_score, anomalies=anomalies)
