# src/fitchallenge/scoring/anticheat.py

from typing import List, NamedTuple, Optional, Sequence

from ..utils.logging import setup_logger
from .types import (
    AntiCheatConfig,
    CheatDetection,
    Checkin,
    DetectionAction,
    DetectionType,
)

logger = setup_logger(__name__)

DUPLICATE_CONFIDENCE = 0.8
MAX_ANOMALY_CONFIDENCE = 0.9


class AntiCheatReport(NamedTuple):
    detections: List[CheatDetection]
    anomalies: List[str]


class Anomaly(NamedTuple):
    confidence: float
    details: str


def check_cooldown(checkin: Checkin, prior_checkins: Sequence[Checkin], cooldown_minutes: int) -> Optional[CheatDetection]:
    """Block a submission made too soon after the previous one.

    Elapsed time is measured between ``created_at`` stamps, so the check is a
    pure function of its inputs.
    """
    if cooldown_minutes <= 0 or not prior_checkins:
        return None

    last_created = max(c.created_at for c in prior_checkins)
    elapsed = checkin.created_at - last_created
    if elapsed < cooldown_minutes * 60:
        return CheatDetection(
            type=DetectionType.MANUAL,
            confidence=1.0,
            details=f"Check-in submitted before cooldown period ({cooldown_minutes} minutes)",
            action=DetectionAction.BLOCK,
        )
    return None


def _fingerprint(c: Checkin):
    return (c.steps, c.workouts, c.nutrition_score, c.weight_kg)


def check_duplicate(checkin: Checkin, prior_checkins: Sequence[Checkin]) -> Optional[CheatDetection]:
    fingerprint = _fingerprint(checkin)
    if all(v is None for v in fingerprint):
        return None
    if any(_fingerprint(c) == fingerprint for c in prior_checkins):
        return CheatDetection(
            type=DetectionType.DUPLICATE,
            confidence=DUPLICATE_CONFIDENCE,
            details="Check-in data identical to previous submissions",
            action=DetectionAction.FLAG,
        )
    return None


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def detect_anomalies(checkin: Checkin, prior_checkins: Sequence[Checkin]) -> List[Anomaly]:
    """Compare a check-in against the participant's own historical averages.

    Missing values count as zero in the averages. Metrics that weren't
    submitted, or whose average is zero, are not compared.
    """
    found: List[Anomaly] = []
    if not prior_checkins:
        return found

    avg_steps = _mean([c.steps or 0 for c in prior_checkins])
    avg_workouts = _mean([c.workouts or 0 for c in prior_checkins])
    avg_nutrition = _mean([c.nutrition_score or 0 for c in prior_checkins])

    if checkin.steps and avg_steps > 0:
        ratio = checkin.steps / avg_steps
        if ratio > 3 or ratio < 0.1:
            found.append(Anomaly(
                confidence=min(abs(ratio - 1) / 2, MAX_ANOMALY_CONFIDENCE),
                details=f"Step count is {ratio:.1f}x your average",
            ))

    if checkin.workouts and avg_workouts > 0:
        ratio = checkin.workouts / avg_workouts
        if ratio > 5:
            found.append(Anomaly(
                confidence=min(ratio / 10, MAX_ANOMALY_CONFIDENCE),
                details=f"Workout count is {ratio:.1f}x your average",
            ))

    if checkin.nutrition_score and avg_nutrition > 0:
        diff = abs(checkin.nutrition_score - avg_nutrition)
        if diff > 4:
            found.append(Anomaly(
                confidence=min(diff / 10, MAX_ANOMALY_CONFIDENCE),
                details=f"Nutrition score differs by {diff:.1f} from your average",
            ))

    return found


def perform_anti_cheat_checks(
    checkin: Checkin,
    prior_checkins: Sequence[Checkin],
    anti_cheat: AntiCheatConfig,
) -> AntiCheatReport:
    """Run every anti-cheat check and union their findings.

    Checks never short-circuit each other and detections are not deduplicated
    across types. Statistical anomalies are kept only when their confidence
    strictly exceeds ``anomaly_threshold``.
    """
    detections: List[CheatDetection] = []
    notes: List[str] = []

    cooldown = check_cooldown(checkin, prior_checkins, anti_cheat.cooldown_minutes)
    if cooldown is not None:
        detections.append(cooldown)

    if anti_cheat.duplicate_detection:
        duplicate = check_duplicate(checkin, prior_checkins)
        if duplicate is not None:
            detections.append(duplicate)

    for anomaly in detect_anomalies(checkin, prior_checkins):
        if anomaly.confidence > anti_cheat.anomaly_threshold:
            detections.append(CheatDetection(
                type=DetectionType.ANOMALY,
                confidence=anomaly.confidence,
                details=anomaly.details,
                action=DetectionAction.REVIEW,
            ))
        else:
            logger.debug(f"Dropped sub-threshold anomaly ({anomaly.confidence:.2f}): {anomaly.details}")

    if anti_cheat.photo_required and not checkin.photos:
        notes.append("Photo required but none submitted")

    if anti_cheat.exif_check and checkin.photos:
        notes.append(f"EXIF metadata of {len(checkin.photos)} photo(s) not verified; manual review needed")

    if detections:
        logger.info(f"Check-in {checkin.id} raised {len(detections)} anti-cheat detection(s)")

    return AntiCheatReport(detections=detections, anomalies=notes)
