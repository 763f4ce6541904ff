# src/fitchallenge/scoring/rollup.py

from functools import reduce
from itertools import groupby
from typing import Iterable, List, Tuple

from pydantic import BaseModel, ConfigDict

from ..utils.dates import parse_day
from ..utils.logging import setup_logger
from .types import ScoringResult

logger = setup_logger(__name__)

PERIODS = ("week", "month")

BREAKDOWN_FIELDS = (
    "checkin", "workouts", "nutrition", "steps", "progress",
    "weight_loss", "wellness", "consistency", "streak", "team",
)


class PeriodTotals(BaseModel):
    """Sum of scored check-ins over one week or month."""

    model_config = ConfigDict(frozen=True)

    period: str
    checkins: int = 0
    auto_score: int = 0
    total_score: int = 0
    checkin: int = 0
    workouts: int = 0
    nutrition: int = 0
    steps: int = 0
    progress: int = 0
    weight_loss: int = 0
    wellness: int = 0
    consistency: int = 0
    streak: int = 0
    team: int = 0


def period_key(day: str, period: str = "week") -> str:
    """``YYYY-Www`` (ISO week) or ``YYYY-MM`` for a check-in date."""
    parsed = parse_day(day)
    if parsed is None:
        raise ValueError(f"Invalid check-in date: {day!r}")
    if period == "week":
        year, week, _ = parsed.isocalendar()
        return f"{year}-W{week:02d}"
    if period == "month":
        return f"{parsed.year}-{parsed.month:02d}"
    raise ValueError(f"Unknown rollup period: {period}")


def accumulate(totals: PeriodTotals, result: ScoringResult) -> PeriodTotals:
    update = {f: getattr(totals, f) + getattr(result.breakdown, f) for f in BREAKDOWN_FIELDS}
    update["checkins"] = totals.checkins + 1
    update["auto_score"] = totals.auto_score + result.auto_score
    update["total_score"] = totals.total_score + result.total_score
    return totals.model_copy(update=update)


def rollup(scored: Iterable[Tuple[str, ScoringResult]], period: str = "week") -> List[PeriodTotals]:
    """Fold ``(date, result)`` pairs into per-period totals, oldest first.

    Entries with unreadable dates are skipped.
    """
    if period not in PERIODS:
        raise ValueError(f"Unknown rollup period: {period}")

    keyed = []
    for day, result in scored:
        try:
            keyed.append((period_key(day, period), result))
        except ValueError as e:
            logger.warning(f"Skipping scored check-in in rollup: {e}")

    keyed.sort(key=lambda pair: pair[0])
    totals = []
    for key, group in groupby(keyed, key=lambda pair: pair[0]):
        totals.append(reduce(accumulate, (r for _, r in group), PeriodTotals(period=key)))
    return totals
