# src/fitchallenge/scoring/streak.py

from datetime import date
from typing import Iterable, List, Optional

from ..utils.dates import days_between, format_day, parse_day
from ..utils.logging import setup_logger
from .types import Checkin, StreakInfo

logger = setup_logger(__name__)


def _history_days(prior_checkins: Iterable[Checkin]) -> List[date]:
    days = []
    for c in prior_checkins:
        day = parse_day(c.date)
        if day is None:
            logger.warning(f"Skipping check-in {c.id} with unreadable date {c.date!r}")
            continue
        days.append(day)
    return days


def _current_run(days: List[date], new_day: date) -> int:
    """Length of the consecutive run ending at ``new_day``."""
    tail = [d for d in days if d <= new_day]
    current = 1
    for newer, older in zip(tail, tail[1:]):
        gap = days_between(newer, older)
        if gap == 0:
            # same-day resubmission neither extends nor breaks the run
            continue
        if gap == 1:
            current += 1
        else:
            break
    return current


def _longest_run(days: List[date]) -> int:
    running = 1
    longest = 1
    for newer, older in zip(days, days[1:]):
        gap = days_between(newer, older)
        if gap == 0:
            continue
        if gap == 1:
            running += 1
        else:
            longest = max(longest, running)
            running = 1
    return max(longest, running)


def calculate_streak(new_date, prior_checkins: Iterable[Checkin]) -> StreakInfo:
    """Derive the streak ending at ``new_date`` from a participant's history.

    The new check-in is treated as part of the history, so an empty history
    yields a streak of 1. Dates are compared at day granularity and prior
    check-ins may be passed in any order.
    """
    new_day: Optional[date] = parse_day(new_date)
    prior_days = _history_days(prior_checkins)

    if new_day is None:
        logger.warning(f"Unreadable check-in date {new_date!r}, streak computed from history only")
        if not prior_days:
            return StreakInfo(current_streak=1, longest_streak=1)
        new_day = max(prior_days)

    days = sorted(prior_days + [new_day], reverse=True)

    return StreakInfo(
        current_streak=_current_run(days, new_day),
        longest_streak=_longest_run(days),
        last_checkin_date=format_day(days[0]),
    )
