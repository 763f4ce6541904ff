from datetime import date, datetime, timezone, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..config import settings
from .logging import setup_logger

logger = setup_logger(__name__)

DATE_FORMAT = "%Y-%m-%d"


def parse_day(value) -> Optional[date]:
    """Parse a check-in date at day granularity.

    Accepts ``date``/``datetime`` objects, ``YYYY-MM-DD`` strings and full ISO
    timestamps (the time part is ignored). Returns None when the value can't
    be read as a date.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None

    text = value.strip()
    try:
        return datetime.strptime(text[:10], DATE_FORMAT).date()
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        return None


def format_day(value: date) -> str:
    return value.strftime(DATE_FORMAT)


def days_between(later: date, earlier: date) -> int:
    return (later - earlier).days


def resolve_timezone(name: Optional[str], default: Optional[str] = None) -> tzinfo:
    """Return the tzinfo for ``name``, falling back to ``default``.

    ``default`` is the configured cohort fallback (``settings.default_timezone``)
    unless the caller injects its own. An unresolvable fallback ends at UTC.
    """
    fallback = default if default is not None else settings.default_timezone
    for candidate in (name, fallback):
        if not candidate:
            continue
        if candidate.upper() == "UTC":
            return timezone.utc
        try:
            return ZoneInfo(candidate)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning(f"Invalid timezone: {candidate}, falling back")
    return timezone.utc


def local_day(timestamp: float, tz_name: Optional[str] = None, default_tz: Optional[str] = None) -> date:
    """Calendar day of an epoch timestamp in the cohort's timezone."""
    tz = resolve_timezone(tz_name, default_tz)
    return datetime.fromtimestamp(timestamp, tz=tz).date()


def utc_now_ts() -> float:
    return datetime.now(timezone.utc).timestamp()
