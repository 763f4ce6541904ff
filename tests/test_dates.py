from datetime import date, datetime, timezone

from fitchallenge.utils.dates import days_between, local_day, parse_day, resolve_timezone


def test_parse_day_accepts_common_forms():
    assert parse_day("2025-03-01") == date(2025, 3, 1)
    assert parse_day("2025-03-01T18:30:00+08:00") == date(2025, 3, 1)
    assert parse_day(datetime(2025, 3, 1, 23, 59)) == date(2025, 3, 1)
    assert parse_day(date(2025, 3, 1)) == date(2025, 3, 1)


def test_parse_day_rejects_garbage():
    assert parse_day(None) is None
    assert parse_day("") is None
    assert parse_day("tomorrow") is None
    assert parse_day(20250301) is None


def test_days_between():
    assert days_between(date(2025, 3, 1), date(2025, 2, 28)) == 1
    assert days_between(date(2025, 3, 1), date(2025, 3, 1)) == 0


def test_invalid_timezone_falls_back_to_default():
    assert resolve_timezone("Mars/Olympus_Mons") == timezone.utc
    assert resolve_timezone(None) == timezone.utc


def test_fallback_timezone_is_injectable():
    tz = resolve_timezone("Mars/Olympus_Mons", default="Australia/Perth")
    assert str(tz) == "Australia/Perth"


def test_local_day_uses_cohort_timezone():
    ts = datetime(2025, 3, 1, 20, 0, tzinfo=timezone.utc).timestamp()
    assert local_day(ts, "UTC") == date(2025, 3, 1)
    assert local_day(ts, "Australia/Perth") == date(2025, 3, 2)
    assert local_day(ts, "bogus", default_tz="UTC") == date(2025, 3, 1)
