from datetime import datetime, timezone

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from fitchallenge.models import challenge as _tables  # noqa: F401  registers tables
from fitchallenge.models.base import Base
from fitchallenge.scoring.types import (
    AntiCheatConfig,
    Challenge,
    ChallengeType,
    Checkin,
    Enrolment,
    ScoringConfig,
)
from fitchallenge.utils.dates import parse_day


def noon_ts(day: str) -> float:
    """Epoch seconds for 12:00 UTC on ``day``."""
    parsed = parse_day(day)
    if parsed is None:
        return 0.0
    return datetime(parsed.year, parsed.month, parsed.day, 12, tzinfo=timezone.utc).timestamp()


@pytest.fixture
def scoring_config():
    return ScoringConfig(
        checkin_points=10,
        workout_points=5,
        nutrition_points=10,
        steps_buckets=[5000, 8000, 10000],
        progress_points=5,
        streak_bonus=1,
        team_bonus=5,
    )


@pytest.fixture
def make_checkin():
    def _make(day: str, created_at: float = None, **fields) -> Checkin:
        return Checkin(
            date=day,
            created_at=created_at if created_at is not None else noon_ts(day),
            **fields,
        )
    return _make


@pytest.fixture
def make_challenge(scoring_config):
    def _make(challenge_type=ChallengeType.FITNESS, scoring=None, **anti_cheat) -> Challenge:
        return Challenge(
            id="challenge-1",
            name="Spring Shred",
            challenge_type=challenge_type,
            scoring=scoring or scoring_config,
            anti_cheat=AntiCheatConfig(**anti_cheat),
        )
    return _make


@pytest.fixture
def enrolment():
    return Enrolment(id="enrolment-1", user_id="user-1", challenge_id="challenge-1")


@pytest_asyncio.fixture
async def session(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'fitchallenge.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, expire_on_commit=False)
    async with factory() as db:
        yield db

    await engine.dispose()
