# src/fitchallenge/services/leaderboard.py

from typing import List

from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.challenge import Challenge as ChallengeRow, Checkin as CheckinRow, Enrolment as EnrolmentRow
from ..scoring.leaderboard import LeaderboardEntry, ScoreDistribution, rank_participants, score_distribution
from ..scoring.rollup import PeriodTotals, rollup
from ..scoring.types import EnrolmentStatus
from ..utils.logging import setup_logger
from .checkins import NotFound, stored_result

logger = setup_logger(__name__)

RANKED_STATUSES = (EnrolmentStatus.ACTIVE, EnrolmentStatus.COMPLETED)


class ChallengeLeaderboard(BaseModel):
    challenge_id: str
    participants: List[LeaderboardEntry]
    distribution: ScoreDistribution


async def challenge_leaderboard(db: AsyncSession, challenge_id: str) -> ChallengeLeaderboard:
    if await db.get(ChallengeRow, challenge_id) is None:
        raise NotFound(f"Challenge {challenge_id} not found")

    stmt = select(EnrolmentRow).where(
        EnrolmentRow.challenge_id == challenge_id,
        EnrolmentRow.status.in_(RANKED_STATUSES),
    ).order_by(EnrolmentRow.user_id)
    rows = (await db.execute(stmt)).scalars().all()

    entries = [
        LeaderboardEntry(
            enrolment_id=r.id,
            user_id=r.user_id,
            total_score=r.total_score or 0,
            checkins_count=r.checkins_completed or 0,
            current_streak=r.current_streak or 0,
            longest_streak=r.longest_streak or 0,
            last_checkin_date=r.last_checkin_date,
        )
        for r in rows
    ]
    logger.debug(f"Leaderboard for {challenge_id}: {len(entries)} participants")

    return ChallengeLeaderboard(
        challenge_id=challenge_id,
        participants=rank_participants(entries),
        distribution=score_distribution(entries),
    )


async def enrolment_rollup(db: AsyncSession, enrolment_id: str, period: str = "week") -> List[PeriodTotals]:
    """Weekly or monthly totals of a participant's scored check-ins."""
    if await db.get(EnrolmentRow, enrolment_id) is None:
        raise NotFound(f"Enrolment {enrolment_id} not found")

    stmt = (
        select(CheckinRow)
        .where(CheckinRow.enrolment_id == enrolment_id)
        .order_by(CheckinRow.date.asc())
    )
    rows = (await db.execute(stmt)).scalars().all()

    scored = []
    for row in rows:
        result = stored_result(row)
        if result is not None:
            scored.append((row.date, result))
    return rollup(scored, period)
