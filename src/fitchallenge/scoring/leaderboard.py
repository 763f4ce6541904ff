# src/fitchallenge/scoring/leaderboard.py

from typing import List, Optional, Sequence

from pydantic import BaseModel, ConfigDict

from .calculator import round_half_up


class LeaderboardEntry(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)

    enrolment_id: str
    user_id: str
    total_score: int
    checkins_count: int = 0
    current_streak: int = 0
    longest_streak: int = 0
    last_checkin_date: Optional[str] = None
    rank: int = 0


class ScoreDistribution(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_participants: int
    average_score: int
    top_score: int


def rank_participants(entries: Sequence[LeaderboardEntry]) -> List[LeaderboardEntry]:
    """Sort by score, highest first, and assign competition ranks.

    Tied scores share a rank and the next distinct score skips ahead
    (100, 100, 90 -> 1, 1, 3). Ties keep their input order.
    """
    ordered = sorted(entries, key=lambda e: e.total_score, reverse=True)
    ranked = []
    rank = 0
    previous_score = None
    for index, entry in enumerate(ordered, 1):
        if entry.total_score != previous_score:
            rank = index
            previous_score = entry.total_score
        ranked.append(entry.model_copy(update={"rank": rank}))
    return ranked


def score_distribution(entries: Sequence[LeaderboardEntry]) -> ScoreDistribution:
    if not entries:
        return ScoreDistribution(total_participants=0, average_score=0, top_score=0)
    scores = [e.total_score for e in entries]
    return ScoreDistribution(
        total_participants=len(scores),
        average_score=round_half_up(sum(scores) / len(scores)),
        top_score=max(scores),
    )
