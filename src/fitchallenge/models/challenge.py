# src/fitchallenge/models/challenge.py

from sqlalchemy import Column, String, Float, ForeignKey, Enum, Boolean, Integer, JSON, UniqueConstraint
from sqlalchemy.orm import relationship

from .base import Base, TimestampedModel
from ..scoring.types import ChallengeType, EnrolmentStatus


class Challenge(Base, TimestampedModel):
    __tablename__ = "challenges"

    name           = Column(String, nullable=False)
    challenge_type = Column(Enum(ChallengeType), nullable=False, default=ChallengeType.FITNESS)
    timezone       = Column(String, nullable=False, default="UTC")
    start_date     = Column(String(10), nullable=True)
    end_date       = Column(String(10), nullable=True)
    scoring        = Column(JSON, nullable=False)
    anti_cheat     = Column(JSON, nullable=False, default=dict)
    is_active      = Column(Boolean, default=True)
    enrolments     = relationship("Enrolment", back_populates="challenge")


class Enrolment(Base, TimestampedModel):
    __tablename__ = "enrolments"

    user_id            = Column(String, nullable=False, index=True)
    status             = Column(Enum(EnrolmentStatus), nullable=False, default=EnrolmentStatus.ACTIVE)
    team_id            = Column(String, nullable=True, index=True)
    total_score        = Column(Integer, nullable=False, default=0)
    current_streak     = Column(Integer, nullable=False, default=0)
    longest_streak     = Column(Integer, nullable=False, default=0)
    checkins_completed = Column(Integer, nullable=False, default=0)
    last_checkin_date  = Column(String(10), nullable=True)

    challenge_id       = Column(String(36), ForeignKey("challenges.id"), nullable=False, index=True)
    challenge          = relationship("Challenge", back_populates="enrolments")
    checkins           = relationship("Checkin", back_populates="enrolment")


class Checkin(Base, TimestampedModel):
    __tablename__ = "checkins"
    __table_args__ = (
        UniqueConstraint("enrolment_id", "date", name="uq_checkins_enrolment_date"),
    )

    user_id            = Column(String, nullable=False, index=True)
    date               = Column(String(10), nullable=False)
    # wall-clock epoch seconds, used for cooldown checks
    submitted_at       = Column(Float, nullable=False)
    steps              = Column(Integer, nullable=True)
    workouts           = Column(Integer, nullable=True)
    nutrition_score    = Column(Float, nullable=True)
    weight_kg          = Column(Float, nullable=True)
    measurements       = Column(JSON, nullable=True)
    sleep_hours        = Column(Float, nullable=True)
    water_liters       = Column(Float, nullable=True)
    meditation_minutes = Column(Integer, nullable=True)
    notes              = Column(String, nullable=True)
    photos             = Column(JSON, nullable=False, default=list)

    auto_score         = Column(Integer, nullable=False, default=0)
    coach_score        = Column(Integer, nullable=True)
    total_score        = Column(Integer, nullable=False, default=0)
    score_result       = Column(JSON, nullable=True)
    needs_review       = Column(Boolean, default=False)

    challenge_id       = Column(String(36), ForeignKey("challenges.id"), nullable=False, index=True)
    enrolment_id       = Column(String(36), ForeignKey("enrolments.id"), nullable=False, index=True)
    enrolment          = relationship("Enrolment", back_populates="checkins")
