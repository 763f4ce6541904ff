# src/fitchallenge/scoring/types.py

import enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ChallengeType(str, enum.Enum):
    FITNESS = "fitness"
    WEIGHT_LOSS = "weight-loss"
    WELLNESS = "wellness"
    STRENGTH = "strength"
    ENDURANCE = "endurance"


class EnrolmentStatus(str, enum.Enum):
    PENDING = "pending"
    ACTIVE = "active"
    WITHDRAWN = "withdrawn"
    COMPLETED = "completed"


class DetectionType(str, enum.Enum):
    DUPLICATE = "duplicate"
    ANOMALY = "anomaly"
    MANUAL = "manual"


class DetectionAction(str, enum.Enum):
    BLOCK = "block"
    FLAG = "flag"
    REVIEW = "review"


class ScoringConfig(BaseModel):
    """Per-challenge point rules. Frozen once the challenge is published."""

    model_config = ConfigDict(frozen=True)

    checkin_points: int = Field(ge=0, le=100)
    workout_points: int = Field(ge=0, le=50)
    nutrition_points: int = Field(ge=0, le=50)
    steps_buckets: List[int] = Field(default_factory=list)
    progress_points: int = Field(default=0, ge=0, le=20)
    streak_bonus: int = Field(default=0, ge=0, le=10)
    team_bonus: int = Field(default=0, ge=0, le=20)
    # points per kg lost since the previous weigh-in
    weight_loss_points: Optional[int] = Field(default=None, ge=0)
    # cap on the per-streak-day consistency points
    consistency_bonus: Optional[int] = Field(default=None, ge=0)
    wellness_habits: bool = False
    # bonus rate per completed week of streak, e.g. 0.1
    streak_multiplier: Optional[float] = Field(default=None, ge=0)

    @field_validator("steps_buckets")
    @classmethod
    def sort_buckets(cls, v):
        return sorted(v)


class AntiCheatConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    cooldown_minutes: int = Field(default=0, ge=0, le=1440)
    duplicate_detection: bool = False
    anomaly_threshold: float = Field(default=0.0, ge=0, le=1)
    photo_required: bool = False
    # photos are opaque here; flagged check-ins are left for a reviewer
    exif_check: bool = False


class Challenge(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: str
    name: str = ""
    challenge_type: ChallengeType = ChallengeType.FITNESS
    timezone: str = "UTC"
    scoring: ScoringConfig
    anti_cheat: AntiCheatConfig = Field(default_factory=AntiCheatConfig)


class Measurements(BaseModel):
    """Body circumferences in cm."""

    model_config = ConfigDict(frozen=True)

    chest: Optional[float] = None
    waist: Optional[float] = None
    hips: Optional[float] = None
    arms: Optional[float] = None
    thighs: Optional[float] = None

    def tracked(self) -> Dict[str, float]:
        return {k: v for k, v in self.model_dump().items() if v is not None}


class Checkin(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: Optional[str] = None
    enrolment_id: Optional[str] = None
    challenge_id: Optional[str] = None
    user_id: Optional[str] = None
    date: str
    created_at: float
    steps: Optional[int] = None
    workouts: Optional[int] = None
    nutrition_score: Optional[float] = None
    weight_kg: Optional[float] = None
    measurements: Optional[Measurements] = None
    sleep_hours: Optional[float] = None
    water_liters: Optional[float] = None
    meditation_minutes: Optional[int] = None
    notes: Optional[str] = None
    photos: List[str] = Field(default_factory=list)
    coach_score: Optional[int] = None


class Enrolment(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: str
    user_id: str
    challenge_id: str
    status: EnrolmentStatus = EnrolmentStatus.ACTIVE
    team_id: Optional[str] = None
    total_score: int = 0
    current_streak: int = 0
    longest_streak: int = 0
    checkins_completed: int = 0
    last_checkin_date: Optional[str] = None


class CheatDetection(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: DetectionType
    confidence: float = Field(ge=0, le=1)
    details: str
    action: DetectionAction


class StreakInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    current_streak: int
    longest_streak: int
    last_checkin_date: Optional[str] = None


class ScoreBreakdown(BaseModel):
    model_config = ConfigDict(frozen=True)

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
    multiplier: float = 1.0

    @property
    def subtotal(self) -> int:
        return (
            self.checkin + self.workouts + self.nutrition + self.steps
            + self.progress + self.weight_loss + self.wellness
            + self.consistency + self.streak + self.team
        )


class ScoringResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    auto_score: int
    coach_score: int = 0
    total_score: int
    streak_bonus: int = 0
    team_bonus: int = 0
    breakdown: ScoreBreakdown = Field(default_factory=ScoreBreakdown)
    streak: StreakInfo
    cheat_detections: List[CheatDetection] = Field(default_factory=list)
    anomalies: List[str] = Field(default_factory=list)


class ScoringPolicy(BaseModel):
    """Engine-wide rules that aren't part of a challenge's configuration."""

    model_config = ConfigDict(frozen=True)

    max_workouts_per_day: int = 2
    points_per_step_bucket: int = 2
    streak_bonus_cap: int = 20
    team_min_active_members: int = 3
    streak_multiplier_min_days: int = 7
    max_healthy_weight_loss_kg: float = 1.0
    weight_points_per_kg: float = 10
    weight_points_cap: float = 5
    max_healthy_measurement_decrease: float = 5
    measurement_points_per_unit: float = 2
    measurement_points_cap: float = 3
    weight_loss_cap_multiple: float = 2
    consistency_points_per_day: float = 0.5
    strength_min_workouts: int = 3
    strength_multiplier: float = 1.2
    endurance_min_steps: int = 10000
    endurance_multiplier: float = 1.15
    wellness_min_meditation_minutes: int = 10
    wellness_multiplier: float = 1.1
    fallback_timezone: str = "UTC"
