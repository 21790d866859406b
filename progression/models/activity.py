"""Activity events, lesson history and feed entries"""
from enum import Enum
from typing import Any, Optional
from datetime import datetime
from uuid import uuid4
from pydantic import BaseModel, Field, field_validator

from progression.utils.datetime_helpers import now_utc, to_utc
from progression.utils.math_helpers import round_half_up

QUIZ_GAME_LESSON_ID = "quiz_game"


class ActivityType(str, Enum):
    """Feed entry kinds"""
    LEVEL_UP = "level_up"
    STREAK_MILESTONE = "streak_milestone"
    QUEST_COMPLETED = "quest_completed"
    ACHIEVEMENT_EARNED = "achievement_earned"
    LEAGUE_DIVISION_CHANGE = "league_division_change"


class ActivityEvent(BaseModel):
    """A graded activity completed by a student"""
    student_id: str
    lesson_id: str
    score: float
    total_points: float
    time_taken: int = 0
    timestamp: datetime = Field(default_factory=now_utc)
    subject: Optional[str] = None
    consecutive_correct: int = 0

    @field_validator("score")
    @classmethod
    def round_score(cls, v: float) -> float:
        """Scores are kept to two decimal places"""
        return round_half_up(v * 100) / 100

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, v: datetime) -> datetime:
        """Naive timestamps are read as UTC"""
        return to_utc(v)

    @property
    def accuracy(self) -> float:
        """Percentage 0..100"""
        if self.total_points <= 0:
            return 0.0
        return self.score / self.total_points * 100


class LessonResult(BaseModel):
    """Historical graded result, read by achievement and quest predicates"""
    id: str = Field(default_factory=lambda: str(uuid4()))
    student_id: str
    lesson_id: str
    subject: Optional[str] = None
    score: float
    total_points: float
    time_taken: int = 0
    timestamp: datetime = Field(default_factory=now_utc)

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, v: datetime) -> datetime:
        return to_utc(v)

    @property
    def is_quiz_game(self) -> bool:
        return self.lesson_id == QUIZ_GAME_LESSON_ID


class ActivityEntry(BaseModel):
    """Activity feed row"""
    id: str = Field(default_factory=lambda: str(uuid4()))
    student_id: str
    activity_type: str
    title: str
    description: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)
    is_public: bool = True
    created_at: datetime = Field(default_factory=now_utc)


class ProgressionSummary(BaseModel):
    """Composite result returned to the lesson-submission handler"""
    rating: Optional[dict[str, Any]] = None
    streak: Optional[dict[str, Any]] = None
    xp: Optional[dict[str, Any]] = None
    quests: list[dict[str, Any]] = Field(default_factory=list)
    achievements: list[dict[str, Any]] = Field(default_factory=list)
    errors: dict[str, str] = Field(default_factory=dict)
