"""Achievement models"""
from enum import Enum
from typing import Any
from datetime import datetime
from pydantic import BaseModel, Field

from progression.utils.datetime_helpers import now_utc


class AchievementCategory(str, Enum):
    """Achievement categories"""
    LEARNING = "learning"
    CONSISTENCY = "consistency"
    MASTERY = "mastery"
    SPEED = "speed"
    SUBJECT = "subject"
    HABITS = "habits"
    GROWTH = "growth"


class Achievement(BaseModel):
    """Achievement definition; name selects the predicate"""
    id: str
    name: str
    title: str
    description: str
    category: AchievementCategory
    xp_reward: int
    badge_icon: str = ""
    is_active: bool = True


class StudentAchievement(BaseModel):
    """Award record, unique per (student, achievement)"""
    student_id: str
    achievement_id: str
    earned_at: datetime = Field(default_factory=now_utc)
    metadata: dict[str, Any] = Field(default_factory=dict)
