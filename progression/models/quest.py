"""Daily quest models"""
from typing import Any, Optional
from datetime import date, datetime
from uuid import uuid4
from pydantic import BaseModel, Field

from progression.utils.datetime_helpers import now_utc


class DailyQuest(BaseModel):
    """A quest template instantiated for one calendar date"""
    id: str = Field(default_factory=lambda: str(uuid4()))
    quest_type: str
    title: str
    description: str = ""
    requirements: dict[str, Any] = Field(default_factory=dict)
    xp_reward: int
    streak_shield_reward: bool = False
    active_date: date
    created_at: datetime = Field(default_factory=now_utc)

    @property
    def target(self) -> int:
        return int(self.requirements.get("target", 1))


class QuestProgress(BaseModel):
    """One row per (student, quest); completed only ever goes false -> true"""
    id: str = Field(default_factory=lambda: str(uuid4()))
    student_id: str
    quest_id: str
    progress: int = 0
    target_progress: int = 1
    completed: bool = False
    completed_at: Optional[datetime] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    started_at: datetime = Field(default_factory=now_utc)
