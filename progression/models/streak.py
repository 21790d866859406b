"""Streak models"""
from typing import Optional
from datetime import date, datetime
from pydantic import BaseModel, Field

from progression.utils.datetime_helpers import now_utc


class StreakRecord(BaseModel):
    """Consecutive-day activity counter with freeze tokens"""
    student_id: str
    current_streak: int = 0
    longest_streak: int = 0
    last_activity_date: Optional[date] = None
    freezes_available: int = 3
    freezes_used: int = 0
    created_at: datetime = Field(default_factory=now_utc)
    updated_at: datetime = Field(default_factory=now_utc)
