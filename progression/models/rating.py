"""Rating models"""
from typing import Optional
from datetime import datetime
from pydantic import BaseModel, Field

from progression.utils.datetime_helpers import now_utc


class RatingRecord(BaseModel):
    student_id: str
    rating: int = 1500
    updated_at: datetime = Field(default_factory=now_utc)


class RatingHistoryEntry(BaseModel):
    """Immutable record of one rating update"""
    student_id: str
    lesson_id: Optional[str] = None
    previous_rating: int
    delta: int
    new_rating: int
    performance: float
    time_taken: int
    streak: int
    created_at: datetime = Field(default_factory=now_utc)
