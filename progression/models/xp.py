"""XP ledger models"""
from enum import Enum
from typing import Any, Optional
from datetime import datetime
from uuid import uuid4
from pydantic import BaseModel, Field

from progression.utils.datetime_helpers import now_utc


class TransactionType(str, Enum):
    """Reason an XP transaction was written"""
    LESSON_COMPLETION = "lesson_completion"
    STREAK_MILESTONE = "streak_milestone"
    DAILY_QUEST = "daily_quest"
    ACHIEVEMENT = "achievement"
    LEVEL_UP_BONUS = "level_up_bonus"
    MANUAL = "manual"


class XPRecord(BaseModel):
    """Per-student XP balance; level fields are derived from total_xp"""
    student_id: str
    total_xp: int = 0
    current_level: int = 1
    xp_to_next_level: int = 100
    created_at: datetime = Field(default_factory=now_utc)
    updated_at: datetime = Field(default_factory=now_utc)


class XPTransaction(BaseModel):
    """Append-only ledger row"""
    id: str = Field(default_factory=lambda: str(uuid4()))
    student_id: str
    xp_amount: int
    transaction_type: str
    description: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=now_utc)
    source_id: Optional[str] = None
