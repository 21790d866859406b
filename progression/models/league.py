"""League season, division and participation models"""
from typing import Optional
from datetime import date, datetime
from uuid import uuid4
from pydantic import BaseModel, Field

from progression.utils.datetime_helpers import now_utc


class LeagueSeason(BaseModel):
    """Sunday..Saturday competitive window; at most one is active"""
    id: str = Field(default_factory=lambda: str(uuid4()))
    season_name: str
    start_date: date
    end_date: date
    is_active: bool = True
    rankings_finalized: bool = False
    created_at: datetime = Field(default_factory=now_utc)


class LeagueDivision(BaseModel):
    """Weekly XP tier; max_xp_per_week is exclusive, None means unbounded"""
    id: str
    name: str
    division_order: int
    min_xp_per_week: int
    max_xp_per_week: Optional[int] = None
    icon: str = ""

    def contains(self, weekly_xp: int) -> bool:
        if weekly_xp < self.min_xp_per_week:
            return False
        return self.max_xp_per_week is None or weekly_xp < self.max_xp_per_week


class LeagueParticipation(BaseModel):
    """One row per (student, season)"""
    id: str = Field(default_factory=lambda: str(uuid4()))
    student_id: str
    season_id: str
    division_id: str
    weekly_xp: int = 0
    promoted: bool = False
    demoted: bool = False
    rank_in_division: Optional[int] = None
    joined_at: datetime = Field(default_factory=now_utc)
