"""
Ledger store interface

The engines only talk to this abstract store: per-entity primary-key lookups,
simple filtered scans, and one atomic "append transaction and update balance"
primitive for the XP ledger. InMemoryStore and PostgresStore implement it.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import Optional

from progression.models import (
    Achievement,
    ActivityEntry,
    DailyQuest,
    LeagueDivision,
    LeagueParticipation,
    LeagueSeason,
    LessonResult,
    QuestProgress,
    RatingHistoryEntry,
    RatingRecord,
    StreakRecord,
    StudentAchievement,
    XPRecord,
    XPTransaction,
)


class LedgerStore(ABC):
    """Abstract async record store for progression state"""

    # ---------------------------------------------------------------- XP

    @abstractmethod
    async def get_xp_record(self, student_id: str) -> Optional[XPRecord]:
        ...

    @abstractmethod
    async def create_xp_record(self, student_id: str) -> XPRecord:
        """Create the record with total_xp=0, level 1; returns the existing one if present"""

    @abstractmethod
    async def append_xp_transaction(self, transaction: XPTransaction) -> XPRecord:
        """
        Atomically insert the transaction and add its amount to total_xp.

        Level fields on the returned record are left as they were; callers
        recompute them and persist with set_xp_level.
        """

    @abstractmethod
    async def set_xp_level(self, student_id: str, current_level: int, xp_to_next_level: int) -> XPRecord:
        ...

    @abstractmethod
    async def list_xp_transactions(
        self,
        student_id: str,
        since: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> list[XPTransaction]:
        """Newest first"""

    # ---------------------------------------------------------------- Streak

    @abstractmethod
    async def get_streak(self, student_id: str) -> Optional[StreakRecord]:
        ...

    @abstractmethod
    async def save_streak(self, record: StreakRecord) -> StreakRecord:
        ...

    @abstractmethod
    async def reset_streak_freezes(self, student_id: Optional[str], freezes: int) -> int:
        """Refill freezes for one student, or everybody when student_id is None; returns rows touched"""

    # ---------------------------------------------------------------- Rating

    @abstractmethod
    async def get_rating(self, student_id: str) -> Optional[RatingRecord]:
        ...

    @abstractmethod
    async def save_rating(self, record: RatingRecord) -> RatingRecord:
        ...

    @abstractmethod
    async def append_rating_history(self, entry: RatingHistoryEntry) -> None:
        ...

    @abstractmethod
    async def list_rating_history(self, student_id: str, limit: Optional[int] = None) -> list[RatingHistoryEntry]:
        """Newest first"""

    # ---------------------------------------------------------------- League

    @abstractmethod
    async def get_active_season(self) -> Optional[LeagueSeason]:
        ...

    @abstractmethod
    async def create_season(self, season: LeagueSeason) -> LeagueSeason:
        """Insert an active season unless one is already active, in which case return that one"""

    @abstractmethod
    async def save_season(self, season: LeagueSeason) -> LeagueSeason:
        ...

    @abstractmethod
    async def get_season(self, season_id: str) -> Optional[LeagueSeason]:
        ...

    @abstractmethod
    async def list_divisions(self) -> list[LeagueDivision]:
        """Ascending division_order"""

    @abstractmethod
    async def get_participation(self, student_id: str, season_id: str) -> Optional[LeagueParticipation]:
        ...

    @abstractmethod
    async def create_participation(self, participation: LeagueParticipation) -> LeagueParticipation:
        """Insert unless (student, season) exists, in which case return the existing row"""

    @abstractmethod
    async def update_participation(self, participation: LeagueParticipation) -> LeagueParticipation:
        ...

    @abstractmethod
    async def list_participations(
        self,
        season_id: str,
        division_id: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[LeagueParticipation]:
        """Ordered by weekly_xp descending, then joined_at"""

    @abstractmethod
    async def reset_season_participations(self, season_id: str) -> int:
        """Zero weekly_xp and flags for every participant; returns rows touched"""

    # ---------------------------------------------------------------- Quests

    @abstractmethod
    async def list_daily_quests(self, active_date: date) -> list[DailyQuest]:
        ...

    @abstractmethod
    async def create_daily_quest(self, quest: DailyQuest) -> DailyQuest:
        ...

    @abstractmethod
    async def get_daily_quest(self, quest_id: str) -> Optional[DailyQuest]:
        ...

    @abstractmethod
    async def get_quest_progress(self, student_id: str, quest_id: str) -> Optional[QuestProgress]:
        ...

    @abstractmethod
    async def create_quest_progress(self, progress: QuestProgress) -> QuestProgress:
        """Insert unless (student, quest) exists, in which case return the existing row"""

    @abstractmethod
    async def update_quest_progress(self, progress: QuestProgress) -> QuestProgress:
        ...

    # ---------------------------------------------------------------- Achievements

    @abstractmethod
    async def list_achievements(self) -> list[Achievement]:
        """Active catalog entries"""

    @abstractmethod
    async def list_student_achievements(self, student_id: str) -> list[StudentAchievement]:
        ...

    @abstractmethod
    async def create_student_achievement(self, award: StudentAchievement) -> Optional[StudentAchievement]:
        """Insert the award; None if the (student, achievement) pair already exists"""

    @abstractmethod
    async def delete_student_achievement(self, student_id: str, achievement_id: str) -> bool:
        """Withdraw an award whose XP could not be credited"""

    # ---------------------------------------------------------------- History

    @abstractmethod
    async def add_lesson_result(self, result: LessonResult) -> LessonResult:
        ...

    @abstractmethod
    async def list_lesson_results(self, student_id: str, since: Optional[datetime] = None) -> list[LessonResult]:
        """Oldest first"""

    # ---------------------------------------------------------------- Feed

    @abstractmethod
    async def create_activity(self, entry: ActivityEntry) -> ActivityEntry:
        ...

    @abstractmethod
    async def list_activity(self, student_id: str, limit: int = 20) -> list[ActivityEntry]:
        """Newest first"""
