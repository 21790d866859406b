"""
In-memory ledger store

Backs tests and single-process deployments. Every mutation completes without
yielding to the event loop, so each call is atomic with respect to other
coroutines. Records are copied on the way in and out so callers never share
state with the store.
"""

import logging
from datetime import date, datetime
from typing import Optional, Iterable

from progression.db.store import LedgerStore
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
from progression.utils.datetime_helpers import now_utc

logger = logging.getLogger(__name__)


def _copy(model):
    return model.model_copy(deep=True) if model is not None else None


class InMemoryStore(LedgerStore):
    """Dictionary-backed implementation of LedgerStore"""

    def __init__(
        self,
        divisions: Optional[Iterable[LeagueDivision]] = None,
        achievements: Optional[Iterable[Achievement]] = None,
    ):
        if divisions is None:
            from progression.gamification.league_system import DEFAULT_DIVISIONS
            divisions = DEFAULT_DIVISIONS
        if achievements is None:
            from progression.gamification.achievement_system import DEFAULT_ACHIEVEMENTS
            achievements = DEFAULT_ACHIEVEMENTS

        from progression.gamification.league_system import validate_division_partition

        self._divisions = sorted((_copy(d) for d in divisions), key=lambda d: d.division_order)
        validate_division_partition(self._divisions)
        self._achievements = {a.id: _copy(a) for a in achievements}

        self._xp: dict[str, XPRecord] = {}
        self._xp_transactions: list[XPTransaction] = []
        self._streaks: dict[str, StreakRecord] = {}
        self._ratings: dict[str, RatingRecord] = {}
        self._rating_history: list[RatingHistoryEntry] = []
        self._seasons: dict[str, LeagueSeason] = {}
        self._participations: dict[tuple[str, str], LeagueParticipation] = {}
        self._quests: dict[str, DailyQuest] = {}
        self._quest_progress: dict[tuple[str, str], QuestProgress] = {}
        self._student_achievements: dict[tuple[str, str], StudentAchievement] = {}
        self._lesson_results: list[LessonResult] = []
        self._activity: list[ActivityEntry] = []

        logger.debug(
            f"InMemoryStore initialized with {len(self._divisions)} divisions "
            f"and {len(self._achievements)} achievements"
        )

    # XP

    async def get_xp_record(self, student_id: str) -> Optional[XPRecord]:
        return _copy(self._xp.get(student_id))

    async def create_xp_record(self, student_id: str) -> XPRecord:
        if student_id not in self._xp:
            self._xp[student_id] = XPRecord(student_id=student_id)
        return _copy(self._xp[student_id])

    async def append_xp_transaction(self, transaction: XPTransaction) -> XPRecord:
        record = self._xp.get(transaction.student_id)
        if record is None:
            record = XPRecord(student_id=transaction.student_id)
            self._xp[transaction.student_id] = record
        self._xp_transactions.append(_copy(transaction))
        record.total_xp += transaction.xp_amount
        record.updated_at = now_utc()
        return _copy(record)

    async def set_xp_level(self, student_id: str, current_level: int, xp_to_next_level: int) -> XPRecord:
        record = self._xp.get(student_id)
        if record is None:
            record = XPRecord(student_id=student_id)
            self._xp[student_id] = record
        record.current_level = current_level
        record.xp_to_next_level = xp_to_next_level
        record.updated_at = now_utc()
        return _copy(record)

    async def list_xp_transactions(
        self,
        student_id: str,
        since: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> list[XPTransaction]:
        rows = [
            t for t in self._xp_transactions
            if t.student_id == student_id and (since is None or t.created_at >= since)
        ]
        rows.reverse()
        if limit is not None:
            rows = rows[:limit]
        return [_copy(t) for t in rows]

    # Streak

    async def get_streak(self, student_id: str) -> Optional[StreakRecord]:
        return _copy(self._streaks.get(student_id))

    async def save_streak(self, record: StreakRecord) -> StreakRecord:
        stored = record.model_copy(update={"updated_at": now_utc()}, deep=True)
        self._streaks[record.student_id] = stored
        return _copy(stored)

    async def reset_streak_freezes(self, student_id: Optional[str], freezes: int) -> int:
        touched = 0
        for record in self._streaks.values():
            if student_id is None or record.student_id == student_id:
                record.freezes_available = freezes
                record.freezes_used = 0
                record.updated_at = now_utc()
                touched += 1
        return touched

    # Rating

    async def get_rating(self, student_id: str) -> Optional[RatingRecord]:
        return _copy(self._ratings.get(student_id))

    async def save_rating(self, record: RatingRecord) -> RatingRecord:
        self._ratings[record.student_id] = _copy(record)
        return _copy(record)

    async def append_rating_history(self, entry: RatingHistoryEntry) -> None:
        self._rating_history.append(_copy(entry))

    async def list_rating_history(self, student_id: str, limit: Optional[int] = None) -> list[RatingHistoryEntry]:
        rows = [e for e in reversed(self._rating_history) if e.student_id == student_id]
        if limit is not None:
            rows = rows[:limit]
        return [_copy(e) for e in rows]

    # League

    async def get_active_season(self) -> Optional[LeagueSeason]:
        for season in self._seasons.values():
            if season.is_active:
                return _copy(season)
        return None

    async def create_season(self, season: LeagueSeason) -> LeagueSeason:
        active = await self.get_active_season()
        if active is not None:
            return active
        self._seasons[season.id] = _copy(season)
        return _copy(season)

    async def save_season(self, season: LeagueSeason) -> LeagueSeason:
        self._seasons[season.id] = _copy(season)
        return _copy(season)

    async def get_season(self, season_id: str) -> Optional[LeagueSeason]:
        return _copy(self._seasons.get(season_id))

    async def list_divisions(self) -> list[LeagueDivision]:
        return [_copy(d) for d in self._divisions]

    async def get_participation(self, student_id: str, season_id: str) -> Optional[LeagueParticipation]:
        return _copy(self._participations.get((student_id, season_id)))

    async def create_participation(self, participation: LeagueParticipation) -> LeagueParticipation:
        key = (participation.student_id, participation.season_id)
        if key not in self._participations:
            self._participations[key] = _copy(participation)
        return _copy(self._participations[key])

    async def update_participation(self, participation: LeagueParticipation) -> LeagueParticipation:
        key = (participation.student_id, participation.season_id)
        self._participations[key] = _copy(participation)
        return _copy(participation)

    async def list_participations(
        self,
        season_id: str,
        division_id: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[LeagueParticipation]:
        rows = [
            p for p in self._participations.values()
            if p.season_id == season_id and (division_id is None or p.division_id == division_id)
        ]
        rows.sort(key=lambda p: (-p.weekly_xp, p.joined_at))
        end = None if limit is None else offset + limit
        return [_copy(p) for p in rows[offset:end]]

    async def reset_season_participations(self, season_id: str) -> int:
        touched = 0
        for participation in self._participations.values():
            if participation.season_id == season_id:
                participation.weekly_xp = 0
                participation.promoted = False
                participation.demoted = False
                touched += 1
        return touched

    # Quests

    async def list_daily_quests(self, active_date: date) -> list[DailyQuest]:
        rows = [q for q in self._quests.values() if q.active_date == active_date]
        rows.sort(key=lambda q: q.created_at)
        return [_copy(q) for q in rows]

    async def create_daily_quest(self, quest: DailyQuest) -> DailyQuest:
        self._quests[quest.id] = _copy(quest)
        return _copy(quest)

    async def get_daily_quest(self, quest_id: str) -> Optional[DailyQuest]:
        return _copy(self._quests.get(quest_id))

    async def get_quest_progress(self, student_id: str, quest_id: str) -> Optional[QuestProgress]:
        return _copy(self._quest_progress.get((student_id, quest_id)))

    async def create_quest_progress(self, progress: QuestProgress) -> QuestProgress:
        key = (progress.student_id, progress.quest_id)
        if key not in self._quest_progress:
            self._quest_progress[key] = _copy(progress)
        return _copy(self._quest_progress[key])

    async def update_quest_progress(self, progress: QuestProgress) -> QuestProgress:
        self._quest_progress[(progress.student_id, progress.quest_id)] = _copy(progress)
        return _copy(progress)

    # Achievements

    async def list_achievements(self) -> list[Achievement]:
        return [_copy(a) for a in self._achievements.values() if a.is_active]

    async def list_student_achievements(self, student_id: str) -> list[StudentAchievement]:
        return [_copy(a) for (sid, _), a in self._student_achievements.items() if sid == student_id]

    async def create_student_achievement(self, award: StudentAchievement) -> Optional[StudentAchievement]:
        key = (award.student_id, award.achievement_id)
        if key in self._student_achievements:
            return None
        self._student_achievements[key] = _copy(award)
        return _copy(award)

    async def delete_student_achievement(self, student_id: str, achievement_id: str) -> bool:
        return self._student_achievements.pop((student_id, achievement_id), None) is not None

    # History

    async def add_lesson_result(self, result: LessonResult) -> LessonResult:
        self._lesson_results.append(_copy(result))
        return _copy(result)

    async def list_lesson_results(self, student_id: str, since: Optional[datetime] = None) -> list[LessonResult]:
        rows = [
            r for r in self._lesson_results
            if r.student_id == student_id and (since is None or r.timestamp >= since)
        ]
        rows.sort(key=lambda r: r.timestamp)
        return [_copy(r) for r in rows]

    # Feed

    async def create_activity(self, entry: ActivityEntry) -> ActivityEntry:
        self._activity.append(_copy(entry))
        return _copy(entry)

    async def list_activity(self, student_id: str, limit: int = 20) -> list[ActivityEntry]:
        rows = [e for e in reversed(self._activity) if e.student_id == student_id]
        return [_copy(e) for e in rows[:limit]]
