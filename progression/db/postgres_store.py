"""
Postgres ledger store

Every public method runs through the store circuit breaker; psycopg errors
and open-breaker rejections surface as StoreUnavailable.
"""

import json
import logging
from datetime import date, datetime
from functools import wraps
from typing import Optional

import psycopg
import pybreaker

from progression.db.connection import Database, db
from progression.db.store import LedgerStore
from progression.exceptions import wrap_store_exception
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
from progression.resilience.circuit_breaker import STORE_BREAKER, with_circuit_breaker

logger = logging.getLogger(__name__)

XP_COLUMNS = "student_id, total_xp, current_level, xp_to_next_level, created_at, updated_at"
STREAK_COLUMNS = (
    "student_id, current_streak, longest_streak, last_activity_date, "
    "freezes_available, freezes_used, created_at, updated_at"
)
SEASON_COLUMNS = "id, season_name, start_date, end_date, is_active, rankings_finalized, created_at"
PARTICIPATION_COLUMNS = (
    "id, student_id, season_id, division_id, weekly_xp, promoted, demoted, rank_in_division, joined_at"
)
QUEST_COLUMNS = (
    "id, quest_type, title, description, requirements, xp_reward, streak_shield_reward, active_date, created_at"
)
PROGRESS_COLUMNS = (
    "id, student_id, quest_id, progress, target_progress, completed, completed_at, metadata, started_at"
)


def _store_operation(func):
    """Run a store method through the breaker and translate driver errors"""
    guarded = with_circuit_breaker(STORE_BREAKER)(func)

    @wraps(func)
    async def wrapper(self, *args, **kwargs):
        try:
            return await guarded(self, *args, **kwargs)
        except (psycopg.Error, pybreaker.CircuitBreakerError) as e:
            student_id = args[0] if args and isinstance(args[0], str) else None
            raise wrap_store_exception(e, operation=func.__name__, student_id=student_id) from e
    return wrapper


class PostgresStore(LedgerStore):
    """LedgerStore backed by Postgres through the shared connection pool"""

    def __init__(self, database: Database = db):
        self._db = database

    async def _fetchone(self, query: str, params: tuple = (), commit: bool = False) -> Optional[dict]:
        async with self._db.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(query, params)
                row = await cur.fetchone()
            if commit:
                await conn.commit()
            return row

    async def _fetchall(self, query: str, params: tuple = ()) -> list[dict]:
        async with self._db.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(query, params)
                return await cur.fetchall()

    async def _execute(self, query: str, params: tuple = ()) -> int:
        async with self._db.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(query, params)
                rowcount = cur.rowcount
            await conn.commit()
            return rowcount

    # ==========================================
    # XP
    # ==========================================

    @_store_operation
    async def get_xp_record(self, student_id: str) -> Optional[XPRecord]:
        row = await self._fetchone(
            f"SELECT {XP_COLUMNS} FROM student_xp WHERE student_id = %s",
            (student_id,)
        )
        return XPRecord(**row) if row else None

    @_store_operation
    async def create_xp_record(self, student_id: str) -> XPRecord:
        async with self._db.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    """
                    INSERT INTO student_xp (student_id, total_xp, current_level, xp_to_next_level)
                    VALUES (%s, 0, 1, 100)
                    ON CONFLICT (student_id) DO NOTHING
                    """,
                    (student_id,)
                )
                await cur.execute(
                    f"SELECT {XP_COLUMNS} FROM student_xp WHERE student_id = %s",
                    (student_id,)
                )
                row = await cur.fetchone()
            await conn.commit()
        return XPRecord(**row)

    @_store_operation
    async def append_xp_transaction(self, transaction: XPTransaction) -> XPRecord:
        async with self._db.transaction() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    """
                    INSERT INTO xp_transactions
                        (id, student_id, xp_amount, transaction_type, description, metadata, source_id, created_at)
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                    """,
                    (
                        transaction.id,
                        transaction.student_id,
                        transaction.xp_amount,
                        transaction.transaction_type,
                        transaction.description,
                        json.dumps(transaction.metadata),
                        transaction.source_id,
                        transaction.created_at,
                    )
                )
                await cur.execute(
                    f"""
                    INSERT INTO student_xp (student_id, total_xp)
                    VALUES (%s, %s)
                    ON CONFLICT (student_id) DO UPDATE
                    SET total_xp = student_xp.total_xp + EXCLUDED.total_xp,
                        updated_at = NOW()
                    RETURNING {XP_COLUMNS}
                    """,
                    (transaction.student_id, transaction.xp_amount)
                )
                row = await cur.fetchone()
        return XPRecord(**row)

    @_store_operation
    async def set_xp_level(self, student_id: str, current_level: int, xp_to_next_level: int) -> XPRecord:
        row = await self._fetchone(
            f"""
            UPDATE student_xp
            SET current_level = %s, xp_to_next_level = %s, updated_at = NOW()
            WHERE student_id = %s
            RETURNING {XP_COLUMNS}
            """,
            (current_level, xp_to_next_level, student_id),
            commit=True
        )
        return XPRecord(**row)

    @_store_operation
    async def list_xp_transactions(
        self,
        student_id: str,
        since: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> list[XPTransaction]:
        query = """
            SELECT id, student_id, xp_amount, transaction_type, description, metadata, source_id, created_at
            FROM xp_transactions
            WHERE student_id = %s
        """
        params: list = [student_id]
        if since is not None:
            query += " AND created_at >= %s"
            params.append(since)
        query += " ORDER BY created_at DESC"
        if limit is not None:
            query += " LIMIT %s"
            params.append(limit)
        rows = await self._fetchall(query, tuple(params))
        return [XPTransaction(**row) for row in rows]

    # ==========================================
    # Streak
    # ==========================================

    @_store_operation
    async def get_streak(self, student_id: str) -> Optional[StreakRecord]:
        row = await self._fetchone(
            f"SELECT {STREAK_COLUMNS} FROM student_streaks WHERE student_id = %s",
            (student_id,)
        )
        return StreakRecord(**row) if row else None

    @_store_operation
    async def save_streak(self, record: StreakRecord) -> StreakRecord:
        row = await self._fetchone(
            f"""
            INSERT INTO student_streaks
                (student_id, current_streak, longest_streak, last_activity_date, freezes_available, freezes_used)
            VALUES (%s, %s, %s, %s, %s, %s)
            ON CONFLICT (student_id) DO UPDATE
            SET current_streak = EXCLUDED.current_streak,
                longest_streak = EXCLUDED.longest_streak,
                last_activity_date = EXCLUDED.last_activity_date,
                freezes_available = EXCLUDED.freezes_available,
                freezes_used = EXCLUDED.freezes_used,
                updated_at = NOW()
            RETURNING {STREAK_COLUMNS}
            """,
            (
                record.student_id,
                record.current_streak,
                record.longest_streak,
                record.last_activity_date,
                record.freezes_available,
                record.freezes_used,
            ),
            commit=True
        )
        return StreakRecord(**row)

    @_store_operation
    async def reset_streak_freezes(self, student_id: Optional[str], freezes: int) -> int:
        if student_id is None:
            return await self._execute(
                "UPDATE student_streaks SET freezes_available = %s, freezes_used = 0, updated_at = NOW()",
                (freezes,)
            )
        return await self._execute(
            """
            UPDATE student_streaks
            SET freezes_available = %s, freezes_used = 0, updated_at = NOW()
            WHERE student_id = %s
            """,
            (freezes, student_id)
        )

    # ==========================================
    # Rating
    # ==========================================

    @_store_operation
    async def get_rating(self, student_id: str) -> Optional[RatingRecord]:
        row = await self._fetchone(
            "SELECT student_id, rating, updated_at FROM student_ratings WHERE student_id = %s",
            (student_id,)
        )
        return RatingRecord(**row) if row else None

    @_store_operation
    async def save_rating(self, record: RatingRecord) -> RatingRecord:
        row = await self._fetchone(
            """
            INSERT INTO student_ratings (student_id, rating)
            VALUES (%s, %s)
            ON CONFLICT (student_id) DO UPDATE
            SET rating = EXCLUDED.rating, updated_at = NOW()
            RETURNING student_id, rating, updated_at
            """,
            (record.student_id, record.rating),
            commit=True
        )
        return RatingRecord(**row)

    @_store_operation
    async def append_rating_history(self, entry: RatingHistoryEntry) -> None:
        await self._execute(
            """
            INSERT INTO rating_history
                (student_id, lesson_id, previous_rating, delta, new_rating, performance, time_taken, streak, created_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
            """,
            (
                entry.student_id,
                entry.lesson_id,
                entry.previous_rating,
                entry.delta,
                entry.new_rating,
                entry.performance,
                entry.time_taken,
                entry.streak,
                entry.created_at,
            )
        )

    @_store_operation
    async def list_rating_history(self, student_id: str, limit: Optional[int] = None) -> list[RatingHistoryEntry]:
        query = """
            SELECT student_id, lesson_id, previous_rating, delta, new_rating, performance, time_taken, streak, created_at
            FROM rating_history
            WHERE student_id = %s
            ORDER BY created_at DESC
        """
        params: tuple = (student_id,)
        if limit is not None:
            query += " LIMIT %s"
            params = (student_id, limit)
        rows = await self._fetchall(query, params)
        return [RatingHistoryEntry(**row) for row in rows]

    # ==========================================
    # League
    # ==========================================

    @_store_operation
    async def get_active_season(self) -> Optional[LeagueSeason]:
        row = await self._fetchone(f"SELECT {SEASON_COLUMNS} FROM league_seasons WHERE is_active LIMIT 1")
        return LeagueSeason(**row) if row else None

    @_store_operation
    async def create_season(self, season: LeagueSeason) -> LeagueSeason:
        async with self._db.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    """
                    INSERT INTO league_seasons (id, season_name, start_date, end_date, is_active, rankings_finalized)
                    VALUES (%s, %s, %s, %s, TRUE, FALSE)
                    ON CONFLICT DO NOTHING
                    """,
                    (season.id, season.season_name, season.start_date, season.end_date)
                )
                await cur.execute(f"SELECT {SEASON_COLUMNS} FROM league_seasons WHERE is_active LIMIT 1")
                row = await cur.fetchone()
            await conn.commit()
        return LeagueSeason(**row)

    @_store_operation
    async def save_season(self, season: LeagueSeason) -> LeagueSeason:
        row = await self._fetchone(
            f"""
            UPDATE league_seasons
            SET season_name = %s, start_date = %s, end_date = %s, is_active = %s, rankings_finalized = %s
            WHERE id = %s
            RETURNING {SEASON_COLUMNS}
            """,
            (
                season.season_name,
                season.start_date,
                season.end_date,
                season.is_active,
                season.rankings_finalized,
                season.id,
            ),
            commit=True
        )
        return LeagueSeason(**row)

    @_store_operation
    async def get_season(self, season_id: str) -> Optional[LeagueSeason]:
        row = await self._fetchone(f"SELECT {SEASON_COLUMNS} FROM league_seasons WHERE id = %s", (season_id,))
        return LeagueSeason(**row) if row else None

    @_store_operation
    async def list_divisions(self) -> list[LeagueDivision]:
        rows = await self._fetchall(
            """
            SELECT id, name, division_order, min_xp_per_week, max_xp_per_week, icon
            FROM league_divisions
            ORDER BY division_order ASC
            """
        )
        return [LeagueDivision(**row) for row in rows]

    @_store_operation
    async def get_participation(self, student_id: str, season_id: str) -> Optional[LeagueParticipation]:
        row = await self._fetchone(
            f"SELECT {PARTICIPATION_COLUMNS} FROM league_participations WHERE student_id = %s AND season_id = %s",
            (student_id, season_id)
        )
        return LeagueParticipation(**row) if row else None

    @_store_operation
    async def create_participation(self, participation: LeagueParticipation) -> LeagueParticipation:
        async with self._db.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    """
                    INSERT INTO league_participations (id, student_id, season_id, division_id, weekly_xp)
                    VALUES (%s, %s, %s, %s, %s)
                    ON CONFLICT (student_id, season_id) DO NOTHING
                    """,
                    (
                        participation.id,
                        participation.student_id,
                        participation.season_id,
                        participation.division_id,
                        participation.weekly_xp,
                    )
                )
                await cur.execute(
                    f"SELECT {PARTICIPATION_COLUMNS} FROM league_participations WHERE student_id = %s AND season_id = %s",
                    (participation.student_id, participation.season_id)
                )
                row = await cur.fetchone()
            await conn.commit()
        return LeagueParticipation(**row)

    @_store_operation
    async def update_participation(self, participation: LeagueParticipation) -> LeagueParticipation:
        row = await self._fetchone(
            f"""
            UPDATE league_participations
            SET division_id = %s, weekly_xp = %s, promoted = %s, demoted = %s, rank_in_division = %s
            WHERE id = %s
            RETURNING {PARTICIPATION_COLUMNS}
            """,
            (
                participation.division_id,
                participation.weekly_xp,
                participation.promoted,
                participation.demoted,
                participation.rank_in_division,
                participation.id,
            ),
            commit=True
        )
        return LeagueParticipation(**row)

    @_store_operation
    async def list_participations(
        self,
        season_id: str,
        division_id: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[LeagueParticipation]:
        query = f"SELECT {PARTICIPATION_COLUMNS} FROM league_participations WHERE season_id = %s"
        params: list = [season_id]
        if division_id is not None:
            query += " AND division_id = %s"
            params.append(division_id)
        query += " ORDER BY weekly_xp DESC, joined_at ASC"
        if limit is not None:
            query += " LIMIT %s"
            params.append(limit)
        if offset:
            query += " OFFSET %s"
            params.append(offset)
        rows = await self._fetchall(query, tuple(params))
        return [LeagueParticipation(**row) for row in rows]

    @_store_operation
    async def reset_season_participations(self, season_id: str) -> int:
        return await self._execute(
            """
            UPDATE league_participations
            SET weekly_xp = 0, promoted = FALSE, demoted = FALSE
            WHERE season_id = %s
            """,
            (season_id,)
        )

    # ==========================================
    # Quests
    # ==========================================

    @_store_operation
    async def list_daily_quests(self, active_date: date) -> list[DailyQuest]:
        rows = await self._fetchall(
            f"SELECT {QUEST_COLUMNS} FROM daily_quests WHERE active_date = %s ORDER BY created_at ASC",
            (active_date,)
        )
        return [DailyQuest(**row) for row in rows]

    @_store_operation
    async def create_daily_quest(self, quest: DailyQuest) -> DailyQuest:
        row = await self._fetchone(
            f"""
            INSERT INTO daily_quests
                (id, quest_type, title, description, requirements, xp_reward, streak_shield_reward, active_date, created_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING {QUEST_COLUMNS}
            """,
            (
                quest.id,
                quest.quest_type,
                quest.title,
                quest.description,
                json.dumps(quest.requirements),
                quest.xp_reward,
                quest.streak_shield_reward,
                quest.active_date,
                quest.created_at,
            ),
            commit=True
        )
        return DailyQuest(**row)

    @_store_operation
    async def get_daily_quest(self, quest_id: str) -> Optional[DailyQuest]:
        row = await self._fetchone(f"SELECT {QUEST_COLUMNS} FROM daily_quests WHERE id = %s", (quest_id,))
        return DailyQuest(**row) if row else None

    @_store_operation
    async def get_quest_progress(self, student_id: str, quest_id: str) -> Optional[QuestProgress]:
        row = await self._fetchone(
            f"SELECT {PROGRESS_COLUMNS} FROM quest_progress WHERE student_id = %s AND quest_id = %s",
            (student_id, quest_id)
        )
        return QuestProgress(**row) if row else None

    @_store_operation
    async def create_quest_progress(self, progress: QuestProgress) -> QuestProgress:
        async with self._db.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    """
                    INSERT INTO quest_progress (id, student_id, quest_id, progress, target_progress, metadata)
                    VALUES (%s, %s, %s, %s, %s, %s)
                    ON CONFLICT (student_id, quest_id) DO NOTHING
                    """,
                    (
                        progress.id,
                        progress.student_id,
                        progress.quest_id,
                        progress.progress,
                        progress.target_progress,
                        json.dumps(progress.metadata),
                    )
                )
                await cur.execute(
                    f"SELECT {PROGRESS_COLUMNS} FROM quest_progress WHERE student_id = %s AND quest_id = %s",
                    (progress.student_id, progress.quest_id)
                )
                row = await cur.fetchone()
            await conn.commit()
        return QuestProgress(**row)

    @_store_operation
    async def update_quest_progress(self, progress: QuestProgress) -> QuestProgress:
        row = await self._fetchone(
            f"""
            UPDATE quest_progress
            SET progress = %s, completed = %s, completed_at = %s, metadata = %s
            WHERE id = %s
            RETURNING {PROGRESS_COLUMNS}
            """,
            (
                progress.progress,
                progress.completed,
                progress.completed_at,
                json.dumps(progress.metadata),
                progress.id,
            ),
            commit=True
        )
        return QuestProgress(**row)

    # ==========================================
    # Achievements
    # ==========================================

    @_store_operation
    async def list_achievements(self) -> list[Achievement]:
        rows = await self._fetchall(
            """
            SELECT id, name, title, description, category, xp_reward, badge_icon, is_active
            FROM achievements
            WHERE is_active
            ORDER BY id
            """
        )
        return [Achievement(**row) for row in rows]

    @_store_operation
    async def list_student_achievements(self, student_id: str) -> list[StudentAchievement]:
        rows = await self._fetchall(
            """
            SELECT student_id, achievement_id, earned_at, metadata
            FROM student_achievements
            WHERE student_id = %s
            ORDER BY earned_at ASC
            """,
            (student_id,)
        )
        return [StudentAchievement(**row) for row in rows]

    @_store_operation
    async def create_student_achievement(self, award: StudentAchievement) -> Optional[StudentAchievement]:
        row = await self._fetchone(
            """
            INSERT INTO student_achievements (student_id, achievement_id, earned_at, metadata)
            VALUES (%s, %s, %s, %s)
            ON CONFLICT (student_id, achievement_id) DO NOTHING
            RETURNING student_id, achievement_id, earned_at, metadata
            """,
            (award.student_id, award.achievement_id, award.earned_at, json.dumps(award.metadata)),
            commit=True
        )
        return StudentAchievement(**row) if row else None

    @_store_operation
    async def delete_student_achievement(self, student_id: str, achievement_id: str) -> bool:
        deleted = await self._execute(
            "DELETE FROM student_achievements WHERE student_id = %s AND achievement_id = %s",
            (student_id, achievement_id)
        )
        return deleted > 0

    # ==========================================
    # History
    # ==========================================

    @_store_operation
    async def add_lesson_result(self, result: LessonResult) -> LessonResult:
        await self._execute(
            """
            INSERT INTO lesson_results (id, student_id, lesson_id, subject, score, total_points, time_taken, timestamp)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
            """,
            (
                result.id,
                result.student_id,
                result.lesson_id,
                result.subject,
                result.score,
                result.total_points,
                result.time_taken,
                result.timestamp,
            )
        )
        return result

    @_store_operation
    async def list_lesson_results(self, student_id: str, since: Optional[datetime] = None) -> list[LessonResult]:
        query = """
            SELECT id, student_id, lesson_id, subject, score, total_points, time_taken, timestamp
            FROM lesson_results
            WHERE student_id = %s
        """
        params: list = [student_id]
        if since is not None:
            query += " AND timestamp >= %s"
            params.append(since)
        query += " ORDER BY timestamp ASC"
        rows = await self._fetchall(query, tuple(params))
        return [LessonResult(**row) for row in rows]

    # ==========================================
    # Feed
    # ==========================================

    @_store_operation
    async def create_activity(self, entry: ActivityEntry) -> ActivityEntry:
        await self._execute(
            """
            INSERT INTO activity_feed (id, student_id, activity_type, title, description, metadata, is_public, created_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
            """,
            (
                entry.id,
                entry.student_id,
                entry.activity_type,
                entry.title,
                entry.description,
                json.dumps(entry.metadata),
                entry.is_public,
                entry.created_at,
            )
        )
        return entry

    @_store_operation
    async def list_activity(self, student_id: str, limit: int = 20) -> list[ActivityEntry]:
        rows = await self._fetchall(
            """
            SELECT id, student_id, activity_type, title, description, metadata, is_public, created_at
            FROM activity_feed
            WHERE student_id = %s
            ORDER BY created_at DESC
            LIMIT %s
            """,
            (student_id, limit)
        )
        return [ActivityEntry(**row) for row in rows]
