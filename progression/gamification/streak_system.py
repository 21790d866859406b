"""
Streak Tracking System

Tracks consecutive calendar days with a completed lesson.

Streak Rules:
- First activity ever: streak = 1
- Same day again: no change
- Next day: streak + 1, longest streak keeps the max
- Gap of two or more days: streak resets to 1
- A freeze covers one missed day by moving the last activity date to today

Milestones at 3, 7, 14, 30, 50, 100 and 365 days award XP and a badge name.
"""

from datetime import date
from typing import Any, Dict, List, Optional
import logging

from progression import config
from progression.db.store import LedgerStore
from progression.exceptions import NoFreezeAvailable
from progression.gamification.activity_feed import ActivityFeed
from progression.gamification.locks import KeyedLock, student_locks
from progression.gamification.xp_system import XPSystem
from progression.models import StreakRecord, TransactionType
from progression.observability.metrics import record_streak_milestone
from progression.utils.datetime_helpers import days_between, today_utc

logger = logging.getLogger(__name__)

# milestone days -> (xp reward, badge name)
STREAK_MILESTONES: Dict[int, tuple[int, str]] = {
    3: (50, "Getting Started"),
    7: (100, "Week Warrior"),
    14: (200, "Two Week Champion"),
    30: (500, "Monthly Master"),
    50: (750, "Persistent Learner"),
    100: (1000, "Century Scholar"),
    365: (2000, "Year-long Legend"),
}


def crossed_milestones(old_streak: int, new_streak: int) -> List[int]:
    """Milestones m with old_streak < m <= new_streak"""
    return [m for m in sorted(STREAK_MILESTONES) if old_streak < m <= new_streak]


def apply_activity(record: StreakRecord, today: date) -> StreakRecord:
    """Pure streak transition for activity on today"""
    updated = record.model_copy()

    if record.last_activity_date is None:
        updated.current_streak = 1
    else:
        gap = days_between(record.last_activity_date, today)
        if gap <= 0:
            # Same day (or a clock that went backwards): nothing to count
            return updated
        if gap == 1:
            updated.current_streak = record.current_streak + 1
        else:
            updated.current_streak = 1

    updated.longest_streak = max(record.longest_streak, updated.current_streak)
    updated.last_activity_date = today
    return updated


def build_streak_stats(record: Optional[StreakRecord], today: date) -> Dict[str, Any]:
    """
    Display statistics for a streak record

    Status:
    - inactive: no record or no activity yet
    - active_today: studied today
    - at_risk: last studied yesterday (a freeze can still save it)
    - broken: last studied two or more days ago
    """
    if record is None or record.last_activity_date is None:
        return {
            "current_streak": record.current_streak if record else 0,
            "longest_streak": record.longest_streak if record else 0,
            "freezes_available": record.freezes_available if record else config.STREAK_FREEZES_DEFAULT,
            "freezes_used": record.freezes_used if record else 0,
            "last_activity_date": None,
            "streak_status": "inactive",
            "days_until_streak_loss": 0,
            "can_use_freeze": False,
        }

    gap = days_between(record.last_activity_date, today)
    if gap <= 0:
        status, days_until_loss = "active_today", 1
    elif gap == 1:
        status, days_until_loss = "at_risk", 0
    else:
        status, days_until_loss = "broken", 0

    return {
        "current_streak": record.current_streak,
        "longest_streak": record.longest_streak,
        "freezes_available": record.freezes_available,
        "freezes_used": record.freezes_used,
        "last_activity_date": record.last_activity_date,
        "streak_status": status,
        "days_until_streak_loss": days_until_loss,
        "can_use_freeze": record.freezes_available > 0 and status == "at_risk",
    }


class StreakSystem:
    """Maintains per-student streak records and freeze tokens"""

    def __init__(
        self,
        store: LedgerStore,
        xp_system: XPSystem,
        activity_feed: Optional[ActivityFeed] = None,
        locks: Optional[KeyedLock] = None,
    ):
        self.store = store
        self.xp_system = xp_system
        self.activity_feed = activity_feed or ActivityFeed(store)
        self.locks = locks or student_locks

    async def _get_or_create(self, student_id: str) -> StreakRecord:
        record = await self.store.get_streak(student_id)
        if record is None:
            record = StreakRecord(student_id=student_id, freezes_available=config.STREAK_FREEZES_DEFAULT)
        return record

    async def record_activity(self, student_id: str, today: Optional[date] = None) -> StreakRecord:
        """
        Record that the student studied today and award crossed milestones

        Milestone XP is fail-soft: the streak update is already saved and a
        failed award is logged, not raised.
        """
        today = today or today_utc()

        async with self.locks.hold(student_id):
            record = await self._get_or_create(student_id)
            if record.last_activity_date is not None and days_between(record.last_activity_date, today) <= 0:
                logger.debug(f"Student {student_id} already active on {today}, streak unchanged")
                return record

            old_streak = record.current_streak
            updated = apply_activity(record, today)
            saved = await self.store.save_streak(updated)
            logger.info(
                f"Student {student_id} streak {old_streak} -> {saved.current_streak} "
                f"(longest {saved.longest_streak})"
            )

            for milestone in crossed_milestones(old_streak, saved.current_streak):
                await self._award_milestone(student_id, milestone)

            return saved

    async def _award_milestone(self, student_id: str, milestone: int) -> None:
        xp_reward, badge = STREAK_MILESTONES[milestone]
        try:
            await self.xp_system.award_xp(
                student_id,
                xp_reward,
                TransactionType.STREAK_MILESTONE.value,
                f"{milestone}-day streak milestone: {badge}",
                {"streak_days": milestone, "badge": badge},
            )
        except Exception as e:
            logger.error(f"Failed to award {milestone}-day streak milestone to {student_id}: {e}", exc_info=True)
            return

        record_streak_milestone(milestone)
        logger.info(f"Student {student_id} achieved {milestone}-day streak milestone: {badge} (+{xp_reward} XP)")
        await self.activity_feed.log_streak_milestone(student_id, milestone, badge)

    async def use_freeze(self, student_id: str, today: Optional[date] = None) -> StreakRecord:
        """
        Spend one freeze token: last activity moves to today, streak unchanged

        Raises:
            NoFreezeAvailable: the student has no freezes left
        """
        today = today or today_utc()

        async with self.locks.hold(student_id):
            record = await self._get_or_create(student_id)
            if record.freezes_available <= 0:
                raise NoFreezeAvailable(student_id)

            record.freezes_available -= 1
            record.freezes_used += 1
            record.last_activity_date = today
            saved = await self.store.save_streak(record)
            logger.info(f"Student {student_id} used a streak freeze, {saved.freezes_available} left")
            return saved

    async def get_streak_stats(self, student_id: str, today: Optional[date] = None) -> Dict[str, Any]:
        record = await self.store.get_streak(student_id)
        return build_streak_stats(record, today or today_utc())

    async def reset_freezes(self, student_id: Optional[str] = None) -> int:
        """Monthly refill for one student or everyone"""
        touched = await self.store.reset_streak_freezes(student_id, config.STREAK_FREEZES_DEFAULT)
        target = f"student {student_id}" if student_id else "all students"
        logger.info(f"Streak freezes reset for {target} ({touched} records)")
        return touched
