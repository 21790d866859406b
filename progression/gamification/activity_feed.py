"""
Activity feed hooks

Level-ups, streak milestones, quest completions, achievement awards and
league division changes each produce a human-readable feed entry. Logging
to the feed never fails the operation that triggered it.
"""

import logging
from typing import Any, Optional

from progression.db.store import LedgerStore
from progression.models import ActivityEntry, ActivityType

logger = logging.getLogger(__name__)


class ActivityFeed:
    """Writes feed entries through the store, swallowing and logging failures"""

    def __init__(self, store: LedgerStore):
        self.store = store

    async def log_activity(
        self,
        student_id: str,
        activity_type: str,
        title: str,
        description: str = "",
        metadata: Optional[dict[str, Any]] = None,
        is_public: bool = True,
    ) -> Optional[ActivityEntry]:
        entry = ActivityEntry(
            student_id=student_id,
            activity_type=activity_type,
            title=title,
            description=description,
            metadata=metadata or {},
            is_public=is_public,
        )
        try:
            return await self.store.create_activity(entry)
        except Exception as e:
            logger.error(f"Failed to log {activity_type} activity for student {student_id}: {e}", exc_info=True)
            return None

    async def log_level_up(
        self,
        student_id: str,
        new_level: int,
        level_title: str,
        total_xp: int,
    ) -> Optional[ActivityEntry]:
        return await self.log_activity(
            student_id,
            ActivityType.LEVEL_UP.value,
            f"Reached Level {new_level}: {level_title}",
            f"Leveled up to level {new_level} with {total_xp} total XP",
            {"new_level": new_level, "level_title": level_title, "total_xp": total_xp},
        )

    async def log_streak_milestone(self, student_id: str, streak_days: int, badge: str) -> Optional[ActivityEntry]:
        return await self.log_activity(
            student_id,
            ActivityType.STREAK_MILESTONE.value,
            f"{streak_days}-Day Streak!",
            f"Earned the {badge} badge for studying {streak_days} days in a row",
            {"streak_days": streak_days, "badge": badge},
        )

    async def log_quest_completion(
        self,
        student_id: str,
        quest_title: str,
        xp_reward: int,
        quest_id: str,
    ) -> Optional[ActivityEntry]:
        return await self.log_activity(
            student_id,
            ActivityType.QUEST_COMPLETED.value,
            f"Quest Complete: {quest_title}",
            f"Completed a daily quest and earned {xp_reward} XP",
            {"quest_id": quest_id, "xp_reward": xp_reward},
            is_public=False,
        )

    async def log_achievement_earned(
        self,
        student_id: str,
        achievement_name: str,
        achievement_title: str,
        xp_reward: int,
    ) -> Optional[ActivityEntry]:
        return await self.log_activity(
            student_id,
            ActivityType.ACHIEVEMENT_EARNED.value,
            f"Achievement Unlocked: {achievement_title}",
            f"Earned {xp_reward} XP",
            {"achievement": achievement_name, "xp_reward": xp_reward},
        )

    async def log_division_change(
        self,
        student_id: str,
        old_division: str,
        new_division: str,
        promoted: bool,
    ) -> Optional[ActivityEntry]:
        verb = "Promoted" if promoted else "Moved down"
        return await self.log_activity(
            student_id,
            ActivityType.LEAGUE_DIVISION_CHANGE.value,
            f"{verb} to {new_division} League",
            f"{'Promoted' if promoted else 'Demoted'} from {old_division} to {new_division}",
            {"old_division": old_division, "new_division": new_division, "promoted": promoted},
        )
