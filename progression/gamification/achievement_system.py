"""
Achievement System

Evaluates the achievement catalog against a student's history after each
activity and awards every newly satisfied achievement exactly once.

Achievement categories:
- learning: lesson counts
- consistency: streaks and daily runs
- mastery: accuracy and perfect scores
- speed: fast completions
- subject: per-subject unique lessons
- habits: time-of-day and weekend patterns
- growth: comebacks and improvement
"""

from typing import Any, Dict, List, Optional
import logging

from progression.db.store import LedgerStore
from progression.gamification.achievement_rules import StudentHistory, evaluate_rule
from progression.gamification.activity_feed import ActivityFeed
from progression.gamification.locks import KeyedLock, student_locks
from progression.gamification.xp_system import XPSystem
from progression.models import Achievement, AchievementCategory, StudentAchievement, TransactionType
from progression.observability.metrics import record_achievement
from progression.utils.datetime_helpers import now_utc

logger = logging.getLogger(__name__)


def _achievement(name: str, title: str, description: str, category: AchievementCategory,
                 xp_reward: int, badge_icon: str) -> Achievement:
    return Achievement(
        id=name,
        name=name,
        title=title,
        description=description,
        category=category,
        xp_reward=xp_reward,
        badge_icon=badge_icon,
    )


DEFAULT_ACHIEVEMENTS = [
    _achievement("first_lesson", "First Steps", "Complete your first lesson", AchievementCategory.LEARNING, 25, "🎯"),
    _achievement("lessons_10", "Dedicated Learner", "Complete 10 lessons", AchievementCategory.LEARNING, 100, "📚"),
    _achievement("lessons_50", "Knowledge Seeker", "Complete 50 lessons", AchievementCategory.LEARNING, 300, "🏆"),
    _achievement("lessons_100", "Physics Devotee", "Complete 100 lessons", AchievementCategory.LEARNING, 500, "🎓"),
    _achievement("streak_3", "Getting Started", "Maintain a 3-day learning streak", AchievementCategory.CONSISTENCY, 50, "🔥"),
    _achievement("streak_7", "Week Warrior", "Maintain a 7-day learning streak", AchievementCategory.CONSISTENCY, 100, "⚡"),
    _achievement("streak_30", "Monthly Master", "Maintain a 30-day learning streak", AchievementCategory.CONSISTENCY, 500, "🌙"),
    _achievement("streak_100", "Century Scholar", "Maintain a 100-day learning streak", AchievementCategory.CONSISTENCY, 1000, "💯"),
    _achievement("accuracy_90", "Sharp Mind", "Average 90% accuracy over at least 5 lessons", AchievementCategory.MASTERY, 150, "🎯"),
    _achievement("accuracy_95", "Precision Expert", "Average 95% accuracy over at least 10 lessons", AchievementCategory.MASTERY, 300, "🔬"),
    _achievement("perfectionist", "Perfectionist", "Score 100% on a lesson", AchievementCategory.MASTERY, 50, "⭐"),
    _achievement("perfect_master", "Perfect Master", "Score 100% on 10 lessons", AchievementCategory.MASTERY, 250, "🌟"),
    _achievement("speed_demon", "Speed Demon", "Finish a lesson in 5 minutes or less", AchievementCategory.SPEED, 75, "💨"),
    _achievement("lightning_fast", "Lightning Fast", "Finish a lesson in 3 minutes or less", AchievementCategory.SPEED, 150, "⚡"),
    _achievement("subject_master_mechanics", "Mechanics Master", "Complete 15 different Mechanics lessons", AchievementCategory.SUBJECT, 300, "⚙️"),
    _achievement("subject_master_waves", "Waves Master", "Complete 15 different Waves lessons", AchievementCategory.SUBJECT, 300, "🌊"),
    _achievement("subject_master_electricity", "Electricity Master", "Complete 15 different Electricity lessons", AchievementCategory.SUBJECT, 300, "🔌"),
    _achievement("physics_scholar", "Physics Scholar", "Complete 10 different lessons in each of 3 subjects", AchievementCategory.SUBJECT, 500, "🧠"),
    _achievement("early_bird", "Early Bird", "Do 70% of recent sessions between 6 AM and noon", AchievementCategory.HABITS, 100, "🌅"),
    _achievement("night_owl", "Night Owl", "Do 70% of recent sessions between 10 PM and 6 AM", AchievementCategory.HABITS, 100, "🦉"),
    _achievement("weekend_warrior", "Weekend Warrior", "Complete 10 weekend sessions", AchievementCategory.HABITS, 150, "🏖️"),
    _achievement("daily_dedication", "Daily Dedication", "Study 7 days in a row", AchievementCategory.CONSISTENCY, 200, "📅"),
    _achievement("comeback_kid", "Comeback Kid", "Return to studying after a break of a week or more", AchievementCategory.GROWTH, 100, "🔄"),
    _achievement("improvement_seeker", "Improvement Seeker", "Raise your average accuracy by 15 points", AchievementCategory.GROWTH, 250, "📈"),
]


class AchievementSystem:
    """Rule evaluator over the achievement catalog"""

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

    async def load_history(self, student_id: str) -> StudentHistory:
        results = await self.store.list_lesson_results(student_id)
        streak = await self.store.get_streak(student_id)
        return StudentHistory(
            results=results,
            current_streak=streak.current_streak if streak else 0,
            now=now_utc(),
        )

    async def check_and_award(
        self,
        student_id: str,
        activity_type: str,
        activity_data: Optional[Dict[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        """
        Award every not-yet-earned achievement whose rule now holds

        Reading the catalog, earned set or history degrades to "nothing
        earned"; a rule that raises counts as not matched. Award writes and
        their XP propagate store failures.
        """
        activity_data = activity_data or {}

        async with self.locks.hold(student_id):
            try:
                catalog = await self.store.list_achievements()
                earned = {a.achievement_id for a in await self.store.list_student_achievements(student_id)}
            except Exception as e:
                logger.warning(f"Could not load achievements for {student_id}: {e}")
                return []

            available = [a for a in catalog if a.id not in earned]
            if not available:
                return []

            try:
                history = await self.load_history(student_id)
            except Exception as e:
                logger.warning(f"Could not load history for {student_id}, skipping achievement checks: {e}")
                return []

            newly_earned = []
            for achievement in available:
                try:
                    matched = evaluate_rule(achievement.name, history)
                except Exception as e:
                    logger.error(f"Achievement rule {achievement.name} failed for {student_id}: {e}", exc_info=True)
                    continue

                if not matched:
                    continue

                awarded = await self.award_achievement(student_id, achievement, activity_type, activity_data)
                if awarded is not None:
                    newly_earned.append(awarded)

            return newly_earned

    async def award_achievement(
        self,
        student_id: str,
        achievement: Achievement,
        activity_type: str = "",
        activity_data: Optional[Dict[str, Any]] = None,
    ) -> Optional[Dict[str, Any]]:
        """Record the award and its XP; None if the student already had it"""
        activity_data = activity_data or {}
        award = await self.store.create_student_achievement(
            StudentAchievement(
                student_id=student_id,
                achievement_id=achievement.id,
                metadata={"activity_type": activity_type, "lesson_id": activity_data.get("lesson_id")},
            )
        )
        if award is None:
            logger.debug(f"Achievement {achievement.name} already recorded for {student_id}")
            return None

        if achievement.xp_reward > 0:
            try:
                await self.xp_system.award_xp(
                    student_id,
                    achievement.xp_reward,
                    TransactionType.ACHIEVEMENT.value,
                    f"Earned achievement: {achievement.title}",
                    {"achievement_id": achievement.id, "achievement_name": achievement.name},
                    source_id=achievement.id,
                )
            except Exception:
                # Award and XP stand or fall together
                logger.error(
                    f"XP for achievement {achievement.name} failed for {student_id}, withdrawing award",
                    exc_info=True
                )
                await self.store.delete_student_achievement(student_id, achievement.id)
                raise

        record_achievement(achievement.name)
        logger.info(f"Achievement earned: {achievement.title} (+{achievement.xp_reward} XP) by student {student_id}")
        await self.activity_feed.log_achievement_earned(
            student_id, achievement.name, achievement.title, achievement.xp_reward
        )

        return {
            "achievement_id": achievement.id,
            "name": achievement.name,
            "title": achievement.title,
            "xp_reward": achievement.xp_reward,
            "earned_at": award.earned_at,
        }

    async def get_student_achievements(self, student_id: str) -> List[Dict[str, Any]]:
        """Earned achievements joined with their catalog entries"""
        catalog = {a.id: a for a in await self.store.list_achievements()}
        earned = await self.store.list_student_achievements(student_id)
        result = []
        for award in earned:
            achievement = catalog.get(award.achievement_id)
            if achievement is None:
                continue
            result.append({**achievement.model_dump(), "earned_at": award.earned_at})
        return result
