"""
Daily Quest System

Three quests are active each calendar day, chosen deterministically from a
fixed template catalog:
- one knowledge quest: knowledge[day_of_month % len]
- one consistency quest: consistency[day_of_week % len]  (Sunday = 0)
- one more from accuracy + speed + challenge: pool[(day_of_week + day_of_month) % len]

Students progress quests by completing lessons; finishing a quest awards
its XP once.
"""

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional
import logging

from progression import config
from progression.db.store import LedgerStore
from progression.exceptions import RecordNotFoundError
from progression.gamification.activity_feed import ActivityFeed
from progression.gamification.locks import KeyedLock, student_locks
from progression.gamification.xp_system import XPSystem
from progression.models import DailyQuest, QuestProgress, StreakRecord, TransactionType
from progression.observability.metrics import record_quest_completed
from progression.utils.datetime_helpers import now_utc, start_of_day, sunday_based_weekday, today_utc, to_utc

logger = logging.getLogger(__name__)

LESSON_COMPLETION = "lesson_completion"
MISTAKE_REVIEW = "mistake_review"


class QuestCategory(Enum):
    KNOWLEDGE = "knowledge"
    ACCURACY = "accuracy"
    SPEED = "speed"
    CONSISTENCY = "consistency"
    CHALLENGE = "challenge"


@dataclass
class QuestTemplate:
    """Quest blueprint instantiated once per selected day"""
    category: QuestCategory
    title: str
    description: str
    requirements: Dict[str, Any]
    xp_reward: int
    streak_shield_reward: bool = False

    def instantiate(self, active_date: date) -> DailyQuest:
        return DailyQuest(
            quest_type=self.category.value,
            title=self.title,
            description=self.description,
            requirements=dict(self.requirements),
            xp_reward=self.xp_reward,
            streak_shield_reward=self.streak_shield_reward,
            active_date=active_date,
        )


QUEST_TEMPLATES = [
    # Knowledge
    QuestTemplate(QuestCategory.KNOWLEDGE, "Physics Explorer", "Complete 3 physics lessons today",
                  {"target": 3, "activity": "lesson_completion"}, 150),
    QuestTemplate(QuestCategory.KNOWLEDGE, "Quick Learner", "Complete 1 lesson today",
                  {"target": 1, "activity": "lesson_completion"}, 50),
    QuestTemplate(QuestCategory.KNOWLEDGE, "Subject Specialist", "Complete 2 lessons from the same subject",
                  {"target": 2, "activity": "same_subject_lessons"}, 100),
    # Accuracy
    QuestTemplate(QuestCategory.ACCURACY, "Perfect Aim", "Achieve 100% accuracy on any lesson",
                  {"target": 1, "activity": "perfect_score"}, 200),
    QuestTemplate(QuestCategory.ACCURACY, "High Achiever", "Maintain 80%+ accuracy across all lessons today",
                  {"target": 80, "activity": "daily_accuracy"}, 120),
    QuestTemplate(QuestCategory.ACCURACY, "Consistent Performer", "Complete 3 lessons with 70%+ accuracy",
                  {"target": 3, "activity": "accurate_lessons", "minAccuracy": 70}, 150),
    # Speed
    QuestTemplate(QuestCategory.SPEED, "Speed Demon", "Complete a lesson in under 5 minutes",
                  {"target": 1, "activity": "fast_completion", "maxTime": 300}, 100),
    QuestTemplate(QuestCategory.SPEED, "Lightning Round", "Complete 2 lessons in under 8 minutes each",
                  {"target": 2, "activity": "fast_completion", "maxTime": 480}, 180),
    # Consistency
    QuestTemplate(QuestCategory.CONSISTENCY, "Streak Maintainer", "Study today to maintain your learning streak",
                  {"target": 1, "activity": "daily_study"}, 75, streak_shield_reward=True),
    QuestTemplate(QuestCategory.CONSISTENCY, "Early Bird", "Complete a lesson before 12 PM",
                  {"target": 1, "activity": "morning_study"}, 80),
    QuestTemplate(QuestCategory.CONSISTENCY, "Night Owl", "Study after 8 PM",
                  {"target": 1, "activity": "evening_study"}, 80),
    # Challenge
    QuestTemplate(QuestCategory.CHALLENGE, "Formula Master", "Complete 5 questions correctly in a row",
                  {"target": 5, "activity": "consecutive_correct"}, 200),
    QuestTemplate(QuestCategory.CHALLENGE, "Physics Marathon", "Study for a total of 30 minutes today",
                  {"target": 1800, "activity": "total_study_time"}, 250),
    QuestTemplate(QuestCategory.CHALLENGE, "Mistake Fixer", "Review and correct 3 previous mistakes",
                  {"target": 3, "activity": "mistake_review"}, 120),
]

REMAINING_CATEGORIES = (QuestCategory.ACCURACY, QuestCategory.SPEED, QuestCategory.CHALLENGE)


def select_daily_templates(day: date, templates: List[QuestTemplate] = QUEST_TEMPLATES) -> List[QuestTemplate]:
    """Pure, date-seeded choice of the day's three templates"""
    day_of_week = sunday_based_weekday(day)
    day_of_month = day.day
    selected: List[QuestTemplate] = []

    knowledge = [t for t in templates if t.category == QuestCategory.KNOWLEDGE]
    if knowledge:
        selected.append(knowledge[day_of_month % len(knowledge)])

    consistency = [t for t in templates if t.category == QuestCategory.CONSISTENCY]
    if consistency:
        selected.append(consistency[day_of_week % len(consistency)])

    remaining = [t for t in templates if t.category in REMAINING_CATEGORIES and t not in selected]
    if remaining:
        selected.append(remaining[(day_of_week + day_of_month) % len(remaining)])

    return selected


def _activity_hour(activity_data: Dict[str, Any]) -> int:
    timestamp = activity_data.get("timestamp")
    if isinstance(timestamp, datetime):
        return to_utc(timestamp).hour
    return now_utc().hour


def quest_matches(quest: DailyQuest, activity_type: str, activity_data: Dict[str, Any]) -> bool:
    """Whether an activity counts towards a quest (history-based checks aside)"""
    requirements = quest.requirements
    activity = requirements.get("activity")

    if activity == MISTAKE_REVIEW:
        return activity_type == MISTAKE_REVIEW
    if activity_type != LESSON_COMPLETION:
        return False

    accuracy = activity_data.get("accuracy", 0)
    if activity in ("lesson_completion", "daily_study", "same_subject_lessons", "daily_accuracy"):
        return True
    if activity == "perfect_score":
        return accuracy == 100
    if activity == "fast_completion":
        return activity_data.get("time_taken", 0) <= requirements.get("maxTime", 0)
    if activity == "accurate_lessons":
        return accuracy >= requirements.get("minAccuracy", 70)
    if activity == "morning_study":
        return _activity_hour(activity_data) < 12
    if activity == "evening_study":
        return _activity_hour(activity_data) >= 20
    if activity == "total_study_time":
        return activity_data.get("time_taken", 0) > 0
    if activity == "consecutive_correct":
        return activity_data.get("consecutive_correct", 0) > 0
    return False


def progress_increment(quest: DailyQuest, activity_data: Dict[str, Any]) -> int:
    """Elapsed seconds for study-time quests, the streak of correct answers, otherwise 1"""
    activity = quest.requirements.get("activity")
    if activity == "total_study_time":
        return int(activity_data.get("time_taken", 0) or 0)
    if activity == "consecutive_correct":
        return int(activity_data.get("consecutive_correct", 0) or 0)
    return 1


class QuestSystem:
    """Generates daily quests and tracks per-student progress"""

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

    async def generate_daily_quests(self, day: Optional[date] = None) -> List[DailyQuest]:
        """Create the day's quests once; later calls return the same instances"""
        day = day or today_utc()

        async with self.locks.hold(f"daily-quests:{day.isoformat()}"):
            existing = await self.store.list_daily_quests(day)
            if existing:
                return existing

            created = []
            for template in select_daily_templates(day):
                created.append(await self.store.create_daily_quest(template.instantiate(day)))

        logger.info(f"Generated {len(created)} daily quests for {day}: {[q.title for q in created]}")
        return created

    async def get_daily_quests(self, day: Optional[date] = None) -> List[DailyQuest]:
        return await self.store.list_daily_quests(day or today_utc())

    async def get_student_quest_progress(self, student_id: str, day: Optional[date] = None) -> List[Dict[str, Any]]:
        """Each of the day's quests with the student's progress (zero if not started)"""
        result = []
        for quest in await self.get_daily_quests(day):
            progress = await self.store.get_quest_progress(student_id, quest.id)
            result.append({
                "quest": quest.model_dump(),
                "progress": progress.progress if progress else 0,
                "target_progress": progress.target_progress if progress else quest.target,
                "completed": progress.completed if progress else False,
                "completed_at": progress.completed_at if progress else None,
            })
        return result

    async def update_progress(
        self,
        student_id: str,
        quest_id: str,
        increment: int = 1,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Add progress to a quest; completes it (once) when progress reaches target

        Returns:
            {'progress': QuestProgress, 'quest': DailyQuest, 'just_completed': bool, 'xp': dict | None}

        Raises:
            RecordNotFoundError: quest_id does not exist
        """
        async with self.locks.hold(student_id):
            quest = await self.store.get_daily_quest(quest_id)
            if quest is None:
                raise RecordNotFoundError(
                    f"Daily quest {quest_id} not found",
                    record_type="DailyQuest",
                    record_id=quest_id,
                    student_id=student_id,
                    operation="update_progress",
                )

            progress = await self.store.get_quest_progress(student_id, quest_id)
            if progress is None:
                progress = await self.store.create_quest_progress(
                    QuestProgress(student_id=student_id, quest_id=quest_id, target_progress=quest.target)
                )

            if progress.completed:
                return {"progress": progress, "quest": quest, "just_completed": False, "xp": None}

            progress.progress = min(progress.progress + max(increment, 0), progress.target_progress)
            progress.metadata = {**progress.metadata, **(metadata or {})}
            just_completed = progress.progress >= progress.target_progress
            if just_completed:
                progress.completed = True
                progress.completed_at = now_utc()

            progress = await self.store.update_quest_progress(progress)

            xp_result = None
            if just_completed:
                xp_result = await self._award_quest_rewards(student_id, quest)

            return {"progress": progress, "quest": quest, "just_completed": just_completed, "xp": xp_result}

    async def _award_quest_rewards(self, student_id: str, quest: DailyQuest) -> Optional[Dict[str, Any]]:
        xp_result = None
        if quest.xp_reward > 0:
            xp_result = await self.xp_system.award_xp(
                student_id,
                quest.xp_reward,
                TransactionType.DAILY_QUEST.value,
                f"Completed daily quest: {quest.title}",
                {"quest_id": quest.id, "quest_type": quest.quest_type},
                source_id=quest.id,
            )

        if quest.streak_shield_reward:
            await self._grant_streak_shield(student_id)

        record_quest_completed(quest.quest_type)
        logger.info(f"Quest rewards awarded for '{quest.title}' to {student_id}: {quest.xp_reward} XP")
        await self.activity_feed.log_quest_completion(student_id, quest.title, quest.xp_reward, quest.id)
        return xp_result

    async def _grant_streak_shield(self, student_id: str) -> None:
        """One extra streak freeze"""
        record = await self.store.get_streak(student_id)
        if record is None:
            record = StreakRecord(student_id=student_id, freezes_available=config.STREAK_FREEZES_DEFAULT)
        record.freezes_available += 1
        await self.store.save_streak(record)
        logger.info(f"Granted streak shield to {student_id}, {record.freezes_available} freezes available")

    async def _history_increment(
        self,
        student_id: str,
        quest: DailyQuest,
        progress: Optional[QuestProgress],
        activity_data: Dict[str, Any],
        day: date,
    ) -> int:
        """
        Increment for quests judged on today's lesson history

        Read failures count as no match.
        """
        activity = quest.requirements.get("activity")
        current = progress.progress if progress else 0
        try:
            results = await self.store.list_lesson_results(student_id, since=start_of_day(day))
        except Exception as e:
            logger.warning(f"Could not read today's lessons for {student_id} ({activity}): {e}")
            return 0
        results = [r for r in results if to_utc(r.timestamp).date() == day and not r.is_quiz_game]

        if activity == "daily_accuracy":
            total_points = sum(r.total_points for r in results)
            if total_points <= 0:
                return 0
            accuracy = sum(r.score for r in results) / total_points * 100
            return quest.target if accuracy >= quest.target else 0

        # same_subject_lessons
        subject = activity_data.get("subject")
        if not subject:
            return 0
        count = len({r.lesson_id for r in results if r.subject == subject})
        return max(0, count - current)

    async def check_and_update_quests(
        self,
        student_id: str,
        activity_type: str,
        activity_data: Optional[Dict[str, Any]] = None,
        day: Optional[date] = None,
    ) -> List[Dict[str, Any]]:
        """
        Apply one activity to every quest active today

        activity_data keys: accuracy (0-100), time_taken (seconds),
        consecutive_correct, subject, lesson_id, timestamp
        """
        activity_data = activity_data or {}
        day = day or today_utc()
        updated = []

        async with self.locks.hold(student_id):
            for quest in await self.generate_daily_quests(day):
                if not quest_matches(quest, activity_type, activity_data):
                    continue

                if quest.requirements.get("activity") in ("daily_accuracy", "same_subject_lessons"):
                    progress = await self.store.get_quest_progress(student_id, quest.id)
                    if progress is not None and progress.completed:
                        continue
                    increment = await self._history_increment(student_id, quest, progress, activity_data, day)
                else:
                    increment = progress_increment(quest, activity_data)

                if increment <= 0:
                    continue

                result = await self.update_progress(
                    student_id,
                    quest.id,
                    increment,
                    {"activity_type": activity_type, "lesson_id": activity_data.get("lesson_id")},
                )
                updated.append({
                    "quest_id": quest.id,
                    "title": quest.title,
                    "progress": result["progress"].progress,
                    "target_progress": result["progress"].target_progress,
                    "completed": result["progress"].completed,
                    "just_completed": result["just_completed"],
                })

        return updated
