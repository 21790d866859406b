"""
ProgressionService - Lesson Submission Orchestration

Applies one graded activity to every progression subsystem. Each subsystem
runs inside its own error boundary and reports a SubsystemResult, so a
failure in one never prevents the others from running.
"""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional
import logging

from progression.gamification.achievement_system import AchievementSystem
from progression.gamification.locks import KeyedLock, student_locks
from progression.gamification.quest_system import LESSON_COMPLETION, QuestSystem
from progression.gamification.rating_system import RatingSystem
from progression.gamification.streak_system import StreakSystem
from progression.gamification.xp_system import XPSystem
from progression.db.store import LedgerStore
from progression.models import ActivityEvent, LessonResult, ProgressionSummary
from progression.observability.metrics import record_subsystem_failure
from progression.utils.datetime_helpers import to_utc

logger = logging.getLogger(__name__)


@dataclass
class SubsystemResult:
    """Outcome of one subsystem call: a value when ok, the error otherwise"""
    name: str
    ok: bool
    value: Any = None
    error: Optional[str] = None


class ProgressionService:
    """
    Service for progression on lesson submission.

    Responsibilities:
    - Record the graded result in the student's history
    - Streak, rating, XP, quests and achievements, in that order
    - Fold per-subsystem outcomes into a ProgressionSummary
    """

    def __init__(
        self,
        store: LedgerStore,
        xp_system: XPSystem,
        streak_system: StreakSystem,
        rating_system: RatingSystem,
        quest_system: QuestSystem,
        achievement_system: AchievementSystem,
        locks: Optional[KeyedLock] = None,
    ):
        self.store = store
        self.xp = xp_system
        self.streak = streak_system
        self.rating = rating_system
        self.quests = quest_system
        self.achievements = achievement_system
        self.locks = locks or student_locks
        logger.debug("ProgressionService initialized")

    async def _run_subsystem(self, name: str, call: Callable[[], Awaitable[Any]]) -> SubsystemResult:
        try:
            return SubsystemResult(name=name, ok=True, value=await call())
        except Exception as e:
            logger.error(f"{name} update failed: {e}", exc_info=True)
            record_subsystem_failure(name)
            return SubsystemResult(name=name, ok=False, error=str(e))

    async def process_activity(self, event: ActivityEvent) -> ProgressionSummary:
        """
        Apply a graded activity to all subsystems

        Events with a non-positive score are not completed activity and
        leave every subsystem untouched. Never raises for subsystem
        failures; they are reported in ProgressionSummary.errors.
        """
        if event.score <= 0:
            logger.debug(f"Skipping progression for student {event.student_id}: score {event.score}")
            return ProgressionSummary()

        student_id = event.student_id
        day = to_utc(event.timestamp).date()
        results: List[SubsystemResult] = []

        async with self.locks.hold(student_id):
            history = await self._run_subsystem("history", lambda: self.store.add_lesson_result(
                LessonResult(
                    student_id=student_id,
                    lesson_id=event.lesson_id,
                    subject=event.subject,
                    score=event.score,
                    total_points=event.total_points,
                    time_taken=event.time_taken,
                    timestamp=event.timestamp,
                )
            ))
            results.append(history)

            streak = await self._run_subsystem("streak", lambda: self.streak.record_activity(student_id, day))
            results.append(streak)
            current_streak = streak.value.current_streak if streak.ok else 0

            results.append(await self._run_subsystem("rating", lambda: self.rating.update_rating(
                student_id,
                event.lesson_id,
                event.score,
                event.total_points,
                event.time_taken,
                current_streak,
            )))

            result_id = history.value.id if history.ok else None
            results.append(await self._run_subsystem("xp", lambda: self.xp.award_lesson_completion_xp(
                student_id,
                event.lesson_id,
                event.score,
                event.total_points,
                event.time_taken,
                result_id,
            )))

            activity_data = {
                "accuracy": event.accuracy,
                "time_taken": event.time_taken,
                "consecutive_correct": event.consecutive_correct,
                "subject": event.subject,
                "lesson_id": event.lesson_id,
                "timestamp": event.timestamp,
            }
            results.append(await self._run_subsystem("quests", lambda: self.quests.check_and_update_quests(
                student_id, LESSON_COMPLETION, activity_data, day
            )))
            results.append(await self._run_subsystem("achievements", lambda: self.achievements.check_and_award(
                student_id, LESSON_COMPLETION, activity_data
            )))

        summary = self._fold(results)
        logger.info(
            f"Progression processed for student {student_id}, lesson {event.lesson_id}: "
            f"{len(summary.errors)} subsystem error(s)"
        )
        return summary

    @staticmethod
    def _fold(results: List[SubsystemResult]) -> ProgressionSummary:
        summary = ProgressionSummary()
        for result in results:
            if not result.ok:
                summary.errors[result.name] = result.error or "unknown error"
                continue
            if result.name == "streak":
                record = result.value
                summary.streak = {
                    "current_streak": record.current_streak,
                    "longest_streak": record.longest_streak,
                    "freezes_available": record.freezes_available,
                }
            elif result.name == "rating":
                summary.rating = result.value
            elif result.name == "xp":
                summary.xp = result.value
            elif result.name == "quests":
                summary.quests = result.value
            elif result.name == "achievements":
                summary.achievements = result.value
        return summary
