"""
Achievement predicates

Each rule is a pure function over a StudentHistory snapshot. The snapshot is
loaded once per evaluation so rules never touch the store.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, List
import logging

from progression.models import LessonResult
from progression.utils.datetime_helpers import now_utc, to_utc

logger = logging.getLogger(__name__)


@dataclass
class StudentHistory:
    """Graded results (oldest first), current streak and evaluation time"""
    results: List[LessonResult] = field(default_factory=list)
    current_streak: int = 0
    now: datetime = field(default_factory=now_utc)

    @property
    def completed(self) -> List[LessonResult]:
        """Results that count as a completed session (score >= 1)"""
        return [r for r in self.results if r.score >= 1]

    @property
    def graded_lessons(self) -> List[LessonResult]:
        """Lesson results with a positive total, quiz games excluded"""
        return [r for r in self.results if r.total_points > 0 and not r.is_quiz_game]


Rule = Callable[[StudentHistory], bool]


def lessons_completed(required: int) -> Rule:
    def rule(history: StudentHistory) -> bool:
        return len([r for r in history.completed if not r.is_quiz_game]) >= required
    return rule


def streak_reached(days: int) -> Rule:
    def rule(history: StudentHistory) -> bool:
        return history.current_streak >= days
    return rule


def overall_accuracy(required_percent: float, min_lessons: int) -> Rule:
    def rule(history: StudentHistory) -> bool:
        results = history.graded_lessons
        if len(results) < min_lessons:
            return False
        total_possible = sum(r.total_points for r in results)
        return sum(r.score for r in results) / total_possible * 100 >= required_percent
    return rule


def perfect_scores(required: int) -> Rule:
    def rule(history: StudentHistory) -> bool:
        return len([r for r in history.graded_lessons if r.score == r.total_points]) >= required
    return rule


def fast_completion(max_seconds: int) -> Rule:
    def rule(history: StudentHistory) -> bool:
        return any(r.time_taken <= max_seconds for r in history.results if not r.is_quiz_game)
    return rule


def _unique_lessons_by_subject(history: StudentHistory) -> Dict[str, set]:
    by_subject: Dict[str, set] = {}
    for r in history.completed:
        if r.subject:
            by_subject.setdefault(r.subject, set()).add(r.lesson_id)
    return by_subject


def subject_mastery(subject: str, required_lessons: int) -> Rule:
    def rule(history: StudentHistory) -> bool:
        return len(_unique_lessons_by_subject(history).get(subject, set())) >= required_lessons
    return rule


def multiple_subjects(required_subjects: int, lessons_per_subject: int) -> Rule:
    def rule(history: StudentHistory) -> bool:
        qualified = [s for s in _unique_lessons_by_subject(history).values() if len(s) >= lessons_per_subject]
        return len(qualified) >= required_subjects
    return rule


def _is_morning(hour: int) -> bool:
    return 6 <= hour < 12


def _is_night(hour: int) -> bool:
    return hour >= 22 or hour < 6


def time_of_day_pattern(in_window: Callable[[int], bool], sample: int = 20, minimum: int = 10,
                        ratio: float = 0.7) -> Rule:
    """At least ratio of the most recent sessions fall inside the hour window"""
    def rule(history: StudentHistory) -> bool:
        recent = history.completed[-sample:]
        if len(recent) < minimum:
            return False
        matching = len([r for r in recent if in_window(to_utc(r.timestamp).hour)])
        return matching / len(recent) >= ratio
    return rule


def weekend_sessions(required: int) -> Rule:
    def rule(history: StudentHistory) -> bool:
        return len([r for r in history.completed if to_utc(r.timestamp).weekday() >= 5]) >= required
    return rule


def longest_daily_run(results: List[LessonResult]) -> int:
    """Longest run of consecutive calendar days with a session"""
    days = sorted({to_utc(r.timestamp).date() for r in results})
    if not days:
        return 0
    longest = current = 1
    for previous, day in zip(days, days[1:]):
        current = current + 1 if (day - previous).days == 1 else 1
        longest = max(longest, current)
    return longest


def consecutive_days(required: int) -> Rule:
    def rule(history: StudentHistory) -> bool:
        return longest_daily_run(history.completed) >= required
    return rule


def comeback_pattern(history: StudentHistory) -> bool:
    """
    Returned after a break of 7+ days and has studied in the last 3 days

    Looks at the 50 most recent sessions (at least 10), newest first; the
    first 7+ day gap found (leaving at least five newer sessions to inspect)
    decides the outcome.
    """
    recent = list(reversed(history.completed))[:50]
    if len(recent) < 10:
        return False

    stamps = [to_utc(r.timestamp) for r in recent]
    now = to_utc(history.now)
    for i in range(1, len(stamps) - 5):
        if (stamps[i - 1] - stamps[i]).days >= 7:
            return any(now - stamp <= timedelta(days=3) for stamp in stamps[:5])
    return False


def improvement_pattern(history: StudentHistory, min_results: int = 20, required_gain: float = 0.15) -> bool:
    """Mean score ratio of the later half beats the earlier half by 15 points"""
    results = history.graded_lessons
    if len(results) < min_results:
        return False
    midpoint = len(results) // 2
    earlier, later = results[:midpoint], results[midpoint:]
    earlier_accuracy = sum(r.score / r.total_points for r in earlier) / len(earlier)
    later_accuracy = sum(r.score / r.total_points for r in later) / len(later)
    return later_accuracy - earlier_accuracy >= required_gain


ACHIEVEMENT_RULES: Dict[str, Rule] = {
    "first_lesson": lessons_completed(1),
    "lessons_10": lessons_completed(10),
    "lessons_50": lessons_completed(50),
    "lessons_100": lessons_completed(100),
    "streak_3": streak_reached(3),
    "streak_7": streak_reached(7),
    "streak_30": streak_reached(30),
    "streak_100": streak_reached(100),
    "accuracy_90": overall_accuracy(90, 5),
    "accuracy_95": overall_accuracy(95, 10),
    "perfectionist": perfect_scores(1),
    "perfect_master": perfect_scores(10),
    "speed_demon": fast_completion(300),
    "lightning_fast": fast_completion(180),
    "subject_master_mechanics": subject_mastery("Mechanics", 15),
    "subject_master_waves": subject_mastery("Waves", 15),
    "subject_master_electricity": subject_mastery("Electricity", 15),
    "physics_scholar": multiple_subjects(3, 10),
    "early_bird": time_of_day_pattern(_is_morning),
    "night_owl": time_of_day_pattern(_is_night),
    "weekend_warrior": weekend_sessions(10),
    "daily_dedication": consecutive_days(7),
    "comeback_kid": comeback_pattern,
    "improvement_seeker": improvement_pattern,
}


def evaluate_rule(name: str, history: StudentHistory) -> bool:
    """Unknown names never match"""
    rule = ACHIEVEMENT_RULES.get(name)
    if rule is None:
        logger.debug(f"No rule registered for achievement {name}")
        return False
    return rule(history)
