"""Unit tests for achievement predicates (progression/gamification/achievement_rules.py)"""
import pytest
from datetime import datetime, timedelta

from progression.gamification.achievement_rules import (
    ACHIEVEMENT_RULES,
    StudentHistory,
    comeback_pattern,
    evaluate_rule,
    improvement_pattern,
    longest_daily_run,
)
from progression.gamification.achievement_system import DEFAULT_ACHIEVEMENTS
from progression.models.activity import QUIZ_GAME_LESSON_ID
from progression.utils.datetime_helpers import UTC

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=UTC)


@pytest.fixture
def history_of(make_result):
    """Build a StudentHistory from (days_ago, score, total) style rows"""
    def build(rows, current_streak=0):
        results = []
        for index, row in enumerate(rows):
            days_ago = row.get("days_ago", 0)
            timestamp = NOW - timedelta(days=days_ago)
            if "hour" in row:
                timestamp = timestamp.replace(hour=row["hour"])
            results.append(make_result(
                "s1",
                row.get("lesson_id", f"lesson-{index}"),
                row.get("score", 8),
                row.get("total", 10),
                timestamp,
                subject=row.get("subject"),
                time_taken=row.get("time_taken", 600),
            ))
        results.sort(key=lambda r: r.timestamp)
        return StudentHistory(results=results, current_streak=current_streak, now=NOW)
    return build


def test_every_catalog_entry_has_a_rule():
    assert {a.name for a in DEFAULT_ACHIEVEMENTS} == set(ACHIEVEMENT_RULES)
    assert len(DEFAULT_ACHIEVEMENTS) == 24


def test_unknown_rule_never_matches(history_of):
    assert evaluate_rule("does_not_exist", history_of([{}])) is False


# ============================================================================
# Learning & Consistency Rules
# ============================================================================

def test_first_lesson(history_of):
    assert evaluate_rule("first_lesson", history_of([])) is False
    assert evaluate_rule("first_lesson", history_of([{}])) is True


def test_zero_score_is_not_a_completed_lesson(history_of):
    assert evaluate_rule("first_lesson", history_of([{"score": 0}])) is False


def test_quiz_games_do_not_count_as_lessons(history_of):
    assert evaluate_rule("first_lesson", history_of([{"lesson_id": QUIZ_GAME_LESSON_ID}])) is False


def test_lessons_10(history_of):
    assert evaluate_rule("lessons_10", history_of([{}] * 9)) is False
    assert evaluate_rule("lessons_10", history_of([{}] * 10)) is True


def test_streak_rules_use_current_streak(history_of):
    assert evaluate_rule("streak_7", history_of([], current_streak=6)) is False
    assert evaluate_rule("streak_7", history_of([], current_streak=7)) is True


def test_daily_dedication_needs_seven_day_run(history_of):
    six_days = [{"days_ago": d} for d in range(6)]
    assert evaluate_rule("daily_dedication", history_of(six_days)) is False

    broken = [{"days_ago": d} for d in (0, 1, 2, 4, 5, 6, 7)]
    assert evaluate_rule("daily_dedication", history_of(broken)) is False

    seven_days = [{"days_ago": d} for d in range(7)]
    assert evaluate_rule("daily_dedication", history_of(seven_days)) is True


def test_longest_daily_run_counts_days_not_sessions(history_of):
    history = history_of([{"days_ago": 0}, {"days_ago": 0}, {"days_ago": 1}, {"days_ago": 5}])

    assert longest_daily_run(history.results) == 2


# ============================================================================
# Mastery & Speed Rules
# ============================================================================

def test_accuracy_90_needs_minimum_sample(history_of):
    assert evaluate_rule("accuracy_90", history_of([{"score": 10}] * 4)) is False
    assert evaluate_rule("accuracy_90", history_of([{"score": 10}] * 5)) is True
    assert evaluate_rule("accuracy_90", history_of([{"score": 8}] * 5)) is False


def test_perfect_scores(history_of):
    assert evaluate_rule("perfectionist", history_of([{"score": 9}])) is False
    assert evaluate_rule("perfectionist", history_of([{"score": 10}])) is True
    assert evaluate_rule("perfect_master", history_of([{"score": 10}] * 10)) is True


def test_speed_rules(history_of):
    history = history_of([{"time_taken": 240}])

    assert evaluate_rule("speed_demon", history) is True
    assert evaluate_rule("lightning_fast", history) is False


# ============================================================================
# Subject Rules
# ============================================================================

def test_subject_mastery_counts_unique_lessons(history_of):
    repeated = [{"subject": "Waves", "lesson_id": "waves-1"}] * 20
    assert evaluate_rule("subject_master_waves", history_of(repeated)) is False

    unique = [{"subject": "Waves", "lesson_id": f"waves-{i}"} for i in range(15)]
    assert evaluate_rule("subject_master_waves", history_of(unique)) is True
    assert evaluate_rule("subject_master_mechanics", history_of(unique)) is False


def test_physics_scholar_needs_three_subjects(history_of):
    two = [{"subject": s, "lesson_id": f"{s}-{i}"} for s in ("Mechanics", "Waves") for i in range(10)]
    assert evaluate_rule("physics_scholar", history_of(two)) is False

    three = [{"subject": s, "lesson_id": f"{s}-{i}"} for s in ("Mechanics", "Waves", "Optics") for i in range(10)]
    assert evaluate_rule("physics_scholar", history_of(three)) is True


# ============================================================================
# Habit Rules
# ============================================================================

def test_early_bird_ratio(history_of):
    assert evaluate_rule("early_bird", history_of([{"days_ago": d, "hour": 8} for d in range(9)])) is False

    mostly_morning = [{"days_ago": d, "hour": 8} for d in range(7)] + \
        [{"days_ago": d, "hour": 15} for d in range(7, 10)]
    assert evaluate_rule("early_bird", history_of(mostly_morning)) is True

    half_morning = [{"days_ago": d, "hour": 8} for d in range(5)] + \
        [{"days_ago": d, "hour": 15} for d in range(5, 10)]
    assert evaluate_rule("early_bird", history_of(half_morning)) is False


def test_night_owl_window_wraps_midnight(history_of):
    late = [{"days_ago": d, "hour": 23 if d % 2 else 2} for d in range(10)]

    assert evaluate_rule("night_owl", history_of(late)) is True


def test_weekend_warrior(history_of):
    # NOW is a Sunday; every 7th day back is also a Sunday
    sundays = [{"days_ago": 7 * week} for week in range(10)]
    assert evaluate_rule("weekend_warrior", history_of(sundays)) is True

    fridays = [{"days_ago": 7 * week + 2} for week in range(10)]
    assert evaluate_rule("weekend_warrior", history_of(fridays)) is False


# ============================================================================
# Growth Rules
# ============================================================================

def test_comeback_after_long_break(history_of):
    recent = [{"days_ago": d} for d in range(5)]
    before_break = [{"days_ago": 20 + d} for d in range(6)]

    assert comeback_pattern(history_of(recent + before_break)) is True


def test_no_comeback_without_break(history_of):
    steady = [{"days_ago": d} for d in range(12)]

    assert comeback_pattern(history_of(steady)) is False


def test_no_comeback_with_too_little_history(history_of):
    few = [{"days_ago": d} for d in range(3)] + [{"days_ago": 30 + d} for d in range(3)]

    assert comeback_pattern(history_of(few)) is False


def test_improvement_seeker(history_of):
    improving = [{"days_ago": 40 - i, "score": 5} for i in range(10)] + \
        [{"days_ago": 20 - i, "score": 8} for i in range(10)]
    assert improvement_pattern(history_of(improving)) is True

    flat = [{"days_ago": 40 - i, "score": 7} for i in range(20)]
    assert improvement_pattern(history_of(flat)) is False
