"""Unit tests for Achievement System (progression/gamification/achievement_system.py)"""
import asyncio
import pytest
from unittest.mock import AsyncMock, patch

from progression.exceptions import StoreUnavailable
from progression.gamification.achievement_system import AchievementSystem, DEFAULT_ACHIEVEMENTS
from progression.gamification.xp_system import XPSystem
from progression.models import ActivityType, StreakRecord


@pytest.fixture
def achievements(store, locks):
    return AchievementSystem(store, XPSystem(store, locks=locks), locks=locks)


@pytest.fixture
async def first_fast_lesson(store, make_result, fixed_now):
    """One 9/10 lesson finished in two minutes"""
    return await store.add_lesson_result(make_result("s1", "mechanics-01", 9, 10, fixed_now, "Mechanics", 120))


# ============================================================================
# Catalog Tests
# ============================================================================

def test_catalog_names_unique():
    names = [a.name for a in DEFAULT_ACHIEVEMENTS]

    assert len(names) == len(set(names))
    assert all(a.xp_reward > 0 for a in DEFAULT_ACHIEVEMENTS)


# ============================================================================
# Award Tests
# ============================================================================

@pytest.mark.asyncio
async def test_first_lesson_awards(achievements, store, first_fast_lesson):
    earned = await achievements.check_and_award("s1", "lesson_completion", {"lesson_id": "mechanics-01"})

    assert {a["name"] for a in earned} == {"first_lesson", "speed_demon", "lightning_fast"}

    rows = [t for t in await store.list_xp_transactions("s1") if t.transaction_type == "achievement"]
    assert sorted(t.xp_amount for t in rows) == [25, 75, 150]

    feed = await store.list_activity("s1")
    assert len([e for e in feed if e.activity_type == ActivityType.ACHIEVEMENT_EARNED.value]) == 3


@pytest.mark.asyncio
async def test_achievements_awarded_only_once(achievements, store, first_fast_lesson):
    await achievements.check_and_award("s1", "lesson_completion")

    again = await achievements.check_and_award("s1", "lesson_completion")

    assert again == []
    assert len(await store.list_student_achievements("s1")) == 3


@pytest.mark.asyncio
async def test_concurrent_checks_award_once(achievements, store, first_fast_lesson):
    results = await asyncio.gather(
        achievements.check_and_award("s1", "lesson_completion"),
        achievements.check_and_award("s1", "lesson_completion"),
    )

    assert sorted(len(r) for r in results) == [0, 3]
    first_lesson_rows = [
        t for t in await store.list_xp_transactions("s1")
        if t.transaction_type == "achievement" and t.source_id == "first_lesson"
    ]
    assert len(first_lesson_rows) == 1


@pytest.mark.asyncio
async def test_streak_achievement_reads_current_streak(achievements, store, first_fast_lesson):
    await store.save_streak(StreakRecord(student_id="s1", current_streak=3, longest_streak=3))

    earned = await achievements.check_and_award("s1", "lesson_completion")

    assert "streak_3" in {a["name"] for a in earned}
    assert "streak_7" not in {a["name"] for a in earned}


@pytest.mark.asyncio
async def test_failing_rule_does_not_block_others(achievements, first_fast_lesson):
    def broken(history):
        raise ZeroDivisionError("bad rule")

    with patch.dict("progression.gamification.achievement_rules.ACHIEVEMENT_RULES", {"first_lesson": broken}):
        earned = await achievements.check_and_award("s1", "lesson_completion")

    assert {a["name"] for a in earned} == {"speed_demon", "lightning_fast"}


@pytest.mark.asyncio
async def test_history_read_failure_awards_nothing(achievements, store, first_fast_lesson):
    store.list_lesson_results = AsyncMock(side_effect=StoreUnavailable(operation="list_lesson_results"))

    assert await achievements.check_and_award("s1", "lesson_completion") == []
    assert await store.list_student_achievements("s1") == []


@pytest.mark.asyncio
async def test_existing_award_skipped_without_xp(achievements, store, first_fast_lesson):
    store.create_student_achievement = AsyncMock(return_value=None)

    earned = await achievements.check_and_award("s1", "lesson_completion")

    assert earned == []
    assert await store.list_xp_transactions("s1") == []


@pytest.mark.asyncio
async def test_award_xp_failure_propagates(achievements, first_fast_lesson):
    achievements.xp_system.award_xp = AsyncMock(side_effect=StoreUnavailable(operation="append_xp_transaction"))

    with pytest.raises(StoreUnavailable):
        await achievements.check_and_award("s1", "lesson_completion")


@pytest.mark.asyncio
async def test_failed_xp_withdraws_award_so_it_can_be_earned_later(achievements, store, first_fast_lesson):
    real_award_xp = achievements.xp_system.award_xp
    achievements.xp_system.award_xp = AsyncMock(side_effect=StoreUnavailable(operation="append_xp_transaction"))

    with pytest.raises(StoreUnavailable):
        await achievements.check_and_award("s1", "lesson_completion")

    assert await store.list_student_achievements("s1") == []
    assert await store.list_xp_transactions("s1") == []

    achievements.xp_system.award_xp = real_award_xp
    earned = await achievements.check_and_award("s1", "lesson_completion")

    assert {a["name"] for a in earned} == {"first_lesson", "speed_demon", "lightning_fast"}
    record = await store.get_xp_record("s1")
    assert record.total_xp >= 25 + 75 + 150


@pytest.mark.asyncio
async def test_get_student_achievements(achievements, first_fast_lesson):
    await achievements.check_and_award("s1", "lesson_completion")

    earned = await achievements.get_student_achievements("s1")

    titles = {a["title"] for a in earned}
    assert titles == {"First Steps", "Speed Demon", "Lightning Fast"}
    assert all(a["earned_at"] is not None for a in earned)
