"""Unit tests for Rating System (progression/gamification/rating_system.py)"""
import pytest
from unittest.mock import AsyncMock

from progression.exceptions import StoreUnavailable, ValidationError
from progression.gamification.rating_system import (
    RatingSystem,
    calculate_rating_change,
    calculate_performance_metrics,
    expected_score,
    get_rating_tier,
    validate_rating_inputs,
)
from progression.models import RatingRecord


# ============================================================================
# Formula Tests
# ============================================================================

def test_expected_score_at_default_rating():
    assert expected_score(1500) == 0.5


def test_rating_change_example():
    """9/10 in 60s with a 3-day streak: 32 * 0.4 * 0.8 * 1.3 = 13.3"""
    assert calculate_rating_change(1500, 0.9, 60, 3) == 13


def test_rating_change_slow_lesson_is_zero():
    assert calculate_rating_change(1500, 1.0, 300, 5) == 0
    assert calculate_rating_change(1500, 1.0, 900, 5) == 0


def test_rating_change_streak_multiplier_capped():
    assert calculate_rating_change(1500, 1.0, 0, 10) == calculate_rating_change(1500, 1.0, 0, 50)


def test_rating_change_rounds_half_up():
    """37/64 gives a raw change of exactly 2.5"""
    assert calculate_rating_change(1500, 37 / 64, 0, 0) == 3


def test_rating_change_negative_for_poor_performance():
    assert calculate_rating_change(1500, 0.0, 0, 0) == -16


def test_rating_tiers():
    assert get_rating_tier(2000) == "Master"
    assert get_rating_tier(1999) == "Diamond"
    assert get_rating_tier(1500) == "Gold"
    assert get_rating_tier(1200) == "Silver"
    assert get_rating_tier(900) == "Bronze"


def test_validate_rating_inputs():
    assert validate_rating_inputs(9, 10, 60, 3) == {"is_valid": True, "errors": []}

    result = validate_rating_inputs(11, 10, -1, 0)
    assert result["is_valid"] is False
    assert "Score cannot be greater than total points" in result["errors"]
    assert "Invalid time taken value" in result["errors"]


def test_performance_metrics():
    metrics = calculate_performance_metrics(9, 10, 60, 3)

    assert metrics["accuracy"] == 90.0
    assert metrics["time_efficiency"] == 0.8
    assert metrics["streak_bonus"] == 0.3


# ============================================================================
# Update Tests
# ============================================================================

@pytest.mark.asyncio
async def test_update_rating_from_default(store, locks):
    ratings = RatingSystem(store, locks=locks)

    result = await ratings.update_rating("s1", "lesson-1", 9, 10, 60, 3)

    assert result == {"previous_rating": 1500, "rating_change": 13, "new_rating": 1513}
    assert (await store.get_rating("s1")).rating == 1513

    history = await store.list_rating_history("s1")
    assert len(history) == 1
    assert history[0].delta == 13
    assert history[0].lesson_id == "lesson-1"
    assert history[0].streak == 3


@pytest.mark.asyncio
async def test_update_rating_history_is_append_only(store, locks):
    ratings = RatingSystem(store, locks=locks)

    await ratings.update_rating("s1", "lesson-1", 9, 10, 60, 3)
    await ratings.update_rating("s1", "lesson-2", 9, 10, 60, 3)

    history = await store.list_rating_history("s1")
    assert [h.lesson_id for h in history] == ["lesson-2", "lesson-1"]
    assert history[0].previous_rating == history[1].new_rating


@pytest.mark.asyncio
async def test_update_rating_rejects_zero_total_points(store, locks):
    ratings = RatingSystem(store, locks=locks)

    with pytest.raises(ValidationError) as exc_info:
        await ratings.update_rating("s1", "lesson-1", 0, 0, 60, 0)

    assert exc_info.value.field == "total_points"
    assert await store.get_rating("s1") is None


@pytest.mark.asyncio
async def test_update_rating_floor(store, locks):
    ratings = RatingSystem(store, locks=locks, rating_floor=1500)

    result = await ratings.update_rating("s1", "lesson-1", 0, 10, 0, 0)

    assert result["new_rating"] == 1500
    assert result["rating_change"] == 0


@pytest.mark.asyncio
async def test_update_rating_store_failure_propagates(store, locks):
    ratings = RatingSystem(store, locks=locks)
    store.save_rating = AsyncMock(side_effect=StoreUnavailable(operation="save_rating"))

    with pytest.raises(StoreUnavailable):
        await ratings.update_rating("s1", "lesson-1", 9, 10, 60, 3)


@pytest.mark.asyncio
async def test_get_student_rating_data(store, locks):
    ratings = RatingSystem(store, locks=locks)
    await store.save_rating(RatingRecord(student_id="s1", rating=1850))

    data = await ratings.get_student_rating_data("s1")

    assert data["current_rating"] == 1850
    assert data["tier"] == "Diamond"
    assert data["history"] == []
