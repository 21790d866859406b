"""Unit tests for ProgressionService (progression/services/progression_service.py)"""
import asyncio
import pytest
from datetime import datetime
from unittest.mock import AsyncMock, patch

from progression.exceptions import StoreUnavailable
from progression.models import ActivityEvent
from progression.services.container import ServiceContainer
from progression.services.progression_service import ProgressionService, SubsystemResult
from progression.utils.datetime_helpers import UTC


# ============================================================================
# Happy Path Tests
# ============================================================================

@pytest.mark.asyncio
async def test_process_activity_updates_every_subsystem(container, lesson_event, store):
    summary = await container.progression.process_activity(lesson_event)

    assert summary.errors == {}
    assert summary.streak["current_streak"] == 1
    # 32 * 0.4 * 0.8 * 1.1 = 11.3
    assert summary.rating == {"previous_rating": 1500, "rating_change": 11, "new_rating": 1511}
    assert summary.xp["xp_awarded"] == 84

    quests = {row["title"]: row for row in summary.quests}
    assert quests["Streak Maintainer"]["just_completed"] is True
    assert quests["Physics Explorer"]["progress"] == 1
    assert quests["Consistent Performer"]["progress"] == 1

    assert {a["name"] for a in summary.achievements} == {"first_lesson", "speed_demon", "lightning_fast"}

    results = await store.list_lesson_results("student-123")
    assert [r.lesson_id for r in results] == ["mechanics-01"]


@pytest.mark.asyncio
async def test_process_activity_ledger_matches_balance(container, lesson_event, store):
    await container.progression.process_activity(lesson_event)

    record = await store.get_xp_record("student-123")
    ledger = await store.list_xp_transactions("student-123")
    assert record.total_xp == sum(t.xp_amount for t in ledger)


@pytest.mark.asyncio
async def test_zero_score_is_not_progress(container, lesson_event, store):
    event = lesson_event.model_copy(update={"score": 0})

    summary = await container.progression.process_activity(event)

    assert summary.rating is None
    assert summary.streak is None
    assert summary.xp is None
    assert summary.errors == {}
    assert await store.list_lesson_results("student-123") == []
    assert await store.get_streak("student-123") is None


# ============================================================================
# Event Input Tests
# ============================================================================

@pytest.mark.asyncio
async def test_naive_timestamp_is_read_as_utc(container, store, test_student_id):
    # Oct 25 offers High Achiever (daily_accuracy, target 80)
    event = ActivityEvent(
        student_id=test_student_id,
        lesson_id="waves-01",
        score=10,
        total_points=10,
        time_taken=60,
        timestamp=datetime(2026, 10, 25, 9, 0),
        subject="Waves",
    )

    summary = await container.progression.process_activity(event)

    assert summary.errors == {}
    quests = {row["title"]: row for row in summary.quests}
    assert quests["High Achiever"]["completed"] is True
    assert quests["High Achiever"]["progress"] == 80
    results = await store.list_lesson_results(test_student_id)
    assert results[0].timestamp == datetime(2026, 10, 25, 9, 0, tzinfo=UTC)


@pytest.mark.asyncio
async def test_fractional_score_flows_through(container, store, test_student_id, fixed_now):
    event = ActivityEvent(
        student_id=test_student_id,
        lesson_id="mechanics-02",
        score=7.456,
        total_points=10,
        time_taken=60,
        timestamp=fixed_now,
        subject="Mechanics",
    )

    summary = await container.progression.process_activity(event)

    assert event.score == 7.46
    assert summary.errors == {}
    # 32 * 0.246 * 0.8 * 1.1 = 6.9
    assert summary.rating["new_rating"] == 1507
    # 50 base + 18 accuracy + 12 speed
    assert summary.xp["xp_awarded"] == 80
    results = await store.list_lesson_results(test_student_id)
    assert results[0].score == 7.46


def test_score_rounds_half_up_to_cents(lesson_event):
    event = ActivityEvent(**{**lesson_event.model_dump(), "score": 7.125})

    assert event.score == 7.13


# ============================================================================
# Fail-Soft Tests
# ============================================================================

@pytest.mark.asyncio
async def test_rating_failure_does_not_block_siblings(container, lesson_event):
    container.rating.update_rating = AsyncMock(side_effect=StoreUnavailable(operation="save_rating"))

    with patch("progression.services.progression_service.record_subsystem_failure") as mock_failure:
        summary = await container.progression.process_activity(lesson_event)

    assert summary.rating is None
    assert "rating" in summary.errors
    assert summary.streak["current_streak"] == 1
    assert summary.xp["xp_awarded"] == 84
    assert summary.achievements
    mock_failure.assert_called_once_with("rating")


@pytest.mark.asyncio
async def test_streak_failure_rates_with_zero_streak(container, lesson_event):
    container.streak.record_activity = AsyncMock(side_effect=RuntimeError("streak store down"))

    summary = await container.progression.process_activity(lesson_event)

    assert summary.streak is None
    assert summary.errors["streak"] == "streak store down"
    # 32 * 0.4 * 0.8 * 1.0 = 10.2
    assert summary.rating["new_rating"] == 1510


@pytest.mark.asyncio
async def test_every_subsystem_failing_still_returns(container, lesson_event):
    boom = RuntimeError("down")
    container.store.add_lesson_result = AsyncMock(side_effect=boom)
    container.streak.record_activity = AsyncMock(side_effect=boom)
    container.rating.update_rating = AsyncMock(side_effect=boom)
    container.xp.award_lesson_completion_xp = AsyncMock(side_effect=boom)
    container.quests.check_and_update_quests = AsyncMock(side_effect=boom)
    container.achievements.check_and_award = AsyncMock(side_effect=boom)

    summary = await container.progression.process_activity(lesson_event)

    assert set(summary.errors) == {"history", "streak", "rating", "xp", "quests", "achievements"}
    assert summary.quests == []
    assert summary.achievements == []


@pytest.mark.asyncio
async def test_run_subsystem_tags_results(container):
    service = container.progression

    ok = await service._run_subsystem("xp", AsyncMock(return_value={"xp_awarded": 5}))
    failed = await service._run_subsystem("xp", AsyncMock(side_effect=ValueError("nope")))

    assert ok == SubsystemResult(name="xp", ok=True, value={"xp_awarded": 5})
    assert failed == SubsystemResult(name="xp", ok=False, error="nope")


# ============================================================================
# Concurrency Tests
# ============================================================================

@pytest.mark.asyncio
async def test_concurrent_events_for_one_student(container, lesson_event, store):
    events = [lesson_event.model_copy(update={"lesson_id": f"mechanics-0{i}"}) for i in range(1, 4)]

    summaries = await asyncio.gather(*(container.progression.process_activity(e) for e in events))

    assert all(s.errors == {} for s in summaries)
    record = await store.get_xp_record("student-123")
    ledger = await store.list_xp_transactions("student-123")
    assert record.total_xp == sum(t.xp_amount for t in ledger)
    assert len([t for t in ledger if t.transaction_type == "lesson_completion"]) == 3
    assert len(await store.list_rating_history("student-123")) == 3
    assert isinstance(container.progression, ProgressionService)


@pytest.mark.asyncio
async def test_concurrent_events_interleaving_store(yielding_store, locks, lesson_event):
    progression = ServiceContainer(store=yielding_store, locks=locks).progression
    events = [lesson_event.model_copy(update={"lesson_id": f"mechanics-0{i}"}) for i in range(1, 4)]

    summaries = await asyncio.gather(*(progression.process_activity(e) for e in events))

    assert all(s.errors == {} for s in summaries)
    explorer = [row for s in summaries for row in s.quests if row["title"] == "Physics Explorer"]
    assert sorted(row["progress"] for row in explorer) == [1, 2, 3]
    assert [row["just_completed"] for row in explorer].count(True) == 1
    assert (await yielding_store.get_streak("student-123")).current_streak == 1
