"""Global test fixtures and utilities for progression engine tests"""
import asyncio
import pytest
from datetime import datetime, date

from progression.db.memory_store import InMemoryStore
from progression.gamification.locks import KeyedLock
from progression.models import ActivityEvent, LessonResult
from progression.resilience.circuit_breaker import STORE_BREAKER
from progression.services.container import ServiceContainer
from progression.utils.datetime_helpers import UTC


# ============================================================================
# Store & Container Fixtures
# ============================================================================

@pytest.fixture
def store():
    """Fresh in-memory ledger seeded with the default catalogs"""
    return InMemoryStore()


class YieldingStore(InMemoryStore):
    """
    In-memory store that hands control back to the event loop between a
    read and the next write, the way a network round trip does
    """

    async def get_xp_record(self, student_id):
        record = await super().get_xp_record(student_id)
        await asyncio.sleep(0)
        return record

    async def get_streak(self, student_id):
        record = await super().get_streak(student_id)
        await asyncio.sleep(0)
        return record

    async def save_streak(self, record):
        await asyncio.sleep(0)
        return await super().save_streak(record)

    async def get_participation(self, student_id, season_id):
        participation = await super().get_participation(student_id, season_id)
        await asyncio.sleep(0)
        return participation

    async def update_participation(self, participation):
        await asyncio.sleep(0)
        return await super().update_participation(participation)

    async def get_quest_progress(self, student_id, quest_id):
        progress = await super().get_quest_progress(student_id, quest_id)
        await asyncio.sleep(0)
        return progress

    async def update_quest_progress(self, progress):
        await asyncio.sleep(0)
        return await super().update_quest_progress(progress)


@pytest.fixture
def yielding_store():
    """Store whose read-modify-write sequences interleave unless locked"""
    return YieldingStore()


@pytest.fixture
def locks():
    """Isolated lock registry so tests never share lock state"""
    return KeyedLock()


@pytest.fixture
def container(store, locks):
    """All engines wired around the in-memory store"""
    return ServiceContainer(store=store, locks=locks)


@pytest.fixture(autouse=True)
def reset_store_breaker():
    """Every test starts with a closed store circuit"""
    STORE_BREAKER.close()
    yield
    STORE_BREAKER.close()


# ============================================================================
# Clock Fixtures
# ============================================================================

@pytest.fixture
def fixed_today():
    """A Sunday, so it is also the first day of its league season"""
    return date(2026, 10, 18)


@pytest.fixture
def fixed_now(fixed_today):
    return datetime(fixed_today.year, fixed_today.month, fixed_today.day, 9, 0, tzinfo=UTC)


# ============================================================================
# Activity Fixtures
# ============================================================================

@pytest.fixture
def test_student_id():
    return "student-123"


@pytest.fixture
def lesson_event(test_student_id, fixed_now):
    """9/10 in one minute on a Mechanics lesson"""
    return ActivityEvent(
        student_id=test_student_id,
        lesson_id="mechanics-01",
        score=9,
        total_points=10,
        time_taken=60,
        timestamp=fixed_now,
        subject="Mechanics",
    )


@pytest.fixture
def make_result():
    """LessonResult factory shared by history-based tests"""
    def factory(student_id, lesson_id, score, total_points, timestamp, subject=None, time_taken=600):
        return LessonResult(
            student_id=student_id,
            lesson_id=lesson_id,
            subject=subject,
            score=score,
            total_points=total_points,
            time_taken=time_taken,
            timestamp=timestamp,
        )
    return factory
