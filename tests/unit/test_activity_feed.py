"""Unit tests for the activity feed (progression/gamification/activity_feed.py)"""
import pytest
from unittest.mock import AsyncMock

from progression.exceptions import StoreUnavailable
from progression.gamification.activity_feed import ActivityFeed
from progression.models import ActivityType


@pytest.mark.asyncio
async def test_level_up_entry(store):
    feed = ActivityFeed(store)

    entry = await feed.log_level_up("s1", 2, "Lab Assistant", 150)

    assert entry.activity_type == ActivityType.LEVEL_UP.value
    assert entry.title == "Reached Level 2: Lab Assistant"
    assert entry.is_public is True


@pytest.mark.asyncio
async def test_quest_completion_is_private(store):
    feed = ActivityFeed(store)

    entry = await feed.log_quest_completion("s1", "Quick Learner", 50, "q-1")

    assert entry.is_public is False
    assert entry.metadata == {"quest_id": "q-1", "xp_reward": 50}


@pytest.mark.asyncio
async def test_division_change_wording(store):
    feed = ActivityFeed(store)

    promoted = await feed.log_division_change("s1", "Electron", "Proton", True)
    demoted = await feed.log_division_change("s1", "Proton", "Electron", False)

    assert promoted.title == "Promoted to Proton League"
    assert demoted.description == "Demoted from Proton to Electron"


@pytest.mark.asyncio
async def test_feed_failure_is_swallowed(store):
    store.create_activity = AsyncMock(side_effect=StoreUnavailable(operation="create_activity"))
    feed = ActivityFeed(store)

    assert await feed.log_streak_milestone("s1", 7, "Week Warrior") is None
