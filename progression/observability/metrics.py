"""
Prometheus metrics for the progression engine.

Organized by subsystem:
- XP metrics: awards by transaction type, level-ups
- Streak, quest, achievement and league metrics
- Orchestrator metrics: per-subsystem failures
- Store metrics: circuit breaker state

Recording helpers are no-ops when ENABLE_PROMETHEUS is false.
"""

import logging
from prometheus_client import Counter, Enum

from progression.config import ENABLE_PROMETHEUS

logger = logging.getLogger(__name__)

# =============================================================================
# XP Metrics
# =============================================================================

xp_awarded_total = Counter(
    "progression_xp_awarded_total",
    "Total XP awarded",
    ["transaction_type"],
)

level_ups_total = Counter(
    "progression_level_ups_total",
    "Total level-ups",
)

# =============================================================================
# Streak / Quest / Achievement / League Metrics
# =============================================================================

streak_milestones_total = Counter(
    "progression_streak_milestones_total",
    "Streak milestones reached",
    ["milestone"],
)

quests_completed_total = Counter(
    "progression_quests_completed_total",
    "Daily quests completed",
    ["quest_type"],
)

achievements_awarded_total = Counter(
    "progression_achievements_awarded_total",
    "Achievements awarded",
    ["achievement"],
)

league_division_changes_total = Counter(
    "progression_league_division_changes_total",
    "League division changes",
    ["change"],  # promoted/demoted
)

season_rollovers_total = Counter(
    "progression_season_rollovers_total",
    "League seasons closed",
)

# =============================================================================
# Orchestrator Metrics
# =============================================================================

subsystem_failures_total = Counter(
    "progression_subsystem_failures_total",
    "Subsystem failures absorbed while processing an activity",
    ["subsystem"],
)

# =============================================================================
# Store Metrics
# =============================================================================

store_breaker_state = Enum(
    "progression_store_breaker_state",
    "Current state of the store circuit breaker",
    ["breaker"],
    states=["closed", "open", "half-open"],
)


def record_xp_award(transaction_type: str, amount: int) -> None:
    if not ENABLE_PROMETHEUS or amount <= 0:
        return
    xp_awarded_total.labels(transaction_type=transaction_type).inc(amount)


def record_level_up() -> None:
    if ENABLE_PROMETHEUS:
        level_ups_total.inc()


def record_streak_milestone(milestone: int) -> None:
    if ENABLE_PROMETHEUS:
        streak_milestones_total.labels(milestone=str(milestone)).inc()


def record_quest_completed(quest_type: str) -> None:
    if ENABLE_PROMETHEUS:
        quests_completed_total.labels(quest_type=quest_type).inc()


def record_achievement(name: str) -> None:
    if ENABLE_PROMETHEUS:
        achievements_awarded_total.labels(achievement=name).inc()


def record_division_change(change: str) -> None:
    if ENABLE_PROMETHEUS:
        league_division_changes_total.labels(change=change).inc()


def record_season_rollover() -> None:
    if ENABLE_PROMETHEUS:
        season_rollovers_total.inc()


def record_subsystem_failure(subsystem: str) -> None:
    if ENABLE_PROMETHEUS:
        subsystem_failures_total.labels(subsystem=subsystem).inc()


def record_breaker_state(breaker: str, state: str) -> None:
    if not ENABLE_PROMETHEUS:
        return
    try:
        store_breaker_state.labels(breaker=breaker).state(state)
    except ValueError:
        logger.error(f"Unknown circuit breaker state: {state}")
