"""
Service Container - Dependency Injection Container

Builds the progression engines around one LedgerStore. Engines are
lazy-loaded on first access and share the store, the activity feed and
the per-student lock registry.
"""

from dataclasses import dataclass, field
from typing import Optional
import logging

from progression.db.store import LedgerStore
from progression.gamification.locks import KeyedLock, student_locks

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """
    Dependency injection container for the progression engines.

    The store defaults to PostgresStore on the global connection pool;
    tests inject an InMemoryStore.
    """

    store: Optional[LedgerStore] = None
    locks: KeyedLock = field(default=student_locks)

    _activity_feed: Optional[object] = field(default=None, init=False, repr=False)
    _xp: Optional[object] = field(default=None, init=False, repr=False)
    _streak: Optional[object] = field(default=None, init=False, repr=False)
    _rating: Optional[object] = field(default=None, init=False, repr=False)
    _league: Optional[object] = field(default=None, init=False, repr=False)
    _quests: Optional[object] = field(default=None, init=False, repr=False)
    _achievements: Optional[object] = field(default=None, init=False, repr=False)
    _progression: Optional[object] = field(default=None, init=False, repr=False)

    def __post_init__(self):
        if self.store is None:
            from progression.db.postgres_store import PostgresStore
            self.store = PostgresStore()

    @property
    def activity_feed(self):
        if self._activity_feed is None:
            from progression.gamification.activity_feed import ActivityFeed
            self._activity_feed = ActivityFeed(self.store)
        return self._activity_feed

    @property
    def xp(self):
        """XPSystem; league weekly XP listens to every award"""
        if self._xp is None:
            from progression.gamification.xp_system import XPSystem
            self._xp = XPSystem(self.store, self.activity_feed, self.locks)
            self._xp.add_award_listener(self.league.on_xp_awarded)
            logger.debug("XPSystem instantiated")
        return self._xp

    @property
    def streak(self):
        if self._streak is None:
            from progression.gamification.streak_system import StreakSystem
            self._streak = StreakSystem(self.store, self.xp, self.activity_feed, self.locks)
            logger.debug("StreakSystem instantiated")
        return self._streak

    @property
    def rating(self):
        if self._rating is None:
            from progression.gamification.rating_system import RatingSystem
            self._rating = RatingSystem(self.store, self.locks)
            logger.debug("RatingSystem instantiated")
        return self._rating

    @property
    def league(self):
        if self._league is None:
            from progression.gamification.league_system import LeagueSystem
            self._league = LeagueSystem(self.store, self.activity_feed, self.locks)
            logger.debug("LeagueSystem instantiated")
        return self._league

    @property
    def quests(self):
        if self._quests is None:
            from progression.gamification.quest_system import QuestSystem
            self._quests = QuestSystem(self.store, self.xp, self.activity_feed, self.locks)
            logger.debug("QuestSystem instantiated")
        return self._quests

    @property
    def achievements(self):
        if self._achievements is None:
            from progression.gamification.achievement_system import AchievementSystem
            self._achievements = AchievementSystem(self.store, self.xp, self.activity_feed, self.locks)
            logger.debug("AchievementSystem instantiated")
        return self._achievements

    @property
    def progression(self):
        """ProgressionService over all engines (lazy-loaded)"""
        if self._progression is None:
            from progression.services.progression_service import ProgressionService
            self._progression = ProgressionService(
                self.store,
                self.xp,
                self.streak,
                self.rating,
                self.quests,
                self.achievements,
                self.locks,
            )
            logger.debug("ProgressionService instantiated")
        return self._progression


# Global container instance (initialized by the host application)
_container: Optional[ServiceContainer] = None


def get_container() -> ServiceContainer:
    """
    Get the global service container.

    Raises:
        RuntimeError: If container not initialized (call init_container first)
    """
    if _container is None:
        raise RuntimeError(
            "Service container not initialized. "
            "Call init_container() before using services."
        )
    return _container


def init_container(store: Optional[LedgerStore] = None) -> ServiceContainer:
    """Initialize the global service container"""
    global _container
    _container = ServiceContainer(store=store)
    logger.info("Service container initialized")
    return _container
