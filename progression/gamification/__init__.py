"""
Progression engines for the learning platform

- XP and leveling
- Daily streaks with freezes
- Skill rating
- Weekly leagues
- Daily quests
- Achievements
"""

from progression.gamification.xp_system import XPSystem, calculate_level_from_xp, xp_required_for_level
from progression.gamification.streak_system import StreakSystem
from progression.gamification.rating_system import RatingSystem, calculate_rating_change
from progression.gamification.league_system import LeagueSystem, DEFAULT_DIVISIONS
from progression.gamification.quest_system import QuestSystem, select_daily_templates
from progression.gamification.achievement_system import AchievementSystem, DEFAULT_ACHIEVEMENTS
from progression.gamification.activity_feed import ActivityFeed
from progression.gamification.locks import KeyedLock, student_locks

__all__ = [
    "XPSystem",
    "calculate_level_from_xp",
    "xp_required_for_level",
    "StreakSystem",
    "RatingSystem",
    "calculate_rating_change",
    "LeagueSystem",
    "DEFAULT_DIVISIONS",
    "QuestSystem",
    "select_daily_templates",
    "AchievementSystem",
    "DEFAULT_ACHIEVEMENTS",
    "ActivityFeed",
    "KeyedLock",
    "student_locks",
]
