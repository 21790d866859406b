"""Pydantic models for progression records"""
from progression.models.xp import XPRecord, XPTransaction, TransactionType
from progression.models.streak import StreakRecord
from progression.models.rating import RatingRecord, RatingHistoryEntry
from progression.models.league import LeagueSeason, LeagueDivision, LeagueParticipation
from progression.models.quest import DailyQuest, QuestProgress
from progression.models.achievement import Achievement, StudentAchievement, AchievementCategory
from progression.models.activity import (
    ActivityEvent,
    ActivityEntry,
    ActivityType,
    LessonResult,
    ProgressionSummary,
)

__all__ = [
    "XPRecord",
    "XPTransaction",
    "TransactionType",
    "StreakRecord",
    "RatingRecord",
    "RatingHistoryEntry",
    "LeagueSeason",
    "LeagueDivision",
    "LeagueParticipation",
    "DailyQuest",
    "QuestProgress",
    "Achievement",
    "StudentAchievement",
    "AchievementCategory",
    "ActivityEvent",
    "ActivityEntry",
    "ActivityType",
    "LessonResult",
    "ProgressionSummary",
]
