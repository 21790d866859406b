"""
Rating System (ELO-style)

A single-player calibration: each graded lesson is scored against a fixed
baseline of the default rating rather than an opponent.

    performance       = score / total_points
    expected          = 1 / (1 + 10^((1500 - previous) / 400))
    time_bonus        = max(0, 1 - time_taken / 300)
    streak_multiplier = 1 + min(streak, 10) * 0.1
    delta             = round(32 * (performance - expected) * time_bonus * streak_multiplier)
"""

from typing import Any, Dict, List, Optional
import logging

from progression import config
from progression.db.store import LedgerStore
from progression.exceptions import ValidationError
from progression.gamification.locks import KeyedLock, student_locks
from progression.models import RatingHistoryEntry, RatingRecord
from progression.utils.math_helpers import round_half_up

logger = logging.getLogger(__name__)

# (minimum rating, tier name), highest first
RATING_TIERS = [
    (2000, "Master"),
    (1800, "Diamond"),
    (1600, "Platinum"),
    (1400, "Gold"),
    (1200, "Silver"),
]


def expected_score(previous_rating: int) -> float:
    return 1 / (1 + 10 ** ((config.RATING_DEFAULT - previous_rating) / 400))


def calculate_rating_change(previous_rating: int, performance: float, time_taken: int, streak: int) -> int:
    """Rating delta for one graded lesson"""
    time_bonus = max(0.0, 1 - time_taken / config.RATING_MAX_TIME_BONUS)
    streak_multiplier = 1 + min(streak, config.RATING_MAX_STREAK_MULTIPLIER) * config.RATING_STREAK_BONUS_RATE
    change = config.RATING_K_FACTOR * (performance - expected_score(previous_rating)) * time_bonus * streak_multiplier
    return round_half_up(change)


def get_rating_tier(rating: int) -> str:
    for minimum, name in RATING_TIERS:
        if rating >= minimum:
            return name
    return "Bronze"


def calculate_performance_metrics(score: float, total_points: float, time_taken: int, streak: int) -> Dict[str, float]:
    accuracy = score / total_points * 100 if total_points > 0 else 0.0
    time_efficiency = max(0.0, 1 - time_taken / config.RATING_MAX_TIME_BONUS) if time_taken > 0 else 0.0
    streak_bonus = min(streak, config.RATING_MAX_STREAK_MULTIPLIER) * config.RATING_STREAK_BONUS_RATE

    return {
        "accuracy": round(accuracy, 2),
        "time_efficiency": round(time_efficiency, 2),
        "streak_bonus": round(streak_bonus, 2),
        "overall_performance": accuracy / 100,
    }


def validate_rating_inputs(score: float, total_points: float, time_taken: int, streak: int) -> Dict[str, Any]:
    """Caller-side check; returns {'is_valid': bool, 'errors': [str]}"""
    errors = []
    if not isinstance(score, (int, float)) or score < 0:
        errors.append("Invalid score value")
    if not isinstance(total_points, (int, float)) or total_points <= 0:
        errors.append("Invalid total points value")
    elif isinstance(score, (int, float)) and score > total_points:
        errors.append("Score cannot be greater than total points")
    if not isinstance(time_taken, (int, float)) or time_taken < 0:
        errors.append("Invalid time taken value")
    if not isinstance(streak, (int, float)) or streak < 0:
        errors.append("Invalid streak value")
    return {"is_valid": not errors, "errors": errors}


class RatingSystem:
    """Maintains the per-student rating and its append-only history"""

    def __init__(
        self,
        store: LedgerStore,
        locks: Optional[KeyedLock] = None,
        rating_floor: Optional[int] = None,
    ):
        self.store = store
        self.locks = locks or student_locks
        self.rating_floor = rating_floor if rating_floor is not None else config.RATING_FLOOR

    async def update_rating(
        self,
        student_id: str,
        lesson_id: str,
        score: float,
        total_points: float,
        time_taken: int,
        streak: int,
    ) -> Dict[str, int]:
        """
        Apply one graded lesson to the student's rating

        Returns:
            {'previous_rating': int, 'rating_change': int, 'new_rating': int}

        Raises:
            ValidationError: total_points is not positive
        """
        if total_points <= 0:
            raise ValidationError("total_points must be positive", field="total_points", value=total_points,
                                  student_id=student_id, operation="update_rating")

        async with self.locks.hold(student_id):
            record = await self.store.get_rating(student_id)
            previous_rating = record.rating if record else config.RATING_DEFAULT
            performance = score / total_points

            change = calculate_rating_change(previous_rating, performance, time_taken, streak)
            new_rating = previous_rating + change
            if self.rating_floor is not None and new_rating < self.rating_floor:
                new_rating = self.rating_floor
                change = new_rating - previous_rating

            await self.store.save_rating(RatingRecord(student_id=student_id, rating=new_rating))
            await self.store.append_rating_history(
                RatingHistoryEntry(
                    student_id=student_id,
                    lesson_id=lesson_id,
                    previous_rating=previous_rating,
                    delta=change,
                    new_rating=new_rating,
                    performance=performance,
                    time_taken=time_taken,
                    streak=streak,
                )
            )

        logger.info(f"Student {student_id} rating {previous_rating} -> {new_rating} ({change:+d})")
        return {"previous_rating": previous_rating, "rating_change": change, "new_rating": new_rating}

    async def get_student_rating_data(self, student_id: str, history_limit: Optional[int] = 50) -> Dict[str, Any]:
        record = await self.store.get_rating(student_id)
        rating = record.rating if record else config.RATING_DEFAULT
        history: List[RatingHistoryEntry] = await self.store.list_rating_history(student_id, limit=history_limit)
        return {
            "current_rating": rating,
            "tier": get_rating_tier(rating),
            "history": [entry.model_dump() for entry in history],
        }
