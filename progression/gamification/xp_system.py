"""
XP and Leveling System

Manages XP awards, level calculations and level-up bonuses.

Leveling Curve:
- Level 1 needs 100 XP
- Level L > 1 needs floor(100 * 1.2^(L-1)) + floor(25 * L) XP on top of
  everything required for the levels below it

XP Award Rules:
- Lesson completion: 50 XP base + accuracy bonus (up to 25) + speed bonus
  (up to 12) + 25 for a perfect score
- Streak milestones: 50-2000 XP
- Daily quests and achievements: reward from their catalogs
- Level-up bonus: 50 XP per level reached
"""

from typing import Any, Awaitable, Callable, Dict, List, Optional
import logging

from progression import config
from progression.db.store import LedgerStore
from progression.gamification.activity_feed import ActivityFeed
from progression.gamification.locks import KeyedLock, student_locks
from progression.models import TransactionType, XPRecord, XPTransaction
from progression.observability.metrics import record_level_up, record_xp_award
from progression.utils.math_helpers import round_half_up

logger = logging.getLogger(__name__)

LESSON_BASE_XP = 50
PERFECT_SCORE_BONUS = 25
SPEED_FULL_BONUS_SECONDS = 5 * 60
SPEED_NO_BONUS_SECONDS = 15 * 60

LEVEL_TITLES = [
    {"title": "Physics Student", "description": "Just starting your physics journey", "icon": "🎓"},
    {"title": "Lab Assistant", "description": "Learning the basics", "icon": "🔬"},
    {"title": "Physics Explorer", "description": "Discovering new concepts", "icon": "🔍"},
    {"title": "Formula Learner", "description": "Mastering equations", "icon": "📐"},
    {"title": "Experiment Helper", "description": "Understanding experiments", "icon": "⚗️"},
    {"title": "Physics Scholar", "description": "Developing deep knowledge", "icon": "📚"},
    {"title": "Theory Understander", "description": "Grasping complex theories", "icon": "💡"},
    {"title": "Lab Specialist", "description": "Excelling in practical work", "icon": "🧪"},
    {"title": "Physics Enthusiast", "description": "Passionate about physics", "icon": "🌟"},
    {"title": "Advanced Student", "description": "Tackling advanced topics", "icon": "🚀"},
    {"title": "Newton's Apprentice", "description": "Following in great footsteps", "icon": "🍎"},
    {"title": "Equation Master", "description": "Fluent in mathematical physics", "icon": "🧮"},
    {"title": "Wave Specialist", "description": "Expert in wave phenomena", "icon": "🌊"},
    {"title": "Quantum Explorer", "description": "Venturing into quantum realm", "icon": "⚛️"},
    {"title": "Energy Expert", "description": "Master of energy concepts", "icon": "⚡"},
    {"title": "Field Theorist", "description": "Understanding force fields", "icon": "🧲"},
    {"title": "Relativity Student", "description": "Grasping space and time", "icon": "🌌"},
    {"title": "Particle Physicist", "description": "Studying fundamental particles", "icon": "💫"},
    {"title": "Einstein's Protégé", "description": "Following the master", "icon": "🧠"},
    {"title": "Cosmic Thinker", "description": "Understanding the universe", "icon": "🌠"},
    {"title": "Physics Virtuoso", "description": "Exceptional physics skills", "icon": "🎭"},
    {"title": "Quantum Master", "description": "Master of quantum mechanics", "icon": "🔮"},
    {"title": "Universal Scholar", "description": "Scholar of universal laws", "icon": "🌍"},
    {"title": "Physics Genius", "description": "Exceptional understanding", "icon": "🤯"},
    {"title": "Legendary Physicist", "description": "Among the physics legends", "icon": "👑"},
]

# (student_id, amount, transaction_type)
AwardListener = Callable[[str, int, str], Awaitable[Any]]


def xp_required_for_level(level: int) -> int:
    """XP needed to go from the start of level to the start of level + 1"""
    if level <= 1:
        return 100
    # 100 * 1.2^(L-1) computed exactly as 100 * 6^(L-1) / 5^(L-1)
    exponent = level - 1
    return (100 * 6 ** exponent) // (5 ** exponent) + level * 25


def calculate_level_from_xp(total_xp: int) -> Dict[str, int]:
    """
    Derive level from total XP

    Returns:
        {
            'current_level': int,
            'xp_in_current_level': int,
            'xp_to_next_level': int,
            'total_xp_for_current_level': int,
            'xp_required_for_next_level': int
        }
    """
    total_xp = max(0, total_xp)
    level = 1
    xp_for_current_level = 0
    required = xp_required_for_level(level)

    while total_xp >= xp_for_current_level + required:
        xp_for_current_level += required
        level += 1
        required = xp_required_for_level(level)

    xp_in_current_level = total_xp - xp_for_current_level
    return {
        "current_level": level,
        "xp_in_current_level": xp_in_current_level,
        "xp_to_next_level": required - xp_in_current_level,
        "total_xp_for_current_level": xp_for_current_level,
        "xp_required_for_next_level": required,
    }


def cumulative_xp_for_level(level: int) -> int:
    """Total XP at which level starts"""
    return sum(xp_required_for_level(lvl) for lvl in range(1, level))


def get_level_up_bonus(level: int) -> int:
    return level * 50


def get_level_title(level: int) -> Dict[str, str]:
    """Physics-themed title for a level; levels past the table keep the last title"""
    index = min(max(level, 1) - 1, len(LEVEL_TITLES) - 1)
    return LEVEL_TITLES[index]


def calculate_speed_bonus(base_xp: int, time_taken: int) -> int:
    """Full 25% bonus up to 5 minutes, falling linearly to nothing at 15 minutes"""
    if time_taken <= SPEED_FULL_BONUS_SECONDS:
        return int(base_xp * 0.25)
    if time_taken <= SPEED_NO_BONUS_SECONDS:
        ratio = (SPEED_NO_BONUS_SECONDS - time_taken) / (SPEED_NO_BONUS_SECONDS - SPEED_FULL_BONUS_SECONDS)
        return int(base_xp * 0.25 * ratio)
    return 0


def calculate_lesson_xp(score: float, total_points: float, time_taken: int) -> Dict[str, Any]:
    """XP breakdown for a completed lesson"""
    accuracy = score / total_points if total_points > 0 else 0.0
    accuracy_bonus = int(LESSON_BASE_XP * accuracy * 0.5)
    speed_bonus = calculate_speed_bonus(LESSON_BASE_XP, time_taken)
    perfect_bonus = PERFECT_SCORE_BONUS if accuracy == 1 else 0

    return {
        "base_xp": LESSON_BASE_XP,
        "accuracy_bonus": accuracy_bonus,
        "speed_bonus": speed_bonus,
        "perfect_bonus": perfect_bonus,
        "accuracy": round_half_up(accuracy * 100),
        "total_xp": LESSON_BASE_XP + accuracy_bonus + speed_bonus + perfect_bonus,
    }


class XPSystem:
    """Awards XP against the ledger and detects level-ups"""

    def __init__(
        self,
        store: LedgerStore,
        activity_feed: Optional[ActivityFeed] = None,
        locks: Optional[KeyedLock] = None,
        level_up_bonus_mode: Optional[str] = None,
    ):
        self.store = store
        self.activity_feed = activity_feed or ActivityFeed(store)
        self.locks = locks or student_locks
        self.level_up_bonus_mode = level_up_bonus_mode or config.LEVEL_UP_BONUS_MODE
        self._award_listeners: List[AwardListener] = []

    def add_award_listener(self, listener: AwardListener) -> None:
        """Register a coroutine called after every award (e.g. league weekly XP)"""
        self._award_listeners.append(listener)

    async def _stored_level(self, student_id: str) -> int:
        """Level currently on record; a missing or corrupt record counts as level 1"""
        record = await self.store.get_xp_record(student_id)
        if record is None:
            await self.store.create_xp_record(student_id)
            return 1
        if record.total_xp < 0 or record.current_level < 1:
            logger.warning(
                f"Corrupt XP record for student {student_id} "
                f"(total_xp={record.total_xp}, level={record.current_level}), treating as level 1"
            )
            return 1
        return record.current_level

    async def _append(
        self,
        student_id: str,
        amount: int,
        transaction_type: str,
        description: str,
        metadata: Optional[Dict[str, Any]],
        source_id: Optional[str],
    ) -> tuple[XPRecord, Dict[str, int]]:
        """Append a ledger row and persist the level fields derived from the new total"""
        transaction = XPTransaction(
            student_id=student_id,
            xp_amount=amount,
            transaction_type=transaction_type,
            description=description,
            metadata=metadata or {},
            source_id=source_id,
        )
        record = await self.store.append_xp_transaction(transaction)
        level_info = calculate_level_from_xp(record.total_xp)
        record = await self.store.set_xp_level(
            student_id,
            level_info["current_level"],
            level_info["xp_to_next_level"],
        )
        record_xp_award(transaction_type, amount)
        return record, level_info

    async def award_xp(
        self,
        student_id: str,
        amount: int,
        transaction_type: str,
        description: str = "",
        metadata: Optional[Dict[str, Any]] = None,
        source_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Award XP to a student and check for level up

        Args:
            student_id: Student identifier
            amount: XP to add (callers validate sign)
            transaction_type: lesson_completion, streak_milestone, daily_quest, ...
            description: Human-readable reason
            metadata: Arbitrary structured context stored on the transaction

        Returns:
            {
                'xp_awarded': int,
                'total_xp': int,
                'current_level': int,
                'old_level': int,
                'xp_in_current_level': int,
                'xp_to_next_level': int,
                'leveled_up': bool,
                'level_up_bonus': int,
                'final_total_xp': int,
                'final_level': int
            }

        Store failures propagate to the caller.
        """
        if isinstance(transaction_type, TransactionType):
            transaction_type = transaction_type.value

        async with self.locks.hold(student_id):
            old_level = await self._stored_level(student_id)
            record, level_info = await self._append(
                student_id, amount, transaction_type, description, metadata, source_id
            )
            new_level = level_info["current_level"]
            leveled_up = new_level > old_level

            result = {
                "xp_awarded": amount,
                "total_xp": record.total_xp,
                "current_level": new_level,
                "old_level": old_level,
                "xp_in_current_level": level_info["xp_in_current_level"],
                "xp_to_next_level": level_info["xp_to_next_level"],
                "leveled_up": leveled_up,
                "level_up_bonus": 0,
                "final_total_xp": record.total_xp,
                "final_level": new_level,
            }

            logger.info(
                f"Awarded {amount} XP to student {student_id} ({transaction_type}), "
                f"total={record.total_xp}, level={new_level}"
            )

            # Listeners see this award before any bonus it triggers
            await self._notify_listeners(student_id, amount, transaction_type)

            if leveled_up:
                await self._handle_level_up(student_id, old_level, new_level, record.total_xp, result)

            return result

    async def _handle_level_up(
        self,
        student_id: str,
        old_level: int,
        new_level: int,
        total_xp: int,
        result: Dict[str, Any],
    ) -> None:
        bonus = get_level_up_bonus(new_level)
        title = get_level_title(new_level)["title"]
        result["level_up_bonus"] = bonus
        record_level_up()
        logger.info(f"Student {student_id} leveled up from {old_level} to {new_level}: {title}")

        await self.activity_feed.log_level_up(student_id, new_level, title, total_xp)

        description = f"Level up bonus for reaching level {new_level}"
        bonus_metadata = {"old_level": old_level, "new_level": new_level, "level_title": title}

        if self.level_up_bonus_mode == "legacy":
            record, _ = await self._append(
                student_id,
                bonus,
                TransactionType.LEVEL_UP_BONUS.value,
                description,
                bonus_metadata,
                None,
            )
            result["final_total_xp"] = record.total_xp
            result["final_level"] = record.current_level
            await self._notify_listeners(student_id, bonus, TransactionType.LEVEL_UP_BONUS.value)
            return

        bonus_result = await self.award_xp(
            student_id,
            bonus,
            TransactionType.LEVEL_UP_BONUS.value,
            description,
            bonus_metadata,
        )
        result["final_total_xp"] = bonus_result["final_total_xp"]
        result["final_level"] = bonus_result["final_level"]

    async def _notify_listeners(self, student_id: str, amount: int, transaction_type: str) -> None:
        if amount <= 0:
            return
        for listener in self._award_listeners:
            try:
                await listener(student_id, amount, transaction_type)
            except Exception as e:
                logger.error(f"XP award listener failed for student {student_id}: {e}", exc_info=True)

    async def get_user_xp(self, student_id: str) -> Dict[str, Any]:
        """
        XP statistics for a student (read-only; does not create a record)

        Returns:
            {
                'total_xp': int,
                'current_level': int,
                'xp_in_current_level': int,
                'xp_to_next_level': int,
                'xp_required_for_next_level': int,
                'level_title': dict,
                'level_progress': int (percent)
            }
        """
        record = await self.store.get_xp_record(student_id)
        total_xp = record.total_xp if record else 0
        level_info = calculate_level_from_xp(total_xp)
        level = level_info["current_level"]

        return {
            "total_xp": total_xp,
            "current_level": level,
            "xp_in_current_level": level_info["xp_in_current_level"],
            "xp_to_next_level": level_info["xp_to_next_level"],
            "xp_required_for_next_level": level_info["xp_required_for_next_level"],
            "level_title": get_level_title(level),
            "level_progress": round_half_up(
                level_info["xp_in_current_level"] / level_info["xp_required_for_next_level"] * 100
            ),
        }

    async def get_xp_history(self, student_id: str, limit: int = 50) -> List[Dict[str, Any]]:
        """Recent XP transactions, newest first"""
        transactions = await self.store.list_xp_transactions(student_id, limit=limit)
        return [
            {
                "id": t.id,
                "xp_amount": t.xp_amount,
                "transaction_type": t.transaction_type,
                "description": t.description,
                "metadata": t.metadata,
                "created_at": t.created_at,
            }
            for t in transactions
        ]

    async def award_lesson_completion_xp(
        self,
        student_id: str,
        lesson_id: str,
        score: float,
        total_points: float,
        time_taken: int,
        result_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Award the lesson completion XP breakdown from calculate_lesson_xp"""
        breakdown = calculate_lesson_xp(score, total_points, time_taken)
        metadata = {
            "lesson_id": lesson_id,
            "result_id": result_id,
            "score": score,
            "total_points": total_points,
            "time_taken": time_taken,
            **breakdown,
        }
        return await self.award_xp(
            student_id,
            breakdown["total_xp"],
            TransactionType.LESSON_COMPLETION.value,
            f"Completed lesson with {breakdown['accuracy']}% accuracy",
            metadata,
            source_id=result_id,
        )
