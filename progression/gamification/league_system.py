"""
League System

Weekly competitive seasons (Sunday..Saturday). Each participant sits in the
division whose weekly XP range contains their XP earned this season.

Divisions (weekly XP, upper bound exclusive):
- Electron: 0-499
- Proton: 500-999
- Neutron: 1000-1999
- Quark: 2000-3499
- Photon: 3500+

Season rollover is driven by an external scheduler through
check_and_start_new_season_if_needed(). It runs as a restartable sequence:
persist final ranks, reset participants, close the season, open the next.
"""

from datetime import date, timedelta
from typing import Any, Dict, List, Optional, Sequence
import logging

from progression import config
from progression.db.store import LedgerStore
from progression.exceptions import ConfigurationError
from progression.gamification.activity_feed import ActivityFeed
from progression.gamification.locks import KeyedLock, student_locks
from progression.models import LeagueDivision, LeagueParticipation, LeagueSeason
from progression.observability.metrics import record_division_change, record_season_rollover
from progression.utils.datetime_helpers import now_utc, today_utc, week_bounds

logger = logging.getLogger(__name__)

DEFAULT_DIVISIONS = [
    LeagueDivision(id="electron", name="Electron", division_order=1, min_xp_per_week=0, max_xp_per_week=500, icon="⚪"),
    LeagueDivision(id="proton", name="Proton", division_order=2, min_xp_per_week=500, max_xp_per_week=1000, icon="🔴"),
    LeagueDivision(id="neutron", name="Neutron", division_order=3, min_xp_per_week=1000, max_xp_per_week=2000, icon="🟢"),
    LeagueDivision(id="quark", name="Quark", division_order=4, min_xp_per_week=2000, max_xp_per_week=3500, icon="🟣"),
    LeagueDivision(id="photon", name="Photon", division_order=5, min_xp_per_week=3500, max_xp_per_week=None, icon="🌟"),
]


def validate_division_partition(divisions: Sequence[LeagueDivision]) -> None:
    """
    Check that divisions cover [0, inf) contiguously with no overlap

    Raises:
        ConfigurationError: gap, overlap, empty range or bounded top division
    """
    ordered = sorted(divisions, key=lambda d: d.division_order)
    if not ordered:
        raise ConfigurationError("At least one league division is required", config_key="league_divisions")
    if ordered[0].min_xp_per_week != 0:
        raise ConfigurationError("Lowest division must start at 0 weekly XP", config_key="league_divisions")

    for lower, upper in zip(ordered, ordered[1:]):
        if lower.max_xp_per_week is None:
            raise ConfigurationError(
                f"Division {lower.name} is unbounded but is not the top division",
                config_key="league_divisions",
            )
        if lower.max_xp_per_week != upper.min_xp_per_week:
            raise ConfigurationError(
                f"Divisions {lower.name} and {upper.name} leave a gap or overlap",
                config_key="league_divisions",
            )

    for division in ordered:
        if division.max_xp_per_week is not None and division.max_xp_per_week <= division.min_xp_per_week:
            raise ConfigurationError(f"Division {division.name} has an empty range", config_key="league_divisions")

    if ordered[-1].max_xp_per_week is not None:
        raise ConfigurationError("Top division must be unbounded", config_key="league_divisions")


def division_for_xp(divisions: Sequence[LeagueDivision], weekly_xp: int) -> LeagueDivision:
    """Highest division (by order) whose minimum the weekly XP satisfies"""
    ordered = sorted(divisions, key=lambda d: d.division_order)
    chosen = ordered[0]
    for division in ordered:
        if weekly_xp >= division.min_xp_per_week:
            chosen = division
    return chosen


def season_window(today: date) -> tuple[date, date, str]:
    """(start, end, name) of the Sunday..Saturday season containing today"""
    start, end = week_bounds(today)
    return start, end, f"Week of {start:%b} {start.day}"


class LeagueSystem:
    """Season lifecycle, division assignment and standings"""

    def __init__(
        self,
        store: LedgerStore,
        activity_feed: Optional[ActivityFeed] = None,
        locks: Optional[KeyedLock] = None,
        rollover_batch_size: Optional[int] = None,
    ):
        self.store = store
        self.activity_feed = activity_feed or ActivityFeed(store)
        self.locks = locks or student_locks
        self.rollover_batch_size = rollover_batch_size or config.LEAGUE_ROLLOVER_BATCH_SIZE

    # ==========================================
    # Seasons
    # ==========================================

    async def get_current_season(self, today: Optional[date] = None) -> LeagueSeason:
        """Active season, creating the one for this week if none is active"""
        season = await self.store.get_active_season()
        if season is not None:
            return season

        start, end, name = season_window(today or today_utc())
        season = await self.store.create_season(
            LeagueSeason(season_name=name, start_date=start, end_date=end)
        )
        logger.info(f"Created new league season: {season.season_name} ({season.start_date}..{season.end_date})")
        return season

    async def get_student_weekly_xp(self, student_id: str) -> int:
        """Sum of positive XP transactions over the trailing seven days"""
        since = now_utc() - timedelta(days=7)
        transactions = await self.store.list_xp_transactions(student_id, since=since)
        return sum(t.xp_amount for t in transactions if t.xp_amount > 0)

    # ==========================================
    # Participation
    # ==========================================

    async def join_season(self, student_id: str, today: Optional[date] = None) -> LeagueParticipation:
        """Existing participation, or a new one placed by trailing weekly XP"""
        async with self.locks.hold(student_id):
            season = await self.get_current_season(today)
            existing = await self.store.get_participation(student_id, season.id)
            if existing is not None:
                return existing

            weekly_xp = await self.get_student_weekly_xp(student_id)
            divisions = await self.store.list_divisions()
            division = division_for_xp(divisions, weekly_xp)

            participation = await self.store.create_participation(
                LeagueParticipation(
                    student_id=student_id,
                    season_id=season.id,
                    division_id=division.id,
                    weekly_xp=weekly_xp,
                )
            )
            logger.info(f"Student {student_id} joined {division.name} for season {season.season_name}")
            return participation

    async def add_weekly_xp(
        self,
        student_id: str,
        amount: int,
        today: Optional[date] = None,
    ) -> LeagueParticipation:
        """
        Add XP to the student's weekly total and move divisions if needed

        promoted/demoted describe only this update; they are cleared on the
        next update that does not change division.
        """
        async with self.locks.hold(student_id):
            participation = await self.join_season(student_id, today)
            return await self._apply_weekly_xp(participation, amount)

    async def _apply_weekly_xp(self, participation: LeagueParticipation, amount: int) -> LeagueParticipation:
        divisions = await self.store.list_divisions()
        by_id = {d.id: d for d in divisions}
        current = by_id[participation.division_id]

        new_weekly_xp = participation.weekly_xp + amount
        new_division = division_for_xp(divisions, new_weekly_xp)
        changed = new_division.id != current.id

        participation.weekly_xp = new_weekly_xp
        participation.division_id = new_division.id
        participation.promoted = changed and new_division.division_order > current.division_order
        participation.demoted = changed and new_division.division_order < current.division_order
        updated = await self.store.update_participation(participation)

        if changed:
            change = "promoted" if updated.promoted else "demoted"
            logger.info(f"Student {updated.student_id} {change} from {current.name} to {new_division.name}")
            record_division_change(change)
            await self.activity_feed.log_division_change(
                updated.student_id, current.name, new_division.name, updated.promoted
            )

        return updated

    async def on_xp_awarded(self, student_id: str, amount: int, transaction_type: str) -> None:
        """
        XP award listener

        A student joining the season is placed by the trailing-week sum, which
        already includes this award, so the amount is only added for students
        who were already participating.
        """
        async with self.locks.hold(student_id):
            season = await self.get_current_season()
            existing = await self.store.get_participation(student_id, season.id)
            if existing is None:
                await self.join_season(student_id)
                return
            await self._apply_weekly_xp(existing, amount)

    # ==========================================
    # Standings and statistics
    # ==========================================

    async def get_division_standings(
        self,
        division_id: str,
        season_id: Optional[str] = None,
        limit: int = 20,
    ) -> List[Dict[str, Any]]:
        """Ranked participants of one division; empty on read failure"""
        try:
            if season_id is None:
                season_id = (await self.get_current_season()).id
            rows = await self.store.list_participations(season_id, division_id=division_id, limit=limit)
        except Exception as e:
            logger.warning(f"Could not load standings for division {division_id}: {e}")
            return []

        return [
            {
                "rank": index + 1,
                "student_id": p.student_id,
                "weekly_xp": p.weekly_xp,
                "promoted": p.promoted,
                "demoted": p.demoted,
            }
            for index, p in enumerate(rows)
        ]

    async def get_league_statistics(self) -> Dict[str, Any]:
        """Participant counts for the active season; empty on read failure"""
        try:
            season = await self.get_current_season()
            divisions = await self.store.list_divisions()
            participants = await self.store.list_participations(season.id)
        except Exception as e:
            logger.warning(f"Could not load league statistics: {e}")
            return {
                "current_season": None,
                "total_participants": 0,
                "division_counts": {},
                "recent_changes": [],
                "divisions": [],
            }

        names = {d.id: d.name for d in divisions}
        division_counts = {d.name: 0 for d in divisions}
        for p in participants:
            name = names.get(p.division_id, p.division_id)
            division_counts[name] = division_counts.get(name, 0) + 1

        recent_changes = [
            {"student_id": p.student_id, "division": names.get(p.division_id), "promoted": p.promoted, "demoted": p.demoted}
            for p in sorted(participants, key=lambda p: p.joined_at, reverse=True)
            if p.promoted or p.demoted
        ][:10]

        return {
            "current_season": season.model_dump(),
            "total_participants": len(participants),
            "division_counts": division_counts,
            "recent_changes": recent_changes,
            "divisions": [d.model_dump() for d in divisions],
        }

    # ==========================================
    # Rollover
    # ==========================================

    async def _finalize_rankings(self, season: LeagueSeason) -> Dict[str, int]:
        """Persist rank_in_division for every participant, page by page"""
        ranked: Dict[str, int] = {}
        for division in await self.store.list_divisions():
            offset = 0
            while True:
                page = await self.store.list_participations(
                    season.id,
                    division_id=division.id,
                    limit=self.rollover_batch_size,
                    offset=offset,
                )
                for index, participation in enumerate(page):
                    participation.rank_in_division = offset + index + 1
                    await self.store.update_participation(participation)
                offset += len(page)
                if len(page) < self.rollover_batch_size:
                    break
            ranked[division.name] = offset
        return ranked

    async def end_season_and_start_new(
        self,
        today: Optional[date] = None,
        season_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Close the active season (or season_id) and open the next one

        Safe to retry: ranks are only computed until the season is marked
        finalized, and a season that is already closed is left alone.

        Returns:
            {
                'ended_season': LeagueSeason | None,
                'new_season': LeagueSeason,
                'final_rankings': {division name: participants ranked}
            }
        """
        today = today or today_utc()
        season = await self.store.get_season(season_id) if season_id else await self.store.get_active_season()

        if season is None or not season.is_active:
            logger.info("No active season to close, ensuring a current season exists")
            return {
                "ended_season": season,
                "new_season": await self.get_current_season(today),
                "final_rankings": {},
            }

        final_rankings: Dict[str, int] = {}
        if not season.rankings_finalized:
            final_rankings = await self._finalize_rankings(season)
            season.rankings_finalized = True
            season = await self.store.save_season(season)
            logger.info(f"Final rankings stored for season {season.season_name}: {final_rankings}")

        reset = await self.store.reset_season_participations(season.id)

        season.is_active = False
        season = await self.store.save_season(season)
        new_season = await self.get_current_season(today)
        record_season_rollover()

        logger.info(
            f"Season transition completed: {season.season_name} -> {new_season.season_name} "
            f"({reset} participants reset)"
        )
        return {"ended_season": season, "new_season": new_season, "final_rankings": final_rankings}

    async def check_and_start_new_season_if_needed(self, today: Optional[date] = None) -> bool:
        """
        Scheduler hook: roll over when the active season ended before today

        Store failures propagate so the scheduler can retry.
        """
        today = today or today_utc()
        season = await self.get_current_season(today)
        if season.end_date < today:
            await self.end_season_and_start_new(today, season_id=season.id)
            return True
        return False
