"""Postgres schema for the progression ledger"""
import logging

from progression.db.connection import Database, db

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS student_xp (
    student_id TEXT PRIMARY KEY,
    total_xp INTEGER NOT NULL DEFAULT 0 CHECK (total_xp >= 0),
    current_level INTEGER NOT NULL DEFAULT 1 CHECK (current_level >= 1),
    xp_to_next_level INTEGER NOT NULL DEFAULT 100,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS xp_transactions (
    id TEXT PRIMARY KEY,
    student_id TEXT NOT NULL,
    xp_amount INTEGER NOT NULL,
    transaction_type TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    metadata JSONB NOT NULL DEFAULT '{}',
    source_id TEXT,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
CREATE INDEX IF NOT EXISTS idx_xp_transactions_student ON xp_transactions (student_id, created_at DESC);

CREATE TABLE IF NOT EXISTS student_streaks (
    student_id TEXT PRIMARY KEY,
    current_streak INTEGER NOT NULL DEFAULT 0 CHECK (current_streak >= 0),
    longest_streak INTEGER NOT NULL DEFAULT 0,
    last_activity_date DATE,
    freezes_available INTEGER NOT NULL DEFAULT 3 CHECK (freezes_available >= 0),
    freezes_used INTEGER NOT NULL DEFAULT 0 CHECK (freezes_used >= 0),
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    CHECK (longest_streak >= current_streak)
);

CREATE TABLE IF NOT EXISTS student_ratings (
    student_id TEXT PRIMARY KEY,
    rating INTEGER NOT NULL DEFAULT 1500,
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS rating_history (
    id BIGSERIAL PRIMARY KEY,
    student_id TEXT NOT NULL,
    lesson_id TEXT,
    previous_rating INTEGER NOT NULL,
    delta INTEGER NOT NULL,
    new_rating INTEGER NOT NULL,
    performance DOUBLE PRECISION NOT NULL,
    time_taken INTEGER NOT NULL,
    streak INTEGER NOT NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
CREATE INDEX IF NOT EXISTS idx_rating_history_student ON rating_history (student_id, created_at DESC);

CREATE TABLE IF NOT EXISTS league_seasons (
    id TEXT PRIMARY KEY,
    season_name TEXT NOT NULL,
    start_date DATE NOT NULL,
    end_date DATE NOT NULL,
    is_active BOOLEAN NOT NULL DEFAULT TRUE,
    rankings_finalized BOOLEAN NOT NULL DEFAULT FALSE,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
CREATE UNIQUE INDEX IF NOT EXISTS uq_league_seasons_single_active ON league_seasons (is_active) WHERE is_active;

CREATE TABLE IF NOT EXISTS league_divisions (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    division_order INTEGER NOT NULL UNIQUE,
    min_xp_per_week INTEGER NOT NULL,
    max_xp_per_week INTEGER,
    icon TEXT NOT NULL DEFAULT ''
);

CREATE TABLE IF NOT EXISTS league_participations (
    id TEXT PRIMARY KEY,
    student_id TEXT NOT NULL,
    season_id TEXT NOT NULL REFERENCES league_seasons (id),
    division_id TEXT NOT NULL REFERENCES league_divisions (id),
    weekly_xp INTEGER NOT NULL DEFAULT 0,
    promoted BOOLEAN NOT NULL DEFAULT FALSE,
    demoted BOOLEAN NOT NULL DEFAULT FALSE,
    rank_in_division INTEGER,
    joined_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    UNIQUE (student_id, season_id)
);
CREATE INDEX IF NOT EXISTS idx_league_participations_rank ON league_participations (season_id, division_id, weekly_xp DESC);

CREATE TABLE IF NOT EXISTS daily_quests (
    id TEXT PRIMARY KEY,
    quest_type TEXT NOT NULL,
    title TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    requirements JSONB NOT NULL DEFAULT '{}',
    xp_reward INTEGER NOT NULL,
    streak_shield_reward BOOLEAN NOT NULL DEFAULT FALSE,
    active_date DATE NOT NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
CREATE INDEX IF NOT EXISTS idx_daily_quests_date ON daily_quests (active_date);

CREATE TABLE IF NOT EXISTS quest_progress (
    id TEXT PRIMARY KEY,
    student_id TEXT NOT NULL,
    quest_id TEXT NOT NULL REFERENCES daily_quests (id),
    progress INTEGER NOT NULL DEFAULT 0,
    target_progress INTEGER NOT NULL DEFAULT 1,
    completed BOOLEAN NOT NULL DEFAULT FALSE,
    completed_at TIMESTAMPTZ,
    metadata JSONB NOT NULL DEFAULT '{}',
    started_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    UNIQUE (student_id, quest_id)
);

CREATE TABLE IF NOT EXISTS achievements (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL UNIQUE,
    title TEXT NOT NULL,
    description TEXT NOT NULL,
    category TEXT NOT NULL,
    xp_reward INTEGER NOT NULL,
    badge_icon TEXT NOT NULL DEFAULT '',
    is_active BOOLEAN NOT NULL DEFAULT TRUE
);

CREATE TABLE IF NOT EXISTS student_achievements (
    student_id TEXT NOT NULL,
    achievement_id TEXT NOT NULL REFERENCES achievements (id),
    earned_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    metadata JSONB NOT NULL DEFAULT '{}',
    PRIMARY KEY (student_id, achievement_id)
);

CREATE TABLE IF NOT EXISTS lesson_results (
    id TEXT PRIMARY KEY,
    student_id TEXT NOT NULL,
    lesson_id TEXT NOT NULL,
    subject TEXT,
    score DOUBLE PRECISION NOT NULL,
    total_points DOUBLE PRECISION NOT NULL,
    time_taken INTEGER NOT NULL DEFAULT 0,
    timestamp TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
CREATE INDEX IF NOT EXISTS idx_lesson_results_student ON lesson_results (student_id, timestamp);

CREATE TABLE IF NOT EXISTS activity_feed (
    id TEXT PRIMARY KEY,
    student_id TEXT NOT NULL,
    activity_type TEXT NOT NULL,
    title TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    metadata JSONB NOT NULL DEFAULT '{}',
    is_public BOOLEAN NOT NULL DEFAULT TRUE,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
CREATE INDEX IF NOT EXISTS idx_activity_feed_student ON activity_feed (student_id, created_at DESC);
"""


async def apply_schema(database: Database = db) -> None:
    """Create tables and indexes if they do not exist"""
    logger.info("Applying progression schema")
    async with database.connection() as conn:
        async with conn.cursor() as cur:
            await cur.execute(SCHEMA_SQL)
        await conn.commit()


async def seed_catalogs(database: Database = db) -> None:
    """Insert the default division and achievement catalogs; existing rows are kept"""
    from progression.gamification.achievement_system import DEFAULT_ACHIEVEMENTS
    from progression.gamification.league_system import DEFAULT_DIVISIONS, validate_division_partition

    validate_division_partition(DEFAULT_DIVISIONS)

    async with database.connection() as conn:
        async with conn.cursor() as cur:
            for division in DEFAULT_DIVISIONS:
                await cur.execute(
                    """
                    INSERT INTO league_divisions (id, name, division_order, min_xp_per_week, max_xp_per_week, icon)
                    VALUES (%s, %s, %s, %s, %s, %s)
                    ON CONFLICT (id) DO NOTHING
                    """,
                    (
                        division.id,
                        division.name,
                        division.division_order,
                        division.min_xp_per_week,
                        division.max_xp_per_week,
                        division.icon,
                    )
                )
            for achievement in DEFAULT_ACHIEVEMENTS:
                await cur.execute(
                    """
                    INSERT INTO achievements (id, name, title, description, category, xp_reward, badge_icon, is_active)
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                    ON CONFLICT (id) DO NOTHING
                    """,
                    (
                        achievement.id,
                        achievement.name,
                        achievement.title,
                        achievement.description,
                        achievement.category.value,
                        achievement.xp_reward,
                        achievement.badge_icon,
                        achievement.is_active,
                    )
                )
        await conn.commit()
    logger.info(f"Seeded {len(DEFAULT_DIVISIONS)} divisions and {len(DEFAULT_ACHIEVEMENTS)} achievements")
