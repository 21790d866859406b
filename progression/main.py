"""Scheduler entry point: season rollover and daily quest generation"""
import logging
import asyncio
import sys
from progression.config import validate_config, LOG_LEVEL
from progression.db.connection import db
from progression.db.schema import apply_schema, seed_catalogs
from progression.services.container import init_container

# Configure logging
logging.basicConfig(
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    level=getattr(logging, LOG_LEVEL)
)

logger = logging.getLogger(__name__)


async def main() -> bool:
    """Run one scheduler tick; returns False on failure"""
    try:
        logger.info("Validating configuration...")
        validate_config()

        logger.info("Initializing database connection pool...")
        await db.init_pool()

        logger.info("Applying schema and seeding catalogs...")
        await apply_schema(db)
        await seed_catalogs(db)

        container = init_container()

        rolled_over = await container.league.check_and_start_new_season_if_needed()
        logger.info(f"Season check complete (rolled over: {rolled_over})")

        quests = await container.quests.generate_daily_quests()
        logger.info(f"Daily quests ready: {', '.join(q.quest_type for q in quests)}")
        return True

    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        return False
    finally:
        logger.info("Closing database connection...")
        await db.close_pool()


def run() -> None:
    if not asyncio.run(main()):
        sys.exit(1)


if __name__ == "__main__":
    run()
