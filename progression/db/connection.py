"""
Postgres pool for the ledger store

Every pooled session runs with TimeZone=UTC so CURRENT_DATE, NOW() and the
DATE columns agree with the engines' UTC calendar, and returns rows as
dicts ready for the pydantic models.
"""
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional
import psycopg
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool
from progression.config import DATABASE_URL, DB_POOL_MIN_SIZE, DB_POOL_MAX_SIZE, DB_APPLICATION_NAME

logger = logging.getLogger(__name__)

SESSION_OPTIONS = "-c timezone=UTC"


class Database:
    """Connection pool shared by PostgresStore and the schema helpers"""

    def __init__(self, connection_string: str = DATABASE_URL, application_name: str = DB_APPLICATION_NAME):
        self.connection_string = connection_string
        self.application_name = application_name
        self._pool: Optional[AsyncConnectionPool] = None

    @property
    def is_open(self) -> bool:
        return self._pool is not None

    async def init_pool(self) -> None:
        """Open the pool; a second call is a no-op"""
        if self._pool is not None:
            logger.debug("Ledger pool already open")
            return

        logger.info(f"Opening ledger pool ({DB_POOL_MIN_SIZE}-{DB_POOL_MAX_SIZE} connections) as {self.application_name}")
        pool = AsyncConnectionPool(
            self.connection_string,
            min_size=DB_POOL_MIN_SIZE,
            max_size=DB_POOL_MAX_SIZE,
            kwargs={
                "row_factory": dict_row,
                "application_name": self.application_name,
                "options": SESSION_OPTIONS,
            },
            open=False
        )
        await pool.open()
        self._pool = pool

    async def close_pool(self) -> None:
        if self._pool:
            logger.info("Closing ledger pool")
            await self._pool.close()
            self._pool = None

    def _require_pool(self) -> AsyncConnectionPool:
        if not self._pool:
            raise RuntimeError("Ledger pool not initialized, call init_pool() first")
        return self._pool

    @asynccontextmanager
    async def connection(self) -> AsyncGenerator[psycopg.AsyncConnection, None]:
        """Pooled connection; callers commit their own writes"""
        async with self._require_pool().connection() as conn:
            yield conn

    @asynccontextmanager
    async def transaction(self) -> AsyncGenerator[psycopg.AsyncConnection, None]:
        """Pooled connection inside one transaction, committed on clean exit"""
        async with self.connection() as conn:
            async with conn.transaction():
                yield conn


db = Database()
