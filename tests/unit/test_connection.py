"""Unit tests for the ledger pool (progression/db/connection.py)"""
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from psycopg.rows import dict_row

from progression.db.connection import SESSION_OPTIONS, Database


@pytest.fixture
def mock_pool():
    pool = MagicMock()
    pool.open = AsyncMock()
    pool.close = AsyncMock()
    return pool


@pytest.mark.asyncio
async def test_init_pool_sessions_run_in_utc(mock_pool):
    database = Database("postgresql://example/progression", application_name="progression-test")

    with patch("progression.db.connection.AsyncConnectionPool", return_value=mock_pool) as pool_cls:
        await database.init_pool()
        await database.init_pool()

    pool_cls.assert_called_once()
    kwargs = pool_cls.call_args.kwargs["kwargs"]
    assert kwargs["options"] == SESSION_OPTIONS == "-c timezone=UTC"
    assert kwargs["application_name"] == "progression-test"
    assert kwargs["row_factory"] is dict_row
    mock_pool.open.assert_awaited_once()
    assert database.is_open


@pytest.mark.asyncio
async def test_close_pool(mock_pool):
    database = Database()

    with patch("progression.db.connection.AsyncConnectionPool", return_value=mock_pool):
        await database.init_pool()
    await database.close_pool()

    mock_pool.close.assert_awaited_once()
    assert not database.is_open


@pytest.mark.asyncio
async def test_connection_requires_open_pool():
    with pytest.raises(RuntimeError):
        async with Database().connection():
            pass


@pytest.mark.asyncio
async def test_transaction_wraps_connection(mock_pool):
    conn = MagicMock()
    conn.transaction.return_value.__aenter__ = AsyncMock()
    conn.transaction.return_value.__aexit__ = AsyncMock(return_value=False)
    mock_pool.connection.return_value.__aenter__ = AsyncMock(return_value=conn)
    mock_pool.connection.return_value.__aexit__ = AsyncMock(return_value=False)
    database = Database()

    with patch("progression.db.connection.AsyncConnectionPool", return_value=mock_pool):
        await database.init_pool()

    async with database.transaction() as yielded:
        assert yielded is conn

    conn.transaction.return_value.__aenter__.assert_awaited_once()
    conn.transaction.return_value.__aexit__.assert_awaited_once()
