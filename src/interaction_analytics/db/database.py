"""Database engine and session management.

SQLite (via aiosqlite) is the default backend; any async SQLAlchemy URL
works. SQLite connections get WAL pragmas so the classifier can read while
the gateway writes.
"""

import logging

from sqlalchemy import event
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)


def _set_sqlite_pragma(dbapi_conn, connection_record):
    """Set SQLite pragmas for better concurrency.

    WAL mode allows concurrent reads during writes.
    """
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA busy_timeout=30000")
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.close()


def create_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine for the given URL."""
    engine = create_async_engine(database_url, echo=echo)

    if database_url.startswith("sqlite") and ":memory:" not in database_url:
        event.listen(engine.sync_engine, "connect", _set_sqlite_pragma)

    return engine


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create a session factory bound to an engine."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def init_db(engine: AsyncEngine) -> None:
    """Create all tables that do not exist yet."""
    from interaction_analytics.db.models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def init_db_with_retry(engine: AsyncEngine, attempts: int = 5) -> None:
    """Create tables, retrying while the database is not reachable yet."""

    @retry(
        stop=stop_after_attempt(max(attempts, 1)),
        wait=wait_exponential(multiplier=1, min=1, max=15),
        retry=retry_if_exception_type((OperationalError, OSError)),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def _init() -> None:
        await init_db(engine)

    await _init()
    logger.info("Database initialized")
