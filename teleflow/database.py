"""
TeleFlow database: one async engine over the audience tables (profiles, tags,
billing and usage history) and the campaign tables (campaigns, campaign logs).

Postgres via asyncpg in production, aiosqlite in tests. Segment estimates
are single filtered statements, so the slow-query hook below is where an
expensive audience query shows up first. Echo follows ``sqlalchemy_echo``
(off in production) and the connection string is never logged.
"""

import logging
import time
from typing import Any, Dict

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from teleflow.config import settings

logger = logging.getLogger(__name__)


def engine_options(database_url: str) -> Dict[str, Any]:
    """Pool sizing applies to server databases only; SQLite keeps its defaults."""
    options: Dict[str, Any] = {"echo": settings.sqlalchemy_echo, "future": True}
    if not database_url.startswith("sqlite"):
        options.update(
            pool_size=settings.DATABASE_POOL_SIZE,
            max_overflow=settings.DATABASE_MAX_OVERFLOW,
            pool_recycle=3600,
            pool_pre_ping=True,
        )
    return options


engine = create_async_engine(settings.DATABASE_URL, **engine_options(settings.DATABASE_URL))


def _before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    conn.info["query_start_time"] = time.monotonic()


def _after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    start = conn.info.pop("query_start_time", None)
    if start is None:
        return
    duration_ms = (time.monotonic() - start) * 1000
    if duration_ms >= settings.SLOW_QUERY_THRESHOLD_MS:
        param_count = len(parameters) if parameters else 0
        truncated = statement[:200] + ("..." if len(statement) > 200 else "")
        logger.warning(
            "Slow query (%.0fms, %d params): %s", duration_ms, param_count, truncated
        )


event.listen(engine.sync_engine, "before_cursor_execute", _before_cursor_execute)
event.listen(engine.sync_engine, "after_cursor_execute", _after_cursor_execute)

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Declarative base for audience and campaign models."""

    pass


async def get_db() -> AsyncSession:
    """Request-scoped session.

    Endpoints commit explicitly (campaign logs, stats); segment endpoints
    only read.
    """
    session = async_session_maker()
    try:
        yield session
    finally:
        await session.close()


async def init_db():
    """Create missing tables (development); Alembic owns production schema."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
