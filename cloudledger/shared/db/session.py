import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any, Optional

import structlog
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from cloudledger.shared.core.config import get_settings
from cloudledger.shared.db.base import Base

logger = structlog.get_logger()

_engine: Optional[AsyncEngine] = None
_session_maker: Optional[async_sessionmaker[AsyncSession]] = None


def build_engine(database_url: str | None = None) -> AsyncEngine:
    """
    Create the async engine with pool settings and slow query logging.

    SQLite (dev/test) gets NullPool semantics from the dialect defaults; server
    databases get a bounded pool with pre-ping.
    """
    settings = get_settings()
    url = database_url or settings.DATABASE_URL

    engine_args: dict[str, Any] = {"echo": settings.DEBUG}
    if not url.startswith("sqlite"):
        engine_args.update(
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
            pool_pre_ping=True,
            pool_recycle=300,
        )

    engine = create_async_engine(url, **engine_args)
    _install_slow_query_logging(engine, settings.DB_SLOW_QUERY_THRESHOLD_SECONDS)
    return engine


def _install_slow_query_logging(engine: AsyncEngine, threshold_seconds: float) -> None:
    @event.listens_for(engine.sync_engine, "before_cursor_execute")
    def before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        """Record query start time."""
        conn.info.setdefault("query_start_time", []).append(time.perf_counter())

    @event.listens_for(engine.sync_engine, "after_cursor_execute")
    def after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        """Log slow queries."""
        total = time.perf_counter() - conn.info["query_start_time"].pop(-1)
        if total > threshold_seconds:
            logger.warning(
                "slow_query_detected",
                duration_seconds=round(total, 3),
                statement=statement[:200] + "..." if len(statement) > 200 else statement,
            )


def get_engine() -> AsyncEngine:
    global _engine
    if _engine is None:
        _engine = build_engine()
    return _engine


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    """
    Session factory shared by all units.

    expire_on_commit=False keeps ORM objects readable after commit without
    lazy reloads in async code.
    """
    global _session_maker
    if _session_maker is None:
        _session_maker = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
        )
    return _session_maker


async def dispose_engine() -> None:
    global _engine, _session_maker
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_maker = None


async def init_models(engine: AsyncEngine | None = None) -> None:
    """Create snapshot/history tables that do not exist yet."""
    # Registers every table on Base.metadata.
    import cloudledger.models  # noqa: F401

    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("database_tables_ensured", tables=len(Base.metadata.tables))


@asynccontextmanager
async def transaction(
    session_maker: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncSession]:
    """
    Scoped transaction guard.

    Commits only when the block exits normally. Any exception, including task
    cancellation, rolls back so no partial writes become visible.
    """
    async with session_maker() as session:
        try:
            async with session.begin():
                yield session
        except BaseException as exc:
            logger.debug("transaction_rolled_back", error_type=type(exc).__name__)
            raise
