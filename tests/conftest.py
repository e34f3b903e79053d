"""
Global pytest fixtures for the cloudledger test suite.

Provides:
- Async SQLite engine backed by a temporary file, with all tables created
- Session factory shared by the engine, repository and reaper tests
- In-memory page sources and a stepping clock for deterministic runs
"""
import os

# Set test environment BEFORE any cloudledger imports
os.environ["TESTING"] = "true"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ.pop("DO_API_TOKEN", None)
os.environ.pop("GCP_PROJECT_IDS", None)

from datetime import datetime, timedelta, timezone
from typing import Any, AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from cloudledger.shared.adapters.pagination import Page
from cloudledger.shared.adapters.rate_limiter import reset_rate_limiters
from cloudledger.shared.core.config import get_settings
from cloudledger.shared.db.session import init_models


class FakeSource:
    """
    In-memory PageSource. ``pages`` maps scope -> list of pages (lists of raw items);
    a plain list is the page list for the unscoped collection.
    """

    short_page_is_last = False

    def __init__(self, pages: Any = None, name: str = "fake"):
        if pages is None:
            pages = []
        if isinstance(pages, list):
            pages = {None: pages}
        self.pages: dict[Any, list[list[dict[str, Any]]]] = pages
        self.name = name
        self.calls: list[tuple[Any, Any, int]] = []

    async def list_page(self, scope, cursor, page_size):
        self.calls.append((scope, cursor, page_size))
        scope_pages = self.pages.get(scope, [])
        index = int(cursor or 0)
        items = scope_pages[index] if index < len(scope_pages) else []
        next_cursor = str(index + 1) if index + 1 < len(scope_pages) else None
        return Page(items=[dict(item) for item in items], next_cursor=next_cursor)


class StepClock:
    """Deterministic UTC clock advancing ``step`` on every read."""

    def __init__(self, start: datetime | None = None, step: timedelta = timedelta(minutes=1)):
        self.current = start or datetime(2026, 1, 1, tzinfo=timezone.utc)
        self.step = step
        self.reads: list[datetime] = []

    def __call__(self) -> datetime:
        value = self.current
        self.current = self.current + self.step
        self.reads.append(value)
        return value


def as_utc(value: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; compare everything as aware UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def _isolated_settings():
    get_settings.cache_clear()
    reset_rate_limiters()
    yield
    get_settings.cache_clear()
    reset_rate_limiters()


# ============================================================================
# Async Database Fixtures
# ============================================================================

@pytest_asyncio.fixture
async def async_engine(tmp_path):
    """Create async SQLite engine for testing using a temporary file."""
    db_url = f"sqlite+aiosqlite:///{tmp_path / 'cloudledger_test.sqlite'}"
    engine = create_async_engine(db_url, echo=False)
    await init_models(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_maker(async_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    async with session_maker() as session:
        try:
            yield session
        finally:
            await session.rollback()


@pytest.fixture
def clock() -> StepClock:
    return StepClock()


@pytest.fixture
def fake_source():
    return FakeSource


@pytest.fixture
def utc():
    return as_utc
