"""Shared fixtures: in-memory repositories and a SQLite-backed session factory."""

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from market_engine.db.models import Base

from fakes import InMemoryAlertRepository, InMemoryNotificationSink, InMemoryPriceRepository


@pytest.fixture
def price_repo():
    return InMemoryPriceRepository()


@pytest.fixture
def alert_repo():
    return InMemoryAlertRepository()


@pytest.fixture
def notification_sink():
    return InMemoryNotificationSink()


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    """Session factory bound to a fresh SQLite database with all tables."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()
