"""Shared test fixtures.

Tests run against an in-memory SQLite database (aiosqlite) built from the
ORM metadata, so neither PostgreSQL nor Redis is needed.
"""

from __future__ import annotations

import itertools
from collections.abc import AsyncGenerator
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from berse.badges.seed import seed_badges
from berse.config import Settings, get_settings
from berse.database import get_session
from berse.db.base import Base
from berse.db.models import User
from berse.main import create_app
from berse.points.expiry_job import PointExpiryJob
from berse.points.service import PointsExpiryStore

ADMIN_KEY = "test-admin-key"


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def seeded_db(db_session: AsyncSession) -> AsyncSession:
    """DB session with the badge catalog seeded."""
    await seed_badges(db_session)
    return db_session


@pytest.fixture
def make_user(db_session: AsyncSession):
    """Factory: create and commit a user, returning it."""
    counter = itertools.count(1)

    async def _make(**overrides) -> User:
        n = next(counter)
        fields = {
            "display_name": f"member{n}",
            "email": f"member{n}@example.com",
            "created_at": datetime.now(timezone.utc),
        }
        fields.update(overrides)
        user = User(**fields)
        db_session.add(user)
        await db_session.commit()
        return user

    return _make


@pytest.fixture
def test_settings() -> Settings:
    return Settings(admin_api_key=ADMIN_KEY)


@pytest.fixture
def job_logger() -> MagicMock:
    return MagicMock()


@pytest.fixture
def api_app(
    session_factory: async_sessionmaker[AsyncSession],
    test_settings: Settings,
    job_logger: MagicMock,
) -> FastAPI:
    """App with the database and settings swapped for test ones; no Redis."""
    app = create_app()

    async def _override_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = _override_session
    app.dependency_overrides[get_settings] = lambda: test_settings
    app.state.point_expiry_job = PointExpiryJob(
        PointsExpiryStore(session_factory),
        sleep=AsyncMock(),
        logger=job_logger,
    )
    return app


@pytest_asyncio.fixture
async def client(api_app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=api_app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
