"""Shared test fixtures.

Every test gets a fresh SQLite database file. Sessions are short-lived: a
SQLite transaction holds the database write lock until it ends, so helpers
open their own session and close it before returning.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from earnloop.auth.jwt import create_access_token
from earnloop.config import EconomyConfig
from earnloop.database import close_db, get_engine, get_session_factory, init_db
from earnloop.db import models  # noqa: F401
from earnloop.db.base import Base
from earnloop.db.models import Giveaway, StoreItem
from earnloop.fraud.flag_recorder import FraudFlagRecorder
from earnloop.main import create_app
from earnloop.users.service import register_user

# Fixed clock for service-level tests: Tuesday 2026-03-10 12:00 UTC.
NOW = datetime(2026, 3, 10, 12, 0, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Initialise the module-level engine on a temp SQLite file and create the schema."""
    await init_db(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield get_engine()
    await close_db()


@pytest_asyncio.fixture
async def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return get_session_factory()


@pytest_asyncio.fixture
async def db(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession, None]:
    """A session for driving services. Close or commit it before opening another writer."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def config() -> EconomyConfig:
    return EconomyConfig()


@pytest.fixture
def flag_recorder(session_factory: async_sessionmaker[AsyncSession]) -> FraudFlagRecorder:
    return FraudFlagRecorder(session_factory)


@pytest.fixture
def make_user(session_factory: async_sessionmaker[AsyncSession]) -> Callable[..., Awaitable[int]]:
    """Register a user whose account is ``age_days`` old at ``NOW``. Returns the user id."""
    counter = {"n": 0}

    async def _make(age_days: int = 10, email: str | None = None) -> int:
        counter["n"] += 1
        address = email or f"user{counter['n']}@example.com"
        async with session_factory() as session:
            user = await register_user(session, address, now=NOW - timedelta(days=age_days))
            return user.id

    return _make


@pytest_asyncio.fixture
async def user_id(make_user) -> int:
    """A 'trusted' tier user (10 days old, cap multiplier 1.0)."""
    return await make_user(age_days=10)


@pytest.fixture
def add_item(session_factory: async_sessionmaker[AsyncSession]) -> Callable[..., Awaitable[str]]:
    """Insert a catalog item and return its id."""

    async def _add(item_id: str, credits_cost: int, item_type: str = "cosmetic", **fields) -> str:
        async with session_factory() as session:
            session.add(StoreItem(
                id=item_id,
                name=fields.pop("name", item_id.replace("-", " ").title()),
                credits_cost=credits_cost,
                item_type=item_type,
                **fields,
            ))
            await session.commit()
        return item_id

    return _add


@pytest.fixture
def add_giveaway(session_factory: async_sessionmaker[AsyncSession]) -> Callable[..., Awaitable[str]]:
    async def _add(giveaway_id: str = "spring-2026", **fields) -> str:
        async with session_factory() as session:
            session.add(Giveaway(id=giveaway_id, title=fields.pop("title", "Spring Giveaway"), **fields))
            await session.commit()
        return giveaway_id

    return _add


@pytest_asyncio.fixture
async def client(engine: AsyncEngine) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client over the app. Redis is not initialised, so rate limiting fails open."""
    app = create_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def auth_headers() -> Callable[..., dict[str, str]]:
    def _headers(user_id: int, role: str = "user") -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(user_id, role=role)}"}

    return _headers
