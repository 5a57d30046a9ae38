"""Shared test fixtures for the GroChain test suite.

Provides:
    - An in-memory SQLite database (aiosqlite, one shared connection)
    - Settings with a short provider timeout
    - Principals for every role
    - Provider and Redis doubles (see factories.py)
"""

from __future__ import annotations

from decimal import Decimal

import pytest
import pytest_asyncio
from factories import FakeProvider, FakeRedis
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from grochain.config import Settings
from grochain.domain.enums import UserRole
from grochain.domain.principal import Principal
from grochain.infrastructure.database.orm_models import Base

# ---------------------------------------------------------------------------
# Settings & principals
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        app_env="development",
        paystack_secret_key="sk_test_grochain",
        paystack_timeout_seconds=0.5,
        reconciler_interval_seconds=30,
        reconciler_lookback_minutes=5,
        reconciler_batch_size=10,
        commission_default_rate=Decimal("5"),
        commission_due_days=30,
        redis_idempotency_ttl_seconds=60,
    )


@pytest.fixture
def farmer() -> Principal:
    return Principal(user_id="farmer-1", role=UserRole.FARMER)


@pytest.fixture
def other_farmer() -> Principal:
    return Principal(user_id="farmer-2", role=UserRole.FARMER)


@pytest.fixture
def partner() -> Principal:
    return Principal(user_id="partner-1", role=UserRole.PARTNER)


@pytest.fixture
def other_partner() -> Principal:
    return Principal(user_id="partner-2", role=UserRole.PARTNER)


@pytest.fixture
def buyer() -> Principal:
    return Principal(user_id="buyer-1", role=UserRole.BUYER)


@pytest.fixture
def admin() -> Principal:
    return Principal(user_id="admin-1", role=UserRole.ADMIN)


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def engine():
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
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Doubles
# ---------------------------------------------------------------------------


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()
