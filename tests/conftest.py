"""Shared pytest fixtures for all test suites."""

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from backend.campusops.api.auth import get_db_sessions
from backend.campusops.auth import passwords
from backend.campusops.config import Settings, get_settings
from backend.campusops.db.engine import create_session_factory
from backend.campusops.db.models import Base
from backend.campusops.db.scoped import ScopedDatabase, UnscopedDatabase
from backend.campusops.main import app
from backend.campusops.middleware.ratelimit import (
    RateLimitMiddleware,
    create_default_bucket_map,
    get_rate_limit_middleware,
)
from backend.campusops.ratelimit import InMemoryRateLimiter
from tests.helpers import Tenant, make_tenant


@pytest.fixture(autouse=True)
def fast_bcrypt(monkeypatch: pytest.MonkeyPatch) -> None:
    """Cheap bcrypt work factor so hashing doesn't dominate test time."""
    monkeypatch.setattr(passwords, "BCRYPT_ROUNDS", 4)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        database_url="sqlite+aiosqlite:///:memory:",
        redis_url=None,
        auth_secret="test-org-secret",
        platform_auth_secret="test-platform-secret",
        auth_attempts_per_min=1000,
    )


@pytest_asyncio.fixture
async def engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    """File-backed SQLite so every pooled connection sees the same schema."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'campusops.db'}",
        poolclass=NullPool,
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def sessions(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(engine)


@pytest.fixture
def scoped(sessions: async_sessionmaker[AsyncSession]) -> ScopedDatabase:
    return ScopedDatabase(sessions)


@pytest.fixture
def unscoped(sessions: async_sessionmaker[AsyncSession]) -> UnscopedDatabase:
    return UnscopedDatabase(sessions)


@pytest_asyncio.fixture
async def tenant_a(sessions: async_sessionmaker[AsyncSession]) -> Tenant:
    return await make_tenant(sessions, "north-high")


@pytest_asyncio.fixture
async def tenant_b(sessions: async_sessionmaker[AsyncSession]) -> Tenant:
    return await make_tenant(sessions, "south-high")


@pytest.fixture
def rate_limiter(settings: Settings) -> InMemoryRateLimiter:
    return InMemoryRateLimiter(max_requests=settings.auth_attempts_per_min)


@pytest_asyncio.fixture
async def client(
    sessions: async_sessionmaker[AsyncSession],
    settings: Settings,
    rate_limiter: InMemoryRateLimiter,
) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app, wired to the test database."""
    middleware = RateLimitMiddleware(rate_limiter, create_default_bucket_map())
    app.dependency_overrides[get_db_sessions] = lambda: sessions
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_rate_limit_middleware] = lambda: middleware

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
