"""Database engine and session factory.

The engine (and its connection pool) is process-wide and long-lived; the
scoped and unscoped data handles are thin wrappers over the session factory.
"""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from backend.campusops.config import Settings, get_settings


def normalize_async_url(database_url: str) -> str:
    """Rewrite sync driver URLs to their async equivalents."""
    if database_url.startswith("postgresql://"):
        return database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if database_url.startswith("sqlite://"):
        return database_url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    return database_url


def create_async_engine_from_settings(settings: Settings) -> AsyncEngine:
    """Create async SQLAlchemy engine from settings.

    Raises:
        ValueError: If DATABASE_URL is unset or empty.
    """
    if not settings.database_url:
        raise ValueError(
            "DATABASE_URL must be set to a valid connection string. "
            "Please configure the database_url setting."
        )

    return create_async_engine(
        normalize_async_url(settings.database_url), pool_pre_ping=True, echo=False
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create the session factory shared by all data handles.

    Args:
        engine: Async SQLAlchemy engine

    Returns:
        Sessionmaker bound to the engine
    """
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


_async_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def get_async_engine() -> AsyncEngine:
    """Get global async engine instance."""
    global _async_engine
    if _async_engine is None:
        _async_engine = create_async_engine_from_settings(get_settings())
    return _async_engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get global session factory bound to the global engine."""
    global _session_factory
    if _session_factory is None:
        _session_factory = create_session_factory(get_async_engine())
    return _session_factory
