"""Async SQLAlchemy engine and session management."""

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from foodie.db.base import Base
from foodie.exceptions import InfrastructureError

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None

_NOT_INITIALIZED = "Database not initialized"


async def init_db(url: str) -> None:
    """Initialize the database engine and session factory."""
    global _engine, _session_factory  # noqa: PLW0603
    if url.startswith("sqlite"):
        _engine = create_async_engine(url, echo=False)
    else:
        _engine = create_async_engine(
            url,
            pool_size=20,
            max_overflow=10,
            pool_pre_ping=True,
            echo=False,
            connect_args={"statement_cache_size": 0},
        )
    _session_factory = async_sessionmaker(
        _engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def close_db() -> None:
    """Dispose of the database engine."""
    global _engine, _session_factory  # noqa: PLW0603
    if _engine:
        await _engine.dispose()
        _engine = None
        _session_factory = None


def get_engine() -> AsyncEngine:
    """Get the async engine instance."""
    if _engine is None:
        raise InfrastructureError(_NOT_INITIALIZED)
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get the session factory, for callers that open sessions outside a request."""
    if _session_factory is None:
        raise InfrastructureError(_NOT_INITIALIZED)
    return _session_factory


async def create_all() -> None:
    """Create all tables (development databases only, production uses migrations)."""
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session (FastAPI dependency)."""
    if _session_factory is None:
        raise InfrastructureError(_NOT_INITIALIZED)
    async with _session_factory() as session:
        yield session
