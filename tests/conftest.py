"""Shared test fixtures."""

from __future__ import annotations

import fnmatch
import os
from collections.abc import AsyncGenerator, Callable
from datetime import datetime, timedelta, timezone
from pathlib import Path

import jwt as pyjwt
import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

os.environ["FOODIE_JWT_SECRET"] = "test-secret"
os.environ["FOODIE_JWT_ALGORITHM"] = "HS256"
os.environ["FOODIE_JWT_ISSUER"] = "foodie"
os.environ["FOODIE_LOG_FORMAT"] = "console"
os.environ["FOODIE_CHALLENGE_TIMEZONE"] = "UTC"

from foodie.auth.jwt import reset_keys  # noqa: E402
from foodie.cache.store import CacheStore  # noqa: E402
from foodie.config import get_settings  # noqa: E402
from foodie.db.base import Base  # noqa: E402
from foodie.db.models import Friendship, User  # noqa: E402
from foodie.ws.fanout import FanoutAdapter  # noqa: E402
from foodie.ws.manager import RoomManager  # noqa: E402

get_settings.cache_clear()
reset_keys()


class FakeRedis:
    """In-memory stand-in for the subset of ``redis.asyncio.Redis`` the app uses."""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}
        self.ttls: dict[str, int | None] = {}
        self.published: list[tuple[str, str]] = []
        self.scan_calls = 0
        self._scan_snapshot: list[str] = []
        self.down = False

    def _check(self) -> None:
        if self.down:
            raise RedisConnectionError("Connection refused")

    async def ping(self) -> bool:
        self._check()
        return True

    async def get(self, key: str) -> str | None:
        self._check()
        return self.data.get(key)

    async def set(self, key: str, value: str, ex: int | None = None) -> bool:
        self._check()
        self.data[key] = value
        self.ttls[key] = ex
        return True

    async def delete(self, *keys: str) -> int:
        self._check()
        removed = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                self.ttls.pop(key, None)
                removed += 1
        return removed

    async def scan(self, cursor: int = 0, match: str | None = None, count: int | None = None) -> tuple[int, list[str]]:
        self._check()
        self.scan_calls += 1
        # Iterate a snapshot taken when the cursor starts, like SCAN's
        # guarantee for keys present during the whole iteration.
        if cursor == 0:
            self._scan_snapshot = sorted(self.data)
        keys = self._scan_snapshot
        step = count or 10
        batch = [k for k in keys[cursor : cursor + step] if k in self.data]
        next_cursor = cursor + step if cursor + step < len(keys) else 0
        if match is not None:
            batch = [k for k in batch if fnmatch.fnmatchcase(k, match)]
        return next_cursor, batch

    async def publish(self, channel: str, message: str) -> int:
        self._check()
        self.published.append((channel, message))
        return 1

    async def aclose(self) -> None:
        return None


def make_token(user_id: int, **overrides: object) -> str:
    settings = get_settings()
    now = datetime.now(timezone.utc)
    payload: dict[str, object] = {
        "sub": str(user_id),
        "iat": now,
        "exp": now + timedelta(hours=1),
        "iss": settings.jwt_issuer,
        "type": "access",
    }
    payload.update(overrides)
    return pyjwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def auth_headers(user_id: int) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(user_id)}"}


@pytest_asyncio.fixture
async def engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    """File-backed SQLite database per test, schema created from the models."""
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'foodie.db'}")
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest_asyncio.fixture
async def cache(fake_redis: FakeRedis) -> CacheStore:
    store = CacheStore(fake_redis, default_ttl=300, scan_count=100, delete_batch_size=100, retry_interval=0.0)
    await store.connect()
    return store


@pytest.fixture
def rooms() -> RoomManager:
    return RoomManager()


@pytest.fixture
def fanout(rooms: RoomManager) -> FanoutAdapter:
    return FanoutAdapter(rooms)


@pytest_asyncio.fixture
async def users(db_session: AsyncSession) -> list[User]:
    """Three users: ids 1, 2, 3."""
    created = [
        User(id=1, email="an@example.com", display_name="An"),
        User(id=2, email="binh@example.com", display_name="Binh"),
        User(id=3, email="chi@example.com", display_name="Chi"),
    ]
    db_session.add_all(created)
    await db_session.commit()
    return created


@pytest.fixture
def befriend(db_session: AsyncSession) -> Callable:
    """Create edges between two users directly, accepted in both directions by default."""

    async def _befriend(
        user_a: int,
        user_b: int,
        *,
        accepted: bool = True,
        blocked: bool = False,
        mutual: bool = True,
    ) -> list[Friendship]:
        edges = [Friendship(user_id=user_a, friend_id=user_b, is_accepted=accepted, is_blocked=blocked)]
        if mutual:
            edges.append(Friendship(user_id=user_b, friend_id=user_a, is_accepted=accepted, is_blocked=False))
        db_session.add_all(edges)
        await db_session.commit()
        return edges

    return _befriend


@pytest.fixture
def app(
    session_factory: async_sessionmaker[AsyncSession],
    cache: CacheStore,
    fanout: FanoutAdapter,
) -> FastAPI:
    """The application with database, cache and fan-out overridden."""
    from foodie.cache.store import get_cache
    from foodie.database import get_session, get_session_factory
    from foodie.main import create_app
    from foodie.ws.fanout import get_fanout

    application = create_app()

    async def _get_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    application.dependency_overrides[get_session] = _get_session
    application.dependency_overrides[get_session_factory] = lambda: session_factory
    application.dependency_overrides[get_cache] = lambda: cache
    application.dependency_overrides[get_fanout] = lambda: fanout
    return application


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def token_for() -> Callable[..., str]:
    return make_token


@pytest.fixture
def headers_for() -> Callable[[int], dict[str, str]]:
    return auth_headers
