"""FastAPI application factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

from foodie.cache.store import init_cache, reset_cache
from foodie.challenges.router import router as challenges_router
from foodie.config import get_settings
from foodie.database import close_db, create_all, init_db
from foodie.friends.router import router as friends_router
from foodie.health.router import router as health_router
from foodie.messages.router import router as messages_router
from foodie.middleware import setup_middleware
from foodie.redis_client import close_redis, init_redis
from foodie.ws.fanout import Broker, FanoutAdapter, init_fanout, reset_fanout
from foodie.ws.manager import manager
from foodie.ws.router import router as ws_router

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    if settings.environment == "development" and settings.database_url.startswith("sqlite"):
        await create_all()

    redis = await init_redis(settings.redis_url, settings.cache_socket_timeout_seconds)
    cache = await init_cache(redis, settings)

    # Cross-process fan-out; stays local-only when no broker answers
    broker = Broker.from_settings(settings)
    await broker.connect()
    fanout = init_fanout(FanoutAdapter(manager, broker, settings.broker_channel))
    await fanout.start()
    logger.info("app_started", version=settings.app_version, cache_ready=cache.is_ready, broker=broker.status())

    yield

    await fanout.stop()
    await broker.close()
    reset_fanout()

    await cache.close()
    reset_cache()
    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Foodie Social API",
        description="Daily food photo challenges, friends and direct messaging",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(friends_router)
    app.include_router(messages_router)
    app.include_router(challenges_router)
    app.include_router(ws_router)

    return app


app = create_app()
