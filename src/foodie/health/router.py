"""Health, readiness, and version endpoints."""

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from foodie.cache.store import CacheStore
from foodie.config import get_settings
from foodie.dependencies import get_cache, get_db, get_fanout
from foodie.ws.fanout import FanoutAdapter

router = APIRouter()


@router.get("/health")
async def health() -> dict[str, str]:
    """Liveness probe, 200 while the process is alive."""
    return {"status": "healthy"}


@router.get("/ready")
async def readiness(
    db: AsyncSession = Depends(get_db),  # noqa: B008
    cache: CacheStore = Depends(get_cache),  # noqa: B008
    fanout: FanoutAdapter = Depends(get_fanout),  # noqa: B008
) -> dict[str, object]:
    """Readiness probe: database, cache and broker roles.

    Cache and broker outages degrade performance or cross-process delivery
    only, so they report ``degraded`` rather than failing the probe.
    """
    checks: dict[str, object] = {}

    try:
        result = await db.execute(text("SELECT 1"))
        result.scalar()
        checks["database"] = "ok"
    except SQLAlchemyError as exc:
        checks["database"] = f"error: {exc}"

    checks["cache"] = "ok" if await cache.ping() else "unavailable"

    broker = fanout.broker.status() if fanout.broker is not None else {"publisher": False, "subscriber": False}
    for role, connected in broker.items():
        checks[f"broker_{role}"] = "ok" if connected else "local-only"

    all_ok = all(v == "ok" for v in checks.values())
    return {
        "status": "ready" if all_ok else "degraded",
        "checks": checks,
        "websockets": fanout.rooms.get_stats(),
    }


@router.get("/version")
async def version() -> dict[str, str]:
    """Return API version and environment."""
    settings = get_settings()
    return {
        "version": settings.app_version,
        "environment": settings.environment,
    }
