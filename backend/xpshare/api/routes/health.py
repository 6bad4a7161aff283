"""Health check endpoint."""

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from xpshare.dependencies import get_db
from xpshare.schemas import HealthCheckResponse
from xpshare.services.cache_service import CacheService, get_cache

router = APIRouter()


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(
    db: AsyncSession = Depends(get_db),
    cache: CacheService = Depends(get_cache),
):
    """Report database and Redis connectivity.

    Always answers 200; ``status`` is ``degraded`` when either check fails.
    """
    try:
        await db.execute(text("SELECT 1"))
        db_status = "ok"
    except Exception as e:
        db_status = f"error: {e}"

    redis_status = "ok" if await cache.health_check() else "error: ping failed"

    services = {"database": db_status, "redis": redis_status}
    overall = "ok" if all(s == "ok" for s in services.values()) else "degraded"

    return HealthCheckResponse(
        status=overall,
        database=db_status,
        redis=redis_status,
        services=services,
    )
