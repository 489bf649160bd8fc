"""
Stocksaga — Health endpoint

Every service depends on its database and on Redis (the inventory service
publishes to it, the store service consumes from it). Probes run
concurrently, each bounded by HEALTH_CHECK_TIMEOUT.
"""
import asyncio
from typing import Awaitable, Callable

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text

from stocksaga.core.config import get_settings
from stocksaga.core.database import engine
from stocksaga.core.redis_client import get_redis

settings = get_settings()
router = APIRouter(tags=["health"])


async def _check_database() -> None:
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))


async def _check_redis() -> None:
    await get_redis().ping()


CHECKS: dict[str, Callable[[], Awaitable[None]]] = {
    "database": _check_database,
    "redis": _check_redis,
}


async def _run_check(check: Callable[[], Awaitable[None]]) -> str:
    try:
        await asyncio.wait_for(check(), timeout=settings.HEALTH_CHECK_TIMEOUT)
    except Exception as e:
        return f"error: {str(e)[:100] or type(e).__name__}"
    return "ok"


@router.get("/health")
async def health_check():
    results = await asyncio.gather(*(_run_check(check) for check in CHECKS.values()))
    deps = dict(zip(CHECKS, results))
    healthy = all(status == "ok" for status in results)
    return JSONResponse(
        content={
            "status": "healthy" if healthy else "degraded",
            "service": settings.SERVICE_NAME,
            "version": settings.SERVICE_VERSION,
            "dependencies": deps,
        },
        status_code=200 if healthy else 503,
    )
