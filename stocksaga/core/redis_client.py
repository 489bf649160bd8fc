"""
Stocksaga — Redis connection (event streams + health checks)
"""
import redis.asyncio as aioredis
from stocksaga.core.config import Settings, get_settings

settings = get_settings()

_redis_client: aioredis.Redis | None = None


def create_redis(cfg: Settings) -> aioredis.Redis:
    """New client for ``cfg``; stream fields decode to str."""
    return aioredis.from_url(
        cfg.redis_url,
        decode_responses=True,
        socket_connect_timeout=cfg.HEALTH_CHECK_TIMEOUT,
        health_check_interval=30,
    )


def get_redis() -> aioredis.Redis:
    global _redis_client
    if _redis_client is None:
        _redis_client = create_redis(settings)
    return _redis_client


async def close_redis() -> None:
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
