"""
Store Service — FastAPI entrypoint

Read side only. The event consumer runs as a background task for the
lifetime of the app and mirrors inventory state into store_products.

┌───────────────────┐  new-inventory      ┌───────────────┐
│ Inventory Service │  inventory-updated  │ Store Service │
│ (stock ledger)    │ ─── Redis ────────▶ │ (read replica)│
└───────────────────┘  new-category       └───────────────┘
"""
import asyncio
from contextlib import asynccontextmanager
from fastapi import FastAPI

from stocksaga.core.app import create_app
from stocksaga.core.config import get_settings
from stocksaga.core.database import async_session
from stocksaga.core.logs import configure_logging
from stocksaga.core.redis_client import get_redis
from stocksaga.events.bus import RedisEventBus
from stocksaga.store import api, models  # noqa: F401  (models registers tables)
from stocksaga.store.consumer import run_consumer
from stocksaga.store.sync import ReplicaSync

settings = get_settings()
configure_logging(settings)


@asynccontextmanager
async def event_consumer(app: FastAPI):
    stop = asyncio.Event()
    task = asyncio.create_task(
        run_consumer(RedisEventBus.from_settings(get_redis(), settings), ReplicaSync(async_session), settings, stop)
    )
    try:
        yield
    finally:
        stop.set()
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass


app = create_app(
    title="Stocksaga Store Service",
    description="Read replica of inventory, kept in sync from inventory events.",
    routers=[api.router],
    service_lifespan=event_consumer,
)
