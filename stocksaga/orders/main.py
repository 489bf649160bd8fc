"""
Order Service — FastAPI entrypoint

    INVENTORY_SERVICE_URL=http://inventory:8001 uvicorn stocksaga.orders.main:app
"""
from contextlib import asynccontextmanager
from fastapi import FastAPI

from stocksaga.core.app import create_app
from stocksaga.core.config import get_settings
from stocksaga.core.logs import configure_logging
from stocksaga.orders import api, models  # noqa: F401  (models registers tables)
from stocksaga.orders.backend import HttpInventoryBackend

settings = get_settings()
configure_logging(settings)


@asynccontextmanager
async def inventory_backend(app: FastAPI):
    # one pooled HTTP client for every saga run
    app.state.inventory_backend = HttpInventoryBackend.from_settings(settings)
    try:
        yield
    finally:
        await app.state.inventory_backend.aclose()


app = create_app(
    title="Stocksaga Order Service",
    description="Order placement saga: reserve stock per item, compensate on failure.",
    routers=[api.router],
    service_lifespan=inventory_backend,
)
