"""
Inventory Service — FastAPI entrypoint

    uvicorn stocksaga.inventory.main:app
"""
from stocksaga.core.app import create_app
from stocksaga.core.config import get_settings
from stocksaga.core.logs import configure_logging
from stocksaga.inventory import api, models  # noqa: F401  (models registers tables)

configure_logging(get_settings())

app = create_app(
    title="Stocksaga Inventory Service",
    description="Stock ledger with optimistic locking; publishes inventory events to Redis Streams.",
    routers=[api.router],
)
