"""
Shared fixtures.

Settings are cached on first import, so the environment is pinned here
before any stocksaga module loads.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("REDIS_HOST", "localhost")
os.environ["METRICS_ENABLED"] = "false"
os.environ["HEALTH_CHECK_TIMEOUT"] = "1"
os.environ["RETRY_DELAY_MS"] = "1"
os.environ["OPT_LOCK_BASE_DELAY_MS"] = "1"
os.environ["OPT_LOCK_MAX_DELAY_MS"] = "5"
os.environ["OPT_LOCK_JITTER_MS"] = "0"

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from stocksaga.core.config import get_settings
from stocksaga.core.database import Base
from stocksaga.core.errors import InsufficientStock, PublishFailed
from stocksaga.core.retry import RetryPolicy
from stocksaga.inventory import models as inventory_models  # noqa: F401
from stocksaga.inventory.ledger import StockLedger
from stocksaga.inventory.schemas import CreateProductRequest
from stocksaga.orders import models as order_models  # noqa: F401
from stocksaga.orders.backend import is_retryable
from stocksaga.orders.schemas import ProductSnapshot
from stocksaga.store import models as store_models  # noqa: F401


# ─── Fakes ─────────────────────────────────────────────────────────────────────
class RecordingPublisher:
    def __init__(self):
        self.published = []

    async def publish(self, topic, key, event):
        self.published.append((topic, key, event))

    def topics(self):
        return [topic for topic, _, _ in self.published]


class FailingPublisher:
    def __init__(self):
        self.attempts = 0

    async def publish(self, topic, key, event):
        self.attempts += 1
        raise PublishFailed(f"broker down while publishing to [{topic}]")


class ScriptedBackend:
    """In-memory inventory with per-call failure scripts.

    ``fail[(operation, product_id)]`` is a list of exceptions raised, one per
    call (None lets that call through), before the operation starts
    succeeding. ``lose_response`` works the same way but raises after the
    operation was applied.
    """

    def __init__(self, stock):
        self.stock = dict(stock)
        self.fail = {}
        self.lose_response = {}
        self.calls = []

    def _maybe_fail(self, operation, product_id):
        self.calls.append((operation, product_id))
        script = self.fail.get((operation, product_id))
        if script:
            exc = script.pop(0)
            if exc is not None:
                raise exc

    def count(self, operation, product_id=None):
        return sum(1 for op, pid in self.calls if op == operation and product_id in (None, pid))

    async def validate_stock(self, product_id, quantity):
        self._maybe_fail("validate", product_id)
        return self.stock.get(product_id, 0) >= quantity

    async def increase(self, product_id, amount):
        self._maybe_fail("increase", product_id)
        self.stock[product_id] += amount
        return ProductSnapshot(id=product_id, quantity=self.stock[product_id])

    async def decrease(self, product_id, amount):
        self._maybe_fail("decrease", product_id)
        if self.stock.get(product_id, 0) < amount:
            raise InsufficientStock(product_id, amount, self.stock.get(product_id, 0))
        self.stock[product_id] -= amount
        lost = self.lose_response.get(("decrease", product_id))
        if lost:
            raise lost.pop(0)
        return ProductSnapshot(id=product_id, quantity=self.stock[product_id])


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


# ─── Fixtures ──────────────────────────────────────────────────────────────────
@pytest.fixture
def settings():
    return get_settings()


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'stocksaga.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def failing_publisher():
    return FailingPublisher()


@pytest.fixture
def ledger(session_factory, publisher, settings):
    return StockLedger(session_factory, publisher, settings)


@pytest.fixture
def make_product(ledger):
    async def _make(quantity, category_id=1, name="Widget", price=9.5):
        return await ledger.create_product(CreateProductRequest(
            name=name, price=price, category_id=category_id, quantity=quantity,
        ))
    return _make


@pytest.fixture
def scripted_backend():
    return ScriptedBackend


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def fast_policy(recording_sleep):
    return RetryPolicy(max_attempts=3, delay_ms=200, is_retryable=is_retryable, sleep=recording_sleep)
