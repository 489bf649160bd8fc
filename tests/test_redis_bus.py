"""
Redis Streams event bus. Needs a reachable Redis (REDIS_HOST / REDIS_PORT);
skipped otherwise.
"""
import asyncio
import uuid

import pytest
import pytest_asyncio
import redis.asyncio as aioredis
from redis.exceptions import RedisError

from stocksaga.core.errors import PublishFailed
from stocksaga.core.redis_client import create_redis
from stocksaga.events.bus import RedisEventBus
from stocksaga.events.schemas import CategoryEvent


@pytest_asyncio.fixture
async def redis_client(settings):
    client = create_redis(settings)
    try:
        await client.ping()
    except (RedisError, OSError):
        await client.aclose()
        pytest.skip("Redis not accessible from test environment")
    yield client
    await client.aclose()


@pytest_asyncio.fixture
async def topic(redis_client):
    name = f"test-stream-{uuid.uuid4().hex[:8]}"
    yield name
    await redis_client.delete(name, f"{name}.dead-letter")


async def consume_until(bus, topic, handler, stop, timeout=5.0):
    task = asyncio.create_task(
        bus.consume([topic], "test-group", "consumer-1", handler, stop, count=10, block_ms=50)
    )
    try:
        await asyncio.wait_for(stop.wait(), timeout)
    finally:
        stop.set()
        await asyncio.wait_for(task, timeout)


@pytest.mark.asyncio
async def test_published_event_reaches_consumer_and_is_acked(redis_client, topic):
    bus = RedisEventBus(redis_client)
    await bus.publish(topic, "3", CategoryEvent(category_id=3, category_name="Parts"))

    received = []
    stop = asyncio.Event()

    async def handler(t, key, payload):
        received.append((t, key, payload))
        stop.set()

    await consume_until(bus, topic, handler, stop)

    assert received == [(topic, "3", {"category_id": 3, "category_name": "Parts"})]
    pending = await redis_client.xpending(topic, "test-group")
    assert pending["pending"] == 0


@pytest.mark.asyncio
async def test_failed_handler_gets_the_entry_again(redis_client, topic):
    bus = RedisEventBus(redis_client)
    await bus.publish(topic, "3", CategoryEvent(category_id=3, category_name="Parts"))

    attempts = []
    stop = asyncio.Event()

    async def handler(t, key, payload):
        attempts.append(key)
        if len(attempts) == 1:
            raise RuntimeError("database unavailable")
        stop.set()

    await consume_until(bus, topic, handler, stop)

    assert attempts == ["3", "3"]
    pending = await redis_client.xpending(topic, "test-group")
    assert pending["pending"] == 0


@pytest.mark.asyncio
async def test_malformed_entry_is_dropped(redis_client, topic):
    bus = RedisEventBus(redis_client)
    await redis_client.xadd(topic, {"key": "1", "payload": "{not json"})
    await bus.publish(topic, "2", CategoryEvent(category_id=2, category_name="Ok"))

    received = []
    stop = asyncio.Event()

    async def handler(t, key, payload):
        received.append(key)
        stop.set()

    await consume_until(bus, topic, handler, stop)

    assert received == ["2"]


@pytest.mark.asyncio
async def test_entry_failing_every_delivery_is_dead_lettered(redis_client, topic):
    bus = RedisEventBus(redis_client, max_deliveries=2)
    await bus.publish(topic, "1", CategoryEvent(category_id=1, category_name="Broken"))
    await bus.publish(topic, "2", CategoryEvent(category_id=2, category_name="Ok"))

    received = []
    stop = asyncio.Event()

    async def handler(t, key, payload):
        if key == "1":
            raise RuntimeError("cannot apply")
        received.append(key)
        stop.set()

    task = asyncio.create_task(
        bus.consume([topic], "test-group", "consumer-1", handler, stop, count=1, block_ms=50)
    )
    try:
        await asyncio.wait_for(stop.wait(), 5.0)
    finally:
        stop.set()
        await asyncio.wait_for(task, 5.0)

    assert received == ["2"]
    dead = await redis_client.xrange(f"{topic}.dead-letter")
    assert len(dead) == 1
    assert dead[0][1]["key"] == "1"
    pending = await redis_client.xpending(topic, "test-group")
    assert pending["pending"] == 0


@pytest.mark.asyncio
async def test_publish_failure_is_wrapped():
    client = aioredis.from_url("redis://127.0.0.1:1/0", socket_connect_timeout=0.2)
    bus = RedisEventBus(client)
    with pytest.raises(PublishFailed):
        await bus.publish("any", "1", CategoryEvent(category_id=1, category_name="x"))
    await client.aclose()
