"""
Stocksaga — Event bus adapter over Redis Streams

Each topic is a stream. Entries carry two fields:
  key      entity id (product / category) used as the partition key
  payload  the event serialized as JSON

Delivery is at-least-once: consumers read through a consumer group and an
entry is acknowledged only after its handler returned. Entries whose handler
raised stay pending and are re-read from the group's backlog. An entry that
fails max_deliveries times is copied to <topic><dead_letter_suffix> and
acknowledged, so one poison entry cannot stall the stream.
"""
import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Protocol

import redis.asyncio as aioredis
from pydantic import BaseModel
from redis.exceptions import RedisError, ResponseError

from stocksaga.core.config import Settings
from stocksaga.core.errors import PublishFailed, ValidationFailed

logger = logging.getLogger(__name__)

Handler = Callable[[str, str, dict[str, Any]], Awaitable[None]]


class EventPublisher(Protocol):
    async def publish(self, topic: str, key: str, event: BaseModel) -> None: ...


class RedisEventBus:
    def __init__(
        self,
        redis: aioredis.Redis,
        maxlen: int | None = 100_000,
        max_deliveries: int = 5,
        dead_letter_suffix: str = ".dead-letter",
    ):
        self.redis = redis
        self.maxlen = maxlen
        self.max_deliveries = max_deliveries
        self.dead_letter_suffix = dead_letter_suffix
        # failed deliveries seen by this process, keyed by (topic, entry id)
        self._failures: dict[tuple[str, str], int] = {}

    @classmethod
    def from_settings(cls, redis: aioredis.Redis, settings: Settings) -> "RedisEventBus":
        return cls(
            redis,
            max_deliveries=settings.CONSUMER_MAX_DELIVERIES,
            dead_letter_suffix=settings.DEAD_LETTER_SUFFIX,
        )

    async def publish(self, topic: str, key: str, event: BaseModel) -> None:
        try:
            entry_id = await self.redis.xadd(
                topic,
                {"key": key, "payload": event.model_dump_json()},
                maxlen=self.maxlen,
                approximate=True,
            )
        except RedisError as exc:
            raise PublishFailed(f"Failed to publish event to topic [{topic}] key={key}: {exc}") from exc
        logger.info("Published event to topic [%s], key: %s, id: %s", topic, key, entry_id)

    async def ensure_group(self, topics: list[str], group: str) -> None:
        for topic in topics:
            try:
                await self.redis.xgroup_create(topic, group, id="0", mkstream=True)
                logger.info("Created consumer group %s on %s", group, topic)
            except ResponseError as exc:
                if "BUSYGROUP" not in str(exc):
                    raise

    async def consume(
        self,
        topics: list[str],
        group: str,
        consumer: str,
        handler: Handler,
        stop: asyncio.Event,
        *,
        count: int = 50,
        block_ms: int = 1000,
    ) -> None:
        """Read from ``topics`` until ``stop`` is set, dispatching each entry to ``handler``."""
        await self.ensure_group(topics, group)
        check_backlog = True

        while not stop.is_set():
            start_id = "0" if check_backlog else ">"
            try:
                response = await self.redis.xreadgroup(
                    group,
                    consumer,
                    streams={topic: start_id for topic in topics},
                    count=count,
                    block=None if check_backlog else block_ms,
                )
            except RedisError:
                logger.exception("Reading from %s failed", topics)
                await asyncio.sleep(block_ms / 1000.0)
                continue

            entries = _flatten(response)
            if check_backlog and not entries:
                check_backlog = False
                continue

            failed = False
            for topic, entry_id, fields in entries:
                if not await self._dispatch(topic, entry_id, fields, group, handler):
                    failed = True

            if failed:
                # leave failed entries pending and re-read them after a pause
                check_backlog = True
                await asyncio.sleep(block_ms / 1000.0)

    async def _dispatch(self, topic: str, entry_id: str, fields: dict, group: str, handler: Handler) -> bool:
        key = fields.get("key", "")
        try:
            payload = json.loads(fields["payload"])
        except (KeyError, TypeError, ValueError):
            logger.error("Dropping malformed entry %s on %s: %r", entry_id, topic, fields)
            await self.redis.xack(topic, group, entry_id)
            return True

        try:
            await handler(topic, key, payload)
        except ValidationFailed as exc:
            logger.error("Dropping invalid event %s on %s: %s", entry_id, topic, exc)
        except Exception as exc:
            logger.exception("Handler failed for entry %s on %s", entry_id, topic)
            return await self._record_failure(topic, entry_id, fields, group, exc)

        self._failures.pop((topic, entry_id), None)
        await self.redis.xack(topic, group, entry_id)
        return True

    async def _record_failure(self, topic: str, entry_id: str, fields: dict, group: str,
                              exc: Exception) -> bool:
        """Count a failed delivery; dead-letter the entry once it ran out of deliveries.

        Returns True when the entry was settled (dead-lettered and acked).
        """
        failures = self._failures.get((topic, entry_id), 0) + 1
        self._failures[(topic, entry_id)] = failures
        deliveries = max(failures, await self._times_delivered(topic, group, entry_id))
        if deliveries < self.max_deliveries:
            logger.warning("Entry %s on %s failed %d/%d deliveries, will be redelivered",
                           entry_id, topic, deliveries, self.max_deliveries)
            return False

        dead_letter = f"{topic}{self.dead_letter_suffix}"
        logger.error("Entry %s on %s failed %d deliveries, moving it to %s: %s",
                     entry_id, topic, deliveries, dead_letter, exc)
        await self.redis.xadd(
            dead_letter,
            {**fields, "source_id": entry_id, "error": str(exc)[:500]},
            maxlen=self.maxlen,
            approximate=True,
        )
        await self.redis.xack(topic, group, entry_id)
        self._failures.pop((topic, entry_id), None)
        return True

    async def _times_delivered(self, topic: str, group: str, entry_id: str) -> int:
        """Delivery count Redis keeps in the pending entries list (survives restarts)."""
        try:
            pending = await self.redis.xpending_range(topic, group, min=entry_id, max=entry_id, count=1)
        except RedisError as exc:
            logger.warning("XPENDING for %s on %s failed: %s", entry_id, topic, exc)
            return 0
        return int(pending[0]["times_delivered"]) if pending else 0


def _flatten(response) -> list[tuple[str, str, dict]]:
    """Normalise XREADGROUP replies (RESP2 list or RESP3 dict) to (topic, id, fields)."""
    if not response:
        return []
    resp3 = isinstance(response, dict)
    items = response.items() if resp3 else response
    out = []
    for stream, messages in items:
        if resp3:
            # RESP3 wraps each stream's entries in a one-element list
            messages = messages[0] if messages else []
        for entry_id, fields in messages:
            if fields is None:
                # entry trimmed from the stream while still pending
                continue
            out.append((stream, entry_id, fields))
    return out
