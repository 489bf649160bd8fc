"""
Store Service — Event consumer

Subscribes the store's consumer group to the inventory and category streams
and feeds each event into the read replica. Payloads that fail validation are
raised as ValidationFailed, which the bus acknowledges and drops; any other
handler error leaves the entry pending for redelivery.
"""
import asyncio
import logging
from typing import Any

from pydantic import ValidationError

from stocksaga.core.config import Settings
from stocksaga.core.errors import ValidationFailed
from stocksaga.events.bus import Handler, RedisEventBus
from stocksaga.events.schemas import CategoryEvent, InventoryEvent
from stocksaga.store.sync import ReplicaSync

logger = logging.getLogger(__name__)


def subscribed_topics(settings: Settings) -> list[str]:
    return [settings.TOPIC_NEW_INVENTORY, settings.TOPIC_INVENTORY_UPDATED, settings.TOPIC_NEW_CATEGORY]


def build_handler(sync: ReplicaSync, settings: Settings) -> Handler:
    inventory_topics = {settings.TOPIC_NEW_INVENTORY, settings.TOPIC_INVENTORY_UPDATED}

    async def handle(topic: str, key: str, payload: dict[str, Any]) -> None:
        try:
            if topic in inventory_topics:
                event = InventoryEvent.model_validate(payload)
            elif topic == settings.TOPIC_NEW_CATEGORY:
                event = CategoryEvent.model_validate(payload)
            else:
                raise ValidationFailed(f"No handler for topic [{topic}]")
        except ValidationError as exc:
            raise ValidationFailed(f"Invalid payload on [{topic}] key={key}: {exc}") from exc

        logger.info("Received event from [%s], key: %s", topic, key)
        if isinstance(event, InventoryEvent):
            await sync.apply_inventory_event(event)
        else:
            await sync.apply_category_event(event)

    return handle


async def run_consumer(bus: RedisEventBus, sync: ReplicaSync, settings: Settings, stop: asyncio.Event) -> None:
    topics = subscribed_topics(settings)
    logger.info("Consuming %s as %s/%s", topics, settings.CONSUMER_GROUP, settings.CONSUMER_NAME)
    await bus.consume(
        topics,
        settings.CONSUMER_GROUP,
        settings.CONSUMER_NAME,
        build_handler(sync, settings),
        stop,
        count=settings.CONSUMER_BATCH_SIZE,
        block_ms=settings.CONSUMER_BLOCK_MS,
    )
    logger.info("Consumer stopped")
