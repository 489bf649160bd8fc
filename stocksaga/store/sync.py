"""
Store Service — Read-replica sync

Applies inventory and category events to the store's mirror. Events arrive
at-least-once and possibly out of order:
  - quantity is absolute, so re-applying the same event is a no-op
  - when both the stored row and the event carry a version, an event that is
    not newer than the row is ignored (last-writer-wins)
  - events without a version overwrite unconditionally
"""
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from stocksaga.core.errors import StoreProductNotFound
from stocksaga.events.schemas import CategoryEvent, InventoryEvent, InventoryEventType
from stocksaga.store.models import StoreCategory, StoreProduct

logger = logging.getLogger(__name__)


class ReplicaSync:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def apply_inventory_event(self, event: InventoryEvent) -> bool:
        """Upsert the mirrored product. Returns False when the event was stale."""
        async with self._session_factory() as session:
            product = await session.get(StoreProduct, event.product_id)

            if product is None:
                session.add(StoreProduct(
                    id=event.product_id,
                    name=event.product_name,
                    price=event.price,
                    category_id=event.category_id,
                    quantity=event.new_quantity,
                    description=event.description,
                    version=event.version,
                ))
                await session.commit()
                logger.info("Saved new inventory from event: productId=%s, quantity=%s",
                            event.product_id, event.new_quantity)
                return True

            if _is_stale(product.version, event.version):
                logger.info("Ignoring stale %s event for productId=%s: version %s <= %s",
                            event.event_type.value, event.product_id, event.version, product.version)
                return False

            product.quantity = event.new_quantity
            if event.event_type is InventoryEventType.CREATED:
                product.name = event.product_name
                product.price = event.price
                product.description = event.description
                product.category_id = event.category_id
            if event.version is not None:
                product.version = event.version
            await session.commit()

        logger.info("Synced inventory: productId=%s, newQuantity=%s", event.product_id, event.new_quantity)
        return True

    async def apply_category_event(self, event: CategoryEvent) -> bool:
        """Insert the category if it is not mirrored yet. Returns False on redelivery."""
        async with self._session_factory() as session:
            if await session.get(StoreCategory, event.category_id) is not None:
                logger.info("Category %s already present, skipping", event.category_id)
                return False
            session.add(StoreCategory(id=event.category_id, name=event.category_name))
            await session.commit()
        logger.info("Category inserted with ID: %s", event.category_id)
        return True

    async def get_product(self, product_id: int) -> StoreProduct:
        async with self._session_factory() as session:
            product = await session.get(StoreProduct, product_id)
        if product is None:
            raise StoreProductNotFound(
                f"Inventory for product with ID {product_id} not found in store database."
            )
        logger.info("Fetched inventory for productId=%s", product_id)
        return product

    async def products_by_category(self, category_id: int) -> list[StoreProduct]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(StoreProduct).where(StoreProduct.category_id == category_id).order_by(StoreProduct.id)
            )
            products = list(result.scalars().all())
        if not products:
            raise StoreProductNotFound(f"No products found in store database for category ID {category_id}.")
        return products


def _is_stale(stored: int | None, incoming: int | None) -> bool:
    if stored is None or incoming is None:
        return False
    return incoming <= stored
