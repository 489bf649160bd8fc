"""
Inventory Service — Stock ledger

The ledger is the only writer of products.quantity. Every mutation goes
through adjust_quantity, which uses optimistic locking on version_id:
  - READ:  fetch current quantity + version_id
  - CHECK: quantity + delta must stay >= 0
  - WRITE: UPDATE ... WHERE version_id = <read_version>
  - If another transaction committed first -> StaleDataError -> retry

Events are published after the commit. A failed publish is logged as
PublishFailed and never undoes the committed quantity.
"""
import logging

from pydantic import BaseModel
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from stocksaga.core.config import Settings
from stocksaga.core.errors import (
    CategoryNotFound,
    InsufficientStock,
    ProductNotFound,
    PublishFailed,
)
from stocksaga.core.optimistic_lock import StaleDataError, with_optimistic_retry
from stocksaga.events.bus import EventPublisher
from stocksaga.events.schemas import CategoryEvent, InventoryEvent, InventoryEventType
from stocksaga.inventory.models import Category, Product
from stocksaga.inventory.schemas import CreateProductRequest

logger = logging.getLogger(__name__)


class StockLedger:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        publisher: EventPublisher,
        settings: Settings,
    ):
        self._session_factory = session_factory
        self._publisher = publisher
        self._settings = settings

    # ── Creation ────────────────────────────────────────────────────────────

    async def create_category(self, name: str) -> Category:
        logger.info("Creating category: %s", name)
        async with self._session_factory() as session:
            category = Category(name=name)
            session.add(category)
            await session.commit()
            await session.refresh(category)

        event = CategoryEvent(category_id=category.id, category_name=category.name)
        await self._publish(self._settings.TOPIC_NEW_CATEGORY, str(category.id), event)
        return category

    async def create_product(self, request: CreateProductRequest) -> Product:
        logger.info("Creating inventory item: %s", request.name)
        async with self._session_factory() as session:
            product = Product(
                name=request.name,
                price=request.price,
                category_id=request.category_id,
                quantity=request.quantity,
                description=request.description,
                version_id=1,
            )
            session.add(product)
            await session.commit()
            await session.refresh(product)
        logger.info("Product created successfully with ID: %s", product.id)

        await self._publish_inventory_event(
            self._settings.TOPIC_NEW_INVENTORY, product, InventoryEventType.CREATED
        )
        return product

    # ── Reads ───────────────────────────────────────────────────────────────

    async def get_product(self, product_id: int) -> Product:
        async with self._session_factory() as session:
            product = await session.get(Product, product_id)
        if product is None:
            logger.warning("Product with ID %s not found", product_id)
            raise ProductNotFound(product_id)
        return product

    async def products_by_category(self, category_id: int) -> list[Product]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Product).where(Product.category_id == category_id).order_by(Product.id)
            )
            products = list(result.scalars().all())
        if not products:
            raise CategoryNotFound(category_id)
        return products

    async def validate_stock(self, product_id: int, requested_qty: int) -> bool:
        """True iff the product exists and has at least ``requested_qty`` units.

        Fail-closed: any error on this path answers False instead of raising.
        """
        logger.info("Validating stock for product ID: %s, requested quantity: %s", product_id, requested_qty)
        try:
            async with self._session_factory() as session:
                product = await session.get(Product, product_id)
        except Exception:
            logger.exception("Error validating stock for product ID: %s", product_id)
            return False

        if product is None:
            logger.warning("Product with ID %s not found for stock validation", product_id)
            return False
        if product.quantity < requested_qty:
            logger.warning(
                "Stock insufficient for product ID: %s. Requested: %s, Available: %s",
                product_id, requested_qty, product.quantity,
            )
            return False
        return True

    # ── Mutation ────────────────────────────────────────────────────────────

    async def adjust_quantity(self, product_id: int, delta: int) -> Product:
        """Apply ``delta`` to the product's quantity and emit the matching event.

        Raises ProductNotFound or InsufficientStock; the quantity is unchanged
        in both cases.
        """
        logger.info("Updating quantity for product ID: %s with delta: %s", product_id, delta)
        product = await self._apply_delta(product_id, delta)
        logger.info("Product quantity updated for ID: %s, new quantity: %s", product.id, product.quantity)

        if delta > 0:
            topic, event_type = self._settings.TOPIC_NEW_INVENTORY, InventoryEventType.STOCK_INCREASE
        else:
            topic, event_type = self._settings.TOPIC_INVENTORY_UPDATED, InventoryEventType.STOCK_DECREASE
        await self._publish_inventory_event(topic, product, event_type)
        return product

    @with_optimistic_retry()
    async def _apply_delta(self, product_id: int, delta: int) -> Product:
        async with self._session_factory() as session:
            product = await session.get(Product, product_id)
            if product is None:
                logger.warning("[%s] Product with ID %s not found for quantity update",
                               ProductNotFound.code, product_id)
                raise ProductNotFound(product_id)

            new_quantity = product.quantity + delta
            if new_quantity < 0:
                logger.warning(
                    "[%s] Insufficient stock for product ID %s. Available: %s, Requested delta: %s",
                    InsufficientStock.code, product_id, product.quantity, delta,
                )
                raise InsufficientStock(product_id, -delta, product.quantity)

            current_version = product.version_id
            result = await session.execute(
                update(Product)
                .where(Product.id == product_id, Product.version_id == current_version)
                .values(quantity=new_quantity, version_id=current_version + 1)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                # Another transaction won the race → trigger retry
                await session.rollback()
                raise StaleDataError("product", product_id, current_version)
            await session.commit()

            await session.refresh(product)
            return product

    # ── Events ──────────────────────────────────────────────────────────────

    async def _publish_inventory_event(
        self, topic: str, product: Product, event_type: InventoryEventType
    ) -> None:
        try:
            async with self._session_factory() as session:
                category = await session.get(Category, product.category_id)
        except Exception:
            logger.exception("Category lookup failed for product ID: %s", product.id)
            category = None

        event = InventoryEvent(
            product_id=product.id,
            product_name=product.name,
            description=product.description,
            new_quantity=product.quantity,
            category_id=product.category_id,
            category_name=category.name if category else None,
            price=product.price,
            event_type=event_type,
            version=product.version_id,
        )
        await self._publish(topic, str(product.id), event)

    async def _publish(self, topic: str, key: str, event: BaseModel) -> None:
        try:
            await self._publisher.publish(topic, key, event)
        except PublishFailed as exc:
            logger.error("[%s] %s", exc.code, exc.message)
        except Exception as exc:
            logger.error("[%s] Failed to publish event to topic [%s] key=%s: %s",
                         PublishFailed.code, topic, key, exc)
