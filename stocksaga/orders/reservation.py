"""
Order Service — Inventory reservation client

Validates then decrements stock item by item. Items are processed strictly
in order so that, when item k fails, exactly items 1..k-1 are known to be
decremented. Every remote call runs under the retry policy.
"""
import functools
import logging
from typing import Sequence

from stocksaga.core.config import Settings
from stocksaga.core.errors import InsufficientStock, ReservationFailed
from stocksaga.core.retry import RetryPolicy
from stocksaga.orders.backend import InventoryBackend, is_retryable, outcome_unknown
from stocksaga.orders.schemas import OrderItemRequest, ProductSnapshot

logger = logging.getLogger(__name__)


class InventoryReservationClient:
    def __init__(self, backend: InventoryBackend, policy: RetryPolicy):
        self.backend = backend
        self.policy = policy

    @classmethod
    def from_settings(cls, backend: InventoryBackend, settings: Settings) -> "InventoryReservationClient":
        return cls(backend, RetryPolicy.from_settings(settings, is_retryable=is_retryable))

    async def reserve(
        self,
        items: Sequence[OrderItemRequest],
        reserved: list[OrderItemRequest] | None = None,
        in_doubt: list[OrderItemRequest] | None = None,
    ) -> None:
        """Reserve every item or raise on the first one that cannot be reserved.

        Each item whose decrement succeeded is appended to ``reserved`` before
        the next item is attempted, so the caller can compensate precisely.
        An item whose decrement failed after at least one attempt lost its
        response in flight is appended to ``in_doubt``: the inventory side may
        have applied it.
        """
        for item in items:
            try:
                is_valid = await self.policy.run(
                    "Stock validation", item.product_id,
                    functools.partial(self.backend.validate_stock, item.product_id, item.quantity),
                )
            except Exception as exc:
                raise ReservationFailed("Stock validation", item.product_id, exc) from exc

            if not is_valid:
                logger.warning("Insufficient stock for productId=%s, requested=%s",
                               item.product_id, item.quantity)
                raise InsufficientStock(item.product_id, item.quantity)
            logger.info("Stock validated for productId=%s", item.product_id)

            attempts: list[BaseException] = []
            try:
                await self.policy.run(
                    "Stock decrease", item.product_id,
                    functools.partial(self._decrease, item, attempts),
                )
            except Exception as exc:
                if in_doubt is not None and any(outcome_unknown(e) for e in attempts):
                    logger.warning("Decrease for productId=%s may have been applied, marking it in doubt",
                                   item.product_id)
                    in_doubt.append(item)
                raise ReservationFailed("Stock decrease", item.product_id, exc) from exc

            logger.info("Stock decreased for productId=%s, quantity=%s", item.product_id, item.quantity)
            if reserved is not None:
                reserved.append(item)

    async def _decrease(self, item: OrderItemRequest, attempts: list[BaseException]) -> ProductSnapshot:
        try:
            return await self.backend.decrease(item.product_id, item.quantity)
        except Exception as exc:
            attempts.append(exc)
            raise

    async def release(self, product_id: int, quantity: int) -> ProductSnapshot | None:
        """Give ``quantity`` back to the product. Best-effort: never raises."""
        try:
            product = await self.policy.run(
                "Stock increase", product_id,
                functools.partial(self.backend.increase, product_id, quantity),
            )
        except Exception as exc:
            logger.error("Failed to roll back stock for productId=%s, amount=%s: %s",
                         product_id, quantity, exc)
            return None
        logger.info("Rolled back stock for productId=%s, amount=%s, new quantity=%s",
                    product_id, quantity, product.quantity)
        return product
