"""
Order Service — Order persistence
"""
import logging
from datetime import datetime
from typing import Iterable

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from stocksaga.core.errors import OrderNotFound
from stocksaga.orders.models import Order, OrderItem, OrderStatus
from stocksaga.orders.schemas import OrderItemRequest

logger = logging.getLogger(__name__)


class OrderRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def create_order(self, store_id: int, user_id: int, created_at: datetime) -> Order:
        async with self._session_factory() as session:
            order = Order(store_id=store_id, user_id=user_id, created_at=created_at,
                          status=OrderStatus.PENDING)
            session.add(order)
            await session.commit()
            await session.refresh(order)
        logger.info("Order base saved for storeId=%s, userId=%s, orderId=%s",
                    order.store_id, order.user_id, order.id)
        return order

    async def complete_order(self, order_id: int, items: Iterable[OrderItemRequest]) -> list[OrderItem]:
        """Persist the items and mark the order completed in one transaction.

        Either every item row lands together with the status change, or nothing does.
        """
        async with self._session_factory() as session:
            rows = [OrderItem(order_id=order_id, product_id=i.product_id, quantity=i.quantity) for i in items]
            session.add_all(rows)
            await session.execute(
                update(Order).where(Order.id == order_id).values(status=OrderStatus.COMPLETED)
            )
            await session.commit()
            for row in rows:
                await session.refresh(row)
        for row in rows:
            logger.info("Saved order item: orderId=%s, productId=%s, quantity=%s",
                        row.order_id, row.product_id, row.quantity)
        return rows

    async def set_status(self, order_id: int, status: OrderStatus) -> None:
        async with self._session_factory() as session:
            await session.execute(update(Order).where(Order.id == order_id).values(status=status))
            await session.commit()

    async def get_order(self, order_id: int) -> Order:
        async with self._session_factory() as session:
            order = await session.get(Order, order_id)
        if order is None:
            raise OrderNotFound(order_id)
        return order

    async def orders_by_user(self, user_id: int) -> list[Order]:
        logger.info("Fetching orders for userId=%s", user_id)
        return await self._list(Order.user_id == user_id)

    async def orders_by_store(self, store_id: int) -> list[Order]:
        logger.info("Fetching orders for storeId=%s", store_id)
        return await self._list(Order.store_id == store_id)

    async def items_by_order(self, order_id: int) -> list[OrderItem]:
        logger.info("Fetching items for orderId=%s", order_id)
        async with self._session_factory() as session:
            if await session.get(Order, order_id) is None:
                raise OrderNotFound(order_id)
            result = await session.execute(
                select(OrderItem).where(OrderItem.order_id == order_id).order_by(OrderItem.id)
            )
            return list(result.scalars().all())

    async def _list(self, condition) -> list[Order]:
        async with self._session_factory() as session:
            result = await session.execute(select(Order).where(condition).order_by(Order.id))
            orders = list(result.scalars().all())
        if not orders:
            raise OrderNotFound()
        return orders
