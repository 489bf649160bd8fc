"""
Order Service — Orders API

Flow for POST /orders:
  1. Persist the order shell
  2. Reserve stock item by item through the inventory service
  3. Persist order items, or compensate and fail with OrderNotCompleted

The saga runs in its own task and is shielded from request cancellation:
a client disconnecting does not abort an in-flight order.
"""
import asyncio
import logging
from fastapi import APIRouter, Depends, Request

from stocksaga.core.config import get_settings
from stocksaga.core.database import async_session
from stocksaga.orders.repository import OrderRepository
from stocksaga.orders.reservation import InventoryReservationClient
from stocksaga.orders.saga import OrderPlacementSaga
from stocksaga.orders.schemas import (
    OrderItemResponse,
    OrderRequest,
    OrderResponse,
    PlacedOrderResponse,
)

settings = get_settings()
logger = logging.getLogger(__name__)
router = APIRouter(prefix="/orders", tags=["orders"])

_inflight: set[asyncio.Task] = set()


def get_order_repository() -> OrderRepository:
    return OrderRepository(async_session)


def get_saga(request: Request, orders: OrderRepository = Depends(get_order_repository)) -> OrderPlacementSaga:
    backend = request.app.state.inventory_backend
    return OrderPlacementSaga(orders, InventoryReservationClient.from_settings(backend, settings))


async def _run_to_completion(coro):
    task = asyncio.ensure_future(coro)
    _inflight.add(task)
    task.add_done_callback(_inflight.discard)
    return await asyncio.shield(task)


@router.post("", response_model=PlacedOrderResponse)
async def create_order(payload: OrderRequest, saga: OrderPlacementSaga = Depends(get_saga)):
    logger.info("Creating new order for user %s at store %s", payload.user_id, payload.store_id)
    state = await _run_to_completion(saga.place_order(payload))
    order = OrderResponse.model_validate(state.order)
    return PlacedOrderResponse(
        **order.model_dump(),
        items=[OrderItemResponse.model_validate(i) for i in state.items],
    )


@router.get("/user/{user_id}", response_model=list[OrderResponse])
async def orders_by_user(user_id: int, orders: OrderRepository = Depends(get_order_repository)):
    return await orders.orders_by_user(user_id)


@router.get("/store/{store_id}", response_model=list[OrderResponse])
async def orders_by_store(store_id: int, orders: OrderRepository = Depends(get_order_repository)):
    return await orders.orders_by_store(store_id)


@router.get("/{order_id}/items", response_model=list[OrderItemResponse])
async def items_by_order(order_id: int, orders: OrderRepository = Depends(get_order_repository)):
    return await orders.items_by_order(order_id)
