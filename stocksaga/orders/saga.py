"""
Order Service — Order placement saga

State machine:

    CREATED ──▶ RESERVING ──▶ ITEMS_PERSISTED          (success)
       │            │
       │            ▼
       │       COMPENSATING ──▶ FAILED                 (failure)
       └────────────────────────▲

  CREATED       persist the order shell (created_at = now, UTC)
  RESERVING     reserve stock item by item, then persist the order items
  COMPENSATING  release every item the reservation client confirmed, plus
                any item whose decrement may have landed without an answer
  FAILED        mark the order failed; the caller gets OrderNotCompleted

There is no distributed transaction: between a decrement and the commit of
the order items, stock is already taken. Compensation closes that window on
failure. The order row is kept in every outcome.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Awaitable, Callable

from stocksaga.core.errors import OrderNotCompleted
from stocksaga.orders.models import Order, OrderItem, OrderStatus
from stocksaga.orders.repository import OrderRepository
from stocksaga.orders.reservation import InventoryReservationClient
from stocksaga.orders.schemas import OrderItemRequest, OrderRequest

logger = logging.getLogger(__name__)


class SagaStep(str, Enum):
    CREATED = "created"
    RESERVING = "reserving"
    ITEMS_PERSISTED = "items_persisted"
    COMPENSATING = "compensating"
    FAILED = "failed"


TERMINAL_STEPS = frozenset({SagaStep.ITEMS_PERSISTED, SagaStep.FAILED})


@dataclass
class SagaState:
    request: OrderRequest
    step: SagaStep = SagaStep.CREATED
    order: Order | None = None
    items: list[OrderItem] = field(default_factory=list)
    reserved: list[OrderItemRequest] = field(default_factory=list)
    # decrements that failed with the response lost in flight; may have been applied
    in_doubt: list[OrderItemRequest] = field(default_factory=list)
    released: list[OrderItemRequest] = field(default_factory=list)
    error: BaseException | None = None
    history: list[SagaStep] = field(default_factory=lambda: [SagaStep.CREATED])

    def advance(self, step: SagaStep) -> None:
        self.step = step
        self.history.append(step)

    @property
    def succeeded(self) -> bool:
        return self.step is SagaStep.ITEMS_PERSISTED


class OrderPlacementSaga:
    def __init__(
        self,
        orders: OrderRepository,
        reservations: InventoryReservationClient,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.orders = orders
        self.reservations = reservations
        self.clock = clock
        self._steps: dict[SagaStep, Callable[[SagaState], Awaitable[None]]] = {
            SagaStep.CREATED: self.create_order,
            SagaStep.RESERVING: self.reserve_and_persist,
            SagaStep.COMPENSATING: self.compensate,
        }

    async def run(self, request: OrderRequest) -> SagaState:
        """Drive the saga to a terminal state. Never raises for business failures."""
        state = SagaState(request=request)
        while state.step not in TERMINAL_STEPS:
            await self._steps[state.step](state)
        return state

    async def place_order(self, request: OrderRequest) -> SagaState:
        """Run the saga; raise OrderNotCompleted (wrapping the cause) if it failed."""
        state = await self.run(request)
        if state.step is SagaStep.FAILED:
            raise self.wrap_failure(state) from state.error
        return state

    # ── Steps ───────────────────────────────────────────────────────────────

    async def create_order(self, state: SagaState) -> None:
        req = state.request
        try:
            state.order = await self.orders.create_order(req.store_id, req.user_id, self.clock())
        except Exception as exc:
            logger.error("Failed to save order for storeId=%s, userId=%s: %s", req.store_id, req.user_id, exc)
            await self._fail(state, exc)
            return
        state.advance(SagaStep.RESERVING)

    async def reserve_and_persist(self, state: SagaState) -> None:
        try:
            await self.reservations.reserve(
                state.request.items, reserved=state.reserved, in_doubt=state.in_doubt,
            )
            state.items = await self.orders.complete_order(state.order.id, state.request.items)
            state.order.status = OrderStatus.COMPLETED
        except Exception as exc:
            logger.error("Order %s failed while reserving or saving items, rolling back inventory. Error: %s",
                         state.order.id, exc)
            state.error = exc
            state.advance(SagaStep.COMPENSATING)
            return
        logger.info("Order completed successfully for orderId=%s", state.order.id)
        state.advance(SagaStep.ITEMS_PERSISTED)

    async def compensate(self, state: SagaState) -> None:
        to_release = state.reserved + state.in_doubt
        for item in to_release:
            product = await self.reservations.release(item.product_id, item.quantity)
            if product is not None:
                state.released.append(item)
        if len(state.released) != len(to_release):
            logger.error("Order %s: compensation incomplete, released %d of %d items",
                         state.order.id, len(state.released), len(to_release))
        await self._fail(state, state.error)

    async def _fail(self, state: SagaState, exc: BaseException | None) -> None:
        state.error = exc
        if state.order is not None:
            try:
                await self.orders.set_status(state.order.id, OrderStatus.FAILED)
                state.order.status = OrderStatus.FAILED
            except Exception as status_exc:
                logger.error("Could not mark order %s as failed: %s", state.order.id, status_exc)
        wrapped = self.wrap_failure(state)
        logger.error("[%s] %s", wrapped.code, wrapped.message)
        state.advance(SagaStep.FAILED)

    @staticmethod
    def wrap_failure(state: SagaState) -> OrderNotCompleted:
        if state.order is not None:
            context = f"order {state.order.id}"
        else:
            context = f"order for storeId={state.request.store_id}, userId={state.request.user_id}"
        return OrderNotCompleted(f"Could not complete {context}: {state.error}", state.error)
