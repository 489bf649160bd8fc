"""
Reservation client: per-item validate + decrement under the retry policy.
"""
import httpx
import pytest

from stocksaga.core.errors import InsufficientStock, ReservationFailed
from stocksaga.orders.backend import RemoteCallError
from stocksaga.orders.reservation import InventoryReservationClient
from stocksaga.orders.schemas import OrderItemRequest


def items(*pairs):
    return [OrderItemRequest(product_id=pid, quantity=qty) for pid, qty in pairs]


@pytest.mark.asyncio
async def test_reserves_every_item_in_order(scripted_backend, fast_policy):
    backend = scripted_backend({1: 5, 2: 5})
    client = InventoryReservationClient(backend, fast_policy)
    reserved = []

    await client.reserve(items((1, 2), (2, 3)), reserved=reserved)

    assert backend.stock == {1: 3, 2: 2}
    assert [i.product_id for i in reserved] == [1, 2]
    assert backend.calls == [("validate", 1), ("decrease", 1), ("validate", 2), ("decrease", 2)]


@pytest.mark.asyncio
async def test_insufficient_stock_stops_before_decrement(scripted_backend, fast_policy):
    backend = scripted_backend({1: 5, 2: 1})
    client = InventoryReservationClient(backend, fast_policy)
    reserved = []

    with pytest.raises(InsufficientStock):
        await client.reserve(items((1, 2), (2, 3)), reserved=reserved)

    assert backend.count("decrease", 2) == 0
    assert [i.product_id for i in reserved] == [1]


@pytest.mark.asyncio
async def test_client_error_is_not_retried(scripted_backend, fast_policy, recording_sleep):
    backend = scripted_backend({1: 5})
    backend.fail[("decrease", 1)] = [RemoteCallError("decrease", 400, "bad amount")] * 5
    client = InventoryReservationClient(backend, fast_policy)

    with pytest.raises(ReservationFailed) as exc_info:
        await client.reserve(items((1, 2)))

    assert backend.count("decrease", 1) == 1
    assert recording_sleep.delays == []
    assert isinstance(exc_info.value.cause, RemoteCallError)
    assert exc_info.value.operation == "Stock decrease"


@pytest.mark.asyncio
async def test_server_error_is_retried_up_to_max_attempts(scripted_backend, fast_policy, recording_sleep):
    backend = scripted_backend({1: 5})
    backend.fail[("validate", 1)] = [RemoteCallError("validate-stock", 503, "unavailable")] * 5
    client = InventoryReservationClient(backend, fast_policy)

    with pytest.raises(ReservationFailed) as exc_info:
        await client.reserve(items((1, 2)))

    assert backend.count("validate", 1) == 3
    assert recording_sleep.delays == [0.2, 0.2]
    assert exc_info.value.operation == "Stock validation"
    assert backend.stock == {1: 5}


@pytest.mark.asyncio
async def test_transient_failure_then_success(scripted_backend, fast_policy):
    backend = scripted_backend({1: 5})
    backend.fail[("decrease", 1)] = [RemoteCallError("decrease", 502, "bad gateway")]
    client = InventoryReservationClient(backend, fast_policy)
    reserved = []

    await client.reserve(items((1, 4)), reserved=reserved)

    assert backend.count("decrease", 1) == 2
    assert backend.stock == {1: 1}
    assert len(reserved) == 1


@pytest.mark.asyncio
async def test_release_returns_snapshot(scripted_backend, fast_policy):
    backend = scripted_backend({1: 5})
    client = InventoryReservationClient(backend, fast_policy)

    snapshot = await client.release(1, 3)
    assert snapshot.quantity == 8


@pytest.mark.asyncio
async def test_release_never_raises(scripted_backend, fast_policy):
    backend = scripted_backend({1: 5})
    backend.fail[("increase", 1)] = [RemoteCallError("increase", 500, "boom")] * 5
    client = InventoryReservationClient(backend, fast_policy)

    assert await client.release(1, 3) is None
    assert backend.count("increase", 1) == 3
    assert backend.stock == {1: 5}


@pytest.mark.asyncio
async def test_lost_decrease_response_marks_item_in_doubt(scripted_backend, fast_policy):
    backend = scripted_backend({1: 4})
    backend.lose_response[("decrease", 1)] = [httpx.ReadTimeout("timed out")]
    client = InventoryReservationClient(backend, fast_policy)
    reserved, in_doubt = [], []

    with pytest.raises(ReservationFailed):
        await client.reserve(items((1, 4)), reserved=reserved, in_doubt=in_doubt)

    assert reserved == []
    assert [i.product_id for i in in_doubt] == [1]


@pytest.mark.asyncio
async def test_failed_validation_is_never_in_doubt(scripted_backend, fast_policy):
    backend = scripted_backend({1: 4})
    backend.fail[("validate", 1)] = [httpx.ReadTimeout("timed out")] * 5
    client = InventoryReservationClient(backend, fast_policy)
    in_doubt = []

    with pytest.raises(ReservationFailed):
        await client.reserve(items((1, 1)), in_doubt=in_doubt)

    assert in_doubt == []
