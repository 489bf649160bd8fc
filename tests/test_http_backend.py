"""
HTTP inventory backend: request shapes and failure classification.
"""
import json

import httpx
import pytest

from stocksaga.core.errors import InsufficientStock, OrderNotCompleted, ProductNotFound
from stocksaga.orders.backend import HttpInventoryBackend, RemoteCallError, is_retryable, outcome_unknown


def backend_for(handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://inventory")
    return HttpInventoryBackend(client)


@pytest.mark.asyncio
async def test_validate_stock_posts_product_and_quantity():
    seen = {}

    def handler(request):
        seen["method"] = request.method
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"isValid": True})

    backend = backend_for(handler)
    assert await backend.validate_stock(7, 3) is True
    assert seen == {"method": "POST", "path": "/inventory/validate-stock",
                    "body": {"productId": 7, "quantity": 3}}
    await backend.aclose()


@pytest.mark.asyncio
async def test_decrease_puts_amount_as_query_param():
    def handler(request):
        assert request.method == "PUT"
        assert request.url.path == "/inventory/7/decrease"
        assert request.url.params["amount"] == "2"
        return httpx.Response(200, json={"id": 7, "name": "Widget", "quantity": 8, "price": 1.0})

    backend = backend_for(handler)
    snapshot = await backend.decrease(7, 2)
    assert snapshot.id == 7
    assert snapshot.quantity == 8


@pytest.mark.asyncio
async def test_error_status_raises_remote_call_error_with_detail():
    def handler(request):
        return httpx.Response(404, json={"detail": "Product with ID 7 not found.", "code": "INV-0002"})

    backend = backend_for(handler)
    with pytest.raises(RemoteCallError) as exc_info:
        await backend.increase(7, 1)
    assert exc_info.value.status_code == 404
    assert "not found" in exc_info.value.detail


@pytest.mark.asyncio
async def test_validate_stock_answer_in_snake_case_is_a_value_error():
    backend = backend_for(lambda request: httpx.Response(200, json={"is_valid": True}))
    with pytest.raises(ValueError):
        await backend.validate_stock(1, 1)


@pytest.mark.parametrize("exc, retryable", [
    (RemoteCallError("decrease", 503, "unavailable"), True),
    (RemoteCallError("decrease", 500, "boom"), True),
    (RemoteCallError("decrease", 400, "bad"), False),
    (RemoteCallError("decrease", 404, "missing"), False),
    (httpx.ConnectError("refused"), True),
    (httpx.ReadTimeout("slow"), True),
    (ValueError("malformed"), False),
    (InsufficientStock(1, 5), False),
    (ProductNotFound(1), False),
    (OrderNotCompleted("x"), True),
    (RuntimeError("unexpected"), True),
])
def test_retry_classification(exc, retryable):
    assert is_retryable(exc) is retryable


@pytest.mark.parametrize("exc, unknown", [
    (httpx.ReadTimeout("slow"), True),
    (httpx.RemoteProtocolError("reset"), True),
    (httpx.ConnectError("refused"), False),
    (httpx.ConnectTimeout("no route"), False),
    (RemoteCallError("decrease", 503, "unavailable"), False),
])
def test_outcome_unknown_only_after_the_request_was_sent(exc, unknown):
    assert outcome_unknown(exc) is unknown
