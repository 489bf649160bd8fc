"""
Order Service — Inventory backend capability

The reservation client only needs three operations from the inventory side.
HttpInventoryBackend talks to the inventory service over HTTP;
LocalInventoryBackend calls a StockLedger in-process (single-process
deployments and tests).
"""
import logging
from typing import Protocol

import httpx

from stocksaga.core.config import Settings
from stocksaga.core.errors import StockSagaError
from stocksaga.inventory.ledger import StockLedger
from stocksaga.orders.schemas import ProductSnapshot

logger = logging.getLogger(__name__)


class InventoryBackend(Protocol):
    async def validate_stock(self, product_id: int, quantity: int) -> bool: ...

    async def increase(self, product_id: int, amount: int) -> ProductSnapshot: ...

    async def decrease(self, product_id: int, amount: int) -> ProductSnapshot: ...


class RemoteCallError(Exception):
    """Non-2xx answer from the inventory service."""

    def __init__(self, operation: str, status_code: int, detail: str):
        super().__init__(f"{operation} returned HTTP {status_code}: {detail}")
        self.operation = operation
        self.status_code = status_code
        self.detail = detail


def is_retryable(exc: BaseException) -> bool:
    """Server-side and transport failures are retryable; client-side ones are not."""
    if isinstance(exc, RemoteCallError):
        return exc.status_code >= 500
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, StockSagaError):
        return exc.status_code >= 500
    if isinstance(exc, ValueError):
        # malformed input or response body
        return False
    return True


def outcome_unknown(exc: BaseException) -> bool:
    """True when the request may have been applied even though no answer came back.

    Connection setup failures never reach the server; any later transport
    failure (timeout or reset while waiting for the response) may have
    followed a commit.
    """
    if isinstance(exc, (httpx.ConnectError, httpx.ConnectTimeout, httpx.PoolTimeout)):
        return False
    return isinstance(exc, httpx.TransportError)


class HttpInventoryBackend:
    def __init__(self, client: httpx.AsyncClient):
        self.client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> "HttpInventoryBackend":
        return cls(httpx.AsyncClient(
            base_url=settings.INVENTORY_SERVICE_URL,
            timeout=settings.HTTP_TIMEOUT_SECONDS,
        ))

    async def aclose(self) -> None:
        await self.client.aclose()

    async def validate_stock(self, product_id: int, quantity: int) -> bool:
        resp = await self.client.post(
            "/inventory/validate-stock",
            json={"productId": product_id, "quantity": quantity},
        )
        _raise_for_status(resp, "validate-stock")
        is_valid = resp.json().get("isValid")
        if not isinstance(is_valid, bool):
            raise ValueError(f"validate-stock answered without isValid: {resp.text[:200]}")
        return is_valid

    async def increase(self, product_id: int, amount: int) -> ProductSnapshot:
        resp = await self.client.put(f"/inventory/{product_id}/increase", params={"amount": amount})
        _raise_for_status(resp, "increase")
        return ProductSnapshot.model_validate(resp.json())

    async def decrease(self, product_id: int, amount: int) -> ProductSnapshot:
        resp = await self.client.put(f"/inventory/{product_id}/decrease", params={"amount": amount})
        _raise_for_status(resp, "decrease")
        return ProductSnapshot.model_validate(resp.json())


def _raise_for_status(resp: httpx.Response, operation: str) -> None:
    if resp.is_success:
        return
    try:
        detail = resp.json().get("detail", resp.text)
    except ValueError:
        detail = resp.text
    raise RemoteCallError(operation, resp.status_code, str(detail)[:200])


class LocalInventoryBackend:
    def __init__(self, ledger: StockLedger):
        self.ledger = ledger

    async def validate_stock(self, product_id: int, quantity: int) -> bool:
        return await self.ledger.validate_stock(product_id, quantity)

    async def increase(self, product_id: int, amount: int) -> ProductSnapshot:
        product = await self.ledger.adjust_quantity(product_id, amount)
        return ProductSnapshot.model_validate(product)

    async def decrease(self, product_id: int, amount: int) -> ProductSnapshot:
        product = await self.ledger.adjust_quantity(product_id, -amount)
        return ProductSnapshot.model_validate(product)
