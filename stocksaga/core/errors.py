"""
Stocksaga — Error taxonomy and FastAPI exception handlers

Every domain failure carries a stable error code (INV-*, ORD-*, STO-*, GEN-*)
and the HTTP status it maps to at the API boundary.
"""
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class StockSagaError(Exception):
    code: str = "GEN-0000"
    status_code: int = 500

    def __init__(self, message: str, *, code: str | None = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class NotFound(StockSagaError):
    code = "GEN-0002"
    status_code = 404


class ProductNotFound(NotFound):
    code = "INV-0002"

    def __init__(self, product_id: int):
        super().__init__(f"Product with ID {product_id} not found.")
        self.product_id = product_id


class CategoryNotFound(NotFound):
    code = "INV-0004"

    def __init__(self, category_id: int):
        super().__init__(f"No products found for category ID {category_id}.")
        self.category_id = category_id


class OrderNotFound(NotFound):
    code = "ORD-0002"

    def __init__(self, order_id: int | None = None):
        if order_id is None:
            super().__init__("Order not found.")
        else:
            super().__init__(f"Order with ID {order_id} not found.")
        self.order_id = order_id


class StoreProductNotFound(NotFound):
    code = "STO-0001"


class InsufficientStock(StockSagaError):
    code = "INV-0001"
    status_code = 400

    def __init__(self, product_id: int, requested: int, available: int | None = None):
        msg = f"Insufficient stock for product ID {product_id}. Requested: {requested}"
        if available is not None:
            msg += f", Available: {available}"
        super().__init__(msg)
        self.product_id = product_id
        self.requested = requested
        self.available = available


class ValidationFailed(StockSagaError):
    code = "GEN-0001"
    status_code = 400


class ReservationFailed(StockSagaError):
    """A remote inventory call exhausted its retries or failed non-retryably."""

    code = "ORD-0003"
    status_code = 500

    def __init__(self, operation: str, product_id: int, cause: BaseException):
        super().__init__(f"{operation} failed for product ID {product_id}: {cause}")
        self.operation = operation
        self.product_id = product_id
        self.cause = cause


class PublishFailed(StockSagaError):
    """Event emission failed after the ledger mutation committed. Logged only."""

    code = "INV-0003"
    status_code = 500


class OrderNotCompleted(StockSagaError):
    code = "ORD-0001"
    status_code = 500

    def __init__(self, message: str, cause: BaseException | None = None):
        super().__init__(message)
        self.cause = cause


async def _domain_error_handler(request: Request, exc: StockSagaError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("[%s] %s %s: %s", exc.code, request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
    )


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = ", ".join(
        f"{'.'.join(str(p) for p in err['loc'] if p != 'body')}: {err['msg']}"
        for err in exc.errors()
    )
    return JSONResponse(
        status_code=400,
        content={"detail": f"Validation failed: {errors}", "code": ValidationFailed.code},
    )


async def _unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"detail": f"Unexpected error: {exc}", "code": StockSagaError.code},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StockSagaError, _domain_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(Exception, _unexpected_error_handler)
