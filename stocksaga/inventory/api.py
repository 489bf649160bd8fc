"""
Inventory Service — API routes
"""
import logging
from fastapi import APIRouter, Depends, Query

from stocksaga.core.config import get_settings
from stocksaga.core.database import async_session
from stocksaga.core.errors import ValidationFailed
from stocksaga.core.redis_client import get_redis
from stocksaga.events.bus import RedisEventBus
from stocksaga.inventory.ledger import StockLedger
from stocksaga.inventory.schemas import (
    CategoryResponse,
    CreateCategoryRequest,
    CreateProductRequest,
    ProductResponse,
    StockValidationRequest,
    ValidateStockResponse,
)

settings = get_settings()
logger = logging.getLogger(__name__)
router = APIRouter(prefix="/inventory", tags=["inventory"])


def get_ledger() -> StockLedger:
    return StockLedger(async_session, RedisEventBus.from_settings(get_redis(), settings), settings)


@router.post("/category", response_model=CategoryResponse)
async def create_category(payload: CreateCategoryRequest, ledger: StockLedger = Depends(get_ledger)):
    return await ledger.create_category(payload.name)


@router.post("", response_model=ProductResponse)
async def create_product(payload: CreateProductRequest, ledger: StockLedger = Depends(get_ledger)):
    return await ledger.create_product(payload)


@router.post("/validate-stock", response_model=ValidateStockResponse)
async def validate_stock(payload: StockValidationRequest, ledger: StockLedger = Depends(get_ledger)):
    is_valid = await ledger.validate_stock(payload.product_id, payload.quantity)
    return ValidateStockResponse(is_valid=is_valid)


@router.put("/{product_id}/increase", response_model=ProductResponse)
async def increase_stock(
    product_id: int,
    amount: int = Query(..., gt=0),
    ledger: StockLedger = Depends(get_ledger),
):
    return await ledger.adjust_quantity(product_id, amount)


@router.put("/{product_id}/decrease", response_model=ProductResponse)
async def decrease_stock(
    product_id: int,
    amount: int = Query(..., gt=0),
    ledger: StockLedger = Depends(get_ledger),
):
    return await ledger.adjust_quantity(product_id, -amount)


@router.put("/{product_id}/stock", response_model=ProductResponse)
async def adjust_stock(
    product_id: int,
    amount: int = Query(..., description="Positive to increase, negative to decrease"),
    ledger: StockLedger = Depends(get_ledger),
):
    """Admin adjustment with a signed amount."""
    if amount == 0:
        raise ValidationFailed("amount must be non-zero")
    return await ledger.adjust_quantity(product_id, amount)


@router.get("/category/{category_id}", response_model=list[ProductResponse])
async def products_by_category(category_id: int, ledger: StockLedger = Depends(get_ledger)):
    return await ledger.products_by_category(category_id)


@router.get("/{product_id}", response_model=ProductResponse)
async def get_product(product_id: int, ledger: StockLedger = Depends(get_ledger)):
    return await ledger.get_product(product_id)
