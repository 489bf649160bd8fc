"""
Store Service — Products API (read replica)
"""
from fastapi import APIRouter, Depends

from stocksaga.core.database import async_session
from stocksaga.store.schemas import StoreProductResponse
from stocksaga.store.sync import ReplicaSync

router = APIRouter(prefix="/products", tags=["products"])


def get_replica() -> ReplicaSync:
    return ReplicaSync(async_session)


@router.get("/category/{category_id}", response_model=list[StoreProductResponse])
async def products_by_category(category_id: int, replica: ReplicaSync = Depends(get_replica)):
    return await replica.products_by_category(category_id)


@router.get("/{product_id}", response_model=StoreProductResponse)
async def get_product(product_id: int, replica: ReplicaSync = Depends(get_replica)):
    return await replica.get_product(product_id)
