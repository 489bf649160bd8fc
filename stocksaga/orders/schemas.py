"""
Order Service — Pydantic Schemas
"""
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field

from stocksaga.orders.models import OrderStatus


class OrderItemRequest(BaseModel):
    product_id: int = Field(..., examples=[100])
    quantity: int = Field(..., gt=0, examples=[3])


class OrderRequest(BaseModel):
    store_id: int
    user_id: int
    items: list[OrderItemRequest] = Field(..., min_length=1)


class OrderItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    order_id: int
    product_id: int
    quantity: int


class OrderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    store_id: int
    user_id: int
    status: OrderStatus
    created_at: datetime


class PlacedOrderResponse(OrderResponse):
    items: list[OrderItemResponse]


class ProductSnapshot(BaseModel):
    """Subset of the inventory service's product representation."""

    model_config = ConfigDict(extra="ignore", from_attributes=True)

    id: int
    quantity: int
    name: str | None = None
