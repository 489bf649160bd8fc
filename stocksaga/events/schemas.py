"""
Stocksaga — Domain event payloads

Serialized as JSON on the event streams. Consumers ignore fields they do not
know about, so producers can add fields without breaking older readers.
"""
from enum import Enum

from pydantic import BaseModel, ConfigDict


class InventoryEventType(str, Enum):
    CREATED = "CREATED"
    STOCK_INCREASE = "STOCK_INCREASE"
    STOCK_DECREASE = "STOCK_DECREASE"


class InventoryEvent(BaseModel):
    """One event per ledger mutation. ``new_quantity`` is absolute, never a delta."""

    model_config = ConfigDict(extra="ignore")

    product_id: int
    product_name: str | None = None
    description: str | None = None
    new_quantity: int
    category_id: int | None = None
    category_name: str | None = None
    price: float | None = None
    event_type: InventoryEventType
    # product version_id after the mutation; absent on events from older producers
    version: int | None = None


class CategoryEvent(BaseModel):
    model_config = ConfigDict(extra="ignore")

    category_id: int
    category_name: str
