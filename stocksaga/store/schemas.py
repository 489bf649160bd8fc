from pydantic import BaseModel, ConfigDict


class StoreProductResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str | None
    price: float | None
    category_id: int | None
    quantity: int
    description: str | None
