"""
Inventory Service — Pydantic Schemas
"""
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CreateCategoryRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255, examples=["Electronics"])


class CreateProductRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255, examples=["Smartphone"])
    price: float = Field(..., ge=0, examples=[999.99])
    category_id: int = Field(..., examples=[1])
    quantity: int = Field(..., ge=0, examples=[10])
    description: str | None = Field(None, examples=["Latest model with 5G"])


class StockValidationRequest(BaseModel):
    # wire format is camelCase (productId); snake_case is accepted too
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    product_id: int
    quantity: int = Field(..., gt=0)


class ValidateStockResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    is_valid: bool


class CategoryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str


class ProductResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    price: float
    category_id: int
    quantity: int
    description: str | None = None
    version_id: int | None = None
