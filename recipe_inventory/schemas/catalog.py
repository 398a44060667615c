import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class IngredientRequest(BaseModel):
    business_id: uuid.UUID
    name: str = Field(..., min_length=1, description="Ingredient name, unique per business (e.g., Flour).")
    unit: str = Field(..., min_length=1, description="Canonical unit of measure (kg, pcs, liter).")
    cost_per_unit: Decimal = Field(Decimal("0"), ge=0)
    sku: Optional[str] = None


class IngredientUpdate(BaseModel):
    name: Optional[str] = None
    unit: Optional[str] = None
    cost_per_unit: Optional[Decimal] = Field(None, ge=0)
    sku: Optional[str] = None
    is_active: Optional[bool] = None


class ProductRequest(BaseModel):
    business_id: uuid.UUID
    name: str = Field(..., min_length=1, description="Name of the sellable item (e.g., Bread).")
    price: Decimal = Field(..., ge=0, description="Selling price of the item.")
    category_id: Optional[uuid.UUID] = None


class ProductUpdate(BaseModel):
    name: Optional[str] = None
    category_id: Optional[uuid.UUID] = None
    price: Optional[Decimal] = Field(None, ge=0)
    is_active: Optional[bool] = None


class UnitConversionRequest(BaseModel):
    business_id: uuid.UUID
    from_unit: str = Field(..., min_length=1)
    to_unit: str = Field(..., min_length=1)
    factor: Decimal = Field(..., gt=0, description="1 from_unit equals factor to_unit.")


class IngredientResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    business_id: uuid.UUID
    name: str
    unit: str
    cost_per_unit: Decimal
    sku: Optional[str] = None
    is_active: bool
    created_at: datetime


class ProductResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    business_id: uuid.UUID
    name: str
    category_id: Optional[uuid.UUID] = None
    price: Decimal
    is_active: bool
    created_at: datetime
