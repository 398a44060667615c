import uuid
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from recipe_inventory.models.catalog import ItemType
from recipe_inventory.models.inventory import ReferenceType


class TransactionRequest(BaseModel):
    """Schema for recording one signed stock delta."""
    business_id: uuid.UUID
    branch_id: uuid.UUID
    item_type: ItemType
    item_id: uuid.UUID
    change_quantity: Decimal = Field(..., description="Positive adds stock, negative consumes it.")
    reference_type: ReferenceType
    reference_id: Optional[str] = None
    note: Optional[str] = None


class ReorderLevelRequest(BaseModel):
    reorder_level: Decimal = Field(..., ge=0)


class TransactionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    business_id: uuid.UUID
    branch_id: uuid.UUID
    item_type: ItemType
    item_id: uuid.UUID
    change_quantity: Decimal
    quantity_before: Decimal
    quantity_after: Decimal
    reference_type: ReferenceType
    reference_id: Optional[str] = None
    note: Optional[str] = None
    created_at: datetime


class InventoryResponse(BaseModel):
    """Schema for a stock snapshot."""
    model_config = ConfigDict(from_attributes=True)

    business_id: uuid.UUID
    branch_id: uuid.UUID
    item_type: ItemType
    item_id: Optional[uuid.UUID] = None
    item_name: str
    quantity_available: Decimal
    reorder_level: Decimal
    is_low_stock: bool
    is_out_of_stock: bool
    updated_at: datetime


class AvailabilityLineResponse(BaseModel):
    ingredient_id: uuid.UUID
    ingredient_name: str
    quantity_required: Decimal
    quantity_available: Optional[Decimal] = None
    portions: int


class AvailabilityResponse(BaseModel):
    product_id: uuid.UUID
    branch_id: uuid.UUID
    has_recipe: bool
    available_portions: int
    is_out_of_stock: bool
    limiting_ingredient_id: Optional[uuid.UUID] = None
    lines: List[AvailabilityLineResponse] = Field(default_factory=list)


class ReconcileResponse(BaseModel):
    expected_quantity: Decimal
    recorded_quantity: Optional[Decimal] = None
    repaired: bool
