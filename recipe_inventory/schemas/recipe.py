import uuid
from decimal import Decimal
from typing import List

from pydantic import BaseModel, Field


class RecipeLineRequest(BaseModel):
    ingredient_id: uuid.UUID
    # Positivity is checked by the recipe service so it reports an invalid_recipe error
    quantity_required: Decimal
    unit: str = Field("", description="Defaults to the ingredient's canonical unit.")


class RecipeRequest(BaseModel):
    lines: List[RecipeLineRequest] = Field(default_factory=list)


class RecipeLineResponse(BaseModel):
    ingredient_id: uuid.UUID
    ingredient_name: str
    quantity_required: Decimal
    unit: str


class RecipeResponse(BaseModel):
    product_id: uuid.UUID
    has_recipe: bool
    lines: List[RecipeLineResponse] = Field(default_factory=list)
