from uuid import UUID

from fastapi import APIRouter

from recipe_inventory.schemas.recipe import RecipeLineResponse, RecipeRequest, RecipeResponse
from recipe_inventory.schemas.response import SuccessResponse
from recipe_inventory.services import recipe_service

router = APIRouter()


def _recipe_data(product_id: UUID, recipe) -> dict:
    if recipe is None:
        return RecipeResponse(product_id=product_id, has_recipe=False).model_dump(mode="json")
    lines = [
        RecipeLineResponse(
            ingredient_id=line.ingredient_id,
            ingredient_name=line.ingredient.name,
            quantity_required=line.quantity_required,
            unit=line.unit,
        )
        for line in recipe.lines
    ]
    return RecipeResponse(product_id=product_id, has_recipe=True, lines=lines).model_dump(mode="json")


@router.put("/{product_id}", response_model=SuccessResponse)
async def set_recipe_endpoint(product_id: UUID, payload: RecipeRequest):
    """Replaces the product's whole ingredient list."""
    recipe = await recipe_service.set_recipe(product_id, [line.model_dump() for line in payload.lines])
    return SuccessResponse(data=_recipe_data(product_id, recipe))


@router.get("/{product_id}", response_model=SuccessResponse)
async def get_recipe_endpoint(product_id: UUID):
    """Returns the recipe; has_recipe is false when none is defined."""
    recipe = await recipe_service.get_recipe(product_id)
    return SuccessResponse(data=_recipe_data(product_id, recipe))


@router.delete("/{product_id}", response_model=SuccessResponse)
async def delete_recipe_endpoint(product_id: UUID):
    deleted = await recipe_service.delete_recipe(product_id)
    return SuccessResponse(data={"product_id": str(product_id), "deleted": deleted})
