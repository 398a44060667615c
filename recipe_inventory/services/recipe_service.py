import logging
from typing import Dict, List, Optional, Any
from uuid import UUID

from tortoise.transactions import in_transaction

from recipe_inventory.core.exceptions import InvalidRecipeError, UnitMismatchError, UnknownIngredientError
from recipe_inventory.core.quantities import ZERO, quantize_quantity, to_quantity
from recipe_inventory.models.catalog import Ingredient
from recipe_inventory.models.recipe import Recipe, RecipeLine
from recipe_inventory.services.catalog_service import find_conversion_factor, get_product

log = logging.getLogger("recipe_service")


def _parse_ingredient_id(raw) -> UUID:
    if isinstance(raw, UUID):
        return raw
    try:
        return UUID(str(raw))
    except ValueError:
        raise UnknownIngredientError(raw) from None


def _validate_lines(lines: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Shape checks that need no database: positive quantities, no repeated ingredient."""
    cleaned = []
    seen = set()
    for position, line in enumerate(lines, start=1):
        ingredient_id = _parse_ingredient_id(line.get("ingredient_id"))
        quantity = to_quantity(line.get("quantity_required"), "quantity_required")
        if quantity <= ZERO:
            raise InvalidRecipeError(
                f"Line {position}: quantity_required must be greater than zero.",
                {"ingredient_id": str(ingredient_id), "quantity_required": str(quantity)},
            )
        if ingredient_id in seen:
            raise InvalidRecipeError(
                f"Line {position}: ingredient {ingredient_id} appears more than once.",
                {"ingredient_id": str(ingredient_id)},
            )
        seen.add(ingredient_id)
        cleaned.append({
            "ingredient_id": ingredient_id,
            "quantity_required": quantity,
            "unit": (line.get("unit") or "").strip(),
        })
    return cleaned


async def set_recipe(product_id: UUID, lines: List[Dict[str, Any]]) -> Recipe:
    """
    Replaces the product's full ingredient line set in one transaction.

    Each line is {ingredient_id, quantity_required, unit}. A line whose unit
    differs from the ingredient's canonical unit is converted through the
    business's UnitConversion table and stored in the canonical unit; with no
    conversion on file the whole save is rejected with UnitMismatchError.
    An empty list is a valid recipe that yields zero portions.
    """
    product = await get_product(product_id)
    cleaned = _validate_lines(lines)

    async with in_transaction() as conn:
        ingredient_ids = [line["ingredient_id"] for line in cleaned]
        ingredients = await Ingredient.filter(
            id__in=ingredient_ids, business_id=product.business_id
        ).using_db(conn)
        ingredient_map = {ing.id: ing for ing in ingredients}

        resolved = []
        for position, line in enumerate(cleaned, start=1):
            ingredient = ingredient_map.get(line["ingredient_id"])
            if not ingredient:
                raise UnknownIngredientError(line["ingredient_id"])

            quantity = line["quantity_required"]
            line_unit = line["unit"] or ingredient.unit
            if line_unit.lower() != ingredient.unit.lower():
                factor = await find_conversion_factor(product.business_id, line_unit, ingredient.unit, conn=conn)
                if factor is None:
                    raise UnitMismatchError(ingredient.name, line_unit, ingredient.unit)
                log.info(f"Recipe line for '{ingredient.name}': {quantity} {line_unit} -> {quantity * factor} {ingredient.unit}")
                quantity = quantity * factor
            quantity = quantize_quantity(quantity)
            if quantity <= ZERO:
                raise InvalidRecipeError(
                    f"Line {position}: {line['quantity_required']} {line_unit} of '{ingredient.name}' rounds to zero in {ingredient.unit}.",
                    {"ingredient_id": str(ingredient.id), "quantity_required": str(line["quantity_required"])},
                )
            resolved.append((ingredient, quantity))

        recipe = await Recipe.get_or_none(product_id=product.id).using_db(conn)
        if recipe:
            await RecipeLine.filter(recipe_id=recipe.id).using_db(conn).delete()
            # Bumps updated_at
            await recipe.save(using_db=conn)
        else:
            recipe = await Recipe.create(product=product, using_db=conn)

        for ingredient, quantity in resolved:
            await RecipeLine.create(
                recipe=recipe,
                ingredient=ingredient,
                quantity_required=quantity,
                unit=ingredient.unit,
                using_db=conn,
            )

    log.info(f"Recipe for product {product.id} saved with {len(resolved)} line(s).")
    return await get_recipe(product.id)


async def get_recipe(product_id: UUID) -> Optional[Recipe]:
    """Returns the recipe with lines (and their ingredients) or None when no recipe is defined."""
    await get_product(product_id)
    return await Recipe.get_or_none(product_id=product_id).prefetch_related("lines", "lines__ingredient")


async def delete_recipe(product_id: UUID) -> bool:
    """Explicitly unlinks the product's recipe. Returns False if there was none."""
    await get_product(product_id)
    async with in_transaction() as conn:
        recipe = await Recipe.get_or_none(product_id=product_id).using_db(conn)
        if not recipe:
            return False
        await RecipeLine.filter(recipe_id=recipe.id).using_db(conn).delete()
        await recipe.delete(using_db=conn)
    log.info(f"Recipe for product {product_id} unlinked.")
    return True
