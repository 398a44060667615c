import logging
from dataclasses import dataclass, field
from typing import List, Optional
from uuid import UUID

from recipe_inventory.core import config
from recipe_inventory.models.catalog import ItemType
from recipe_inventory.models.inventory import InventoryItem
from recipe_inventory.services.availability import (
    LinePortions,
    Requirement,
    StockLevel,
    limiting_line,
    line_portions,
    portions_from_lines,
)
from recipe_inventory.services.recipe_service import get_recipe

log = logging.getLogger("availability_service")


@dataclass
class Availability:
    product_id: UUID
    branch_id: UUID
    has_recipe: bool
    portions: int
    lines: List[LinePortions] = field(default_factory=list)

    @property
    def is_out_of_stock(self) -> bool:
        return self.portions == 0

    @property
    def limiting_ingredient(self) -> Optional[Requirement]:
        line = limiting_line(self.lines)
        return line.requirement if line else None


async def _branch_stock(business_id: UUID, branch_id: UUID) -> List[StockLevel]:
    snapshots = await InventoryItem.filter(
        business_id=business_id, branch_id=branch_id, item_type=ItemType.INGREDIENT
    )
    return [StockLevel(s.item_id, s.item_name, s.quantity_available) for s in snapshots]


async def get_availability(business_id: UUID, branch_id: UUID, product_id: UUID) -> Availability:
    """
    Portions of the product the branch can still produce. Reads only: no
    recipe means 0 portions, a missing snapshot makes its line 0.
    """
    recipe = await get_recipe(product_id)
    if recipe is None:
        return Availability(product_id, branch_id, has_recipe=False, portions=0)

    requirements = [
        Requirement(line.ingredient_id, line.ingredient.name, line.quantity_required)
        for line in recipe.lines
    ]
    stock = await _branch_stock(business_id, branch_id)
    lines = line_portions(requirements, stock, name_fallback=config.LEGACY_NAME_MATCHING)
    for line in lines:
        if line.matched_by_name:
            log.warning(
                f"Recipe line '{line.requirement.ingredient_name}' of product {product_id} "
                f"matched stock by name; run the snapshot id backfill."
            )
    portions = portions_from_lines(lines)
    return Availability(product_id, branch_id, has_recipe=True, portions=portions, lines=lines)


async def get_available_portions(business_id: UUID, branch_id: UUID, product_id: UUID) -> int:
    availability = await get_availability(business_id, branch_id, product_id)
    return availability.portions
