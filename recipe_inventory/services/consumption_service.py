import logging
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional
from uuid import UUID

from recipe_inventory.core.exceptions import InvalidRecipeError, ValidationError
from recipe_inventory.core.quantities import ZERO, quantize_quantity, to_quantity
from recipe_inventory.models.catalog import ItemType
from recipe_inventory.models.inventory import InventoryTransaction, ReferenceType
from recipe_inventory.services.catalog_service import get_item
from recipe_inventory.services.ledger_service import StockChange, apply_changes
from recipe_inventory.services.recipe_service import get_recipe

log = logging.getLogger("consumption_service")


@dataclass(frozen=True)
class SaleLine:
    """One sold line of an order. reference_id identifies the line, not the product."""
    product_id: UUID
    quantity: Any
    reference_id: Optional[str] = None


def _positive(quantity, field: str = "quantity"):
    quantity = to_quantity(quantity, field)
    if quantity <= ZERO:
        raise ValidationError(f"{field} must be greater than zero.")
    return quantity


def _ingredient_changes(recipe, quantity, sign: int, reference_id=None, note=None) -> List[StockChange]:
    changes = []
    for line in recipe.lines:
        amount = quantize_quantity(quantity * line.quantity_required)
        # A fraction of a portion can round below the stored scale
        if amount == ZERO:
            continue
        changes.append(StockChange(ItemType.INGREDIENT, line.ingredient_id, sign * amount, reference_id, note))
    return changes


async def _sale_changes(business_id: UUID, line: SaleLine) -> List[StockChange]:
    quantity = _positive(line.quantity)
    product = await get_item(ItemType.PRODUCT, line.product_id, business_id)
    reference_id = str(line.reference_id) if line.reference_id is not None else None
    note = f"Sold {quantity} x {product.name}"

    recipe = await get_recipe(product.id)
    if recipe is not None and recipe.lines:
        return _ingredient_changes(recipe, quantity, -1, reference_id, note)
    return [StockChange(ItemType.PRODUCT, product.id, -quantity, reference_id, note)]


async def consume_order(
    business_id: UUID,
    branch_id: UUID,
    lines: Iterable[SaleLine],
    policy: Optional[str] = None,
) -> List[InventoryTransaction]:
    """
    Deducts stock for every line of an order in one transaction: either all
    lines are recorded or none is. Lines whose reference is already in the
    ledger are skipped, so a redelivered order is deducted once.
    """
    changes = []
    for line in lines:
        changes.extend(await _sale_changes(business_id, line))
    if not changes:
        return []

    return await apply_changes(
        business_id,
        branch_id,
        changes,
        ReferenceType.SALE,
        policy=policy,
        skip_recorded=True,
    )


async def consume_for_sale(
    business_id: UUID,
    branch_id: UUID,
    product_id: UUID,
    quantity,
    reference_id: Optional[str] = None,
    policy: Optional[str] = None,
) -> List[InventoryTransaction]:
    """
    Deducts stock for a sold product: each recipe ingredient by
    quantity * quantity_required, or the product's own stock when it has no
    recipe lines. A reference already in the ledger is skipped.
    """
    return await consume_order(business_id, branch_id, [SaleLine(product_id, quantity, reference_id)], policy=policy)


async def restore_order(business_id: UUID, branch_id: UUID, reference_ids: Iterable[str]) -> List[InventoryTransaction]:
    """
    Offsets cancelled sales with adjustment rows in one transaction. Restores
    what each sale actually removed (after clamping), not what the recipe says
    today. References already restored are skipped.
    """
    reference_ids = sorted({str(ref) for ref in reference_ids})
    if not reference_ids:
        return []
    sales = await InventoryTransaction.filter(
        business_id=business_id,
        branch_id=branch_id,
        reference_type=ReferenceType.SALE,
        reference_id__in=reference_ids,
    ).order_by("id")

    changes = [
        StockChange(
            row.item_type,
            row.item_id,
            row.quantity_before - row.quantity_after,
            row.reference_id,
            f"Restored cancelled sale {row.reference_id}",
        )
        for row in sales
        if row.quantity_before != row.quantity_after
    ]
    if not changes:
        log.info(f"Nothing to restore for {', '.join(reference_ids)}.")
        return []

    return await apply_changes(business_id, branch_id, changes, ReferenceType.ADJUSTMENT, skip_recorded=True)


async def restore_for_sale(business_id: UUID, branch_id: UUID, reference_id: str) -> List[InventoryTransaction]:
    return await restore_order(business_id, branch_id, [reference_id])


async def record_production(
    business_id: UUID,
    branch_id: UUID,
    product_id: UUID,
    quantity,
    reference_id: Optional[str] = None,
    policy: Optional[str] = None,
) -> List[InventoryTransaction]:
    """Turns ingredients into finished product stock in one atomic unit."""
    quantity = _positive(quantity)
    product = await get_item(ItemType.PRODUCT, product_id, business_id)
    recipe = await get_recipe(product.id)
    if recipe is None or not recipe.lines:
        raise InvalidRecipeError(f"Product '{product.name}' has no recipe to produce from.")

    changes = _ingredient_changes(recipe, quantity, -1)
    changes.append(StockChange(ItemType.PRODUCT, product.id, quantity))

    return await apply_changes(
        business_id,
        branch_id,
        changes,
        ReferenceType.PRODUCTION,
        reference_id=reference_id,
        note=f"Produced {quantity} x {product.name}",
        policy=policy,
    )
