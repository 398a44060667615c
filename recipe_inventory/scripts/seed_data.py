# scripts/seed_data.py
import asyncio
import logging
import uuid

from recipe_inventory.core.db import init_db, close_db
from recipe_inventory.core.exceptions import DuplicateNameError
from recipe_inventory.core.quantities import to_quantity
from recipe_inventory.models.catalog import Ingredient, ItemType, Product
from recipe_inventory.services import catalog_service, ledger_service, recipe_service

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
log = logging.getLogger("seed_data")

# Fixed ids so the demo data can be re-seeded and addressed from the API docs
DEMO_BUSINESS_ID = uuid.UUID("00000000-0000-0000-0000-00000000b001")
DEMO_BRANCH_ID = uuid.UUID("00000000-0000-0000-0000-00000000a001")

INGREDIENTS = [
    # name, unit, cost, opening stock, reorder level
    ("Flour", "kg", "1.20", "5", "2"),
    ("Garlic", "kg", "8.00", "0.01", "0.05"),
    ("Baguette", "pcs", "0.90", "20", "5"),
    ("Butter", "kg", "9.50", "2", "0.5"),
]

PRODUCTS = [
    # name, price, recipe lines (ingredient, quantity, unit)
    ("Bread", "3.50", [("Flour", "0.5", "kg")]),
    ("Garlic Bread", "4.90", [("Garlic", "10", "g"), ("Baguette", "1", "pcs"), ("Butter", "0.02", "kg")]),
]


async def _ingredient(name, unit, cost):
    try:
        return await catalog_service.create_ingredient(DEMO_BUSINESS_ID, name, unit, cost_per_unit=cost)
    except DuplicateNameError:
        return await Ingredient.get(business_id=DEMO_BUSINESS_ID, name_key=name.lower())


async def _product(name, price):
    try:
        return await catalog_service.create_product(DEMO_BUSINESS_ID, name, price)
    except DuplicateNameError:
        return await Product.get(business_id=DEMO_BUSINESS_ID, name_key=name.lower())


async def seed():
    await catalog_service.register_unit_conversion(DEMO_BUSINESS_ID, "g", "kg", "0.001")

    ingredients = {}
    for name, unit, cost, opening, reorder in INGREDIENTS:
        ingredient = await _ingredient(name, unit, cost)
        ingredients[name] = ingredient
        await ledger_service.set_reorder_level(DEMO_BUSINESS_ID, DEMO_BRANCH_ID, ItemType.INGREDIENT, ingredient.id, reorder)
        snapshot = await ledger_service.get_snapshot(DEMO_BUSINESS_ID, DEMO_BRANCH_ID, ItemType.INGREDIENT, ingredient.id)
        # Top up to the opening stock through the ledger (idempotent across runs)
        missing = to_quantity(opening) - snapshot.quantity_available
        if missing:
            await ledger_service.record_transaction(
                DEMO_BUSINESS_ID, DEMO_BRANCH_ID, ItemType.INGREDIENT, ingredient.id,
                missing, "adjustment", note="Demo opening stock",
            )

    for name, price, lines in PRODUCTS:
        product = await _product(name, price)
        await recipe_service.set_recipe(product.id, [
            {"ingredient_id": ingredients[ing].id, "quantity_required": qty, "unit": unit}
            for ing, qty, unit in lines
        ])
        log.info(f"Product: {name} {product.id}")

    log.info(f"Inventory seeded for business {DEMO_BUSINESS_ID}, branch {DEMO_BRANCH_ID}.")


async def main():
    await init_db()
    try:
        await seed()
    finally:
        await close_db()

if __name__ == "__main__":
    asyncio.run(main())
