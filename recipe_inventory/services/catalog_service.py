import logging
from decimal import Decimal
from typing import Optional, Union
from uuid import UUID

from tortoise.exceptions import IntegrityError
from tortoise.transactions import in_transaction

from recipe_inventory.core.exceptions import (
    CatalogLockedError,
    DuplicateNameError,
    NotFoundError,
    UnknownItemError,
    ValidationError,
)
from recipe_inventory.core.quantities import ZERO, to_quantity
from recipe_inventory.models.catalog import Ingredient, ItemType, Product, UnitConversion
from recipe_inventory.models.recipe import Recipe, RecipeLine

log = logging.getLogger("catalog_service")

# Fields that stay editable once a recipe references the record
INGREDIENT_MUTABLE_WHEN_USED = {"cost_per_unit", "sku", "is_active"}
PRODUCT_MUTABLE_WHEN_USED = {"price", "is_active"}

INGREDIENT_FIELDS = {"name", "unit"} | INGREDIENT_MUTABLE_WHEN_USED
PRODUCT_FIELDS = {"name", "category_id"} | PRODUCT_MUTABLE_WHEN_USED


def _clean_name(name: Optional[str], label: str) -> str:
    name = (name or "").strip()
    if not name:
        raise ValidationError(f"{label} name must not be empty.")
    return name


def _clean_unit(unit: Optional[str]) -> str:
    unit = (unit or "").strip()
    if not unit:
        raise ValidationError("Ingredient unit must not be empty.")
    return unit


def _clean_cost(cost) -> Decimal:
    cost = to_quantity(cost, "cost_per_unit")
    if cost < ZERO:
        raise ValidationError("cost_per_unit must not be negative.")
    return cost


def _clean_price(price) -> Decimal:
    price = to_quantity(price, "price")
    if price < ZERO:
        raise ValidationError("Product price must not be negative.")
    return price


async def _ensure_unique_name(model, business_id: UUID, name: str, exclude_id: Optional[UUID] = None):
    query = model.filter(business_id=business_id, name_key=name.lower())
    if exclude_id is not None:
        query = query.exclude(id=exclude_id)
    if await query.exists():
        raise DuplicateNameError(f"{model.__name__} '{name}' already exists for this business.")


async def create_ingredient(
    business_id: UUID,
    name: str,
    unit: str,
    cost_per_unit: Union[Decimal, float, int] = 0,
    sku: Optional[str] = None,
) -> Ingredient:
    name = _clean_name(name, "Ingredient")
    unit = _clean_unit(unit)
    cost = _clean_cost(cost_per_unit)

    await _ensure_unique_name(Ingredient, business_id, name)
    try:
        ingredient = await Ingredient.create(
            business_id=business_id,
            name=name,
            name_key=name.lower(),
            unit=unit,
            cost_per_unit=cost,
            sku=sku or None,
        )
    except IntegrityError:
        # Lost a race with a concurrent create of the same name
        raise DuplicateNameError(f"Ingredient '{name}' already exists for this business.") from None
    log.info(f"Ingredient {ingredient.id} '{name}' created for business {business_id}.")
    return ingredient


async def create_product(
    business_id: UUID,
    name: str,
    price: Union[Decimal, float, int],
    category_id: Optional[UUID] = None,
) -> Product:
    name = _clean_name(name, "Product")
    price = _clean_price(price)

    await _ensure_unique_name(Product, business_id, name)
    try:
        product = await Product.create(
            business_id=business_id,
            name=name,
            name_key=name.lower(),
            price=price,
            category_id=category_id,
        )
    except IntegrityError:
        raise DuplicateNameError(f"Product '{name}' already exists for this business.") from None
    log.info(f"Product {product.id} '{name}' created for business {business_id}.")
    return product


async def get_product(product_id: UUID) -> Product:
    product = await Product.get_or_none(id=product_id)
    if not product:
        raise UnknownItemError(f"Product {product_id} not found.")
    return product


async def get_item(item_type: ItemType, item_id: UUID, business_id: Optional[UUID] = None):
    """Resolves an ingredient or product; items of another business count as unknown."""
    item_type = ItemType(item_type)
    model = Ingredient if item_type == ItemType.INGREDIENT else Product
    filters = {"id": item_id}
    if business_id is not None:
        filters["business_id"] = business_id
    item = await model.get_or_none(**filters)
    if not item:
        raise UnknownItemError(f"{item_type.value.capitalize()} {item_id} not found.")
    return item


async def _apply_changes(item, changes: dict, allowed: set, locked_allowed: set, in_use: bool):
    unknown = set(changes) - allowed
    if unknown:
        raise ValidationError(f"Cannot update field(s): {', '.join(sorted(unknown))}.")
    if in_use:
        locked = {
            field for field, value in changes.items()
            if field not in locked_allowed and value != getattr(item, field)
        }
        if locked:
            raise CatalogLockedError(
                f"'{item.name}' is used by a recipe; {', '.join(sorted(locked))} can no longer change."
            )
    for field, value in changes.items():
        setattr(item, field, value)
    if "name" in changes:
        item.name_key = item.name.lower()
    await item.save()
    return item


async def update_ingredient(ingredient_id: UUID, **changes) -> Ingredient:
    ingredient = await Ingredient.get_or_none(id=ingredient_id)
    if not ingredient:
        raise NotFoundError(f"Ingredient {ingredient_id} not found.")

    if "name" in changes:
        changes["name"] = _clean_name(changes["name"], "Ingredient")
        await _ensure_unique_name(Ingredient, ingredient.business_id, changes["name"], exclude_id=ingredient.id)
    if "unit" in changes:
        changes["unit"] = _clean_unit(changes["unit"])
    if "cost_per_unit" in changes:
        changes["cost_per_unit"] = _clean_cost(changes["cost_per_unit"])

    in_use = await RecipeLine.filter(ingredient_id=ingredient.id).exists()
    return await _apply_changes(ingredient, changes, INGREDIENT_FIELDS, INGREDIENT_MUTABLE_WHEN_USED, in_use)


async def update_product(product_id: UUID, **changes) -> Product:
    product = await Product.get_or_none(id=product_id)
    if not product:
        raise NotFoundError(f"Product {product_id} not found.")

    if "name" in changes:
        changes["name"] = _clean_name(changes["name"], "Product")
        await _ensure_unique_name(Product, product.business_id, changes["name"], exclude_id=product.id)
    if "price" in changes:
        changes["price"] = _clean_price(changes["price"])

    in_use = await Recipe.filter(product_id=product.id).exists()
    return await _apply_changes(product, changes, PRODUCT_FIELDS, PRODUCT_MUTABLE_WHEN_USED, in_use)


async def deactivate(item_type: ItemType, item_id: UUID):
    """Soft-deactivates an ingredient or product. Records are never hard-deleted."""
    item_type = ItemType(item_type)
    model = Ingredient if item_type == ItemType.INGREDIENT else Product
    item = await model.get_or_none(id=item_id)
    if not item:
        raise NotFoundError(f"{item_type.value.capitalize()} {item_id} not found.")
    if item.is_active:
        item.is_active = False
        await item.save(update_fields=["is_active", "updated_at"])
        log.info(f"{item_type.value.capitalize()} {item_id} deactivated.")
    return item


async def register_unit_conversion(business_id: UUID, from_unit: str, to_unit: str, factor) -> UnitConversion:
    """Upserts '1 from_unit == factor to_unit' for the business."""
    from_unit = (from_unit or "").strip().lower()
    to_unit = (to_unit or "").strip().lower()
    factor = to_quantity(factor, "factor")
    if not from_unit or not to_unit:
        raise ValidationError("Both units are required.")
    if from_unit == to_unit:
        raise ValidationError("A unit cannot be converted to itself.")
    if factor <= ZERO:
        raise ValidationError("Conversion factor must be greater than zero.")

    async with in_transaction() as conn:
        conversion = await UnitConversion.get_or_none(
            business_id=business_id, from_unit=from_unit, to_unit=to_unit
        ).using_db(conn)
        if conversion:
            conversion.factor = factor
            await conversion.save(using_db=conn)
        else:
            conversion = await UnitConversion.create(
                business_id=business_id, from_unit=from_unit, to_unit=to_unit, factor=factor, using_db=conn
            )
    return conversion


async def find_conversion_factor(business_id: UUID, from_unit: str, to_unit: str, conn=None) -> Optional[Decimal]:
    """Factor turning a quantity in from_unit into to_unit, trying the inverse entry too."""
    from_unit, to_unit = from_unit.strip().lower(), to_unit.strip().lower()
    if from_unit == to_unit:
        return Decimal("1")
    direct = await UnitConversion.get_or_none(
        business_id=business_id, from_unit=from_unit, to_unit=to_unit
    ).using_db(conn)
    if direct:
        return direct.factor
    inverse = await UnitConversion.get_or_none(
        business_id=business_id, from_unit=to_unit, to_unit=from_unit
    ).using_db(conn)
    if inverse:
        return Decimal("1") / inverse.factor
    return None
