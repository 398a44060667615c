# recipe_inventory/models/__init__.py
from .catalog import Ingredient, ItemType, Product, UnitConversion
from .inventory import InventoryItem, InventoryTransaction, ReferenceType
from .outbox import OutboxEvent
from .processed_event import ProcessedEvent
from .recipe import Recipe, RecipeLine

# Export all models
__all__ = [
    "Ingredient",
    "InventoryItem",
    "InventoryTransaction",
    "ItemType",
    "OutboxEvent",
    "ProcessedEvent",
    "Product",
    "Recipe",
    "RecipeLine",
    "ReferenceType",
    "UnitConversion",
]
