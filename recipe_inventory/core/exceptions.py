"""
Domain error taxonomy. Every error carries a machine-readable ``code`` and the
HTTP status the API layer maps it to.
"""
from decimal import Decimal
from typing import Any, Optional


class InventoryEngineError(Exception):
    code = "inventory_error"
    status_code = 400

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(InventoryEngineError):
    code = "validation_error"
    status_code = 422


class NotFoundError(InventoryEngineError):
    code = "not_found"
    status_code = 404


class UnknownItemError(NotFoundError):
    """Ingredient or product id does not resolve in the catalog."""
    code = "unknown_item"


class UnknownIngredientError(InventoryEngineError):
    """A recipe line references an ingredient the catalog does not know."""
    code = "unknown_ingredient"
    status_code = 422

    def __init__(self, ingredient_id: Any):
        super().__init__(f"Ingredient {ingredient_id} does not exist.", {"ingredient_id": str(ingredient_id)})
        self.ingredient_id = ingredient_id


class InvalidRecipeError(ValidationError):
    code = "invalid_recipe"


class UnitMismatchError(ValidationError):
    code = "unit_mismatch"

    def __init__(self, ingredient_name: str, line_unit: str, canonical_unit: str):
        super().__init__(
            f"Cannot use '{line_unit}' for '{ingredient_name}' (stocked in '{canonical_unit}'); "
            f"register a unit conversion first.",
            {"line_unit": line_unit, "canonical_unit": canonical_unit},
        )


class DuplicateNameError(InventoryEngineError):
    code = "duplicate_name"
    status_code = 409


class CatalogLockedError(InventoryEngineError):
    """Field change refused because the record is referenced by a recipe."""
    code = "catalog_locked"
    status_code = 409


class InsufficientStockError(InventoryEngineError):
    code = "insufficient_stock"
    status_code = 409

    def __init__(self, item_id: Any, available: Decimal, requested: Decimal):
        super().__init__(
            f"Insufficient stock for {item_id}: requested {requested}, available {available}",
            {"item_id": str(item_id), "available": str(available), "requested": str(requested)},
        )
        self.available = available
        self.requested = requested


class LockTimeoutError(InventoryEngineError):
    code = "lock_timeout"
    status_code = 503


class ImmutableLedgerError(InventoryEngineError):
    code = "immutable_ledger"
    status_code = 409
