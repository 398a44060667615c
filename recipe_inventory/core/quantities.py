from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from recipe_inventory.core.exceptions import ValidationError

ZERO = Decimal("0")
# Scale of every stored quantity column (recipe lines, snapshots, ledger)
QUANTITY_STEP = Decimal("0.0001")


def to_quantity(value, field: str = "quantity") -> Decimal:
    """Coerces API/ORM numbers to Decimal via str() so 0.1 stays 0.1."""
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be a number.")
    else:
        try:
            result = Decimal(str(value))
        except InvalidOperation:
            raise ValidationError(f"{field} must be a number, got {value!r}.") from None
    if not result.is_finite():
        raise ValidationError(f"{field} must be finite.")
    return result


def quantize_quantity(value: Decimal) -> Decimal:
    """Rounds to the stored scale, so what is checked is what the database keeps."""
    return value.quantize(QUANTITY_STEP, rounding=ROUND_HALF_UP)
