from enum import Enum
from tortoise import fields, models
import uuid


class ItemType(str, Enum):
    INGREDIENT = "ingredient"
    PRODUCT = "product"


class Ingredient(models.Model):
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    business_id = fields.UUIDField()
    name = fields.CharField(max_length=255)
    # Lower-cased name, enforces case-insensitive uniqueness per business
    name_key = fields.CharField(max_length=255)
    unit = fields.CharField(max_length=32) # Canonical unit of measure (kg, pcs, liter)
    cost_per_unit = fields.DecimalField(max_digits=12, decimal_places=4, default=0)
    sku = fields.CharField(max_length=64, null=True)
    is_active = fields.BooleanField(default=True)
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "ingredients"
        unique_together = (("business_id", "name_key"),)
        indexes = [
            ("business_id", "is_active"),
        ]

    def __str__(self):
        return f"{self.name} ({self.unit})"


class Product(models.Model):
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    business_id = fields.UUIDField()
    name = fields.CharField(max_length=255)
    name_key = fields.CharField(max_length=255)
    category_id = fields.UUIDField(null=True)
    price = fields.DecimalField(max_digits=12, decimal_places=2)
    is_active = fields.BooleanField(default=True)
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "products"
        unique_together = (("business_id", "name_key"),)
        indexes = [
            ("business_id", "is_active"),
            ("category_id",),
        ]

    def __str__(self):
        return self.name


class UnitConversion(models.Model):
    """1 ``from_unit`` equals ``factor`` ``to_unit`` within a business."""
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    business_id = fields.UUIDField()
    from_unit = fields.CharField(max_length=32)
    to_unit = fields.CharField(max_length=32)
    factor = fields.DecimalField(max_digits=18, decimal_places=8)
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "unit_conversions"
        unique_together = (("business_id", "from_unit", "to_unit"),)
