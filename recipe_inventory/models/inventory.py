from enum import Enum
from tortoise import fields, models
import uuid

from recipe_inventory.core.exceptions import ImmutableLedgerError
from recipe_inventory.models.catalog import ItemType


class ReferenceType(str, Enum):
    PURCHASE = "purchase"
    SALE = "sale"
    WASTE = "waste"
    ADJUSTMENT = "adjustment"
    PRODUCTION = "production"


class InventoryItem(models.Model):
    """
    Current stock per (business, branch, item type, item). A cache of the
    ledger: quantity_available is only ever written by the ledger service.
    """
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    business_id = fields.UUIDField()
    branch_id = fields.UUIDField()
    item_type = fields.CharEnumField(ItemType)
    # Null only on legacy rows keyed by name (see scripts/backfill_snapshot_ids.py)
    item_id = fields.UUIDField(null=True)
    item_name = fields.CharField(max_length=255)
    quantity_available = fields.DecimalField(max_digits=14, decimal_places=4, default=0)
    reorder_level = fields.DecimalField(max_digits=14, decimal_places=4, default=0) # For low stock alert
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "inventory_items"
        unique_together = (("business_id", "branch_id", "item_type", "item_id"),)
        indexes = [
            ("business_id", "branch_id"),
            ("branch_id", "item_type"),
        ]

    @property
    def is_low_stock(self) -> bool:
        return self.quantity_available <= self.reorder_level

    @property
    def is_out_of_stock(self) -> bool:
        return self.quantity_available <= 0


class InventoryTransaction(models.Model):
    """
    Append-only ledger row. change_quantity is the requested delta, even when
    the snapshot was clamped at zero; quantity_before/after show the effect.
    """
    id = fields.BigIntField(primary_key=True) # Auto-increment, monotonic
    business_id = fields.UUIDField()
    branch_id = fields.UUIDField()
    item_type = fields.CharEnumField(ItemType)
    item_id = fields.UUIDField()
    change_quantity = fields.DecimalField(max_digits=14, decimal_places=4)
    quantity_before = fields.DecimalField(max_digits=14, decimal_places=4)
    quantity_after = fields.DecimalField(max_digits=14, decimal_places=4)
    reference_type = fields.CharEnumField(ReferenceType)
    reference_id = fields.CharField(max_length=128, null=True) # e.g. order id
    note = fields.TextField(null=True)
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "inventory_transactions"
        indexes = [
            ("business_id", "branch_id", "item_type", "item_id"),  # Replay / item history
            ("reference_type", "reference_id"),                    # Order-line dedup
            ("created_at",),
        ]

    async def save(self, *args, **kwargs):
        if self._saved_in_db:
            raise ImmutableLedgerError(f"Ledger entry {self.pk} cannot be modified; record an offsetting transaction.")
        await super().save(*args, **kwargs)

    async def delete(self, *args, **kwargs):
        raise ImmutableLedgerError(f"Ledger entry {self.pk} cannot be deleted.")
