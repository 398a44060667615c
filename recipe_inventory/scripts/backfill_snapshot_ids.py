"""
One-off migration for legacy snapshots keyed only by item name (item_id is
NULL). Each is linked to the single catalog item of its business whose name
matches case-insensitively. Ambiguous or unmatched rows are reported and left
alone. Once every row is linked, LEGACY_NAME_MATCHING can be switched off.

    python -m recipe_inventory.scripts.backfill_snapshot_ids [--dry-run]
"""
import asyncio
import logging
import sys

from tortoise.transactions import in_transaction

from recipe_inventory.core.db import init_db, close_db
from recipe_inventory.models.catalog import Ingredient, ItemType, Product
from recipe_inventory.models.inventory import InventoryItem

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
log = logging.getLogger("backfill_snapshot_ids")


async def backfill(dry_run: bool = False):
    """Returns (linked, skipped) counts."""
    linked = skipped = 0
    legacy = await InventoryItem.filter(item_id__isnull=True)
    for snapshot in legacy:
        model = Ingredient if snapshot.item_type == ItemType.INGREDIENT else Product
        matches = await model.filter(business_id=snapshot.business_id, name_key=snapshot.item_name.strip().lower())
        if len(matches) != 1:
            log.warning(f"Snapshot {snapshot.id} '{snapshot.item_name}': {len(matches)} catalog match(es); skipped.")
            skipped += 1
            continue

        item = matches[0]
        async with in_transaction() as conn:
            clash = await InventoryItem.filter(
                business_id=snapshot.business_id,
                branch_id=snapshot.branch_id,
                item_type=snapshot.item_type,
                item_id=item.id,
            ).using_db(conn).exists()
            if clash:
                log.warning(f"Snapshot {snapshot.id} '{snapshot.item_name}': branch already has an id-keyed row; skipped.")
                skipped += 1
                continue
            if not dry_run:
                snapshot.item_id = item.id
                snapshot.item_name = item.name
                await snapshot.save(update_fields=["item_id", "item_name", "updated_at"], using_db=conn)
        log.info(f"Snapshot {snapshot.id} '{snapshot.item_name}' -> {item.id}")
        linked += 1
    return linked, skipped


async def main(dry_run: bool):
    await init_db(generate_schemas=False)
    try:
        linked, skipped = await backfill(dry_run)
    finally:
        await close_db()
    log.info(f"Linked {linked} snapshot(s), skipped {skipped}{' (dry run)' if dry_run else ''}.")

if __name__ == "__main__":
    asyncio.run(main("--dry-run" in sys.argv))
