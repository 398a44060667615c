"""
Replays the inventory ledger from zero and repairs every snapshot whose
stored quantity drifted. Doubles as a consistency check: exit code 1 when
any snapshot had to be repaired.

    python -m recipe_inventory.scripts.rebuild_snapshots [business_id]
"""
import asyncio
import logging
import sys
import uuid

from recipe_inventory.core.db import init_db, close_db
from recipe_inventory.services.ledger_service import reconcile_all

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
log = logging.getLogger("rebuild_snapshots")


async def main(business_id=None) -> int:
    await init_db(generate_schemas=False)
    try:
        results = await reconcile_all(business_id)
    finally:
        await close_db()

    repaired = [r for r in results if r.repaired]
    for result in repaired:
        log.warning(f"Repaired {result.key}: {result.recorded} -> {result.expected}")
    log.info(f"Checked {len(results)} snapshot(s), repaired {len(repaired)}.")
    return 1 if repaired else 0

if __name__ == "__main__":
    business = uuid.UUID(sys.argv[1]) if len(sys.argv) > 1 else None
    sys.exit(asyncio.run(main(business)))
