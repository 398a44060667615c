import logging
from typing import Any, Dict, List
from uuid import UUID

from recipe_inventory.core.exceptions import InventoryEngineError
from recipe_inventory.events.outbox_utility import create_outbox_event
from recipe_inventory.models.processed_event import ProcessedEvent
from recipe_inventory.services.consumption_service import SaleLine, consume_order, restore_order

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
log = logging.getLogger("inventory_consumer")

DEDUCTION_FAILED = "inventory.deduction.failed.v1"


def line_reference(order_id: UUID, position: int, item: Dict[str, Any]) -> str:
    """
    Ledger reference for one order line: its order_item_id when the order
    system sends one, else its 1-based position. Two lines for the same
    product stay distinct.
    """
    line_id = item.get("order_item_id") or position
    return f"{order_id}:{line_id}"


def _line_references(order_id: UUID, items) -> List[str]:
    return [line_reference(order_id, position, item) for position, item in enumerate(items, start=1)]


async def _already_processed(event_id: str, handler: str) -> bool:
    if await ProcessedEvent.filter(event_id=event_id, handler=handler).exists():
        log.info(f"Idempotency: Event {event_id} already processed by {handler}.")
        return True
    return False


async def handle_order_placed(event_payload: Dict[str, Any], event_id: UUID):
    """
    Consumer logic for 'order.placed.v1'. Deducts recipe ingredients (or
    product stock) for all order lines in one ledger transaction, so a
    failing line leaves the whole order undeducted.
    """
    order_id = UUID(event_payload["order_id"])
    business_id = UUID(event_payload["business_id"])
    branch_id = UUID(event_payload["branch_id"])
    items = event_payload.get("items", [])
    event_id_str = str(event_id)

    if await _already_processed(event_id_str, "order_placed"):
        return

    log.info(f"Deducting stock for Order {order_id} ({len(items)} line(s))")
    try:
        lines = [
            SaleLine(UUID(str(item["product_id"])), item["quantity"], reference)
            for item, reference in zip(items, _line_references(order_id, items))
        ]
        await consume_order(business_id, branch_id, lines)
    except InventoryEngineError as e:
        # Domain failures are not retried; upstream decides what happens to the order
        log.error(f"Stock deduction failed for Order {order_id}: {e}")
        await create_outbox_event(
            aggregate_type="order", aggregate_id=order_id,
            event_type=DEDUCTION_FAILED,
            payload={"order_id": str(order_id), "code": e.code, "reason": str(e)},
        )

    await ProcessedEvent.create(event_id=event_id_str, handler="order_placed")


async def handle_order_cancelled(event_payload: Dict[str, Any], event_id: UUID):
    """
    Consumer logic for 'order.cancelled.v1'. Offsets every line's sale rows
    with adjustment rows in one transaction.
    """
    order_id = UUID(event_payload["order_id"])
    business_id = UUID(event_payload["business_id"])
    branch_id = UUID(event_payload["branch_id"])
    items = event_payload.get("items", [])
    event_id_str = str(event_id)

    if await _already_processed(event_id_str, "order_cancelled"):
        return

    log.info(f"Restoring stock for cancelled Order {order_id}")
    await restore_order(business_id, branch_id, _line_references(order_id, items))

    await ProcessedEvent.create(event_id=event_id_str, handler="order_cancelled")


async def handle_low_stock_alert(event_payload: Dict[str, Any], event_id: UUID):
    """Consumer logic for 'inventory.low_stock_alert.v1' (notification hook)."""
    log.warning(
        f"LOW STOCK: {event_payload.get('item_name')} at branch {event_payload.get('branch_id')} "
        f"has {event_payload.get('quantity_available')} left (reorder level {event_payload.get('reorder_level')})."
    )
