import asyncio
import logging

from recipe_inventory.consumers.inventory_consumer import (
    handle_low_stock_alert,
    handle_order_cancelled,
    handle_order_placed,
)
from recipe_inventory.core.config import POLLING_INTERVAL, MAX_ATTEMPTS, BATCH_SIZE
from recipe_inventory.core.db import init_db, close_db
from recipe_inventory.events.outbox_utility import LOW_STOCK_ALERT, ORDER_CANCELLED, ORDER_PLACED
from recipe_inventory.models.outbox import OutboxEvent

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
log = logging.getLogger("outbox_poller")

HANDLERS = {
    ORDER_PLACED: handle_order_placed,
    ORDER_CANCELLED: handle_order_cancelled,
    LOW_STOCK_ALERT: handle_low_stock_alert,
}


async def dispatch_event(event: OutboxEvent) -> bool:
    """
    Routes an OutboxEvent to its handler. Returns False for event types this
    service does not consume (they are still marked published).
    """
    handler = HANDLERS.get(event.event_type)
    if handler is None:
        log.debug(f"No handler for event type: {event.event_type}")
        return False

    log.info(f"Dispatching {event.event_type} (ID: {event.id.hex[:8]}...)")
    await handler(event.payload, event.id)
    return True


async def poll_outbox_for_new_events() -> int:
    """
    Dispatches unpublished events in creation order. Returns how many were
    published in this pass.
    """
    events = await OutboxEvent.filter(published=False, attempts__lt=MAX_ATTEMPTS).order_by('created_at').limit(BATCH_SIZE)

    published = 0
    for event in events:
        try:
            await dispatch_event(event)
        except Exception:
            event.attempts += 1
            await event.save(update_fields=['attempts'])
            log.exception(f"Event {event.id} failed (attempt {event.attempts}/{MAX_ATTEMPTS}).")
            continue

        event.published = True
        await event.save(update_fields=['published'])
        published += 1
    return published


async def start_outbox_poller():
    """Main loop for the poller service."""
    await init_db()
    log.info("--- Outbox Poller Service Started ---")

    try:
        while True:
            try:
                await poll_outbox_for_new_events()
            except Exception:
                log.exception("Poller encountered a DB error; retrying next interval.")
            await asyncio.sleep(POLLING_INTERVAL)
    finally:
        await close_db()


if __name__ == "__main__":
    try:
        asyncio.run(start_outbox_poller())
    except KeyboardInterrupt:
        log.info("Poller service stopped.")
