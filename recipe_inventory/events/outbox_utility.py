from typing import Dict, Any, Optional
from uuid import UUID

from recipe_inventory.models.outbox import OutboxEvent

LOW_STOCK_ALERT = "inventory.low_stock_alert.v1"
ORDER_PLACED = "order.placed.v1"
ORDER_CANCELLED = "order.cancelled.v1"


async def create_outbox_event(
    aggregate_type: str,
    aggregate_id: Optional[UUID],
    event_type: str,
    payload: Dict[str, Any],
    conn: Any = None
) -> OutboxEvent:
    """
    Creates a new Outbox event record using the provided database connection (transaction).

    Passing 'conn' ensures the event is created atomically with the stock change.
    """
    return await OutboxEvent.create(
        aggregate_type=aggregate_type,
        aggregate_id=aggregate_id,
        event_type=event_type,
        payload=payload,
        published=False,
        attempts=0,
        using_db=conn
    )
