from tortoise import fields, models
import uuid


class OutboxEvent(models.Model):
    """
    Events written in the same database transaction as the stock change that
    caused them (low-stock alerts), or by upstream systems (order placed or
    cancelled). The poller dispatches them to consumers.
    """
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    aggregate_type = fields.CharField(max_length=64) # e.g. 'inventory_item', 'order'
    aggregate_id = fields.UUIDField(null=True)
    event_type = fields.CharField(max_length=128) # e.g. 'inventory.low_stock_alert.v1'
    payload = fields.JSONField()
    published = fields.BooleanField(default=False)
    attempts = fields.IntField(default=0)
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "outbox_events"
        indexes = [
            ("published", "created_at"),  # Poller scan
        ]
