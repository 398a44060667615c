from tortoise import fields, models
import uuid


class ProcessedEvent(models.Model):
    """Consumer idempotency: one row per (event, handler) that has been applied."""
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    event_id = fields.CharField(max_length=128)
    handler = fields.CharField(max_length=128)
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "processed_events"
        unique_together = (("event_id", "handler"),)
