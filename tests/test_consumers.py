import asyncio
import pytest
import pytest_asyncio
from decimal import Decimal
from unittest.mock import patch, AsyncMock
from uuid import uuid4

from recipe_inventory.consumers.inventory_consumer import (
    DEDUCTION_FAILED,
    handle_order_cancelled,
    handle_order_placed,
    line_reference,
)
from recipe_inventory.consumers.outbox_poller import poll_outbox_for_new_events
from recipe_inventory.core.config import MAX_ATTEMPTS
from recipe_inventory.core.exceptions import InsufficientStockError
from recipe_inventory.events.outbox_utility import ORDER_CANCELLED, ORDER_PLACED, create_outbox_event
from recipe_inventory.models.catalog import ItemType
from recipe_inventory.models.inventory import InventoryTransaction, ReferenceType
from recipe_inventory.models.outbox import OutboxEvent
from recipe_inventory.models.processed_event import ProcessedEvent
from recipe_inventory.services import catalog_service, ledger_service, recipe_service
from recipe_inventory.services.consumption_service import SaleLine

CONSUMER = "recipe_inventory.consumers.inventory_consumer"


def order_payload(business_id, branch_id, order_id, product_id, quantity=2):
    return {
        "order_id": str(order_id),
        "business_id": str(business_id),
        "branch_id": str(branch_id),
        "items": [{"product_id": str(product_id), "quantity": quantity}],
    }


class TestConsumers:

    def test_line_reference_prefers_order_item_id(self):
        order_id = uuid4()
        assert line_reference(order_id, 2, {"order_item_id": "oi-9"}) == f"{order_id}:oi-9"
        assert line_reference(order_id, 2, {"product_id": "p"}) == f"{order_id}:2"

    @pytest.mark.asyncio
    async def test_order_placed_deducts_all_lines_together(self):
        """All order lines go to the ledger in one call, each with its own reference"""
        business_id, branch_id, order_id, product_id = uuid4(), uuid4(), uuid4(), uuid4()
        payload = order_payload(business_id, branch_id, order_id, product_id, 3)
        payload["items"].append({"product_id": str(product_id), "quantity": 1})
        with patch(f"{CONSUMER}._already_processed", AsyncMock(return_value=False)), \
                patch(f"{CONSUMER}.ProcessedEvent.create", new_callable=AsyncMock) as mock_processed, \
                patch(f"{CONSUMER}.consume_order", new_callable=AsyncMock) as mock_consume:

            await handle_order_placed(payload, uuid4())

            mock_consume.assert_awaited_once_with(business_id, branch_id, [
                SaleLine(product_id, 3, f"{order_id}:1"),
                SaleLine(product_id, 1, f"{order_id}:2"),
            ])
            mock_processed.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_order_placed_skips_processed_event(self):
        with patch(f"{CONSUMER}._already_processed", AsyncMock(return_value=True)), \
                patch(f"{CONSUMER}.consume_order", new_callable=AsyncMock) as mock_consume:

            await handle_order_placed(order_payload(uuid4(), uuid4(), uuid4(), uuid4()), uuid4())

            mock_consume.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_deduction_failure_emits_event(self):
        """Domain errors are reported through the outbox instead of retried"""
        order_id = uuid4()
        with patch(f"{CONSUMER}._already_processed", AsyncMock(return_value=False)), \
                patch(f"{CONSUMER}.ProcessedEvent.create", new_callable=AsyncMock) as mock_processed, \
                patch(f"{CONSUMER}.create_outbox_event", new_callable=AsyncMock) as mock_outbox, \
                patch(f"{CONSUMER}.consume_order", new_callable=AsyncMock) as mock_consume:
            mock_consume.side_effect = InsufficientStockError(uuid4(), Decimal("1"), Decimal("5"))

            await handle_order_placed(order_payload(uuid4(), uuid4(), order_id, uuid4(), 5), uuid4())

            mock_outbox.assert_awaited_once()
            kwargs = mock_outbox.await_args.kwargs
            assert kwargs["event_type"] == DEDUCTION_FAILED
            assert kwargs["payload"]["code"] == "insufficient_stock"
            assert kwargs["payload"]["order_id"] == str(order_id)
            mock_processed.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_order_cancelled_restores_every_line(self):
        business_id, branch_id, order_id, product_id = uuid4(), uuid4(), uuid4(), uuid4()
        with patch(f"{CONSUMER}._already_processed", AsyncMock(return_value=False)), \
                patch(f"{CONSUMER}.ProcessedEvent.create", new_callable=AsyncMock), \
                patch(f"{CONSUMER}.restore_order", new_callable=AsyncMock) as mock_restore:

            await handle_order_cancelled(order_payload(business_id, branch_id, order_id, product_id), uuid4())

            mock_restore.assert_awaited_once_with(business_id, branch_id, [f"{order_id}:1"])


@pytest_asyncio.fixture
async def bread(db, business_id, branch_id):
    flour = await catalog_service.create_ingredient(business_id, "Flour", "kg")
    product = await catalog_service.create_product(business_id, "Bread", "3.50")
    await recipe_service.set_recipe(product.id, [{"ingredient_id": flour.id, "quantity_required": "0.5", "unit": "kg"}])
    await ledger_service.record_transaction(business_id, branch_id, ItemType.INGREDIENT, flour.id, "5", "purchase")
    return product, flour


async def flour_left(business_id, branch_id, flour):
    snapshot = await ledger_service.get_snapshot(business_id, branch_id, ItemType.INGREDIENT, flour.id)
    return snapshot.quantity_available


class TestOutboxPoller:

    @pytest.mark.asyncio
    async def test_placed_order_flows_through_poller(self, business_id, branch_id, bread):
        product, flour = bread
        order_id = uuid4()
        event = await create_outbox_event("order", order_id, ORDER_PLACED, order_payload(business_id, branch_id, order_id, product.id, 4))

        assert await poll_outbox_for_new_events() == 1
        assert await flour_left(business_id, branch_id, flour) == Decimal("3")

        await event.refresh_from_db()
        assert event.published is True
        assert await ProcessedEvent.filter(event_id=str(event.id), handler="order_placed").exists()

        # Nothing left to dispatch
        assert await poll_outbox_for_new_events() == 0

    @pytest.mark.asyncio
    async def test_redelivered_event_is_applied_once(self, business_id, branch_id, bread):
        product, flour = bread
        order_id = uuid4()
        payload = order_payload(business_id, branch_id, order_id, product.id, 2)
        event_id = uuid4()

        await handle_order_placed(payload, event_id)
        await handle_order_placed(payload, event_id)
        # Same order line under a new event id is still deduplicated by reference
        await handle_order_placed(payload, uuid4())

        assert await flour_left(business_id, branch_id, flour) == Decimal("4")

    @pytest.mark.asyncio
    async def test_cancel_after_place_restores_stock(self, business_id, branch_id, bread):
        product, flour = bread
        order_id = uuid4()
        payload = order_payload(business_id, branch_id, order_id, product.id, 2)
        await create_outbox_event("order", order_id, ORDER_PLACED, payload)
        assert await poll_outbox_for_new_events() == 1
        assert await flour_left(business_id, branch_id, flour) == Decimal("4")

        await create_outbox_event("order", order_id, ORDER_CANCELLED, payload)
        assert await poll_outbox_for_new_events() == 1
        assert await flour_left(business_id, branch_id, flour) == Decimal("5")

    @pytest.mark.asyncio
    async def test_unknown_event_type_is_marked_published(self, db):
        event = await create_outbox_event("order", uuid4(), "order.shipped.v1", {})

        assert await poll_outbox_for_new_events() == 1
        await event.refresh_from_db()
        assert event.published is True

    @pytest.mark.asyncio
    async def test_failing_event_counts_attempts(self, db):
        # Missing business_id makes the handler raise
        event = await create_outbox_event("order", uuid4(), ORDER_PLACED, {"order_id": str(uuid4()), "items": []})

        for _ in range(MAX_ATTEMPTS + 1):
            assert await poll_outbox_for_new_events() == 0

        await event.refresh_from_db()
        assert event.published is False
        assert event.attempts == MAX_ATTEMPTS
        assert await OutboxEvent.filter(published=False).count() == 1


class TestOrderLines:

    @pytest.mark.asyncio
    async def test_repeated_product_lines_are_all_deducted(self, business_id, branch_id, bread):
        product, flour = bread
        order_id = uuid4()
        payload = order_payload(business_id, branch_id, order_id, product.id, 1)
        payload["items"].append({"product_id": str(product.id), "quantity": 2})

        await handle_order_placed(payload, uuid4())

        # 3 breads x 0.5 kg
        assert await flour_left(business_id, branch_id, flour) == Decimal("3.5")
        references = await InventoryTransaction.filter(reference_type=ReferenceType.SALE).values_list("reference_id", flat=True)
        assert sorted(references) == [f"{order_id}:1", f"{order_id}:2"]

    @pytest.mark.asyncio
    async def test_order_item_ids_keep_lines_apart(self, business_id, branch_id, bread):
        product, flour = bread
        order_id = uuid4()
        payload = order_payload(business_id, branch_id, order_id, product.id, 1)
        payload["items"] = [
            {"order_item_id": "a", "product_id": str(product.id), "quantity": 1},
            {"order_item_id": "b", "product_id": str(product.id), "quantity": 1},
        ]

        await handle_order_placed(payload, uuid4())
        await handle_order_cancelled(payload, uuid4())

        assert await flour_left(business_id, branch_id, flour) == Decimal("5")
        restored = await InventoryTransaction.filter(reference_type=ReferenceType.ADJUSTMENT).count()
        assert restored == 2

    @pytest.mark.asyncio
    async def test_order_with_unknown_product_deducts_nothing(self, business_id, branch_id, bread):
        product, flour = bread
        order_id = uuid4()
        payload = order_payload(business_id, branch_id, order_id, product.id, 2)
        payload["items"].append({"product_id": str(uuid4()), "quantity": 1})

        await handle_order_placed(payload, uuid4())

        assert await flour_left(business_id, branch_id, flour) == Decimal("5")
        assert await InventoryTransaction.filter(reference_type=ReferenceType.SALE).count() == 0
        failed = await OutboxEvent.filter(event_type=DEDUCTION_FAILED).first()
        assert failed.payload["code"] == "unknown_item"

    @pytest.mark.asyncio
    async def test_rejected_line_rolls_back_whole_order(self, business_id, branch_id, bread, monkeypatch):
        from recipe_inventory.core import config
        monkeypatch.setattr(config, "NEGATIVE_STOCK_POLICY", "reject")
        product, flour = bread
        order_id = uuid4()
        payload = order_payload(business_id, branch_id, order_id, product.id, 2)
        # Second line needs 10 kg, only 4 kg would be left
        payload["items"].append({"product_id": str(product.id), "quantity": 20})

        await handle_order_placed(payload, uuid4())

        assert await flour_left(business_id, branch_id, flour) == Decimal("5")
        assert await InventoryTransaction.filter(reference_type=ReferenceType.SALE).count() == 0

    @pytest.mark.asyncio
    async def test_concurrent_deliveries_deduct_once(self, business_id, branch_id, bread):
        product, flour = bread
        order_id = uuid4()
        payload = order_payload(business_id, branch_id, order_id, product.id, 2)

        # Different event ids, so only the ledger reference can deduplicate
        await asyncio.gather(handle_order_placed(payload, uuid4()), handle_order_placed(payload, uuid4()))

        assert await flour_left(business_id, branch_id, flour) == Decimal("4")
        assert await InventoryTransaction.filter(reference_type=ReferenceType.SALE).count() == 1
