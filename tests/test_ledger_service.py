import asyncio
from decimal import Decimal
from uuid import uuid4

import pytest
import pytest_asyncio

from recipe_inventory.core import config
from recipe_inventory.core.exceptions import (
    ImmutableLedgerError,
    InsufficientStockError,
    UnknownItemError,
    ValidationError,
)
from recipe_inventory.events.outbox_utility import LOW_STOCK_ALERT
from recipe_inventory.models.catalog import ItemType
from recipe_inventory.models.inventory import InventoryItem, InventoryTransaction, ReferenceType
from recipe_inventory.models.outbox import OutboxEvent
from recipe_inventory.services import catalog_service, ledger_service
from recipe_inventory.services.ledger_service import replay_quantity


@pytest_asyncio.fixture
async def flour(db, business_id):
    return await catalog_service.create_ingredient(business_id, "Flour", "kg")


def record(business_id, branch_id, item, change, reference_type="adjustment", **kwargs):
    return ledger_service.record_transaction(
        business_id, branch_id, ItemType.INGREDIENT, item.id, change, reference_type, **kwargs
    )


@pytest.mark.asyncio
async def test_first_transaction_creates_snapshot(business_id, branch_id, flour):
    assert await ledger_service.get_snapshot(business_id, branch_id, ItemType.INGREDIENT, flour.id) is None

    entry = await record(business_id, branch_id, flour, "5", "purchase", reference_id="PO-1", note="weekly delivery")

    snapshot = await ledger_service.get_snapshot(business_id, branch_id, ItemType.INGREDIENT, flour.id)
    assert snapshot.quantity_available == Decimal("5")
    assert snapshot.reorder_level == Decimal("0")
    assert snapshot.item_name == "Flour"
    assert entry.reference_type == ReferenceType.PURCHASE
    assert entry.reference_id == "PO-1"
    assert entry.quantity_before == Decimal("0")
    assert entry.quantity_after == Decimal("5")


@pytest.mark.asyncio
async def test_snapshot_matches_ledger_sum(business_id, branch_id, flour):
    deltas = ["10", "-2.5", "4", "-0.25", "1"]
    for delta in deltas:
        await record(business_id, branch_id, flour, delta)

    snapshot = await ledger_service.get_snapshot(business_id, branch_id, ItemType.INGREDIENT, flour.id)
    rows = await InventoryTransaction.filter(item_id=flour.id)
    assert snapshot.quantity_available == sum(Decimal(d) for d in deltas)
    assert snapshot.quantity_available == sum(row.change_quantity for row in rows)


@pytest.mark.asyncio
async def test_oversell_is_clamped_but_ledger_keeps_request(business_id, branch_id, flour):
    await record(business_id, branch_id, flour, "10")

    entry = await record(business_id, branch_id, flour, "-50", "sale")

    snapshot = await ledger_service.get_snapshot(business_id, branch_id, ItemType.INGREDIENT, flour.id)
    assert snapshot.quantity_available == Decimal("0")
    stored = await InventoryTransaction.get(id=entry.id)
    assert stored.change_quantity == Decimal("-50")
    assert stored.quantity_before == Decimal("10")
    assert stored.quantity_after == Decimal("0")


@pytest.mark.asyncio
async def test_reject_policy_writes_nothing(business_id, branch_id, flour):
    await record(business_id, branch_id, flour, "3")

    with pytest.raises(InsufficientStockError):
        await record(business_id, branch_id, flour, "-4", "sale", policy="reject")

    snapshot = await ledger_service.get_snapshot(business_id, branch_id, ItemType.INGREDIENT, flour.id)
    assert snapshot.quantity_available == Decimal("3")
    assert await InventoryTransaction.filter(item_id=flour.id).count() == 1


@pytest.mark.asyncio
async def test_policy_defaults_to_config(business_id, branch_id, flour, monkeypatch):
    monkeypatch.setattr(config, "NEGATIVE_STOCK_POLICY", "reject")

    with pytest.raises(InsufficientStockError):
        await record(business_id, branch_id, flour, "-1")
    with pytest.raises(ValidationError):
        await record(business_id, branch_id, flour, "1", policy="allow")


@pytest.mark.asyncio
async def test_unknown_item(db, business_id, branch_id):
    with pytest.raises(UnknownItemError):
        await ledger_service.record_transaction(business_id, branch_id, ItemType.INGREDIENT, uuid4(), 1, "purchase")
    assert await InventoryItem.all().count() == 0


@pytest.mark.asyncio
async def test_item_of_other_business_is_unknown(branch_id, flour):
    with pytest.raises(UnknownItemError):
        await ledger_service.record_transaction(uuid4(), branch_id, ItemType.INGREDIENT, flour.id, 1, "purchase")


@pytest.mark.asyncio
@pytest.mark.parametrize("change, reference_type", [("0", "purchase"), ("abc", "purchase"), ("1", "gift")])
async def test_invalid_input(business_id, branch_id, flour, change, reference_type):
    with pytest.raises(ValidationError):
        await record(business_id, branch_id, flour, change, reference_type)


@pytest.mark.asyncio
async def test_concurrent_deltas_on_one_key_do_not_lose_updates(business_id, branch_id, flour):
    await record(business_id, branch_id, flour, "10")

    await asyncio.gather(
        record(business_id, branch_id, flour, "5"),
        record(business_id, branch_id, flour, "-3"),
        *[record(business_id, branch_id, flour, "1") for _ in range(10)],
    )

    snapshot = await ledger_service.get_snapshot(business_id, branch_id, ItemType.INGREDIENT, flour.id)
    assert snapshot.quantity_available == Decimal("22")
    assert await InventoryTransaction.filter(item_id=flour.id).count() == 13


@pytest.mark.asyncio
async def test_branches_are_separate_snapshots(business_id, flour):
    north, south = uuid4(), uuid4()
    await record(business_id, north, flour, "5")
    await record(business_id, south, flour, "2")

    assert (await ledger_service.get_snapshot(business_id, north, ItemType.INGREDIENT, flour.id)).quantity_available == Decimal("5")
    assert (await ledger_service.get_snapshot(business_id, south, ItemType.INGREDIENT, flour.id)).quantity_available == Decimal("2")


@pytest.mark.asyncio
async def test_ledger_rows_are_immutable(business_id, branch_id, flour):
    entry = await record(business_id, branch_id, flour, "5")

    entry.change_quantity = Decimal("50")
    with pytest.raises(ImmutableLedgerError):
        await entry.save()
    with pytest.raises(ImmutableLedgerError):
        await entry.delete()
    assert (await InventoryTransaction.get(id=entry.id)).change_quantity == Decimal("5")


@pytest.mark.asyncio
async def test_ledger_ids_are_monotonic(business_id, branch_id, flour):
    first = await record(business_id, branch_id, flour, "1")
    second = await record(business_id, branch_id, flour, "1")

    assert second.id > first.id
    history = await ledger_service.list_transactions(business_id, branch_id=branch_id, item_id=flour.id)
    assert [row.id for row in history] == [second.id, first.id]


@pytest.mark.asyncio
async def test_low_stock_flag_and_alert_on_crossing(business_id, branch_id, flour):
    await ledger_service.set_reorder_level(business_id, branch_id, ItemType.INGREDIENT, flour.id, "2")
    await record(business_id, branch_id, flour, "5")
    assert await ledger_service.list_low_stock(business_id, branch_id) == []

    await record(business_id, branch_id, flour, "-4.5", "sale")
    await record(business_id, branch_id, flour, "-0.1", "waste")

    low = await ledger_service.list_low_stock(business_id, branch_id)
    assert [s.item_id for s in low] == [flour.id]
    assert low[0].is_low_stock and not low[0].is_out_of_stock

    alerts = await OutboxEvent.filter(event_type=LOW_STOCK_ALERT)
    assert len(alerts) == 1
    assert alerts[0].payload["item_name"] == "Flour"


@pytest.mark.asyncio
async def test_reorder_level_validation(business_id, branch_id, flour):
    with pytest.raises(ValidationError):
        await ledger_service.set_reorder_level(business_id, branch_id, ItemType.INGREDIENT, flour.id, "-1")


def test_replay_clamps_each_step():
    assert replay_quantity([Decimal("10"), Decimal("-50"), Decimal("5")]) == Decimal("5")
    assert replay_quantity([Decimal("3"), Decimal("2")]) == Decimal("5")
    assert replay_quantity([]) == Decimal("0")


@pytest.mark.asyncio
async def test_reconcile_repairs_drift(business_id, branch_id, flour):
    await record(business_id, branch_id, flour, "10")
    await record(business_id, branch_id, flour, "-50")
    await record(business_id, branch_id, flour, "7")

    clean = await ledger_service.reconcile_snapshot(business_id, branch_id, ItemType.INGREDIENT, flour.id)
    assert not clean.repaired
    assert clean.expected == Decimal("7")

    await InventoryItem.filter(item_id=flour.id).update(quantity_available=Decimal("99"))
    result = await ledger_service.reconcile_snapshot(business_id, branch_id, ItemType.INGREDIENT, flour.id)

    assert result.repaired
    assert result.recorded == Decimal("99")
    snapshot = await ledger_service.get_snapshot(business_id, branch_id, ItemType.INGREDIENT, flour.id)
    assert snapshot.quantity_available == Decimal("7")


@pytest.mark.asyncio
async def test_reconcile_all_and_unknown_key(business_id, branch_id, flour):
    assert await ledger_service.reconcile_snapshot(business_id, branch_id, ItemType.INGREDIENT, flour.id) is None

    await record(business_id, branch_id, flour, "4")
    await InventoryItem.filter(item_id=flour.id).update(quantity_available=Decimal("1"))

    results = await ledger_service.reconcile_all(business_id)
    assert [r.repaired for r in results] == [True]
