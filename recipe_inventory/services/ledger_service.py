import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, List, NamedTuple, Optional, Any
from uuid import UUID

from tortoise.transactions import in_transaction

from recipe_inventory.core import config
from recipe_inventory.core.exceptions import InsufficientStockError, ValidationError
from recipe_inventory.core.locks import snapshot_locks
from recipe_inventory.core.quantities import ZERO, quantize_quantity, to_quantity
from recipe_inventory.events.outbox_utility import LOW_STOCK_ALERT, create_outbox_event
from recipe_inventory.models.catalog import ItemType
from recipe_inventory.models.inventory import InventoryItem, InventoryTransaction, ReferenceType
from recipe_inventory.services.catalog_service import get_item

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
log = logging.getLogger("inventory_ledger")

CLAMP = "clamp"
REJECT = "reject"
POLICIES = (CLAMP, REJECT)


class SnapshotKey(NamedTuple):
    business_id: UUID
    branch_id: UUID
    item_type: ItemType
    item_id: UUID


@dataclass(frozen=True)
class StockChange:
    """One signed delta. reference_id and note override the call-level values."""
    item_type: ItemType
    item_id: UUID
    change_quantity: Decimal
    reference_id: Optional[str] = None
    note: Optional[str] = None


class _Prepared(NamedTuple):
    key: SnapshotKey
    item_name: str
    quantity: Decimal
    reference_id: Optional[str]
    note: Optional[str]


@dataclass(frozen=True)
class ReconcileResult:
    key: SnapshotKey
    expected: Decimal
    recorded: Optional[Decimal]

    @property
    def repaired(self) -> bool:
        return self.recorded != self.expected


def _resolve_policy(policy: Optional[str]) -> str:
    policy = (policy or config.NEGATIVE_STOCK_POLICY).lower()
    if policy not in POLICIES:
        raise ValidationError(f"Unknown negative stock policy '{policy}'. Use one of {POLICIES}.")
    return policy


def _resolve_reference_type(reference_type) -> ReferenceType:
    try:
        return ReferenceType(reference_type)
    except ValueError:
        raise ValidationError(
            f"Unknown reference type '{reference_type}'.",
            {"allowed": [r.value for r in ReferenceType]},
        ) from None


def replay_quantity(changes: Iterable[Decimal], start: Decimal = ZERO) -> Decimal:
    """Folds ledger deltas exactly as record_transaction applies them, clamping at zero per step."""
    quantity = start
    for change in changes:
        quantity = max(ZERO, quantity + change)
    return quantity


def _snapshot_filter(key: SnapshotKey) -> dict:
    return {
        "business_id": key.business_id,
        "branch_id": key.branch_id,
        "item_type": key.item_type,
        "item_id": key.item_id,
    }


async def _lock_snapshot(conn: Any, key: SnapshotKey, item_name: str) -> InventoryItem:
    """Reads the snapshot row FOR UPDATE, creating it at zero on first write."""
    snapshot = await InventoryItem.filter(**_snapshot_filter(key)).using_db(conn).select_for_update().first()
    if snapshot is None:
        snapshot = await InventoryItem.create(
            item_name=item_name,
            quantity_available=ZERO,
            reorder_level=ZERO,
            using_db=conn,
            **_snapshot_filter(key),
        )
        log.info(f"Snapshot created for {key.item_type.value} {key.item_id} at branch {key.branch_id}.")
    return snapshot


async def check_for_low_stock(snapshot: InventoryItem, was_low: bool, entry: InventoryTransaction, conn: Any):
    """Emits an alert when this write moved the snapshot to or below its reorder level."""
    if was_low or not snapshot.is_low_stock:
        return
    log.warning(
        f"Low stock: {snapshot.item_name} at branch {snapshot.branch_id} "
        f"({snapshot.quantity_available} <= {snapshot.reorder_level})"
    )
    await create_outbox_event(
        aggregate_type="inventory_item",
        aggregate_id=snapshot.id,
        event_type=LOW_STOCK_ALERT,
        payload={
            "business_id": str(snapshot.business_id),
            "branch_id": str(snapshot.branch_id),
            "item_type": snapshot.item_type.value,
            "item_id": str(snapshot.item_id),
            "item_name": snapshot.item_name,
            "quantity_available": str(snapshot.quantity_available),
            "reorder_level": str(snapshot.reorder_level),
            "triggered_by_transaction_id": entry.id,
            "reference_id": entry.reference_id,
        },
        conn=conn
    )


async def _apply_change(
    conn: Any,
    key: SnapshotKey,
    item_name: str,
    change: Decimal,
    reference_type: ReferenceType,
    reference_id: Optional[str],
    note: Optional[str],
    policy: str,
) -> InventoryTransaction:
    snapshot = await _lock_snapshot(conn, key, item_name)
    before = snapshot.quantity_available
    raw = before + change
    if raw < ZERO:
        if policy == REJECT:
            raise InsufficientStockError(key.item_id, before, -change)
        log.warning(
            f"Oversell on {key.item_type.value} {key.item_id}: requested {change}, available {before}; clamped to 0."
        )
    was_low = snapshot.is_low_stock

    snapshot.quantity_available = max(ZERO, raw)
    await snapshot.save(update_fields=["quantity_available", "updated_at"], using_db=conn)

    entry = await InventoryTransaction.create(
        business_id=key.business_id,
        branch_id=key.branch_id,
        item_type=key.item_type,
        item_id=key.item_id,
        change_quantity=change,
        quantity_before=before,
        quantity_after=snapshot.quantity_available,
        reference_type=reference_type,
        reference_id=reference_id,
        note=note,
        using_db=conn,
    )
    await check_for_low_stock(snapshot, was_low, entry, conn)
    return entry


async def _drop_recorded(
    conn: Any,
    business_id: UUID,
    branch_id: UUID,
    reference_type: ReferenceType,
    prepared: List[_Prepared],
) -> List[_Prepared]:
    # Row locks first so other processes serialise on the same snapshots before the lookup
    for key in sorted({p.key for p in prepared}, key=str):
        await InventoryItem.filter(**_snapshot_filter(key)).using_db(conn).select_for_update().first()

    references = {p.reference_id for p in prepared if p.reference_id is not None}
    if not references:
        return prepared
    recorded = set(await InventoryTransaction.filter(
        business_id=business_id,
        branch_id=branch_id,
        reference_type=reference_type,
        reference_id__in=sorted(references),
    ).using_db(conn).values_list("reference_id", flat=True))
    for ref in sorted(recorded):
        log.info(f"{reference_type.value} {ref} already recorded; skipping.")
    return [p for p in prepared if p.reference_id not in recorded]


async def apply_changes(
    business_id: UUID,
    branch_id: UUID,
    changes: List[StockChange],
    reference_type,
    reference_id: Optional[str] = None,
    note: Optional[str] = None,
    policy: Optional[str] = None,
    skip_recorded: bool = False,
) -> List[InventoryTransaction]:
    """
    Applies several deltas as one unit: every snapshot update and ledger
    append commits together or not at all. Locks for all touched keys are
    held for the whole transaction, so deltas on one key apply in the order
    callers acquire the lock and never interleave a read-modify-write.

    With skip_recorded, changes whose (reference_type, reference_id) is
    already in the branch ledger are dropped. The check runs under the same
    locks and transaction as the writes, so a redelivered reference is
    applied once even when deliveries race.
    """
    policy = _resolve_policy(policy)
    reference_type = _resolve_reference_type(reference_type)

    prepared = []
    for change in changes:
        quantity = quantize_quantity(to_quantity(change.change_quantity, "change_quantity"))
        if quantity == ZERO:
            raise ValidationError("change_quantity must not be zero.")
        item_type = ItemType(change.item_type)
        item = await get_item(item_type, change.item_id, business_id)
        key = SnapshotKey(business_id, branch_id, item_type, item.id)
        ref = change.reference_id if change.reference_id is not None else reference_id
        prepared.append(_Prepared(
            key, item.name, quantity, str(ref) if ref is not None else None, change.note or note
        ))

    entries = []
    async with snapshot_locks.hold(*(p.key for p in prepared)):
        async with in_transaction() as conn:
            if skip_recorded:
                prepared = await _drop_recorded(conn, business_id, branch_id, reference_type, prepared)
            for p in prepared:
                entry = await _apply_change(
                    conn, p.key, p.item_name, p.quantity, reference_type, p.reference_id, p.note, policy
                )
                entries.append(entry)

    for entry in entries:
        log.info(
            f"Ledger #{entry.id}: {entry.item_type.value} {entry.item_id} {entry.change_quantity:+} "
            f"({entry.reference_type.value}) {entry.quantity_before} -> {entry.quantity_after}"
        )
    return entries


async def record_transaction(
    business_id: UUID,
    branch_id: UUID,
    item_type: ItemType,
    item_id: UUID,
    change_quantity,
    reference_type,
    reference_id: Optional[str] = None,
    note: Optional[str] = None,
    policy: Optional[str] = None,
) -> InventoryTransaction:
    """
    Records one signed stock delta for (business, branch, item) and updates the
    snapshot. Under the default clamp policy a deduction larger than the stock
    consumes to zero instead of failing; the ledger row keeps the requested
    delta. Not idempotent: deduplicate retries by reference_id.
    """
    entries = await apply_changes(
        business_id,
        branch_id,
        [StockChange(ItemType(item_type), item_id, change_quantity)],
        reference_type,
        reference_id=reference_id,
        note=note,
        policy=policy,
    )
    return entries[0]


async def set_reorder_level(business_id: UUID, branch_id: UUID, item_type: ItemType, item_id: UUID, reorder_level) -> InventoryItem:
    reorder_level = quantize_quantity(to_quantity(reorder_level, "reorder_level"))
    if reorder_level < ZERO:
        raise ValidationError("reorder_level must not be negative.")
    item_type = ItemType(item_type)
    item = await get_item(item_type, item_id, business_id)
    key = SnapshotKey(business_id, branch_id, item_type, item.id)

    async with snapshot_locks.hold(key):
        async with in_transaction() as conn:
            snapshot = await _lock_snapshot(conn, key, item.name)
            snapshot.reorder_level = reorder_level
            await snapshot.save(update_fields=["reorder_level", "updated_at"], using_db=conn)
    return snapshot


async def get_snapshot(business_id: UUID, branch_id: UUID, item_type: ItemType, item_id: UUID) -> Optional[InventoryItem]:
    key = SnapshotKey(business_id, branch_id, ItemType(item_type), item_id)
    return await InventoryItem.get_or_none(**_snapshot_filter(key))


async def list_snapshots(business_id: UUID, branch_id: UUID, item_type: Optional[ItemType] = None) -> List[InventoryItem]:
    query = InventoryItem.filter(business_id=business_id, branch_id=branch_id)
    if item_type is not None:
        query = query.filter(item_type=ItemType(item_type))
    return await query.order_by("item_name")


async def list_low_stock(business_id: UUID, branch_id: UUID) -> List[InventoryItem]:
    """Snapshots at or below their reorder level, for manager attention (never blocks sales)."""
    snapshots = await list_snapshots(business_id, branch_id)
    return [snapshot for snapshot in snapshots if snapshot.is_low_stock]


async def list_transactions(
    business_id: UUID,
    branch_id: Optional[UUID] = None,
    item_type: Optional[ItemType] = None,
    item_id: Optional[UUID] = None,
    reference_type: Optional[ReferenceType] = None,
    reference_id: Optional[str] = None,
    limit: int = 100,
) -> List[InventoryTransaction]:
    """Ledger rows, newest first."""
    query = InventoryTransaction.filter(business_id=business_id)
    if branch_id is not None:
        query = query.filter(branch_id=branch_id)
    if item_type is not None:
        query = query.filter(item_type=ItemType(item_type))
    if item_id is not None:
        query = query.filter(item_id=item_id)
    if reference_type is not None:
        query = query.filter(reference_type=_resolve_reference_type(reference_type))
    if reference_id is not None:
        query = query.filter(reference_id=str(reference_id))
    return await query.order_by("-id").limit(limit)


async def reconcile_snapshot(business_id: UUID, branch_id: UUID, item_type: ItemType, item_id: UUID) -> Optional[ReconcileResult]:
    """
    Rebuilds the snapshot quantity by replaying its ledger from zero and
    repairs the stored value if it drifted. Returns None for a key with
    neither snapshot nor history.
    """
    key = SnapshotKey(business_id, branch_id, ItemType(item_type), item_id)
    async with snapshot_locks.hold(key):
        async with in_transaction() as conn:
            snapshot = await InventoryItem.filter(**_snapshot_filter(key)).using_db(conn).select_for_update().first()
            changes = await (
                InventoryTransaction.filter(**_snapshot_filter(key))
                .using_db(conn)
                .order_by("id")
                .values_list("change_quantity", flat=True)
            )
            if snapshot is None and not changes:
                return None

            expected = replay_quantity(changes)
            recorded = snapshot.quantity_available if snapshot else None
            if snapshot is None:
                item = await get_item(key.item_type, key.item_id, business_id)
                snapshot = await InventoryItem.create(item_name=item.name, using_db=conn, **_snapshot_filter(key))
            if recorded != expected:
                log.warning(f"Snapshot drift on {key}: recorded {recorded}, ledger says {expected}. Repairing.")
                snapshot.quantity_available = expected
                await snapshot.save(update_fields=["quantity_available", "updated_at"], using_db=conn)

    return ReconcileResult(key, expected, recorded)


async def reconcile_all(business_id: Optional[UUID] = None) -> List[ReconcileResult]:
    """Replays every ledger key (optionally one business) and repairs drifted snapshots."""
    query = InventoryTransaction.all()
    if business_id is not None:
        query = query.filter(business_id=business_id)
    keys = await query.distinct().values_list("business_id", "branch_id", "item_type", "item_id")

    results = []
    for biz, branch, item_type, item_id in keys:
        result = await reconcile_snapshot(biz, branch, item_type, item_id)
        if result is not None:
            results.append(result)
    return results
