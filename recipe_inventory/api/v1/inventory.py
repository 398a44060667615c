import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status

from recipe_inventory.models.catalog import ItemType
from recipe_inventory.models.inventory import ReferenceType
from recipe_inventory.schemas.inventory import (
    AvailabilityLineResponse,
    AvailabilityResponse,
    InventoryResponse,
    ReconcileResponse,
    ReorderLevelRequest,
    TransactionRequest,
    TransactionResponse,
)
from recipe_inventory.schemas.response import SuccessResponse
from recipe_inventory.services import availability_service, ledger_service

log = logging.getLogger("uvicorn")

router = APIRouter()


def _snapshot_data(snapshot) -> dict:
    return InventoryResponse.model_validate(snapshot).model_dump(mode="json")


@router.post("/transactions", status_code=status.HTTP_201_CREATED, response_model=SuccessResponse)
async def record_transaction_endpoint(payload: TransactionRequest):
    """
    Records a stock delta (purchase, sale, waste, adjustment, production).
    Deductions beyond the available stock are clamped at zero unless the
    reject policy is configured.
    """
    entry = await ledger_service.record_transaction(
        payload.business_id,
        payload.branch_id,
        payload.item_type,
        payload.item_id,
        payload.change_quantity,
        payload.reference_type,
        reference_id=payload.reference_id,
        note=payload.note,
    )
    return SuccessResponse(data=TransactionResponse.model_validate(entry).model_dump(mode="json"))


@router.get("/transactions", response_model=SuccessResponse)
async def list_transactions_endpoint(
    business_id: UUID,
    branch_id: Optional[UUID] = None,
    item_type: Optional[ItemType] = None,
    item_id: Optional[UUID] = None,
    reference_type: Optional[ReferenceType] = None,
    reference_id: Optional[str] = None,
    limit: int = Query(100, ge=1, le=1000),
):
    """Ledger history, newest first."""
    entries = await ledger_service.list_transactions(
        business_id,
        branch_id=branch_id,
        item_type=item_type,
        item_id=item_id,
        reference_type=reference_type,
        reference_id=reference_id,
        limit=limit,
    )
    return SuccessResponse(data=[TransactionResponse.model_validate(e).model_dump(mode="json") for e in entries])


@router.get("/{business_id}/{branch_id}/low-stock", response_model=SuccessResponse)
async def low_stock_endpoint(business_id: UUID, branch_id: UUID):
    """Items at or below their reorder level."""
    snapshots = await ledger_service.list_low_stock(business_id, branch_id)
    return SuccessResponse(data=[_snapshot_data(s) for s in snapshots])


@router.get("/{business_id}/{branch_id}/availability/{product_id}", response_model=SuccessResponse)
async def availability_endpoint(business_id: UUID, branch_id: UUID, product_id: UUID):
    """How many portions of the product the branch can still produce."""
    availability = await availability_service.get_availability(business_id, branch_id, product_id)
    limiting = availability.limiting_ingredient
    data = AvailabilityResponse(
        product_id=product_id,
        branch_id=branch_id,
        has_recipe=availability.has_recipe,
        available_portions=availability.portions,
        is_out_of_stock=availability.is_out_of_stock,
        limiting_ingredient_id=limiting.ingredient_id if limiting else None,
        lines=[
            AvailabilityLineResponse(
                ingredient_id=line.requirement.ingredient_id,
                ingredient_name=line.requirement.ingredient_name,
                quantity_required=line.requirement.quantity_required,
                quantity_available=line.stock.quantity_available if line.stock else None,
                portions=line.portions,
            )
            for line in availability.lines
        ],
    )
    return SuccessResponse(data=data.model_dump(mode="json"))


@router.get("/{business_id}/{branch_id}/{item_type}/{item_id}", response_model=SuccessResponse)
async def get_inventory_stock(business_id: UUID, branch_id: UUID, item_type: ItemType, item_id: UUID):
    """Fetches the current stock snapshot for one item at a branch."""
    snapshot = await ledger_service.get_snapshot(business_id, branch_id, item_type, item_id)
    if not snapshot:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No stock recorded for item at this branch.")
    return SuccessResponse(data=_snapshot_data(snapshot))


@router.put("/{business_id}/{branch_id}/{item_type}/{item_id}/reorder-level", response_model=SuccessResponse)
async def set_reorder_level_endpoint(
    business_id: UUID, branch_id: UUID, item_type: ItemType, item_id: UUID, payload: ReorderLevelRequest
):
    snapshot = await ledger_service.set_reorder_level(business_id, branch_id, item_type, item_id, payload.reorder_level)
    return SuccessResponse(data=_snapshot_data(snapshot))


@router.post("/{business_id}/{branch_id}/reconcile/{item_type}/{item_id}", response_model=SuccessResponse)
async def reconcile_endpoint(business_id: UUID, branch_id: UUID, item_type: ItemType, item_id: UUID):
    """Rebuilds the snapshot from the ledger and repairs any drift."""
    result = await ledger_service.reconcile_snapshot(business_id, branch_id, item_type, item_id)
    if result is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No stock recorded for item at this branch.")
    if result.repaired:
        log.warning(f"Snapshot for {item_type.value} {item_id} repaired from ledger.")
    data = ReconcileResponse(
        expected_quantity=result.expected,
        recorded_quantity=result.recorded,
        repaired=result.repaired,
    )
    return SuccessResponse(data=data.model_dump(mode="json"))
