import logging
from uuid import UUID

from fastapi import APIRouter, status

from recipe_inventory.models.catalog import ItemType
from recipe_inventory.schemas.catalog import (
    IngredientRequest,
    IngredientResponse,
    IngredientUpdate,
    ProductRequest,
    ProductResponse,
    ProductUpdate,
    UnitConversionRequest,
)
from recipe_inventory.schemas.response import SuccessResponse
from recipe_inventory.services import catalog_service

log = logging.getLogger("uvicorn")

router = APIRouter()


def _serialize(item):
    schema = IngredientResponse if hasattr(item, "unit") else ProductResponse
    return schema.model_validate(item).model_dump(mode="json")


@router.post("/ingredients", status_code=status.HTTP_201_CREATED, response_model=SuccessResponse)
async def create_ingredient_endpoint(payload: IngredientRequest):
    """Adds an ingredient to the business catalog."""
    ingredient = await catalog_service.create_ingredient(
        payload.business_id,
        payload.name,
        payload.unit,
        cost_per_unit=payload.cost_per_unit,
        sku=payload.sku,
    )
    return SuccessResponse(data=_serialize(ingredient))


@router.patch("/ingredients/{ingredient_id}", response_model=SuccessResponse)
async def update_ingredient_endpoint(ingredient_id: UUID, payload: IngredientUpdate):
    """Updates an ingredient; only cost, SKU and active flag once a recipe uses it."""
    ingredient = await catalog_service.update_ingredient(ingredient_id, **payload.model_dump(exclude_unset=True))
    return SuccessResponse(data=_serialize(ingredient))


@router.post("/products", status_code=status.HTTP_201_CREATED, response_model=SuccessResponse)
async def create_product_endpoint(payload: ProductRequest):
    """Adds a sellable product to the business catalog."""
    product = await catalog_service.create_product(
        payload.business_id,
        payload.name,
        payload.price,
        category_id=payload.category_id,
    )
    return SuccessResponse(data=_serialize(product))


@router.patch("/products/{product_id}", response_model=SuccessResponse)
async def update_product_endpoint(product_id: UUID, payload: ProductUpdate):
    product = await catalog_service.update_product(product_id, **payload.model_dump(exclude_unset=True))
    return SuccessResponse(data=_serialize(product))


@router.post("/{item_type}/{item_id}/deactivate", response_model=SuccessResponse)
async def deactivate_endpoint(item_type: ItemType, item_id: UUID):
    """Soft-deactivates an ingredient or product (records are never deleted)."""
    item = await catalog_service.deactivate(item_type, item_id)
    log.info(f"{item_type.value} {item_id} deactivated via API.")
    return SuccessResponse(data=_serialize(item))


@router.post("/unit-conversions", status_code=status.HTTP_201_CREATED, response_model=SuccessResponse)
async def register_unit_conversion_endpoint(payload: UnitConversionRequest):
    conversion = await catalog_service.register_unit_conversion(
        payload.business_id, payload.from_unit, payload.to_unit, payload.factor
    )
    return SuccessResponse(data={
        "from_unit": conversion.from_unit,
        "to_unit": conversion.to_unit,
        "factor": str(conversion.factor),
    })
