"""API routes for inventory items, stock adjustments and item links."""
from fastapi import APIRouter, status, Query, Depends, HTTPException
from typing import List, Annotated

from ...core.container import ERP, get_erp
from .schemas import (
    InventoryItem,
    InventoryItemCreate,
    InventoryItemUpdate,
    InventoryAdjustment,
    ItemLink,
    ItemLinkCreate,
    ItemLinkUpdate,
    LinkedItemInfo,
    StockAdjustmentRequest,
    StockAdjustmentResult,
    StockLevelRequest,
)

router = APIRouter(
    prefix="/inventory",
    tags=["Inventory"],
    responses={404: {"description": "Not found"}},
)


@router.get(
    "/items/",
    response_model=List[InventoryItem],
    summary="List inventory items",
)
async def list_inventory_items(
    erp: Annotated[ERP, Depends(get_erp)],
    include_variants: bool = Query(True, description="Include variant rows"),
    low_stock: bool = Query(False, description="Only items at or below their reorder level"),
):
    if low_stock:
        return erp.inventory.low_stock_items()
    return erp.inventory.list_items(include_variants=include_variants)


@router.post(
    "/items/",
    response_model=InventoryItem,
    status_code=status.HTTP_201_CREATED,
    summary="Create a new inventory item",
)
async def create_inventory_item(item_in: InventoryItemCreate, erp: Annotated[ERP, Depends(get_erp)]):
    return await erp.inventory.create(item_in)


@router.get(
    "/items/{item_id}",
    response_model=InventoryItem,
    summary="Get a specific inventory item",
)
async def get_inventory_item(item_id: str, erp: Annotated[ERP, Depends(get_erp)]):
    item = erp.inventory.get_by_id(item_id)
    if item is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Inventory item {item_id} not found")
    return item


@router.get(
    "/items/{item_id}/variants",
    response_model=List[InventoryItem],
    summary="List the variants of an item",
)
async def list_item_variants(item_id: str, erp: Annotated[ERP, Depends(get_erp)]):
    return erp.inventory.variants_of(item_id)


@router.get("/items/{item_id}/stock", summary="Stock of an item, summed over its variants")
async def get_aggregate_stock(item_id: str, erp: Annotated[ERP, Depends(get_erp)]):
    return {"item_id": item_id, "stock": erp.inventory.aggregate_stock(item_id)}


@router.put(
    "/items/{item_id}",
    response_model=InventoryItem,
    summary="Update an inventory item",
)
async def update_inventory_item(item_id: str, item_in: InventoryItemUpdate, erp: Annotated[ERP, Depends(get_erp)]):
    return await erp.inventory.update(item_id, item_in)


@router.delete(
    "/items/{item_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete an inventory item",
)
async def delete_inventory_item(item_id: str, erp: Annotated[ERP, Depends(get_erp)]):
    await erp.inventory.delete(item_id)
    return None


# --- Stock ---
@router.post(
    "/items/{item_id}/adjustments",
    response_model=StockAdjustmentResult,
    status_code=status.HTTP_201_CREATED,
    summary="Adjust the stock of an item",
)
async def adjust_stock(item_id: str, adjustment_in: StockAdjustmentRequest, erp: Annotated[ERP, Depends(get_erp)]):
    return await erp.inventory.adjust_stock(
        item_id, adjustment_in.quantity_delta, adjustment_in.reason, adjustment_in.notes
    )


@router.put("/items/{item_id}/stock", summary="Set the stock of an item directly")
async def set_stock_level(item_id: str, level_in: StockLevelRequest, erp: Annotated[ERP, Depends(get_erp)]):
    previous, new = await erp.inventory.set_stock(item_id, level_in.new_quantity)
    return {"item_id": item_id, "previous_quantity": previous, "new_quantity": new}


@router.get(
    "/adjustments/",
    response_model=List[InventoryAdjustment],
    summary="List stock adjustments, newest first",
)
async def list_adjustments(erp: Annotated[ERP, Depends(get_erp)]):
    return list(erp.inventory.adjustments)


@router.post("/adjustments/flush", summary="Retry audit rows that could not be written")
async def flush_adjustments(erp: Annotated[ERP, Depends(get_erp)]):
    written = await erp.inventory.flush_audit()
    return {"written": written, "pending": len(erp.inventory.audit.pending)}


# --- Item links ---
@router.post(
    "/links/",
    response_model=ItemLink,
    status_code=status.HTTP_201_CREATED,
    summary="Link a material to a product",
)
async def create_item_link(link_in: ItemLinkCreate, erp: Annotated[ERP, Depends(get_erp)]):
    return await erp.inventory.add_item_link(
        link_in.parent_item_id, link_in.child_item_id, link_in.quantity_required, link_in.notes
    )


@router.put("/links/{link_id}", response_model=ItemLink, summary="Update an item link")
async def update_item_link(link_id: str, link_in: ItemLinkUpdate, erp: Annotated[ERP, Depends(get_erp)]):
    return await erp.inventory.update_item_link(link_id, link_in)


@router.delete("/links/{link_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Remove an item link")
async def delete_item_link(link_id: str, erp: Annotated[ERP, Depends(get_erp)]):
    await erp.inventory.remove_item_link(link_id)
    return None


@router.get(
    "/items/{item_id}/links",
    response_model=List[LinkedItemInfo],
    summary="Items linked to an item, in both directions",
)
async def get_linked_items(item_id: str, erp: Annotated[ERP, Depends(get_erp)]):
    return erp.inventory.get_linked_items(item_id)


@router.get("/items/{item_id}/materials", response_model=List[InventoryItem], summary="Materials used by a product")
async def get_materials_for_product(item_id: str, erp: Annotated[ERP, Depends(get_erp)]):
    return erp.inventory.get_materials_for_product(item_id)


@router.get("/items/{item_id}/products", response_model=List[InventoryItem], summary="Products using a material")
async def get_products_using_material(item_id: str, erp: Annotated[ERP, Depends(get_erp)]):
    return erp.inventory.get_products_using_material(item_id)
