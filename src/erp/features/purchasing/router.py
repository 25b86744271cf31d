"""API routes for purchase orders."""
from fastapi import APIRouter, status, Depends, HTTPException, Response
from typing import List, Annotated

from ...core.container import ERP, get_erp
from .schemas import PurchaseOrder, PurchaseOrderCreate, PurchaseOrderUpdate, PurchaseOrderStatusUpdate

router = APIRouter(
    prefix="/purchasing",
    tags=["Purchasing"],
    responses={404: {"description": "Not found"}},
)


@router.get("/orders/", response_model=List[PurchaseOrder], summary="List purchase orders, newest first")
async def list_purchase_orders(erp: Annotated[ERP, Depends(get_erp)]):
    return erp.purchasing.list_orders()


@router.post(
    "/orders/",
    response_model=PurchaseOrder,
    status_code=status.HTTP_201_CREATED,
    summary="Create a purchase order, receive its stock and book the expense",
)
async def create_purchase_order(order_in: PurchaseOrderCreate, erp: Annotated[ERP, Depends(get_erp)]):
    return await erp.purchasing.create(
        order_in.supplier_id, order_in.items, order_in.notes, order_in.expected_delivery_date
    )


@router.get("/orders/{order_id}", response_model=PurchaseOrder, summary="Get a specific purchase order")
async def get_purchase_order(order_id: str, erp: Annotated[ERP, Depends(get_erp)]):
    order = erp.purchasing.get_by_id(order_id)
    if order is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Purchase order {order_id} not found")
    return order


@router.put("/orders/{order_id}", response_model=PurchaseOrder, summary="Replace the lines of a purchase order")
async def update_purchase_order(order_id: str, order_in: PurchaseOrderUpdate, erp: Annotated[ERP, Depends(get_erp)]):
    return await erp.purchasing.update(order_id, order_in.supplier_id, order_in.items, order_in.notes)


@router.patch(
    "/orders/{order_id}/status",
    response_model=PurchaseOrder,
    responses={204: {"description": "Order cancelled and removed"}},
    summary="Change the status of a purchase order",
)
async def update_purchase_order_status(
    order_id: str, status_in: PurchaseOrderStatusUpdate, erp: Annotated[ERP, Depends(get_erp)]
):
    order = await erp.purchasing.update_status(order_id, status_in.status)
    if order is None:
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    return order


@router.delete("/orders/{order_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete a purchase order")
async def delete_purchase_order(order_id: str, erp: Annotated[ERP, Depends(get_erp)]):
    await erp.purchasing.delete(order_id)
    return None
