"""API routes for customers, sales orders, invoices, POS checkout and returns."""
from fastapi import APIRouter, status, Depends, HTTPException
from typing import List, Annotated

from ...core.container import ERP, get_erp
from ..inventory.schemas import StockAdjustmentResult
from .schemas import (
    Customer,
    CustomerCreate,
    CustomerUpdate,
    Invoice,
    InvoiceStatusUpdate,
    POSCheckout,
    SalesOrder,
    SalesOrderCreate,
    SalesOrderStatusUpdate,
    SalesOrderUpdate,
    SalesReturnRequest,
)
from . import workflows

router = APIRouter(
    prefix="/sales",
    tags=["Sales"],
    responses={404: {"description": "Not found"}},
)


# --- Customer Endpoints ---
@router.get("/customers/", response_model=List[Customer], summary="List customers", tags=["Customers"])
async def list_customers(erp: Annotated[ERP, Depends(get_erp)]):
    return erp.customers.list_customers()


@router.post(
    "/customers/",
    response_model=Customer,
    status_code=status.HTTP_201_CREATED,
    summary="Create a customer",
    tags=["Customers"],
)
async def create_customer(customer_in: CustomerCreate, erp: Annotated[ERP, Depends(get_erp)]):
    return await erp.customers.create(customer_in)


@router.put("/customers/{customer_id}", response_model=Customer, summary="Update a customer", tags=["Customers"])
async def update_customer(customer_id: str, customer_in: CustomerUpdate, erp: Annotated[ERP, Depends(get_erp)]):
    return await erp.customers.update(customer_id, customer_in)


@router.delete(
    "/customers/{customer_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a customer",
    tags=["Customers"],
)
async def delete_customer(customer_id: str, erp: Annotated[ERP, Depends(get_erp)]):
    await erp.customers.delete(customer_id)
    return None


# --- Order Endpoints ---
@router.get("/orders/", response_model=List[SalesOrder], summary="List sales orders, newest first")
async def list_sales_orders(erp: Annotated[ERP, Depends(get_erp)]):
    return erp.sales.list_orders()


@router.post("/orders/", response_model=SalesOrder, status_code=status.HTTP_201_CREATED, summary="Create a sales order")
async def create_sales_order(order_in: SalesOrderCreate, erp: Annotated[ERP, Depends(get_erp)]):
    return await workflows.place_sales_order(erp.sales, erp.inventory, erp.financials, order_in)


@router.get("/orders/{order_id}", response_model=SalesOrder, summary="Get a specific sales order")
async def get_sales_order(order_id: str, erp: Annotated[ERP, Depends(get_erp)]):
    order = erp.sales.get_by_id(order_id)
    if order is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Sales order {order_id} not found")
    return order


@router.put("/orders/{order_id}", response_model=SalesOrder, summary="Update a sales order header")
async def update_sales_order(order_id: str, order_in: SalesOrderUpdate, erp: Annotated[ERP, Depends(get_erp)]):
    return await erp.sales.update(order_id, order_in)


@router.patch(
    "/orders/{order_id}/status",
    response_model=SalesOrder,
    summary="Change the status of a sales order, issuing stock on fulfilment",
)
async def update_sales_order_status(
    order_id: str, status_in: SalesOrderStatusUpdate, erp: Annotated[ERP, Depends(get_erp)]
):
    return await workflows.change_sales_order_status(
        erp.sales, erp.inventory, erp.financials, order_id, status_in.status
    )


@router.delete("/orders/{order_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete a sales order")
async def delete_sales_order(order_id: str, erp: Annotated[ERP, Depends(get_erp)]):
    await erp.sales.delete(order_id)
    return None


@router.post(
    "/orders/{order_id}/returns",
    response_model=List[StockAdjustmentResult],
    status_code=status.HTTP_201_CREATED,
    summary="Return items of an order to stock",
)
async def return_sales_order_items(
    order_id: str, return_in: SalesReturnRequest, erp: Annotated[ERP, Depends(get_erp)]
):
    return await workflows.process_sales_return(erp.sales, erp.inventory, order_id, return_in.items, return_in.notes)


@router.post("/pos/checkout", response_model=SalesOrder, status_code=status.HTTP_201_CREATED, summary="POS checkout")
async def pos_checkout(checkout_in: POSCheckout, erp: Annotated[ERP, Depends(get_erp)]):
    return await workflows.record_pos_sale(erp.sales, erp.inventory, erp.financials, checkout_in)


# --- Invoice Endpoints ---
@router.get("/invoices/", response_model=List[Invoice], summary="List invoices", tags=["Invoices"])
async def list_invoices(erp: Annotated[ERP, Depends(get_erp)]):
    return erp.sales.list_invoices()


@router.post(
    "/orders/{order_id}/invoice",
    response_model=Invoice,
    status_code=status.HTTP_201_CREATED,
    summary="Invoice a sales order",
    tags=["Invoices"],
)
async def create_invoice(order_id: str, erp: Annotated[ERP, Depends(get_erp)]):
    return await erp.sales.create_invoice_for_order(order_id)


@router.patch(
    "/invoices/{invoice_id}/status",
    response_model=Invoice,
    summary="Mark an invoice paid or cancelled",
    tags=["Invoices"],
)
async def update_invoice_status(
    invoice_id: str, status_in: InvoiceStatusUpdate, erp: Annotated[ERP, Depends(get_erp)]
):
    return await erp.sales.update_invoice_status(invoice_id, status_in.status)
