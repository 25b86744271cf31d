"""Sales actions that span several repositories.

The sales repository only writes orders and invoices. Moving stock and
booking income when an order is fulfilled happens here, in the order:
stock issue, order status, income.
"""

import logging
from decimal import Decimal
from typing import Optional

from ...common.errors import ERPError, InvalidOperationError, NotFoundError, StoreError, ValidationError
from ..financials.schemas import FinancialTransaction
from ..financials.service import FinancialTransactionRepository
from ..inventory.schemas import StockAdjustmentResult
from ..inventory.service import InventoryRepository
from .schemas import SALES_ORDER_STATUSES, POSCheckout, ReturnLineInput, SalesOrder, SalesOrderCreate
from .service import INCOME_CATEGORY, SalesOrderRepository

logger = logging.getLogger(__name__)

# Entering one of these takes the ordered quantities out of stock.
STOCK_ISSUING_STATUSES = ("completed", "delivered", "Delivered")


async def issue_stock(inventory: InventoryRepository, order: SalesOrder) -> list[StockAdjustmentResult]:
    """Take every line of `order` out of stock.

    A line that cannot be issued (unknown item, not enough stock, store
    failure) is logged and skipped; the remaining lines are still issued.
    """
    issued = []
    for line in order.items:
        try:
            issued.append(
                await inventory.adjust_stock(
                    line.stock_item_id, -line.quantity, "sale", notes=f"Sales order {order.order_number}"
                )
            )
        except ERPError as e:
            logger.error(f"Could not issue {line.quantity} x {line.name} for order {order.order_number}: {e.message}")
    return issued


def _income_description(order: SalesOrder) -> str:
    if order.order_source == "pos":
        return f"POS Sale #{order.order_number}"
    return f"Sales Order {order.order_number}"


async def book_sale_income(
    financials: FinancialTransactionRepository, order: SalesOrder, description: Optional[str] = None
) -> Optional[FinancialTransaction]:
    try:
        return await financials.upsert_for_reference(
            order.order_number,
            INCOME_CATEGORY,
            "income",
            order.total_amount,
            description or _income_description(order),
            payment_method=order.payment_method,
        )
    except StoreError as e:
        logger.warning(f"Could not book the income for order {order.order_number}: {e}")
        return None


async def change_sales_order_status(
    sales: SalesOrderRepository,
    inventory: InventoryRepository,
    financials: FinancialTransactionRepository,
    order_id: str,
    status: str,
) -> SalesOrder:
    """
    Moves an order to `status`, issuing stock when it is first fulfilled.

    Stock and income are only touched the first time the order reaches an
    issuing status. The order keeps `stock_issued_at` from then on, so
    re-saving it or passing through other statuses never issues stock twice.
    This is the only path that changes the status of an existing order.

    Args:
        sales: The sales order repository.
        inventory: Used to take the sold quantities out of stock.
        financials: Used to book the sale as income.
        order_id: Id of the order.
        status: The new status.

    Returns:
        The updated order.
    """
    order = sales.get_by_id(order_id)
    if order is None:
        raise NotFoundError(f"Sales order {order_id} not found")
    if status not in SALES_ORDER_STATUSES:
        raise ValidationError(f"Unknown sales order status '{status}'")

    fulfils = status in STOCK_ISSUING_STATUSES and order.stock_issued_at is None
    if fulfils:
        await issue_stock(inventory, order)
    updated = await sales.set_status(order_id, status, stock_issued=fulfils)
    if fulfils:
        await book_sale_income(financials, updated)
    return updated


async def place_sales_order(
    sales: SalesOrderRepository,
    inventory: InventoryRepository,
    financials: FinancialTransactionRepository,
    order_in: SalesOrderCreate,
) -> SalesOrder:
    """Create an order; one created already fulfilled has its stock issued and income booked."""
    order = await sales.create(order_in)
    if order.status in STOCK_ISSUING_STATUSES:
        await issue_stock(inventory, order)
        order = await sales.set_status(order.id, order.status, stock_issued=True)
        await book_sale_income(financials, order)
    return order


async def record_pos_sale(
    sales: SalesOrderRepository,
    inventory: InventoryRepository,
    financials: FinancialTransactionRepository,
    checkout: POSCheckout,
) -> SalesOrder:
    """Point-of-sale checkout: a completed (and invoiced) order, stock issue and income."""
    order_in = SalesOrderCreate(
        customer_id=checkout.customer_id,
        items=checkout.items,
        payment_method=checkout.payment_method,
        notes=checkout.notes,
        status="completed",
        order_source="pos",
    )
    return await place_sales_order(sales, inventory, financials, order_in)


async def process_sales_return(
    sales: SalesOrderRepository,
    inventory: InventoryRepository,
    order_id: str,
    lines: list[ReturnLineInput],
    notes: Optional[str] = None,
) -> list[StockAdjustmentResult]:
    """Put returned quantities back into stock.

    Only orders whose stock was issued accept returns. Requested quantities
    are summed per item and checked against what was sold less what earlier
    returns already took back, before any stock moves.
    """
    order = sales.get_by_id(order_id)
    if order is None:
        raise NotFoundError(f"Sales order {order_id} not found")
    if order.stock_issued_at is None:
        raise InvalidOperationError(f"Order {order.order_number} has nothing taken out of stock to return")

    returnable: dict[str, Decimal] = {}
    for line in order.items:
        returnable[line.stock_item_id] = (
            returnable.get(line.stock_item_id, Decimal("0")) + line.quantity - line.returned_quantity
        )
    requested: dict[str, Decimal] = {}
    for line in lines:
        if line.item_id not in returnable:
            raise ValidationError(f"Item {line.item_id} is not part of order {order.order_number}")
        requested[line.item_id] = requested.get(line.item_id, Decimal("0")) + line.quantity
    for item_id, quantity in requested.items():
        if quantity > returnable[item_id]:
            raise ValidationError(
                f"Cannot return {quantity} of item {item_id}, only {returnable[item_id]} left to return"
            )

    note = f"Return for order {order.order_number}"
    if notes:
        note = f"{note}: {notes}"
    results = []
    for item_id, quantity in requested.items():
        results.append(await inventory.increase_stock(item_id, quantity, "return", note))
        await sales.record_returned(order.id, item_id, quantity)
    return results
