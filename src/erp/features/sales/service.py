import asyncio
import datetime
import logging
import random
from collections import defaultdict
from decimal import Decimal
from typing import Callable, Iterable, Optional

from ...common.cache import EntityCache
from ...common.codecs import blank_to_none, or_default, to_decimal
from ...common.errors import (
    ConflictError,
    ExhaustedRetriesError,
    NotFoundError,
    StoreError,
    ValidationError,
)
from ...common.store import RemoteStore, Row
from ...core.config import ORDER_NUMBER_MAX_ATTEMPTS
from ..financials.service import FinancialTransactionRepository
from ..inventory.service import InventoryRepository
from .schemas import (
    INVOICE_STATUSES,
    SALES_ORDER_STATUSES,
    Customer,
    CustomerCreate,
    CustomerUpdate,
    Invoice,
    SaleItem,
    SalesOrder,
    SalesOrderCreate,
    SalesOrderUpdate,
)

logger = logging.getLogger(__name__)

CUSTOMERS_TABLE = "customers"
ORDERS_TABLE = "sales_orders"
LINES_TABLE = "sales_order_items"
INVOICES_TABLE = "invoices"

INCOME_CATEGORY = "sales"
WALK_IN_SENTINELS = ("", "walk-in")

_ORDER_TEXT_FIELDS = (
    "customer_name",
    "customer_email",
    "customer_phone",
    "shipping_address",
    "shipping_city",
    "shipping_postal_code",
    "delivery_instructions",
)


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def normalize_customer_id(customer_id: Optional[str]) -> Optional[str]:
    """Walk-in sales carry no customer: None, "" and "walk-in" all become None."""
    if customer_id is None or customer_id.strip().lower() in WALK_IN_SENTINELS:
        return None
    return customer_id.strip()


def decode_customer(row: Row) -> Customer:
    return Customer(
        id=str(row["id"]),
        name=or_default(row.get("name"), ""),
        telephone=or_default(row.get("telephone"), ""),
        address=or_default(row.get("address"), ""),
        email=or_default(row.get("email"), ""),
        created_at=row.get("created_at"),
    )


def decode_invoice(row: Row) -> Invoice:
    return Invoice(
        id=str(row["id"]),
        sales_order_id=str(row.get("sales_order_id") or ""),
        invoice_number=or_default(row.get("invoice_number"), ""),
        amount=to_decimal(row.get("amount")),
        status=row.get("status") or "pending",
        created_at=row.get("created_at"),
        paid_at=row.get("paid_at"),
    )


class CustomerRepository:
    def __init__(self, store: RemoteStore):
        self.store = store
        self.customers: EntityCache[Customer] = EntityCache()
        self.lock = asyncio.Lock()

    def get_by_id(self, customer_id: str) -> Optional[Customer]:
        return self.customers.get(customer_id)

    def list_customers(self) -> list[Customer]:
        return list(self.customers)

    async def fetch_all(self) -> list[Customer]:
        customers = [decode_customer(row) for row in await self.store.select(CUSTOMERS_TABLE, order_by=("name",))]
        self.customers.replace_all(customers)
        return customers

    async def create(self, customer_in: CustomerCreate) -> Customer:
        name = customer_in.name.strip()
        if not name:
            raise ValidationError("Customer name is required")
        values = {key: or_default(value, "") for key, value in customer_in.model_dump().items()}
        values["name"] = name
        async with self.lock:
            customer = decode_customer(await self.store.insert(CUSTOMERS_TABLE, values))
            self.customers.append(customer)
        return customer

    async def update(self, customer_id: str, customer_in: CustomerUpdate) -> Customer:
        changes = {key: or_default(value, "") for key, value in customer_in.model_dump(exclude_unset=True).items()}
        if not changes:
            raise ValidationError("No fields for update")
        async with self.lock:
            rows = await self.store.update(CUSTOMERS_TABLE, changes, id=customer_id)
            if not rows:
                raise NotFoundError(f"Customer {customer_id} not found")
            customer = decode_customer(rows[0])
            self.customers.replace(customer)
        return customer

    async def delete(self, customer_id: str) -> None:
        async with self.lock:
            if not await self.store.delete(CUSTOMERS_TABLE, id=customer_id):
                raise NotFoundError(f"Customer {customer_id} not found")
            self.customers.remove(customer_id)


class SalesOrderRepository:
    """Sales orders, their lines and invoices.

    Stock is not touched here: issuing stock for completed or delivered
    orders is done by the callers in `workflows`.
    """

    def __init__(
        self,
        store: RemoteStore,
        inventory: InventoryRepository,
        customers: CustomerRepository,
        financials: FinancialTransactionRepository,
        rng: Optional[random.Random] = None,
        max_attempts: int = ORDER_NUMBER_MAX_ATTEMPTS,
        now: Callable[[], datetime.datetime] = _utcnow,
    ):
        self.store = store
        self.inventory = inventory
        self.customers = customers
        self.financials = financials
        self.rng = rng or random.Random()
        self.max_attempts = max_attempts
        self.now = now
        self.orders: EntityCache[SalesOrder] = EntityCache()
        self.invoices: EntityCache[Invoice] = EntityCache()
        self.lock = asyncio.Lock()

    # --- decoding ---

    def _decode_line(self, row: Row) -> SaleItem:
        product_id = str(row.get("product_id") or "")
        product = self.inventory.get_by_id(row.get("variant_item_id") or product_id)
        return SaleItem(
            id=str(row["id"]),
            product_id=product_id,
            variant_item_id=row.get("variant_item_id"),
            name=product.name if product else "Unknown Item",
            quantity=to_decimal(row.get("quantity")),
            unit_price=to_decimal(row.get("unit_price")),
            discount=to_decimal(row.get("discount")),
            total_price=to_decimal(row.get("total_price")),
            returned_quantity=to_decimal(row.get("returned_quantity")),
        )

    def _decode_order(self, row: Row, items: Iterable[SaleItem]) -> SalesOrder:
        customer_id = row.get("customer_id")
        customer = self.customers.get_by_id(customer_id) if customer_id else None
        fallbacks = {
            "customer_name": customer.name if customer else "",
            "customer_email": customer.email if customer else "",
            "customer_phone": customer.telephone if customer else "",
            "shipping_address": customer.address if customer else "",
        }
        contact = {key: row.get(key) or fallbacks.get(key, "") for key in _ORDER_TEXT_FIELDS}
        return SalesOrder(
            id=str(row["id"]),
            order_number=or_default(row.get("order_number"), ""),
            customer_id=customer_id,
            customer=customer,
            items=list(items),
            status=row.get("status") or "pending",
            order_date=row.get("order_date"),
            total_amount=to_decimal(row.get("total_amount")),
            advance_payment_amount=to_decimal(row.get("advance_payment_amount")),
            remaining_balance=to_decimal(row.get("remaining_balance")),
            payment_method=row.get("payment_method") or "cash",
            notes=or_default(row.get("notes"), ""),
            order_source=row.get("order_source") or "manual",
            stock_issued_at=row.get("stock_issued_at"),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
            **contact,
        )

    # --- queries ---

    def get_by_id(self, order_id: str) -> Optional[SalesOrder]:
        return self.orders.get(order_id)

    def list_orders(self) -> list[SalesOrder]:
        return list(self.orders)

    def list_invoices(self) -> list[Invoice]:
        return list(self.invoices)

    def invoice_for_order(self, order_id: str) -> Optional[Invoice]:
        return next((invoice for invoice in self.invoices if invoice.sales_order_id == order_id), None)

    async def fetch_all(self) -> list[SalesOrder]:
        rows = await self.store.select(ORDERS_TABLE, order_by=("-created_at",))
        line_rows = await self.store.select(LINES_TABLE, sales_order_id__in=[row["id"] for row in rows])
        lines: dict[str, list[SaleItem]] = defaultdict(list)
        for line in line_rows:
            lines[line["sales_order_id"]].append(self._decode_line(line))
        orders = [self._decode_order(row, lines.get(row["id"], [])) for row in rows]
        self.orders.replace_all(orders)
        await self.fetch_invoices()
        return orders

    async def fetch_invoices(self) -> list[Invoice]:
        invoices = [decode_invoice(row) for row in await self.store.select(INVOICES_TABLE, order_by=("-created_at",))]
        self.invoices.replace_all(invoices)
        return invoices

    # --- order numbers ---

    async def generate_unique_order_number(self) -> str:
        """
        Draws random 8-digit order numbers until one is unused.

        Each candidate is probed against the store; a failed probe counts as a
        collision. There is no guarantee against another client taking the
        same number between the probe and the insert.

        Returns:
            An order number not present in the store or the local snapshot.

        Raises:
            ExhaustedRetriesError: after `max_attempts` collisions.
        """
        for attempt in range(1, self.max_attempts + 1):
            candidate = str(self.rng.randint(10_000_000, 99_999_999))
            try:
                taken = await self.store.count(ORDERS_TABLE, order_number=candidate)
            except StoreError as e:
                logger.warning(f"Order number probe {attempt}/{self.max_attempts} failed: {e}")
                continue
            if taken == 0 and all(order.order_number != candidate for order in self.orders):
                return candidate
        raise ExhaustedRetriesError(
            f"Failed to generate a unique order number after {self.max_attempts} attempts"
        )

    # --- orders ---

    def _resolve_customer(self, customer_id: Optional[str]) -> Optional[str]:
        customer_id = normalize_customer_id(customer_id)
        if customer_id is not None and self.customers.get_by_id(customer_id) is None:
            raise NotFoundError(f"Customer {customer_id} not found")
        return customer_id

    def _price_lines(self, order_in: SalesOrderCreate) -> list[Row]:
        if not order_in.items:
            raise ValidationError("A sales order needs at least one item")
        priced = []
        for line in order_in.items:
            product = self.inventory.get_by_id(line.variant_item_id or line.item_id)
            if product is None:
                raise NotFoundError(f"Inventory item {line.variant_item_id or line.item_id} not found")
            quantity = to_decimal(line.quantity)
            unit_price = product.effective_price if line.unit_price is None else to_decimal(line.unit_price)
            discount = to_decimal(line.discount)
            total = quantity * unit_price - discount
            if total < 0:
                raise ValidationError(f"Discount on '{product.name}' exceeds the line amount")
            priced.append(
                {
                    "product_id": line.item_id,
                    "variant_item_id": line.variant_item_id,
                    "quantity": quantity,
                    "unit_price": unit_price,
                    "discount": discount,
                    "total_price": total,
                }
            )
        return priced

    async def create(self, order_in: SalesOrderCreate) -> SalesOrder:
        """
        Creates a sales order with its lines; completed orders are invoiced at once.

        Any failing insert aborts the creation. Lines already written are not
        removed.

        Args:
            order_in: Customer, lines, payment and delivery details.

        Returns:
            The created order.
        """
        if order_in.status not in SALES_ORDER_STATUSES:
            raise ValidationError(f"Unknown sales order status '{order_in.status}'")
        async with self.lock:
            customer_id = self._resolve_customer(order_in.customer_id)
            priced = self._price_lines(order_in)
            total = sum((line["total_price"] for line in priced), Decimal("0"))
            advance = to_decimal(order_in.advance_payment_amount)
            if advance > total:
                raise ValidationError("Advance payment cannot exceed the order total")

            order_number = await self.generate_unique_order_number()
            values = {
                "order_number": order_number,
                "customer_id": customer_id,
                "status": order_in.status,
                "order_date": self.now(),
                "total_amount": total,
                "advance_payment_amount": advance,
                "remaining_balance": total - advance,
                "payment_method": order_in.payment_method,
                "notes": order_in.notes or "",
                "order_source": order_in.order_source or "manual",
            }
            values.update({key: blank_to_none(getattr(order_in, key)) for key in _ORDER_TEXT_FIELDS})
            header = await self.store.insert(ORDERS_TABLE, values)
            items = []
            for line in priced:
                row = await self.store.insert(LINES_TABLE, {"sales_order_id": header["id"], **line})
                items.append(self._decode_line(row))
            order = self._decode_order(header, items)
            self.orders.prepend(order)

            if order.status == "completed":
                await self._create_invoice(order)
        logger.info(f"Created sales order {order_number} ({len(items)} lines, total {total})")
        return order

    async def update(self, order_id: str, order_in: SalesOrderUpdate) -> SalesOrder:
        """Partial update of an order header; the lines and the status are left as they are."""
        changes = order_in.model_dump(exclude_unset=True)
        if not changes:
            raise ValidationError("No fields for update")
        async with self.lock:
            current = self.get_by_id(order_id)
            if current is None:
                raise NotFoundError(f"Sales order {order_id} not found")
            if "advance_payment_amount" in changes:
                advance = to_decimal(changes["advance_payment_amount"])
                if advance > current.total_amount:
                    raise ValidationError("Advance payment cannot exceed the order total")
                changes["remaining_balance"] = current.total_amount - advance
            return await self._write_header(current, changes)

    async def set_status(self, order_id: str, status: str, stock_issued: bool = False) -> SalesOrder:
        """Store a new status. Stock and income are the caller's job, see `workflows`.

        `stock_issued` stamps `stock_issued_at`, marking that the order's lines
        were taken out of stock.
        """
        if status not in SALES_ORDER_STATUSES:
            raise ValidationError(f"Unknown sales order status '{status}'")
        async with self.lock:
            current = self.get_by_id(order_id)
            if current is None:
                raise NotFoundError(f"Sales order {order_id} not found")
            changes = {"status": status}
            if stock_issued:
                changes["stock_issued_at"] = self.now()
            return await self._write_header(current, changes)

    async def _write_header(self, current: SalesOrder, changes: Row) -> SalesOrder:
        rows = await self.store.update(ORDERS_TABLE, changes, id=current.id)
        if not rows:
            raise NotFoundError(f"Sales order {current.id} not found")
        order = self._decode_order(rows[0], current.items)
        self.orders.replace(order)
        return order

    async def record_returned(self, order_id: str, item_id: str, quantity: Decimal) -> SalesOrder:
        """
        Books `quantity` of `item_id` as returned on the order's lines.

        Lines for the same item are filled in order, each up to its own
        sold quantity.

        Raises:
            ValidationError: the order has less of the item left to return.
        """
        async with self.lock:
            order = self.get_by_id(order_id)
            if order is None:
                raise NotFoundError(f"Sales order {order_id} not found")
            open_quantity = sum(
                (line.quantity - line.returned_quantity for line in order.items if line.stock_item_id == item_id),
                Decimal("0"),
            )
            if quantity > open_quantity:
                raise ValidationError(f"Only {open_quantity} of item {item_id} can still be returned")

            remaining = quantity
            items = []
            for line in order.items:
                take = min(remaining, line.quantity - line.returned_quantity) if line.stock_item_id == item_id else 0
                if take > 0:
                    rows = await self.store.update(
                        LINES_TABLE, {"returned_quantity": line.returned_quantity + take}, id=line.id
                    )
                    line = self._decode_line(rows[0])
                    remaining -= take
                items.append(line)
            order = order.model_copy(update={"items": items})
            self.orders.replace(order)
        return order

    async def delete(self, order_id: str) -> None:
        """Remove an order with its lines, invoices and booked income."""
        async with self.lock:
            order = self.get_by_id(order_id)
            if order is None:
                raise NotFoundError(f"Sales order {order_id} not found")
            await self.store.delete(LINES_TABLE, sales_order_id=order_id)
            try:
                await self.financials.delete_for_reference(order.order_number, INCOME_CATEGORY)
            except StoreError as e:
                logger.warning(f"Could not remove the income booked for {order.order_number}: {e}")
            await self.store.delete(INVOICES_TABLE, sales_order_id=order_id)
            await self.store.delete(ORDERS_TABLE, id=order_id)
            self.orders.remove(order_id)
            for invoice in [i for i in self.invoices if i.sales_order_id == order_id]:
                self.invoices.remove(invoice.id)
        logger.info(f"Deleted sales order {order.order_number}")

    # --- invoices ---

    def generate_invoice_number(self) -> str:
        """`INV-<YYYYMM><4 random digits>`. Not checked for collisions."""
        return f"INV-{self.now():%Y%m}{self.rng.randint(1000, 9999)}"

    async def _create_invoice(self, order: SalesOrder) -> Invoice:
        try:
            row = await self.store.insert(
                INVOICES_TABLE,
                {
                    "sales_order_id": order.id,
                    "invoice_number": self.generate_invoice_number(),
                    "amount": order.total_amount,
                    "status": "pending",
                },
            )
        except ConflictError as e:
            raise ConflictError(f"Order {order.order_number} is already invoiced") from e
        invoice = decode_invoice(row)
        self.invoices.prepend(invoice)
        logger.info(f"Invoiced order {order.order_number} as {invoice.invoice_number}")
        return invoice

    async def create_invoice_for_order(self, order_id: str) -> Invoice:
        async with self.lock:
            order = self.get_by_id(order_id)
            if order is None:
                raise NotFoundError(f"Sales order {order_id} not found")
            return await self._create_invoice(order)

    async def update_invoice_status(self, invoice_id: str, status: str) -> Invoice:
        if status not in INVOICE_STATUSES:
            raise ValidationError(f"Unknown invoice status '{status}'")
        async with self.lock:
            rows = await self.store.update(
                INVOICES_TABLE,
                {"status": status, "paid_at": self.now() if status == "paid" else None},
                id=invoice_id,
            )
            if not rows:
                raise NotFoundError(f"Invoice {invoice_id} not found")
            invoice = decode_invoice(rows[0])
            self.invoices.replace(invoice)
        return invoice
