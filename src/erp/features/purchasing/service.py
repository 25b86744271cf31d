"""Purchase orders and the stock/expense writes that follow them.

A purchase order adds its quantities to stock as soon as it is created and
books one `purchases` expense per order number. Edits move stock by the
difference between the old and new lines only; cancelling reverses the stock
and removes the order entirely.
"""

import asyncio
import datetime
import logging
from collections import defaultdict
from decimal import Decimal
from typing import Callable, Iterable, Optional

from ...common.cache import EntityCache
from ...common.codecs import or_default, to_decimal
from ...common.errors import NotFoundError, StoreError, ValidationError
from ...common.store import RemoteStore, Row
from ...core.config import BUSINESS_ID
from ..financials.service import FinancialTransactionRepository
from ..inventory.procedures import StockLedger
from ..inventory.service import InventoryRepository
from ..suppliers.service import SupplierRepository
from .line_writers import LINES_TABLE, PurchaseLineWriter, ResolvedLine
from .schemas import PurchaseItem, PurchaseLineInput, PurchaseOrder

logger = logging.getLogger(__name__)

ORDERS_TABLE = "purchase_orders"

EXPENSE_CATEGORY = "purchases"
PURCHASE_STATUSES = ("draft", "sent", "confirmed", "received", "completed", "cancelled")

StockKey = tuple[str, Optional[str]]


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class PurchaseOrderRepository:
    def __init__(
        self,
        store: RemoteStore,
        inventory: InventoryRepository,
        suppliers: SupplierRepository,
        financials: FinancialTransactionRepository,
        business_id: str = BUSINESS_ID,
        ledger: Optional[StockLedger] = None,
        line_writer: Optional[PurchaseLineWriter] = None,
        now: Callable[[], datetime.datetime] = _utcnow,
    ):
        self.store = store
        self.inventory = inventory
        self.suppliers = suppliers
        self.financials = financials
        self.business_id = business_id
        self.ledger = ledger or inventory.ledger
        self.line_writer = line_writer or PurchaseLineWriter(store)
        self.now = now
        self.orders: EntityCache[PurchaseOrder] = EntityCache()
        self.lock = asyncio.Lock()

    # --- decoding ---

    def _decode_line(self, row: Row) -> PurchaseItem:
        item_id = row.get("item_id")
        item = self.inventory.get_by_id(item_id) if item_id else None
        return PurchaseItem(
            id=str(row["id"]),
            item_id=item_id,
            variant_item_id=row.get("variant_item_id"),
            name=row.get("name") or (item.name if item else ""),
            quantity=to_decimal(row.get("quantity")),
            unit_cost=to_decimal(row.get("unit_cost")),
            total_cost=to_decimal(row.get("total_cost")),
            received_quantity=to_decimal(row.get("received_quantity")),
        )

    def _decode_order(self, row: Row, line_rows: Iterable[Row]) -> PurchaseOrder:
        supplier_id = str(row.get("supplier_id") or "")
        return PurchaseOrder(
            id=str(row["id"]),
            order_number=or_default(row.get("order_number"), ""),
            supplier_id=supplier_id,
            supplier=self.suppliers.get_by_id(supplier_id),
            items=[self._decode_line(line) for line in line_rows],
            total_amount=to_decimal(row.get("total_amount")),
            status=row.get("status") or "draft",
            expected_delivery_date=row.get("expected_delivery_date"),
            notes=or_default(row.get("notes"), ""),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )

    # --- queries ---

    def get_by_id(self, order_id: str) -> Optional[PurchaseOrder]:
        return self.orders.get(order_id)

    def list_orders(self) -> list[PurchaseOrder]:
        return list(self.orders)

    def generate_order_number(self) -> str:
        """`PO-<year>-<last six digits of the millisecond clock>`. Not checked for collisions."""
        now = self.now()
        millis = int(now.timestamp() * 1000)
        return f"PO-{now.year}-{str(millis)[-6:]}"

    async def fetch_all(self) -> list[PurchaseOrder]:
        rows = await self.store.select(ORDERS_TABLE, order_by=("-created_at",), business_id=self.business_id)
        try:
            line_rows = await self.store.select(LINES_TABLE, purchase_order_id__in=[row["id"] for row in rows])
        except StoreError as e:
            logger.warning(f"Could not load purchase order lines, showing orders without lines: {e}")
            line_rows = []
        lines_by_order: dict[str, list[Row]] = defaultdict(list)
        for line in line_rows:
            lines_by_order[line["purchase_order_id"]].append(line)
        orders = [self._decode_order(row, lines_by_order.get(row["id"], [])) for row in rows]
        self.orders.replace_all(orders)
        return orders

    async def _load_lines(self, order_id: str) -> list[Row]:
        return await self.store.select(LINES_TABLE, purchase_order_id=order_id)

    async def _load_header(self, order_id: str) -> Row:
        rows = await self.store.select(ORDERS_TABLE, id=order_id)
        if not rows:
            raise NotFoundError(f"Purchase order {order_id} not found")
        return rows[0]

    # --- line resolution ---

    def _resolve_line(self, line: PurchaseLineInput) -> ResolvedLine:
        if line.item_id:
            item = self.inventory.get_by_id(line.item_id)
            if item is None:
                raise NotFoundError(f"Inventory item {line.item_id} not found")
        elif line.name and line.name.strip():
            # Legacy callers only know the item's name.
            item = self.inventory.find_by_name(line.name)
        else:
            raise ValidationError("Each purchase line needs an item id or a name")
        return ResolvedLine(
            name=(line.name or "").strip() or (item.name if item else ""),
            quantity=to_decimal(line.quantity),
            unit_cost=to_decimal(line.unit_cost),
            item_id=item.id if item else None,
            variant_item_id=line.variant_item_id,
            variant_name=line.variant_name,
        )

    def _resolve_lines(self, lines: list[PurchaseLineInput]) -> list[ResolvedLine]:
        if not lines:
            raise ValidationError("A purchase order needs at least one line")
        return [self._resolve_line(line) for line in lines]

    def _require_supplier(self, supplier_id: str) -> None:
        if self.suppliers.get_by_id(supplier_id) is None:
            raise NotFoundError(f"Supplier {supplier_id} not found")

    # --- side effects ---

    async def _record_stock(self, key: StockKey, quantity: Decimal, order_id: str, reference_type: str,
                            notes: str, variant_name: Optional[str] = None) -> None:
        item_id, variant_item_id = key
        await self.ledger.record(
            item_id,
            quantity,
            "purchase_order",
            variant_item_id=variant_item_id,
            variant_name=variant_name,
            reference_id=order_id,
            reference_type=reference_type,
            notes=notes,
        )

    async def _book_expense(self, order_number: str, total: Decimal) -> None:
        try:
            await self.financials.upsert_for_reference(
                order_number,
                EXPENSE_CATEGORY,
                "expense",
                total,
                f"Purchase Order {order_number}",
                payment_method="manual",
            )
        except StoreError as e:
            logger.warning(f"Could not book the expense for {order_number}: {e}")

    async def _refresh_stock(self, keys: Iterable[StockKey]) -> None:
        ids = {item_id for key in keys for item_id in key if item_id}
        await self.inventory.refresh_items(ids)

    # --- workflows ---

    async def create(
        self,
        supplier_id: str,
        lines: list[PurchaseLineInput],
        notes: Optional[str] = None,
        expected_delivery_date: Optional[datetime.date] = None,
    ) -> PurchaseOrder:
        """
        Creates a purchase order, adds its quantities to stock and books the expense.

        Args:
            supplier_id: Id of the supplier the goods come from.
            lines: Ordered lines; line totals are recomputed from quantity and unit cost.
            notes: Free text shown on the order.
            expected_delivery_date: Optional delivery date.

        Returns:
            The assembled order with its supplier and persisted lines.
        """
        async with self.lock:
            self._require_supplier(supplier_id)
            resolved = self._resolve_lines(lines)
            total = sum((line.total_cost for line in resolved), Decimal("0"))
            order_number = self.generate_order_number()

            header = await self.store.insert(
                ORDERS_TABLE,
                {
                    "business_id": self.business_id,
                    "order_number": order_number,
                    "supplier_id": supplier_id,
                    "total_amount": total,
                    "status": "draft",
                    "expected_delivery_date": expected_delivery_date,
                    "notes": notes,
                },
            )
            line_rows = [await self.line_writer.write(header["id"], line) for line in resolved]
            order = self._decode_order(header, line_rows)
            self.orders.prepend(order)

            linked = [line for line in resolved if line.item_id]
            for line in linked:
                await self._record_stock(
                    line.stock_key, line.quantity, order.id, "purchase_order",
                    f"Purchase order received: {order_number}", variant_name=line.variant_name,
                )
            await self._refresh_stock(line.stock_key for line in linked)
            await self._book_expense(order_number, total)

        logger.info(f"Created purchase order {order_number} ({len(resolved)} lines, total {total})")
        return order

    async def update(
        self, order_id: str, supplier_id: str, lines: list[PurchaseLineInput], notes: Optional[str] = None
    ) -> PurchaseOrder:
        """
        Replaces the supplier, lines and notes of an order.

        Stock moves by the per-item difference between the previous and the
        new quantities, so quantities already applied are not counted twice.
        """
        async with self.lock:
            self._require_supplier(supplier_id)
            resolved = self._resolve_lines(lines)
            total = sum((line.total_cost for line in resolved), Decimal("0"))

            previous_lines = await self._load_lines(order_id)
            headers = await self.store.update(
                ORDERS_TABLE, {"supplier_id": supplier_id, "total_amount": total, "notes": notes}, id=order_id
            )
            if not headers:
                raise NotFoundError(f"Purchase order {order_id} not found")
            header = headers[0]

            await self.store.delete(LINES_TABLE, purchase_order_id=order_id)
            line_rows = [await self.line_writer.write(order_id, line) for line in resolved]
            order = self._decode_order(header, line_rows)
            self.orders.replace(order)

            before: dict[StockKey, Decimal] = defaultdict(Decimal)
            for row in previous_lines:
                if row.get("item_id"):
                    before[(row["item_id"], row.get("variant_item_id"))] += to_decimal(row.get("quantity"))
            after: dict[StockKey, Decimal] = defaultdict(Decimal)
            for line in resolved:
                if line.item_id:
                    after[line.stock_key] += line.quantity

            changed = [key for key in {*before, *after} if after[key] != before[key]]
            for key in sorted(changed, key=lambda k: (k[0], k[1] or "")):
                await self._record_stock(
                    key, after[key] - before[key], order_id, "purchase_order_edit", "Purchase order updated"
                )
            await self._refresh_stock(changed)
            await self._book_expense(order.order_number, total)

        logger.info(f"Updated purchase order {order.order_number}: {len(changed)} stock correction(s)")
        return order

    async def update_status(self, order_id: str, status: str) -> Optional[PurchaseOrder]:
        """Change an order's status. Cancelling removes the order and returns None."""
        if status not in PURCHASE_STATUSES:
            raise ValidationError(f"Unknown purchase order status '{status}'")
        async with self.lock:
            if status == "cancelled":
                await self._cancel(order_id)
                return None
            rows = await self.store.update(ORDERS_TABLE, {"status": status}, id=order_id)
            if not rows:
                raise NotFoundError(f"Purchase order {order_id} not found")
            current = self.get_by_id(order_id)
            if current is None:
                order = self._decode_order(rows[0], await self._load_lines(order_id))
            else:
                order = current.model_copy(update={"status": status, "updated_at": rows[0].get("updated_at")})
            self.orders.replace(order)
        return order

    async def _cancel(self, order_id: str) -> None:
        header = await self._load_header(order_id)
        line_rows = await self._load_lines(order_id)
        reversed_keys: list[StockKey] = []
        for row in line_rows:
            if not row.get("item_id"):
                continue
            key = (row["item_id"], row.get("variant_item_id"))
            await self._record_stock(
                key, -to_decimal(row.get("quantity")), order_id, "purchase_order_cancelled",
                "Purchase order cancelled",
            )
            reversed_keys.append(key)

        await self.store.delete(LINES_TABLE, purchase_order_id=order_id)
        await self._delete_expense(header.get("order_number"))
        await self.store.delete(ORDERS_TABLE, id=order_id)
        self.orders.remove(order_id)
        await self._refresh_stock(reversed_keys)
        logger.info(f"Cancelled purchase order {header.get('order_number')}, {len(reversed_keys)} line(s) reversed")

    async def _delete_expense(self, order_number: Optional[str]) -> None:
        if not order_number:
            return
        try:
            await self.financials.delete_for_reference(order_number, EXPENSE_CATEGORY)
        except StoreError as e:
            logger.warning(f"Could not remove the expense booked for {order_number}: {e}")

    async def delete(self, order_id: str) -> None:
        """Remove an order, its lines and its expense. Stock is left as it is."""
        async with self.lock:
            header = await self._load_header(order_id)
            await self.store.delete(LINES_TABLE, purchase_order_id=order_id)
            await self._delete_expense(header.get("order_number"))
            await self.store.delete(ORDERS_TABLE, id=order_id)
            self.orders.remove(order_id)
        logger.info(f"Deleted purchase order {header.get('order_number')}")
