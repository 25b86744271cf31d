import asyncio
import datetime
import logging
from decimal import Decimal
from typing import Iterable, Optional

from ...common.cache import EntityCache
from ...common.codecs import to_decimal
from ...common.errors import (
    ConflictError,
    InvalidOperationError,
    NotFoundError,
    StoreError,
    ValidationError,
)
from ...common.models import generate_ksuid
from ...common.store import RemoteStore
from ...core.config import BUSINESS_ID, DEFAULT_ACTOR
from .audit import ADJUSTMENTS_TABLE, AuditOutbox
from .codec import decode_adjustment, decode_item, decode_link, encode_item
from .procedures import StockLedger, classify_reason
from .schemas import (
    InventoryAdjustment,
    InventoryItem,
    InventoryItemCreate,
    InventoryItemUpdate,
    ItemLink,
    ItemLinkUpdate,
    LinkedItemInfo,
    StockAdjustmentResult,
)

logger = logging.getLogger(__name__)

ITEMS_TABLE = "inventory_items"
LINKS_TABLE = "item_links"


class InventoryRepository:
    """Inventory items, their adjustment trail and bill-of-materials links.

    All writes run under `lock`. Other repositories that move stock while
    holding their own lock call in here, never the other way around.
    """

    def __init__(
        self,
        store: RemoteStore,
        business_id: str = BUSINESS_ID,
        actor: str = DEFAULT_ACTOR,
        ledger: Optional[StockLedger] = None,
        audit: Optional[AuditOutbox] = None,
    ):
        self.store = store
        self.business_id = business_id
        self.actor = actor
        self.ledger = ledger or StockLedger(store)
        self.audit = audit or AuditOutbox(store)
        self.items: EntityCache[InventoryItem] = EntityCache()
        self.adjustments: EntityCache[InventoryAdjustment] = EntityCache()
        self.links: EntityCache[ItemLink] = EntityCache()
        self.lock = asyncio.Lock()

    # --- queries (cache only) ---

    def get_by_id(self, item_id: str) -> Optional[InventoryItem]:
        return self.items.get(item_id)

    def find_by_name(self, name: str) -> Optional[InventoryItem]:
        """Exact-name lookup used to resolve legacy order lines without an item id."""
        wanted = name.strip()
        return next((item for item in self.items if item.name == wanted), None)

    def list_items(self, include_variants: bool = True) -> list[InventoryItem]:
        return [item for item in self.items if include_variants or not item.is_variant]

    def variants_of(self, parent_id: str) -> list[InventoryItem]:
        return [item for item in self.items if item.parent_item_id == parent_id]

    def aggregate_stock(self, item_id: str) -> Decimal:
        """Summed variant stock when the item has variants, otherwise its own stock."""
        item = self.get_by_id(item_id)
        if item is None:
            raise NotFoundError(f"Inventory item {item_id} not found")
        variants = self.variants_of(item_id)
        if variants:
            return sum((variant.current_stock for variant in variants), Decimal("0"))
        return item.current_stock

    def low_stock_items(self) -> list[InventoryItem]:
        return [
            item for item in self.items
            if item.is_active and item.current_stock <= item.reorder_level
        ]

    # --- loading ---

    async def fetch_all(self) -> list[InventoryItem]:
        """Reload items, then the adjunct adjustments and links.

        A failure to load items propagates; the adjunct collections degrade to
        empty lists so the item listing is never blocked by them.
        """
        rows = await self.store.select(ITEMS_TABLE, order_by=("name",), business_id=self.business_id)
        items = [decode_item(row) for row in rows]
        self.items.replace_all(items)
        await self.fetch_adjustments()
        await self.fetch_item_links()
        return items

    async def fetch_adjustments(self) -> list[InventoryAdjustment]:
        try:
            rows = await self.store.select(ADJUSTMENTS_TABLE, order_by=("-adjustment_date",))
        except StoreError as e:
            logger.warning(f"Could not load inventory adjustments, showing none: {e}")
            rows = []
        names = {item.id: item.name for item in self.items}
        adjustments = [
            decode_adjustment(row, names.get(row.get("item_id"), ""))
            for row in rows
            if row.get("item_id") in names
        ]
        self.adjustments.replace_all(adjustments)
        return adjustments

    async def fetch_item_links(self) -> list[ItemLink]:
        try:
            rows = await self.store.select(LINKS_TABLE, order_by=("-created_at",))
        except StoreError as e:
            logger.warning(f"Could not load item links, showing none: {e}")
            rows = []
        links = [decode_link(row) for row in rows]
        self.links.replace_all(links)
        return links

    async def refresh_items(self, item_ids: Iterable[str]) -> list[InventoryItem]:
        """Re-read rows whose stock was changed by another workflow."""
        ids = sorted(set(item_ids))
        if not ids:
            return []
        async with self.lock:
            rows = await self.store.select(ITEMS_TABLE, id__in=ids)
            refreshed = [decode_item(row) for row in rows]
            for item in refreshed:
                self.items.replace(item)
            for missing in set(ids) - {item.id for item in refreshed}:
                self.items.remove(missing)
        return refreshed

    # --- item CRUD ---

    def _check_variant(self, parent_item_id: Optional[str]) -> None:
        if not parent_item_id:
            raise ValidationError("A variant needs a parent item")
        parent = self.get_by_id(parent_item_id)
        if parent is None:
            raise ValidationError(f"Parent item {parent_item_id} does not exist")
        if parent.is_variant:
            raise ValidationError(f"Parent item '{parent.name}' is itself a variant")

    def _conflict_message(self, name: str, sku: Optional[str]) -> str:
        if sku and any(item.sku == sku for item in self.items):
            return f"An item with SKU '{sku}' already exists"
        return f"An item named '{name}' already exists"

    async def create(self, item_in: InventoryItemCreate) -> InventoryItem:
        """
        Creates a new inventory item (or a variant of an existing one).

        Args:
            item_in: The data for the new item.

        Returns:
            The created item, as stored.
        """
        name = item_in.name.strip()
        if not name:
            raise ValidationError("Item name is required")
        is_variant = item_in.is_variant or item_in.parent_item_id is not None
        if is_variant:
            self._check_variant(item_in.parent_item_id)

        values = encode_item(item_in.model_dump())
        values.update(
            business_id=self.business_id,
            name=name,
            is_variant=is_variant,
            unit_of_measure=item_in.unit_of_measure or "pieces",
        )
        async with self.lock:
            try:
                row = await self.store.insert(ITEMS_TABLE, values)
            except ConflictError as e:
                raise ConflictError(self._conflict_message(name, values.get("sku"))) from e
            item = decode_item(row)
            self.items.append(item)
        logger.info(f"Created inventory item {item.id} ({item.name})")
        return item

    async def _write_item(self, item_id: str, changes: dict) -> InventoryItem:
        rows = await self.store.update(ITEMS_TABLE, encode_item(changes), id=item_id)
        if not rows:
            raise NotFoundError(f"Inventory item {item_id} not found")
        item = decode_item(rows[0])
        self.items.replace(item)
        return item

    async def update(self, item_id: str, item_in: InventoryItemUpdate) -> InventoryItem:
        """
        Updates an inventory item. Fields left unset are not sent to the store.

        Args:
            item_id: The id of the item to update.
            item_in: The fields to change.

        Returns:
            The updated item.
        """
        changes = item_in.model_dump(exclude_unset=True)
        if not changes:
            raise ValidationError("No fields for update")
        if "name" in changes:
            changes["name"] = (changes["name"] or "").strip()
            if not changes["name"]:
                raise ValidationError("Item name cannot be empty")
        async with self.lock:
            try:
                return await self._write_item(item_id, changes)
            except ConflictError as e:
                current = self.get_by_id(item_id)
                name = changes.get("name", current.name if current else "")
                raise ConflictError(self._conflict_message(name, changes.get("sku"))) from e

    async def delete(self, item_id: str) -> None:
        async with self.lock:
            deleted = await self.store.delete(ITEMS_TABLE, id=item_id)
            if not deleted:
                raise NotFoundError(f"Inventory item {item_id} not found")
            self.items.remove(item_id)
        logger.info(f"Deleted inventory item {item_id}")

    async def set_stock(self, item_id: str, new_quantity) -> tuple[Decimal, Decimal]:
        """Overwrite `current_stock` directly, bypassing the ledger. Returns (previous, new)."""
        new_quantity = to_decimal(new_quantity)
        if new_quantity < 0:
            raise InvalidOperationError("Stock cannot be set below zero")
        async with self.lock:
            item = self.get_by_id(item_id)
            if item is None:
                raise NotFoundError(f"Inventory item {item_id} not found")
            updated = await self._write_item(item_id, {"current_stock": new_quantity})
        return item.current_stock, updated.current_stock

    # --- stock workflow ---

    async def adjust_stock(
        self, item_id: str, quantity_delta, reason: str, notes: Optional[str] = None
    ) -> StockAdjustmentResult:
        """
        Applies a signed stock change and records why it happened.

        The negative-stock check runs before any write. The audit row goes
        through the outbox and may be queued; the stock procedure is the
        required write, with a direct `current_stock` update as the degraded
        path when the procedure is unavailable.

        Args:
            item_id: The item whose stock changes.
            quantity_delta: Signed quantity to add.
            reason: Adjustment reason (sale, purchase_order, return, ...).
            notes: Optional free text stored on the audit row and ledger entry.

        Returns:
            The previous and new quantities plus the adjustment shown to the user.
        """
        async with self.lock:
            return await self._adjust_stock(item_id, to_decimal(quantity_delta), reason, notes)

    async def increase_stock(
        self, item_id: str, quantity, reason: str = "return", notes: Optional[str] = None
    ) -> StockAdjustmentResult:
        return await self.adjust_stock(item_id, abs(to_decimal(quantity)), reason, notes)

    async def _adjust_stock(
        self, item_id: str, delta: Decimal, reason: str, notes: Optional[str]
    ) -> StockAdjustmentResult:
        item = self.get_by_id(item_id)
        if item is None:
            raise NotFoundError(f"Inventory item {item_id} not found")

        previous = item.current_stock
        new_quantity = previous + delta
        if new_quantity < 0:
            raise InvalidOperationError(
                f"Adjusting '{item.name}' by {delta} would result in negative stock ({new_quantity})"
            )

        temp_id = f"temp-{generate_ksuid()}"
        audit_row = await self.audit.record(
            {
                "item_id": item_id,
                "previous_quantity": previous,
                "new_quantity": new_quantity,
                "reason": reason,
                "notes": notes,
                "created_by": self.actor,
            },
            temp_id,
        )

        try:
            applied = await self.ledger.record(
                item_id,
                delta,
                classify_reason(reason),
                reference_id=audit_row["id"] if audit_row else None,
                reference_type="adjustment",
                notes=notes or f"Inventory adjustment ({reason})",
                created_by=self.actor,
            )
            # The procedure reports the stock it actually wrote.
            if isinstance(applied, dict) and applied.get("quantity_after") is not None:
                new_quantity = to_decimal(applied["quantity_after"])
        except StoreError as e:
            logger.error(f"Stock procedure failed for {item_id}, updating current_stock directly: {e}")
            await self.store.update(ITEMS_TABLE, {"current_stock": new_quantity}, id=item_id)

        self.items.replace(item.model_copy(update={"current_stock": new_quantity}))
        if audit_row:
            adjustment = decode_adjustment(audit_row, item.name)
        else:
            adjustment = InventoryAdjustment(
                id=temp_id,
                item_id=item_id,
                previous_quantity=previous,
                new_quantity=new_quantity,
                reason=reason,
                notes=notes or "",
                adjustment_date=datetime.datetime.now(datetime.timezone.utc),
                created_by=self.actor,
                item_name=item.name,
            )
        self.adjustments.prepend(adjustment)
        logger.info(f"Stock of {item.name} {previous} -> {new_quantity} ({reason})")
        return StockAdjustmentResult(
            previous_quantity=previous, new_quantity=new_quantity, adjustment=adjustment
        )

    async def flush_audit(self) -> int:
        """Retry queued audit rows and swap their temporary ids for stored ones."""
        async with self.lock:
            written = await self.audit.flush()
            if written:
                self.adjustments.replace_all(
                    decode_adjustment(written[adj.id], adj.item_name) if adj.id in written else adj
                    for adj in self.adjustments
                )
        return len(written)

    # --- item links ---

    async def add_item_link(
        self, parent_item_id: str, child_item_id: str, quantity_required=1, notes: Optional[str] = None
    ) -> ItemLink:
        if parent_item_id == child_item_id:
            raise InvalidOperationError("Cannot link an item to itself")
        quantity = to_decimal(quantity_required, default=Decimal("1"))
        if quantity <= 0:
            raise ValidationError("Required quantity must be positive")
        for linked_id in (parent_item_id, child_item_id):
            if self.get_by_id(linked_id) is None:
                raise NotFoundError(f"Inventory item {linked_id} not found")

        async with self.lock:
            try:
                row = await self.store.insert(
                    LINKS_TABLE,
                    {
                        "parent_item_id": parent_item_id,
                        "child_item_id": child_item_id,
                        "quantity_required": quantity,
                        "notes": notes,
                    },
                )
            except ConflictError as e:
                raise ConflictError("This link already exists") from e
            link = decode_link(row)
            self.links.append(link)
        return link

    async def update_item_link(self, link_id: str, link_in: ItemLinkUpdate) -> ItemLink:
        changes = link_in.model_dump(exclude_unset=True)
        if not changes:
            raise ValidationError("No fields for update")
        async with self.lock:
            rows = await self.store.update(LINKS_TABLE, changes, id=link_id)
            if not rows:
                raise NotFoundError(f"Item link {link_id} not found")
            link = decode_link(rows[0])
            self.links.replace(link)
        return link

    async def remove_item_link(self, link_id: str) -> None:
        async with self.lock:
            deleted = await self.store.delete(LINKS_TABLE, id=link_id)
            if not deleted:
                raise NotFoundError(f"Item link {link_id} not found")
            self.links.remove(link_id)

    def get_linked_items(self, item_id: str) -> list[LinkedItemInfo]:
        """Items linked to `item_id` in either direction, joined from the caches."""
        linked: list[LinkedItemInfo] = []
        for link in self.links:
            if link.parent_item_id == item_id:
                other, relation = self.get_by_id(link.child_item_id), "child"
            elif link.child_item_id == item_id:
                other, relation = self.get_by_id(link.parent_item_id), "parent"
            else:
                continue
            if other is None:
                continue
            linked.append(
                LinkedItemInfo(
                    link_id=link.id,
                    item=other,
                    relation=relation,
                    quantity_required=link.quantity_required,
                    notes=link.notes,
                )
            )
        return linked

    def get_materials_for_product(self, product_id: str) -> list[InventoryItem]:
        return [
            info.item for info in self.get_linked_items(product_id)
            if info.relation == "child" and info.item.item_type == "Materials"
        ]

    def get_products_using_material(self, material_id: str) -> list[InventoryItem]:
        return [
            info.item for info in self.get_linked_items(material_id)
            if info.relation == "parent" and info.item.item_type == "Finished Products"
        ]
