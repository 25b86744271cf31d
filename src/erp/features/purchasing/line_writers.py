"""Persistence of purchase order lines across both deployed table shapes.

Current schema: lines reference the inventory item (and variant) by id.
Legacy schema: lines only carry the item's name. Lines that could not be
matched to an inventory item can only be written in the legacy shape.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from ...common.compat import FallbackChain, WriteShape
from ...common.store import RemoteStore, Row

LINES_TABLE = "purchase_order_items"


@dataclass(frozen=True)
class ResolvedLine:
    name: str
    quantity: Decimal
    unit_cost: Decimal
    item_id: Optional[str] = None
    variant_item_id: Optional[str] = None
    variant_name: Optional[str] = None

    @property
    def total_cost(self) -> Decimal:
        return self.quantity * self.unit_cost

    @property
    def stock_key(self) -> tuple[str, Optional[str]]:
        return self.item_id, self.variant_item_id


class PurchaseLineWriter:
    def __init__(self, store: RemoteStore):
        self.store = store
        self._chain = FallbackChain(
            LINES_TABLE,
            WriteShape("item-linked", self._insert_linked, applies=lambda order_id, line: line.item_id is not None),
            WriteShape("name-only", self._insert_named),
        )

    async def _insert_linked(self, order_id: str, line: ResolvedLine) -> Row:
        return await self.store.insert(
            LINES_TABLE,
            {
                "purchase_order_id": order_id,
                "item_id": line.item_id,
                "variant_item_id": line.variant_item_id,
                "quantity": line.quantity,
                "unit_cost": line.unit_cost,
                "total_cost": line.total_cost,
            },
        )

    async def _insert_named(self, order_id: str, line: ResolvedLine) -> Row:
        return await self.store.insert(
            LINES_TABLE,
            {
                "purchase_order_id": order_id,
                "name": line.name,
                "quantity": line.quantity,
                "unit_cost": line.unit_cost,
                "total_cost": line.total_cost,
            },
        )

    async def write(self, order_id: str, line: ResolvedLine) -> Row:
        return await self._chain.run(order_id, line)
