"""The `record_inventory_transaction` stored procedure and its client.

The procedure is the single source of truth for `current_stock`: it locks the
target row, applies a signed change, refuses to go below zero and appends an
`inventory_transactions` ledger row, all in one database transaction.

Two call shapes are deployed in the field. The current one addresses a
variant by id, the legacy one by its variant name. `StockLedger` probes the
id shape first and falls back to the name shape only when the store rejects
the call.
"""

import logging
from decimal import Decimal
from typing import Optional

from tortoise.transactions import in_transaction

from ...common.compat import FallbackChain, WriteShape
from ...common.codecs import to_decimal
from ...common.errors import InvalidOperationError, NotFoundError
from ...common.store import Procedure, RemoteStore
from .models import InventoryItem, InventoryTransaction

logger = logging.getLogger(__name__)

PROCEDURE_NAME = "record_inventory_transaction"

_COMMON_PARAMS = {
    "p_item_id",
    "p_transaction_type",
    "p_quantity_change",
    "p_reference_id",
    "p_reference_type",
    "p_notes",
    "p_created_by",
}
VARIANT_ID_SHAPE = frozenset(_COMMON_PARAMS | {"p_variant_item_id"})
VARIANT_NAME_SHAPE = frozenset(_COMMON_PARAMS | {"p_variant_name"})

# Coarse ledger categories for adjustment reasons; anything unlisted is a plain adjustment.
REASON_TRANSACTION_TYPES = {
    "sale": "sales_order",
    "sales_order": "sales_order",
    "purchase_order": "purchase_order",
    "craft_completed": "craft_completed",
    "manufacturing_used": "manufacturing_used",
}


def classify_reason(reason: str) -> str:
    return REASON_TRANSACTION_TYPES.get(str(reason), "adjustment")


async def record_inventory_transaction(
    p_item_id: str,
    p_transaction_type: str,
    p_quantity_change,
    p_reference_id: Optional[str] = None,
    p_reference_type: Optional[str] = None,
    p_notes: Optional[str] = None,
    p_created_by: Optional[str] = None,
    p_variant_item_id: Optional[str] = None,
    p_variant_name: Optional[str] = None,
) -> dict:
    change = to_decimal(p_quantity_change)

    async with in_transaction() as conn:
        query = InventoryItem.filter(id=p_item_id)
        if p_variant_item_id:
            query = InventoryItem.filter(id=p_variant_item_id, parent_item_id=p_item_id)
        elif p_variant_name:
            query = InventoryItem.filter(parent_item_id=p_item_id, variant_name=p_variant_name)
        target = await query.using_db(conn).select_for_update().first()
        if target is None:
            raise NotFoundError(
                f"Inventory item {p_variant_item_id or p_variant_name or p_item_id} not found"
            )

        before = target.current_stock
        after = before + change
        if after < 0:
            raise InvalidOperationError(
                f"Stock change of {change} for '{target.name}' would result in negative stock"
            )

        target.current_stock = after
        await target.save(using_db=conn, update_fields=["current_stock", "updated_at"])
        entry = await InventoryTransaction.create(
            item_id=p_item_id,
            variant_item_id=target.id if target.id != p_item_id else None,
            variant_name=target.variant_name if target.id != p_item_id else None,
            transaction_type=p_transaction_type,
            quantity_change=change,
            quantity_before=before,
            quantity_after=after,
            reference_id=p_reference_id,
            reference_type=p_reference_type,
            notes=p_notes,
            created_by=p_created_by,
            using_db=conn,
        )

    logger.debug(f"{p_transaction_type}: {target.id} {before} -> {after} (ledger {entry.id})")
    return {"transaction_id": entry.id, "quantity_before": before, "quantity_after": after}


STORE_PROCEDURES = (
    Procedure(PROCEDURE_NAME, record_inventory_transaction, (VARIANT_ID_SHAPE, VARIANT_NAME_SHAPE)),
)


class StockLedger:
    """Client side of the stock procedure, shared by every stock-moving workflow."""

    def __init__(self, store: RemoteStore):
        self.store = store
        self._chain = FallbackChain(
            PROCEDURE_NAME,
            WriteShape("variant id", self._call_with_variant_id),
            # A variant addressed only by id cannot be expressed by name.
            WriteShape(
                "variant name",
                self._call_with_variant_name,
                applies=lambda **kw: not kw.get("variant_item_id") or bool(kw.get("variant_name")),
            ),
        )

    @staticmethod
    def _params(item_id, transaction_type, quantity_change, reference_id, reference_type, notes, created_by):
        return {
            "p_item_id": item_id,
            "p_transaction_type": transaction_type,
            "p_quantity_change": quantity_change,
            "p_reference_id": reference_id,
            "p_reference_type": reference_type,
            "p_notes": notes,
            "p_created_by": created_by,
        }

    async def _call_with_variant_id(self, *, variant_item_id=None, variant_name=None, **kwargs):
        params = self._params(**kwargs)
        params["p_variant_item_id"] = variant_item_id
        return await self.store.rpc(PROCEDURE_NAME, params)

    async def _call_with_variant_name(self, *, variant_item_id=None, variant_name=None, **kwargs):
        params = self._params(**kwargs)
        params["p_variant_name"] = variant_name
        return await self.store.rpc(PROCEDURE_NAME, params)

    async def record(
        self,
        item_id: str,
        quantity_change: Decimal,
        transaction_type: str,
        *,
        variant_item_id: Optional[str] = None,
        variant_name: Optional[str] = None,
        reference_id: Optional[str] = None,
        reference_type: Optional[str] = None,
        notes: Optional[str] = None,
        created_by: Optional[str] = None,
    ):
        """Apply a signed stock change through the procedure.

        Raises:
            InvalidOperationError: the change would drive stock negative.
            StoreError: every call shape was rejected.
        """
        return await self._chain.run(
            item_id=item_id,
            transaction_type=transaction_type,
            quantity_change=quantity_change,
            variant_item_id=variant_item_id,
            variant_name=variant_name,
            reference_id=reference_id,
            reference_type=reference_type,
            notes=notes,
            created_by=created_by,
        )
