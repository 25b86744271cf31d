import asyncio
import logging
from typing import Optional

from ...common.cache import EntityCache
from ...common.codecs import or_default
from ...common.errors import NotFoundError, ValidationError
from ...common.store import RemoteStore, Row
from ...core.config import BUSINESS_ID
from .schemas import Supplier, SupplierCreate, SupplierUpdate

logger = logging.getLogger(__name__)

SUPPLIERS_TABLE = "suppliers"

_TEXT_FIELDS = ("telephone", "address", "payment_terms")


def decode_supplier(row: Row) -> Supplier:
    return Supplier(
        id=str(row["id"]),
        name=or_default(row.get("name"), ""),
        telephone=or_default(row.get("telephone"), ""),
        address=or_default(row.get("address"), ""),
        payment_terms=or_default(row.get("payment_terms"), ""),
        is_active=bool(or_default(row.get("is_active"), True)),
        created_at=row.get("created_at"),
    )


class SupplierRepository:
    def __init__(self, store: RemoteStore, business_id: str = BUSINESS_ID):
        self.store = store
        self.business_id = business_id
        self.suppliers: EntityCache[Supplier] = EntityCache()
        self.lock = asyncio.Lock()

    def get_by_id(self, supplier_id: str) -> Optional[Supplier]:
        return self.suppliers.get(supplier_id)

    def list_suppliers(self) -> list[Supplier]:
        return list(self.suppliers)

    async def fetch_all(self) -> list[Supplier]:
        rows = await self.store.select(SUPPLIERS_TABLE, order_by=("name",), business_id=self.business_id)
        suppliers = [decode_supplier(row) for row in rows]
        self.suppliers.replace_all(suppliers)
        return suppliers

    async def create(self, supplier_in: SupplierCreate) -> Supplier:
        """
        Creates a supplier for the current business.

        Args:
            supplier_in: The supplier's contact details.

        Returns:
            The created supplier.
        """
        name = supplier_in.name.strip()
        if not name:
            raise ValidationError("Supplier name is required")
        values = supplier_in.model_dump()
        for key in _TEXT_FIELDS:
            values[key] = or_default(values[key], "")
        values.update(name=name, business_id=self.business_id, is_active=True)
        async with self.lock:
            supplier = decode_supplier(await self.store.insert(SUPPLIERS_TABLE, values))
            self.suppliers.append(supplier)
        logger.info(f"Created supplier {supplier.id} ({supplier.name})")
        return supplier

    async def update(self, supplier_id: str, supplier_in: SupplierUpdate) -> Supplier:
        changes = supplier_in.model_dump(exclude_unset=True)
        if not changes:
            raise ValidationError("No fields for update")
        for key in _TEXT_FIELDS:
            if key in changes:
                changes[key] = or_default(changes[key], "")
        async with self.lock:
            rows = await self.store.update(SUPPLIERS_TABLE, changes, id=supplier_id)
            if not rows:
                raise NotFoundError(f"Supplier {supplier_id} not found")
            supplier = decode_supplier(rows[0])
            self.suppliers.replace(supplier)
        return supplier

    async def delete(self, supplier_id: str) -> None:
        async with self.lock:
            if not await self.store.delete(SUPPLIERS_TABLE, id=supplier_id):
                raise NotFoundError(f"Supplier {supplier_id} not found")
            self.suppliers.remove(supplier_id)
