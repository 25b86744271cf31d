"""Wiring of the store and the repositories shared by the API and the CLI."""
import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from ..common.store import RemoteStore, TortoiseStore
from ..features.financials import models as financial_models
from ..features.financials.service import FinancialTransactionRepository
from ..features.inventory import models as inventory_models
from ..features.inventory.procedures import STORE_PROCEDURES
from ..features.inventory.service import InventoryRepository
from ..features.purchasing import models as purchasing_models
from ..features.purchasing.service import PurchaseOrderRepository
from ..features.sales import models as sales_models
from ..features.sales.service import CustomerRepository, SalesOrderRepository
from ..features.suppliers import models as supplier_models
from ..features.suppliers.service import SupplierRepository
from .config import BUSINESS_ID

logger = logging.getLogger(__name__)

TABLE_MODELS = (
    inventory_models.InventoryItem,
    inventory_models.InventoryAdjustment,
    inventory_models.ItemLink,
    inventory_models.InventoryTransaction,
    supplier_models.Supplier,
    purchasing_models.PurchaseOrder,
    purchasing_models.PurchaseOrderItem,
    sales_models.Customer,
    sales_models.SalesOrder,
    sales_models.SalesOrderItem,
    sales_models.Invoice,
    financial_models.FinancialTransaction,
)


@dataclass
class ERP:
    store: RemoteStore
    inventory: InventoryRepository
    suppliers: SupplierRepository
    financials: FinancialTransactionRepository
    purchasing: PurchaseOrderRepository
    customers: CustomerRepository
    sales: SalesOrderRepository

    async def fetch_all(self) -> None:
        """Load every repository; orders last since they embed suppliers and customers."""
        await self.suppliers.fetch_all()
        await self.customers.fetch_all()
        await self.inventory.fetch_all()
        await self.financials.fetch_all()
        await self.purchasing.fetch_all()
        await self.sales.fetch_all()
        logger.info(
            f"Loaded {len(self.inventory.items)} items, {len(self.purchasing.orders)} purchase orders, "
            f"{len(self.sales.orders)} sales orders"
        )


def build_erp(store: Optional[RemoteStore] = None, business_id: str = BUSINESS_ID) -> ERP:
    store = store or TortoiseStore(TABLE_MODELS, STORE_PROCEDURES)
    inventory = InventoryRepository(store, business_id)
    suppliers = SupplierRepository(store, business_id)
    financials = FinancialTransactionRepository(store, business_id)
    customers = CustomerRepository(store)
    return ERP(
        store=store,
        inventory=inventory,
        suppliers=suppliers,
        financials=financials,
        purchasing=PurchaseOrderRepository(store, inventory, suppliers, financials, business_id),
        customers=customers,
        sales=SalesOrderRepository(store, inventory, customers, financials),
    )


def get_erp(request: Request) -> ERP:
    return request.app.state.erp
