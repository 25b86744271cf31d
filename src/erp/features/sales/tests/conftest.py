import pytest_asyncio

from erp.core.container import ERP
from erp.features.sales.schemas import Customer, CustomerCreate


@pytest_asyncio.fixture
async def customer(erp: ERP) -> Customer:
    """A registered customer with full contact details."""
    return await erp.customers.create(
        CustomerCreate(name="Dana Reyes", telephone="555-0142", address="12 Harbour Lane", email="dana@example.com")
    )
