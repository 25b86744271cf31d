import datetime
from decimal import Decimal

import pytest
import pytest_asyncio

from erp.core.container import ERP
from erp.features.inventory.schemas import InventoryItem, InventoryItemCreate


@pytest.fixture
def fixed_clock(erp: ERP) -> datetime.datetime:
    """Pins the clock used for purchase order numbers."""
    now = datetime.datetime(2024, 5, 1, 12, 30, tzinfo=datetime.timezone.utc)
    erp.purchasing.now = lambda: now
    return now


@pytest_asyncio.fixture
async def oak_blank(erp: ERP) -> InventoryItem:
    """A raw material with no stock."""
    return await erp.inventory.create(
        InventoryItemCreate(name="Oak Blank", purchase_cost=Decimal("20"), item_type="Materials")
    )
