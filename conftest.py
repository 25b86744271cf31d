"""
Root conftest for the pytest test suite.

This file contains the main fixtures that are used across the entire test suite.

Each test runs against a fresh, isolated in-memory SQLite database that is
created and torn down by an async, autouse fixture.

Key Fixtures:
- `initialize_test_db`: (autouse) Creates a fresh DB schema for each test.
- `store`: A `RecordingStore` that logs every call and can simulate schema
  drift (dropped columns, missing procedure shapes) and failing operations.
- `erp`: The repositories wired to `store`, with empty caches.
- `app_for_testing`: The FastAPI application with its production lifespan
  disabled and `erp` installed on its state.
- `client`: An `httpx.AsyncClient` talking to `app_for_testing` in-process.
- `supplier`, `widget`: A supplier and a stocked inventory item.
"""

from contextlib import asynccontextmanager
from decimal import Decimal
from typing import Any, AsyncGenerator, Generator

import httpx
import pytest
import pytest_asyncio
from fastapi import FastAPI
from tortoise import Tortoise

from erp.common.errors import StoreError
from erp.common.store import TortoiseStore
from erp.core.config import MODEL_MODULES
from erp.core.container import ERP, TABLE_MODELS, build_erp
from erp.features.inventory.procedures import STORE_PROCEDURES
from erp.features.inventory.schemas import InventoryItem, InventoryItemCreate
from erp.features.suppliers.schemas import Supplier, SupplierCreate

# Import the app
from erp.main import app as actual_app

TEST_BUSINESS_ID = "test-business"


class RecordingStore(TortoiseStore):
    """A `TortoiseStore` that records calls and can be told to misbehave.

    - `fail(action, table)` makes that operation raise `StoreError`.
    - `drop_column(table, column)` makes the column look absent, as on an
      older deployment of the schema.
    - `drop_shape(shape)` removes a stored procedure call shape.
    """

    def __init__(self):
        super().__init__(TABLE_MODELS, STORE_PROCEDURES)
        self.calls: list[tuple[str, str, Any]] = []
        self.failures: set[tuple[str, str]] = set()
        self.dropped_columns: dict[str, set[str]] = {}
        self.dropped_shapes: set[frozenset[str]] = set()

    def fail(self, action: str, table: str) -> None:
        self.failures.add((action, table))

    def drop_column(self, table: str, column: str) -> None:
        self.dropped_columns.setdefault(table, set()).add(column)

    def drop_shape(self, shape: frozenset[str]) -> None:
        self.dropped_shapes.add(shape)

    def calls_to(self, action: str, table: str) -> list[Any]:
        return [payload for call_action, call_table, payload in self.calls if (call_action, call_table) == (action, table)]

    def _record(self, action: str, table: str, payload: Any = None) -> None:
        self.calls.append((action, table, payload))
        if (action, table) in self.failures:
            raise StoreError(f"{action} on {table} failed: connection reset")

    def _columns(self, model):
        return super()._columns(model) - self.dropped_columns.get(model._meta.db_table, set())

    async def select(self, table, *, order_by=(), limit=None, **filters):
        self._record("select", table, filters)
        return await super().select(table, order_by=order_by, limit=limit, **filters)

    async def insert(self, table, values):
        self._record("insert", table, dict(values))
        return await super().insert(table, values)

    async def update(self, table, values, **filters):
        self._record("update", table, (dict(values), filters))
        return await super().update(table, values, **filters)

    async def delete(self, table, **filters):
        self._record("delete", table, filters)
        return await super().delete(table, **filters)

    async def count(self, table, **filters):
        self._record("count", table, filters)
        return await super().count(table, **filters)

    async def upsert(self, table, values, *, on_conflict):
        self._record("upsert", table, dict(values))
        return await super().upsert(table, values, on_conflict=on_conflict)

    async def rpc(self, name, params):
        self._record("rpc", name, dict(params))
        if frozenset(params) in self.dropped_shapes:
            raise StoreError(f"Could not find the function {name}({', '.join(sorted(params))}) in the schema cache")
        return await super().rpc(name, params)


@pytest_asyncio.fixture(scope="function", autouse=True)
async def initialize_test_db() -> AsyncGenerator[None, None]:
    """
    Initializes the database for each test function.

    This async, autouse fixture creates a fresh in-memory database and schema
    for each test and tears it down afterwards.
    """
    test_db_config = {
        "connections": {"default": "sqlite://:memory:"},
        "apps": {
            "models": {
                "models": [*MODEL_MODULES, "aerich.models"],
                "default_connection": "default",
            }
        },
        "use_tz": True,
        "timezone": "UTC",
    }
    await Tortoise.init(config=test_db_config)
    await Tortoise.generate_schemas()

    yield

    await Tortoise.close_connections()


@pytest.fixture(scope="function")
def store() -> RecordingStore:
    return RecordingStore()


@pytest.fixture(scope="function")
def erp(store: RecordingStore) -> ERP:
    return build_erp(store, business_id=TEST_BUSINESS_ID)


@pytest.fixture(scope="function")
def app_for_testing(erp: ERP) -> Generator[FastAPI, Any, None]:
    """
    Provides the FastAPI application for testing, with its production
    lifespan disabled so the test DB fixture manages the database and the
    `erp` fixture provides the repositories.
    """
    original_lifespan = actual_app.router.lifespan_context

    @asynccontextmanager
    async def dummy_lifespan(app: FastAPI):
        yield

    actual_app.router.lifespan_context = dummy_lifespan
    actual_app.state.erp = erp

    yield actual_app

    # Restore the original lifespan context after the test
    actual_app.router.lifespan_context = original_lifespan
    del actual_app.state.erp


@pytest_asyncio.fixture(scope="function")
async def client(app_for_testing: FastAPI) -> AsyncGenerator[httpx.AsyncClient, Any]:
    """
    Provides an httpx client bound to the app, without a network round trip.
    """
    transport = httpx.ASGITransport(app=app_for_testing)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac


@pytest_asyncio.fixture(scope="function")
async def supplier(erp: ERP) -> Supplier:
    return await erp.suppliers.create(SupplierCreate(name="Acme Timber", telephone="555-0100", payment_terms="Net 30"))


@pytest_asyncio.fixture(scope="function")
async def widget(erp: ERP) -> InventoryItem:
    """An item with 10 in stock, selling at 25."""
    return await erp.inventory.create(
        InventoryItemCreate(
            name="Oak Bowl",
            category="Homeware",
            purchase_cost=Decimal("10"),
            selling_price=Decimal("25"),
            current_stock=Decimal("10"),
            reorder_level=Decimal("3"),
            item_type="Finished Products",
        )
    )
