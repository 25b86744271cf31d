import datetime
from decimal import Decimal

import pytest

from erp.common.errors import ConflictError, InvalidOperationError, StoreError
from erp.common.store import TortoiseStore
from erp.core.container import TABLE_MODELS
from erp.features.inventory.models import InventoryTransaction
from erp.features.inventory.procedures import PROCEDURE_NAME, STORE_PROCEDURES


@pytest.fixture
def plain_store() -> TortoiseStore:
    return TortoiseStore(TABLE_MODELS, STORE_PROCEDURES)


async def _insert_item(store: TortoiseStore, name: str = "Pine Plank", stock: str = "5") -> dict:
    return await store.insert(
        "inventory_items",
        {"business_id": "b1", "name": name, "current_stock": Decimal(stock)},
    )


@pytest.mark.asyncio
async def test_insert_returns_row_with_defaults(plain_store: TortoiseStore):
    row = await _insert_item(plain_store)
    assert len(row["id"]) == 27
    assert row["name"] == "Pine Plank"
    assert row["unit_of_measure"] == "pieces"
    assert row["created_at"] is not None


@pytest.mark.asyncio
async def test_unknown_table_is_rejected(plain_store: TortoiseStore):
    with pytest.raises(StoreError, match='relation "warehouses" does not exist'):
        await plain_store.select("warehouses")


@pytest.mark.asyncio
async def test_unknown_column_is_rejected_before_writing(plain_store: TortoiseStore):
    with pytest.raises(StoreError, match='column "colour"'):
        await plain_store.insert("inventory_items", {"business_id": "b1", "name": "Ash", "colour": "pale"})
    assert await plain_store.count("inventory_items") == 0


@pytest.mark.asyncio
async def test_unique_violation_maps_to_conflict(plain_store: TortoiseStore):
    await _insert_item(plain_store, name="Walnut")
    with pytest.raises(ConflictError):
        await _insert_item(plain_store, name="Walnut")


@pytest.mark.asyncio
async def test_select_filters_and_orders(plain_store: TortoiseStore):
    await _insert_item(plain_store, name="Birch", stock="1")
    await _insert_item(plain_store, name="Alder", stock="7")
    await _insert_item(plain_store, name="Cedar", stock="3")

    rows = await plain_store.select("inventory_items", order_by=("-name",), name__in=["Alder", "Cedar"])
    assert [row["name"] for row in rows] == ["Cedar", "Alder"]

    limited = await plain_store.select("inventory_items", order_by=("name",), limit=1)
    assert [row["name"] for row in limited] == ["Alder"]


@pytest.mark.asyncio
async def test_update_and_delete_require_filters(plain_store: TortoiseStore):
    with pytest.raises(StoreError):
        await plain_store.update("inventory_items", {"current_stock": 1})
    with pytest.raises(StoreError):
        await plain_store.delete("inventory_items")


@pytest.mark.asyncio
async def test_update_returns_matching_rows(plain_store: TortoiseStore):
    row = await _insert_item(plain_store)
    updated = await plain_store.update("inventory_items", {"current_stock": Decimal("9")}, id=row["id"])
    assert len(updated) == 1
    assert updated[0]["current_stock"] == Decimal("9")
    assert await plain_store.update("inventory_items", {"current_stock": 1}, id="missing") == []


@pytest.mark.asyncio
async def test_upsert_inserts_then_updates_same_row(plain_store: TortoiseStore):
    values = {
        "business_id": "b1",
        "type": "expense",
        "amount": Decimal("100"),
        "category": "purchases",
        "reference_number": "PO-2024-000001",
        "date": datetime.datetime(2024, 5, 1, tzinfo=datetime.timezone.utc),
    }
    first = await plain_store.upsert("financial_transactions", values, on_conflict=("reference_number", "category", "type"))
    second = await plain_store.upsert(
        "financial_transactions", {**values, "amount": Decimal("250")},
        on_conflict=("reference_number", "category", "type"),
    )
    assert first["id"] == second["id"]
    assert second["amount"] == Decimal("250")
    assert await plain_store.count("financial_transactions") == 1


@pytest.mark.asyncio
async def test_upsert_needs_conflict_values(plain_store: TortoiseStore):
    with pytest.raises(StoreError):
        await plain_store.upsert(
            "financial_transactions",
            {"business_id": "b1", "type": "income", "amount": 1, "category": "sales"},
            on_conflict=("reference_number", "category", "type"),
        )


def _procedure_params(item_id: str, change, **extra) -> dict:
    params = {
        "p_item_id": item_id,
        "p_transaction_type": "adjustment",
        "p_quantity_change": change,
        "p_reference_id": None,
        "p_reference_type": None,
        "p_notes": None,
        "p_created_by": "tester",
    }
    params.update(extra)
    return params


@pytest.mark.asyncio
async def test_rpc_applies_change_and_writes_ledger(plain_store: TortoiseStore):
    row = await _insert_item(plain_store, stock="5")
    result = await plain_store.rpc(PROCEDURE_NAME, _procedure_params(row["id"], 3, p_variant_item_id=None))

    assert result["quantity_before"] == Decimal("5")
    assert result["quantity_after"] == Decimal("8")
    stored = await plain_store.select("inventory_items", id=row["id"])
    assert stored[0]["current_stock"] == Decimal("8")
    entry = await InventoryTransaction.get(id=result["transaction_id"])
    assert entry.quantity_change == Decimal("3")


@pytest.mark.asyncio
async def test_rpc_refuses_negative_stock(plain_store: TortoiseStore):
    row = await _insert_item(plain_store, stock="2")
    with pytest.raises(InvalidOperationError):
        await plain_store.rpc(PROCEDURE_NAME, _procedure_params(row["id"], -3, p_variant_item_id=None))
    stored = await plain_store.select("inventory_items", id=row["id"])
    assert stored[0]["current_stock"] == Decimal("2")
    assert await InventoryTransaction.all().count() == 0


@pytest.mark.asyncio
async def test_rpc_by_variant_name_moves_variant_stock(plain_store: TortoiseStore):
    parent = await _insert_item(plain_store, name="Mug", stock="0")
    variant = await plain_store.insert(
        "inventory_items",
        {
            "business_id": "b1", "name": "Mug Blue", "is_variant": True,
            "parent_item_id": parent["id"], "variant_name": "Blue", "current_stock": Decimal("4"),
        },
    )
    await plain_store.rpc(PROCEDURE_NAME, _procedure_params(parent["id"], -1, p_variant_name="Blue"))

    rows = {row["id"]: row for row in await plain_store.select("inventory_items")}
    assert rows[variant["id"]]["current_stock"] == Decimal("3")
    assert rows[parent["id"]]["current_stock"] == Decimal("0")


@pytest.mark.asyncio
async def test_rpc_rejects_unknown_shape(plain_store: TortoiseStore):
    row = await _insert_item(plain_store)
    with pytest.raises(StoreError, match="Could not find the function"):
        await plain_store.rpc(PROCEDURE_NAME, _procedure_params(row["id"], 1, p_location="shelf"))
    with pytest.raises(StoreError):
        await plain_store.rpc("recalculate_everything", {})
