from decimal import Decimal

import pytest

from erp.common.errors import ConflictError, InvalidOperationError, NotFoundError, ValidationError
from erp.core.container import ERP
from erp.features.inventory.codec import decode_item, encode_item
from erp.features.inventory.models import InventoryItem as InventoryItemRow
from erp.features.inventory.models import InventoryTransaction
from erp.features.inventory.procedures import PROCEDURE_NAME, VARIANT_ID_SHAPE, VARIANT_NAME_SHAPE
from erp.features.inventory.schemas import (
    Dimensions,
    InventoryItem,
    InventoryItemCreate,
    InventoryItemUpdate,
    ItemLinkUpdate,
)


async def create_item(erp: ERP, name: str, stock: str = "0", **extra) -> InventoryItem:
    return await erp.inventory.create(InventoryItemCreate(name=name, current_stock=Decimal(stock), **extra))


async def stored_stock(item_id: str) -> Decimal:
    return (await InventoryItemRow.get(id=item_id)).current_stock


# --- CRUD ---
@pytest.mark.asyncio
async def test_create_item_defaults(erp: ERP):
    item = await create_item(erp, "  Linen Napkin  ")
    assert item.name == "Linen Napkin"
    assert item.unit_of_measure == "pieces"
    assert item.description == ""
    assert item.product_types == []
    assert item.dimensions == Dimensions()
    assert erp.inventory.get_by_id(item.id) == item


@pytest.mark.asyncio
async def test_create_duplicate_name_conflicts(erp: ERP, widget: InventoryItem):
    with pytest.raises(ConflictError, match="already exists"):
        await create_item(erp, widget.name)


@pytest.mark.asyncio
async def test_create_duplicate_sku_conflicts(erp: ERP):
    await create_item(erp, "Teak Tray", sku="TRAY-1")
    with pytest.raises(ConflictError, match="SKU 'TRAY-1'"):
        await create_item(erp, "Teak Tray Large", sku="TRAY-1")


@pytest.mark.asyncio
async def test_update_sends_only_set_fields(erp: ERP, store, widget: InventoryItem):
    updated = await erp.inventory.update(widget.id, InventoryItemUpdate(selling_price=Decimal("30")))
    assert updated.selling_price == Decimal("30")
    assert updated.category == widget.category
    changes, filters = store.calls_to("update", "inventory_items")[-1]
    assert changes == {"selling_price": Decimal("30")}
    assert filters == {"id": widget.id}


@pytest.mark.asyncio
async def test_update_without_fields_or_unknown_item(erp: ERP, widget: InventoryItem):
    with pytest.raises(ValidationError):
        await erp.inventory.update(widget.id, InventoryItemUpdate())
    with pytest.raises(NotFoundError):
        await erp.inventory.update("missing", InventoryItemUpdate(name="Ghost"))


@pytest.mark.asyncio
async def test_delete_item(erp: ERP, widget: InventoryItem):
    await erp.inventory.delete(widget.id)
    assert erp.inventory.get_by_id(widget.id) is None
    with pytest.raises(NotFoundError):
        await erp.inventory.delete(widget.id)


@pytest.mark.asyncio
async def test_fetch_all_twice_yields_equal_cache(erp: ERP, widget: InventoryItem):
    await erp.inventory.adjust_stock(widget.id, 2, "manual")
    first = await erp.inventory.fetch_all()
    first_adjustments = erp.inventory.adjustments.snapshot()
    second = await erp.inventory.fetch_all()
    assert first == second
    assert erp.inventory.adjustments.snapshot() == first_adjustments


@pytest.mark.asyncio
async def test_fetch_all_degrades_adjunct_collections(erp: ERP, store, widget: InventoryItem):
    store.fail("select", "inventory_adjustments")
    store.fail("select", "item_links")
    items = await erp.inventory.fetch_all()
    assert [item.id for item in items] == [widget.id]
    assert len(erp.inventory.adjustments) == 0
    assert len(erp.inventory.links) == 0


# --- codec ---
def test_item_codec_round_trip():
    item = InventoryItem(
        id="2a8Hq3bUFUrQ6Zr0PqVJSyvOZyJ",
        business_id="b1",
        name="Walnut Board",
        selling_price=Decimal("45.50"),
        current_stock=Decimal("3"),
        product_types=["kitchen", "gift"],
        additional_images=["https://img.example/1.jpg"],
        specifications={"finish": "oiled"},
        dimensions=Dimensions(length=Decimal("40"), width=Decimal("25.5"), height=Decimal("2")),
        item_type="Finished Products",
        item_category="Selling",
        sale_price=Decimal("39.99"),
    )
    assert decode_item(encode_item(item.model_dump())) == item


def test_item_codec_substitutes_defaults_for_malformed_json():
    item = decode_item(
        {
            "id": "x1",
            "name": "Broken",
            "product_types": "[not-json",
            "additional_images": '{"wrong": "type"}',
            "specifications": "[1, 2]",
            "dimensions": "???",
            "item_type": "Gadgets",
        }
    )
    assert item.product_types == []
    assert item.additional_images == []
    assert item.specifications == {}
    assert item.dimensions == Dimensions(length=Decimal("0"), width=Decimal("0"), height=Decimal("0"))
    assert item.item_type is None


# --- variants ---
@pytest.mark.asyncio
async def test_variant_rules(erp: ERP, widget: InventoryItem):
    with pytest.raises(ValidationError, match="needs a parent"):
        await create_item(erp, "Orphan", is_variant=True)
    with pytest.raises(ValidationError, match="does not exist"):
        await create_item(erp, "Lost", parent_item_id="missing")

    large = await create_item(erp, "Oak Bowl Large", "4", parent_item_id=widget.id, variant_name="Large")
    assert large.is_variant
    with pytest.raises(ValidationError, match="itself a variant"):
        await create_item(erp, "Oak Bowl Large Dark", parent_item_id=large.id)


@pytest.mark.asyncio
async def test_aggregate_stock_sums_variants(erp: ERP, widget: InventoryItem):
    assert erp.inventory.aggregate_stock(widget.id) == Decimal("10")
    await create_item(erp, "Oak Bowl Small", "2", parent_item_id=widget.id, variant_name="Small")
    await create_item(erp, "Oak Bowl Large", "5", parent_item_id=widget.id, variant_name="Large")
    assert erp.inventory.aggregate_stock(widget.id) == Decimal("7")
    assert len(erp.inventory.variants_of(widget.id)) == 2
    assert len(erp.inventory.list_items(include_variants=False)) == 1


# --- stock adjustments ---
@pytest.mark.asyncio
async def test_adjust_below_zero_is_rejected_without_side_effects(erp: ERP, store, widget: InventoryItem):
    version = erp.inventory.items.version
    calls = len(store.calls)

    with pytest.raises(InvalidOperationError):
        await erp.inventory.adjust_stock(widget.id, -15, "manual")

    assert erp.inventory.get_by_id(widget.id).current_stock == Decimal("10")
    assert erp.inventory.items.version == version
    assert len(store.calls) == calls
    assert await stored_stock(widget.id) == Decimal("10")


@pytest.mark.asyncio
async def test_adjust_for_sale(erp: ERP, store, widget: InventoryItem):
    result = await erp.inventory.adjust_stock(widget.id, -4, "sale")

    assert result.previous_quantity == Decimal("10")
    assert result.new_quantity == Decimal("6")
    assert erp.inventory.get_by_id(widget.id).current_stock == Decimal("6")
    assert await stored_stock(widget.id) == Decimal("6")

    adjustments = erp.inventory.adjustments.snapshot()
    assert len(adjustments) == 1
    assert adjustments[0].reason == "sale"
    assert adjustments[0].previous_quantity == Decimal("10")
    assert adjustments[0].new_quantity == Decimal("6")
    assert adjustments[0].item_name == widget.name

    params = store.calls_to("rpc", PROCEDURE_NAME)[0]
    assert params["p_transaction_type"] == "sales_order"
    assert params["p_reference_type"] == "adjustment"
    assert params["p_reference_id"] == adjustments[0].id
    assert params["p_notes"] == "Inventory adjustment (sale)"


@pytest.mark.asyncio
async def test_adjust_unknown_item(erp: ERP):
    with pytest.raises(NotFoundError):
        await erp.inventory.adjust_stock("missing", 1, "manual")


@pytest.mark.asyncio
async def test_audit_failure_still_moves_stock(erp: ERP, store, widget: InventoryItem):
    store.fail("insert", "inventory_adjustments")

    result = await erp.inventory.adjust_stock(widget.id, 3, "manual")

    assert result.adjustment.id.startswith("temp-")
    assert result.new_quantity == Decimal("13")
    assert await stored_stock(widget.id) == Decimal("13")
    assert len(erp.inventory.audit.pending) == 1

    store.failures.clear()
    assert await erp.inventory.flush_audit() == 1
    assert not erp.inventory.audit.pending
    assert not erp.inventory.adjustments.snapshot()[0].id.startswith("temp-")


@pytest.mark.asyncio
async def test_procedure_failure_falls_back_to_direct_update(erp: ERP, store, widget: InventoryItem):
    store.drop_shape(VARIANT_ID_SHAPE)
    store.drop_shape(VARIANT_NAME_SHAPE)

    result = await erp.inventory.adjust_stock(widget.id, -2, "manual")

    assert result.new_quantity == Decimal("8")
    assert len(store.calls_to("rpc", PROCEDURE_NAME)) == 2
    changes, _ = store.calls_to("update", "inventory_items")[-1]
    assert changes == {"current_stock": Decimal("8")}
    assert await stored_stock(widget.id) == Decimal("8")
    assert await InventoryTransaction.all().count() == 0


@pytest.mark.asyncio
async def test_legacy_procedure_shape_is_used_when_current_one_is_missing(erp: ERP, store, widget: InventoryItem):
    store.drop_shape(VARIANT_ID_SHAPE)

    await erp.inventory.adjust_stock(widget.id, 1, "craft_completed")

    first, second = store.calls_to("rpc", PROCEDURE_NAME)
    assert "p_variant_item_id" in first
    assert "p_variant_name" in second
    assert second["p_transaction_type"] == "craft_completed"
    assert await stored_stock(widget.id) == Decimal("11")
    assert not store.calls_to("update", "inventory_items")


@pytest.mark.asyncio
async def test_cached_stock_follows_the_procedure_result(erp: ERP, widget: InventoryItem):
    """Test another client's stock change is picked up from the procedure, not recomputed locally."""
    await InventoryItemRow.filter(id=widget.id).update(current_stock=Decimal("20"))

    result = await erp.inventory.adjust_stock(widget.id, -2, "manual")

    assert result.previous_quantity == Decimal("10")
    assert result.new_quantity == Decimal("18")
    assert erp.inventory.get_by_id(widget.id).current_stock == Decimal("18")
    assert await stored_stock(widget.id) == Decimal("18")


@pytest.mark.asyncio
async def test_increase_stock_and_set_stock(erp: ERP, widget: InventoryItem):
    result = await erp.inventory.increase_stock(widget.id, -3)
    assert result.new_quantity == Decimal("13")
    assert result.adjustment.reason == "return"

    previous, new = await erp.inventory.set_stock(widget.id, 4)
    assert (previous, new) == (Decimal("13"), Decimal("4"))
    with pytest.raises(InvalidOperationError):
        await erp.inventory.set_stock(widget.id, -1)


@pytest.mark.asyncio
async def test_low_stock_items(erp: ERP, widget: InventoryItem):
    assert erp.inventory.low_stock_items() == []
    await erp.inventory.adjust_stock(widget.id, -7, "manual")
    assert [item.id for item in erp.inventory.low_stock_items()] == [widget.id]


# --- item links ---
@pytest.mark.asyncio
async def test_self_link_is_rejected_before_any_store_call(erp: ERP, store, widget: InventoryItem):
    calls = len(store.calls)
    with pytest.raises(InvalidOperationError):
        await erp.inventory.add_item_link(widget.id, widget.id, 1)
    assert len(store.calls) == calls


@pytest.mark.asyncio
async def test_item_links(erp: ERP, widget: InventoryItem):
    oak = await create_item(erp, "Oak Blank", "20", item_type="Materials")
    wax = await create_item(erp, "Beeswax", "5", item_type="Materials")

    link = await erp.inventory.add_item_link(widget.id, oak.id, Decimal("1"), "one blank per bowl")
    await erp.inventory.add_item_link(widget.id, wax.id, Decimal("0.1"))

    with pytest.raises(ConflictError, match="This link already exists"):
        await erp.inventory.add_item_link(widget.id, oak.id)
    with pytest.raises(NotFoundError):
        await erp.inventory.add_item_link(widget.id, "missing")
    with pytest.raises(ValidationError):
        await erp.inventory.add_item_link(oak.id, wax.id, 0)

    assert {m.id for m in erp.inventory.get_materials_for_product(widget.id)} == {oak.id, wax.id}
    assert [p.id for p in erp.inventory.get_products_using_material(oak.id)] == [widget.id]
    from_oak = erp.inventory.get_linked_items(oak.id)
    assert [(info.item.id, info.relation) for info in from_oak] == [(widget.id, "parent")]

    updated = await erp.inventory.update_item_link(link.id, ItemLinkUpdate(quantity_required=Decimal("2")))
    assert updated.quantity_required == Decimal("2")

    await erp.inventory.remove_item_link(link.id)
    assert [m.id for m in erp.inventory.get_materials_for_product(widget.id)] == [wax.id]
    with pytest.raises(NotFoundError):
        await erp.inventory.remove_item_link(link.id)
