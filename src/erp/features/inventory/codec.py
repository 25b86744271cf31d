"""Row <-> entity translation for the inventory tables.

Decoding never raises: values the store hands back malformed (bad JSON, an
unknown item type, an unparsable date) fall back to the field's default.
"""

import datetime
from typing import Any, Optional

from ...common.codecs import blank_to_none, dump_json, or_default, parse_json, to_decimal
from ...common.store import Row
from .schemas import (
    ITEM_CATEGORIES,
    ITEM_TYPES,
    Dimensions,
    InventoryAdjustment,
    InventoryItem,
    ItemLink,
)


DEFAULT_DIMENSIONS = {"length": 0, "width": 0, "height": 0}

JSON_COLUMNS = {
    "product_types": [],
    "additional_images": [],
    "specifications": {},
    "dimensions": DEFAULT_DIMENSIONS,
}

TEXT_COLUMNS = ("description", "category", "image_url", "url_slug", "meta_description")


def _as_date(value: Any) -> Optional[datetime.date]:
    if value is None or isinstance(value, datetime.date):
        return value
    try:
        return datetime.date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def _as_dimensions(value: Any) -> Dimensions:
    raw = parse_json(value, DEFAULT_DIMENSIONS)
    return Dimensions(**{key: to_decimal(raw.get(key)) for key in DEFAULT_DIMENSIONS})


def _as_string_list(value: Any) -> list[str]:
    return [str(entry) for entry in parse_json(value, []) if entry is not None]


def _as_string_map(value: Any) -> dict[str, str]:
    return {str(key): str(entry) for key, entry in parse_json(value, {}).items()}


def decode_item(row: Row) -> InventoryItem:
    sale_price = row.get("sale_price")
    discount = row.get("discount_percentage")
    item_type = row.get("item_type")
    item_category = row.get("item_category")
    return InventoryItem(
        id=str(row["id"]),
        business_id=or_default(row.get("business_id"), ""),
        name=or_default(row.get("name"), ""),
        description=or_default(row.get("description"), ""),
        category=or_default(row.get("category"), ""),
        unit_of_measure=row.get("unit_of_measure") or "pieces",
        purchase_cost=to_decimal(row.get("purchase_cost")),
        selling_price=to_decimal(row.get("selling_price")),
        sale_price=None if sale_price is None else to_decimal(sale_price),
        current_stock=to_decimal(row.get("current_stock")),
        reorder_level=to_decimal(row.get("reorder_level")),
        sku=blank_to_none(row.get("sku")),
        is_active=bool(or_default(row.get("is_active"), True)),
        is_variant=bool(row.get("is_variant")),
        parent_item_id=row.get("parent_item_id"),
        variant_name=row.get("variant_name"),
        item_type=item_type if item_type in ITEM_TYPES else None,
        item_category=item_category if item_category in ITEM_CATEGORIES else None,
        purchased_date=_as_date(row.get("purchased_date")),
        discount_percentage=None if discount is None else to_decimal(discount),
        product_types=_as_string_list(row.get("product_types")),
        is_website_item=bool(row.get("is_website_item")),
        image_url=or_default(row.get("image_url"), ""),
        additional_images=_as_string_list(row.get("additional_images")),
        specifications=_as_string_map(row.get("specifications")),
        weight=to_decimal(row.get("weight")),
        dimensions=_as_dimensions(row.get("dimensions")),
        url_slug=or_default(row.get("url_slug"), ""),
        meta_description=or_default(row.get("meta_description"), ""),
        is_featured=bool(row.get("is_featured")),
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at"),
    )


def encode_item(fields: dict[str, Any]) -> Row:
    """Flatten entity fields (a full dump or a partial update) into store columns.

    Only keys present in `fields` are emitted, so partial updates stay partial.
    """
    row: Row = {}
    for key, value in fields.items():
        if key in JSON_COLUMNS:
            if hasattr(value, "model_dump"):
                value = value.model_dump()
            row[key] = dump_json(JSON_COLUMNS[key] if value is None else value)
        elif key == "sku":
            row[key] = blank_to_none(value)
        elif key in TEXT_COLUMNS:
            row[key] = or_default(value, "")
        else:
            row[key] = value
    return row


def decode_adjustment(row: Row, item_name: str = "") -> InventoryAdjustment:
    return InventoryAdjustment(
        id=str(row["id"]),
        item_id=str(row.get("item_id") or ""),
        previous_quantity=to_decimal(row.get("previous_quantity")),
        new_quantity=to_decimal(row.get("new_quantity")),
        reason=or_default(row.get("reason"), "adjustment"),
        notes=or_default(row.get("notes"), ""),
        adjustment_date=row.get("adjustment_date"),
        created_by=or_default(row.get("created_by"), ""),
        item_name=item_name,
    )


def decode_link(row: Row) -> ItemLink:
    return ItemLink(
        id=str(row["id"]),
        parent_item_id=str(row.get("parent_item_id") or ""),
        child_item_id=str(row.get("child_item_id") or ""),
        quantity_required=to_decimal(row.get("quantity_required"), default=to_decimal(1)),
        notes=or_default(row.get("notes"), ""),
        created_at=row.get("created_at"),
    )
