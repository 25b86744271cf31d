import datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

ItemType = Literal["Materials", "Finished Products"]
ItemCategory = Literal["Selling", "Crafting"]

ITEM_TYPES = ("Materials", "Finished Products")
ITEM_CATEGORIES = ("Selling", "Crafting")


# --- Entities (immutable, cached by the repository) ---
class Dimensions(BaseModel):
    length: Decimal = Decimal("0")
    width: Decimal = Decimal("0")
    height: Decimal = Decimal("0")

    model_config = ConfigDict(frozen=True)


class InventoryItem(BaseModel):
    id: str
    business_id: str = ""
    name: str
    description: str = ""
    category: str = ""
    unit_of_measure: str = "pieces"
    purchase_cost: Decimal = Decimal("0")
    selling_price: Decimal = Decimal("0")
    sale_price: Optional[Decimal] = None
    current_stock: Decimal = Decimal("0")
    reorder_level: Decimal = Decimal("0")
    sku: Optional[str] = None
    is_active: bool = True

    is_variant: bool = False
    parent_item_id: Optional[str] = None
    variant_name: Optional[str] = None

    item_type: Optional[ItemType] = None
    item_category: Optional[ItemCategory] = None
    purchased_date: Optional[datetime.date] = None
    discount_percentage: Optional[Decimal] = None
    product_types: list[str] = Field(default_factory=list)

    is_website_item: bool = False
    image_url: str = ""
    additional_images: list[str] = Field(default_factory=list)
    specifications: dict[str, str] = Field(default_factory=dict)
    weight: Decimal = Decimal("0")
    dimensions: Dimensions = Field(default_factory=Dimensions)
    url_slug: str = ""
    meta_description: str = ""
    is_featured: bool = False

    created_at: Optional[datetime.datetime] = None
    updated_at: Optional[datetime.datetime] = None

    model_config = ConfigDict(frozen=True)

    @property
    def effective_price(self) -> Decimal:
        """Sale price when one is set, otherwise the regular selling price."""
        return self.sale_price if self.sale_price is not None else self.selling_price


class InventoryAdjustment(BaseModel):
    """Audit record of one stock change. Ids starting with `temp-` were never persisted."""

    id: str
    item_id: str
    previous_quantity: Decimal
    new_quantity: Decimal
    reason: str
    notes: str = ""
    adjustment_date: Optional[datetime.datetime] = None
    created_by: str = ""
    item_name: str = ""

    model_config = ConfigDict(frozen=True)

    @property
    def is_persisted(self) -> bool:
        return not self.id.startswith("temp-")


class ItemLink(BaseModel):
    id: str
    parent_item_id: str
    child_item_id: str
    quantity_required: Decimal = Decimal("1")
    notes: str = ""
    created_at: Optional[datetime.datetime] = None

    model_config = ConfigDict(frozen=True)


class LinkedItemInfo(BaseModel):
    """An item seen from the other end of an `ItemLink`.

    `relation` is "child" when the linked item is required by the item we
    started from, and "parent" when the linked item requires it.
    """

    link_id: str
    item: InventoryItem
    relation: Literal["child", "parent"]
    quantity_required: Decimal
    notes: str = ""

    model_config = ConfigDict(frozen=True)


class StockAdjustmentResult(BaseModel):
    previous_quantity: Decimal
    new_quantity: Decimal
    adjustment: InventoryAdjustment

    model_config = ConfigDict(frozen=True)


# --- Inputs ---
class InventoryItemCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255, description="Name of the inventory item")
    description: Optional[str] = None
    category: Optional[str] = Field(None, max_length=100)
    unit_of_measure: Optional[str] = Field(None, max_length=20)
    purchase_cost: Decimal = Field(default=Decimal("0"), ge=0)
    selling_price: Decimal = Field(default=Decimal("0"), ge=0)
    sale_price: Optional[Decimal] = Field(None, ge=0)
    current_stock: Decimal = Field(default=Decimal("0"), ge=0, description="Opening stock quantity")
    reorder_level: Decimal = Field(default=Decimal("0"), ge=0)
    sku: Optional[str] = Field(None, max_length=64)
    is_active: bool = True

    is_variant: bool = False
    parent_item_id: Optional[str] = Field(None, description="Parent item id, required for variants")
    variant_name: Optional[str] = None

    item_type: Optional[ItemType] = None
    item_category: Optional[ItemCategory] = None
    purchased_date: Optional[datetime.date] = None
    discount_percentage: Optional[Decimal] = Field(None, ge=0, le=100)
    product_types: list[str] = Field(default_factory=list)

    is_website_item: bool = False
    image_url: Optional[str] = None
    additional_images: list[str] = Field(default_factory=list)
    specifications: dict[str, str] = Field(default_factory=dict)
    weight: Decimal = Field(default=Decimal("0"), ge=0)
    dimensions: Optional[Dimensions] = None
    url_slug: Optional[str] = None
    meta_description: Optional[str] = None
    is_featured: bool = False


class InventoryItemUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    category: Optional[str] = Field(None, max_length=100)
    unit_of_measure: Optional[str] = Field(None, max_length=20)
    purchase_cost: Optional[Decimal] = Field(None, ge=0)
    selling_price: Optional[Decimal] = Field(None, ge=0)
    sale_price: Optional[Decimal] = Field(None, ge=0)
    current_stock: Optional[Decimal] = Field(None, ge=0)
    reorder_level: Optional[Decimal] = Field(None, ge=0)
    sku: Optional[str] = Field(None, max_length=64)
    is_active: Optional[bool] = None
    variant_name: Optional[str] = None
    item_type: Optional[ItemType] = None
    item_category: Optional[ItemCategory] = None
    purchased_date: Optional[datetime.date] = None
    discount_percentage: Optional[Decimal] = Field(None, ge=0, le=100)
    product_types: Optional[list[str]] = None
    is_website_item: Optional[bool] = None
    image_url: Optional[str] = None
    additional_images: Optional[list[str]] = None
    specifications: Optional[dict[str, str]] = None
    weight: Optional[Decimal] = Field(None, ge=0)
    dimensions: Optional[Dimensions] = None
    url_slug: Optional[str] = None
    meta_description: Optional[str] = None
    is_featured: Optional[bool] = None


class ItemLinkCreate(BaseModel):
    parent_item_id: str
    child_item_id: str
    quantity_required: Decimal = Field(default=Decimal("1"), gt=0)
    notes: Optional[str] = None


class ItemLinkUpdate(BaseModel):
    quantity_required: Optional[Decimal] = Field(None, gt=0)
    notes: Optional[str] = None


class StockAdjustmentRequest(BaseModel):
    quantity_delta: Decimal = Field(..., description="Signed change applied to current stock")
    reason: str = Field(..., min_length=1, description="sale, purchase_order, return, manual, ...")
    notes: Optional[str] = None


class StockLevelRequest(BaseModel):
    new_quantity: Decimal = Field(..., ge=0)
