import datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..suppliers.schemas import Supplier

PurchaseOrderStatus = Literal["draft", "sent", "confirmed", "received", "completed", "cancelled"]


class PurchaseItem(BaseModel):
    id: str
    item_id: Optional[str] = None
    variant_item_id: Optional[str] = None
    name: str = ""
    quantity: Decimal
    unit_cost: Decimal
    total_cost: Decimal
    received_quantity: Decimal = Decimal("0")

    model_config = ConfigDict(frozen=True)


class PurchaseOrder(BaseModel):
    id: str
    order_number: str
    supplier_id: str
    supplier: Optional[Supplier] = None
    items: list[PurchaseItem] = Field(default_factory=list)
    total_amount: Decimal = Decimal("0")
    status: str = "draft"
    expected_delivery_date: Optional[datetime.date] = None
    notes: str = ""
    created_at: Optional[datetime.datetime] = None
    updated_at: Optional[datetime.datetime] = None

    model_config = ConfigDict(frozen=True)


class PurchaseLineInput(BaseModel):
    """One ordered line. Lines are matched to inventory by id, or by exact name when no id is given."""

    item_id: Optional[str] = None
    variant_item_id: Optional[str] = None
    variant_name: Optional[str] = None
    name: Optional[str] = Field(None, max_length=255)
    quantity: Decimal = Field(..., gt=0)
    unit_cost: Decimal = Field(..., ge=0)


class PurchaseOrderCreate(BaseModel):
    supplier_id: str
    items: list[PurchaseLineInput] = Field(..., min_length=1)
    notes: Optional[str] = None
    expected_delivery_date: Optional[datetime.date] = None


class PurchaseOrderUpdate(BaseModel):
    supplier_id: str
    items: list[PurchaseLineInput] = Field(..., min_length=1)
    notes: Optional[str] = None


class PurchaseOrderStatusUpdate(BaseModel):
    status: PurchaseOrderStatus
