import datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

InvoiceStatus = Literal["pending", "paid", "cancelled"]
INVOICE_STATUSES = ("pending", "paid", "cancelled")

STANDARD_STATUSES = ("pending", "processing", "completed", "cancelled", "draft", "confirmed", "shipped", "delivered")
# Statuses used by the manual (made-to-order) workflow, in order.
MANUAL_STATUSES = ("Order Confirmed", "Advance Paid", "Crafted", "Delivered", "Full Payment Done")
SALES_ORDER_STATUSES = STANDARD_STATUSES + MANUAL_STATUSES

WALK_IN_CUSTOMER = "Walk-in Customer"


# --- Customers ---
class Customer(BaseModel):
    id: str
    name: str
    telephone: str = ""
    address: str = ""
    email: str = ""
    created_at: Optional[datetime.datetime] = None

    model_config = ConfigDict(frozen=True)


class CustomerCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    telephone: Optional[str] = Field(None, max_length=50)
    address: Optional[str] = None
    email: Optional[EmailStr] = None


class CustomerUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    telephone: Optional[str] = Field(None, max_length=50)
    address: Optional[str] = None
    email: Optional[EmailStr] = None


# --- Orders ---
class SaleItem(BaseModel):
    id: str
    product_id: str
    variant_item_id: Optional[str] = None
    name: str = ""
    quantity: Decimal
    unit_price: Decimal
    discount: Decimal = Decimal("0")
    total_price: Decimal
    returned_quantity: Decimal = Decimal("0")

    model_config = ConfigDict(frozen=True)

    @property
    def stock_item_id(self) -> str:
        """The inventory row whose stock this line moves."""
        return self.variant_item_id or self.product_id


class SalesOrder(BaseModel):
    id: str
    order_number: str
    customer_id: Optional[str] = None
    customer: Optional[Customer] = None
    items: list[SaleItem] = Field(default_factory=list)
    status: str = "pending"
    order_date: Optional[datetime.datetime] = None
    total_amount: Decimal = Decimal("0")
    advance_payment_amount: Decimal = Decimal("0")
    remaining_balance: Decimal = Decimal("0")
    payment_method: str = "cash"
    notes: str = ""
    order_source: str = "manual"
    # Set once the ordered quantities have been taken out of stock.
    stock_issued_at: Optional[datetime.datetime] = None

    customer_name: str = ""
    customer_email: str = ""
    customer_phone: str = ""
    shipping_address: str = ""
    shipping_city: str = ""
    shipping_postal_code: str = ""
    delivery_instructions: str = ""

    created_at: Optional[datetime.datetime] = None
    updated_at: Optional[datetime.datetime] = None

    model_config = ConfigDict(frozen=True)

    @property
    def display_customer_name(self) -> str:
        if self.customer_name:
            return self.customer_name
        return self.customer.name if self.customer else WALK_IN_CUSTOMER


class Invoice(BaseModel):
    id: str
    sales_order_id: str
    invoice_number: str
    amount: Decimal
    status: str = "pending"
    created_at: Optional[datetime.datetime] = None
    paid_at: Optional[datetime.datetime] = None

    model_config = ConfigDict(frozen=True)


class SaleLineInput(BaseModel):
    item_id: str = Field(..., description="Inventory item sold")
    variant_item_id: Optional[str] = None
    quantity: Decimal = Field(..., gt=0)
    unit_price: Optional[Decimal] = Field(None, ge=0, description="Defaults to the item's current price")
    discount: Decimal = Field(default=Decimal("0"), ge=0, description="Absolute discount on the line")


class SalesOrderCreate(BaseModel):
    customer_id: Optional[str] = Field(None, description="Customer id; empty or 'walk-in' for walk-in sales")
    items: list[SaleLineInput] = Field(..., min_length=1)
    payment_method: str = "cash"
    status: str = "pending"
    notes: Optional[str] = None
    order_source: str = "manual"
    advance_payment_amount: Decimal = Field(default=Decimal("0"), ge=0)
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    shipping_address: Optional[str] = None
    shipping_city: Optional[str] = None
    shipping_postal_code: Optional[str] = None
    delivery_instructions: Optional[str] = None


class SalesOrderUpdate(BaseModel):
    payment_method: Optional[str] = None
    notes: Optional[str] = None
    advance_payment_amount: Optional[Decimal] = Field(None, ge=0)
    shipping_address: Optional[str] = None
    shipping_city: Optional[str] = None
    shipping_postal_code: Optional[str] = None
    delivery_instructions: Optional[str] = None

    # Status changes go through the status endpoint, which moves stock.
    model_config = ConfigDict(extra="forbid")


class SalesOrderStatusUpdate(BaseModel):
    status: str


class InvoiceStatusUpdate(BaseModel):
    status: InvoiceStatus


class POSCheckout(BaseModel):
    customer_id: Optional[str] = None
    items: list[SaleLineInput] = Field(..., min_length=1)
    payment_method: str = "cash"
    notes: Optional[str] = None


class ReturnLineInput(BaseModel):
    item_id: str
    quantity: Decimal = Field(..., gt=0)


class SalesReturnRequest(BaseModel):
    items: list[ReturnLineInput] = Field(..., min_length=1)
    notes: Optional[str] = None
