from tortoise import fields

from ...common.models import KsuidPrimaryKeyMixin, TimestampMixin


class Customer(KsuidPrimaryKeyMixin, TimestampMixin):
    name = fields.CharField(max_length=255)
    telephone = fields.CharField(max_length=50, null=True)
    address = fields.TextField(null=True)
    email = fields.CharField(max_length=255, null=True)

    def __str__(self):
        return self.name

    class Meta:
        table = "customers"
        ordering = ["name"]


class SalesOrder(KsuidPrimaryKeyMixin, TimestampMixin):
    order_number = fields.CharField(max_length=16, unique=True)
    # NULL for walk-in customers.
    customer_id = fields.CharField(max_length=27, null=True, db_index=True)
    status = fields.CharField(max_length=32, default="pending")
    order_date = fields.DatetimeField(auto_now_add=True)
    total_amount = fields.DecimalField(max_digits=14, decimal_places=2, default=0)
    advance_payment_amount = fields.DecimalField(max_digits=14, decimal_places=2, default=0)
    remaining_balance = fields.DecimalField(max_digits=14, decimal_places=2, default=0)
    payment_method = fields.CharField(max_length=20, default="cash")
    notes = fields.TextField(null=True)
    order_source = fields.CharField(max_length=20, default="manual")  # manual | website | pos | api
    stock_issued_at = fields.DatetimeField(null=True)

    customer_name = fields.CharField(max_length=255, null=True)
    customer_email = fields.CharField(max_length=255, null=True)
    customer_phone = fields.CharField(max_length=50, null=True)
    shipping_address = fields.TextField(null=True)
    shipping_city = fields.CharField(max_length=100, null=True)
    shipping_postal_code = fields.CharField(max_length=20, null=True)
    delivery_instructions = fields.TextField(null=True)

    def __str__(self):
        return self.order_number

    class Meta:
        table = "sales_orders"
        ordering = ["-created_at"]


class SalesOrderItem(KsuidPrimaryKeyMixin):
    sales_order_id = fields.CharField(max_length=27, db_index=True)
    product_id = fields.CharField(max_length=27)
    variant_item_id = fields.CharField(max_length=27, null=True)
    quantity = fields.DecimalField(max_digits=14, decimal_places=3)
    unit_price = fields.DecimalField(max_digits=12, decimal_places=2)
    discount = fields.DecimalField(max_digits=12, decimal_places=2, default=0)
    total_price = fields.DecimalField(max_digits=14, decimal_places=2)
    returned_quantity = fields.DecimalField(max_digits=14, decimal_places=3, default=0)

    class Meta:
        table = "sales_order_items"


class Invoice(KsuidPrimaryKeyMixin):
    sales_order_id = fields.CharField(max_length=27, unique=True)
    invoice_number = fields.CharField(max_length=32)
    amount = fields.DecimalField(max_digits=14, decimal_places=2)
    status = fields.CharField(max_length=20, default="pending")
    created_at = fields.DatetimeField(auto_now_add=True)
    paid_at = fields.DatetimeField(null=True)

    class Meta:
        table = "invoices"
        ordering = ["-created_at"]
