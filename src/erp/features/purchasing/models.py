from tortoise import fields

from ...common.models import KsuidPrimaryKeyMixin, TimestampMixin


class PurchaseOrder(KsuidPrimaryKeyMixin, TimestampMixin):
    business_id = fields.CharField(max_length=36, db_index=True)
    order_number = fields.CharField(max_length=32, unique=True)
    supplier_id = fields.CharField(max_length=27, db_index=True)
    total_amount = fields.DecimalField(max_digits=14, decimal_places=2, default=0)
    status = fields.CharField(max_length=20, default="draft")
    expected_delivery_date = fields.DateField(null=True)
    notes = fields.TextField(null=True)

    def __str__(self):
        return self.order_number

    class Meta:
        table = "purchase_orders"
        ordering = ["-created_at"]


class PurchaseOrderItem(KsuidPrimaryKeyMixin):
    purchase_order_id = fields.CharField(max_length=27, db_index=True)
    # Lines written before items were linked by id only carry a name.
    item_id = fields.CharField(max_length=27, null=True)
    variant_item_id = fields.CharField(max_length=27, null=True)
    name = fields.CharField(max_length=255, null=True)
    quantity = fields.DecimalField(max_digits=14, decimal_places=3)
    unit_cost = fields.DecimalField(max_digits=12, decimal_places=2)
    total_cost = fields.DecimalField(max_digits=14, decimal_places=2)
    received_quantity = fields.DecimalField(max_digits=14, decimal_places=3, default=0)

    class Meta:
        table = "purchase_order_items"
