"""Store tables for inventory: items, adjustments, item links and the stock ledger.

These models describe the external schema the repositories consume. Nested
structures (product types, dimensions, images, specifications) are stored as
JSON encoded text, exactly as the rows arrive from the store."""

from tortoise import fields

from ...common.models import KsuidPrimaryKeyMixin, TimestampMixin


class InventoryItem(KsuidPrimaryKeyMixin, TimestampMixin):
    business_id = fields.CharField(max_length=36, db_index=True)
    name = fields.CharField(max_length=255)
    description = fields.TextField(null=True)
    category = fields.CharField(max_length=100, null=True)
    unit_of_measure = fields.CharField(max_length=20, default="pieces")
    purchase_cost = fields.DecimalField(max_digits=12, decimal_places=2, default=0)
    selling_price = fields.DecimalField(max_digits=12, decimal_places=2, default=0)
    sale_price = fields.DecimalField(max_digits=12, decimal_places=2, null=True)
    current_stock = fields.DecimalField(max_digits=14, decimal_places=3, default=0)
    reorder_level = fields.DecimalField(max_digits=14, decimal_places=3, default=0)
    sku = fields.CharField(max_length=64, null=True, unique=True)
    is_active = fields.BooleanField(default=True)

    # Variants share the parent's identity but keep their own price/stock/images.
    is_variant = fields.BooleanField(default=False)
    parent_item_id = fields.CharField(max_length=27, null=True, db_index=True)
    variant_name = fields.CharField(max_length=255, null=True)

    item_type = fields.CharField(max_length=32, null=True)
    item_category = fields.CharField(max_length=32, null=True)
    purchased_date = fields.DateField(null=True)
    discount_percentage = fields.DecimalField(max_digits=5, decimal_places=2, null=True)
    product_types = fields.TextField(null=True)

    # E-commerce presentation
    is_website_item = fields.BooleanField(default=False)
    image_url = fields.TextField(null=True)
    additional_images = fields.TextField(null=True)
    specifications = fields.TextField(null=True)
    weight = fields.DecimalField(max_digits=10, decimal_places=3, default=0)
    dimensions = fields.TextField(null=True)
    url_slug = fields.CharField(max_length=255, null=True)
    meta_description = fields.TextField(null=True)
    is_featured = fields.BooleanField(default=False)

    def __str__(self):
        return f"{self.name} (Stock: {self.current_stock})"

    class Meta:
        table = "inventory_items"
        unique_together = (("business_id", "name"),)


class InventoryAdjustment(KsuidPrimaryKeyMixin):
    item_id = fields.CharField(max_length=27, db_index=True)
    previous_quantity = fields.DecimalField(max_digits=14, decimal_places=3)
    new_quantity = fields.DecimalField(max_digits=14, decimal_places=3)
    reason = fields.CharField(max_length=50)
    notes = fields.TextField(null=True)
    adjustment_date = fields.DatetimeField(auto_now_add=True)
    created_by = fields.CharField(max_length=100, null=True)

    class Meta:
        table = "inventory_adjustments"


class ItemLink(KsuidPrimaryKeyMixin, TimestampMixin):
    parent_item_id = fields.CharField(max_length=27, db_index=True)
    child_item_id = fields.CharField(max_length=27, db_index=True)
    quantity_required = fields.DecimalField(max_digits=14, decimal_places=3, default=1)
    notes = fields.TextField(null=True)

    class Meta:
        table = "item_links"
        unique_together = (("parent_item_id", "child_item_id"),)


class InventoryTransaction(KsuidPrimaryKeyMixin):
    """Append-only stock ledger written by `record_inventory_transaction`."""

    item_id = fields.CharField(max_length=27, db_index=True)
    variant_item_id = fields.CharField(max_length=27, null=True)
    variant_name = fields.CharField(max_length=255, null=True)
    transaction_type = fields.CharField(max_length=50)
    quantity_change = fields.DecimalField(max_digits=14, decimal_places=3)
    quantity_before = fields.DecimalField(max_digits=14, decimal_places=3)
    quantity_after = fields.DecimalField(max_digits=14, decimal_places=3)
    reference_id = fields.CharField(max_length=64, null=True)
    reference_type = fields.CharField(max_length=50, null=True)
    notes = fields.TextField(null=True)
    created_by = fields.CharField(max_length=100, null=True)
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "inventory_transactions"
        ordering = ["created_at"]
