from tortoise import fields

from ...common.models import KsuidPrimaryKeyMixin, TimestampMixin


class FinancialTransaction(KsuidPrimaryKeyMixin, TimestampMixin):
    business_id = fields.CharField(max_length=36, db_index=True)
    type = fields.CharField(max_length=10)  # income | expense
    amount = fields.DecimalField(max_digits=14, decimal_places=2)
    category = fields.CharField(max_length=100)
    description = fields.TextField(null=True)
    date = fields.DatetimeField()
    payment_method = fields.CharField(max_length=20, default="cash")
    # Order number of the purchase/sales order this entry books, if any.
    reference_number = fields.CharField(max_length=64, null=True)
    bill_images = fields.TextField(null=True)

    class Meta:
        table = "financial_transactions"
        ordering = ["-date"]
        unique_together = (("reference_number", "category", "type"),)
