from tortoise import fields

from ...common.models import KsuidPrimaryKeyMixin, TimestampMixin


class Supplier(KsuidPrimaryKeyMixin, TimestampMixin):
    business_id = fields.CharField(max_length=36, db_index=True)
    name = fields.CharField(max_length=255)
    telephone = fields.CharField(max_length=50, null=True)
    address = fields.TextField(null=True)
    payment_terms = fields.CharField(max_length=100, null=True)
    is_active = fields.BooleanField(default=True)

    def __str__(self):
        return self.name

    class Meta:
        table = "suppliers"
        ordering = ["name"]
