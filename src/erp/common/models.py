"""Models module for the ERP store.

This module contains the common table mixins shared by every table of the
backing store. Row ids are KSUIDs (K-Sortable Unique IDentifiers), which are
time-ordered, URL-safe strings, so rows sort chronologically by id."""

from tortoise import fields, models
from ksuid import ksuid


def generate_ksuid():
    """Generate a K-Sortable Unique IDentifier (KSUID).

    KSUIDs are time-ordered ids that are suitable for distributed systems.
    They are URL-safe, timestamp prefixed, and sortable chronologically.

    Returns:
        str: A string representation of the generated KSUID.
    """
    return str(ksuid.Ksuid())


class KsuidPrimaryKeyMixin(models.Model):
    id = fields.CharField(max_length=27, primary_key=True, default=generate_ksuid)

    class Meta:
        abstract = True


class TimestampMixin(models.Model):
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        abstract = True
