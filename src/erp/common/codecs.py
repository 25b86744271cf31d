"""Helpers for decoding flat store rows into typed entities and back.

Store rows use snake_case columns, nullable optional fields and JSON encoded
strings for nested structures. Decoding must never raise: a malformed value
is replaced by the documented default for that field.
"""

import copy
import json
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

logger = logging.getLogger(__name__)


def parse_json(value: Any, default: Any) -> Any:
    """Decode a JSON column, falling back to a copy of `default`.

    Already-decoded values are accepted as long as their type matches the
    default's type; a list where a dict is expected (or vice versa) counts as
    malformed.
    """
    if value is None or value == "":
        return copy.deepcopy(default)
    if isinstance(value, (str, bytes)):
        try:
            value = json.loads(value)
        except (TypeError, ValueError):
            logger.debug(f"Malformed JSON column value {value!r}, using default")
            return copy.deepcopy(default)
    if not isinstance(value, type(default)):
        return copy.deepcopy(default)
    return value


def dump_json(value: Any) -> str:
    return json.dumps(value, default=str)


def blank_to_none(value: Optional[str]) -> Optional[str]:
    """Trimmed string, or None when empty."""
    if value is None:
        return None
    value = value.strip()
    return value or None


def or_default(value: Any, default: Any) -> Any:
    return default if value is None else value


def to_decimal(value: Any, default: Decimal = Decimal("0")) -> Decimal:
    """Coerce numeric column values (Decimal, float, int, str, None) to Decimal."""
    if value is None or value == "":
        return default
    if isinstance(value, Decimal):
        return value
    try:
        # floats go through their shortest repr
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return default
