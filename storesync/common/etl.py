"""
Shared ETL utilities for data transformation.

Provides the parsing and coercion helpers used by the catalog, order and
subscription jobs when flattening API payloads into table rows.
"""

import json
import logging
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

logger = logging.getLogger(__name__)


def parse_date(date_str: str) -> Optional[datetime]:
    """
    Parse date string supporting common API date formats.

    Supports ISO 8601 (with Z or offset) and YYYY-MM-DD. Naive results are
    taken to be UTC.

    Examples:
        >>> parse_date("2024-01-15T10:30:00Z")
        datetime(2024, 1, 15, 10, 30, 0, tzinfo=timezone.utc)
        >>> parse_date("2024-01-15")
        datetime(2024, 1, 15, 0, 0, 0, tzinfo=timezone.utc)
    """
    if not date_str or not isinstance(date_str, str):
        return None

    try:
        if "T" in date_str:
            parsed = datetime.fromisoformat(date_str.replace("Z", "+00:00"))
        else:
            parsed = datetime.strptime(date_str, "%Y-%m-%d")
    except (ValueError, TypeError):
        try:
            # ReCharge uses "YYYY-MM-DD HH:MM:SS" in some payloads
            parsed = datetime.strptime(date_str, "%Y-%m-%d %H:%M:%S")
        except (ValueError, TypeError):
            logger.warning(f"Could not parse date string: {date_str}")
            return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def json_serialize(obj: Any, keep_empty: bool = False) -> Optional[str]:
    """
    Safely serialize object to JSON string.

    Returns None for None and, unless keep_empty is set, for empty
    collections.
    """
    if obj is None:
        return None

    try:
        if not keep_empty and hasattr(obj, "__len__") and len(obj) == 0:
            return None

        result = json.dumps(obj, default=str, ensure_ascii=False)
        return result if result and result != "null" else None
    except (TypeError, ValueError) as e:
        logger.warning(f"JSON serialization failed: {e}")
        return None


def coerce_int(value: Any) -> Optional[int]:
    """
    Safely coerce value to integer.

    Examples:
        >>> coerce_int("95.0")
        95
        >>> coerce_int("invalid")
        None
    """
    if value is None or isinstance(value, bool):
        return None

    try:
        if isinstance(value, str):
            if "." in value:
                return int(float(value))
            return int(value)

        if isinstance(value, (int, float)):
            return int(value)

        return None
    except (ValueError, TypeError):
        return None


def coerce_decimal(value: Any, default: Optional[Decimal] = None) -> Optional[Decimal]:
    """
    Safely coerce a money amount (string or number) to Decimal.

    Examples:
        >>> coerce_decimal("19.99")
        Decimal('19.99')
        >>> coerce_decimal(None, Decimal("0"))
        Decimal('0')
    """
    if value is None or value == "":
        return default

    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        logger.warning(f"Invalid decimal amount: {value!r}")
        return default


def dig(data: Any, *path: str) -> Any:
    """Follow nested dict keys, returning None at the first missing level."""
    for key in path:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data
