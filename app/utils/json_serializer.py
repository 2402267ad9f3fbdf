"""
Conversion of attendance values into JSON-safe data for JSON columns
(audit_logs.meta_json, attendance_logs.raw_data) and notification payloads.
"""
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel

from app.utils.datetime_utils import ensure_utc


def sanitize_for_json(obj: Any) -> Any:
    """
    Recursively convert ``obj`` to str/int/float/bool/None, lists and dicts.

    Datetimes become UTC ISO-8601 strings (naive ones are taken as UTC), enums
    their value, Decimals a string so hours keep their two places, and device
    bytes are decoded leniently. Unknown objects fall back to ``str()``.
    """
    if obj is None or isinstance(obj, (bool, int, float, str)):
        return obj
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, datetime):
        return ensure_utc(obj).isoformat()
    if isinstance(obj, (date, time)):
        return obj.isoformat()
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, (bytes, bytearray)):
        return bytes(obj).decode("utf-8", errors="replace")
    if isinstance(obj, UUID):
        return str(obj)
    if isinstance(obj, dict):
        return {str(k): sanitize_for_json(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple, set, frozenset)):
        return [sanitize_for_json(item) for item in obj]
    if isinstance(obj, BaseModel):
        return sanitize_for_json(obj.model_dump())
    return str(obj)
