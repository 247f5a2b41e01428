"""Shared JSON serialization utilities for log records and query output."""

from datetime import date, datetime, time, timedelta
from decimal import Decimal
from pathlib import Path
from typing import Any
from uuid import UUID


def _serialize_known_type(obj: Any) -> tuple[bool, Any]:
    """Try to serialize by known type. Returns (handled, result)."""
    if isinstance(obj, (datetime, date, time)):
        return True, obj.isoformat()
    if isinstance(obj, timedelta):
        return True, obj.total_seconds()
    if isinstance(obj, Decimal):
        return True, float(obj)
    if isinstance(obj, (Path, UUID)):
        return True, str(obj)
    if isinstance(obj, (bytes, bytearray, memoryview)):
        return True, bytes(obj).hex()
    return False, None


def json_serializer(obj: Any) -> Any:
    """
    Type-safe ``default=`` hook for json.dumps.

    Keeps numbers numeric instead of converting everything to strings:
    - datetime/date/time → ISO 8601 string
    - timedelta → seconds
    - Decimal → float
    - Path/UUID → string
    - bytes → hex string
    - Enums → value
    - Everything else → string (fallback)
    """
    handled, result = _serialize_known_type(obj)
    if handled:
        return result
    if hasattr(obj, "value"):
        return obj.value
    return str(obj)


__all__ = ["json_serializer"]
