"""
Payload Serialization

Cached query results are stored as a JSON envelope:

    {"present": true, "rows": [...]}

The envelope lets an empty result set be cached as a real hit instead of
being indistinguishable from "nothing cached". Bare JSON lists written by
older deployments are still read; an empty bare list counts as a miss.
"""

import json
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from feedcache.cache.exceptions import PayloadDecodeError


def _default_handler(obj: Any) -> Any:
    """Convert database values json can't encode natively."""
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, Decimal):
        # numeric allows Infinity and NaN
        if not obj.is_finite():
            return str(obj)
        # int8 and numeric columns must not lose precision
        return int(obj) if obj == obj.to_integral_value() else str(obj)
    if isinstance(obj, UUID):
        return str(obj)
    if isinstance(obj, (bytes, bytearray, memoryview)):
        return bytes(obj).hex()
    if hasattr(obj, "__dict__"):
        return obj.__dict__
    return str(obj)


def serialize_rows(rows: List[Dict[str, Any]]) -> str:
    """Serialize query rows into a payload envelope."""
    envelope = {"present": True, "rows": list(rows)}
    return json.dumps(envelope, default=_default_handler, ensure_ascii=False)


def deserialize_rows(data: Optional[str]) -> Optional[List[Dict[str, Any]]]:
    """
    Decode a payload record.

    Returns None when there is nothing usable cached, the rows otherwise
    (possibly an empty list for a cached empty result).

    Raises:
        PayloadDecodeError: If the payload is not valid JSON or has an
            unexpected shape.
    """
    if not data:
        return None

    try:
        decoded = json.loads(data)
    except (TypeError, ValueError) as e:
        raise PayloadDecodeError(f"Invalid cached payload: {e}") from e

    if isinstance(decoded, list):
        # Legacy bare list: empty means miss
        return decoded or None

    if isinstance(decoded, dict) and "rows" in decoded:
        if not decoded.get("present", False):
            return None
        rows = decoded["rows"]
        if not isinstance(rows, list):
            raise PayloadDecodeError(
                f"Cached rows must be a list, got {type(rows).__name__}"
            )
        return rows

    raise PayloadDecodeError(
        f"Unexpected cached payload type: {type(decoded).__name__}"
    )
