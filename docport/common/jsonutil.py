"""
JSON encoding helpers for documents.

Dates are written as ``{"$date": "<ISO-8601>"}`` so they survive a round trip
through the error log, the SQL backing store and JSON exports.
"""

import json
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict
from uuid import UUID


def encode_value(value: Any) -> Any:
    """``default`` hook for ``json.dumps``."""
    if isinstance(value, datetime):
        return {"$date": value.isoformat()}
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, (set, tuple)):
        return list(value)
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def decode_object(obj: Dict[str, Any]) -> Any:
    """``object_hook`` for ``json.loads``."""
    if len(obj) == 1 and "$date" in obj and isinstance(obj["$date"], str):
        try:
            return datetime.fromisoformat(obj["$date"])
        except ValueError:
            return obj
    return obj


def dumps(value: Any, **kwargs) -> str:
    return json.dumps(value, default=encode_value, ensure_ascii=False, **kwargs)


def loads(text: str) -> Any:
    return json.loads(text, object_hook=decode_object)


def revive(value: Any) -> Any:
    """Apply ``decode_object`` to an already parsed value, depth first."""
    if isinstance(value, dict):
        return decode_object({k: revive(v) for k, v in value.items()})
    if isinstance(value, list):
        return [revive(v) for v in value]
    return value
