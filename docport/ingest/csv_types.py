"""
CSV value type detection and casting.

Every cell is a string; ``detect_value_type`` classifies it against the
candidate types and ``cast_value`` converts it to a target type.
"""

import re
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from docport.ingest.types import CSVFieldType

INT32_MIN, INT32_MAX = -(2 ** 31), 2 ** 31 - 1
INT64_MIN, INT64_MAX = -(2 ** 63), 2 ** 63 - 1

# int64 has at most 19 digits; longer integers are never parsed
INT64_MAX_DIGITS = 19

# No leading zeros: "007" stays a string
_INTEGER = re.compile(r"^-?(0|[1-9]\d*)$")
_DOUBLE = re.compile(r"^-?((0|[1-9]\d*)(\.\d*)?|\.\d+)([eE][-+]?\d+)?$")
_OBJECT_ID = re.compile(r"^[0-9a-fA-F]{24}$")
_UUID = re.compile(
    r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$")
_DATE = re.compile(
    r"^\d{4}-\d{2}-\d{2}"
    r"([T ]\d{2}:\d{2}(:\d{2}(\.\d{1,6})?)?(Z|[+-]\d{2}:?\d{2})?)?$")

_TRUE_VALUES = {"true"}
_FALSE_VALUES = {"false"}

_NUMERIC_WIDTH = {
    CSVFieldType.INT: 0,
    CSVFieldType.LONG: 1,
    CSVFieldType.DOUBLE: 2,
}


def _digit_count(text: str) -> int:
    return len(text) - text.startswith("-")


def parse_date(value: str) -> datetime:
    """
    Parse an ISO-8601 date or datetime.

    Naive values are taken as UTC.

    Raises:
        ValueError: If the value is not a valid ISO-8601 date
    """
    text = value.strip()
    if not _DATE.match(text):
        raise ValueError(f"Invalid date: {value!r}")
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    if len(text) > 5 and text[-5] in "+-" and ":" not in text[-5:]:
        # +0200 -> +02:00
        text = f"{text[:-2]}:{text[-2:]}"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def detect_value_type(value: str, ignore_blanks: bool = True) -> Optional[CSVFieldType]:
    """
    Classify one CSV cell.

    Returns:
        The most specific matching type, or None for a blank cell that is
        excluded from voting
    """
    if value == "":
        return None if ignore_blanks else CSVFieldType.STRING

    lowered = value.lower()
    if lowered == "null":
        return CSVFieldType.NULL
    if lowered in _TRUE_VALUES or lowered in _FALSE_VALUES:
        return CSVFieldType.BOOLEAN

    if _INTEGER.match(value) and _digit_count(value) <= INT64_MAX_DIGITS:
        number = int(value)
        if INT32_MIN <= number <= INT32_MAX:
            return CSVFieldType.INT
        if INT64_MIN <= number <= INT64_MAX:
            return CSVFieldType.LONG

    if _OBJECT_ID.match(value):
        return CSVFieldType.OBJECT_ID
    if _UUID.match(value):
        return CSVFieldType.UUID

    if _DOUBLE.match(value) and not _INTEGER.match(value):
        return CSVFieldType.DOUBLE

    if _DATE.match(value):
        try:
            parse_date(value)
            return CSVFieldType.DATE
        except ValueError:
            pass

    return CSVFieldType.STRING


def detect_field_type(type_counts: Dict[CSVFieldType, int]) -> CSVFieldType:
    """
    Pick the detected type of a field from its votes.

    1. null votes are ignored; a field with only null votes is ``null`` and a
       field without votes is ``mixed``
    2. numeric votes only: the widest of int < long < double
    3. a single remaining type wins
    4. anything else is ``mixed``
    """
    seen = {t for t, count in type_counts.items() if count > 0}
    non_null = seen - {CSVFieldType.NULL}

    if not non_null:
        return CSVFieldType.NULL if CSVFieldType.NULL in seen else CSVFieldType.MIXED

    if non_null <= set(_NUMERIC_WIDTH):
        return max(non_null, key=lambda t: _NUMERIC_WIDTH[t])

    if len(non_null) == 1:
        return next(iter(non_null))

    return CSVFieldType.MIXED


def cast_value(value: str, target: CSVFieldType) -> Any:
    """
    Cast a non-blank CSV cell to a target type.

    Raises:
        ValueError: If the value cannot be represented as the target type
    """
    if target == CSVFieldType.STRING:
        return value

    if target == CSVFieldType.MIXED:
        guessed = detect_value_type(value, ignore_blanks=False)
        return cast_value(value, guessed)

    if target == CSVFieldType.NULL:
        return None

    if target in (CSVFieldType.INT, CSVFieldType.LONG):
        text = value.strip()
        if _INTEGER.match(text) and _digit_count(text) > INT64_MAX_DIGITS:
            raise ValueError(f"{value!r} is out of range for {target.value}")
        try:
            number = int(text)
        except ValueError:
            # Accept integral doubles such as "3.0"
            as_float = float(text)
            if not as_float.is_integer():
                raise ValueError(f"{value!r} is not an integer")
            number = int(as_float)
        low, high = (INT32_MIN, INT32_MAX) if target == CSVFieldType.INT else (INT64_MIN, INT64_MAX)
        if not low <= number <= high:
            raise ValueError(f"{value!r} is out of range for {target.value}")
        return number

    if target == CSVFieldType.DOUBLE:
        return float(value.strip())

    if target == CSVFieldType.BOOLEAN:
        lowered = value.strip().lower()
        if lowered in _TRUE_VALUES or lowered == "1":
            return True
        if lowered in _FALSE_VALUES or lowered == "0":
            return False
        raise ValueError(f"{value!r} is not a boolean")

    if target == CSVFieldType.DATE:
        text = value.strip()
        if _INTEGER.match(text) and _digit_count(text) <= INT64_MAX_DIGITS:
            # Milliseconds since the epoch
            return datetime.fromtimestamp(int(text) / 1000, tz=timezone.utc)
        return parse_date(text)

    if target == CSVFieldType.OBJECT_ID:
        text = value.strip()
        if not _OBJECT_ID.match(text):
            raise ValueError(f"{value!r} is not a valid ObjectId")
        return text.lower()

    if target == CSVFieldType.UUID:
        return str(uuid.UUID(value.strip()))

    raise ValueError(f"Unsupported target type: {target}")
