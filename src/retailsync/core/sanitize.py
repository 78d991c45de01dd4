"""
Field coercion for upstream records.

Upstream payloads are loosely typed: numbers arrive as strings, strings
exceed column limits, dates carry 7-digit fractions. Each column is
described by a ``FieldSpec`` and coerced here before it reaches the DB.
No DB access; plain functions so they are easy to test.
"""
import json
import math
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional

from retailsync.exceptions import RecordValidationError

_FRACTION_RE = re.compile(r"\.(\d+)")

# Signed 64-bit range of an INTEGER column
INT_MIN, INT_MAX = -(2 ** 63), 2 ** 63 - 1

KINDS = ("str", "int", "float", "bool", "datetime", "json")


@dataclass(frozen=True)
class FieldSpec:
    """
    Mapping of one upstream field onto one column.

    ``source`` may be a dotted path into nested objects
    (e.g. ``"partnerDelivery.code"``); it defaults to ``column``.
    ``default`` is used when the value is missing or cannot be coerced.
    """

    column: str
    source: Optional[str] = None
    kind: str = "str"
    max_length: Optional[int] = None
    default: Any = None
    required: bool = False

    def __post_init__(self):
        if self.kind not in KINDS:
            raise ValueError(f"Unknown field kind {self.kind!r}")

    @property
    def path(self) -> str:
        return self.source or self.column


def lookup(record: Dict[str, Any], path: str) -> Any:
    """Follow a dotted path through nested dicts; missing → None."""
    value: Any = record
    for part in path.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse upstream timestamps into naive UTC datetimes.

    Handles ``datetime`` objects, ISO 8601 strings with or without a ``Z``
    or offset suffix, and KiotViet's 7-digit fractional seconds
    (``2025-03-01T10:22:33.1230000``). Anything else → None.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        s = value.strip()
        if s.endswith("Z"):
            s = s[:-1] + "+00:00"
        # fromisoformat rejects more than 6 fractional digits on older Pythons
        s = _FRACTION_RE.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), s, count=1)
        try:
            dt = datetime.fromisoformat(s)
        except ValueError:
            return None
    else:
        return None

    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def to_number(value: Any, default: Any = 0, cast=float) -> Any:
    """Coerce to a number; None, NaN, garbage and out-of-range ints become ``default``."""
    if value is None or value == "" or isinstance(value, (dict, list)):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(number) or math.isinf(number):
        return default
    result = cast(number)
    if cast is int and not INT_MIN <= result <= INT_MAX:
        return default
    return result


def to_bool(value: Any, default: Optional[bool] = False) -> Optional[bool]:
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes")
    return bool(value)


def truncate(value: Any, max_length: Optional[int], default: Any = None) -> Optional[str]:
    if value is None:
        return default
    text = value if isinstance(value, str) else str(value)
    return text[:max_length] if max_length else text


def coerce(spec: FieldSpec, value: Any) -> Any:
    """Coerce one raw value according to its FieldSpec."""
    if spec.kind == "str":
        return truncate(value, spec.max_length, spec.default)
    if spec.kind == "int":
        return to_number(value, spec.default, cast=int)
    if spec.kind == "float":
        return to_number(value, spec.default, cast=float)
    if spec.kind == "bool":
        return to_bool(value, spec.default)
    if spec.kind == "datetime":
        parsed = parse_datetime(value)
        return parsed if parsed is not None else spec.default
    # json: nested objects kept verbatim as text
    if value is None:
        return spec.default
    return json.dumps(value, ensure_ascii=False, default=str)


def sanitize(record: Dict[str, Any], fields: Iterable[FieldSpec]) -> Dict[str, Any]:
    """
    Build a column dict from a raw record.

    Raises:
        RecordValidationError: if a required field is missing after coercion.
    """
    if not isinstance(record, dict):
        raise RecordValidationError(f"Expected a mapping, got {type(record).__name__}")

    columns: Dict[str, Any] = {}
    for spec in fields:
        value = coerce(spec, lookup(record, spec.path))
        if spec.required and value is None:
            raise RecordValidationError(f"Missing required field {spec.path!r}")
        columns[spec.column] = value
    return columns


def raw_payload(record: Dict[str, Any]) -> str:
    """Full record serialized for the ``raw_json`` column."""
    return json.dumps(record, ensure_ascii=False, default=str)
