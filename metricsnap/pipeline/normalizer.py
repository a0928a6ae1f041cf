"""METRICSNAP — Value Normalizer.

Turns loosely-typed upstream values into a float or, when they cannot be
parsed, the original value untouched. Unparsed strings are the signal the
error classifier works on, so nothing here ever zeroes or drops a value.
"""

import math
import re
from enum import Enum
from typing import Any, List, Mapping, Optional

from metricsnap.core.field_schema import FieldDefinition, RowSchema

# Digits, optional thousands separators, optional single decimal point,
# optional surrounding whitespace: "12,345.67", " 500 ", "1500"
NUMERIC_PATTERN = re.compile(r"^\s*\d+(?:,\d+)*(?:\.\d+)?\s*$")
PERCENT_PATTERN = re.compile(r"^\s*(-?\d+(?:,\d+)*(?:\.\d+)?)\s*%\s*$")


class ValueKind(str, Enum):
    NUMERIC = "numeric"
    PASSTHROUGH = "passthrough"


def is_number(value: Any) -> bool:
    """True for real ints/floats (bools excluded)."""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def normalize_value(
    value: Any,
    kind: ValueKind = ValueKind.NUMERIC,
    percent: bool = False,
) -> Any:
    """Return a float for numeric-looking input, else the input unchanged."""
    if kind == ValueKind.PASSTHROUGH:
        return value
    if is_number(value):
        return float(value)
    if not isinstance(value, str):
        return value

    if NUMERIC_PATTERN.match(value):
        return float(value.replace(",", "").strip())
    if percent:
        m = PERCENT_PATTERN.match(value)
        if m:
            return float(m.group(1).replace(",", ""))
    return value


def normalize_field(value: Any, field: FieldDefinition) -> Any:
    kind = ValueKind.NUMERIC if field.is_numeric else ValueKind.PASSTHROUGH
    return normalize_value(value, kind, percent=field.percent)


def normalize_row(raw: Mapping[str, Any], schema: RowSchema) -> List[Any]:
    """Lay a raw row out in schema order, normalizing numeric fields.

    Fields missing from the raw row become ``None``.
    """
    return [normalize_field(raw.get(f.name), f) for f in schema.fields]


def to_number(value: Any) -> Optional[float]:
    """Aggregation-side view of a value: a finite-or-inf float, or None.

    NaN and anything that does not pass the strict numeric pattern count as
    missing.
    """
    if is_number(value):
        number = float(value)
    elif isinstance(value, str) and NUMERIC_PATTERN.match(value):
        number = float(value.replace(",", "").strip())
    else:
        return None
    if math.isnan(number):
        return None
    return number
