"""METRICSNAP — Error Classifier.

Upstream fetchers signal failure by putting human-readable strings where a
number should be. This module is the one place that turns that prose into
structured ``ErrorRecord``s.

Fetchers that know exactly what went wrong can attach structured errors
under ``"_errors"``; those win over text matching for the fields they name.
"""

import re
from typing import Any, List, Mapping, Optional, Sequence, Tuple

from metricsnap.core.field_schema import RowSchema
from metricsnap.models.row_models import (
    ErrorDetail,
    ErrorRecord,
    STRUCTURED_ERRORS_KEY,
)

# Bump when the signature list changes; stored in snapshot metadata.
SIGNATURES_VERSION = "3"

ERROR_SIGNATURES: Tuple[re.Pattern, ...] = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"missing permissions",
        r"incorrect id",
        r"no data for",
        r"no data available",
        r"log in",
        r"access token",
        r"invalid",
        r"expired",
        r"could not",
        r"bad request",
        r"forbidden",
        r"not found",
        r"rate limit",
        r"network",
        r"decryption failed",
        r"error fetching",
        r"missing",
    )
)


def match_signature(value: Any) -> Optional[re.Pattern]:
    """Return the first signature a string value matches, if any."""
    if not isinstance(value, str):
        return None
    for pattern in ERROR_SIGNATURES:
        if pattern.search(value):
            return pattern
    return None


def is_error_value(value: Any) -> bool:
    return match_signature(value) is not None


def _structured_records(raw_errors: Any) -> List[ErrorRecord]:
    records: List[ErrorRecord] = []
    for err in raw_errors or []:
        if isinstance(err, ErrorRecord):
            records.append(err)
        elif isinstance(err, Mapping) and err.get("field"):
            message = str(err.get("message") or err.get("code") or "error")
            records.append(
                ErrorRecord(
                    field=err["field"],
                    message=message,
                    raw_value=err.get("raw_value", message),
                    code=err.get("code"),
                )
            )
    return records


def classify_row(
    values: Sequence[Any],
    schema: RowSchema,
    structured_errors: Any = None,
) -> Tuple[bool, Optional[ErrorDetail]]:
    """Build ``(is_error, error_detail)`` for a normalized row.

    Only fields the schema marks as classified (numeric and status fields)
    are inspected; identity and date fields never produce errors.
    """
    errors = _structured_records(structured_errors)
    covered = {e.field for e in errors}

    for field, value in zip(schema.fields, values):
        if not field.is_classified or field.name in covered:
            continue
        if isinstance(value, str) and is_error_value(value):
            errors.append(ErrorRecord(field=field.name, message=value, raw_value=value))

    if not errors:
        return False, None
    return True, ErrorDetail(errors=errors, error_count=len(errors))


def structured_errors_of(raw: Mapping[str, Any]) -> Any:
    return raw.get(STRUCTURED_ERRORS_KEY)
