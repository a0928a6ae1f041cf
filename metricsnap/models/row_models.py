"""METRICSNAP — In-flight Row Models.

Pydantic shapes that flow between the normalizer, the classifier, the
aggregator and the persistence adapter. Nothing here is a table.
"""

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel

RawFieldValue = Union[float, int, str, None]
RawRow = Dict[str, Any]
"""Field name → raw value. May carry ``"_errors"``: structured failures."""

STRUCTURED_ERRORS_KEY = "_errors"


class ErrorRecord(BaseModel):
    """One detected failure on one field of a row."""

    field: str
    message: str
    raw_value: RawFieldValue = None
    code: Optional[str] = None


class ErrorDetail(BaseModel):
    """All failures on a row."""

    errors: List[ErrorRecord]
    error_count: int


class MetricRow(BaseModel):
    """A normalized, classified row in schema order.

    Numeric positions hold floats; positions that could not be parsed hold
    the original string verbatim.
    """

    values: List[Any]
    is_error: bool = False
    error_detail: Optional[ErrorDetail] = None
    is_totals: bool = False


class AggregateTotals(BaseModel):
    """Portfolio-level sums and unweighted means for one run."""

    sums: Dict[str, float] = {}
    averages: Dict[str, float] = {}
    counts: Dict[str, int] = {}
