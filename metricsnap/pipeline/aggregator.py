"""METRICSNAP — Aggregator.

Sorts the gathered rows and synthesizes the TOTAL/AVG row:
- additive fields are summed over rows where the field is numeric
- rate fields are averaged over rows where the field is numeric,
  unweighted, 0 when no row has a value
"""

from datetime import date
from typing import Any, List, Sequence

from metricsnap.core.field_schema import FieldKind, RowSchema
from metricsnap.models.row_models import AggregateTotals, MetricRow
from metricsnap.pipeline.normalizer import to_number

TOTALS_LABEL = "TOTAL/AVG"
NOT_APPLICABLE = "n/a"


def _sort_value(value: Any) -> float:
    number = to_number(value)
    return number if number is not None else float("-inf")


def sort_rows(rows: Sequence[MetricRow], schema: RowSchema) -> List[MetricRow]:
    """Primary key desc, secondary key desc; non-numeric keys sort last."""
    primary = schema.index(schema.sort_primary)
    secondary = schema.index(schema.sort_secondary)
    return sorted(
        rows,
        key=lambda r: (_sort_value(r.values[primary]), _sort_value(r.values[secondary])),
        reverse=True,
    )


def compute_totals(rows: Sequence[MetricRow], schema: RowSchema) -> AggregateTotals:
    """Sum additive fields and average rate fields across account rows."""
    sums: dict[str, float] = {}
    averages: dict[str, float] = {}
    counts: dict[str, int] = {}
    account_rows = [r for r in rows if not r.is_totals]

    for field in schema.additive_fields:
        i = schema.index(field.name)
        valid = [n for n in (to_number(r.values[i]) for r in account_rows) if n is not None]
        sums[field.name] = sum(valid)
        counts[field.name] = len(valid)

    for field in schema.rate_fields:
        i = schema.index(field.name)
        valid = [n for n in (to_number(r.values[i]) for r in account_rows) if n is not None]
        averages[field.name] = sum(valid) / len(valid) if valid else 0.0
        counts[field.name] = len(valid)

    return AggregateTotals(sums=sums, averages=averages, counts=counts)


def _format_sum(value: float) -> str:
    """Thousands-grouped, at most three decimals: 1500.0 → "1,500"."""
    text = f"{value:,.3f}".rstrip("0").rstrip(".")
    return "0" if text in ("-0", "") else text


def build_totals_row(
    totals: AggregateTotals,
    schema: RowSchema,
    today: date,
) -> MetricRow:
    """Render totals as a display row in schema order."""
    values: List[Any] = []
    for field in schema.fields:
        if field.name == schema.label_field:
            values.append(TOTALS_LABEL)
        elif field.name == schema.group_field:
            values.append(today.strftime("%a %b %d %Y"))
        elif field.kind == FieldKind.ADDITIVE:
            values.append(_format_sum(totals.sums.get(field.name, 0.0)))
        elif field.kind == FieldKind.RATE:
            values.append(f"{totals.averages.get(field.name, 0.0):.2f}")
        else:
            values.append(NOT_APPLICABLE)
    return MetricRow(values=values, is_totals=True)


def is_totals_row(row: MetricRow, schema: RowSchema) -> bool:
    return row.is_totals or row.values[schema.index(schema.label_field)] == TOTALS_LABEL


def strip_totals(rows: Sequence[MetricRow], schema: RowSchema) -> List[MetricRow]:
    """Drop the synthetic totals row before anything is persisted."""
    return [r for r in rows if not is_totals_row(r, schema)]


def aggregate(
    rows: Sequence[MetricRow],
    schema: RowSchema,
    today: date,
) -> tuple[List[MetricRow], AggregateTotals]:
    """Sort account rows and append the totals row.

    Returns the display rows (totals last) and the numeric totals.
    """
    ordered = sort_rows(strip_totals(rows, schema), schema)
    totals = compute_totals(ordered, schema)
    return ordered + [build_totals_row(totals, schema, today)], totals
