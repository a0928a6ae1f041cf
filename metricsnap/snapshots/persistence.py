"""METRICSNAP — Persistence Adapter.

Two independent sinks:
- the metrics store (system of record): account rows only, tagged with
  the snapshot id
- the spreadsheet: every row including TOTAL/AVG, best-effort
A failure in one never rolls back the other.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from metricsnap.connectors.sheets import SpreadsheetSink
from metricsnap.core.field_schema import FieldKind, RowSchema
from metricsnap.core.logging import get_logger
from metricsnap.models.row_models import MetricRow
from metricsnap.models.snapshot_models import NUMERIC_COLUMNS, SnapshotMetric
from metricsnap.pipeline.aggregator import strip_totals
from metricsnap.pipeline.normalizer import to_number

logger = get_logger("snapshots.persistence")


@dataclass(frozen=True)
class SaveResult:
    saved: int
    error: Optional[str] = None


def row_to_metric(snapshot_id: str, row: MetricRow, schema: RowSchema) -> SnapshotMetric:
    """Map a schema-ordered row onto the fixed snapshot metric columns."""
    data: Dict[str, Any] = {}
    for field, value in zip(schema.fields, row.values):
        if field.name == schema.monitored_field:
            data["is_monitored"] = value is True or value == "Yes"
        elif field.name in NUMERIC_COLUMNS:
            data[field.name] = to_number(value)
        elif field.kind == FieldKind.DATE:
            data[field.name] = value if isinstance(value, str) and value[:1].isdigit() else None
        elif isinstance(value, str) and value:
            data[field.name] = value
        elif value is not None and field.kind == FieldKind.IDENTITY:
            data[field.name] = str(value)

    data.setdefault("account_name", "")
    return SnapshotMetric(
        snapshot_id=snapshot_id,
        is_error=row.is_error,
        error_detail=row.error_detail.model_dump() if row.error_detail else None,
        **data,
    )


class PersistenceAdapter:
    """Writes a refresh's rows to the metrics store and the spreadsheet."""

    def __init__(self, session: Session, sink: Optional[SpreadsheetSink] = None):
        self.session = session
        self.sink = sink

    def save_metrics(
        self,
        snapshot_id: str,
        rows: Sequence[MetricRow],
        schema: RowSchema,
    ) -> SaveResult:
        """Replace the snapshot's metrics with ``rows`` (totals excluded).

        Rows are deduplicated by account name, last one wins.
        """
        unique: Dict[str, MetricRow] = {}
        label = schema.index(schema.label_field)
        for row in strip_totals(rows, schema):
            unique[str(row.values[label])] = row

        metrics = [row_to_metric(snapshot_id, r, schema) for r in unique.values()]
        if len(metrics) != len(rows):
            logger.info(
                f"Saving {len(metrics)} of {len(rows)} rows after dedup/totals removal",
                extra={"snapshot_id": snapshot_id},
            )

        try:
            existing = self.session.exec(
                select(SnapshotMetric).where(SnapshotMetric.snapshot_id == snapshot_id)
            ).all()
            for m in existing:
                self.session.delete(m)
            self.session.add_all(metrics)
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(
                f"Metrics store write failed: {e}", extra={"snapshot_id": snapshot_id}
            )
            return SaveResult(saved=0, error=str(e))

        errored = [m for m in metrics if m.is_error]
        if errored:
            logger.info(
                f"Saved {len(errored)} metrics with errors: "
                + ", ".join(m.account_name for m in errored[:20]),
                extra={"snapshot_id": snapshot_id},
            )
        return SaveResult(saved=len(metrics))

    async def export_rows(
        self,
        sink_id: str,
        rows: Sequence[MetricRow],
    ) -> Optional[str]:
        """Send every row, totals included, to the spreadsheet.

        Returns an error message instead of raising.
        """
        if self.sink is None:
            return None
        try:
            await self.sink.append_rows(sink_id, [list(r.values) for r in rows])
        except Exception as e:
            logger.warning(f"Spreadsheet export to {sink_id} failed: {e}")
            return str(e)
        return None
