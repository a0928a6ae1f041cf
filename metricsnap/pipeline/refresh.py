"""METRICSNAP — Refresh Pipeline.

One pipeline for every refresh type:

    start snapshot → processing → gather fetches → normalize + classify
        → sort + TOTAL/AVG → export to spreadsheet → save metrics → completed

Per-account failures are data (sentinel rows with ``is_error``); anything
else that goes wrong after the snapshot exists flips it to ``failed`` and is
raised as ``RefreshError``.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional, Sequence

import httpx
from sqlmodel import Session

from metricsnap.config import settings
from metricsnap.connectors.facebook.client import FacebookClient
from metricsnap.connectors.sheets import SpreadsheetSink, default_sink
from metricsnap.core.errors import PersistenceError, RefreshError, SnapshotError
from metricsnap.core.field_schema import RowSchema, get_schema
from metricsnap.core.logging import get_logger
from metricsnap.models.roster_models import Sheet
from metricsnap.models.row_models import AggregateTotals, MetricRow, RawRow
from metricsnap.models.snapshot_models import RefreshStatus, RefreshType
from metricsnap.pipeline.aggregator import aggregate
from metricsnap.pipeline.classifier import (
    SIGNATURES_VERSION,
    classify_row,
    structured_errors_of,
)
from metricsnap.pipeline.fetchers import AdInsightsFetcher, FinanceFetcher
from metricsnap.pipeline.normalizer import normalize_row
from metricsnap.pipeline.orchestrator import (
    BatchOrchestrator,
    FailureFn,
    FetchFn,
    ProgressFn,
)
from metricsnap.roster import list_accounts
from metricsnap.snapshots.persistence import PersistenceAdapter
from metricsnap.snapshots.state_machine import SnapshotStateMachine

logger = get_logger("pipeline.refresh")


@dataclass(frozen=True)
class RefreshPlan:
    """How one refresh type is fetched and whether it is snapshotted."""

    refresh_type: str
    schema: RowSchema
    batch_size: Optional[int] = None
    max_concurrency: Optional[int] = None
    persist: bool = True


def plan_for(refresh_type: str) -> RefreshPlan:
    """Finance refreshes run in fixed waves; ad insights run as one
    semaphore-capped wave. The pod refresh only exports."""
    schema = get_schema(refresh_type)
    if refresh_type == RefreshType.AUTOMETRIC.value:
        return RefreshPlan(
            refresh_type, schema, max_concurrency=settings.max_concurrency
        )
    return RefreshPlan(
        refresh_type,
        schema,
        batch_size=settings.batch_size,
        persist=refresh_type != RefreshType.POD.value,
    )


@dataclass
class RefreshOutcome:
    snapshot_id: Optional[str]
    rows: List[MetricRow]
    totals: AggregateTotals
    saved: int = 0
    error_count: int = 0
    export_error: Optional[str] = None
    warnings: List[str] = field(default_factory=list)

    @property
    def total_accounts(self) -> int:
        return sum(1 for r in self.rows if not r.is_totals)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def build_rows(raw_rows: Sequence[RawRow], schema: RowSchema) -> List[MetricRow]:
    """Normalize and classify gathered rows, in gather order."""
    rows: List[MetricRow] = []
    for raw in raw_rows:
        values = normalize_row(raw, schema)
        is_error, detail = classify_row(values, schema, structured_errors_of(raw))
        rows.append(MetricRow(values=values, is_error=is_error, error_detail=detail))
    return rows


def _mark_failed(machine: SnapshotStateMachine, snapshot_id: str, message: str) -> None:
    machine.session.rollback()
    try:
        machine.set_status(snapshot_id, RefreshStatus.FAILED, error_message=message)
    except SnapshotError as e:
        logger.error(
            f"Could not mark snapshot failed: {e}", extra={"snapshot_id": snapshot_id}
        )


async def run_refresh(
    session: Session,
    plan: RefreshPlan,
    scope_id: int,
    sink_id: str,
    accounts: Sequence[Any],
    fetch: FetchFn,
    on_failure: FailureFn,
    sink: Optional[SpreadsheetSink] = None,
    date_preset: Optional[str] = None,
    metadata: Optional[dict] = None,
    progress: Optional[ProgressFn] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> RefreshOutcome:
    """Run one refresh end to end.

    Raises:
        RefreshError: the snapshot could not be started, or the run failed
            after it was (the snapshot is then ``failed``).
    """
    clock = clock or _utcnow
    schema = plan.schema
    orchestrator = BatchOrchestrator(plan.batch_size, plan.max_concurrency, progress)
    adapter = PersistenceAdapter(session, sink)
    log_extra = {"refresh_type": plan.refresh_type}

    async def collect() -> tuple[List[MetricRow], AggregateTotals, Optional[str]]:
        raw_rows = await orchestrator.gather(accounts, fetch, on_failure)
        rows, totals = aggregate(build_rows(raw_rows, schema), schema, clock().date())
        export_error = await adapter.export_rows(sink_id, rows)
        return rows, totals, export_error

    if not plan.persist:
        rows, totals, export_error = await collect()
        return RefreshOutcome(
            snapshot_id=None,
            rows=rows,
            totals=totals,
            error_count=sum(1 for r in rows if r.is_error),
            export_error=export_error,
        )

    machine = SnapshotStateMachine(session, clock)
    try:
        started = machine.start_refresh(
            scope_id,
            plan.refresh_type,
            date_preset,
            {
                **(metadata or {}),
                "total_accounts": len(accounts),
                "signatures_version": SIGNATURES_VERSION,
            },
        )
    except SnapshotError as e:
        raise RefreshError(f"Could not start refresh: {e}") from e

    snapshot_id = started.snapshot_id
    log_extra["snapshot_id"] = snapshot_id
    logger.info(
        f"Refreshing {len(accounts)} accounts for scope {scope_id}"
        + (" (replacing today's snapshot)" if started.is_update else ""),
        extra=log_extra,
    )

    try:
        machine.set_status(snapshot_id, RefreshStatus.PROCESSING)
        rows, totals, export_error = await collect()

        result = adapter.save_metrics(snapshot_id, rows, schema)
        if result.error:
            raise PersistenceError(result.error)
        machine.set_status(snapshot_id, RefreshStatus.COMPLETED, record_count=result.saved)
    except Exception as e:
        logger.error(f"Refresh failed: {e}", extra=log_extra)
        _mark_failed(machine, snapshot_id, str(e))
        raise RefreshError(f"Refresh failed: {e}", snapshot_id=snapshot_id) from e

    outcome = RefreshOutcome(
        snapshot_id=snapshot_id,
        rows=rows,
        totals=totals,
        saved=result.saved,
        error_count=sum(1 for r in rows if r.is_error),
        export_error=export_error,
    )
    if export_error:
        outcome.warnings.append(f"Spreadsheet export failed: {export_error}")
    logger.info(
        f"Refresh complete: {outcome.saved} saved, {outcome.error_count} with errors",
        extra=log_extra,
    )
    return outcome


async def refresh_sheet(
    session: Session,
    sheet: Sheet,
    refresh_type: Optional[str] = None,
    date_preset: Optional[str] = None,
    status: Optional[str] = None,
    sink: Optional[SpreadsheetSink] = None,
    fb_client: Optional[FacebookClient] = None,
    shopify_http: Optional[httpx.AsyncClient] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> RefreshOutcome:
    """Refresh one sheet with the fetcher its refresh type calls for."""
    refresh_type = refresh_type or sheet.refresh_type
    plan = plan_for(refresh_type)
    preset = date_preset or sheet.date_preset
    if preset == "none":
        preset = None

    accounts = list_accounts(
        session, status or sheet.account_status, sheet.pod
    )
    fb = fb_client or FacebookClient()
    export_sink = sink if sink is not None else default_sink()
    if plan.refresh_type == RefreshType.AUTOMETRIC.value:
        fetcher: Any = AdInsightsFetcher(fb, preset)
    else:
        fetcher = FinanceFetcher(fb, preset, shopify_http=shopify_http, clock=clock)

    try:
        return await run_refresh(
            session,
            plan,
            scope_id=sheet.id,
            sink_id=sheet.spreadsheet_id,
            accounts=accounts,
            fetch=fetcher.fetch,
            on_failure=fetcher.on_failure,
            sink=export_sink,
            date_preset=preset,
            metadata={
                "sheet_name": sheet.name,
                "account_status": status or sheet.account_status,
                "pod": sheet.pod,
            },
            clock=clock,
        )
    finally:
        if fb_client is None:
            await fb.close()
        if sink is None:
            await export_sink.close()
