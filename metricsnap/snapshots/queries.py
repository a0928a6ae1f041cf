"""METRICSNAP — Snapshot Read APIs.

What dashboards read back out: the latest completed snapshot, a bounded
history, a two-snapshot diff, and the finance rebill aggregates.
"""

from typing import List, Optional

from sqlmodel import Session, select

from metricsnap.core.logging import get_logger
from metricsnap.models.snapshot_models import (
    FinanceAggregates,
    MetricComparison,
    RefreshStatus,
    RefreshType,
    Snapshot,
    SnapshotMetric,
    SnapshotSummary,
    SnapshotWithMetrics,
)

logger = get_logger("snapshots.queries")


def get_metrics(session: Session, snapshot_id: str) -> List[SnapshotMetric]:
    return list(
        session.exec(
            select(SnapshotMetric)
            .where(SnapshotMetric.snapshot_id == snapshot_id)
            .order_by(SnapshotMetric.id)  # type: ignore
        ).all()
    )


def get_latest_snapshot(
    session: Session,
    scope_id: int,
    refresh_type: str,
) -> Optional[SnapshotWithMetrics]:
    """Most recent completed snapshot for a scope, with its metrics."""
    snapshot = session.exec(
        select(Snapshot)
        .where(
            Snapshot.scope_id == scope_id,
            Snapshot.refresh_type == refresh_type,
            Snapshot.status == RefreshStatus.COMPLETED.value,
        )
        .order_by(Snapshot.snapshot_date.desc(), Snapshot.updated_at.desc())  # type: ignore
        .limit(1)
    ).first()

    if snapshot is None:
        return None

    summary = SnapshotSummary.from_row(snapshot)
    return SnapshotWithMetrics(
        **summary.model_dump(),
        metrics=[m.model_dump() for m in get_metrics(session, snapshot.id)],
    )


def get_snapshot_history(
    session: Session,
    scope_id: int,
    refresh_type: str,
    limit: int = 30,
) -> List[SnapshotSummary]:
    """Recent snapshots of any status, newest first."""
    rows = session.exec(
        select(Snapshot)
        .where(Snapshot.scope_id == scope_id, Snapshot.refresh_type == refresh_type)
        .order_by(Snapshot.snapshot_date.desc(), Snapshot.updated_at.desc())  # type: ignore
        .limit(limit)
    ).all()
    return [SnapshotSummary.from_row(s) for s in rows]


def _delta(current: Optional[float], previous: Optional[float]) -> Optional[float]:
    if current is None or previous is None:
        return None
    return current - previous


def compare_snapshots(
    session: Session,
    snapshot_id: str,
    previous_snapshot_id: str,
) -> List[MetricComparison]:
    """Per-account change from ``previous_snapshot_id`` to ``snapshot_id``.

    Accounts only present in the newer snapshot get ``None`` deltas.
    """
    current = get_metrics(session, snapshot_id)
    previous = {m.account_name: m for m in get_metrics(session, previous_snapshot_id)}

    comparison: List[MetricComparison] = []
    for m in current:
        p = previous.get(m.account_name)
        comparison.append(
            MetricComparison(
                account_name=m.account_name,
                pod=m.pod,
                shopify_revenue_change=_delta(
                    m.shopify_revenue_timeframe,
                    p.shopify_revenue_timeframe if p else None,
                ),
                roas_change=_delta(m.roas_timeframe, p.roas_timeframe if p else None),
                spend_change=_delta(
                    m.ad_spend_timeframe, p.ad_spend_timeframe if p else None
                ),
            )
        )
    return comparison


def finance_aggregates(
    session: Session,
    snapshot_id: Optional[str] = None,
) -> FinanceAggregates:
    """Rebill rollup over finance metrics, optionally for one snapshot."""
    query = (
        select(SnapshotMetric)
        .join(Snapshot, Snapshot.id == SnapshotMetric.snapshot_id)  # type: ignore
        .where(Snapshot.refresh_type == RefreshType.FINANCIALX.value)
    )
    if snapshot_id:
        query = query.where(SnapshotMetric.snapshot_id == snapshot_id)

    metrics = session.exec(query).all()
    if not metrics:
        return FinanceAggregates()

    roas_values = [m.roas_rebill for m in metrics if m.roas_rebill is not None]
    return FinanceAggregates(
        total_accounts=len(metrics),
        total_rebill_spend=round(sum(m.ad_spend_rebill or 0 for m in metrics), 2),
        avg_rebill_roas=(
            round(sum(roas_values) / len(roas_values), 4) if roas_values else 0.0
        ),
        total_rebill_orders=sum(m.orders_rebill or 0 for m in metrics),
        accounts_in_rebill=sum(1 for m in metrics if m.rebill_status is not None),
    )
