"""METRICSNAP — Snapshot API Routes."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlmodel import Session

from metricsnap.config import settings
from metricsnap.core.logging import get_logger
from metricsnap.database import get_session
from metricsnap.models.snapshot_models import Snapshot
from metricsnap.snapshots.queries import (
    compare_snapshots,
    finance_aggregates,
    get_latest_snapshot,
    get_snapshot_history,
)

logger = get_logger("api.snapshots")

router = APIRouter(prefix="/snapshots", tags=["Snapshots"])


@router.get("/latest")
async def latest_snapshot(
    scope_id: int = Query(..., description="Sheet id"),
    refresh_type: str = Query(..., description="financialx | autometric"),
    session: Session = Depends(get_session),
):
    """Most recent completed snapshot for a sheet, with its metrics."""
    snapshot = get_latest_snapshot(session, scope_id, refresh_type)
    if snapshot is None:
        return {"status": "no_data", "message": "No completed snapshot yet."}
    return {"status": "success", "snapshot": snapshot.model_dump(mode="json")}


@router.get("/history")
async def snapshot_history(
    scope_id: int = Query(..., description="Sheet id"),
    refresh_type: str = Query(...),
    limit: int = Query(settings.history_limit, ge=1, le=100),
    session: Session = Depends(get_session),
):
    """Recent snapshots of any status, newest first."""
    history = get_snapshot_history(session, scope_id, refresh_type, limit=limit)
    return {
        "status": "success",
        "count": len(history),
        "snapshots": [s.model_dump(mode="json") for s in history],
    }


@router.get("/compare")
async def compare(
    snapshot_a: str = Query(..., description="Newer snapshot id"),
    snapshot_b: str = Query(..., description="Older snapshot id"),
    session: Session = Depends(get_session),
):
    """Per-account revenue, ROAS and spend change from B to A."""
    for snapshot_id in (snapshot_a, snapshot_b):
        if session.get(Snapshot, snapshot_id) is None:
            raise HTTPException(
                status_code=404, detail=f"Snapshot {snapshot_id} not found"
            )

    comparison = compare_snapshots(session, snapshot_a, snapshot_b)
    return {
        "status": "success",
        "count": len(comparison),
        "comparison": [c.model_dump() for c in comparison],
    }


@router.get("/finance/aggregates")
async def finance_rollup(
    snapshot_id: Optional[str] = Query(None),
    session: Session = Depends(get_session),
):
    """Rebill rollup across finance snapshots, or for one snapshot."""
    return {
        "status": "success",
        "aggregates": finance_aggregates(session, snapshot_id).model_dump(),
    }
