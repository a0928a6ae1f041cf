"""METRICSNAP — Refresh API Routes."""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlmodel import Session

from metricsnap.core.errors import RefreshError
from metricsnap.core.field_schema import SCHEMAS
from metricsnap.core.logging import get_logger
from metricsnap.database import get_session
from metricsnap.models.roster_models import Sheet
from metricsnap.pipeline.refresh import refresh_sheet

logger = get_logger("api.refresh")

router = APIRouter(tags=["Refresh"])


# ── Request / Response Models ──


class RefreshRequest(BaseModel):
    """Request body for POST /refresh."""

    sheet_id: int
    refresh_type: Optional[str] = None
    """One of: "financialx", "autometric", "pod". Defaults to the sheet's own type."""
    date_preset: Optional[str] = None
    """Relative window such as "last_7d" or "last_30d". Defaults to the sheet's preset."""
    status: Optional[str] = None
    """Account status filter. Defaults to the sheet's filter."""

    model_config = {
        "json_schema_extra": {
            "examples": [
                {"sheet_id": 1},
                {"sheet_id": 2, "refresh_type": "autometric", "date_preset": "last_7d"},
            ]
        }
    }


class RefreshResponse(BaseModel):
    status: str = "success"
    snapshot_id: Optional[str] = None
    total_accounts: int
    error_count: int
    saved: int
    export_error: Optional[str] = None
    warnings: List[str] = []


# ── Endpoints ──


@router.post("/refresh", response_model=RefreshResponse)
async def trigger_refresh(
    request: RefreshRequest,
    session: Session = Depends(get_session),
):
    """Refresh one sheet: fetch every account, snapshot and export.

    Per-account failures are reported in ``error_count``; the request only
    fails when the run itself does.
    """
    sheet = session.get(Sheet, request.sheet_id)
    if sheet is None:
        raise HTTPException(status_code=404, detail=f"Sheet {request.sheet_id} not found")

    refresh_type = request.refresh_type or sheet.refresh_type
    if refresh_type not in SCHEMAS:
        raise HTTPException(
            status_code=400, detail=f"Unknown refresh type: {refresh_type}"
        )

    try:
        outcome = await refresh_sheet(
            session,
            sheet,
            refresh_type=refresh_type,
            date_preset=request.date_preset,
            status=request.status,
        )
    except RefreshError as e:
        logger.error(f"Refresh failed: {e}", extra={"snapshot_id": e.snapshot_id})
        raise HTTPException(status_code=500, detail=f"Refresh failed: {str(e)}")

    return RefreshResponse(
        snapshot_id=outcome.snapshot_id,
        total_accounts=outcome.total_accounts,
        error_count=outcome.error_count,
        saved=outcome.saved,
        export_error=outcome.export_error,
        warnings=outcome.warnings,
    )
