"""METRICSNAP — Roster API Routes."""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from metricsnap.database import get_session
from metricsnap.roster import list_accounts

router = APIRouter(tags=["Roster"])


@router.get("/accounts")
async def accounts_for_batching(
    status: Optional[str] = Query("active", description="Account status filter"),
    pod: Optional[str] = Query(None),
    session: Session = Depends(get_session),
):
    """The accounts a refresh would fetch, in roster order.

    Store keys are never returned.
    """
    accounts = list_accounts(session, status, pod)
    return {
        "status": "success",
        "count": len(accounts),
        "accounts": [
            a.model_dump(exclude={"shopify_key"}, mode="json") for a in accounts
        ],
    }
