"""METRICSNAP — Account Roster."""

from typing import List, Optional

from sqlmodel import Session, select

from metricsnap.models.roster_models import Account, Sheet


def list_accounts(
    session: Session,
    status: Optional[str] = "active",
    pod: Optional[str] = None,
) -> List[Account]:
    """Accounts to refresh, in a stable roster order.

    ``status=None`` returns accounts of every status.
    """
    query = select(Account)
    if status:
        query = query.where(Account.status == status)
    if pod:
        query = query.where(Account.pod == pod)
    return list(session.exec(query.order_by(Account.id)).all())  # type: ignore


def scheduled_sheets(session: Session) -> List[Sheet]:
    """Sheets the daily job refreshes (a "none" preset opts out)."""
    return list(
        session.exec(
            select(Sheet).where(Sheet.date_preset != "none").order_by(Sheet.id)  # type: ignore
        ).all()
    )
