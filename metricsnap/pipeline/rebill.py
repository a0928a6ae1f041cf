"""METRICSNAP — Rebill Status Classifier.

Decides whether a finance account qualifies for a rebill, based on the
revenue, spend and ROAS accumulated since its last rebill date.
"""

from datetime import date, datetime, timedelta
from typing import Any, Optional

from metricsnap.pipeline.normalizer import to_number

REBILL_CYCLE_DAYS = 31
SOON_TO_BE_REVENUE = 6600
MIN_SPEND = 3000

# (min revenue, min roas): either tier qualifies when spend > MIN_SPEND
QUALIFYING_TIERS = ((10000, 2.7), (20000, 2.3))

NOT_APPLICABLE = "N/A"
MISSING_REBILL_DATE = "Missing rebill date"
REBILLABLE_NEXT_DATE = "rebillable next date"


def parse_rebill_date(value: Any) -> Optional[date]:
    if isinstance(value, date):
        return value
    if not value or not isinstance(value, str):
        return None
    try:
        return datetime.strptime(value[:10], "%Y-%m-%d").date()
    except ValueError:
        return None


def next_rebill_date(last_rebill: date) -> date:
    return last_rebill + timedelta(days=REBILL_CYCLE_DAYS)


def rebill_status(
    revenue: Any,
    spend: Any,
    roas: Any,
    last_rebill: Any,
    today: date,
) -> str:
    """Classify an account's rebill state."""
    rev, sp, ro = to_number(revenue), to_number(spend), to_number(roas)
    if rev is None or sp is None or ro is None or 0 in (rev, sp, ro):
        return NOT_APPLICABLE

    qualifies = sp > MIN_SPEND and any(
        rev >= min_rev and ro >= min_roas for min_rev, min_roas in QUALIFYING_TIERS
    )
    if qualifies:
        last = parse_rebill_date(last_rebill)
        if last is None:
            return MISSING_REBILL_DATE
        upcoming = next_rebill_date(last)
        if today < upcoming:
            return REBILLABLE_NEXT_DATE
        if today > upcoming:
            return "overdue"
        return "rebillable"

    if rev > SOON_TO_BE_REVENUE:
        return "soon to be"
    return "not rebillable"


def upcoming_rebill(status: str, last_rebill: Any) -> str:
    """The next rebill date, shown only while an account is waiting for it."""
    last = parse_rebill_date(last_rebill)
    if status != REBILLABLE_NEXT_DATE or last is None:
        return ""
    return next_rebill_date(last).isoformat()
