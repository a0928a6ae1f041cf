"""METRICSNAP — Account Fetchers.

One fetcher per refresh type. Each turns an ``Account`` into a ``RawRow``
keyed by its schema's field names, and knows how to build the sentinel row
for an account whose fetch raised.
"""

import asyncio
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional, Tuple

import httpx

from metricsnap.connectors.facebook.client import FacebookClient
from metricsnap.connectors.facebook.insights import (
    AD_INSIGHT_KEYS,
    failure_fields,
    fetch_ad_insights,
    fetch_spend_roas,
)
from metricsnap.connectors.shopify.client import ShopifyAPIError, ShopifyClient
from metricsnap.core.crypto import decrypt
from metricsnap.core.errors import DecryptionError
from metricsnap.core.field_schema import FINANCE_SCHEMA, FieldKind
from metricsnap.core.logging import get_logger
from metricsnap.models.roster_models import Account
from metricsnap.models.row_models import RawRow
from metricsnap.pipeline.normalizer import to_number
from metricsnap.pipeline.rebill import (
    MISSING_REBILL_DATE,
    parse_rebill_date,
    rebill_status,
    upcoming_rebill,
)

logger = get_logger("pipeline.fetchers")

ERROR_FETCHING = "Error fetching data"
DECRYPTION_FAILED = "Decryption failed"
COULD_NOT_RETRIEVE = "Could not retrieve"

DEFAULT_DATE_PRESET = "last_30d"

# Days back from today for each relative window; the window ends today
PRESET_DAYS = {
    "today": 0,
    "yesterday": 1,
    "last_3d": 3,
    "last_7d": 7,
    "last_14d": 14,
    "last_30d": 30,
    "last_90d": 90,
}

FINANCE_METRIC_KEYS = tuple(
    f.name for f in FINANCE_SCHEMA.fields if f.kind != FieldKind.IDENTITY
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def preset_since(date_preset: Optional[str], today: date) -> date:
    """First day of a relative window; unknown presets fall back to 30 days."""
    if date_preset == "this_month":
        return today.replace(day=1)
    days = PRESET_DAYS.get(date_preset or DEFAULT_DATE_PRESET, 30)
    return today - timedelta(days=days)


def fb_revenue(spend: Any, roas: Any) -> Any:
    """Facebook-attributed revenue; passes the spend sentinel through."""
    s, r = to_number(spend), to_number(roas)
    if s is None:
        return spend
    if r is None:
        return roas
    return round(s * r, 2)


def _failure_message(exc: Exception) -> str:
    if isinstance(exc, DecryptionError):
        return DECRYPTION_FAILED
    return ERROR_FETCHING


def _identity(account: Account) -> Dict[str, Any]:
    return {"account_name": account.brand, "pod": account.pod}


class FinanceFetcher:
    """Facebook spend/ROAS and Shopify revenue/orders, for the timeframe
    window and since the account's last rebill.

    The four upstream calls run concurrently; each one degrades to its own
    sentinel so a Shopify outage still leaves the Facebook columns filled.
    """

    def __init__(
        self,
        fb: FacebookClient,
        date_preset: Optional[str] = None,
        shopify_http: Optional[httpx.AsyncClient] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.fb = fb
        self.date_preset = date_preset or DEFAULT_DATE_PRESET
        self.shopify_http = shopify_http
        self.clock = clock or _utcnow

    async def _store_revenue(
        self,
        account: Account,
        api_key: str,
        since: date,
    ) -> Tuple[Any, Any]:
        """(revenue, orders) for one window."""
        try:
            async with ShopifyClient(
                account.store_id, api_key, client=self.shopify_http
            ) as shop:
                orders, amount = await shop.get_revenue(since.isoformat())
        except (ShopifyAPIError, httpx.HTTPError, KeyError, TypeError, ValueError) as e:
            logger.warning(
                f"Shopify fetch failed for {account.brand}: {e}",
                extra={"account": account.brand},
            )
            return ERROR_FETCHING, ERROR_FETCHING
        if orders == 0:
            return COULD_NOT_RETRIEVE, 0
        return amount, orders

    async def _revenue_windows(
        self,
        account: Account,
        timeframe_since: date,
        rebill_since: date,
    ) -> Tuple[Tuple[Any, Any], Tuple[Any, Any]]:
        if not account.store_id or not account.shopify_key:
            missing = (ERROR_FETCHING, ERROR_FETCHING)
            return missing, missing
        try:
            api_key = decrypt(account.shopify_key)
        except DecryptionError as e:
            logger.warning(
                f"Store key for {account.brand} could not be decrypted: {e}",
                extra={"account": account.brand},
            )
            failed = (DECRYPTION_FAILED, DECRYPTION_FAILED)
            return failed, failed

        timeframe, rebill = await asyncio.gather(
            self._store_revenue(account, api_key, timeframe_since),
            self._store_revenue(account, api_key, rebill_since),
        )
        return timeframe, rebill

    async def fetch(self, account: Account) -> RawRow:
        today = self.clock().date()
        last_rebill = parse_rebill_date(account.rebill_date)
        timeframe_since = preset_since(self.date_preset, today)

        if last_rebill:
            rebill_window = {"since": last_rebill.isoformat(), "until": today.isoformat()}
            rebill_since = last_rebill
        else:
            rebill_window = {"date_preset": self.date_preset}
            rebill_since = timeframe_since

        fb_timeframe, fb_rebill, (shop_timeframe, shop_rebill) = await asyncio.gather(
            fetch_spend_roas(self.fb, account.fb_account_id, date_preset=self.date_preset),
            fetch_spend_roas(self.fb, account.fb_account_id, **rebill_window),
            self._revenue_windows(account, timeframe_since, rebill_since),
        )
        revenue_timeframe, orders_timeframe = shop_timeframe
        revenue_rebill, orders_rebill = shop_rebill
        status = rebill_status(
            revenue_rebill, fb_rebill["spend"], fb_rebill["roas"], last_rebill, today
        )

        return {
            "is_monitored": "Yes" if account.is_monitored else "No",
            **_identity(account),
            "ad_spend_timeframe": fb_timeframe["spend"],
            "roas_timeframe": fb_timeframe["roas"],
            "fb_revenue_timeframe": fb_revenue(fb_timeframe["spend"], fb_timeframe["roas"]),
            "shopify_revenue_timeframe": revenue_timeframe,
            "ad_spend_rebill": fb_rebill["spend"],
            "roas_rebill": fb_rebill["roas"],
            "fb_revenue_rebill": fb_revenue(fb_rebill["spend"], fb_rebill["roas"]),
            "shopify_revenue_rebill": revenue_rebill,
            "rebill_status": status,
            "last_rebill_date": account.rebill_date or MISSING_REBILL_DATE,
            "next_rebill_date": upcoming_rebill(status, last_rebill),
            "orders_timeframe": orders_timeframe,
            "orders_rebill": orders_rebill,
        }

    def on_failure(self, account: Account, exc: Exception) -> RawRow:
        row = failure_fields(
            FINANCE_METRIC_KEYS, _failure_message(exc), type(exc).__name__
        )
        row.update(_identity(account))
        row["is_monitored"] = "Yes" if account.is_monitored else "No"
        return row


class AdInsightsFetcher:
    """Facebook funnel metrics for one date preset."""

    def __init__(self, fb: FacebookClient, date_preset: Optional[str] = None):
        self.fb = fb
        self.date_preset = date_preset or DEFAULT_DATE_PRESET

    async def fetch(self, account: Account) -> RawRow:
        insights = await fetch_ad_insights(
            self.fb, account.fb_account_id, date_preset=self.date_preset
        )
        return {**_identity(account), **insights}

    def on_failure(self, account: Account, exc: Exception) -> RawRow:
        row = failure_fields(AD_INSIGHT_KEYS, _failure_message(exc), type(exc).__name__)
        row.update(_identity(account))
        return row
