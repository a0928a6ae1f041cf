"""METRICSNAP — Facebook Insight Fetchers.

Turn one account's insights response into raw row fields. Upstream
failures become sentinel strings (the API error text, or the permission
sentinel) so the row still carries its account and flows through the
classifier like any other.
"""

import math
from typing import Any, Dict, List, Optional

from metricsnap.connectors.facebook.client import FacebookAPIError, FacebookClient
from metricsnap.core.logging import get_logger

logger = get_logger("facebook.insights")

PERMISSION_SENTINEL = "Missing Permissions or Incorrect ID"
NO_DATA_SENTINEL = "No Data"
MISSING_VALUE = "--"

SPEND_ROAS_FIELDS = "spend,purchase_roas"

AD_INSIGHT_FIELDS = (
    "actions,cost_per_action_type,impressions,spend,cpc,cpm,ctr,"
    "quality_ranking,engagement_rate_ranking,conversion_rate_ranking,purchase_roas"
)

FUNNEL_ACTIONS = [
    "omni_add_to_cart",
    "omni_initiated_checkout",
    "link_click",
    "purchase",
    "landing_page_view",
    "video_view",
]

AD_INSIGHT_KEYS = (
    "cpa_purchase",
    "ad_spend_timeframe",
    "impressions",
    "cpc",
    "cpm",
    "ctr",
    "quality_ranking",
    "engagement_rate_ranking",
    "conversion_rate_ranking",
    "roas_timeframe",
    "hook_rate",
    "atc_rate",
    "ic_rate",
    "purchase_rate",
    "bounce_rate",
)


def _safe_float(value: Any) -> Optional[float]:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def get_actions(actions: Optional[List[Dict[str, Any]]]) -> Dict[str, Any]:
    """action_type → value."""
    return {a.get("action_type"): a.get("value") for a in actions or []}


def get_purchase_cpa(costs: Optional[List[Dict[str, Any]]]) -> Any:
    for cost in costs or []:
        if cost.get("action_type") == "purchase":
            return cost.get("value")
    return ""


def _format_percent(value: float) -> str:
    """Four significant digits, always fixed-point: 0.000005 → "0.000005%"."""
    if value == 0:
        return "0%"
    decimals = max(0, 3 - math.floor(math.log10(abs(value))))
    text = f"{value:.{decimals}f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return f"{text}%"


def get_percentage(first: Any, second: Any) -> str:
    """first / second as a percentage string.

    "" when either count is missing or the divisor is zero; a zero numerator
    is a real 0% rate.
    """
    f, s = _safe_float(first), _safe_float(second)
    if f is None or not s:
        return ""
    return _format_percent(f / s * 100)


def get_hook_rate(video_views: Any, impressions: Any) -> str:
    return get_percentage(video_views, impressions)


def get_bounce_rate(landing_page_views: Any, link_clicks: Any) -> str:
    views, clicks = _safe_float(landing_page_views), _safe_float(link_clicks)
    if views is None or not clicks:
        return ""
    return _format_percent(100 * (1 - views / clicks))


def first_roas(insights: Dict[str, Any]) -> Any:
    roas = insights.get("purchase_roas") or []
    return roas[0].get("value", "") if roas else ""


def failure_fields(keys: tuple, message: str, code: Any = None) -> Dict[str, Any]:
    """Fill every metric field with one sentinel and record it structurally."""
    row: Dict[str, Any] = {k: message for k in keys}
    row["_errors"] = [
        {"field": k, "message": message, "raw_value": message, "code": str(code) if code else None}
        for k in keys
    ]
    return row


async def fetch_spend_roas(
    client: FacebookClient,
    account_id: Optional[str],
    date_preset: Optional[str] = None,
    since: Optional[str] = None,
    until: Optional[str] = None,
) -> Dict[str, Any]:
    """Spend and purchase ROAS for one window → {"spend", "roas"}."""
    if not account_id:
        return {"spend": PERMISSION_SENTINEL, "roas": PERMISSION_SENTINEL}
    try:
        insights = await client.get_insights(
            account_id,
            SPEND_ROAS_FIELDS,
            date_preset=date_preset,
            since=since,
            until=until,
        )
    except FacebookAPIError as e:
        logger.warning(f"Insights failed for {account_id}: {e}", extra={"account": account_id})
        return {"spend": PERMISSION_SENTINEL, "roas": PERMISSION_SENTINEL}

    if insights is None:
        return {"spend": NO_DATA_SENTINEL, "roas": NO_DATA_SENTINEL}
    return {
        "spend": insights.get("spend") or MISSING_VALUE,
        "roas": first_roas(insights) or MISSING_VALUE,
    }


async def fetch_ad_insights(
    client: FacebookClient,
    account_id: Optional[str],
    date_preset: Optional[str] = None,
) -> Dict[str, Any]:
    """Funnel metrics for the ad-insights sheet."""
    if not account_id:
        return failure_fields(AD_INSIGHT_KEYS, PERMISSION_SENTINEL, "no_account_id")
    try:
        insights = await client.get_insights(
            account_id,
            AD_INSIGHT_FIELDS,
            date_preset=date_preset,
            filtering=[
                {"field": "action_type", "operator": "IN", "value": FUNNEL_ACTIONS}
            ],
        )
    except FacebookAPIError as e:
        logger.warning(f"Insights failed for {account_id}: {e}", extra={"account": account_id})
        return failure_fields(
            AD_INSIGHT_KEYS, PERMISSION_SENTINEL, e.error_code or e.status_code
        )

    i = insights or {}
    actions = get_actions(i.get("actions"))
    return {
        "cpa_purchase": get_purchase_cpa(i.get("cost_per_action_type")),
        "ad_spend_timeframe": i.get("spend", ""),
        "impressions": i.get("impressions", ""),
        "cpc": i.get("cpc", ""),
        "cpm": i.get("cpm", ""),
        "ctr": i.get("ctr", ""),
        "quality_ranking": i.get("quality_ranking", ""),
        "engagement_rate_ranking": i.get("engagement_rate_ranking", ""),
        "conversion_rate_ranking": i.get("conversion_rate_ranking", ""),
        "roas_timeframe": first_roas(i),
        "hook_rate": get_hook_rate(actions.get("video_view"), i.get("impressions")),
        "atc_rate": get_percentage(actions.get("omni_add_to_cart"), actions.get("link_click")),
        "ic_rate": get_percentage(
            actions.get("omni_initiated_checkout"), actions.get("omni_add_to_cart")
        ),
        "purchase_rate": get_percentage(
            actions.get("purchase"), actions.get("omni_initiated_checkout")
        ),
        "bounce_rate": get_bounce_rate(
            actions.get("landing_page_view"), actions.get("link_click")
        ),
    }
