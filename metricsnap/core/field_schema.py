"""METRICSNAP — Row Field Schemas.

Defines the positional row layout of every refresh type and how each field
is treated by the normalizer, the error classifier and the aggregator.
When adding a new integration, declare its schema here; the refresh pipeline
itself needs no changes.
"""

from enum import Enum
from typing import Dict, List, Optional


class FieldKind(str, Enum):
    """How a field is treated by the pipeline."""

    IDENTITY = "identity"  # Account name, pod, monitored flag
    ADDITIVE = "additive"  # Summed in the totals row: spend, revenue, orders
    RATE = "rate"  # Averaged (unweighted) in the totals row: roas, cpc
    STATUS = "status"  # Free text from upstream: rankings, rebill status
    DATE = "date"  # Calendar dates: last and next rebill


NUMERIC_KINDS = (FieldKind.ADDITIVE, FieldKind.RATE)


class FieldDefinition:
    """Describes one position of a row."""

    def __init__(
        self,
        name: str,
        kind: FieldKind,
        label: str = "",
        percent: bool = False,
    ):
        self.name = name
        self.kind = kind
        self.label = label or name
        self.percent = percent

    @property
    def is_numeric(self) -> bool:
        return self.kind in NUMERIC_KINDS

    @property
    def is_classified(self) -> bool:
        """Whether string values of this field are checked for upstream errors."""
        return self.kind in NUMERIC_KINDS or self.kind == FieldKind.STATUS

    def __repr__(self) -> str:
        return f"<Field {self.name} ({self.kind.value})>"


class RowSchema:
    """Ordered field layout plus the aggregation and sort configuration."""

    def __init__(
        self,
        name: str,
        fields: List[FieldDefinition],
        label_field: str,
        group_field: str,
        sort_primary: str,
        sort_secondary: str,
        monitored_field: Optional[str] = None,
    ):
        self.name = name
        self.fields = fields
        self.label_field = label_field
        self.group_field = group_field
        self.sort_primary = sort_primary
        self.sort_secondary = sort_secondary
        self.monitored_field = monitored_field
        self._positions: Dict[str, int] = {f.name: i for i, f in enumerate(fields)}
        for key in (label_field, group_field, sort_primary, sort_secondary):
            if key not in self._positions:
                raise ValueError(f"Schema {name}: unknown field '{key}'")

    def __len__(self) -> int:
        return len(self.fields)

    def index(self, field_name: str) -> int:
        return self._positions[field_name]

    def get(self, field_name: str) -> FieldDefinition:
        return self.fields[self._positions[field_name]]

    @property
    def names(self) -> List[str]:
        return [f.name for f in self.fields]

    @property
    def additive_fields(self) -> List[FieldDefinition]:
        return [f for f in self.fields if f.kind == FieldKind.ADDITIVE]

    @property
    def rate_fields(self) -> List[FieldDefinition]:
        return [f for f in self.fields if f.kind == FieldKind.RATE]

    @property
    def headers(self) -> List[str]:
        return [f.label for f in self.fields]

    def __repr__(self) -> str:
        return f"<RowSchema {self.name} ({len(self.fields)} fields)>"


# ─────────────────────────────────────────────
# FINANCE — revenue vs. ad spend, timeframe and since last rebill
# ─────────────────────────────────────────────

FINANCE_SCHEMA = RowSchema(
    name="finance",
    fields=[
        FieldDefinition("is_monitored", FieldKind.IDENTITY, "Monitored"),
        FieldDefinition("account_name", FieldKind.IDENTITY, "Name"),
        FieldDefinition("pod", FieldKind.IDENTITY, "Pod"),
        FieldDefinition("ad_spend_timeframe", FieldKind.ADDITIVE, "Ad spend (timeframe)"),
        FieldDefinition("roas_timeframe", FieldKind.RATE, "ROAS (timeframe)"),
        FieldDefinition("fb_revenue_timeframe", FieldKind.ADDITIVE, "FB Revenue (timeframe)"),
        FieldDefinition("shopify_revenue_timeframe", FieldKind.ADDITIVE, "Revenue (timeframe)"),
        FieldDefinition("ad_spend_rebill", FieldKind.ADDITIVE, "Ad spend (rebill)"),
        FieldDefinition("roas_rebill", FieldKind.RATE, "ROAS (rebill)"),
        FieldDefinition("fb_revenue_rebill", FieldKind.ADDITIVE, "FB Revenue (rebill)"),
        FieldDefinition("shopify_revenue_rebill", FieldKind.ADDITIVE, "Revenue (rebill)"),
        FieldDefinition("rebill_status", FieldKind.STATUS, "Is rebillable"),
        FieldDefinition("last_rebill_date", FieldKind.DATE, "Last rebill date"),
        FieldDefinition("next_rebill_date", FieldKind.DATE, "Next rebill date"),
        FieldDefinition("orders_timeframe", FieldKind.ADDITIVE, "Orders (timeframe)"),
        FieldDefinition("orders_rebill", FieldKind.ADDITIVE, "Orders (rebill)"),
    ],
    label_field="account_name",
    group_field="pod",
    sort_primary="shopify_revenue_timeframe",
    sort_secondary="ad_spend_timeframe",
    monitored_field="is_monitored",
)


# ─────────────────────────────────────────────
# AD INSIGHTS — Facebook funnel metrics per account
# ─────────────────────────────────────────────

AD_INSIGHTS_SCHEMA = RowSchema(
    name="ad_insights",
    fields=[
        FieldDefinition("account_name", FieldKind.IDENTITY, "Name"),
        FieldDefinition("pod", FieldKind.IDENTITY, "Pod"),
        FieldDefinition("cpa_purchase", FieldKind.RATE, "CPA Purchase"),
        FieldDefinition("ad_spend_timeframe", FieldKind.ADDITIVE, "Spend"),
        FieldDefinition("impressions", FieldKind.ADDITIVE, "Impressions"),
        FieldDefinition("cpc", FieldKind.RATE, "CPC"),
        FieldDefinition("cpm", FieldKind.RATE, "CPM"),
        FieldDefinition("ctr", FieldKind.RATE, "CTR"),
        FieldDefinition("quality_ranking", FieldKind.STATUS, "Quality Ranking"),
        FieldDefinition(
            "engagement_rate_ranking", FieldKind.STATUS, "Engagement Rate Ranking"
        ),
        FieldDefinition(
            "conversion_rate_ranking", FieldKind.STATUS, "Conversion Rate Ranking"
        ),
        FieldDefinition("roas_timeframe", FieldKind.RATE, "ROAS"),
        FieldDefinition("hook_rate", FieldKind.RATE, "Hook Rate", percent=True),
        FieldDefinition("atc_rate", FieldKind.RATE, "ATC Rate", percent=True),
        FieldDefinition("ic_rate", FieldKind.RATE, "IC Rate", percent=True),
        FieldDefinition("purchase_rate", FieldKind.RATE, "Purchase Rate", percent=True),
        FieldDefinition("bounce_rate", FieldKind.RATE, "Bounce Rate", percent=True),
    ],
    label_field="account_name",
    group_field="pod",
    sort_primary="roas_timeframe",
    sort_secondary="ad_spend_timeframe",
)


# ─────────────────────────────────────────────
# HELPERS
# ─────────────────────────────────────────────

SCHEMAS: Dict[str, RowSchema] = {
    "financialx": FINANCE_SCHEMA,
    "pod": FINANCE_SCHEMA,
    "autometric": AD_INSIGHTS_SCHEMA,
}


def get_schema(refresh_type: str) -> RowSchema:
    """Look up the row schema for a refresh type."""
    try:
        return SCHEMAS[refresh_type]
    except KeyError:
        raise ValueError(f"Unknown refresh type: {refresh_type}") from None
