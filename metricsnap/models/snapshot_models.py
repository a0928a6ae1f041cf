"""METRICSNAP — Snapshot Models (Versioned Refresh Results)."""

import uuid
from datetime import date, datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel
from sqlalchemy import JSON, Column
from sqlmodel import SQLModel, Field, UniqueConstraint


class RefreshType(str, Enum):
    FINANCIALX = "financialx"
    AUTOMETRIC = "autometric"
    POD = "pod"


class RefreshStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES = {RefreshStatus.COMPLETED.value, RefreshStatus.FAILED.value}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ─────────────────────────────────────────────
# DATABASE MODELS
# ─────────────────────────────────────────────


class Snapshot(SQLModel, table=True):
    """One refresh attempt for a scope, refresh type, date preset and day.

    The unique constraint makes a same-day re-run of the same scope land on
    the existing row instead of creating a second one. ``date_preset_key``
    mirrors ``date_preset`` with "" for no preset, since NULLs never collide
    in a unique index.
    """

    __tablename__ = "refresh_snapshots"
    __table_args__ = (
        UniqueConstraint(
            "scope_id",
            "refresh_type",
            "date_preset_key",
            "snapshot_date",
            name="uq_refresh_snapshot_scope_day",
        ),
    )

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    scope_id: int = Field(index=True, description="Sheet id")
    refresh_type: str = Field(index=True, description="financialx | autometric | pod")
    date_preset: Optional[str] = Field(default=None)
    date_preset_key: str = Field(default="")
    status: str = Field(default=RefreshStatus.PENDING.value, index=True)
    snapshot_date: date = Field(index=True)
    record_count: Optional[int] = Field(default=None)
    refresh_metadata: dict = Field(
        default_factory=dict, sa_column=Column("metadata", JSON)
    )
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class SnapshotMetric(SQLModel, table=True):
    """One account's normalized metrics within a snapshot.

    Numeric columns are NULL when the upstream value could not be parsed;
    the reason is kept in ``error_detail``.
    """

    __tablename__ = "refresh_snapshot_metrics"

    id: Optional[int] = Field(default=None, primary_key=True)
    snapshot_id: str = Field(foreign_key="refresh_snapshots.id", index=True)
    account_name: str = Field(index=True)
    pod: Optional[str] = Field(default=None, index=True)
    is_monitored: bool = Field(default=False)

    # Timeframe window
    ad_spend_timeframe: Optional[float] = None
    roas_timeframe: Optional[float] = None
    fb_revenue_timeframe: Optional[float] = None
    shopify_revenue_timeframe: Optional[float] = None
    orders_timeframe: Optional[float] = None

    # Since last rebill
    ad_spend_rebill: Optional[float] = None
    roas_rebill: Optional[float] = None
    fb_revenue_rebill: Optional[float] = None
    shopify_revenue_rebill: Optional[float] = None
    orders_rebill: Optional[float] = None
    rebill_status: Optional[str] = None
    last_rebill_date: Optional[str] = None
    next_rebill_date: Optional[str] = None

    # Ad insights
    cpa_purchase: Optional[float] = None
    cpc: Optional[float] = None
    cpm: Optional[float] = None
    ctr: Optional[float] = None
    quality_ranking: Optional[str] = None
    engagement_rate_ranking: Optional[str] = None
    conversion_rate_ranking: Optional[str] = None
    impressions: Optional[float] = None
    hook_rate: Optional[float] = None
    atc_rate: Optional[float] = None
    ic_rate: Optional[float] = None
    purchase_rate: Optional[float] = None
    bounce_rate: Optional[float] = None

    is_error: bool = Field(default=False, index=True)
    error_detail: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=_utcnow)


NUMERIC_COLUMNS = (
    "ad_spend_timeframe",
    "roas_timeframe",
    "fb_revenue_timeframe",
    "shopify_revenue_timeframe",
    "orders_timeframe",
    "ad_spend_rebill",
    "roas_rebill",
    "fb_revenue_rebill",
    "shopify_revenue_rebill",
    "orders_rebill",
    "cpa_purchase",
    "cpc",
    "cpm",
    "ctr",
    "impressions",
    "hook_rate",
    "atc_rate",
    "ic_rate",
    "purchase_rate",
    "bounce_rate",
)

TEXT_COLUMNS = (
    "rebill_status",
    "last_rebill_date",
    "next_rebill_date",
    "quality_ranking",
    "engagement_rate_ranking",
    "conversion_rate_ranking",
)


# ─────────────────────────────────────────────
# PYDANTIC SCHEMAS — Read API responses
# ─────────────────────────────────────────────


class SnapshotSummary(BaseModel):
    id: str
    scope_id: int
    refresh_type: str
    date_preset: Optional[str] = None
    status: str
    snapshot_date: date
    record_count: Optional[int] = None
    metadata: dict = {}
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_row(cls, snapshot: Snapshot) -> "SnapshotSummary":
        return cls(
            id=snapshot.id,
            scope_id=snapshot.scope_id,
            refresh_type=snapshot.refresh_type,
            date_preset=snapshot.date_preset,
            status=snapshot.status,
            snapshot_date=snapshot.snapshot_date,
            record_count=snapshot.record_count,
            metadata=snapshot.refresh_metadata or {},
            created_at=snapshot.created_at,
            updated_at=snapshot.updated_at,
        )


class SnapshotWithMetrics(SnapshotSummary):
    metrics: List[dict] = []


class MetricComparison(BaseModel):
    """Field-by-field delta for one account between two snapshots."""

    account_name: str
    pod: Optional[str] = None
    shopify_revenue_change: Optional[float] = None
    roas_change: Optional[float] = None
    spend_change: Optional[float] = None


class FinanceAggregates(BaseModel):
    total_accounts: int = 0
    total_rebill_spend: float = 0.0
    avg_rebill_roas: float = 0.0
    total_rebill_orders: float = 0.0
    accounts_in_rebill: int = 0
