"""METRICSNAP — Roster Models.

Accounts and sheets are owned by the dashboard; the refresh pipeline only
reads them.
"""

from datetime import datetime, timezone
from typing import Optional
from sqlmodel import SQLModel, Field


class Account(SQLModel, table=True):
    """A client account with its external identities."""

    __tablename__ = "accounts"

    id: Optional[int] = Field(default=None, primary_key=True)
    brand: str = Field(index=True, description="Brand / account display name")
    pod: Optional[str] = Field(default=None, index=True, description="Owning team")
    status: str = Field(default="active", index=True)
    is_monitored: bool = Field(default=False)
    fb_account_id: Optional[str] = Field(
        default=None, description="Facebook ad account id (act_...)"
    )
    store_id: Optional[str] = Field(default=None, description="Shopify store handle")
    shopify_key: Optional[str] = Field(
        default=None, description="Encrypted Shopify Admin API token"
    )
    rebill_date: Optional[str] = Field(default=None, description="YYYY-MM-DD")
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class Sheet(SQLModel, table=True):
    """A refresh scope: one spreadsheet fed by one refresh type."""

    __tablename__ = "sheets"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(default="")
    spreadsheet_id: str = Field(description="External spreadsheet id")
    refresh_type: str = Field(index=True, description="financialx | autometric | pod")
    date_preset: str = Field(
        default="last_30d", description='Relative window; "none" disables scheduling'
    )
    account_status: str = Field(default="active")
    pod: Optional[str] = Field(default=None, description="Restrict to one pod")
