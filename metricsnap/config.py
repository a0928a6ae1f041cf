"""METRICSNAP — Central Configuration via Pydantic Settings."""

import os
from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables / .env file."""

    # ── Facebook Marketing API ──
    facebook_access_token: str = ""
    facebook_api_version: str = "v21.0"
    facebook_base_url: str = "https://graph.facebook.com"

    # ── Shopify Admin API ──
    shopify_api_version: str = "2024-07"

    # ── Credentials ──
    encryption_key: str = ""  # 64 hex chars (AES-256)

    # ── Spreadsheet sink ──
    sheets_access_token: Optional[str] = None
    sheets_base_url: str = "https://sheets.googleapis.com/v4/spreadsheets"
    sheets_range: str = "Sheet1!A2"

    # ── Database ──
    database_url: str = ""

    # ── App ──
    log_level: str = "INFO"
    scheduler_enabled: bool = True
    refresh_hour: int = 6  # Daily refresh at 6 AM UTC

    # ── Refresh pipeline ──
    batch_size: int = 75
    max_concurrency: int = 5
    http_timeout: float = 30.0
    history_limit: int = 30

    @property
    def effective_database_url(self) -> str:
        """Return PostgreSQL URL if set, otherwise fall back to SQLite."""
        if self.database_url:
            return self.database_url
        # Vercel has a read-only filesystem; use /tmp for SQLite
        if os.environ.get("VERCEL"):
            return "sqlite:////tmp/metricsnap.db"
        return "sqlite:///./metricsnap.db"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
