"""METRICSNAP — Spreadsheet Sink.

Human-facing export of every refresh, totals row included. Writes are
best-effort and never atomic with the metrics store.
"""

from abc import ABC, abstractmethod
from typing import Any, List, Optional

import httpx

from metricsnap.config import settings
from metricsnap.core.logging import get_logger

logger = get_logger("connectors.sheets")


class SheetsAPIError(Exception):
    """Raised when the spreadsheet API rejects a write."""

    def __init__(self, message: str, status_code: int = 0):
        self.status_code = status_code
        super().__init__(message)


def to_cells(rows: List[List[Any]]) -> List[List[Any]]:
    """Spreadsheet cells cannot hold None; render it as an empty string."""
    return [["" if v is None else v for v in row] for row in rows]


class SpreadsheetSink(ABC):
    """Abstract destination for exported rows."""

    @abstractmethod
    async def append_rows(self, sink_id: str, rows: List[List[Any]]) -> int:
        """Write rows to the sink and return how many were written."""
        ...

    @abstractmethod
    def is_available(self) -> bool:
        """Check if this sink is configured and ready."""
        ...

    async def close(self) -> None:
        """Release any connection the sink holds."""
        return None


class NullSink(SpreadsheetSink):
    """Used when no spreadsheet credentials are configured."""

    async def append_rows(self, sink_id: str, rows: List[List[Any]]) -> int:
        logger.info(f"Spreadsheet export skipped for {sink_id} ({len(rows)} rows)")
        return 0

    def is_available(self) -> bool:
        return False


class GoogleSheetsSink(SpreadsheetSink):
    """Google Sheets v4 REST sink.

    Rows are written from ``settings.sheets_range`` down, replacing what the
    previous refresh wrote there.
    """

    def __init__(
        self,
        access_token: Optional[str] = None,
        base_url: Optional[str] = None,
        value_range: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.access_token = access_token or settings.sheets_access_token
        self.base_url = base_url or settings.sheets_base_url
        self.value_range = value_range or settings.sheets_range
        self._client = client

    def is_available(self) -> bool:
        return bool(self.access_token)

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=settings.http_timeout)
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def append_rows(self, sink_id: str, rows: List[List[Any]]) -> int:
        client = await self._get_client()
        url = f"{self.base_url}/{sink_id}/values/{self.value_range}"
        try:
            resp = await client.put(
                url,
                params={"valueInputOption": "RAW"},
                headers={"Authorization": f"Bearer {self.access_token}"},
                json={"values": to_cells(rows)},
            )
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise SheetsAPIError(
                f"Sheets write failed: {e.response.text[:200]}", e.response.status_code
            ) from e
        except httpx.RequestError as e:
            raise SheetsAPIError(f"Sheets request failed: {e}") from e

        updated = resp.json().get("updatedRows", len(rows))
        logger.info(f"Wrote {updated} rows to spreadsheet {sink_id}")
        return updated


def default_sink() -> SpreadsheetSink:
    sink = GoogleSheetsSink()
    return sink if sink.is_available() else NullSink()
