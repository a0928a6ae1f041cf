"""METRICSNAP — Facebook Marketing API Client.

Handles authentication, retry logic and rate limiting for per-account
insights requests.
"""

import asyncio
import json
from typing import Any, Dict, List, Optional

import httpx

from metricsnap.config import settings
from metricsnap.core.logging import get_logger

logger = get_logger("facebook.client")

MAX_RETRIES = 3
RETRY_BASE_DELAY = 2  # seconds


class FacebookAPIError(Exception):
    """Raised when the Marketing API returns an error."""

    def __init__(self, message: str, status_code: int = 0, error_code: int = 0):
        self.status_code = status_code
        self.error_code = error_code
        super().__init__(message)


class FacebookClient:
    """Async HTTP client for the Facebook Marketing API."""

    def __init__(
        self,
        access_token: str | None = None,
        client: Optional[httpx.AsyncClient] = None,
        retry_base_delay: float = RETRY_BASE_DELAY,
    ):
        self.access_token = access_token or settings.facebook_access_token
        self.base = f"{settings.facebook_base_url}/{settings.facebook_api_version}"
        self.retry_base_delay = retry_base_delay
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=settings.http_timeout)
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def __aenter__(self) -> "FacebookClient":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    # ── Core Request Method ──

    @staticmethod
    def _error_from(resp: httpx.Response) -> FacebookAPIError:
        """Build an error from a Graph API error envelope, when there is one."""
        error: Dict[str, Any] = {}
        if resp.headers.get("content-type", "").startswith("application/json"):
            error = (resp.json() or {}).get("error") or {}
        message = error.get("message") or f"HTTP {resp.status_code}"
        return FacebookAPIError(message, resp.status_code, error.get("code", 0))

    async def _backoff(self, attempt: int, reason: str, account_id: str) -> None:
        wait = self.retry_base_delay * (2 ** (attempt - 1))
        logger.warning(
            f"{reason}. Retrying in {wait}s (attempt {attempt}/{MAX_RETRIES})",
            extra={"account": account_id},
        )
        await asyncio.sleep(wait)

    async def _get(self, url: str, params: Dict[str, Any], account_id: str) -> Dict[str, Any]:
        """GET with retry on 429, 5xx and transport errors."""
        params = {**params, "access_token": self.access_token}
        client = await self._get_client()

        for attempt in range(1, MAX_RETRIES + 1):
            last_try = attempt == MAX_RETRIES
            try:
                resp = await client.get(url, params=params)
            except httpx.RequestError as e:
                if last_try:
                    raise FacebookAPIError(
                        f"Connection failed after {MAX_RETRIES} retries: {e}"
                    ) from e
                await self._backoff(attempt, f"Request error: {e}", account_id)
                continue

            if resp.status_code == 429 or resp.status_code >= 500:
                if last_try:
                    raise self._error_from(resp)
                await self._backoff(attempt, f"HTTP {resp.status_code}", account_id)
                continue
            if resp.is_error:
                raise self._error_from(resp)
            return resp.json()

        raise FacebookAPIError("Max retries exhausted")

    # ── Insights ──

    async def get_insights(
        self,
        account_id: str,
        fields: str,
        date_preset: Optional[str] = None,
        since: Optional[str] = None,
        until: Optional[str] = None,
        filtering: Optional[List[Dict[str, Any]]] = None,
    ) -> Optional[Dict[str, Any]]:
        """Fetch account-level insights for one window.

        Returns the single aggregated insight row, or None when the account
        has no data for the window.
        """
        url = f"{self.base}/{account_id}/insights"
        params: Dict[str, Any] = {"fields": fields, "level": "account"}
        if since:
            params["time_range"] = json.dumps({"since": since, "until": until or since})
        else:
            params["date_preset"] = date_preset or "last_30d"
        if filtering:
            params["filtering"] = json.dumps(filtering)

        result = await self._get(url, params, account_id)
        data = result.get("data") or []
        return data[0] if data else None
