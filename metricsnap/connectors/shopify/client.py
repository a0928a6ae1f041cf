"""METRICSNAP — Shopify Admin GraphQL Client.

Sums order revenue for a store since a given date, paging through the
orders connection 250 at a time.
"""

import asyncio
from typing import Any, Dict, Optional, Tuple

import httpx

from metricsnap.config import settings
from metricsnap.core.logging import get_logger

logger = get_logger("shopify.client")

MAX_RETRIES = 3
RETRY_BASE_DELAY = 2  # seconds
PAGE_SIZE = 250

ORDERS_QUERY = """
query ($cursor: String, $query: String!) {
  orders(first: %d, after: $cursor, query: $query) {
    edges {
      node {
        totalPriceSet { shopMoney { amount } }
      }
    }
    pageInfo { hasNextPage endCursor }
  }
}
""" % PAGE_SIZE


class ShopifyAPIError(Exception):
    """Raised when the Admin API returns an error."""

    def __init__(self, message: str, status_code: int = 0):
        self.status_code = status_code
        super().__init__(message)


def orders_filter(since: str) -> str:
    """Search query for paid, non-test orders created on or after ``since``."""
    return f"created_at:>={since} -status:cancelled -status:returned test:false"


class ShopifyClient:
    """Async GraphQL client for one store."""

    def __init__(
        self,
        store_id: str,
        access_token: str,
        client: Optional[httpx.AsyncClient] = None,
        retry_base_delay: float = RETRY_BASE_DELAY,
    ):
        self.store_id = store_id
        self.access_token = access_token
        self.url = (
            f"https://{store_id}.myshopify.com/admin/api/"
            f"{settings.shopify_api_version}/graphql.json"
        )
        self.retry_base_delay = retry_base_delay
        self._client = client
        self._owns_client = client is None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=settings.http_timeout)
            self._owns_client = True
        return self._client

    async def close(self) -> None:
        if self._owns_client and self._client and not self._client.is_closed:
            await self._client.aclose()

    async def __aenter__(self) -> "ShopifyClient":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def _post(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        client = await self._get_client()
        headers = {
            "X-Shopify-Access-Token": self.access_token,
            "Content-Type": "application/json",
        }

        for attempt in range(1, MAX_RETRIES + 1):
            wait = self.retry_base_delay * (2 ** (attempt - 1))
            try:
                resp = await client.post(self.url, json=payload, headers=headers)

                if resp.status_code == 429:
                    if attempt == MAX_RETRIES:
                        raise ShopifyAPIError("Rate limit exceeded", 429)
                    logger.warning(
                        f"Shopify throttled {self.store_id}. Retrying in {wait}s"
                    )
                    await asyncio.sleep(wait)
                    continue

                resp.raise_for_status()
                body = resp.json()
                if body.get("errors"):
                    raise ShopifyAPIError(f"GraphQL errors: {body['errors']}")
                return body

            except httpx.HTTPStatusError as e:
                if attempt < MAX_RETRIES and e.response.status_code >= 500:
                    logger.warning(
                        f"Server error {e.response.status_code}. Retrying in {wait}s"
                    )
                    await asyncio.sleep(wait)
                    continue
                raise ShopifyAPIError(
                    f"HTTP {e.response.status_code} from {self.store_id}",
                    e.response.status_code,
                ) from e

            except httpx.RequestError as e:
                if attempt < MAX_RETRIES:
                    logger.warning(f"Request error: {e}. Retrying in {wait}s")
                    await asyncio.sleep(wait)
                    continue
                raise ShopifyAPIError(
                    f"Connection failed after {MAX_RETRIES} retries: {e}"
                ) from e

        raise ShopifyAPIError("Max retries exhausted")

    async def get_revenue(self, since: str) -> Tuple[int, float]:
        """Order count and summed order value since ``since`` (ISO date)."""
        cursor: Optional[str] = None
        orders = 0
        revenue = 0.0
        query = orders_filter(since)

        while True:
            body = await self._post(
                {"query": ORDERS_QUERY, "variables": {"cursor": cursor, "query": query}}
            )
            connection = (body.get("data") or {}).get("orders") or {}
            for edge in connection.get("edges", []):
                amount = edge["node"]["totalPriceSet"]["shopMoney"]["amount"]
                revenue += float(amount)
                orders += 1

            page = connection.get("pageInfo") or {}
            if not page.get("hasNextPage"):
                break
            cursor = page.get("endCursor")

        logger.info(
            f"Store {self.store_id}: {orders} orders since {since}",
            extra={"account": self.store_id},
        )
        return orders, round(revenue, 2)
