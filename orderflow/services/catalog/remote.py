"""
Remote Catalog Service

Production implementation that queries the restaurant's catalog API over
HTTP. Expected endpoint:

    GET {CATALOG_API_URL}/restaurants/{restaurant_id}/items?ids=a,b,c
    -> [{"id": "a", "name": "...", "price": 5.0, "is_available": true}, ...]

Transport errors and timeouts surface as CatalogUnavailable so that no
order is ever created from unverified prices.
"""

import logging
from decimal import Decimal
from typing import Iterable, Optional

import httpx

from orderflow.core.errors import CatalogUnavailable
from orderflow.services.catalog.base import BaseCatalogService, CatalogEntry

logger = logging.getLogger(__name__)


class HttpCatalogService(BaseCatalogService):
    """Catalog backed by a remote HTTP API."""

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 3.0,
        api_key: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        headers = {"Accept": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"

        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=httpx.Timeout(timeout_seconds),
            headers=headers,
            transport=transport,
        )
        logger.info(f"HttpCatalogService initialized ({base_url}, timeout={timeout_seconds}s)")

    @property
    def provider_name(self) -> str:
        return "http"

    async def get_items(
        self,
        restaurant_id: str,
        item_ids: Iterable[str],
    ) -> list[CatalogEntry]:
        ids = list(dict.fromkeys(item_ids))
        if not ids:
            return []

        try:
            response = await self._client.get(
                f"/restaurants/{restaurant_id}/items",
                params={"ids": ",".join(ids)},
            )
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException as e:
            logger.warning(f"Catalog API timed out for {restaurant_id}: {e}")
            raise CatalogUnavailable("Catalog lookup timed out") from e
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Catalog API error for {restaurant_id}: {e}")
            raise CatalogUnavailable(f"Catalog lookup failed: {e}") from e

        if isinstance(data, dict):
            data = data.get("items", [])

        return [
            CatalogEntry(
                id=str(item["id"]),
                restaurant_id=restaurant_id,
                name=item.get("name", str(item["id"])),
                price=Decimal(str(item["price"])),
                is_available=bool(item.get("is_available", item.get("isAvailable", True))),
            )
            for item in data
        ]

    async def health_check(self) -> bool:
        try:
            response = await self._client.get("/health")
            return response.status_code < 500
        except httpx.HTTPError:
            return False

    async def aclose(self) -> None:
        await self._client.aclose()
