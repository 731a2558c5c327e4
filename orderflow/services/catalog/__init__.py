"""
Catalog Service Factory

Returns the remote HTTP catalog when CATALOG_API_URL is configured,
otherwise the database catalog.

Author: Khalil Bannouri
Version: 4.0.0
"""

import logging
from functools import lru_cache

from orderflow.core.config import get_settings
from orderflow.database import async_session_maker
from orderflow.services.catalog.base import (
    BaseCatalogService,
    CatalogEntry,
    RequestedItem,
    ResolvedLine,
)
from orderflow.services.catalog.database import DatabaseCatalogService
from orderflow.services.catalog.remote import HttpCatalogService
from orderflow.services.catalog.resolver import CatalogResolver

logger = logging.getLogger(__name__)


@lru_cache()
def get_catalog_service() -> BaseCatalogService:
    """Get the configured catalog service."""
    settings = get_settings()

    if settings.catalog_api_url:
        logger.info(f"Catalog Service: Using HttpCatalogService ({settings.catalog_api_url})")
        return HttpCatalogService(
            base_url=settings.catalog_api_url,
            timeout_seconds=settings.catalog_timeout_seconds,
            api_key=settings.catalog_api_key,
        )

    logger.info("Catalog Service: Using DatabaseCatalogService")
    return DatabaseCatalogService(async_session_maker)


def reset_catalog_service() -> None:
    """Clear the cached service instance."""
    get_catalog_service.cache_clear()


__all__ = [
    "get_catalog_service",
    "reset_catalog_service",
    "BaseCatalogService",
    "CatalogEntry",
    "CatalogResolver",
    "DatabaseCatalogService",
    "HttpCatalogService",
    "RequestedItem",
    "ResolvedLine",
]
