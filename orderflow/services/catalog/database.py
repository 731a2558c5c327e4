"""
Database Catalog Service

Reads the menu from the ``catalog_items`` table. Used when no remote
catalog API is configured (local development, tests, single-site setups).
"""

import logging
from decimal import Decimal
from typing import Iterable

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from orderflow.models import CatalogItem
from orderflow.services.catalog.base import BaseCatalogService, CatalogEntry

logger = logging.getLogger(__name__)


class DatabaseCatalogService(BaseCatalogService):
    """Catalog backed by the local ``catalog_items`` table."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    @property
    def provider_name(self) -> str:
        return "database"

    async def get_items(
        self,
        restaurant_id: str,
        item_ids: Iterable[str],
    ) -> list[CatalogEntry]:
        ids = list(dict.fromkeys(item_ids))
        if not ids:
            return []

        async with self._session_maker() as session:
            result = await session.execute(
                select(CatalogItem).where(
                    CatalogItem.restaurant_id == restaurant_id,
                    CatalogItem.id.in_(ids),
                )
            )
            rows = result.scalars().all()

        logger.debug(f"Catalog lookup {restaurant_id}: {len(rows)}/{len(ids)} items found")

        return [
            CatalogEntry(
                id=row.id,
                restaurant_id=row.restaurant_id,
                name=row.name,
                price=Decimal(str(row.price)),
                is_available=bool(row.is_available),
            )
            for row in rows
        ]

    async def upsert_item(
        self,
        restaurant_id: str,
        item_id: str,
        name: str,
        price: Decimal,
        is_available: bool = True,
    ) -> None:
        """Create or replace one menu item (seeding and admin scripts)."""
        async with self._session_maker() as session, session.begin():
            await session.merge(CatalogItem(
                id=item_id,
                restaurant_id=restaurant_id,
                name=name,
                price=Decimal(str(price)),
                is_available=is_available,
            ))

    async def health_check(self) -> bool:
        try:
            async with self._session_maker() as session:
                await session.execute(select(func.count(CatalogItem.id)))
            return True
        except Exception as e:
            logger.error(f"Catalog health check failed: {e}")
            return False
