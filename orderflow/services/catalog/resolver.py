"""
Catalog Resolver

The single point where customer-submitted items become priced lines.
Whatever price the client sent is discarded here; unit prices come only
from the catalog, looked up fresh for every submission, and must be whole
cents so a line total is exactly unit price times quantity.
"""

import asyncio
import logging
from decimal import Decimal
from typing import Sequence

from sqlalchemy.exc import SQLAlchemyError

from orderflow.core.errors import (
    CatalogUnavailable,
    ItemNotFound,
    ItemUnavailable,
    ValidationFailed,
)
from orderflow.services.catalog.base import BaseCatalogService, RequestedItem, ResolvedLine

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


class CatalogResolver:
    """
    Resolves requested items against the catalog.

    Attributes:
        catalog: Catalog backend to query
        timeout_seconds: Budget for the catalog call; exceeding it fails the submission
    """

    def __init__(self, catalog: BaseCatalogService, timeout_seconds: float = 3.0):
        self.catalog = catalog
        self.timeout_seconds = timeout_seconds

    async def resolve(
        self,
        restaurant_id: str,
        requested_items: Sequence[RequestedItem],
    ) -> list[ResolvedLine]:
        """
        Price every requested line from the catalog.

        Raises:
            ValidationFailed: empty request or a quantity below 1
            ItemNotFound: an id the restaurant does not sell
            ItemUnavailable: an item currently switched off
            CatalogUnavailable: the catalog did not answer in time, or sent
                a price that is negative or not in whole cents
        """
        if not requested_items:
            raise ValidationFailed("Order must contain at least one item")

        for item in requested_items:
            if not item.item_id:
                raise ValidationFailed("Every item needs an item_id")
            if item.quantity < 1:
                raise ValidationFailed(
                    f"Quantity for '{item.item_id}' must be at least 1",
                    {"item_id": item.item_id, "quantity": item.quantity},
                )

        item_ids = list(dict.fromkeys(item.item_id for item in requested_items))

        try:
            entries = await asyncio.wait_for(
                self.catalog.get_items(restaurant_id, item_ids),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            logger.warning(
                f"Catalog ({self.catalog.provider_name}) timed out after "
                f"{self.timeout_seconds}s for restaurant {restaurant_id}"
            )
            raise CatalogUnavailable("Catalog lookup timed out") from e
        except SQLAlchemyError as e:
            logger.error(f"Catalog database error for restaurant {restaurant_id}: {e}")
            raise CatalogUnavailable("Catalog lookup failed") from e

        by_id = {entry.id: entry for entry in entries if entry.restaurant_id == restaurant_id}

        lines = []
        for item in requested_items:
            entry = by_id.get(item.item_id)
            if entry is None:
                raise ItemNotFound(item.item_id)
            if not entry.is_available:
                raise ItemUnavailable(item.item_id, entry.name)

            price = Decimal(str(entry.price))
            if price < 0 or price != price.quantize(CENT):
                logger.error(
                    f"Catalog ({self.catalog.provider_name}) priced {entry.id} at {price} "
                    f"for restaurant {restaurant_id}"
                )
                raise CatalogUnavailable(f"Catalog returned an invalid price for '{entry.id}'")

            lines.append(ResolvedLine(
                item_id=entry.id,
                name=entry.name,
                unit_price=price,
                quantity=item.quantity,
            ))

        return lines
