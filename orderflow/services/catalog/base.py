"""
Catalog Service Abstract Base Class

Defines the interface for reading the authoritative menu. Implementations
return current price and availability; they never cache between calls so
a price change is visible to the very next order.

Author: Khalil Bannouri
Version: 4.0.0
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable


@dataclass(frozen=True)
class CatalogEntry:
    """
    Current catalog data for one item.

    Attributes:
        id: Catalog item identifier
        restaurant_id: Restaurant that sells the item
        name: Display name
        price: Current unit price
        is_available: Whether the item can be ordered right now
    """
    id: str
    restaurant_id: str
    name: str
    price: Decimal
    is_available: bool = True


@dataclass(frozen=True)
class RequestedItem:
    """An item id and quantity as submitted by the customer."""
    item_id: str
    quantity: int


@dataclass(frozen=True)
class ResolvedLine:
    """A requested item joined with its catalog price snapshot."""
    item_id: str
    name: str
    unit_price: Decimal
    quantity: int


class BaseCatalogService(ABC):
    """
    Abstract base class for catalog services.

    Example:
        >>> catalog = get_catalog_service()
        >>> items = await catalog.get_items("main", ["margherita", "coke"])
        >>> {item.id: item.price for item in items}
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the catalog backend name (e.g. "database", "http")."""
        pass

    @abstractmethod
    async def get_items(
        self,
        restaurant_id: str,
        item_ids: Iterable[str],
    ) -> list[CatalogEntry]:
        """
        Look up items for one restaurant.

        Unknown ids are simply absent from the result.
        """
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Check catalog connectivity."""
        pass

    async def aclose(self) -> None:
        """Release connections held by the backend (no-op by default)."""
        return None
