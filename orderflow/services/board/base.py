"""
Kitchen Board Service Abstract Base Class

Defines the interface for mirroring orders onto an external kitchen board
(one card per order). Called from Celery workers, so the interface is
synchronous.

Author: Khalil Bannouri
Version: 4.0.0
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass
class BoardResult:
    """Result from creating a board card."""
    success: bool
    card_id: Optional[str] = None
    card_url: Optional[str] = None
    error_message: Optional[str] = None
    provider: str = "unknown"

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "success": self.success,
            "card_id": self.card_id,
            "card_url": self.card_url,
            "error_message": self.error_message,
            "provider": self.provider,
        }


class BaseBoardService(ABC):
    """Abstract base class for kitchen board services."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name."""
        pass

    @abstractmethod
    def create_card(self, title: str, description: str) -> BoardResult:
        """
        Create a card for an order.

        Args:
            title: Card title (display code and customer)
            description: Item summary and totals
        """
        pass


def card_for_order(payload: dict) -> tuple[str, str]:
    """Build (title, description) from an order payload."""
    title = f"{payload['display_code']} - {payload['customer_name']}"
    lines = [
        f"{item['name']} x{item['quantity']}"
        for item in payload.get("line_items", [])
    ]
    lines.append("")
    lines.append(f"Type: {payload.get('order_type')}")
    lines.append(f"Source: {payload.get('source_channel')}")
    lines.append(f"Total: ${payload.get('total')}")
    if payload.get("notes"):
        lines.append(f"Notes: {payload['notes']}")
    return title, "\n".join(lines)
