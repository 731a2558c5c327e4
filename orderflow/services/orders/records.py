"""
Order Records

Immutable value objects passed between the factory, the store, the
controller and the API layer. ORM rows never leave the store.
"""

import json
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from orderflow.models import OrderStatus


@dataclass(frozen=True)
class LineItem:
    """Price snapshot of one ordered catalog item."""
    catalog_item_id: str
    name: str
    unit_price: Decimal
    quantity: int
    line_total: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {
            "catalog_item_id": self.catalog_item_id,
            "name": self.name,
            "unit_price": str(self.unit_price),
            "quantity": self.quantity,
            "line_total": str(self.line_total),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LineItem":
        return cls(
            catalog_item_id=data["catalog_item_id"],
            name=data["name"],
            unit_price=Decimal(data["unit_price"]),
            quantity=int(data["quantity"]),
            line_total=Decimal(data["line_total"]),
        )


def dump_line_items(items: tuple[LineItem, ...]) -> str:
    return json.dumps([item.to_dict() for item in items])


def load_line_items(raw: str) -> tuple[LineItem, ...]:
    return tuple(LineItem.from_dict(item) for item in json.loads(raw))


@dataclass(frozen=True)
class OrderRecord:
    """
    An order as created by the factory.

    Every field except ``status`` and ``updated_at`` is fixed at creation;
    a status change produces a new record via ``with_status``.
    """
    id: str
    display_code: str
    restaurant_id: str
    customer_name: str
    contact_handle: str
    source_channel: str
    order_type: str
    line_items: tuple[LineItem, ...]
    subtotal: Decimal
    tax_amount: Decimal
    service_charge: Decimal
    total: Decimal
    notes: Optional[str]
    created_at: datetime
    status: OrderStatus = OrderStatus.NEW
    updated_at: Optional[datetime] = field(default=None)

    @property
    def is_active(self) -> bool:
        return self.status not in (OrderStatus.COMPLETED, OrderStatus.CANCELLED)

    def with_status(self, status: OrderStatus, updated_at: datetime) -> "OrderRecord":
        return replace(self, status=OrderStatus(status), updated_at=updated_at)

    def summary(self) -> str:
        """One line per item, as shown on tickets and messages."""
        return "\n".join(f"{item.name} x{item.quantity}" for item in self.line_items)

    def to_payload(self) -> dict[str, Any]:
        """JSON-ready representation used for display broadcasts."""
        return {
            "id": self.id,
            "display_code": self.display_code,
            "restaurant_id": self.restaurant_id,
            "customer_name": self.customer_name,
            "contact_handle": self.contact_handle,
            "source_channel": self.source_channel,
            "order_type": self.order_type,
            "line_items": [item.to_dict() for item in self.line_items],
            "subtotal": str(self.subtotal),
            "tax_amount": str(self.tax_amount),
            "service_charge": str(self.service_charge),
            "total": str(self.total),
            "notes": self.notes,
            "status": OrderStatus(self.status).value,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


@dataclass(frozen=True)
class StatusEventRecord:
    """One accepted status change (``from_status`` is None for creation)."""
    sequence: int
    order_id: str
    restaurant_id: str
    from_status: Optional[OrderStatus]
    to_status: OrderStatus
    actor: str
    timestamp: datetime

    @property
    def is_creation(self) -> bool:
        return self.from_status is None
