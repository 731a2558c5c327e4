"""
SQLAlchemy Database Models

Tables:
- orders: one row per order, immutable except for status
- status_events: append-only journal of every status change
  (its sequence doubles as the display broadcast sequence)
- restaurant_sequences: per-restaurant journal counter; bumping it locks
  the row, so sequences are contiguous and committed in order
- catalog_items: the restaurant menu used by the database catalog

Author: Khalil Bannouri
Version: 4.0.0
"""

import enum

from sqlalchemy import Column, Integer, String, Numeric, DateTime, Text, Boolean, Index, UniqueConstraint, text
from sqlalchemy.sql import func

from orderflow.database import Base


class OrderStatus(str, enum.Enum):
    """Order status workflow."""
    NEW = "new"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    READY = "ready"
    OUT_FOR_DELIVERY = "out_for_delivery"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset({OrderStatus.COMPLETED, OrderStatus.CANCELLED})
ACTIVE_STATUSES = frozenset(s for s in OrderStatus if s not in TERMINAL_STATUSES)


class SourceChannel(str, enum.Enum):
    """Where the order came from."""
    WEB = "web"
    PHONE = "phone"
    MESSAGING = "messaging"  # WhatsApp and similar platforms
    WALK_IN = "walk_in"


class OrderType(str, enum.Enum):
    """How the order leaves the kitchen."""
    PICKUP = "pickup"
    DELIVERY = "delivery"
    DINE_IN = "dine_in"


_ACTIVE_ONLY = text("status NOT IN ('completed', 'cancelled')")


class Order(Base):
    """
    Main Order table.

    Pricing columns are snapshots computed server-side at creation time;
    only ``status`` and ``updated_at`` ever change afterwards.
    """
    __tablename__ = "orders"
    __table_args__ = (
        # Display codes must not repeat among a restaurant's active orders
        Index(
            "uq_orders_active_display_code",
            "restaurant_id",
            "display_code",
            unique=True,
            sqlite_where=_ACTIVE_ONLY,
            postgresql_where=_ACTIVE_ONLY,
        ),
        Index("ix_orders_restaurant_created", "restaurant_id", "created_at"),
    )

    id = Column(String(32), primary_key=True)
    display_code = Column(String(16), nullable=False)
    restaurant_id = Column(String(64), nullable=False, index=True)

    # =========================================================================
    # CUSTOMER INFORMATION
    # =========================================================================
    customer_name = Column(String(100), nullable=False)
    contact_handle = Column(String(64), nullable=False, index=True)
    source_channel = Column(String(16), nullable=False, index=True)
    order_type = Column(String(16), nullable=False)

    # =========================================================================
    # ORDER DETAILS
    # =========================================================================
    line_items = Column(Text, nullable=False)  # JSON list of price snapshots
    notes = Column(Text, nullable=True)

    # =========================================================================
    # PRICING
    # =========================================================================
    subtotal = Column(Numeric(10, 2), nullable=False)
    tax_amount = Column(Numeric(10, 2), nullable=False)
    service_charge = Column(Numeric(10, 2), nullable=False, default=0)
    total = Column(Numeric(10, 2), nullable=False)

    # =========================================================================
    # ORDER STATUS
    # =========================================================================
    status = Column(String(32), nullable=False, default=OrderStatus.NEW.value, index=True)

    # =========================================================================
    # TIMESTAMPS
    # =========================================================================
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<Order {self.display_code} ({self.id}) - {self.customer_name} - {self.status}>"


class StatusEvent(Base):
    """
    Append-only record of order status changes.

    The creation of an order is recorded as ``None -> new``. Rows are
    written in the same transaction as the status they describe and are
    never updated or deleted.

    ``sequence`` counts per restaurant (1, 2, 3, ...) and is taken from
    ``RestaurantSequence`` inside the writing transaction.
    """
    __tablename__ = "status_events"
    __table_args__ = (
        UniqueConstraint("restaurant_id", "sequence", name="uq_status_events_restaurant_sequence"),
        {"sqlite_autoincrement": True},
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    sequence = Column(Integer, nullable=False)
    order_id = Column(String(32), nullable=False, index=True)
    restaurant_id = Column(String(64), nullable=False)
    from_status = Column(String(32), nullable=True)
    to_status = Column(String(32), nullable=False)
    actor = Column(String(64), nullable=False, default="system")
    timestamp = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    def __repr__(self):
        return f"<StatusEvent #{self.sequence} {self.order_id}: {self.from_status} -> {self.to_status}>"


class RestaurantSequence(Base):
    """Last journal sequence handed out for a restaurant."""
    __tablename__ = "restaurant_sequences"

    restaurant_id = Column(String(64), primary_key=True)
    last_sequence = Column(Integer, nullable=False, default=0)

    def __repr__(self):
        return f"<RestaurantSequence {self.restaurant_id} #{self.last_sequence}>"


class CatalogItem(Base):
    """Menu item with its current price, read by the database catalog."""
    __tablename__ = "catalog_items"

    id = Column(String(64), primary_key=True)
    restaurant_id = Column(String(64), primary_key=True)
    name = Column(String(100), nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    is_available = Column(Boolean, nullable=False, default=True)

    def __repr__(self):
        return f"<CatalogItem {self.restaurant_id}/{self.id} {self.name} {self.price}>"
