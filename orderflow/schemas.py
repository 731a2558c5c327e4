"""
Pydantic Schemas for Request/Response Validation

Covers the order intake, kitchen status updates, listings, the daily
summary and the health check. Money fields are Decimals and serialize as
strings, so totals never pick up float rounding on the way out.

Author: Khalil Bannouri
Version: 4.0.0
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List
from datetime import datetime
from decimal import Decimal

from orderflow.models import OrderStatus, OrderType, SourceChannel


# =============================================================================
# REQUEST SCHEMAS
# =============================================================================

class OrderItemRequest(BaseModel):
    """
    Single item in an order.

    Only the catalog id and quantity are read; anything else a client
    sends (such as a price) is ignored.
    """
    model_config = ConfigDict(extra="ignore")

    item_id: str = Field(..., min_length=1, max_length=64, examples=["margherita"])
    quantity: int = Field(..., ge=1, le=99, examples=[2])


class OrderCreate(BaseModel):
    """Request schema for creating a new order."""
    model_config = ConfigDict(extra="ignore")

    restaurant_id: Optional[str] = Field(None, max_length=64, examples=["main"])

    # Customer Info
    customer_name: str = Field(..., min_length=1, max_length=100, examples=["John Doe"])
    contact_handle: str = Field(..., min_length=1, max_length=64, examples=["+15551234567"])

    # Channel / fulfilment
    source_channel: SourceChannel = Field(default=SourceChannel.WEB, examples=["web"])
    order_type: OrderType = Field(default=OrderType.PICKUP, examples=["pickup"])

    # Order Items
    items: List[OrderItemRequest] = Field(..., min_length=1)
    notes: Optional[str] = Field(None, max_length=500)


class StatusUpdateRequest(BaseModel):
    """Kitchen request to move an order along the workflow."""
    status: OrderStatus = Field(..., examples=["confirmed"])
    expected_status: Optional[OrderStatus] = Field(
        None,
        description="Apply only if the order is still in this status",
        examples=["new"],
    )
    actor: Optional[str] = Field(None, max_length=64, examples=["grill-station"])


# =============================================================================
# RESPONSE SCHEMAS
# =============================================================================

class LineItemResponse(BaseModel):
    """Price snapshot of one ordered item."""
    catalog_item_id: str
    name: str
    unit_price: Decimal
    quantity: int
    line_total: Decimal

    class Config:
        from_attributes = True


class OrderResponse(BaseModel):
    """Response schema for a single order."""
    id: str
    display_code: str
    restaurant_id: str
    customer_name: str
    contact_handle: str
    source_channel: str
    order_type: str
    line_items: List[LineItemResponse]
    subtotal: Decimal
    tax_amount: Decimal
    service_charge: Decimal
    total: Decimal
    notes: Optional[str]
    status: OrderStatus
    created_at: datetime
    updated_at: Optional[datetime]

    class Config:
        from_attributes = True


class OrderCreateResponse(BaseModel):
    """Response after successfully creating an order."""
    success: bool = True
    order_id: str
    display_code: str
    total: Decimal
    warnings: List[str] = []


class OrderListResponse(BaseModel):
    """Response for listing multiple orders."""
    total: int
    orders: List[OrderResponse]


class StatusEventResponse(BaseModel):
    """One entry of an order's status history."""
    sequence: int
    order_id: str
    from_status: Optional[OrderStatus]
    to_status: OrderStatus
    actor: str
    timestamp: datetime

    class Config:
        from_attributes = True


class SummaryResponse(BaseModel):
    """Per-status counts and today's revenue for one restaurant."""
    restaurant_id: str
    date: str
    counts: dict[str, int]
    active: int
    revenue_today: Decimal


class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    error: str
    detail: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    database: str
    redis: str
    notification_service: str
    connections: int
    timestamp: datetime
