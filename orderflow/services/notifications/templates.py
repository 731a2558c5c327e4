"""
Customer Message Templates

One plain-text message per lifecycle step. Statuses without a template
(e.g. preparing) send nothing.
"""

from typing import Optional

from orderflow.models import OrderStatus, SourceChannel

WHATSAPP_PREFIX = "whatsapp:"


def contact_address(order) -> str:
    """Twilio address for the order's customer (WhatsApp for messaging orders)."""
    handle = order.contact_handle
    if order.source_channel == SourceChannel.MESSAGING.value and not handle.startswith(WHATSAPP_PREFIX):
        return f"{WHATSAPP_PREFIX}{handle}"
    return handle


def render_status_message(
    order,
    status: OrderStatus,
    restaurant_name: str,
) -> Optional[str]:
    """Message for an order entering ``status``; None when nothing is sent."""
    status = OrderStatus(status)
    code = order.display_code

    if status == OrderStatus.NEW:
        return (
            f"Hi {order.customer_name}! We received your order {code}.\n"
            f"{order.summary()}\n"
            f"Total: ${order.total}\n"
            f"Thank you for ordering from {restaurant_name}!"
        )
    if status == OrderStatus.CONFIRMED:
        return f"Your order {code} is confirmed and will be prepared shortly. - {restaurant_name}"
    if status == OrderStatus.READY:
        if order.order_type == "delivery":
            return f"Your order {code} is ready and waiting for the driver. - {restaurant_name}"
        return f"Your order {code} is ready for pickup! - {restaurant_name}"
    if status == OrderStatus.OUT_FOR_DELIVERY:
        return f"Your order {code} is on its way! - {restaurant_name}"
    if status == OrderStatus.COMPLETED:
        return f"Enjoy your meal, {order.customer_name}! Thanks for choosing {restaurant_name}."
    if status == OrderStatus.CANCELLED:
        return (
            f"Your order {code} has been cancelled. "
            f"Please contact {restaurant_name} if this is unexpected."
        )
    return None
