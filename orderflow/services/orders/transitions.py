"""
Order Status Transition Table

Pure and deterministic: no I/O, no time, no randomness. The table is the
single authority on which status changes are legal; the store consults it
inside the same transaction that applies the change.

    new -> confirmed -> preparing -> ready -> completed
                                     ready -> out_for_delivery -> completed
    any non-terminal state -> cancelled
"""

from typing import FrozenSet, Tuple

from orderflow.models import OrderStatus, TERMINAL_STATUSES


ALLOWED_TRANSITIONS: FrozenSet[Tuple[OrderStatus, OrderStatus]] = frozenset([
    (OrderStatus.NEW, OrderStatus.CONFIRMED),
    (OrderStatus.CONFIRMED, OrderStatus.PREPARING),
    (OrderStatus.PREPARING, OrderStatus.READY),
    (OrderStatus.READY, OrderStatus.COMPLETED),
    (OrderStatus.READY, OrderStatus.OUT_FOR_DELIVERY),
    (OrderStatus.OUT_FOR_DELIVERY, OrderStatus.COMPLETED),
    # Cancellation edges
    (OrderStatus.NEW, OrderStatus.CANCELLED),
    (OrderStatus.CONFIRMED, OrderStatus.CANCELLED),
    (OrderStatus.PREPARING, OrderStatus.CANCELLED),
    (OrderStatus.READY, OrderStatus.CANCELLED),
    (OrderStatus.OUT_FOR_DELIVERY, OrderStatus.CANCELLED),
])


def is_terminal(status: OrderStatus) -> bool:
    return OrderStatus(status) in TERMINAL_STATUSES


def is_valid_transition(from_status: OrderStatus, to_status: OrderStatus) -> bool:
    """
    Check if a status transition is allowed.

    Args:
        from_status: Current status
        to_status: Requested status

    Returns:
        True if (from_status, to_status) is in ALLOWED_TRANSITIONS.
    """
    return (OrderStatus(from_status), OrderStatus(to_status)) in ALLOWED_TRANSITIONS


def next_statuses(from_status: OrderStatus) -> list[OrderStatus]:
    """Statuses reachable in one step, in workflow order."""
    current = OrderStatus(from_status)
    return [s for s in OrderStatus if (current, s) in ALLOWED_TRANSITIONS]
