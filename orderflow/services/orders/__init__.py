"""
Order Lifecycle Factory

Wires the controller to the configured store, catalog, broadcaster,
notification service and board mirror.

Author: Khalil Bannouri
Version: 4.0.0
"""

import logging
from functools import lru_cache

from orderflow.core.config import get_settings
from orderflow.database import async_session_maker
from orderflow.services.broadcast import get_broadcaster
from orderflow.services.catalog import CatalogResolver, get_catalog_service
from orderflow.services.notifications import get_notification_service
from orderflow.services.orders.factory import OrderFactory, compute_totals, generate_display_code
from orderflow.services.orders.lifecycle import (
    DisplayFeed,
    LifecycleController,
    OrderSubmission,
    SubmissionResult,
    TransitionOutcome,
)
from orderflow.services.orders.records import LineItem, OrderRecord, StatusEventRecord
from orderflow.services.orders.store import OrderStore
from orderflow.services.orders.transitions import ALLOWED_TRANSITIONS, is_valid_transition, next_statuses

logger = logging.getLogger(__name__)


@lru_cache()
def get_lifecycle_controller() -> LifecycleController:
    """Get the process-wide lifecycle controller."""
    from orderflow.tasks import mirror_order_to_board

    settings = get_settings()
    store = OrderStore(async_session_maker)

    logger.info("Lifecycle controller: wiring store, catalog, broadcaster and notifications")
    return LifecycleController(
        store=store,
        resolver=CatalogResolver(get_catalog_service(), settings.catalog_timeout_seconds),
        factory=OrderFactory(store.display_code_in_use, max_attempts=settings.display_code_max_attempts),
        broadcaster=get_broadcaster(),
        notifier=get_notification_service(),
        settings=settings,
        mirror=mirror_order_to_board.delay,
    )


__all__ = [
    "get_lifecycle_controller",
    "ALLOWED_TRANSITIONS",
    "DisplayFeed",
    "LifecycleController",
    "LineItem",
    "OrderFactory",
    "OrderRecord",
    "OrderStore",
    "OrderSubmission",
    "StatusEventRecord",
    "SubmissionResult",
    "TransitionOutcome",
    "compute_totals",
    "generate_display_code",
    "is_valid_transition",
    "next_statuses",
]
