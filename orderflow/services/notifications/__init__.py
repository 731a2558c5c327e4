"""
Notification Service Factory

Returns Mock or Real notification service based on ENV_MODE.

Author: Khalil Bannouri
Version: 4.0.0
"""

import logging
from functools import lru_cache

from orderflow.core.config import get_settings
from orderflow.services.notifications.base import (
    BaseNotificationService,
    NotificationResult,
)
from orderflow.services.notifications.mock import MockNotificationService
from orderflow.services.notifications.real import RealNotificationService
from orderflow.services.notifications.templates import (
    contact_address,
    render_status_message,
)

logger = logging.getLogger(__name__)


@lru_cache()
def get_notification_service() -> BaseNotificationService:
    """Get the configured notification service."""
    settings = get_settings()

    if settings.is_development:
        logger.info("Notification Service: Using MockNotificationService (development mode)")
        return MockNotificationService(
            failure_rate=settings.mock_failure_rate,
            min_latency=0.0,
            max_latency=settings.mock_max_latency_seconds,
        )
    else:
        logger.info(f"Notification Service: Using RealNotificationService ({settings.env_mode.value} mode)")
        return RealNotificationService()


def reset_notification_service() -> None:
    """Clear the cached service instance."""
    get_notification_service.cache_clear()


__all__ = [
    "get_notification_service",
    "reset_notification_service",
    "BaseNotificationService",
    "MockNotificationService",
    "NotificationResult",
    "RealNotificationService",
    "contact_address",
    "render_status_message",
]
