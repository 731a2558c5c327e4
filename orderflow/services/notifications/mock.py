"""
Mock Notification Service

Simulates SMS and WhatsApp sending for development.
No actual messages are sent - just logged and kept in memory.

Author: Khalil Bannouri
Version: 4.0.0
"""

import asyncio
import random
import uuid
import logging

from orderflow.services.notifications.base import (
    BaseNotificationService,
    NotificationResult,
)

logger = logging.getLogger(__name__)


class MockNotificationService(BaseNotificationService):
    """
    Mock notification service for development.

    Attributes:
        failure_rate: Probability of a simulated send failure (0.0-1.0)
        min_latency: Minimum simulated response time in seconds
        max_latency: Maximum simulated response time in seconds
        sent: (contact_handle, message) pairs delivered so far
    """

    def __init__(
        self,
        failure_rate: float = 0.05,
        min_latency: float = 0.1,
        max_latency: float = 0.3,
    ):
        self.failure_rate = failure_rate
        self.min_latency = min_latency
        self.max_latency = max_latency
        self.sent: list[tuple[str, str]] = []
        logger.info(f"MockNotificationService initialized (failure_rate={failure_rate:.0%})")

    @property
    def provider_name(self) -> str:
        return "mock"

    async def _simulate_latency(self) -> None:
        """Simulate network latency."""
        if self.max_latency > 0:
            await asyncio.sleep(random.uniform(self.min_latency, self.max_latency))

    def _should_fail(self) -> bool:
        return random.random() < self.failure_rate

    async def send(
        self,
        contact_handle: str,
        message: str,
    ) -> NotificationResult:
        """Simulate sending a message."""
        await self._simulate_latency()

        if self._should_fail():
            logger.warning(f"Mock message failed (simulated) to {contact_handle}")
            return NotificationResult(
                success=False,
                error_message="Simulated delivery failure",
                provider="mock"
            )

        message_id = f"msg_mock_{uuid.uuid4().hex[:12]}"
        self.sent.append((contact_handle, message))
        logger.info(f"Mock message sent to {contact_handle}: {message[:50]!r} (ID: {message_id})")

        return NotificationResult(
            success=True,
            message_id=message_id,
            provider="mock"
        )

    async def health_check(self) -> bool:
        """Mock always returns healthy."""
        return True
