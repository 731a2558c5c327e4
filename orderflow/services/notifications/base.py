"""
Notification Service Abstract Base Class

Defines the interface for sending customer messages (SMS or WhatsApp).
Supports both Mock (development) and Real (production) implementations.

Senders report failures as a NotificationResult instead of raising, so a
flaky provider can never break the order path.

Author: Khalil Bannouri
Version: 4.0.0
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass
class NotificationResult:
    """Result from sending a notification."""
    success: bool
    message_id: Optional[str] = None
    error_message: Optional[str] = None
    provider: str = "unknown"

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "success": self.success,
            "message_id": self.message_id,
            "error_message": self.error_message,
            "provider": self.provider,
        }


class BaseNotificationService(ABC):
    """Abstract base class for notification services."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name."""
        pass

    @abstractmethod
    async def send(
        self,
        contact_handle: str,
        message: str,
    ) -> NotificationResult:
        """
        Send a message to a customer.

        Args:
            contact_handle: Phone number, or ``whatsapp:+1...`` for WhatsApp
            message: Plain text body
        """
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Check service connectivity."""
        pass
