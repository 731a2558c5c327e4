"""
Real Notification Service

Production implementation using Twilio for SMS and WhatsApp.

The Twilio client is synchronous; calls run in a worker thread and its
HTTP client carries the configured timeout.

Author: Khalil Bannouri
Version: 4.0.0
"""

import asyncio
import logging
from typing import Optional

from twilio.base.exceptions import TwilioException
from twilio.http.http_client import TwilioHttpClient
from twilio.rest import Client as TwilioClient

from orderflow.core.config import get_settings
from orderflow.services.notifications.base import (
    BaseNotificationService,
    NotificationResult,
)
from orderflow.services.notifications.templates import WHATSAPP_PREFIX

logger = logging.getLogger(__name__)


class RealNotificationService(BaseNotificationService):
    """Production notification service using Twilio."""

    def __init__(self, client: Optional[TwilioClient] = None):
        settings = get_settings()

        if client is not None:
            self.twilio_client = client
        elif settings.twilio_account_sid and settings.twilio_auth_token:
            self.twilio_client = TwilioClient(
                settings.twilio_account_sid,
                settings.twilio_auth_token,
                http_client=TwilioHttpClient(timeout=settings.notification_timeout_seconds),
            )
        else:
            self.twilio_client = None
            logger.warning("Twilio credentials not configured")

        self.sms_from_number = settings.twilio_phone_number
        self.whatsapp_from_number = settings.twilio_whatsapp_number

        logger.info("RealNotificationService initialized")

    @property
    def provider_name(self) -> str:
        return "twilio"

    def _sender_for(self, contact_handle: str) -> Optional[str]:
        if contact_handle.startswith(WHATSAPP_PREFIX):
            if not self.whatsapp_from_number:
                return None
            return f"{WHATSAPP_PREFIX}{self.whatsapp_from_number}"
        return self.sms_from_number

    async def send(
        self,
        contact_handle: str,
        message: str,
    ) -> NotificationResult:
        """Send SMS or WhatsApp via Twilio."""
        if not self.twilio_client:
            return NotificationResult(
                success=False,
                error_message="Twilio not configured",
                provider="twilio"
            )

        from_ = self._sender_for(contact_handle)
        if not from_:
            return NotificationResult(
                success=False,
                error_message=f"No Twilio sender configured for {contact_handle}",
                provider="twilio"
            )

        try:
            result = await asyncio.to_thread(
                self.twilio_client.messages.create,
                body=message,
                from_=from_,
                to=contact_handle,
            )

            logger.info(f"Message sent to {contact_handle}: {result.sid}")

            return NotificationResult(
                success=True,
                message_id=result.sid,
                provider="twilio"
            )

        except TwilioException as e:
            logger.error(f"Twilio error: {e}")
            return NotificationResult(
                success=False,
                error_message=str(e),
                provider="twilio"
            )

    async def health_check(self) -> bool:
        """Check Twilio account access."""
        if not self.twilio_client:
            return False
        try:
            await asyncio.to_thread(self.twilio_client.api.v2010.account.fetch)
            return True
        except TwilioException as e:
            logger.error(f"Twilio health check failed: {e}")
            return False
