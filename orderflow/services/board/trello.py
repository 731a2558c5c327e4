"""
Trello Kitchen Board Service

Production implementation creating one Trello card per order through the
Trello REST API.

Author: Khalil Bannouri
Version: 4.0.0
"""

import logging
from typing import Optional

import httpx

from orderflow.core.config import get_settings
from orderflow.services.board.base import BaseBoardService, BoardResult

logger = logging.getLogger(__name__)


class TrelloBoardService(BaseBoardService):
    """Trello REST API client."""

    BASE_URL = "https://api.trello.com/1"

    def __init__(self, timeout_seconds: float = 10.0, transport: Optional[httpx.BaseTransport] = None):
        settings = get_settings()
        self.api_key = settings.trello_api_key
        self.token = settings.trello_token
        self.list_id = settings.trello_list_id
        self.timeout_seconds = timeout_seconds
        self._transport = transport

        if not (self.api_key and self.token and self.list_id):
            logger.warning("Trello credentials not configured")

        logger.info("TrelloBoardService initialized")

    @property
    def provider_name(self) -> str:
        return "trello"

    def create_card(self, title: str, description: str) -> BoardResult:
        """Create a card on the configured list."""
        if not (self.api_key and self.token and self.list_id):
            return BoardResult(
                success=False,
                error_message="Trello not configured",
                provider="trello"
            )

        params = {
            "key": self.api_key,
            "token": self.token,
            "idList": self.list_id,
            "name": title,
            "desc": description,
        }

        try:
            with httpx.Client(
                base_url=self.BASE_URL,
                timeout=self.timeout_seconds,
                transport=self._transport,
            ) as client:
                response = client.post("/cards", params=params)
                response.raise_for_status()
                data = response.json()

            logger.info(f"Trello card created: {title} ({data.get('id')})")
            return BoardResult(
                success=True,
                card_id=data.get("id"),
                card_url=data.get("shortUrl"),
                provider="trello"
            )

        except httpx.HTTPError as e:
            logger.error(f"Trello error: {e}")
            return BoardResult(
                success=False,
                error_message=str(e),
                provider="trello"
            )
