"""
Mock Kitchen Board Service

Logs cards instead of creating them. Used in development and tests.
"""

import logging
import random
import uuid

from orderflow.services.board.base import BaseBoardService, BoardResult

logger = logging.getLogger(__name__)


class MockBoardService(BaseBoardService):
    """Mock board keeping created cards in memory."""

    def __init__(self, failure_rate: float = 0.05):
        self.failure_rate = failure_rate
        self.cards: list[tuple[str, str]] = []
        logger.info(f"MockBoardService initialized (failure_rate={failure_rate:.0%})")

    @property
    def provider_name(self) -> str:
        return "mock"

    def create_card(self, title: str, description: str) -> BoardResult:
        if random.random() < self.failure_rate:
            logger.warning(f"Mock card creation failed (simulated): {title}")
            return BoardResult(
                success=False,
                error_message="Simulated board failure",
                provider="mock"
            )

        card_id = f"card_mock_{uuid.uuid4().hex[:12]}"
        self.cards.append((title, description))
        logger.info(f"Mock card created: {title} (ID: {card_id})")
        return BoardResult(
            success=True,
            card_id=card_id,
            card_url=f"https://trello.com/c/mock/{card_id}",
            provider="mock"
        )
