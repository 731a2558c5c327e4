"""
Kitchen Board Service Factory

Returns Mock or Trello board service based on ENV_MODE.
"""

import logging
from functools import lru_cache

from orderflow.core.config import get_settings
from orderflow.services.board.base import BaseBoardService, BoardResult, card_for_order
from orderflow.services.board.mock import MockBoardService
from orderflow.services.board.trello import TrelloBoardService

logger = logging.getLogger(__name__)


@lru_cache()
def get_board_service() -> BaseBoardService:
    """Get the configured board service."""
    settings = get_settings()

    if settings.is_development:
        logger.info("Board Service: Using MockBoardService (development mode)")
        return MockBoardService(failure_rate=settings.mock_failure_rate)
    else:
        logger.info(f"Board Service: Using TrelloBoardService ({settings.env_mode.value} mode)")
        return TrelloBoardService()


__all__ = [
    "get_board_service",
    "BaseBoardService",
    "BoardResult",
    "MockBoardService",
    "TrelloBoardService",
    "card_for_order",
]
