"""
Celery Tasks
Background tasks mirroring orders onto the kitchen board.
"""

import logging
import time

from orderflow.celery_worker import celery_app
from orderflow.services.board import card_for_order, get_board_service

logger = logging.getLogger(__name__)


class BoardMirrorFailed(Exception):
    """The board rejected the card; raised so Celery retries the task."""


@celery_app.task(
    bind=True,
    max_retries=3,
    default_retry_delay=5,
    autoretry_for=(BoardMirrorFailed,),
    retry_backoff=True
)
def mirror_order_to_board(self, order_data: dict) -> dict:
    """
    Create a kitchen board card for a new order.
    This task runs asynchronously via Celery worker.

    Args:
        order_data: Order payload as broadcast to displays

    Returns:
        dict: BoardResult of the card creation
    """
    task_id = self.request.id
    display_code = order_data.get('display_code', 'unknown')

    logger.info(f"Task {task_id}: Mirroring order {display_code}")
    start_time = time.time()

    title, description = card_for_order(order_data)
    result = get_board_service().create_card(title, description)

    elapsed = round(time.time() - start_time, 3)
    if not result.success:
        logger.warning(
            f"Task {task_id}: Order {display_code} not mirrored after {elapsed}s - "
            f"{result.error_message}"
        )
        raise BoardMirrorFailed(result.error_message)

    logger.info(f"Task {task_id}: Order {display_code} mirrored in {elapsed}s")
    response = result.to_dict()
    response['task_id'] = task_id
    response['processing_time_seconds'] = elapsed
    return response

