"""
Broadcaster Factory

One EventBroadcaster per process owns every display session.
"""

from functools import lru_cache

from orderflow.core.config import get_settings
from orderflow.services.broadcast.broadcaster import (
    ORDER_CREATED,
    ORDER_SNAPSHOT,
    ORDER_STATUS_CHANGED,
    BroadcastEvent,
    DisplaySession,
    EventBroadcaster,
)


@lru_cache()
def get_broadcaster() -> EventBroadcaster:
    """Get the process-wide broadcaster."""
    settings = get_settings()
    return EventBroadcaster(
        queue_size=settings.display_queue_size,
        replay_buffer_size=settings.replay_buffer_size,
    )


def reset_broadcaster() -> None:
    get_broadcaster.cache_clear()


__all__ = [
    "get_broadcaster",
    "reset_broadcaster",
    "BroadcastEvent",
    "DisplaySession",
    "EventBroadcaster",
    "ORDER_CREATED",
    "ORDER_SNAPSHOT",
    "ORDER_STATUS_CHANGED",
]
