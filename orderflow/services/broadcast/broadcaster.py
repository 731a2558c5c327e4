"""
Event Broadcaster

Fans out order events to every connected Kitchen Display System session
of a restaurant.

Delivery model:
    - push: ``publish`` puts the event on each session's bounded queue
      without waiting; a session whose queue is full is dropped (closed),
      never the broadcast
    - replay: a display reconnecting with its last sequence gets the
      events it missed rebuilt from the status journal (see
      LifecycleController.replay_events), with recent order.created
      payloads served from an in-memory ring buffer

Sequences are the status journal sequences assigned by the store, so they
increase strictly per restaurant and survive restarts.

Author: Khalil Bannouri
Version: 4.0.0
"""

import asyncio
import logging
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

logger = logging.getLogger(__name__)


ORDER_CREATED = "order.created"
ORDER_STATUS_CHANGED = "order.status_changed"
ORDER_SNAPSHOT = "order.snapshot"


@dataclass(frozen=True)
class BroadcastEvent:
    """
    One message on the display channel.

    Attributes:
        event: Event name (order.created / order.status_changed / order.snapshot)
        sequence: Journal sequence of the change (per restaurant, strictly increasing)
        restaurant_id: Restaurant scope
        payload: JSON-ready event body
        timestamp: When the change was committed
    """
    event: str
    sequence: int
    restaurant_id: str
    payload: dict[str, Any]
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "event": self.event,
            "sequence": self.sequence,
            "restaurant_id": self.restaurant_id,
            "payload": self.payload,
            "timestamp": self.timestamp.isoformat(),
        }


class DisplaySession:
    """
    One connected display.

    Owned by the broadcaster; the transport layer only reads from it
    (``next_event``) and reports acknowledgements.
    """

    def __init__(self, restaurant_id: str, queue_size: int):
        self.session_id = uuid.uuid4().hex
        self.restaurant_id = restaurant_id
        self.connected_at = datetime.now(timezone.utc)
        self.last_acknowledged_sequence = 0
        self.last_sent_sequence = 0
        self.close_reason: Optional[str] = None
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self._closed = asyncio.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def offer(self, event: BroadcastEvent) -> bool:
        """Queue an event without waiting. False when the queue is full."""
        if self.closed:
            return False
        try:
            self._queue.put_nowait(event)
            return True
        except asyncio.QueueFull:
            return False

    async def next_event(self) -> Optional[BroadcastEvent]:
        """Wait for the next queued event; None once the session is closed."""
        if self.closed:
            return None
        if not self._queue.empty():
            return self._queue.get_nowait()

        getter = asyncio.ensure_future(self._queue.get())
        closer = asyncio.ensure_future(self._closed.wait())
        try:
            await asyncio.wait({getter, closer}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (getter, closer):
                if not task.done():
                    task.cancel()

        if self.closed:
            return None
        return getter.result()

    def mark_sent(self, sequence: int) -> None:
        self.last_sent_sequence = max(self.last_sent_sequence, sequence)

    def acknowledge(self, sequence: int) -> None:
        self.last_acknowledged_sequence = max(self.last_acknowledged_sequence, int(sequence))

    def close(self, reason: str = "closed") -> None:
        if not self.closed:
            self.close_reason = reason
            self._closed.set()

    def __repr__(self):
        return f"<DisplaySession {self.session_id[:8]} {self.restaurant_id} ack={self.last_acknowledged_sequence}>"


class EventBroadcaster:
    """
    Registry of display sessions grouped by restaurant.

    Attributes:
        queue_size: Outbound queue bound per session
        replay_buffer_size: order.created payloads remembered per restaurant
    """

    def __init__(self, queue_size: int = 256, replay_buffer_size: int = 200):
        self.queue_size = queue_size
        self.replay_buffer_size = replay_buffer_size
        self._groups: dict[str, dict[str, DisplaySession]] = {}
        self._created: dict[str, deque] = {}
        self._lock = asyncio.Lock()

    # =========================================================================
    # SESSIONS
    # =========================================================================

    async def subscribe(self, restaurant_id: str) -> DisplaySession:
        """Join the fan-out group of a restaurant."""
        session = DisplaySession(restaurant_id, self.queue_size)
        async with self._lock:
            self._groups.setdefault(restaurant_id, {})[session.session_id] = session
        logger.info(f"Display {session.session_id[:8]} connected to {restaurant_id} ({self.connection_count} live)")
        return session

    async def unsubscribe(self, session: DisplaySession) -> None:
        async with self._lock:
            self._remove(session)
        session.close("unsubscribed")
        logger.info(f"Display {session.session_id[:8]} left {session.restaurant_id} ({self.connection_count} live)")

    def _remove(self, session: DisplaySession) -> None:
        group = self._groups.get(session.restaurant_id)
        if group is not None:
            group.pop(session.session_id, None)
            if not group:
                del self._groups[session.restaurant_id]

    @property
    def connection_count(self) -> int:
        return sum(len(group) for group in self._groups.values())

    def sessions(self, restaurant_id: str) -> list[DisplaySession]:
        return list(self._groups.get(restaurant_id, {}).values())

    async def close_all(self, reason: str = "shutdown") -> None:
        async with self._lock:
            sessions = [s for group in self._groups.values() for s in group.values()]
            self._groups.clear()
        for session in sessions:
            session.close(reason)

    # =========================================================================
    # PUBLISHING
    # =========================================================================

    async def publish(self, event: BroadcastEvent) -> int:
        """
        Push an event to every open session of its restaurant.

        Never waits on a consumer. Sessions whose queue is full are closed
        and removed; they recover through replay when they reconnect.

        Returns:
            Number of sessions the event was queued for
        """
        if event.event == ORDER_CREATED:
            self._remember_created(event)

        async with self._lock:
            targets = list(self._groups.get(event.restaurant_id, {}).values())

        delivered = 0
        overflowed = []
        for session in targets:
            if session.offer(event):
                delivered += 1
            elif not session.closed:
                overflowed.append(session)

        if overflowed:
            async with self._lock:
                for session in overflowed:
                    self._remove(session)
            for session in overflowed:
                session.close("queue_overflow")
                logger.warning(
                    f"Display {session.session_id[:8]} dropped: outbound queue full "
                    f"at sequence {event.sequence}"
                )

        logger.debug(
            f"Published {event.event} #{event.sequence} to {delivered}/{len(targets)} "
            f"displays of {event.restaurant_id}"
        )
        return delivered

    # =========================================================================
    # RING BUFFER
    # =========================================================================

    def _remember_created(self, event: BroadcastEvent) -> None:
        buffer = self._created.get(event.restaurant_id)
        if buffer is None:
            buffer = self._created[event.restaurant_id] = deque(maxlen=self.replay_buffer_size)
        buffer.append(event)

    def recent_created(self, restaurant_id: str, sequence: int) -> Optional[BroadcastEvent]:
        """The buffered order.created event with this sequence, if still held."""
        for event in reversed(self._created.get(restaurant_id, ())):
            if event.sequence == sequence:
                return event
        return None
