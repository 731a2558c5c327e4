"""
Order Lifecycle Controller

Orchestrates the whole order flow:

    submit:     validate -> resolve catalog -> build order -> store
                -> broadcast order.created -> notify customer -> mirror to board
    transition: store compare-and-set -> broadcast order.status_changed
                -> notify customer

Broadcasts only ever follow a committed store write, and the write and
its broadcast run under a per-restaurant lock so displays receive a
restaurant's events in sequence order. Customer notifications and the
board mirror are best-effort: their failures are logged (and surfaced as
warnings where the caller is still waiting) but never undo an order or a
status change.

Author: Khalil Bannouri
Version: 4.0.0
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, time, timezone
from typing import Any, Callable, Optional, Sequence

from orderflow.core.config import Settings, get_settings
from orderflow.core.errors import (
    CodeGenerationExhausted,
    DisplayCodeTaken,
    OrderNotFound,
    ValidationFailed,
)
from orderflow.models import ACTIVE_STATUSES, OrderStatus, OrderType, SourceChannel
from orderflow.services.broadcast.broadcaster import (
    ORDER_CREATED,
    ORDER_SNAPSHOT,
    ORDER_STATUS_CHANGED,
    BroadcastEvent,
    DisplaySession,
    EventBroadcaster,
)
from orderflow.services.catalog.base import RequestedItem
from orderflow.services.catalog.resolver import CatalogResolver
from orderflow.services.notifications.base import BaseNotificationService
from orderflow.services.notifications.templates import contact_address, render_status_message
from orderflow.services.orders.factory import OrderFactory
from orderflow.services.orders.records import OrderRecord, StatusEventRecord
from orderflow.services.orders.store import OrderStore

logger = logging.getLogger(__name__)

# Hands an order payload to the board mirror (e.g. a Celery task's ``delay``)
MirrorDispatch = Callable[[dict], Any]

_WORKFLOW_ORDER = [s for s in OrderStatus if s in ACTIVE_STATUSES]


# =============================================================================
# VALUE OBJECTS
# =============================================================================

@dataclass(frozen=True)
class OrderSubmission:
    """A customer order as received from any channel, before pricing."""
    customer_name: str
    contact_handle: str
    items: Sequence[RequestedItem]
    source_channel: str = SourceChannel.WEB.value
    order_type: str = OrderType.PICKUP.value
    restaurant_id: Optional[str] = None
    notes: Optional[str] = None
    actor: str = "system"


@dataclass(frozen=True)
class SubmissionResult:
    order: OrderRecord
    sequence: int
    warnings: tuple[str, ...] = ()


@dataclass(frozen=True)
class TransitionOutcome:
    order: OrderRecord
    event: StatusEventRecord

    @property
    def previous_status(self) -> Optional[OrderStatus]:
        return self.event.from_status


@dataclass
class DisplayFeed:
    """
    A freshly connected display: its session plus what it must be sent
    before live events.

    Live events already covered by ``initial`` (replayed sequences, or
    anything up to the snapshot sequence) are skipped with ``is_covered``.
    A restaurant's sequences commit in order, so every event at or below
    ``covered_up_to`` was already visible when ``initial`` was read.
    """
    session: DisplaySession
    initial: list[BroadcastEvent]
    covered_up_to: int = 0
    covered_sequences: frozenset = field(default_factory=frozenset)

    def is_covered(self, event: BroadcastEvent) -> bool:
        return event.sequence <= self.covered_up_to or event.sequence in self.covered_sequences


def status_change_payload(order: OrderRecord, event: StatusEventRecord) -> dict[str, Any]:
    return {
        "order_id": order.id,
        "display_code": order.display_code,
        "from_status": event.from_status.value if event.from_status else None,
        "status": event.to_status.value,
        "actor": event.actor,
        "updated_at": event.timestamp.isoformat(),
    }


# =============================================================================
# CONTROLLER
# =============================================================================

class LifecycleController:
    """
    Entry point for every order operation (HTTP routes, WebSocket feed,
    scripts).

    Attributes:
        store: Durable order storage and status journal
        resolver: Prices requested items from the catalog
        factory: Builds new order records
        broadcaster: Fans events out to connected displays
        notifier: Customer messaging service
        mirror: Board mirror dispatch, or None to skip mirroring
    """

    def __init__(
        self,
        store: OrderStore,
        resolver: CatalogResolver,
        factory: OrderFactory,
        broadcaster: EventBroadcaster,
        notifier: BaseNotificationService,
        settings: Optional[Settings] = None,
        mirror: Optional[MirrorDispatch] = None,
    ):
        self.store = store
        self.resolver = resolver
        self.factory = factory
        self.broadcaster = broadcaster
        self.notifier = notifier
        self.settings = settings or get_settings()
        self.mirror = mirror
        self._background: set[asyncio.Task] = set()
        self._journal_locks: dict[str, asyncio.Lock] = {}

    # =========================================================================
    # SUBMISSION
    # =========================================================================

    async def submit_order(self, submission: OrderSubmission) -> SubmissionResult:
        """
        Create, persist and announce a new order.

        Raises:
            ValidationFailed: missing fields, unknown channel or order type, bad quantities
            ItemNotFound / ItemUnavailable: catalog rejected an item
            CatalogUnavailable: catalog did not answer in time
            CodeGenerationExhausted: no free display code
            DuplicateId: generated id already stored
        """
        self._validate_submission(submission)
        restaurant_id = submission.restaurant_id or self.settings.default_restaurant_id

        lines = await self.resolver.resolve(restaurant_id, submission.items)

        async with self._journal_lock(restaurant_id):
            order, created = await self._store_new_order(restaurant_id, submission, lines)

            await self.broadcaster.publish(BroadcastEvent(
                event=ORDER_CREATED,
                sequence=created.sequence,
                restaurant_id=restaurant_id,
                payload=order.to_payload(),
                timestamp=created.timestamp,
            ))

        self._notify(order, OrderStatus.NEW)

        warnings = []
        mirror_warning = await self._dispatch_mirror(order)
        if mirror_warning:
            warnings.append(mirror_warning)

        logger.info(
            f"Order {order.display_code} submitted via {order.source_channel} "
            f"for {restaurant_id}: ${order.total} ({len(order.line_items)} lines)"
        )
        return SubmissionResult(order=order, sequence=created.sequence, warnings=tuple(warnings))

    def _validate_submission(self, submission: OrderSubmission) -> None:
        if not submission.customer_name or not submission.customer_name.strip():
            raise ValidationFailed("customer_name is required")
        if not submission.contact_handle or not submission.contact_handle.strip():
            raise ValidationFailed("contact_handle is required")
        if not submission.items:
            raise ValidationFailed("Order must contain at least one item")
        try:
            SourceChannel(submission.source_channel)
        except ValueError:
            raise ValidationFailed(
                f"Unknown source_channel '{submission.source_channel}'",
                {"allowed": [c.value for c in SourceChannel]},
            )
        try:
            OrderType(submission.order_type)
        except ValueError:
            raise ValidationFailed(
                f"Unknown order_type '{submission.order_type}'",
                {"allowed": [t.value for t in OrderType]},
            )

    async def _store_new_order(self, restaurant_id, submission, lines):
        """Build and insert the order, regenerating the display code on a race."""
        order_type = OrderType(submission.order_type).value
        attempts = self.settings.display_code_max_attempts
        taken: set[str] = set()

        for _ in range(attempts):
            order = await self.factory.create(
                restaurant_id=restaurant_id,
                customer_name=submission.customer_name.strip(),
                contact_handle=submission.contact_handle.strip(),
                source_channel=submission.source_channel,
                order_type=order_type,
                resolved_lines=lines,
                tax_rate=self.settings.tax_rate,
                service_charge_rate=self.settings.service_charge_rate_for(order_type),
                notes=submission.notes,
                exclude_codes=frozenset(taken),
            )
            try:
                created = await self.store.insert(order, actor=submission.actor)
                return order, created
            except DisplayCodeTaken as e:
                taken.add(e.display_code)

        logger.critical(
            f"Display code generation exhausted for restaurant {restaurant_id}: "
            f"{attempts} codes lost to concurrent inserts"
        )
        raise CodeGenerationExhausted(restaurant_id, attempts)

    # =========================================================================
    # TRANSITIONS
    # =========================================================================

    async def transition_order(
        self,
        order_id: str,
        new_status: str,
        expected_status: Optional[str] = None,
        actor: str = "operator",
    ) -> TransitionOutcome:
        """
        Move an order to a new status and announce it.

        Raises:
            ValidationFailed: unknown status name
            OrderNotFound: no such order
            StaleTransition: expected_status no longer matches
            IllegalTransition: the workflow forbids the change
        """
        target = self._parse_status(new_status, "status")
        expected = self._parse_status(expected_status, "expected_status") if expected_status else None

        current = await self.get_order(order_id)

        async with self._journal_lock(current.restaurant_id):
            order, event = await self.store.transition(
                order_id, target, expected_status=expected, actor=actor or "operator"
            )

            await self.broadcaster.publish(BroadcastEvent(
                event=ORDER_STATUS_CHANGED,
                sequence=event.sequence,
                restaurant_id=order.restaurant_id,
                payload=status_change_payload(order, event),
                timestamp=event.timestamp,
            ))

        self._notify(order, target)
        return TransitionOutcome(order=order, event=event)

    def _journal_lock(self, restaurant_id: str) -> asyncio.Lock:
        """Serializes one restaurant's journal writes with their broadcasts."""
        return self._journal_locks.setdefault(restaurant_id, asyncio.Lock())

    @staticmethod
    def _parse_status(value: str, field_name: str) -> OrderStatus:
        try:
            return OrderStatus(value)
        except ValueError:
            raise ValidationFailed(
                f"Unknown {field_name} '{value}'",
                {"allowed": [s.value for s in OrderStatus]},
            )

    # =========================================================================
    # QUERIES
    # =========================================================================

    async def get_order(self, order_id: str) -> OrderRecord:
        order = await self.store.get_by_id(order_id)
        if order is None:
            raise OrderNotFound(order_id)
        return order

    async def list_orders(
        self,
        restaurant_id: Optional[str] = None,
        statuses: Optional[Sequence[str]] = None,
        source_channel: Optional[str] = None,
        since: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> list[OrderRecord]:
        """Orders oldest first; every non-terminal status when none are given."""
        if statuses:
            wanted = [self._parse_status(s, "status") for s in statuses]
        else:
            wanted = _WORKFLOW_ORDER

        if source_channel:
            try:
                SourceChannel(source_channel)
            except ValueError:
                raise ValidationFailed(f"Unknown source '{source_channel}'")

        limit = self.settings.default_list_limit if limit is None else limit
        if limit < 1:
            raise ValidationFailed("limit must be at least 1")

        return await self.store.list_by_filter(
            restaurant_id or self.settings.default_restaurant_id,
            statuses=wanted,
            source_channel=source_channel,
            since=since,
            limit=limit,
        )

    async def order_history(self, order_id: str) -> list[StatusEventRecord]:
        await self.get_order(order_id)
        return await self.store.history(order_id)

    async def summary(self, restaurant_id: Optional[str] = None) -> dict[str, Any]:
        """Per-status counts and today's (UTC) revenue."""
        restaurant_id = restaurant_id or self.settings.default_restaurant_id
        today = datetime.now(timezone.utc).date()
        since = datetime.combine(today, time.min, tzinfo=timezone.utc)

        stats = await self.store.status_counts(restaurant_id, since)
        counts = stats["counts"]
        return {
            "restaurant_id": restaurant_id,
            "date": today.isoformat(),
            "counts": counts,
            "active": sum(counts[s.value] for s in ACTIVE_STATUSES),
            "revenue_today": stats["revenue"],
        }

    # =========================================================================
    # DISPLAYS
    # =========================================================================

    async def replay_events(self, restaurant_id: str, after_sequence: int) -> list[BroadcastEvent]:
        """
        Rebuild every event after ``after_sequence``, paging through the
        journal ``replay_max_events`` rows at a time.

        order.created payloads come from the broadcaster's ring buffer while
        it still holds them, otherwise from the stored order as it was at
        creation.
        """
        page_size = self.settings.replay_max_events
        events: list[BroadcastEvent] = []
        cursor = after_sequence

        while True:
            records = await self.store.events_since(restaurant_id, cursor, limit=page_size)
            events.extend(await self._rebuild_events(restaurant_id, records))
            if len(records) < page_size:
                break
            cursor = records[-1].sequence

        logger.info(f"Replaying {len(events)} events after #{after_sequence} for {restaurant_id}")
        return events

    async def _rebuild_events(self, restaurant_id, records) -> list[BroadcastEvent]:
        if not records:
            return []

        orders = await self.store.get_many(record.order_id for record in records)

        events = []
        for record in records:
            order = orders.get(record.order_id)
            if record.is_creation:
                buffered = self.broadcaster.recent_created(restaurant_id, record.sequence)
                if buffered is not None:
                    events.append(buffered)
                    continue
            if order is None:
                logger.critical(
                    f"Integrity violation: status event #{record.sequence} "
                    f"references missing order {record.order_id}"
                )
                continue

            if record.is_creation:
                payload = order.with_status(OrderStatus.NEW, None).to_payload()
                name = ORDER_CREATED
            else:
                payload = status_change_payload(order, record)
                name = ORDER_STATUS_CHANGED

            events.append(BroadcastEvent(
                event=name,
                sequence=record.sequence,
                restaurant_id=restaurant_id,
                payload=payload,
                timestamp=record.timestamp,
            ))
        return events

    async def _snapshot(self, restaurant_id: str) -> BroadcastEvent:
        """All active orders, stamped with the journal sequence they reflect."""
        # Read the sequence first: anything committed later arrives live
        latest = await self.store.latest_sequence(restaurant_id)
        active = await self.store.list_by_filter(restaurant_id, statuses=_WORKFLOW_ORDER, limit=None)
        return BroadcastEvent(
            event=ORDER_SNAPSHOT,
            sequence=latest,
            restaurant_id=restaurant_id,
            payload={
                "latest_sequence": latest,
                "orders": [order.to_payload() for order in active],
            },
        )

    async def connect_display(
        self,
        restaurant_id: Optional[str] = None,
        last_sequence: Optional[int] = None,
    ) -> DisplayFeed:
        """
        Subscribe a display and compute what it needs before live events.

        The session is subscribed before the store is read, so nothing
        committed in between can be missed; overlap is removed with
        ``DisplayFeed.is_covered``.

        A display that knows its last sequence gets the missed events. A
        fresh display, or one more than ``replay_max_events`` behind, gets
        one order.snapshot of the active orders instead.
        """
        restaurant_id = restaurant_id or self.settings.default_restaurant_id
        session = await self.broadcaster.subscribe(restaurant_id)

        try:
            if last_sequence is not None:
                limit = self.settings.replay_max_events
                records = await self.store.events_since(restaurant_id, last_sequence, limit=limit + 1)
                if len(records) <= limit:
                    initial = await self._rebuild_events(restaurant_id, records)
                    for event in initial:
                        session.mark_sent(event.sequence)
                    session.acknowledge(last_sequence)
                    logger.info(
                        f"Replaying {len(initial)} events after #{last_sequence} "
                        f"for {restaurant_id}"
                    )
                    return DisplayFeed(
                        session=session,
                        initial=initial,
                        covered_up_to=last_sequence,
                        covered_sequences=frozenset(e.sequence for e in initial),
                    )
                logger.warning(
                    f"Display {session.session_id[:8]} is more than {limit} events behind "
                    f"#{last_sequence} for {restaurant_id}; sending a snapshot"
                )

            snapshot = await self._snapshot(restaurant_id)
            session.mark_sent(snapshot.sequence)
            return DisplayFeed(session=session, initial=[snapshot], covered_up_to=snapshot.sequence)
        except Exception:
            await self.broadcaster.unsubscribe(session)
            raise

    async def disconnect_display(self, session: DisplaySession) -> None:
        await self.broadcaster.unsubscribe(session)

    # =========================================================================
    # BEST-EFFORT SIDE EFFECTS
    # =========================================================================

    def _notify(self, order: OrderRecord, status: OrderStatus) -> None:
        """Schedule the customer message for ``status`` without waiting on it."""
        message = render_status_message(order, status, self.settings.restaurant_name)
        if message is None:
            return
        self._spawn(self._send_notification(order, contact_address(order), message))

    async def _send_notification(self, order: OrderRecord, address: str, message: str) -> None:
        timeout = self.settings.notification_timeout_seconds
        try:
            result = await asyncio.wait_for(self.notifier.send(address, message), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Notification for order {order.display_code} timed out after {timeout}s")
            return
        except Exception as e:
            logger.warning(
                f"Notification for order {order.display_code} failed "
                f"({self.notifier.provider_name}): {e}"
            )
            return

        if not result.success:
            logger.warning(
                f"Notification for order {order.display_code} not delivered "
                f"({result.provider}): {result.error_message}"
            )

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    @property
    def pending_tasks(self) -> int:
        return len(self._background)

    async def drain(self) -> None:
        """Wait for every scheduled notification to finish."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def _dispatch_mirror(self, order: OrderRecord) -> Optional[str]:
        """Hand the order to the board mirror; a warning string on failure."""
        if self.mirror is None:
            return None

        timeout = self.settings.mirror_dispatch_timeout_seconds
        try:
            await asyncio.wait_for(
                asyncio.to_thread(self.mirror, order.to_payload()),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Board mirror dispatch for order {order.display_code} timed out after {timeout}s")
            return "Kitchen board mirror timed out; the order was still created"
        except Exception as e:
            logger.warning(f"Board mirror dispatch for order {order.display_code} failed: {e}")
            return "Kitchen board mirror unavailable; the order was still created"
        return None
