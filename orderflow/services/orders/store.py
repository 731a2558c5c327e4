"""
Order Store

Durable storage for orders and their status journal. Every write is a
single transaction:

    insert      -> orders row + creation StatusEvent (None -> new)
    transition  -> conditional status UPDATE + StatusEvent

so a status change can never be recorded without its event, or the other
way around. Both writes take the next journal sequence from the
restaurant's counter row; the row lock is held until commit, so a
restaurant's sequences are contiguous and become visible in order.

The store is the only source of truth for an order's current status;
callers never decide a transition from a cached copy.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, Optional, Sequence

from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from orderflow.core.errors import (
    DisplayCodeTaken,
    DuplicateId,
    IllegalTransition,
    OrderNotFound,
    StaleTransition,
)
from orderflow.models import ACTIVE_STATUSES, Order, OrderStatus, RestaurantSequence, StatusEvent
from orderflow.services.orders.records import (
    OrderRecord,
    StatusEventRecord,
    dump_line_items,
    load_line_items,
)
from orderflow.services.orders.transitions import is_valid_transition

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; everything stored is UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _money(value) -> Decimal:
    return Decimal(str(value)).quantize(Decimal("0.01"))


def _to_record(row: Order) -> OrderRecord:
    return OrderRecord(
        id=row.id,
        display_code=row.display_code,
        restaurant_id=row.restaurant_id,
        customer_name=row.customer_name,
        contact_handle=row.contact_handle,
        source_channel=row.source_channel,
        order_type=row.order_type,
        line_items=load_line_items(row.line_items),
        subtotal=_money(row.subtotal),
        tax_amount=_money(row.tax_amount),
        service_charge=_money(row.service_charge),
        total=_money(row.total),
        notes=row.notes,
        created_at=as_utc(row.created_at),
        status=OrderStatus(row.status),
        updated_at=as_utc(row.updated_at),
    )


def _to_event_record(row: StatusEvent) -> StatusEventRecord:
    return StatusEventRecord(
        sequence=row.sequence,
        order_id=row.order_id,
        restaurant_id=row.restaurant_id,
        from_status=OrderStatus(row.from_status) if row.from_status else None,
        to_status=OrderStatus(row.to_status),
        actor=row.actor,
        timestamp=as_utc(row.timestamp),
    )


class OrderStore:
    """
    SQLAlchemy-backed order repository.

    Each public method opens its own session, so concurrent requests never
    share transactional state.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    # =========================================================================
    # WRITES
    # =========================================================================

    async def insert(self, order: OrderRecord, actor: str = "system") -> StatusEventRecord:
        """
        Persist a new order together with its creation event.

        Returns:
            The creation StatusEventRecord (its sequence is the broadcast sequence)

        Raises:
            DuplicateId: an order with this id already exists
            DisplayCodeTaken: a concurrent active order claimed the same display code
        """
        event = StatusEvent(
            order_id=order.id,
            restaurant_id=order.restaurant_id,
            from_status=None,
            to_status=OrderStatus.NEW.value,
            actor=actor,
            timestamp=order.created_at,
        )

        async with self._session_maker() as session:
            try:
                async with session.begin():
                    session.add(Order(
                        id=order.id,
                        display_code=order.display_code,
                        restaurant_id=order.restaurant_id,
                        customer_name=order.customer_name,
                        contact_handle=order.contact_handle,
                        source_channel=order.source_channel,
                        order_type=order.order_type,
                        line_items=dump_line_items(order.line_items),
                        notes=order.notes,
                        subtotal=order.subtotal,
                        tax_amount=order.tax_amount,
                        service_charge=order.service_charge,
                        total=order.total,
                        status=OrderStatus(order.status).value,
                        created_at=order.created_at,
                    ))
                    await session.flush()
                    event.sequence = await self._next_sequence(session, order.restaurant_id)
                    session.add(event)
                    await session.flush()
                    created = _to_event_record(event)
            except IntegrityError as e:
                if await self.get_by_id(order.id) is not None:
                    logger.critical(f"Integrity violation: order id {order.id} already exists")
                    raise DuplicateId(order.id) from e
                logger.warning(
                    f"Display code {order.display_code} claimed concurrently "
                    f"for restaurant {order.restaurant_id}"
                )
                raise DisplayCodeTaken(order.restaurant_id, order.display_code) from e

        logger.info(f"Order {order.display_code} ({order.id}) stored, sequence {created.sequence}")
        return created

    async def transition(
        self,
        order_id: str,
        new_status: OrderStatus,
        expected_status: Optional[OrderStatus] = None,
        actor: str = "system",
    ) -> tuple[OrderRecord, StatusEventRecord]:
        """
        Atomically move an order to ``new_status``.

        If ``expected_status`` is given the change only applies when the
        stored status still equals it. Without it the change applies to
        whatever the current status is, provided the transition is legal.

        Raises:
            OrderNotFound: no such order
            StaleTransition: stored status differs from expected_status,
                or a concurrent writer changed it first
            IllegalTransition: the transition table forbids the change
        """
        new_status = OrderStatus(new_status)
        expected = OrderStatus(expected_status) if expected_status is not None else None

        async with self._session_maker() as session:
            async with session.begin():
                result = await session.execute(
                    select(Order).where(Order.id == order_id).with_for_update()
                )
                row = result.scalar_one_or_none()
                if row is None:
                    raise OrderNotFound(order_id)

                current = OrderStatus(row.status)
                if expected is not None and current != expected:
                    raise StaleTransition(order_id, expected.value, current.value)
                if not is_valid_transition(current, new_status):
                    raise IllegalTransition(order_id, current.value, new_status.value)

                now = utcnow()
                updated = await session.execute(
                    update(Order)
                    .where(Order.id == order_id, Order.status == current.value)
                    .values(status=new_status.value, updated_at=now)
                    .execution_options(synchronize_session=False)
                )
                if updated.rowcount != 1:
                    raise StaleTransition(order_id, current.value, None)

                event = StatusEvent(
                    sequence=await self._next_sequence(session, row.restaurant_id),
                    order_id=order_id,
                    restaurant_id=row.restaurant_id,
                    from_status=current.value,
                    to_status=new_status.value,
                    actor=actor,
                    timestamp=now,
                )
                session.add(event)
                await session.flush()

                record = _to_record(row).with_status(new_status, now)
                event_record = _to_event_record(event)

        logger.info(
            f"Order {record.display_code} ({order_id}): {current.value} -> "
            f"{new_status.value} by {actor} (sequence {event_record.sequence})"
        )
        return record, event_record

    @staticmethod
    async def _next_sequence(session: AsyncSession, restaurant_id: str) -> int:
        """
        Bump the restaurant's journal counter inside the caller's transaction.

        The counter row stays locked until that transaction ends, so
        concurrent writers of one restaurant commit in sequence order.
        """
        query = (
            select(RestaurantSequence)
            .where(RestaurantSequence.restaurant_id == restaurant_id)
            .with_for_update()
        )
        counter = (await session.execute(query)).scalar_one_or_none()

        if counter is None:
            try:
                async with session.begin_nested():
                    counter = RestaurantSequence(restaurant_id=restaurant_id, last_sequence=0)
                    session.add(counter)
            except IntegrityError:
                # Another writer created the row first; wait for its lock
                counter = (await session.execute(query)).scalar_one()

        counter.last_sequence += 1
        await session.flush()
        return counter.last_sequence

    # =========================================================================
    # READS
    # =========================================================================

    async def get_by_id(self, order_id: str) -> Optional[OrderRecord]:
        async with self._session_maker() as session:
            result = await session.execute(select(Order).where(Order.id == order_id))
            row = result.scalar_one_or_none()
            return _to_record(row) if row else None

    async def get_many(self, order_ids: Iterable[str]) -> dict[str, OrderRecord]:
        ids = list(set(order_ids))
        if not ids:
            return {}
        async with self._session_maker() as session:
            result = await session.execute(select(Order).where(Order.id.in_(ids)))
            return {row.id: _to_record(row) for row in result.scalars().all()}

    async def list_by_filter(
        self,
        restaurant_id: str,
        statuses: Optional[Sequence[OrderStatus]] = None,
        source_channel: Optional[str] = None,
        since: Optional[datetime] = None,
        limit: Optional[int] = 50,
    ) -> list[OrderRecord]:
        """Orders of a restaurant, oldest first, bounded by ``limit`` unless it is None."""
        query = select(Order).where(Order.restaurant_id == restaurant_id)

        if statuses:
            query = query.where(Order.status.in_([OrderStatus(s).value for s in statuses]))
        if source_channel:
            query = query.where(Order.source_channel == source_channel)
        if since is not None:
            query = query.where(Order.created_at >= as_utc(since))

        query = query.order_by(Order.created_at.asc(), Order.id.asc())
        if limit is not None:
            query = query.limit(limit)

        async with self._session_maker() as session:
            result = await session.execute(query)
            return [_to_record(row) for row in result.scalars().all()]

    async def display_code_in_use(self, restaurant_id: str, display_code: str) -> bool:
        """Whether an active order of the restaurant already shows this code."""
        async with self._session_maker() as session:
            result = await session.execute(
                select(func.count(Order.id)).where(
                    Order.restaurant_id == restaurant_id,
                    Order.display_code == display_code,
                    Order.status.in_([s.value for s in ACTIVE_STATUSES]),
                )
            )
            return (result.scalar() or 0) > 0

    async def events_since(
        self,
        restaurant_id: str,
        after_sequence: int,
        limit: Optional[int] = 1000,
    ) -> list[StatusEventRecord]:
        """Status journal entries newer than ``after_sequence``, in order."""
        query = (
            select(StatusEvent)
            .where(
                StatusEvent.restaurant_id == restaurant_id,
                StatusEvent.sequence > after_sequence,
            )
            .order_by(StatusEvent.sequence.asc())
        )
        if limit is not None:
            query = query.limit(limit)

        async with self._session_maker() as session:
            result = await session.execute(query)
            return [_to_event_record(row) for row in result.scalars().all()]

    async def history(self, order_id: str) -> list[StatusEventRecord]:
        """Full audit trail of one order."""
        async with self._session_maker() as session:
            result = await session.execute(
                select(StatusEvent)
                .where(StatusEvent.order_id == order_id)
                .order_by(StatusEvent.sequence.asc())
            )
            return [_to_event_record(row) for row in result.scalars().all()]

    async def latest_sequence(self, restaurant_id: str) -> int:
        async with self._session_maker() as session:
            result = await session.execute(
                select(func.max(StatusEvent.sequence)).where(
                    StatusEvent.restaurant_id == restaurant_id
                )
            )
            return result.scalar() or 0

    async def status_counts(self, restaurant_id: str, since: datetime) -> dict:
        """Order counts per status plus revenue of non-cancelled orders since ``since``."""
        async with self._session_maker() as session:
            counts_result = await session.execute(
                select(Order.status, func.count(Order.id))
                .where(Order.restaurant_id == restaurant_id)
                .group_by(Order.status)
            )
            counts = {status: count for status, count in counts_result.all()}

            revenue_result = await session.execute(
                select(func.sum(Order.total)).where(
                    Order.restaurant_id == restaurant_id,
                    Order.created_at >= as_utc(since),
                    Order.status != OrderStatus.CANCELLED.value,
                )
            )
            revenue = revenue_result.scalar() or 0

        return {
            "counts": {s.value: counts.get(s.value, 0) for s in OrderStatus},
            "revenue": _money(revenue),
        }
