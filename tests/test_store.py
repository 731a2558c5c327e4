"""Order store: atomic inserts, compare-and-set transitions, status journal."""

import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from orderflow.core.errors import (
    DisplayCodeTaken,
    DuplicateId,
    IllegalTransition,
    OrderNotFound,
    StaleTransition,
)
from orderflow.models import OrderStatus


async def test_insert_records_creation_event(store, new_order):
    order = new_order()

    created = await store.insert(order, actor="web")

    assert created.is_creation
    assert created.to_status == OrderStatus.NEW
    assert created.actor == "web"
    assert await store.latest_sequence("main") == created.sequence

    stored = await store.get_by_id(order.id)
    assert stored.display_code == "WEB-1234"
    assert stored.total == Decimal("10.00")
    assert stored.line_items == order.line_items
    assert stored.status == OrderStatus.NEW


async def test_duplicate_id_is_rejected(store, new_order):
    await store.insert(new_order())

    with pytest.raises(DuplicateId):
        await store.insert(new_order(display_code="WEB-9999"))

    assert len(await store.history("a" * 32)) == 1


async def test_active_display_code_cannot_repeat(store, new_order):
    await store.insert(new_order(order_id="1" * 32, display_code="WEB-5555"))

    with pytest.raises(DisplayCodeTaken):
        await store.insert(new_order(order_id="2" * 32, display_code="WEB-5555"))

    assert await store.get_by_id("2" * 32) is None
    assert await store.display_code_in_use("main", "WEB-5555")
    assert not await store.display_code_in_use("other", "WEB-5555")


async def test_display_code_frees_up_when_order_finishes(store, new_order):
    await store.insert(new_order(order_id="1" * 32, display_code="PH-1000"))
    await store.transition("1" * 32, OrderStatus.CANCELLED)

    assert not await store.display_code_in_use("main", "PH-1000")
    await store.insert(new_order(order_id="2" * 32, display_code="PH-1000"))


async def test_transition_updates_status_and_journal(store, new_order):
    order = new_order()
    created = await store.insert(order)

    updated, event = await store.transition(
        order.id, OrderStatus.CONFIRMED, expected_status=OrderStatus.NEW, actor="expo"
    )

    assert updated.status == OrderStatus.CONFIRMED
    assert updated.updated_at is not None
    assert event.from_status == OrderStatus.NEW
    assert event.to_status == OrderStatus.CONFIRMED
    assert event.sequence > created.sequence
    assert (await store.get_by_id(order.id)).status == OrderStatus.CONFIRMED
    assert [e.to_status for e in await store.history(order.id)] == [
        OrderStatus.NEW, OrderStatus.CONFIRMED,
    ]


async def test_illegal_transition_changes_nothing(store, new_order):
    order = new_order()
    await store.insert(order)

    with pytest.raises(IllegalTransition):
        await store.transition(order.id, OrderStatus.READY)

    assert (await store.get_by_id(order.id)).status == OrderStatus.NEW
    assert len(await store.history(order.id)) == 1


async def test_terminal_order_cannot_move(store, new_order):
    order = new_order()
    await store.insert(order)
    await store.transition(order.id, OrderStatus.CANCELLED)

    with pytest.raises(IllegalTransition):
        await store.transition(order.id, OrderStatus.CONFIRMED)


async def test_stale_expected_status_is_rejected(store, new_order):
    order = new_order()
    await store.insert(order)
    await store.transition(order.id, OrderStatus.CONFIRMED)

    with pytest.raises(StaleTransition) as exc:
        await store.transition(order.id, OrderStatus.CANCELLED, expected_status=OrderStatus.NEW)

    assert exc.value.current_status == "confirmed"
    assert (await store.get_by_id(order.id)).status == OrderStatus.CONFIRMED


async def test_missing_order(store):
    with pytest.raises(OrderNotFound):
        await store.transition("f" * 32, OrderStatus.CONFIRMED)


async def test_racing_transitions_have_one_winner(store, new_order):
    order = new_order()
    await store.insert(order)

    results = await asyncio.gather(
        store.transition(order.id, OrderStatus.CONFIRMED, expected_status=OrderStatus.NEW, actor="grill"),
        store.transition(order.id, OrderStatus.CONFIRMED, expected_status=OrderStatus.NEW, actor="expo"),
        return_exceptions=True,
    )

    winners = [r for r in results if not isinstance(r, Exception)]
    losers = [r for r in results if isinstance(r, Exception)]
    assert len(winners) == 1
    assert len(losers) == 1
    assert isinstance(losers[0], StaleTransition)

    history = await store.history(order.id)
    assert [e.to_status for e in history] == [OrderStatus.NEW, OrderStatus.CONFIRMED]
    assert history[1].actor == winners[0][1].actor


async def test_list_by_filter(store, new_order):
    await store.insert(new_order(order_id="1" * 32, display_code="WEB-1001"))
    await store.insert(new_order(order_id="2" * 32, display_code="PH-1002", source_channel="phone"))
    await store.insert(new_order(order_id="3" * 32, display_code="WEB-1003"))
    await store.insert(new_order(order_id="4" * 32, display_code="WEB-1004", restaurant_id="other"))
    await store.transition("3" * 32, OrderStatus.CANCELLED)

    active = await store.list_by_filter("main", statuses=[OrderStatus.NEW])
    assert [o.display_code for o in active] == ["WEB-1001", "PH-1002"]

    phone = await store.list_by_filter("main", source_channel="phone")
    assert [o.id for o in phone] == ["2" * 32]

    assert len(await store.list_by_filter("main", limit=2)) == 2

    future = datetime.now(timezone.utc) + timedelta(hours=1)
    assert await store.list_by_filter("main", since=future) == []


async def test_events_since_is_ordered_and_scoped(store, new_order):
    first = await store.insert(new_order(order_id="1" * 32, display_code="WEB-1001"))
    await store.insert(new_order(order_id="2" * 32, display_code="WEB-1002", restaurant_id="other"))
    await store.transition("1" * 32, OrderStatus.CONFIRMED)

    events = await store.events_since("main", first.sequence)

    assert len(events) == 1
    assert events[0].to_status == OrderStatus.CONFIRMED
    assert all(e.restaurant_id == "main" for e in await store.events_since("main", 0))


async def test_status_counts(store, new_order):
    await store.insert(new_order(order_id="1" * 32, display_code="WEB-1001"))
    await store.insert(new_order(order_id="2" * 32, display_code="WEB-1002"))
    await store.transition("2" * 32, OrderStatus.CANCELLED)

    since = datetime.now(timezone.utc) - timedelta(hours=1)
    stats = await store.status_counts("main", since)

    assert stats["counts"]["new"] == 1
    assert stats["counts"]["cancelled"] == 1
    assert stats["counts"]["ready"] == 0
    assert stats["revenue"] == Decimal("10.00")


async def test_racing_completion_appends_one_event(store, new_order):
    order = new_order()
    await store.insert(order)
    for status in (OrderStatus.CONFIRMED, OrderStatus.PREPARING, OrderStatus.READY):
        await store.transition(order.id, status)

    results = await asyncio.gather(
        *[
            store.transition(order.id, OrderStatus.COMPLETED, expected_status=OrderStatus.READY)
            for _ in range(2)
        ],
        return_exceptions=True,
    )

    assert sum(1 for r in results if isinstance(r, StaleTransition)) == 1
    assert (await store.get_by_id(order.id)).status == OrderStatus.COMPLETED
    history = await store.history(order.id)
    assert [e.to_status for e in history].count(OrderStatus.COMPLETED) == 1


async def test_new_cannot_jump_to_completed(store, new_order):
    order = new_order()
    await store.insert(order)

    with pytest.raises(IllegalTransition):
        await store.transition(order.id, OrderStatus.COMPLETED)

    assert (await store.get_by_id(order.id)).status == OrderStatus.NEW


async def test_sequences_count_per_restaurant_without_gaps(store, new_order):
    await store.insert(new_order(order_id="1" * 32, display_code="WEB-1001"))
    await store.insert(new_order(order_id="2" * 32, display_code="WEB-1002", restaurant_id="other"))
    await store.transition("1" * 32, OrderStatus.CONFIRMED)
    with pytest.raises(IllegalTransition):
        await store.transition("1" * 32, OrderStatus.COMPLETED)
    await store.insert(new_order(order_id="3" * 32, display_code="WEB-1003"))

    assert [e.sequence for e in await store.events_since("main", 0)] == [1, 2, 3]
    assert [e.sequence for e in await store.events_since("other", 0)] == [1]
    assert await store.latest_sequence("main") == 3


async def test_concurrent_writers_get_consecutive_sequences(store, new_order):
    orders = [new_order(order_id=str(i) * 32, display_code=f"WEB-100{i}") for i in range(1, 6)]

    created = await asyncio.gather(*[store.insert(order) for order in orders])

    assert sorted(e.sequence for e in created) == [1, 2, 3, 4, 5]
    assert [e.sequence for e in await store.events_since("main", 0)] == [1, 2, 3, 4, 5]
