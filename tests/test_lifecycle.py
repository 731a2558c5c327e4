"""Lifecycle controller: submission, transitions, side effects and display replay."""

import asyncio
from decimal import Decimal

import pytest

from orderflow.core.errors import (
    CatalogUnavailable,
    CodeGenerationExhausted,
    ItemNotFound,
    ItemUnavailable,
    StaleTransition,
    ValidationFailed,
)
from orderflow.models import OrderStatus
from orderflow.services.broadcast import (
    ORDER_CREATED,
    ORDER_SNAPSHOT,
    ORDER_STATUS_CHANGED,
    EventBroadcaster,
)
from orderflow.services.catalog import CatalogResolver, RequestedItem
from orderflow.database import async_session_maker
from orderflow.services.orders import OrderFactory, OrderStore, OrderSubmission

from conftest import RecordingMirror, RecordingNotifier


def submission(**overrides):
    values = {
        "customer_name": "Ada",
        "contact_handle": "+15550001111",
        "items": [RequestedItem("burger", 2)],
        "source_channel": "web",
        "order_type": "delivery",
    }
    values.update(overrides)
    return OrderSubmission(**values)


# =============================================================================
# SUBMISSION
# =============================================================================

async def test_submit_prices_persists_and_broadcasts(controller, store, broadcaster, mirror, notifier):
    display = await broadcaster.subscribe("main")

    result = await controller.submit_order(submission())
    await controller.drain()

    order = result.order
    assert order.subtotal == Decimal("10.00")
    assert order.service_charge == Decimal("1.00")
    assert order.total == Decimal("11.00")
    assert order.display_code.startswith("WEB-")
    assert result.warnings == ()

    assert (await store.get_by_id(order.id)).total == Decimal("11.00")

    announced = await display.next_event()
    assert announced.event == ORDER_CREATED
    assert announced.sequence == result.sequence
    assert announced.payload["id"] == order.id
    assert announced.payload["total"] == "11.00"

    assert mirror.payloads[0]["display_code"] == order.display_code
    assert notifier.sent[0][0] == "+15550001111"
    assert order.display_code in notifier.sent[0][1]


async def test_pickup_pays_no_service_charge(controller):
    result = await controller.submit_order(submission(order_type="pickup"))

    assert result.order.service_charge == Decimal("0.00")
    assert result.order.total == Decimal("10.00")


async def test_messaging_orders_are_answered_on_whatsapp(controller, notifier):
    await controller.submit_order(submission(source_channel="messaging"))
    await controller.drain()

    assert notifier.sent[0][0] == "whatsapp:+15550001111"


@pytest.mark.parametrize("items,error", [
    ([RequestedItem("shake", 1)], ItemUnavailable),
    ([RequestedItem("burger", 1), RequestedItem("lobster", 1)], ItemNotFound),
])
async def test_rejected_items_leave_no_trace(controller, store, broadcaster, mirror, items, error):
    display = await broadcaster.subscribe("main")

    with pytest.raises(error):
        await controller.submit_order(submission(items=items))

    assert await store.list_by_filter("main") == []
    assert await store.latest_sequence("main") == 0
    assert display.pending == 0
    assert mirror.payloads == []
    assert controller.pending_tasks == 0


@pytest.mark.parametrize("overrides", [
    {"customer_name": "  "},
    {"contact_handle": ""},
    {"items": []},
    {"source_channel": "fax"},
    {"order_type": "drive_through"},
])
async def test_invalid_submission(controller, store, overrides):
    with pytest.raises(ValidationFailed):
        await controller.submit_order(submission(**overrides))

    assert await store.list_by_filter("main") == []


async def test_catalog_outage_fails_submission(make_controller, store):
    class DownCatalog:
        provider_name = "down"

        async def get_items(self, restaurant_id, item_ids):
            raise CatalogUnavailable("Catalog lookup failed")

    controller = make_controller(resolver=CatalogResolver(DownCatalog()))

    with pytest.raises(CatalogUnavailable):
        await controller.submit_order(submission())
    assert await store.list_by_filter("main") == []


async def test_notification_failure_does_not_affect_order(make_controller, store):
    for notifier in (RecordingNotifier(fail=True), RecordingNotifier(explode=True)):
        controller = make_controller(notifier=notifier)

        result = await controller.submit_order(submission())
        outcome = await controller.transition_order(result.order.id, "confirmed")
        await controller.drain()

        assert outcome.order.status == OrderStatus.CONFIRMED
        assert (await store.get_by_id(result.order.id)).status == OrderStatus.CONFIRMED


async def test_slow_notification_is_abandoned(make_controller):
    controller = make_controller(
        notifier=RecordingNotifier(delay=5.0),
        settings={"notification_timeout_seconds": 0.05},
    )

    await controller.submit_order(submission())
    await controller.drain()

    assert controller.pending_tasks == 0


async def test_mirror_failure_becomes_warning(make_controller, store):
    controller = make_controller(mirror=RecordingMirror(fail=True))

    result = await controller.submit_order(submission())

    assert len(result.warnings) == 1
    assert "mirror" in result.warnings[0]
    assert await store.get_by_id(result.order.id) is not None


async def test_racing_display_code_is_regenerated(make_controller, store, new_order):
    await store.insert(new_order(order_id="1" * 32, display_code="WEB-1111"))
    generated = iter(["WEB-1111", "WEB-2222"])

    async def looks_free(restaurant_id, code):
        return False

    controller = make_controller(factory=OrderFactory(looks_free, code_generator=lambda channel: next(generated)))

    result = await controller.submit_order(submission())

    assert result.order.display_code == "WEB-2222"


async def test_display_code_exhaustion(make_controller, store, new_order):
    await store.insert(new_order(order_id="1" * 32, display_code="WEB-1111"))

    async def looks_free(restaurant_id, code):
        return False

    controller = make_controller(
        factory=OrderFactory(looks_free, max_attempts=3, code_generator=lambda channel: "WEB-1111"),
    )

    with pytest.raises(CodeGenerationExhausted):
        await controller.submit_order(submission())
    assert len(await store.list_by_filter("main")) == 1


# =============================================================================
# TRANSITIONS
# =============================================================================

async def test_transition_broadcasts_and_notifies(controller, broadcaster, notifier):
    result = await controller.submit_order(submission())
    display = await broadcaster.subscribe("main")

    outcome = await controller.transition_order(result.order.id, "confirmed", "new", actor="expo")
    await controller.drain()

    change = await display.next_event()
    assert change.event == ORDER_STATUS_CHANGED
    assert change.sequence == outcome.event.sequence
    assert change.payload["from_status"] == "new"
    assert change.payload["status"] == "confirmed"
    assert change.payload["actor"] == "expo"
    assert outcome.previous_status == OrderStatus.NEW
    assert "confirmed" in notifier.sent[-1][1]


async def test_preparing_sends_no_message(controller, notifier):
    result = await controller.submit_order(submission())
    await controller.transition_order(result.order.id, "confirmed")
    await controller.drain()
    sent = len(notifier.sent)

    await controller.transition_order(result.order.id, "preparing")
    await controller.drain()

    assert len(notifier.sent) == sent


async def test_stale_transition_publishes_nothing(controller, broadcaster):
    result = await controller.submit_order(submission())
    await controller.transition_order(result.order.id, "confirmed")
    display = await broadcaster.subscribe("main")

    with pytest.raises(StaleTransition):
        await controller.transition_order(result.order.id, "cancelled", expected_status="new")

    assert display.pending == 0


async def test_unknown_status_name(controller):
    result = await controller.submit_order(submission())

    with pytest.raises(ValidationFailed):
        await controller.transition_order(result.order.id, "eaten")


async def test_list_defaults_to_active_orders(controller):
    first = await controller.submit_order(submission())
    second = await controller.submit_order(submission(source_channel="phone"))
    await controller.transition_order(first.order.id, "cancelled")

    assert [o.id for o in await controller.list_orders()] == [second.order.id]
    assert [o.id for o in await controller.list_orders(statuses=["cancelled"])] == [first.order.id]
    assert await controller.list_orders(source_channel="web") == []


async def test_summary_counts(controller):
    first = await controller.submit_order(submission())
    await controller.submit_order(submission(order_type="pickup"))
    await controller.transition_order(first.order.id, "cancelled")

    summary = await controller.summary()

    assert summary["counts"]["new"] == 1
    assert summary["counts"]["cancelled"] == 1
    assert summary["active"] == 1
    assert summary["revenue_today"] == Decimal("10.00")


# =============================================================================
# DISPLAYS
# =============================================================================

async def test_fresh_display_gets_snapshot_of_active_orders(controller):
    kept = await controller.submit_order(submission())
    gone = await controller.submit_order(submission())
    await controller.transition_order(gone.order.id, "cancelled")

    feed = await controller.connect_display("main")

    assert len(feed.initial) == 1
    snapshot = feed.initial[0]
    assert snapshot.event == ORDER_SNAPSHOT
    assert snapshot.payload["latest_sequence"] == snapshot.sequence
    assert [o["id"] for o in snapshot.payload["orders"]] == [kept.order.id]
    await controller.disconnect_display(feed.session)


async def test_reconnecting_display_gets_missed_events_in_order(controller):
    feed = await controller.connect_display("main")
    result = await controller.submit_order(submission())
    seen = await feed.session.next_event()
    await controller.disconnect_display(feed.session)

    await controller.transition_order(result.order.id, "confirmed")
    await controller.transition_order(result.order.id, "preparing")
    await controller.submit_order(submission(source_channel="walk_in"))

    feed = await controller.connect_display("main", last_sequence=seen.sequence)

    assert [(e.event, e.payload.get("status")) for e in feed.initial] == [
        (ORDER_STATUS_CHANGED, "confirmed"),
        (ORDER_STATUS_CHANGED, "preparing"),
        (ORDER_CREATED, "new"),
    ]
    sequences = [e.sequence for e in feed.initial]
    assert sequences == sorted(sequences)
    assert sequences[0] > seen.sequence
    await controller.disconnect_display(feed.session)


async def test_replay_after_restart_rebuilds_created_events(make_controller):
    before = make_controller()
    result = await before.submit_order(submission())
    await before.transition_order(result.order.id, "confirmed")

    after = make_controller(broadcaster=EventBroadcaster())
    events = await after.replay_events("main", 0)

    assert [e.event for e in events] == [ORDER_CREATED, ORDER_STATUS_CHANGED]
    assert events[0].payload["id"] == result.order.id
    assert events[0].payload["status"] == "new"
    assert events[0].payload["total"] == "11.00"


async def test_live_events_already_replayed_are_skipped(controller):
    result = await controller.submit_order(submission())
    feed = await controller.connect_display("main", last_sequence=0)

    assert feed.is_covered(feed.initial[0])
    outcome = await controller.transition_order(result.order.id, "confirmed")
    live = await feed.session.next_event()

    assert live.sequence == outcome.event.sequence
    assert not feed.is_covered(live)
    await controller.disconnect_display(feed.session)
    await controller.drain()


class HeldStore(OrderStore):
    """Pauses each insert, before or after its commit, until ``release`` is set."""

    def __init__(self, after_commit: bool):
        super().__init__(async_session_maker)
        self.after_commit = after_commit
        self.holding = asyncio.Event()
        self.release = asyncio.Event()

    async def insert(self, order, actor="system"):
        if not self.after_commit:
            await self._hold()
        created = await super().insert(order, actor)
        if self.after_commit:
            await self._hold()
        return created

    async def _hold(self):
        self.holding.set()
        await self.release.wait()


async def test_order_committed_after_connect_arrives_live(make_controller):
    store = HeldStore(after_commit=False)
    controller = make_controller(store=store)
    first = make_controller()
    earlier = await first.submit_order(submission())
    await first.drain()

    pending = asyncio.create_task(controller.submit_order(submission()))
    await store.holding.wait()
    feed = await controller.connect_display("main", last_sequence=earlier.sequence)
    store.release.set()
    result = await pending

    assert feed.initial == []
    live = await asyncio.wait_for(feed.session.next_event(), timeout=1.0)
    assert live.sequence == result.sequence
    assert not feed.is_covered(live)
    await controller.disconnect_display(feed.session)
    await controller.drain()


async def test_order_committed_before_connect_is_in_snapshot(make_controller):
    store = HeldStore(after_commit=True)
    controller = make_controller(store=store)

    pending = asyncio.create_task(controller.submit_order(submission()))
    await store.holding.wait()
    feed = await controller.connect_display("main")
    store.release.set()
    result = await pending

    snapshot = feed.initial[0]
    assert [o["id"] for o in snapshot.payload["orders"]] == [result.order.id]
    late = await asyncio.wait_for(feed.session.next_event(), timeout=1.0)
    assert late.sequence == result.sequence
    assert feed.is_covered(late)
    await controller.disconnect_display(feed.session)
    await controller.drain()


async def test_replay_pages_through_the_whole_journal(make_controller):
    controller = make_controller(settings={"replay_max_events": 2})
    for _ in range(5):
        await controller.submit_order(submission())

    events = await controller.replay_events("main", 0)

    assert [e.sequence for e in events] == [1, 2, 3, 4, 5]


async def test_display_too_far_behind_gets_snapshot(make_controller):
    controller = make_controller(settings={"replay_max_events": 2})
    placed = [await controller.submit_order(submission()) for _ in range(3)]

    behind = await controller.connect_display("main", last_sequence=0)
    close = await controller.connect_display("main", last_sequence=1)

    assert [e.event for e in behind.initial] == [ORDER_SNAPSHOT]
    snapshot = behind.initial[0]
    assert snapshot.payload["latest_sequence"] == 3
    assert [o["id"] for o in snapshot.payload["orders"]] == [r.order.id for r in placed]

    assert [e.sequence for e in close.initial] == [2, 3]
    await controller.disconnect_display(behind.session)
    await controller.disconnect_display(close.session)
