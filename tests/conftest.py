"""Pytest fixtures: throwaway SQLite database, seeded catalog, recording fakes."""

import asyncio
import os
import tempfile

_DB_DIR = tempfile.mkdtemp(prefix="orderflow-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_DB_DIR, 'orderflow.db')}"
os.environ["ENV_MODE"] = "development"
os.environ["MOCK_FAILURE_RATE"] = "0"
os.environ["MOCK_MAX_LATENCY_SECONDS"] = "0"
os.environ["REDIS_URL"] = "redis://127.0.0.1:6399/0"
os.environ.pop("CATALOG_API_URL", None)

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from orderflow.core.config import Settings
from orderflow.database import async_session_maker, drop_db, init_db
from orderflow.services.broadcast import EventBroadcaster
from orderflow.services.catalog import CatalogResolver, DatabaseCatalogService, ResolvedLine
from orderflow.services.notifications import BaseNotificationService, NotificationResult
from orderflow.services.orders import LifecycleController, OrderFactory, OrderRecord, OrderStore
from orderflow.services.orders.factory import compute_totals

MENU = [
    ("main", "burger", "Burger", Decimal("5.00"), True),
    ("main", "fries", "Fries", Decimal("2.50"), True),
    ("main", "shake", "Milkshake", Decimal("4.25"), False),
    ("other", "burger", "Burger", Decimal("7.00"), True),
]


class RecordingNotifier(BaseNotificationService):
    """Notifier fake that records messages, or fails on demand."""

    def __init__(self, fail: bool = False, explode: bool = False, delay: float = 0.0):
        self.fail = fail
        self.explode = explode
        self.delay = delay
        self.sent: list[tuple[str, str]] = []

    @property
    def provider_name(self) -> str:
        return "recording"

    async def send(self, contact_handle: str, message: str) -> NotificationResult:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.explode:
            raise RuntimeError("provider exploded")
        if self.fail:
            return NotificationResult(success=False, error_message="rejected", provider="recording")
        self.sent.append((contact_handle, message))
        return NotificationResult(success=True, message_id=f"msg-{len(self.sent)}", provider="recording")

    async def health_check(self) -> bool:
        return True


class RecordingMirror:
    """Stands in for ``mirror_order_to_board.delay``."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.payloads: list[dict] = []

    def __call__(self, payload: dict) -> None:
        if self.fail:
            raise ConnectionError("broker down")
        self.payloads.append(payload)


async def reset_database() -> DatabaseCatalogService:
    await drop_db()
    await init_db()
    catalog = DatabaseCatalogService(async_session_maker)
    for restaurant_id, item_id, name, price, available in MENU:
        await catalog.upsert_item(restaurant_id, item_id, name, price, is_available=available)
    return catalog


def build_settings(**overrides) -> Settings:
    values = {
        "env_mode": "development",
        "tax_rate": 0.0,
        "service_charge_rates": {"delivery": 0.10},
        "notification_timeout_seconds": 0.5,
        "mirror_dispatch_timeout_seconds": 0.5,
        "catalog_timeout_seconds": 1.0,
        "display_queue_size": 16,
        "replay_buffer_size": 50,
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
async def catalog() -> DatabaseCatalogService:
    """Fresh tables with the sample menu loaded."""
    return await reset_database()


@pytest.fixture
def store(catalog) -> OrderStore:
    return OrderStore(async_session_maker)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def mirror() -> RecordingMirror:
    return RecordingMirror()


@pytest.fixture
def broadcaster() -> EventBroadcaster:
    return EventBroadcaster(queue_size=16, replay_buffer_size=50)


@pytest.fixture
def make_controller(store, catalog, notifier, mirror, broadcaster):
    """Build a LifecycleController; keyword arguments replace any collaborator or setting."""

    def _make(**overrides) -> LifecycleController:
        settings = build_settings(**overrides.pop("settings", {}))
        chosen_store = overrides.pop("store", store)
        return LifecycleController(
            store=chosen_store,
            resolver=overrides.pop("resolver", CatalogResolver(catalog, settings.catalog_timeout_seconds)),
            factory=overrides.pop(
                "factory",
                OrderFactory(chosen_store.display_code_in_use, max_attempts=settings.display_code_max_attempts),
            ),
            broadcaster=overrides.pop("broadcaster", broadcaster),
            notifier=overrides.pop("notifier", notifier),
            settings=settings,
            mirror=overrides.pop("mirror", mirror),
        )

    return _make


@pytest.fixture
def controller(make_controller) -> LifecycleController:
    return make_controller()


@pytest.fixture
def new_order():
    """Build an OrderRecord directly, bypassing the catalog."""

    def _new(
        order_id: str = "a" * 32,
        display_code: str = "WEB-1234",
        restaurant_id: str = "main",
        source_channel: str = "web",
        order_type: str = "pickup",
    ) -> OrderRecord:
        lines = [ResolvedLine(item_id="burger", name="Burger", unit_price=Decimal("5.00"), quantity=2)]
        items, subtotal, tax, service_charge, total = compute_totals(lines, 0.0, 0.0)
        return OrderRecord(
            id=order_id,
            display_code=display_code,
            restaurant_id=restaurant_id,
            customer_name="Ada",
            contact_handle="+15550001111",
            source_channel=source_channel,
            order_type=order_type,
            line_items=items,
            subtotal=subtotal,
            tax_amount=tax,
            service_charge=service_charge,
            total=total,
            notes=None,
            created_at=datetime.now(timezone.utc),
        )

    return _new
