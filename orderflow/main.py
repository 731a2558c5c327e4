"""
FastAPI Application Entry Point

OrderFlow KDS - order lifecycle and real-time kitchen display sync.
Supports both Mock services (development) and Real APIs (production).

Endpoints:
    - POST /orders: Submit an order (priced from the catalog)
    - GET /orders: List orders for the kitchen
    - GET /orders/summary: Counts per status and today's revenue
    - GET /orders/{order_id}: Single order
    - GET /orders/{order_id}/history: Status audit trail
    - PATCH /orders/{order_id}/status: Move an order along the workflow
    - WS /ws/orders: Live order events for kitchen displays
    - GET /health: System health check

Author: Khalil Bannouri
Version: 4.0.0
"""

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Optional
from contextlib import asynccontextmanager

import anyio
from fastapi import FastAPI, Depends, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import text
import redis

# Internal imports
from orderflow.core.config import get_settings, setup_logging
from orderflow.core.errors import OrderFlowError
from orderflow.database import get_db, init_db, engine
from orderflow.schemas import (
    OrderCreate,
    OrderResponse,
    OrderCreateResponse,
    OrderListResponse,
    StatusUpdateRequest,
    StatusEventResponse,
    SummaryResponse,
    ErrorResponse,
    HealthResponse,
)
from orderflow.services.catalog import RequestedItem
from orderflow.services.orders import (
    DisplayFeed,
    LifecycleController,
    OrderSubmission,
    get_lifecycle_controller,
)

# Initialize configuration and logging
settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)

# WebSocket close codes
WS_GOING_AWAY = 1001
WS_TRY_AGAIN_LATER = 1013


def get_controller() -> LifecycleController:
    """Dependency returning the process-wide lifecycle controller."""
    return get_lifecycle_controller()


def _resolve_controller(app: FastAPI) -> LifecycleController:
    return app.dependency_overrides.get(get_controller, get_controller)()


# =============================================================================
# APPLICATION LIFECYCLE
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application startup and shutdown events.
    """
    # Startup
    logger.info("=" * 60)
    logger.info(f"Starting {settings.app_name}")
    logger.info(f"   Version: {settings.app_version}")
    logger.info(f"   Environment: {settings.env_mode.value}")
    logger.info(f"   Debug: {settings.debug}")
    logger.info("=" * 60)

    # Initialize database
    await init_db()
    logger.info("Database initialized")

    # Log service configuration
    controller = _resolve_controller(app)
    logger.info(f"Catalog Service: {controller.resolver.catalog.provider_name}")
    logger.info(f"Notification Service: {controller.notifier.provider_name}")

    # Validate production config
    if settings.use_real_services:
        missing = settings.validate_production_config()
        if missing:
            logger.warning(f"Missing production config: {missing}")

    logger.info("Application ready!")

    yield  # Application runs

    # Shutdown
    logger.info("Shutting down...")
    await controller.broadcaster.close_all("shutdown")
    await controller.drain()
    await controller.resolver.catalog.aclose()
    await engine.dispose()
    logger.info("Cleanup complete")


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description=(
        "Order lifecycle and real-time Kitchen Display System sync. "
        "Supports both mock services for development and real APIs for production."
    ),
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def parse_status_filter(status: Optional[str]) -> Optional[list[str]]:
    """Split ``a,b`` into status names; None keeps the default (active) filter."""
    if not status:
        return None
    return [s.strip().lower() for s in status.split(",") if s.strip()] or None


def check_redis() -> str:
    r = redis.Redis.from_url(settings.redis_url, socket_timeout=2, socket_connect_timeout=2)
    try:
        r.ping()
    finally:
        r.close()
    return "healthy"


# =============================================================================
# ROOT & HEALTH ENDPOINTS
# =============================================================================

@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """API root with navigation links."""
    return {
        "message": f"Welcome to {settings.app_name}",
        "version": settings.app_version,
        "environment": settings.env_mode.value,
        "documentation": "/docs",
        "health": "/health",
        "display_feed": "/ws/orders",
    }


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["Health"],
    summary="System Health Check",
)
async def health_check(
    db: AsyncSession = Depends(get_db),
    controller: LifecycleController = Depends(get_controller),
) -> HealthResponse:
    """Verify all system components are operational."""

    # Check database
    db_status = "healthy"
    try:
        await db.execute(text("SELECT 1"))
    except Exception as e:
        db_status = f"unhealthy: {str(e)}"
        logger.error(f"Database health check failed: {e}")

    # Check Redis
    redis_status = "healthy"
    try:
        redis_status = await asyncio.to_thread(check_redis)
    except redis.RedisError as e:
        redis_status = f"unhealthy: {str(e)}"
        logger.error(f"Redis health check failed: {e}")

    # Check notification service
    notification_status = "healthy" if await controller.notifier.health_check() else "unhealthy"

    overall = "operational" if all(
        s == "healthy" for s in [db_status, redis_status, notification_status]
    ) else "degraded"

    return HealthResponse(
        status=overall,
        database=db_status,
        redis=redis_status,
        notification_service=notification_status,
        connections=controller.broadcaster.connection_count,
        timestamp=datetime.now(timezone.utc),
    )


# =============================================================================
# ORDER API ENDPOINTS
# =============================================================================

@app.post(
    "/orders",
    status_code=201,
    response_model=OrderCreateResponse,
    responses={
        400: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
    tags=["Orders"],
    summary="Submit Order",
)
async def create_order(
    order_data: OrderCreate,
    controller: LifecycleController = Depends(get_controller),
) -> OrderCreateResponse:
    """
    Submit a new order from any channel (web, phone, messaging, walk-in).

    Prices come from the catalog; any price or total sent by the client is
    ignored. The order is broadcast to every connected kitchen display of
    the restaurant before this call returns.
    """
    logger.info(f"Creating order for: {order_data.customer_name} ({order_data.source_channel.value})")

    result = await controller.submit_order(OrderSubmission(
        customer_name=order_data.customer_name,
        contact_handle=order_data.contact_handle,
        items=[RequestedItem(item_id=i.item_id, quantity=i.quantity) for i in order_data.items],
        source_channel=order_data.source_channel.value,
        order_type=order_data.order_type.value,
        restaurant_id=order_data.restaurant_id,
        notes=order_data.notes,
        actor=order_data.source_channel.value,
    ))

    return OrderCreateResponse(
        success=True,
        order_id=result.order.id,
        display_code=result.order.display_code,
        total=result.order.total,
        warnings=list(result.warnings),
    )


@app.get(
    "/orders",
    response_model=OrderListResponse,
    responses={400: {"model": ErrorResponse}},
    tags=["Orders"],
    summary="List Orders",
)
async def list_orders(
    restaurant_id: Optional[str] = Query(None),
    status: Optional[str] = Query(None, description="Comma separated statuses; active ones by default"),
    source: Optional[str] = Query(None),
    since: Optional[datetime] = Query(None),
    limit: Optional[int] = Query(None, ge=1, le=500),
    controller: LifecycleController = Depends(get_controller),
) -> OrderListResponse:
    """Orders for the kitchen, oldest first."""
    orders = await controller.list_orders(
        restaurant_id=restaurant_id,
        statuses=parse_status_filter(status),
        source_channel=source,
        since=since,
        limit=limit,
    )

    return OrderListResponse(
        total=len(orders),
        orders=[OrderResponse.model_validate(order) for order in orders],
    )


@app.get(
    "/orders/summary",
    response_model=SummaryResponse,
    tags=["Orders"],
)
async def order_summary(
    restaurant_id: Optional[str] = Query(None),
    controller: LifecycleController = Depends(get_controller),
) -> SummaryResponse:
    """Counts per status and today's revenue."""
    return SummaryResponse(**await controller.summary(restaurant_id))


@app.get(
    "/orders/{order_id}",
    response_model=OrderResponse,
    responses={404: {"model": ErrorResponse}},
    tags=["Orders"],
)
async def get_order(
    order_id: str,
    controller: LifecycleController = Depends(get_controller),
) -> OrderResponse:
    """Get a specific order by ID."""
    return OrderResponse.model_validate(await controller.get_order(order_id))


@app.get(
    "/orders/{order_id}/history",
    response_model=list[StatusEventResponse],
    responses={404: {"model": ErrorResponse}},
    tags=["Orders"],
)
async def get_order_history(
    order_id: str,
    controller: LifecycleController = Depends(get_controller),
) -> list[StatusEventResponse]:
    """Every status change of an order, oldest first."""
    events = await controller.order_history(order_id)
    return [StatusEventResponse.model_validate(event) for event in events]


@app.patch(
    "/orders/{order_id}/status",
    response_model=OrderResponse,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
    tags=["Orders"],
    summary="Update Order Status",
)
async def update_order_status(
    order_id: str,
    update: StatusUpdateRequest,
    controller: LifecycleController = Depends(get_controller),
) -> OrderResponse:
    """
    Move an order to a new status.

    Send ``expected_status`` to apply the change only if no other station
    moved the order first (409 STALE_TRANSITION otherwise).
    """
    outcome = await controller.transition_order(
        order_id,
        update.status.value,
        expected_status=update.expected_status.value if update.expected_status else None,
        actor=update.actor or "operator",
    )
    return OrderResponse.model_validate(outcome.order)


# =============================================================================
# KITCHEN DISPLAY FEED
# =============================================================================

async def _pump_events(websocket: WebSocket, feed: DisplayFeed) -> bool:
    """
    Forward live events from the session queue.

    Returns True when the broadcaster closed the session, False when the
    display went away first.
    """
    session = feed.session
    while True:
        event = await session.next_event()
        if event is None:
            return True
        if feed.is_covered(event):
            continue
        try:
            await websocket.send_json(event.to_dict())
        except WebSocketDisconnect:
            return False
        session.mark_sent(event.sequence)


async def _listen(websocket: WebSocket, feed: DisplayFeed) -> None:
    """Handle acknowledgements and pings from the display until it disconnects."""
    session = feed.session
    while True:
        try:
            raw = await websocket.receive_text()
        except WebSocketDisconnect:
            return
        try:
            message = json.loads(raw)
        except ValueError:
            logger.debug(f"Display {session.session_id[:8]} sent non-JSON message")
            continue
        if not isinstance(message, dict):
            continue

        kind = message.get("type")
        if kind == "ack":
            try:
                session.acknowledge(int(message.get("sequence")))
            except (TypeError, ValueError):
                logger.debug(f"Display {session.session_id[:8]} sent invalid ack: {message}")
        elif kind == "ping":
            await websocket.send_json({"type": "pong"})


@app.websocket("/ws/orders")
async def order_feed(
    websocket: WebSocket,
    restaurant_id: Optional[str] = Query(None),
    last_sequence: Optional[int] = Query(None, ge=0),
    controller: LifecycleController = Depends(get_controller),
) -> None:
    """
    Live order events for one restaurant.

    Without ``last_sequence`` the display first receives an order.snapshot
    of the active orders; with it, every event after that sequence is
    replayed before live events resume.
    """
    await websocket.accept()
    feed = await controller.connect_display(restaurant_id, last_sequence)
    session = feed.session

    try:
        for event in feed.initial:
            await websocket.send_json(event.to_dict())

        async with anyio.create_task_group() as task_group:

            async def pump() -> None:
                if await _pump_events(websocket, feed):
                    code = WS_TRY_AGAIN_LATER if session.close_reason == "queue_overflow" else WS_GOING_AWAY
                    await websocket.close(code=code, reason=session.close_reason or "")
                task_group.cancel_scope.cancel()

            async def listen() -> None:
                await _listen(websocket, feed)
                task_group.cancel_scope.cancel()

            task_group.start_soon(pump)
            task_group.start_soon(listen)

    except WebSocketDisconnect:
        pass
    except Exception as exc:
        logger.error(f"Display {session.session_id[:8]} feed error: {exc!r}")
    finally:
        with anyio.CancelScope(shield=True):
            await controller.disconnect_display(session)


# =============================================================================
# ERROR HANDLERS
# =============================================================================

@app.exception_handler(OrderFlowError)
async def order_flow_exception_handler(request: Request, exc: OrderFlowError) -> JSONResponse:
    """Map order core errors to their HTTP status and error envelope."""
    if exc.status_code >= 500:
        logger.error(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")
    else:
        logger.info(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")

    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report malformed requests as 400 VALIDATION_FAILED."""
    problems = [
        f"{'.'.join(str(p) for p in error['loc'] if p != 'body')}: {error['msg']}"
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "error": "VALIDATION_FAILED",
            "detail": "; ".join(problems),
        },
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all exception handler."""
    logger.exception(f"Unhandled exception: {exc}")

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal Server Error",
            "detail": str(exc) if settings.debug else "An unexpected error occurred",
        },
    )
