"""
FastAPI Application Entry Point

Weekend Pre-Order Service - slot-capped bagel and breakfast sandwich orders.
The order store (SQLite, PostgreSQL or DynamoDB) is chosen by ORDER_BACKEND;
SMS goes through the Mock service in development and Twilio otherwise.

Endpoints:
    - POST /api/orders: Submit a pre-order (capacity gated)
    - GET /api/slots: Public slot availability
    - POST /api/manage/login | logout: Kitchen session cookie
    - GET /api/kitchen/orders: Kitchen order board
    - PATCH/DELETE /api/manage/orders/{id}: Kitchen edits
    - POST /api/manage/reset-weekend: Delete the current week
    - GET /api/manage/slots: Capacity report
    - GET /health: System health check

Version: 1.0.0
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import Depends, FastAPI, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from preorder.core.config import get_settings, setup_logging
from preorder.core.exceptions import AuthenticationError, PreorderError, ValidationFailedError
from preorder.core.security import SESSION_COOKIE, expected_token, password_matches, require_kitchen_session
from preorder.models import Day, Item
from preorder.schemas import (
    ErrorResponse,
    HealthResponse,
    LoginRequest,
    OrderCreate,
    OrderCreateResponse,
    OrderListResponse,
    OrderResponse,
    OrderSummary,
    OrderUpdate,
    ResendSmsRequest,
    ResetResponse,
    SlotAvailability,
    SlotAvailabilityResponse,
    SlotUsage,
    SlotUsageResponse,
    SmsResendResponse,
    StatusUpdate,
    SuccessResponse,
)
from preorder.services.notifications import get_notification_service
from preorder.services.orders import OrderService
from preorder.stores import OrderFilters, get_order_store

# Initialize configuration and logging
settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)

ALL = "all"


# =============================================================================
# APPLICATION LIFECYCLE
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application startup and shutdown events.
    """
    settings = get_settings()

    # Startup
    logger.info("=" * 60)
    logger.info(f"Starting {settings.app_name}")
    logger.info(f"   Version: {settings.app_version}")
    logger.info(f"   Environment: {settings.env_mode.value}")
    logger.info(f"   Order backend: {settings.order_backend.value}")
    logger.info(f"   Slot capacity: {settings.slot_capacity}")
    logger.info("=" * 60)

    store = get_order_store()
    await store.init()
    logger.info(f"Order store initialized ({store.backend_name})")

    notifications = get_notification_service()
    logger.info(f"SMS Service: {notifications.provider_name}")

    if settings.use_real_services:
        missing = settings.validate_production_config()
        if missing:
            logger.warning(f"Missing production config: {missing}")

    app.state.order_service = OrderService(store, notifications, settings)

    logger.info("Application ready!")

    yield  # Application runs

    # Shutdown
    logger.info("Shutting down...")
    await store.close()
    logger.info("Cleanup complete")


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description=(
        "Weekend pre-order service for bagels and breakfast sandwiches. "
        "Each pickup slot admits a fixed number of orders per week."
    ),
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# DEPENDENCIES
# =============================================================================

def get_order_service(request: Request) -> OrderService:
    return request.app.state.order_service


def _parse_day(day: Optional[str]) -> str:
    try:
        return Day(day).value
    except ValueError:
        raise ValidationFailedError("Invalid day. Must be Saturday or Sunday", error="INVALID_DAY")


def _parse_item(item: Optional[str]) -> str:
    try:
        return Item(item).value
    except ValueError:
        raise ValidationFailedError("Invalid item. Must be bagel or sandwich", error="INVALID_ITEM")


def _optional_filter(value: Optional[str]) -> Optional[str]:
    """Empty and ``all`` mean no filter."""
    if not value or value == ALL:
        return None
    return value


# =============================================================================
# ROOT & HEALTH ENDPOINTS
# =============================================================================

@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """API root with navigation links."""
    settings = get_settings()
    return {
        "message": f"Welcome to {settings.shop_name} pre-orders",
        "version": settings.app_version,
        "environment": settings.env_mode.value,
        "documentation": "/docs",
        "health": "/health",
    }


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["Health"],
    summary="System Health Check",
)
async def health_check(service: OrderService = Depends(get_order_service)) -> HealthResponse:
    """Verify the order store and SMS provider are operational."""
    store_status = "healthy"
    try:
        if not await service.store.health_check():
            store_status = "unhealthy"
    except PreorderError as e:
        store_status = f"unhealthy: {e.error}"
        logger.error(f"Store health check failed: {e.message}")

    sms_status = "healthy" if await service.notifications.health_check() else "unhealthy"

    overall = "operational" if store_status == "healthy" and sms_status == "healthy" else "degraded"

    return HealthResponse(
        status=overall,
        store=store_status,
        store_backend=service.store.backend_name,
        sms_provider=f"{service.notifications.provider_name} ({sms_status})",
        timestamp=datetime.now(timezone.utc),
    )


# =============================================================================
# CUSTOMER ENDPOINTS
# =============================================================================

@app.post(
    "/api/orders",
    status_code=201,
    response_model=OrderCreateResponse,
    response_model_by_alias=True,
    responses={400: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    tags=["Orders"],
    summary="Submit Pre-Order",
)
async def create_order(
    order_data: OrderCreate,
    service: OrderService = Depends(get_order_service),
) -> OrderCreateResponse:
    """
    Reserve a seat in the chosen pickup slot and store the order.

    Returns 409 SLOT_SOLD_OUT when the slot is full; nothing is stored then.
    """
    logger.info(f"Creating order for: {order_data.name}")

    order, sms = await service.create_order(order_data)

    return OrderCreateResponse(
        order_id=order.id,
        sms=sms.value,
        summary=OrderSummary(
            day=order.day,
            slot=order.slot,
            item=order.item,
            total_cents=order.total_cents,
        ),
    )


@app.get(
    "/api/slots",
    response_model=SlotAvailabilityResponse,
    response_model_by_alias=True,
    tags=["Orders"],
    summary="Slot Availability",
)
async def list_slots(
    day: Optional[str] = Query(None),
    item: Optional[str] = Query(None),
    service: OrderService = Depends(get_order_service),
) -> SlotAvailabilityResponse:
    """Slots of one day with their sold-out flag for the current week."""
    if not day or not item:
        raise ValidationFailedError("Missing required parameters: day and item", error="MISSING_PARAMETERS")
    day = _parse_day(day)
    item = _parse_item(item)

    week, slots = await service.slot_availability(day)

    return SlotAvailabilityResponse(
        day=day,
        item=item,
        week=week,
        slots=[SlotAvailability(**s) for s in slots],
    )


# =============================================================================
# SESSION ENDPOINTS
# =============================================================================

@app.post("/api/manage/login", response_model=SuccessResponse, tags=["Session"])
async def login(body: LoginRequest, response: Response) -> SuccessResponse:
    """Exchange the kitchen password for a session cookie."""
    if not password_matches(body.password):
        logger.warning("Kitchen login failed")
        raise AuthenticationError("Invalid password", error="INVALID_PASSWORD")

    response.set_cookie(
        SESSION_COOKIE,
        expected_token(),
        httponly=True,
        max_age=get_settings().session_max_age_seconds,
        samesite="lax",
    )
    return SuccessResponse()


@app.post("/api/manage/logout", response_model=SuccessResponse, tags=["Session"])
async def logout(response: Response) -> SuccessResponse:
    response.delete_cookie(SESSION_COOKIE)
    return SuccessResponse()


# =============================================================================
# KITCHEN ENDPOINTS
# =============================================================================

@app.get(
    "/api/kitchen/orders",
    response_model=OrderListResponse,
    tags=["Kitchen"],
    dependencies=[Depends(require_kitchen_session)],
)
async def kitchen_orders(
    week: Optional[str] = Query(None),
    day: Optional[str] = Query(None),
    item: Optional[str] = Query(None),
    slot: Optional[str] = Query(None),
    status: Optional[str] = Query(None, description="Comma-separated statuses"),
    q: Optional[str] = Query(None, description="Search name, phone, building/room"),
    limit: int = Query(100, ge=1, le=500),
    service: OrderService = Depends(get_order_service),
) -> OrderListResponse:
    """Orders of one week (default: current), ordered by slot then time."""
    week = week or service.current_week()

    statuses: list[str] = []
    if _optional_filter(status):
        statuses = [service.validate_status(s.strip()) for s in status.split(",") if s.strip()]

    day = _optional_filter(day)
    item = _optional_filter(item)

    filters = OrderFilters(
        week_key=week,
        day=_parse_day(day) if day else None,
        item=_parse_item(item) if item else None,
        slot=_optional_filter(slot),
        statuses=statuses,
        search=q or None,
        limit=limit,
    )
    orders = await service.list_orders(filters)

    return OrderListResponse(
        week=week,
        count=len(orders),
        orders=[OrderResponse.model_validate(o) for o in orders],
    )


@app.get(
    "/api/kitchen/orders/{order_id}",
    response_model=OrderResponse,
    responses={404: {"model": ErrorResponse}},
    tags=["Kitchen"],
    dependencies=[Depends(require_kitchen_session)],
)
async def kitchen_order(
    order_id: str,
    service: OrderService = Depends(get_order_service),
) -> OrderResponse:
    return OrderResponse.model_validate(await service.get_order(order_id))


# =============================================================================
# MANAGEMENT ENDPOINTS
# =============================================================================

@app.patch(
    "/api/manage/orders/{order_id}/status",
    response_model=SuccessResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    tags=["Management"],
    dependencies=[Depends(require_kitchen_session)],
)
async def update_order_status(
    order_id: str,
    body: StatusUpdate,
    service: OrderService = Depends(get_order_service),
) -> SuccessResponse:
    await service.update_status(order_id, body.status)
    return SuccessResponse()


@app.patch(
    "/api/manage/orders/{order_id}",
    response_model=OrderResponse,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
    tags=["Management"],
    dependencies=[Depends(require_kitchen_session)],
)
async def update_order(
    order_id: str,
    body: OrderUpdate,
    service: OrderService = Depends(get_order_service),
) -> OrderResponse:
    """
    Reschedule, switch item or annotate an order.

    Moving into a full slot returns 409 unless ``overrideCapacity`` is true.
    """
    updated = await service.reschedule(order_id, body)
    return OrderResponse.model_validate(updated)


@app.post(
    "/api/manage/orders/{order_id}/resend-sms",
    response_model=SmsResendResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
    tags=["Management"],
    dependencies=[Depends(require_kitchen_session)],
)
async def resend_sms(
    order_id: str,
    body: Optional[ResendSmsRequest] = None,
    service: OrderService = Depends(get_order_service),
) -> SmsResendResponse:
    status = await service.resend_sms(order_id, body.message if body else None)
    return SmsResendResponse(message="SMS sent successfully", sms=status.value)


@app.delete(
    "/api/manage/orders/{order_id}",
    response_model=SuccessResponse,
    responses={404: {"model": ErrorResponse}},
    tags=["Management"],
    dependencies=[Depends(require_kitchen_session)],
)
async def delete_order(
    order_id: str,
    service: OrderService = Depends(get_order_service),
) -> SuccessResponse:
    await service.delete_order(order_id)
    return SuccessResponse()


@app.post(
    "/api/manage/reset-weekend",
    response_model=ResetResponse,
    response_model_by_alias=True,
    tags=["Management"],
    dependencies=[Depends(require_kitchen_session)],
)
async def reset_weekend(service: OrderService = Depends(get_order_service)) -> ResetResponse:
    """Delete every order of the current week."""
    week, deleted = await service.reset_week()
    return ResetResponse(
        message=f"Reset complete. Deleted {deleted} orders for week {week}",
        week=week,
        deleted_count=deleted,
    )


@app.get(
    "/api/manage/slots",
    response_model=SlotUsageResponse,
    response_model_by_alias=True,
    tags=["Management"],
    dependencies=[Depends(require_kitchen_session)],
)
async def slot_usage(
    day: Optional[str] = Query(None),
    week: Optional[str] = Query(None),
    item: Optional[str] = Query(None),
    service: OrderService = Depends(get_order_service),
) -> SlotUsageResponse:
    """Used seats per slot; the cap covers bagels and sandwiches together."""
    if not day:
        raise ValidationFailedError("Missing required parameters: day", error="MISSING_PARAMETERS")
    day = _parse_day(day)

    week, slots = await service.slot_usage(day, week)

    return SlotUsageResponse(
        week=week,
        day=day,
        item=_optional_filter(item),
        slots=[SlotUsage(**s) for s in slots],
    )


# =============================================================================
# ERROR HANDLERS
# =============================================================================

def _error_response(status_code: int, error: ErrorResponse) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=error.model_dump(exclude_none=True))


@app.exception_handler(PreorderError)
async def preorder_exception_handler(request: Request, exc: PreorderError) -> JSONResponse:
    """Domain errors carry their own status and code."""
    if exc.status_code >= 500:
        logger.error(f"{exc.error} on {request.method} {request.url.path}: {exc.message}")

    return _error_response(
        exc.status_code,
        ErrorResponse(
            error=exc.error,
            message=exc.message,
            missing=getattr(exc, "missing", None),
        ),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Body/query validation: 400, listing missing fields when that is the cause."""
    errors: list[dict[str, Any]] = exc.errors()

    missing = [
        str(err["loc"][-1])
        for err in errors
        if err.get("type") == "missing" and len(err.get("loc", ())) > 1
    ]
    if missing:
        return _error_response(
            400,
            ErrorResponse(error="MISSING_FIELDS", message="Missing required fields", missing=missing),
        )

    first = errors[0] if errors else {}
    field = ".".join(str(p) for p in first.get("loc", ())[1:])
    message = f"{field}: {first.get('msg')}" if field else "Invalid request"
    return _error_response(400, ErrorResponse(error="VALIDATION_ERROR", message=message))


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all exception handler."""
    logger.exception(f"Unhandled exception: {exc}")

    return _error_response(
        500,
        ErrorResponse(
            error="INTERNAL_ERROR",
            message=str(exc) if get_settings().debug else "An unexpected error occurred",
        ),
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "preorder.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.is_development,
    )
