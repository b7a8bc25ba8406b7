"""
Pydantic Schemas for Request/Response Validation

Wire names follow the storefront and kitchen board clients: camelCase keys
(orderId, soldOut, overrideCapacity, ...) are produced through aliases while
the Python side stays snake_case.

Version: 1.0.0
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_core import PydanticCustomError

from preorder.models import Day, Item


def _required_text(value: Any) -> Any:
    """Null and blank strings count as missing, like absent keys."""
    if value is None:
        raise PydanticCustomError("missing", "Field required")
    if isinstance(value, str):
        value = value.strip()
        if not value:
            raise PydanticCustomError("missing", "Field required")
    return value


# =============================================================================
# REQUEST SCHEMAS
# =============================================================================

class OrderCreate(BaseModel):
    """Request schema for submitting a new pre-order."""

    name: str = Field(..., max_length=100, examples=["Jane Doe"])
    building_room: str = Field(..., max_length=100, examples=["Lafayette 214"])
    day: Day = Field(..., examples=["Saturday"])
    slot: str = Field(..., max_length=32, examples=["10:00-10:30"])
    item: Item = Field(..., examples=["bagel"])
    options: dict[str, Any] = Field(
        default_factory=dict,
        examples=[{"spread": "Cream Cheese", "hashbrown": True}],
    )
    notes: Optional[str] = Field(None, max_length=500)
    phone: str = Field(..., max_length=30, examples=["555-123-4567"])
    payment_ready: bool = Field(..., examples=[True])

    @field_validator("name", "building_room", "slot", "phone", mode="before")
    @classmethod
    def validate_required_text(cls, v: Any) -> Any:
        return _required_text(v)

    @field_validator("options", mode="before")
    @classmethod
    def validate_options(cls, v: Any) -> Any:
        return {} if v is None else v

    @field_validator("payment_ready")
    @classmethod
    def validate_payment_ready(cls, v: bool) -> bool:
        # customers confirm they are ready to pay at pickup
        if not v:
            raise PydanticCustomError("missing", "Field required")
        return v


class OrderUpdate(BaseModel):
    """Kitchen edit: move an order, switch item, annotate."""

    model_config = ConfigDict(populate_by_name=True)

    day: Optional[Day] = None
    slot: Optional[str] = Field(None, max_length=32)
    item: Optional[Item] = None
    kitchen_notes: Optional[str] = Field(None, max_length=1000)
    override_capacity: bool = Field(False, alias="overrideCapacity")


class StatusUpdate(BaseModel):
    status: str


class LoginRequest(BaseModel):
    password: Optional[str] = None


class ResendSmsRequest(BaseModel):
    message: Optional[str] = Field(None, max_length=320)


# =============================================================================
# RESPONSE SCHEMAS
# =============================================================================

class OrderSummary(BaseModel):
    day: str
    slot: str
    item: str
    total_cents: int


class OrderCreateResponse(BaseModel):
    """Response after successfully creating an order."""

    model_config = ConfigDict(populate_by_name=True)

    order_id: str = Field(..., alias="orderId")
    status: str = "received"
    sms: str
    summary: OrderSummary


class OrderResponse(BaseModel):
    """Response schema for a single order."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    created_at: datetime
    day: str
    slot: str
    item: str
    options: dict[str, Any]
    name: str
    building_room: str
    phone: str
    notes: Optional[str]
    payment_ready: bool
    total_cents: int
    week_key: str
    status: str
    kitchen_notes: Optional[str]
    updated_at: Optional[datetime]


class OrderListResponse(BaseModel):
    """Response for the kitchen order list."""
    week: Optional[str]
    count: int
    orders: list[OrderResponse]


class SlotAvailability(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    label: str
    value: str
    sold_out: bool = Field(..., alias="soldOut")


class SlotAvailabilityResponse(BaseModel):
    day: str
    item: str
    week: str
    slots: list[SlotAvailability]


class SlotUsage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    slot: str
    used: int
    cap: int
    sold_out: bool = Field(..., alias="soldOut")


class SlotUsageResponse(BaseModel):
    week: str
    day: str
    item: Optional[str]
    slots: list[SlotUsage]


class SuccessResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None


class SmsResendResponse(BaseModel):
    success: bool = True
    message: str
    sms: str


class ResetResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    message: str
    week: str
    deleted_count: int = Field(..., alias="deletedCount")


class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    error: str
    message: Optional[str] = None
    missing: Optional[list[str]] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    store: str
    store_backend: str
    sms_provider: str
    timestamp: datetime
