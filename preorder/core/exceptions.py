"""
Error Taxonomy

Every failure the API reports maps to one of these exceptions. Each carries
the HTTP status, a stable error code and a human-readable message; the
FastAPI exception handlers in ``preorder.main`` render them as ErrorResponse.
"""

from typing import Optional


class PreorderError(Exception):
    """Base class for all domain errors."""

    status_code: int = 500
    error: str = "INTERNAL_ERROR"

    def __init__(self, message: Optional[str] = None, error: Optional[str] = None):
        self.message = message or self.__class__.__doc__ or self.error
        if error:
            self.error = error
        super().__init__(self.message)


class ValidationFailedError(PreorderError):
    """Invalid or missing request data."""

    status_code = 400
    error = "VALIDATION_ERROR"

    def __init__(
        self,
        message: Optional[str] = None,
        error: Optional[str] = None,
        missing: Optional[list[str]] = None,
    ):
        super().__init__(message, error)
        self.missing = missing


class AuthenticationError(PreorderError):
    """Authentication required."""

    status_code = 401
    error = "UNAUTHORIZED"


class OrderNotFoundError(PreorderError):
    """Order not found."""

    status_code = 404
    error = "ORDER_NOT_FOUND"

    def __init__(self, order_id: str):
        super().__init__(f"Order #{order_id} not found")
        self.order_id = order_id


class SlotSoldOutError(PreorderError):
    """That slot just sold out, please pick another time."""

    status_code = 409
    error = "SLOT_SOLD_OUT"

    def __init__(
        self,
        day: str,
        slot: str,
        week_key: str,
        used: int,
        capacity: int,
        message: Optional[str] = None,
    ):
        super().__init__(message)
        self.day = day
        self.slot = slot
        self.week_key = week_key
        self.used = used
        self.capacity = capacity


class NotificationError(PreorderError):
    """Failed to send SMS."""

    status_code = 502
    error = "SMS_FAILED"


class SmsNotConfiguredError(NotificationError):
    """SMS not configured."""

    status_code = 400
    error = "SMS_NOT_CONFIGURED"


class StoreError(PreorderError):
    """Database error."""

    status_code = 500
    error = "DATABASE_ERROR"


class StoreTimeoutError(StoreError):
    """The order store did not answer in time, please retry."""

    status_code = 503
    error = "STORE_TIMEOUT"
