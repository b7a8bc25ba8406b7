"""
Notification Service Factory

Returns Mock or Real notification service based on ENV_MODE, plus the
best-effort dispatcher used by the order flow.
"""

import asyncio
import logging
from enum import Enum
from functools import lru_cache

from preorder.core.config import get_settings
from preorder.services.notifications.base import (
    BaseNotificationService,
    NotificationResult,
)
from preorder.services.notifications.mock import MockNotificationService

logger = logging.getLogger(__name__)


class SmsStatus(str, Enum):
    """SMS outcome reported back to the client."""
    SENT = "sent"
    FAILED = "failed"
    NOT_CONFIGURED = "not_configured"


@lru_cache()
def get_notification_service() -> BaseNotificationService:
    """Get the configured notification service."""
    settings = get_settings()

    if settings.is_development:
        logger.info("Notification Service: Using MockNotificationService (development mode)")
        return MockNotificationService(failure_rate=settings.mock_sms_failure_rate)

    from preorder.services.notifications.real import RealNotificationService

    logger.info(f"Notification Service: Using RealNotificationService ({settings.env_mode.value} mode)")
    return RealNotificationService(
        account_sid=settings.twilio_account_sid,
        auth_token=settings.twilio_auth_token,
        from_number=settings.twilio_phone_number,
    )


def reset_notification_service() -> None:
    """Clear the cached service instance."""
    get_notification_service.cache_clear()


async def dispatch_sms(
    service: BaseNotificationService,
    to_phone: str,
    message: str,
    timeout: float,
) -> SmsStatus:
    """
    Send one SMS without ever raising.

    The order has already been stored when this runs; whatever happens here
    only changes the reported status.
    """
    if not service.is_configured:
        logger.info("SMS not configured - skipping SMS")
        return SmsStatus.NOT_CONFIGURED

    try:
        result = await asyncio.wait_for(service.send_sms(to_phone, message), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning(f"SMS to {to_phone} timed out after {timeout}s")
        return SmsStatus.FAILED
    except Exception as e:
        logger.exception(f"SMS error: {e}")
        return SmsStatus.FAILED

    if not result.success:
        logger.warning(f"SMS to {to_phone} failed: {result.error_message}")
        return SmsStatus.FAILED

    return SmsStatus.SENT


__all__ = [
    "get_notification_service",
    "reset_notification_service",
    "dispatch_sms",
    "SmsStatus",
    "BaseNotificationService",
    "NotificationResult",
]
