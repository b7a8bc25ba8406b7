"""
Week Key Resolver

Orders are grouped into Monday-anchored reservation weeks. The key is the
ISO date of that Monday in the shop's time zone, e.g. ``2024-06-03``.
"""

from datetime import date, datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from preorder.core.config import get_settings


def week_key(instant: Optional[datetime] = None, tz: Optional[str] = None) -> str:
    """
    Return the week key for an instant.

    Args:
        instant: Moment to resolve (defaults to now). Naive datetimes are
            treated as UTC.
        tz: IANA zone name (defaults to the configured shop time zone)

    Returns:
        ISO date of the Monday starting the instant's week
    """
    zone = ZoneInfo(tz or get_settings().shop_timezone)

    if instant is None:
        instant = datetime.now(timezone.utc)
    elif instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)

    local_day = instant.astimezone(zone).date()
    return monday_of(local_day).isoformat()


def monday_of(day: date) -> date:
    # weekday(): Monday == 0 ... Sunday == 6, so Sunday steps back six days
    return day - timedelta(days=day.weekday())
