"""
SQLAlchemy Database Models

Tables:
    - orders: one row per weekend pre-order
    - time_slots: static (day, slot) reference data, also used as the
      per-bucket lock row when admitting orders

Version: 1.0.0
"""

import enum
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, DateTime, Text, Enum, Boolean, Index, UniqueConstraint

from preorder.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrderStatus(str, enum.Enum):
    """Kitchen workflow. Any value may follow any other; staff drive it."""
    QUEUED = "queued"
    WORKING = "working"
    READY = "ready"
    HANDED_OFF = "handed_off"
    CANCELED = "canceled"
    NO_SHOW = "no_show"


class Day(str, enum.Enum):
    """Pickup days."""
    SATURDAY = "Saturday"
    SUNDAY = "Sunday"


class Item(str, enum.Enum):
    """Menu items."""
    BAGEL = "bagel"
    SANDWICH = "sandwich"


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class Order(Base):
    """
    Main Order table - stores all weekend pre-orders.

    Capacity is counted over (day, slot, week_key); the composite index
    serves that count.
    """
    __tablename__ = "orders"
    __table_args__ = (
        Index("ix_orders_bucket", "week_key", "day", "slot"),
    )

    # Primary Key
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    # =========================================================================
    # PICKUP
    # =========================================================================
    day = Column(
        Enum(Day, native_enum=False, values_callable=_enum_values, length=16),
        nullable=False,
    )
    slot = Column(String(32), nullable=False)
    week_key = Column(String(10), nullable=False, index=True)

    # =========================================================================
    # ORDER DETAILS
    # =========================================================================
    item = Column(
        Enum(Item, native_enum=False, values_callable=_enum_values, length=16),
        nullable=False,
    )
    options = Column(Text, nullable=False, default="{}")  # JSON string of chosen options
    notes = Column(Text, nullable=True)
    payment_ready = Column(Boolean, nullable=False)
    total_cents = Column(Integer, nullable=False)

    # =========================================================================
    # CUSTOMER INFORMATION
    # =========================================================================
    name = Column(String(100), nullable=False)
    building_room = Column(String(100), nullable=False)
    phone = Column(String(32), nullable=False, index=True)

    # =========================================================================
    # KITCHEN
    # =========================================================================
    status = Column(
        Enum(OrderStatus, native_enum=False, values_callable=_enum_values, length=16),
        default=OrderStatus.QUEUED,
        nullable=False,
        index=True,
    )
    kitchen_notes = Column(Text, nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=utcnow)

    def __repr__(self):
        return f"<Order #{self.id} - {self.day.value} {self.slot} - {self.item.value} - {self.status.value}>"


class TimeSlot(Base):
    """Configured pickup windows per day."""
    __tablename__ = "time_slots"
    __table_args__ = (
        UniqueConstraint("day", "slot", name="uq_time_slots_day_slot"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    day = Column(String(16), nullable=False)
    slot = Column(String(32), nullable=False)

    def __repr__(self):
        return f"<TimeSlot {self.day} {self.slot}>"
