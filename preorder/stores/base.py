"""
Order Store Abstract Base Class

Defines the persistence contract every backend implements. The contract is
identical across backends; only the mechanism that keeps slot admission
atomic differs (row lock, database lock or conditional write).

Version: 1.0.0
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional


@dataclass
class NewOrder:
    """Fully validated order, ready to be persisted."""
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
    status: str = "queued"


@dataclass
class OrderRecord:
    """An order as read back from any store."""
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
    kitchen_notes: Optional[str] = None
    updated_at: Optional[datetime] = None

    @property
    def bucket(self) -> tuple[str, str, str]:
        return (self.day, self.slot, self.week_key)


@dataclass
class OrderFilters:
    """Kitchen list query. Unset fields do not filter."""
    week_key: Optional[str] = None
    day: Optional[str] = None
    item: Optional[str] = None
    slot: Optional[str] = None
    statuses: list[str] = field(default_factory=list)
    search: Optional[str] = None
    limit: int = 100

    def matches(self, order: OrderRecord) -> bool:
        """In-memory evaluation, for stores that cannot filter server-side."""
        if self.week_key and order.week_key != self.week_key:
            return False
        if self.day and order.day != self.day:
            return False
        if self.item and order.item != self.item:
            return False
        if self.slot and order.slot != self.slot:
            return False
        if self.statuses and order.status not in self.statuses:
            return False
        if self.search:
            needle = self.search.lower()
            haystacks = (order.name, order.phone, order.building_room)
            if not any(needle in (h or "").lower() for h in haystacks):
                return False
        return True


def sort_key(order: OrderRecord) -> tuple:
    """Kitchen ordering: slot, then creation time."""
    return (order.slot, order.created_at)


class BaseOrderStore(ABC):
    """Abstract base class for order stores."""

    @property
    @abstractmethod
    def backend_name(self) -> str:
        """Return the backend name."""
        pass

    @abstractmethod
    async def init(self) -> None:
        """Create tables / seed reference data."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release connections."""
        pass

    @abstractmethod
    async def create(self, order: NewOrder, capacity: Optional[int]) -> OrderRecord:
        """
        Persist a new order.

        When ``capacity`` is given, counting the order's bucket and inserting
        happen as one atomic unit: no concurrent writer can slip in between.

        Raises:
            SlotSoldOutError: The bucket already holds ``capacity`` orders
        """
        pass

    @abstractmethod
    async def get(self, order_id: str) -> Optional[OrderRecord]:
        pass

    @abstractmethod
    async def query(self, filters: OrderFilters) -> list[OrderRecord]:
        """Filtered, ordered list (slot, then creation time)."""
        pass

    @abstractmethod
    async def update_fields(
        self,
        order_id: str,
        changes: dict[str, Any],
        capacity: Optional[int],
    ) -> Optional[OrderRecord]:
        """
        Apply field changes (day, slot, item, total_cents, kitchen_notes).

        If the changes move the order into another bucket and ``capacity`` is
        given, the target bucket is gated atomically with the write, without
        counting the order itself.

        Returns:
            Updated record, or None if the id does not exist

        Raises:
            SlotSoldOutError: The target bucket is full
        """
        pass

    @abstractmethod
    async def update_status(self, order_id: str, status: str) -> bool:
        """Set the status. Returns False if the id does not exist."""
        pass

    @abstractmethod
    async def delete(self, order_id: str) -> bool:
        """Delete one order. Returns False if the id does not exist."""
        pass

    @abstractmethod
    async def delete_by_week(self, week_key: str) -> int:
        """Delete every order of a week. Returns the number deleted."""
        pass

    @abstractmethod
    async def count_by_bucket(
        self,
        day: str,
        slot: str,
        week_key: str,
        exclude_order_id: Optional[str] = None,
    ) -> int:
        """Count orders holding capacity in a bucket (non-locking read)."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Check store connectivity."""
        pass
