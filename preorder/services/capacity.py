"""
Slot Capacity Gate

Each (day, slot, week_key) bucket admits at most ``capacity`` orders.

Policy:
    - Every stored order holds its seat regardless of status. Canceled and
      no-show orders keep counting; staff free a seat by deleting the order.
      Status changes therefore never touch capacity.
    - The cap covers the bucket total, bagels and sandwiches together.

The decision itself (``check_admission``) is pure. It is called by the order
stores *inside* their write transaction, which is what makes admission
atomic; ``CapacityGate.try_admit`` is the advisory, read-only variant used
for availability listings.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from preorder.core.exceptions import SlotSoldOutError
from preorder.stores.base import BaseOrderStore, NewOrder, OrderRecord

logger = logging.getLogger(__name__)

SLOT_SOLD_OUT = "SLOT_SOLD_OUT"


@dataclass
class Admission:
    """Outcome of a capacity check."""
    admitted: bool
    used: int
    capacity: int
    reason: Optional[str] = None

    @property
    def remaining(self) -> int:
        return max(0, self.capacity - self.used)


def evaluate(used: int, capacity: int) -> Admission:
    if used >= capacity:
        return Admission(admitted=False, used=used, capacity=capacity, reason=SLOT_SOLD_OUT)
    return Admission(admitted=True, used=used, capacity=capacity)


def check_admission(day: str, slot: str, week_key: str, used: int, capacity: int) -> None:
    """
    Raise if one more order would exceed the bucket's capacity.

    Raises:
        SlotSoldOutError: ``used`` already reached ``capacity``
    """
    if not evaluate(used, capacity).admitted:
        logger.info(f"Slot sold out: {day} {slot} (week {week_key}) {used}/{capacity}")
        raise SlotSoldOutError(day, slot, week_key, used=used, capacity=capacity)


class CapacityGate:
    """Applies the capacity rule on top of an order store."""

    def __init__(self, store: BaseOrderStore, capacity: int):
        self.store = store
        self.capacity = capacity

    async def try_admit(
        self,
        day: str,
        slot: str,
        week_key: str,
        exclude_order_id: Optional[str] = None,
    ) -> Admission:
        """Check a bucket without reserving anything."""
        used = await self.store.count_by_bucket(day, slot, week_key, exclude_order_id)
        return evaluate(used, self.capacity)

    async def admit(self, order: NewOrder) -> OrderRecord:
        """Insert a new order if its bucket has room (atomic)."""
        return await self.store.create(order, capacity=self.capacity)

    async def move(
        self,
        order_id: str,
        changes: dict,
        override: bool = False,
    ) -> Optional[OrderRecord]:
        """
        Apply changes that may move an order to another bucket.

        With ``override`` the gate is bypassed entirely (staff escape hatch).
        """
        if override:
            logger.info(f"Capacity override requested for order #{order_id}")
        return await self.store.update_fields(
            order_id,
            changes,
            capacity=None if override else self.capacity,
        )
