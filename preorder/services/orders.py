"""
Order Lifecycle Service

Everything the HTTP layer can do to an order goes through OrderService:
submission, kitchen edits, status changes, deletion, the weekly reset and
the capacity reports. Capacity-affecting writes are delegated to the
CapacityGate so they stay atomic in the store.
"""

import logging
from datetime import datetime
from typing import Any, Optional

from preorder.core.config import Settings, get_settings
from preorder.core.exceptions import (
    NotificationError,
    OrderNotFoundError,
    SmsNotConfiguredError,
    ValidationFailedError,
)
from preorder.models import Item, OrderStatus
from preorder.schemas import OrderCreate, OrderUpdate
from preorder.services.capacity import CapacityGate
from preorder.services.notifications import BaseNotificationService, SmsStatus, dispatch_sms
from preorder.services.phone import normalize_phone
from preorder.services.pricing import calculate_total_cents
from preorder.services.week import week_key
from preorder.stores.base import BaseOrderStore, NewOrder, OrderFilters, OrderRecord

logger = logging.getLogger(__name__)

ITEM_LABELS = {
    Item.BAGEL.value: "Bagel",
    Item.SANDWICH.value: "Breakfast Sandwich",
}


class OrderService:
    """Order lifecycle operations over one order store."""

    def __init__(
        self,
        store: BaseOrderStore,
        notifications: BaseNotificationService,
        settings: Optional[Settings] = None,
    ):
        self.store = store
        self.notifications = notifications
        self.settings = settings or get_settings()
        self.gate = CapacityGate(store, self.settings.slot_capacity)

    # =========================================================================
    # HELPERS
    # =========================================================================

    def current_week(self, now: Optional[datetime] = None) -> str:
        return week_key(now, self.settings.shop_timezone)

    def validate_slot(self, day: str, slot: str) -> None:
        """Reject slots outside the day's configured list."""
        if slot not in self.settings.slots_for_day(day):
            raise ValidationFailedError(
                f"{slot} is not a pickup slot on {day}",
                error="INVALID_SLOT",
            )

    @staticmethod
    def validate_status(status: str) -> str:
        try:
            return OrderStatus(status).value
        except ValueError:
            valid = [s.value for s in OrderStatus]
            raise ValidationFailedError(
                f"Invalid status. Options: {valid}",
                error="INVALID_STATUS",
            )

    async def _require(self, order_id: str) -> OrderRecord:
        order = await self.store.get(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    # =========================================================================
    # CUSTOMER FLOW
    # =========================================================================

    async def create_order(self, payload: OrderCreate, now: Optional[datetime] = None) -> tuple[OrderRecord, SmsStatus]:
        """
        Submit a new pre-order.

        The order is admitted and stored atomically; the confirmation SMS is
        sent afterwards and cannot undo the order.

        Returns:
            The stored order and the SMS outcome

        Raises:
            ValidationFailedError: Slot not offered on that day
            SlotSoldOutError: Bucket is full, nothing was stored
        """
        day = payload.day.value
        item = payload.item.value
        self.validate_slot(day, payload.slot)

        new_order = NewOrder(
            day=day,
            slot=payload.slot,
            item=item,
            options=payload.options,
            name=payload.name,
            building_room=payload.building_room,
            phone=normalize_phone(payload.phone),
            notes=payload.notes,
            payment_ready=payload.payment_ready,
            total_cents=calculate_total_cents(item, payload.options),
            week_key=self.current_week(now),
        )

        order = await self.gate.admit(new_order)
        logger.info(f"Order #{order.id} created for {order.name}: {order.item} {order.day} {order.slot}")

        message = (
            f"Thanks! We received your order for {order.item} on {order.day} {order.slot}. "
            f"Reply STOP to opt out."
        )
        sms = await dispatch_sms(
            self.notifications,
            order.phone,
            message,
            timeout=self.settings.sms_timeout_seconds,
        )
        return order, sms

    async def slot_availability(self, day: str, now: Optional[datetime] = None) -> tuple[str, list[dict[str, Any]]]:
        """Public slot picker: which slots of the current week are sold out."""
        week = self.current_week(now)
        slots = []
        for slot in self.settings.slots_for_day(day):
            admission = await self.gate.try_admit(day, slot, week)
            slots.append({
                "label": slot.replace("-", "–"),
                "value": slot,
                "sold_out": not admission.admitted,
            })
        return week, slots

    # =========================================================================
    # KITCHEN FLOW
    # =========================================================================

    async def list_orders(self, filters: OrderFilters) -> list[OrderRecord]:
        return await self.store.query(filters)

    async def get_order(self, order_id: str) -> OrderRecord:
        return await self._require(order_id)

    async def update_status(self, order_id: str, status: str) -> None:
        status = self.validate_status(status)
        if not await self.store.update_status(order_id, status):
            raise OrderNotFoundError(order_id)
        logger.info(f"Order #{order_id} status -> {status}")

    async def reschedule(self, order_id: str, payload: OrderUpdate) -> OrderRecord:
        """
        Move an order to another day/slot, switch its item or annotate it.

        Moving into another bucket runs the capacity gate (the order does not
        count against itself) unless ``override_capacity`` is set.
        """
        current = await self._require(order_id)

        changes: dict[str, Any] = {}
        if payload.day is not None:
            changes["day"] = payload.day.value
        if payload.slot:
            changes["slot"] = payload.slot
        if payload.item is not None:
            changes["item"] = payload.item.value
        if "kitchen_notes" in payload.model_fields_set:
            changes["kitchen_notes"] = payload.kitchen_notes

        if not changes:
            raise ValidationFailedError("No fields to update", error="NO_CHANGES")

        if "day" in changes or "slot" in changes:
            self.validate_slot(changes.get("day", current.day), changes.get("slot", current.slot))

        if "item" in changes and changes["item"] != current.item:
            changes["total_cents"] = calculate_total_cents(changes["item"], current.options)

        updated = await self.gate.move(order_id, changes, override=payload.override_capacity)
        if updated is None:
            raise OrderNotFoundError(order_id)

        logger.info(f"Order #{order_id} updated: {sorted(changes)}")
        return updated

    async def delete_order(self, order_id: str) -> None:
        if not await self.store.delete(order_id):
            raise OrderNotFoundError(order_id)
        logger.info(f"Order #{order_id} deleted")

    async def reset_week(self, now: Optional[datetime] = None) -> tuple[str, int]:
        """Delete every order of the current week. Irreversible."""
        week = self.current_week(now)
        deleted = await self.store.delete_by_week(week)
        logger.warning(f"Weekend reset: deleted {deleted} orders for week {week}")
        return week, deleted

    async def slot_usage(self, day: str, week: Optional[str] = None) -> tuple[str, list[dict[str, Any]]]:
        """Capacity report: used seats per slot for one day and week."""
        week = week or self.current_week()
        cap = self.settings.slot_capacity
        slots = []
        for slot in self.settings.slots_for_day(day):
            used = await self.store.count_by_bucket(day, slot, week)
            slots.append({"slot": slot, "used": used, "cap": cap, "sold_out": used >= cap})
        return week, slots

    async def resend_sms(self, order_id: str, message: Optional[str] = None) -> SmsStatus:
        """
        Text the customer again (usually "ready for pickup").

        Unlike the confirmation SMS, failures here are the whole point of the
        request, so they are raised.
        """
        order = await self._require(order_id)

        if not self.notifications.is_configured:
            raise SmsNotConfiguredError("SMS not configured")

        label = ITEM_LABELS.get(order.item, order.item)
        body = message or f"Your {label} is ready for pickup!"
        status = await dispatch_sms(
            self.notifications,
            order.phone,
            body,
            timeout=self.settings.sms_timeout_seconds,
        )
        if status != SmsStatus.SENT:
            raise NotificationError("Failed to send SMS")
        return status
