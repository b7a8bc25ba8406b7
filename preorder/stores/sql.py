"""
SQL Order Stores

One SQLAlchemy (asyncio) implementation serves both SQL backends:
    - SqliteOrderStore: embedded file database via aiosqlite
    - PostgresOrderStore: networked PostgreSQL via psycopg

Admission is made atomic by taking a lock before the capacity count and
holding it until the insert commits:
    - PostgreSQL: SELECT ... FOR UPDATE on the bucket's time_slots row
    - SQLite: every transaction starts with BEGIN IMMEDIATE (database write
      lock); the FOR UPDATE clause is not rendered for SQLite

Version: 1.0.0
"""

import json
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

from sqlalchemy import select, func, update, delete
from sqlalchemy.exc import SQLAlchemyError, TimeoutError as PoolTimeoutError, OperationalError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from preorder.core.exceptions import StoreError, StoreTimeoutError
from preorder.database import (
    create_postgres_engine,
    create_session_maker,
    create_sqlite_engine,
    init_db,
)
from preorder.models import Order, OrderStatus, TimeSlot, Day, Item, utcnow
from preorder.services.capacity import check_admission
from preorder.stores.base import BaseOrderStore, NewOrder, OrderFilters, OrderRecord

logger = logging.getLogger(__name__)

_TIMEOUT_MARKERS = ("database is locked", "lock timeout", "statement timeout", "timeout expired")

# fields staff may change through update_fields
_UPDATABLE = {"day", "slot", "item", "total_cents", "kitchen_notes"}


def _parse_id(order_id: str) -> Optional[int]:
    try:
        return int(order_id)
    except (TypeError, ValueError):
        return None


def _to_record(row: Order) -> OrderRecord:
    return OrderRecord(
        id=str(row.id),
        created_at=row.created_at,
        day=row.day.value,
        slot=row.slot,
        item=row.item.value,
        options=json.loads(row.options or "{}"),
        name=row.name,
        building_room=row.building_room,
        phone=row.phone,
        notes=row.notes,
        payment_ready=bool(row.payment_ready),
        total_cents=row.total_cents,
        week_key=row.week_key,
        status=row.status.value,
        kitchen_notes=row.kitchen_notes,
        updated_at=row.updated_at,
    )


class SqlOrderStore(BaseOrderStore):
    """Order store on top of an SQLAlchemy async engine."""

    def __init__(self, engine: AsyncEngine, time_slots: dict[str, list[str]]):
        self.engine = engine
        self.time_slots = time_slots
        self.session_maker = create_session_maker(engine)

    @property
    def backend_name(self) -> str:
        return self.engine.dialect.name

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def init(self) -> None:
        try:
            await init_db(self.engine)
        except SQLAlchemyError as e:
            logger.exception(f"Could not create tables: {e}")
            raise StoreError() from e
        await self._seed_time_slots()
        logger.info(f"✅ {self.backend_name} order store ready")

    async def close(self) -> None:
        await self.engine.dispose()

    async def _seed_time_slots(self) -> None:
        async with self._session() as session:
            async with session.begin():
                result = await session.execute(select(TimeSlot.day, TimeSlot.slot))
                existing = {(row.day, row.slot) for row in result}
                for day, slots in self.time_slots.items():
                    for slot in slots:
                        if (day, slot) not in existing:
                            session.add(TimeSlot(day=day, slot=slot))

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        """Session with backend errors translated into StoreError."""
        try:
            async with self.session_maker() as session:
                yield session
        except PoolTimeoutError as e:
            logger.error(f"Connection pool timeout: {e}")
            raise StoreTimeoutError() from e
        except OperationalError as e:
            if any(marker in str(e).lower() for marker in _TIMEOUT_MARKERS):
                logger.error(f"Store timeout: {e}")
                raise StoreTimeoutError() from e
            logger.exception(f"Database error: {e}")
            raise StoreError() from e
        except SQLAlchemyError as e:
            logger.exception(f"Database error: {e}")
            raise StoreError() from e

    # =========================================================================
    # CAPACITY
    # =========================================================================

    async def _lock_bucket(self, session: AsyncSession, day: str, slot: str) -> None:
        """Serialize writers of one (day, slot) until the transaction ends."""
        await session.execute(
            select(TimeSlot.id)
            .where(TimeSlot.day == day, TimeSlot.slot == slot)
            .with_for_update()
        )

    async def _count(
        self,
        session: AsyncSession,
        day: str,
        slot: str,
        week_key: str,
        exclude_id: Optional[int] = None,
    ) -> int:
        query = select(func.count(Order.id)).where(
            Order.day == Day(day),
            Order.slot == slot,
            Order.week_key == week_key,
        )
        if exclude_id is not None:
            query = query.where(Order.id != exclude_id)
        result = await session.execute(query)
        return result.scalar() or 0

    async def count_by_bucket(
        self,
        day: str,
        slot: str,
        week_key: str,
        exclude_order_id: Optional[str] = None,
    ) -> int:
        exclude_id = _parse_id(exclude_order_id) if exclude_order_id else None
        async with self._session() as session:
            async with session.begin():
                return await self._count(session, day, slot, week_key, exclude_id)

    # =========================================================================
    # WRITES
    # =========================================================================

    async def create(self, order: NewOrder, capacity: Optional[int]) -> OrderRecord:
        async with self._session() as session:
            async with session.begin():
                if capacity is not None:
                    await self._lock_bucket(session, order.day, order.slot)
                    used = await self._count(session, order.day, order.slot, order.week_key)
                    check_admission(order.day, order.slot, order.week_key, used, capacity)

                row = Order(
                    day=Day(order.day),
                    slot=order.slot,
                    item=Item(order.item),
                    options=json.dumps(order.options),
                    name=order.name,
                    building_room=order.building_room,
                    phone=order.phone,
                    notes=order.notes,
                    payment_ready=order.payment_ready,
                    total_cents=order.total_cents,
                    week_key=order.week_key,
                    status=OrderStatus(order.status),
                )
                session.add(row)
                await session.flush()
                record = _to_record(row)

        logger.info(f"Order #{record.id} stored ({record.day} {record.slot}, week {record.week_key})")
        return record

    async def update_fields(
        self,
        order_id: str,
        changes: dict[str, Any],
        capacity: Optional[int],
    ) -> Optional[OrderRecord]:
        pk = _parse_id(order_id)
        if pk is None:
            return None

        unknown = set(changes) - _UPDATABLE
        if unknown:
            raise ValueError(f"Fields cannot be updated: {sorted(unknown)}")

        async with self._session() as session:
            async with session.begin():
                row = await session.get(Order, pk, with_for_update=True)
                if row is None:
                    return None

                target_day = changes.get("day", row.day.value)
                target_slot = changes.get("slot", row.slot)
                moved = (target_day, target_slot) != (row.day.value, row.slot)

                if moved and capacity is not None:
                    await self._lock_bucket(session, target_day, target_slot)
                    used = await self._count(session, target_day, target_slot, row.week_key, exclude_id=row.id)
                    check_admission(target_day, target_slot, row.week_key, used, capacity)

                for key, value in changes.items():
                    if key == "day":
                        value = Day(value)
                    elif key == "item":
                        value = Item(value)
                    setattr(row, key, value)

                await session.flush()
                await session.refresh(row)
                return _to_record(row)

    async def update_status(self, order_id: str, status: str) -> bool:
        pk = _parse_id(order_id)
        if pk is None:
            return False

        async with self._session() as session:
            async with session.begin():
                result = await session.execute(
                    update(Order)
                    .where(Order.id == pk)
                    .values(status=OrderStatus(status), updated_at=utcnow())
                )
                return result.rowcount > 0

    async def delete(self, order_id: str) -> bool:
        pk = _parse_id(order_id)
        if pk is None:
            return False

        async with self._session() as session:
            async with session.begin():
                result = await session.execute(delete(Order).where(Order.id == pk))
                return result.rowcount > 0

    async def delete_by_week(self, week_key: str) -> int:
        async with self._session() as session:
            async with session.begin():
                result = await session.execute(delete(Order).where(Order.week_key == week_key))
                return result.rowcount or 0

    # =========================================================================
    # READS
    # =========================================================================

    async def get(self, order_id: str) -> Optional[OrderRecord]:
        pk = _parse_id(order_id)
        if pk is None:
            return None

        async with self._session() as session:
            async with session.begin():
                row = await session.get(Order, pk)
                return _to_record(row) if row else None

    async def query(self, filters: OrderFilters) -> list[OrderRecord]:
        query = select(Order)

        if filters.week_key:
            query = query.where(Order.week_key == filters.week_key)
        if filters.day:
            query = query.where(Order.day == Day(filters.day))
        if filters.item:
            query = query.where(Order.item == Item(filters.item))
        if filters.slot:
            query = query.where(Order.slot == filters.slot)
        if filters.statuses:
            query = query.where(Order.status.in_([OrderStatus(s) for s in filters.statuses]))
        if filters.search:
            query = query.where(
                Order.name.icontains(filters.search, autoescape=True)
                | Order.phone.icontains(filters.search, autoescape=True)
                | Order.building_room.icontains(filters.search, autoescape=True)
            )

        query = query.order_by(Order.slot, Order.created_at, Order.id).limit(filters.limit)

        async with self._session() as session:
            async with session.begin():
                result = await session.execute(query)
                return [_to_record(row) for row in result.scalars().all()]

    async def health_check(self) -> bool:
        try:
            async with self._session() as session:
                async with session.begin():
                    await session.execute(select(func.count(TimeSlot.id)))
            return True
        except StoreError as e:
            logger.error(f"Store health check failed: {e}")
            return False


class SqliteOrderStore(SqlOrderStore):
    """Embedded store for local development and single-host deployments."""

    def __init__(
        self,
        url: str,
        time_slots: dict[str, list[str]],
        timeout: float = 5.0,
        echo: bool = False,
    ):
        super().__init__(create_sqlite_engine(url, timeout=timeout, echo=echo), time_slots)


class PostgresOrderStore(SqlOrderStore):
    """Networked relational store."""

    def __init__(
        self,
        url: str,
        time_slots: dict[str, list[str]],
        timeout: float = 5.0,
        pool_size: int = 5,
        max_overflow: int = 10,
        echo: bool = False,
    ):
        engine = create_postgres_engine(
            url,
            timeout=timeout,
            pool_size=pool_size,
            max_overflow=max_overflow,
            echo=echo,
        )
        super().__init__(engine, time_slots)
