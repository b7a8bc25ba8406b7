"""
DynamoDB Order Store

Document-style backend on Amazon DynamoDB (boto3).

DynamoDB cannot count and insert in one transaction, so capacity is kept in
a separate counter item per bucket:

    counters table   pk "bucket" = "<week_key>#<day>#<slot>", attr "used"

Admitting an order is a single TransactWriteItems call that increments the
counter under the condition ``used < capacity`` and puts the order. Either
both writes land or neither does. When DynamoDB cancels the transaction the
counter is re-read: a full bucket means SLOT_SOLD_OUT, anything else was a
conflicting write and the call is retried.

boto3 is blocking, so every call runs in a worker thread.

Version: 1.0.0
"""

import asyncio
import json
import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

import boto3
from boto3.dynamodb.conditions import Attr, ConditionExpressionBuilder
from boto3.dynamodb.types import TypeDeserializer, TypeSerializer
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError, ConnectTimeoutError, ReadTimeoutError

from preorder.core.exceptions import SlotSoldOutError, StoreError, StoreTimeoutError
from preorder.stores.base import BaseOrderStore, NewOrder, OrderFilters, OrderRecord, sort_key

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 5

_serializer = TypeSerializer()
_deserializer = TypeDeserializer()


def bucket_key(week_key: str, day: str, slot: str) -> str:
    return f"{week_key}#{day}#{slot}"


def _serialize(item: dict[str, Any]) -> dict[str, Any]:
    """Plain Python values to DynamoDB attribute values (None dropped)."""
    return {k: _serializer.serialize(v) for k, v in item.items() if v is not None}


def _deserialize(value: Any) -> Any:
    """Convert DynamoDB data into plain Python types."""
    if isinstance(value, dict):
        return {k: _deserialize(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_deserialize(v) for v in value]
    if isinstance(value, Decimal):
        return int(value) if value % 1 == 0 else float(value)
    return value


def _parse_time(raw: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(raw) if raw else None


def _to_record(item: dict[str, Any]) -> OrderRecord:
    item = _deserialize(item)
    return OrderRecord(
        id=item["order_id"],
        created_at=_parse_time(item["created_at"]),
        day=item["day"],
        slot=item["slot"],
        item=item["item"],
        options=json.loads(item.get("options") or "{}"),
        name=item["name"],
        building_room=item["building_room"],
        phone=item["phone"],
        notes=item.get("notes"),
        payment_ready=bool(item["payment_ready"]),
        total_cents=int(item["total_cents"]),
        week_key=item["week_key"],
        status=item["status"],
        kitchen_notes=item.get("kitchen_notes"),
        updated_at=_parse_time(item.get("updated_at")),
    )


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class DynamoOrderStore(BaseOrderStore):
    """Order store on Amazon DynamoDB."""

    def __init__(
        self,
        orders_table: str,
        counters_table: str,
        region_name: str = "us-east-1",
        endpoint_url: Optional[str] = None,
        timeout: float = 5.0,
        create_tables: bool = False,
    ):
        self.orders_table = orders_table
        self.counters_table = counters_table
        self.region_name = region_name
        self.endpoint_url = endpoint_url
        self.create_tables = create_tables
        self.config = Config(
            region_name=region_name,
            connect_timeout=timeout,
            read_timeout=timeout,
            retries={"max_attempts": 3, "mode": "standard"},
        )
        self._client = None

    @property
    def backend_name(self) -> str:
        return "dynamodb"

    @property
    def client(self):
        if self._client is None:
            session = boto3.session.Session()
            self._client = session.client(
                "dynamodb",
                region_name=self.region_name,
                endpoint_url=self.endpoint_url,
                config=self.config,
            )
        return self._client

    async def _call(self, operation: str, **kwargs: Any) -> dict[str, Any]:
        """Run one client operation in a thread, translating failures."""
        method = getattr(self.client, operation)
        try:
            return await asyncio.to_thread(method, **kwargs)
        except (ConnectTimeoutError, ReadTimeoutError) as e:
            logger.error(f"DynamoDB {operation} timed out: {e}")
            raise StoreTimeoutError() from e
        except ClientError:
            raise
        except BotoCoreError as e:
            logger.exception(f"DynamoDB {operation} failed: {e}")
            raise StoreError() from e

    @staticmethod
    def _error_code(error: ClientError) -> str:
        return error.response.get("Error", {}).get("Code", "")

    def _store_error(self, operation: str, error: ClientError) -> StoreError:
        logger.error(f"DynamoDB {operation} failed: {self._error_code(error)} {error}")
        return StoreError()

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def init(self) -> None:
        if self.create_tables:
            await self._ensure_table(self.orders_table, "order_id")
            await self._ensure_table(self.counters_table, "bucket")
        logger.info("✅ dynamodb order store ready")

    async def _ensure_table(self, name: str, key: str) -> None:
        try:
            await self._call(
                "create_table",
                TableName=name,
                KeySchema=[{"AttributeName": key, "KeyType": "HASH"}],
                AttributeDefinitions=[{"AttributeName": key, "AttributeType": "S"}],
                BillingMode="PAY_PER_REQUEST",
            )
            waiter = self.client.get_waiter("table_exists")
            await asyncio.to_thread(waiter.wait, TableName=name)
            logger.info(f"Created DynamoDB table {name}")
        except ClientError as e:
            if self._error_code(e) != "ResourceInUseException":
                raise self._store_error("create_table", e) from e

    async def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    async def health_check(self) -> bool:
        try:
            await self._call("describe_table", TableName=self.orders_table)
            return True
        except (ClientError, StoreError) as e:
            logger.error(f"Store health check failed: {e}")
            return False

    # =========================================================================
    # CAPACITY
    # =========================================================================

    async def _counter_value(self, bucket: str) -> int:
        try:
            response = await self._call(
                "get_item",
                TableName=self.counters_table,
                Key=_serialize({"bucket": bucket}),
                ConsistentRead=True,
            )
        except ClientError as e:
            raise self._store_error("get_item", e) from e
        item = response.get("Item")
        if not item:
            return 0
        return int(_deserializer.deserialize(item["used"]))

    def _increment(self, bucket: str, week_key: str, capacity: Optional[int]) -> dict[str, Any]:
        update = {
            "TableName": self.counters_table,
            "Key": _serialize({"bucket": bucket}),
            "UpdateExpression": "SET #used = if_not_exists(#used, :zero) + :one, week_key = :week",
            "ExpressionAttributeNames": {"#used": "used"},
            "ExpressionAttributeValues": _serialize({":zero": 0, ":one": 1, ":week": week_key}),
        }
        if capacity is not None:
            update["ConditionExpression"] = "attribute_not_exists(#used) OR #used < :cap"
            update["ExpressionAttributeValues"].update(_serialize({":cap": capacity}))
        return {"Update": update}

    def _decrement(self, bucket: str) -> dict[str, Any]:
        return {
            "Update": {
                "TableName": self.counters_table,
                "Key": _serialize({"bucket": bucket}),
                "UpdateExpression": "SET #used = if_not_exists(#used, :one) - :one",
                "ExpressionAttributeNames": {"#used": "used"},
                "ExpressionAttributeValues": _serialize({":one": 1}),
            }
        }

    async def _transact(self, items: list[dict[str, Any]]) -> bool:
        """Run a write transaction. Returns False if DynamoDB cancelled it."""
        try:
            await self._call("transact_write_items", TransactItems=items)
            return True
        except ClientError as e:
            if self._error_code(e) in ("TransactionCanceledException", "TransactionConflictException"):
                return False
            raise self._store_error("transact_write_items", e) from e

    async def count_by_bucket(
        self,
        day: str,
        slot: str,
        week_key: str,
        exclude_order_id: Optional[str] = None,
    ) -> int:
        used = await self._counter_value(bucket_key(week_key, day, slot))
        if exclude_order_id:
            current = await self.get(exclude_order_id)
            if current is not None and current.bucket == (day, slot, week_key):
                used -= 1
        return max(0, used)

    # =========================================================================
    # WRITES
    # =========================================================================

    async def create(self, order: NewOrder, capacity: Optional[int]) -> OrderRecord:
        now = _now_iso()
        document = {
            "order_id": str(uuid.uuid4()),
            "created_at": now,
            "day": order.day,
            "slot": order.slot,
            "item": order.item,
            "options": json.dumps(order.options),
            "name": order.name,
            "building_room": order.building_room,
            "phone": order.phone,
            "notes": order.notes,
            "payment_ready": order.payment_ready,
            "total_cents": order.total_cents,
            "week_key": order.week_key,
            "status": order.status,
        }
        bucket = bucket_key(order.week_key, order.day, order.slot)

        for attempt in range(1, MAX_ATTEMPTS + 1):
            written = await self._transact([
                self._increment(bucket, order.week_key, capacity),
                {
                    "Put": {
                        "TableName": self.orders_table,
                        "Item": _serialize(document),
                        "ConditionExpression": "attribute_not_exists(order_id)",
                    }
                },
            ])
            if written:
                logger.info(f"Order #{document['order_id']} stored ({order.day} {order.slot}, week {order.week_key})")
                return _to_record(document)

            used = await self._counter_value(bucket)
            if capacity is not None and used >= capacity:
                raise SlotSoldOutError(order.day, order.slot, order.week_key, used=used, capacity=capacity)
            logger.warning(f"Admission conflict on {bucket}, retrying (attempt {attempt})")

        logger.error(f"Gave up admitting into {bucket} after {MAX_ATTEMPTS} attempts")
        raise StoreError("Could not store the order, please retry")

    async def update_fields(
        self,
        order_id: str,
        changes: dict[str, Any],
        capacity: Optional[int],
    ) -> Optional[OrderRecord]:
        for attempt in range(1, MAX_ATTEMPTS + 1):
            current = await self.get(order_id)
            if current is None:
                return None

            target_day = changes.get("day", current.day)
            target_slot = changes.get("slot", current.slot)
            moved = (target_day, target_slot) != (current.day, current.slot)

            names = {f"#{k}": k for k in changes}
            names["#updated_at"] = "updated_at"
            values = {f":{k}": v for k, v in changes.items() if v is not None}
            values[":updated_at"] = _now_iso()
            assignments = [f"#{k} = :{k}" for k, v in changes.items() if v is not None]
            assignments.append("#updated_at = :updated_at")
            removals = [f"#{k}" for k, v in changes.items() if v is None]
            expression = "SET " + ", ".join(assignments)
            if removals:
                expression += " REMOVE " + ", ".join(removals)

            # the order must still be where we read it
            names.update({"#cur_day": "day", "#cur_slot": "slot"})
            values.update({":cur_day": current.day, ":cur_slot": current.slot})

            order_update = {
                "Update": {
                    "TableName": self.orders_table,
                    "Key": _serialize({"order_id": order_id}),
                    "UpdateExpression": expression,
                    "ConditionExpression": "attribute_exists(order_id) AND #cur_day = :cur_day AND #cur_slot = :cur_slot",
                    "ExpressionAttributeNames": names,
                    "ExpressionAttributeValues": _serialize(values),
                }
            }

            items = [order_update]
            target_bucket = bucket_key(current.week_key, target_day, target_slot)
            if moved:
                items = [
                    self._increment(target_bucket, current.week_key, capacity),
                    self._decrement(bucket_key(current.week_key, current.day, current.slot)),
                    order_update,
                ]

            if await self._transact(items):
                return await self.get(order_id)

            if moved and capacity is not None:
                used = await self._counter_value(target_bucket)
                if used >= capacity:
                    raise SlotSoldOutError(target_day, target_slot, current.week_key, used=used, capacity=capacity)
            logger.warning(f"Update conflict on order #{order_id}, retrying (attempt {attempt})")

        raise StoreError("Could not update the order, please retry")

    async def update_status(self, order_id: str, status: str) -> bool:
        try:
            await self._call(
                "update_item",
                TableName=self.orders_table,
                Key=_serialize({"order_id": order_id}),
                UpdateExpression="SET #status = :status, updated_at = :now",
                ConditionExpression="attribute_exists(order_id)",
                ExpressionAttributeNames={"#status": "status"},
                ExpressionAttributeValues=_serialize({":status": status, ":now": _now_iso()}),
            )
            return True
        except ClientError as e:
            if self._error_code(e) == "ConditionalCheckFailedException":
                return False
            raise self._store_error("update_item", e) from e

    async def delete(self, order_id: str) -> bool:
        for attempt in range(1, MAX_ATTEMPTS + 1):
            current = await self.get(order_id)
            if current is None:
                return False

            deleted = await self._transact([
                {
                    "Delete": {
                        "TableName": self.orders_table,
                        "Key": _serialize({"order_id": order_id}),
                        "ConditionExpression": "#day = :day AND #slot = :slot",
                        "ExpressionAttributeNames": {"#day": "day", "#slot": "slot"},
                        "ExpressionAttributeValues": _serialize({":day": current.day, ":slot": current.slot}),
                    }
                },
                self._decrement(bucket_key(current.week_key, current.day, current.slot)),
            ])
            if deleted:
                return True
            logger.warning(f"Delete conflict on order #{order_id}, retrying (attempt {attempt})")

        raise StoreError("Could not delete the order, please retry")

    async def delete_by_week(self, week_key: str) -> int:
        # each order goes out together with its seat, like delete()
        orders = await self._scan(self.orders_table, Attr("week_key").eq(week_key))
        deleted = 0
        for item in orders:
            if await self.delete(item["order_id"]):
                deleted += 1

        # only empty counters; one still above zero counts an order admitted meanwhile
        counters = await self._scan(self.counters_table, Attr("week_key").eq(week_key))
        removed = 0
        for counter in counters:
            try:
                await self._call(
                    "delete_item",
                    TableName=self.counters_table,
                    Key=_serialize({"bucket": counter["bucket"]}),
                    ConditionExpression="#used <= :zero",
                    ExpressionAttributeNames={"#used": "used"},
                    ExpressionAttributeValues=_serialize({":zero": 0}),
                )
                removed += 1
            except ClientError as e:
                if self._error_code(e) != "ConditionalCheckFailedException":
                    raise self._store_error("delete_item", e) from e

        logger.info(f"Deleted {deleted} orders and {removed} counters for week {week_key}")
        return deleted

    # =========================================================================
    # READS
    # =========================================================================

    async def get(self, order_id: str) -> Optional[OrderRecord]:
        try:
            response = await self._call(
                "get_item",
                TableName=self.orders_table,
                Key=_serialize({"order_id": order_id}),
                ConsistentRead=True,
            )
        except ClientError as e:
            raise self._store_error("get_item", e) from e
        item = response.get("Item")
        if not item:
            return None
        return _to_record({k: _deserializer.deserialize(v) for k, v in item.items()})

    async def _scan(self, table: str, condition: Any = None) -> list[dict[str, Any]]:
        """Full paginated scan, optionally filtered server-side."""
        kwargs: dict[str, Any] = {"TableName": table, "ConsistentRead": True}
        if condition is not None:
            # the low-level client needs the expression rendered
            builder = ConditionExpressionBuilder()
            expression = builder.build_expression(condition)
            kwargs["FilterExpression"] = expression.condition_expression
            kwargs["ExpressionAttributeNames"] = expression.attribute_name_placeholders
            kwargs["ExpressionAttributeValues"] = _serialize(expression.attribute_value_placeholders)

        items: list[dict[str, Any]] = []
        while True:
            try:
                response = await self._call("scan", **kwargs)
            except ClientError as e:
                raise self._store_error("scan", e) from e
            for raw in response.get("Items", []):
                items.append({k: _deserializer.deserialize(v) for k, v in raw.items()})
            last_key = response.get("LastEvaluatedKey")
            if not last_key:
                return items
            kwargs["ExclusiveStartKey"] = last_key

    async def query(self, filters: OrderFilters) -> list[OrderRecord]:
        condition = Attr("week_key").eq(filters.week_key) if filters.week_key else None
        documents = await self._scan(self.orders_table, condition)

        # case-insensitive search and multi-status filters run here
        orders = [o for o in (_to_record(d) for d in documents) if filters.matches(o)]
        orders.sort(key=sort_key)
        return orders[: filters.limit]
