"""
Order Store Factory

Returns the order store selected by ORDER_BACKEND. The choice is made once,
at start-up; request handlers only ever see BaseOrderStore.
"""

import logging
from functools import lru_cache

from preorder.core.config import get_settings, OrderBackend
from preorder.stores.base import (
    BaseOrderStore,
    NewOrder,
    OrderFilters,
    OrderRecord,
)

logger = logging.getLogger(__name__)


@lru_cache()
def get_order_store() -> BaseOrderStore:
    """Get the configured order store."""
    settings = get_settings()

    # adapters are imported lazily so unused drivers never load
    if settings.order_backend == OrderBackend.POSTGRES:
        from preorder.stores.sql import PostgresOrderStore

        logger.info("Order Store: Using PostgresOrderStore")
        return PostgresOrderStore(
            settings.database_url,
            time_slots=settings.time_slots,
            timeout=settings.store_timeout_seconds,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            echo=settings.db_echo,
        )

    if settings.order_backend == OrderBackend.DYNAMODB:
        from preorder.stores.dynamo import DynamoOrderStore

        logger.info("Order Store: Using DynamoOrderStore")
        return DynamoOrderStore(
            orders_table=settings.dynamodb_orders_table,
            counters_table=settings.dynamodb_counters_table,
            region_name=settings.aws_region,
            endpoint_url=settings.dynamodb_endpoint_url,
            timeout=settings.store_timeout_seconds,
            create_tables=settings.dynamodb_create_tables,
        )

    from preorder.stores.sql import SqliteOrderStore

    logger.info(f"Order Store: Using SqliteOrderStore ({settings.sqlite_url})")
    return SqliteOrderStore(
        settings.sqlite_url,
        time_slots=settings.time_slots,
        timeout=settings.store_timeout_seconds,
        echo=settings.db_echo,
    )


def reset_order_store() -> None:
    """Clear the cached store instance."""
    get_order_store.cache_clear()


__all__ = [
    "get_order_store",
    "reset_order_store",
    "BaseOrderStore",
    "NewOrder",
    "OrderFilters",
    "OrderRecord",
]
