"""
Database Connection Module
Builds SQLAlchemy async engines for the SQL order stores.

Two dialects are supported:
    - SQLite through aiosqlite (embedded, single file)
    - PostgreSQL through psycopg (networked)
"""

from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase


# Base class for all our models
class Base(DeclarativeBase):
    pass


def create_sqlite_engine(url: str, timeout: float, echo: bool = False) -> AsyncEngine:
    """
    Create an engine for the embedded store.

    pysqlite's own BEGIN handling is switched off and every transaction opens
    with BEGIN IMMEDIATE instead, so a writer holds the database lock from
    its first read (the capacity count) until commit. Other writers wait up
    to ``timeout`` seconds for it.
    """
    engine = create_async_engine(
        url,
        echo=echo,
        connect_args={"timeout": timeout},
    )
    event.listen(engine.sync_engine, "connect", _sqlite_on_connect)
    event.listen(engine.sync_engine, "begin", _sqlite_on_begin)
    return engine


def _sqlite_on_connect(dbapi_connection: Any, connection_record: Any) -> None:
    # disable the driver's implicit BEGIN; _sqlite_on_begin emits our own
    dbapi_connection.isolation_level = None


def _sqlite_on_begin(conn: Any) -> None:
    conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_postgres_engine(
    url: str,
    timeout: float,
    pool_size: int = 5,
    max_overflow: int = 10,
    echo: bool = False,
) -> AsyncEngine:
    """Create an engine for the networked PostgreSQL store."""
    statement_timeout_ms = int(timeout * 1000)
    return create_async_engine(
        url,
        echo=echo,
        pool_size=pool_size,  # Connection pool size
        max_overflow=max_overflow,  # Extra connections when pool is full
        pool_pre_ping=True,
        pool_timeout=timeout,
        connect_args={
            "connect_timeout": max(1, int(timeout)),
            "options": f"-c statement_timeout={statement_timeout_ms} -c lock_timeout={statement_timeout_ms}",
        },
    )


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory - creates new database sessions."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False  # Objects remain accessible after commit
    )


async def init_db(engine: AsyncEngine) -> None:
    """
    Create all tables in database.
    Called once at application startup.
    """
    # models must be imported so their tables are registered on Base
    from preorder import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
