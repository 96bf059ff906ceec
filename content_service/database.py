"""
Database connection management for Content Service.

Provides an async SQLAlchemy engine with connection pooling. The manager
is an explicit handle: created at startup, passed to the repositories,
and disposed at shutdown.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import structlog
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool

from .models import Base

logger = structlog.get_logger(__name__)


def is_sqlite(database_url: str) -> bool:
    return database_url.startswith("sqlite")


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    """SQLite ignores foreign keys unless asked on every connection."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class DatabaseManager:
    """
    Manages the primary store engine and its connection pool.

    Attributes:
        engine: SQLAlchemy async engine, None until connect()
    """

    def __init__(
        self,
        database_url: str,
        pool_size: int = 10,
        max_overflow: int = 10,
        pool_timeout: int = 30,
        isolation_level: Optional[str] = "READ COMMITTED",
        echo: bool = False,
    ) -> None:
        """
        Initialize database manager.

        Args:
            database_url: SQLAlchemy async URL
            pool_size: Connections kept in the pool
            max_overflow: Extra connections allowed under load
            pool_timeout: Seconds to wait for a free connection
            isolation_level: Transaction isolation (ignored for SQLite)
            echo: Log emitted SQL
        """
        self.database_url = database_url
        self.pool_size = pool_size
        self.max_overflow = max_overflow
        self.pool_timeout = pool_timeout
        self.isolation_level = isolation_level
        self.echo = echo
        self.engine: Optional[AsyncEngine] = None

    async def connect(self) -> None:
        """Create the engine and its pool."""
        if self.engine is not None:
            return

        safe_url = self.database_url.split("@")[-1]
        logger.info("Connecting to database", database=safe_url)

        if is_sqlite(self.database_url):
            kwargs = {"poolclass": StaticPool, "connect_args": {"check_same_thread": False}}
        else:
            kwargs = {
                "pool_size": self.pool_size,
                "max_overflow": self.max_overflow,
                "pool_timeout": self.pool_timeout,
                "pool_pre_ping": True,
            }
            if self.isolation_level:
                kwargs["isolation_level"] = self.isolation_level

        self.engine = create_async_engine(self.database_url, echo=self.echo, **kwargs)

        if is_sqlite(self.database_url):
            event.listen(self.engine.sync_engine, "connect", _enable_sqlite_foreign_keys)

        logger.info(
            "Database engine created",
            pool_size=self.pool_size,
            max_overflow=self.max_overflow,
        )

    async def disconnect(self) -> None:
        """Dispose of the engine and close pooled connections."""
        if self.engine is not None:
            await self.engine.dispose()
            self.engine = None
            logger.info("Database connection pool closed")

    async def init_db(self) -> None:
        """Create missing tables."""
        if self.engine is None:
            await self.connect()
        logger.info("Initializing database tables")
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all, checkfirst=True)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncConnection]:
        """
        Open one atomic unit of work.

        Commits when the block exits normally; rolls back when it raises or
        is cancelled.

        Example:
            async with db.transaction() as conn:
                await conn.execute(insert(table).values(...))
        """
        if self.engine is None:
            await self.connect()
        async with self.engine.begin() as conn:
            yield conn

    def get_pool_stats(self) -> dict:
        """Get connection pool statistics."""
        if self.engine is None:
            return {"connected": False}

        pool = self.engine.pool
        stats = {"connected": True, "pool": pool.status()}
        if hasattr(pool, "checkedout"):
            stats["checked_out"] = pool.checkedout()
        return stats
