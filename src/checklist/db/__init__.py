"""Database connection management with async connection pooling."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from psycopg import AsyncConnection
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool

logger = logging.getLogger(__name__)


class DatabaseManager:
    """Manages a PostgreSQL async connection pool."""

    def __init__(self, conninfo: str, min_size: int = 1, max_size: int = 5):
        self._conninfo = conninfo
        self._min_size = min_size
        self._max_size = max_size
        self._pool: Optional[AsyncConnectionPool] = None

    @property
    def is_open(self) -> bool:
        return self._pool is not None

    async def initialize(self):
        """Open the connection pool."""
        if self._pool is not None:
            logger.warning("Connection pool already initialized")
            return

        logger.info(
            "Initializing database connection pool (min=%s, max=%s)",
            self._min_size,
            self._max_size,
        )

        pool = AsyncConnectionPool(
            conninfo=self._conninfo,
            min_size=self._min_size,
            max_size=self._max_size,
            timeout=30,
            open=False,
            kwargs={
                "row_factory": dict_row,  # Return rows as dictionaries
                "autocommit": False,
            },
        )
        await pool.open()
        self._pool = pool

        logger.info("Database connection pool initialized successfully")

    async def close(self):
        """Close connection pool."""
        if self._pool:
            logger.info("Closing database connection pool")
            await self._pool.close()
            self._pool = None

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[AsyncConnection]:
        """Borrow a connection; the transaction commits when the block exits cleanly."""
        if self._pool is None:
            await self.initialize()

        async with self._pool.connection() as conn:
            yield conn

    @asynccontextmanager
    async def cursor(self):
        """Borrow a cursor from a pooled connection."""
        async with self.connection() as conn:
            async with conn.cursor() as cur:
                yield cur
