"""Database connection management"""
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional
import psycopg
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool

from chemlab.config import DATABASE_URL, DB_POOL_MIN_SIZE, DB_POOL_MAX_SIZE
from chemlab.exceptions import wrap_external_exception

logger = logging.getLogger(__name__)


class Database:
    """Database connection pool manager"""

    def __init__(self, connection_string: str = DATABASE_URL):
        self.connection_string = connection_string
        self._pool: Optional[AsyncConnectionPool] = None

    async def init_pool(self) -> None:
        """Initialize connection pool"""
        logger.info("Initializing database connection pool")
        self._pool = AsyncConnectionPool(
            self.connection_string,
            min_size=DB_POOL_MIN_SIZE,
            max_size=DB_POOL_MAX_SIZE,
            open=False
        )
        await self._pool.open()

    async def close_pool(self) -> None:
        """Close connection pool"""
        if self._pool:
            logger.info("Closing database connection pool")
            await self._pool.close()
            self._pool = None

    @asynccontextmanager
    async def connection(self) -> AsyncGenerator[psycopg.AsyncConnection, None]:
        """Get database connection from pool"""
        if not self._pool:
            raise RuntimeError("Database pool not initialized")

        async with self._pool.connection() as conn:
            conn.row_factory = dict_row
            yield conn

    @asynccontextmanager
    async def transaction(
        self,
        conn: Optional[psycopg.AsyncConnection] = None,
        operation: str = "transaction",
        user_id: Optional[str] = None
    ) -> AsyncGenerator[psycopg.AsyncConnection, None]:
        """
        Run a block inside one database transaction.

        If ``conn`` is given the block joins the caller's transaction and the
        caller owns commit/rollback. Otherwise a pooled connection is opened,
        committed on success and rolled back on any exception. psycopg errors
        are re-raised as PersistenceError subclasses.
        """
        if conn is not None:
            yield conn
            return

        try:
            async with self.connection() as new_conn:
                async with new_conn.transaction():
                    yield new_conn
        except psycopg.Error as e:
            raise wrap_external_exception(e, operation=operation, user_id=user_id) from e


# Global database instance
db = Database()
