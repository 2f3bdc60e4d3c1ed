"""
Database connection and pooling for PostgreSQL.

Provides async connection pooling for the score store and metric source.
Handles connection lifecycle, error translation and resource cleanup.
"""

import asyncpg
from typing import Optional, List
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass

from teacher_scoring.config import DatabaseConfig as DatabaseSettings


logger = logging.getLogger(__name__)


@dataclass
class PoolConfig:
    """Database connection pool configuration."""
    dsn: str
    min_size: int = 1
    max_size: int = 10
    max_queries: int = 50000
    max_inactive_connection_lifetime: float = 300.0
    command_timeout: float = 60.0


class DatabaseConnectionError(Exception):
    """Raised when database connection fails."""
    pass


class DatabasePool:
    """
    Async PostgreSQL connection pool manager.

    One pool is shared by every concurrent teacher computation of a batch.
    """

    def __init__(self, config: PoolConfig):
        self.config = config
        self._pool: Optional[asyncpg.Pool] = None
        self._is_closed = False

    async def initialize(self) -> None:
        """Initialize the connection pool."""
        if self._pool is not None and not self._is_closed:
            return

        try:
            self._pool = await asyncpg.create_pool(
                dsn=self.config.dsn,
                min_size=self.config.min_size,
                max_size=self.config.max_size,
                max_queries=self.config.max_queries,
                max_inactive_connection_lifetime=self.config.max_inactive_connection_lifetime,
                command_timeout=self.config.command_timeout,
                server_settings={
                    'jit': 'off',
                }
            )
            self._is_closed = False
            logger.info(f"Database pool initialized with {self.config.min_size}-{self.config.max_size} connections")
        except (OSError, asyncpg.PostgresError) as e:
            logger.error(f"Failed to initialize database pool: {e}")
            raise DatabaseConnectionError(f"Failed to connect to database: {e}") from e

    async def close(self) -> None:
        """Close the connection pool and cleanup resources."""
        if self._pool and not self._is_closed:
            await self._pool.close()
            self._is_closed = True
            logger.info("Database pool closed")

    @asynccontextmanager
    async def acquire_connection(self):
        """
        Acquire a database connection from the pool.

        Usage:
            async with pool.acquire_connection() as conn:
                result = await conn.fetch("SELECT * FROM table")
        """
        if self._pool is None:
            raise DatabaseConnectionError("Database pool not initialized")

        if self._is_closed:
            raise DatabaseConnectionError("Database pool is closed")

        try:
            connection = await self._pool.acquire()
        except (OSError, asyncpg.PostgresConnectionError) as e:
            logger.error(f"Database connection error: {e}")
            raise DatabaseConnectionError(f"Could not acquire connection: {e}") from e

        try:
            yield connection
        finally:
            await self._pool.release(connection)

    async def execute_query(self, query: str, *args) -> List[asyncpg.Record]:
        """Execute a query and return all results."""
        async with self.acquire_connection() as conn:
            try:
                return await conn.fetch(query, *args)
            except asyncpg.PostgresError as e:
                logger.error(f"Query execution failed: {e}")
                logger.error(f"Query: {query}")
                raise

    @property
    def is_initialized(self) -> bool:
        """Check if the pool is initialized."""
        return self._pool is not None and not self._is_closed


def create_pool_config(settings: DatabaseSettings) -> PoolConfig:
    """Build pool configuration from the DATABASE_* settings."""
    if not settings.url:
        raise DatabaseConnectionError("DATABASE_URL is not set")
    return PoolConfig(
        dsn=settings.url,
        min_size=settings.pool_min_size,
        max_size=settings.pool_max_size,
    )


# Global pool instance - initialized once per application
_global_pool: Optional[DatabasePool] = None


async def get_database_pool(settings: Optional[DatabaseSettings] = None) -> DatabasePool:
    """
    Get the global database pool instance, initializing it if needed.

    Settings default to the DATABASE_* environment.
    """
    global _global_pool

    if _global_pool is None:
        _global_pool = DatabasePool(create_pool_config(settings or DatabaseSettings()))
        await _global_pool.initialize()
    elif not _global_pool.is_initialized:
        await _global_pool.initialize()

    return _global_pool


async def close_database_pool() -> None:
    """Close the global database pool. Call during application shutdown."""
    global _global_pool

    if _global_pool:
        await _global_pool.close()
        _global_pool = None
