"""
PostgreSQL access for entitlement lookups.

The user, controller and device tables belong to the API service. The
relay only reads them, so every pooled session is opened read-only and
tagged with an application name that shows up in ``pg_stat_activity``.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from types import TracebackType
from typing import Any

import asyncpg

from alert_relay.config.settings import get_settings

logger = logging.getLogger(__name__)

APPLICATION_NAME = "alert-relay"


class Database:
    """
    Read-only asyncpg pool.

    Usage:
        async with Database() as db:
            rows = await db.fetch("SELECT ... WHERE controller_key = $1", device_id)
    """

    def __init__(
        self,
        database_url: str | None = None,
        min_size: int | None = None,
        max_size: int | None = None,
        command_timeout: float | None = None,
    ):
        """
        Args:
            database_url: PostgreSQL DSN (defaults to settings.database_url)
            min_size: Connections opened eagerly
            max_size: Upper bound on pooled connections
            command_timeout: Per-statement timeout in seconds
        """
        settings = get_settings()

        self._dsn = database_url or str(settings.database_url)
        self._min_size = min_size or settings.db_pool_min_size
        self._max_size = max_size or settings.db_pool_max_size
        self._command_timeout = command_timeout or settings.db_command_timeout

        self._pool: asyncpg.Pool | None = None

    @property
    def connected(self) -> bool:
        return self._pool is not None

    async def connect(self) -> None:
        """Open the pool. Calling it again while connected is a no-op."""
        if self._pool is not None:
            return
        try:
            self._pool = await asyncpg.create_pool(
                self._dsn,
                min_size=self._min_size,
                max_size=self._max_size,
                command_timeout=self._command_timeout,
                server_settings={
                    "application_name": APPLICATION_NAME,
                    "default_transaction_read_only": "on",
                },
            )
        except Exception as e:
            logger.error(f"Entitlement database unreachable: {e}")
            raise
        logger.info(
            f"Entitlement database pool open ({self._min_size}-{self._max_size} connections)"
        )

    async def close(self) -> None:
        """Close the pool if open."""
        pool, self._pool = self._pool, None
        if pool is not None:
            await pool.close()
            logger.info("Entitlement database pool closed")

    async def __aenter__(self) -> "Database":
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    @property
    def pool(self) -> asyncpg.Pool:
        if self._pool is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._pool

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[asyncpg.Connection]:
        async with self.pool.acquire() as conn:
            yield conn

    async def fetch(self, query: str, *args: Any) -> list[asyncpg.Record]:
        """Run a query and return every row."""
        async with self.acquire() as conn:
            return await conn.fetch(query, *args)

    async def fetchval(self, query: str, *args: Any) -> Any:
        async with self.acquire() as conn:
            return await conn.fetchval(query, *args)

    async def health_check(self) -> bool:
        """True if a pooled connection answers ``SELECT 1``."""
        try:
            return await self.fetchval("SELECT 1") == 1
        except Exception:
            return False
