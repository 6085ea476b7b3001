"""PostgreSQL pool for the persistent timer store.

Only created when ``DATABASE_URL`` is set; without it channel state lives in
the in-memory store.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

import asyncpg

from obs_timer.core.config import Settings

logger = logging.getLogger(__name__)


@dataclass
class PoolConfig:
    """asyncpg pool options plus the startup retry policy."""

    min_size: int = 1
    max_size: int = 5
    timeout: float = 5.0
    command_timeout: float = 15.0
    max_inactive_connection_lifetime: float = 300.0
    ssl: str = "prefer"
    max_retries: int = 3
    retry_delay: float = 2.0

    @classmethod
    def from_settings(cls, settings: Settings, **overrides: Any) -> PoolConfig:
        return cls(ssl=settings.database_ssl, **overrides)


class DatabaseManager:
    """Opens, checks and closes the timer store's connection pool."""

    def __init__(self, database_url: str, config: PoolConfig | None = None):
        self.database_url = database_url
        self.config = config or PoolConfig()
        self._pool: asyncpg.Pool | None = None

    def _pool_kwargs(self) -> dict[str, Any]:
        cfg = self.config
        return {
            "dsn": self.database_url,
            "min_size": cfg.min_size,
            "max_size": cfg.max_size,
            "timeout": cfg.timeout,
            "command_timeout": cfg.command_timeout,
            "ssl": cfg.ssl,
            "max_inactive_connection_lifetime": cfg.max_inactive_connection_lifetime,
        }

    async def _open_verified_pool(self) -> asyncpg.Pool:
        pool = await asyncpg.create_pool(**self._pool_kwargs())
        try:
            async with pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
        except BaseException:
            await pool.close()
            raise
        return pool

    async def connect(self) -> None:
        """Create the pool, retrying with exponential backoff.

        Raises the last connection error once ``max_retries`` is exhausted;
        the server does not start without its configured database.
        """
        if self._pool is not None:
            return

        cfg = self.config
        for attempt in range(1, cfg.max_retries + 1):
            try:
                self._pool = await self._open_verified_pool()
            except (OSError, asyncio.TimeoutError, asyncpg.PostgresError) as e:
                if attempt == cfg.max_retries:
                    logger.error(
                        f"Timer database unreachable after {attempt} attempts: "
                        f"{type(e).__name__}: {e}"
                    )
                    raise
                delay = cfg.retry_delay * 2 ** (attempt - 1)
                logger.warning(
                    f"Timer database attempt {attempt}/{cfg.max_retries} failed "
                    f"({type(e).__name__}), retrying in {delay:g}s"
                )
                await asyncio.sleep(delay)
            else:
                logger.info(f"Timer database connected (pool {cfg.min_size}-{cfg.max_size})")
                return

    async def disconnect(self) -> None:
        if self._pool is None:
            return
        pool, self._pool = self._pool, None
        try:
            await pool.close()
        except Exception as e:
            logger.warning(f"Error closing database pool: {type(e).__name__}: {e}")

    async def check_health(self) -> bool:
        """Whether a pooled connection can run a query right now."""
        if self._pool is None:
            return False
        try:
            async with self._pool.acquire(timeout=2.0) as conn:
                await conn.fetchval("SELECT 1")
        except Exception:
            return False
        return True

    @property
    def pool(self) -> asyncpg.Pool:
        if self._pool is None:
            raise RuntimeError("Database pool not initialized, call connect() first")
        return self._pool
