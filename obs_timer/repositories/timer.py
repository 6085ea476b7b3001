"""Repository for the timers table."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from enum import Enum
from typing import Any

import asyncpg

from obs_timer.cache import AsyncTTLCache, cached
from obs_timer.core.errors import StoreUnavailableError
from obs_timer.models.schema import validate_fields
from obs_timer.models.timer import Timer

logger = logging.getLogger(__name__)

_timer_cache = AsyncTTLCache(maxsize=1024, ttl=600)

_COLUMNS = (
    "channel, mode, duration_ms, remaining_ms, is_running, started_at, "
    "end_behavior, format, font_family, font_size, font_weight, text_color, "
    "shadow_enabled, shadow_color, shadow_blur, shadow_offset_x, shadow_offset_y, "
    "stroke_enabled, stroke_color, stroke_width, created_at, updated_at"
)

_DB_ERRORS = (
    asyncpg.PostgresError,
    asyncpg.InterfaceError,
    OSError,
    asyncio.TimeoutError,
)


def _cache_key(channel: str) -> str:
    return f"timer:{channel}"


def build_update(channel: str, fields: Mapping[str, Any]) -> tuple[str, list[Any]]:
    """Build an ``UPDATE … RETURNING`` for already validated *fields*.

    Column names come from the validated mapping, which only ever holds keys
    of the field schema.

    The row must already exist: a proposed insert row would carry column
    defaults, and the anchor CHECK rejects ``started_at`` without ``is_running``.
    """
    args: list[Any] = [channel]
    assignments = []
    for index, (name, value) in enumerate(fields.items(), start=2):
        assignments.append(f"{name} = ${index}")
        args.append(value.value if isinstance(value, Enum) else value)

    sql = (
        f"UPDATE timers SET {', '.join(assignments)}, updated_at = NOW() "
        f"WHERE channel = $1 "
        f"RETURNING {_COLUMNS}"
    )
    return sql, args


class TimerRepository:
    """Pure SQL operations for the timers table."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        self.pool = pool

    @asynccontextmanager
    async def _connection(self) -> AsyncIterator[asyncpg.Connection]:
        try:
            async with self.pool.acquire() as conn:
                yield conn
        except _DB_ERRORS as e:
            logger.warning(f"Timer store error: {type(e).__name__}: {e}")
            raise StoreUnavailableError() from e

    @cached(cache=_timer_cache, key_func=lambda self, channel: _cache_key(channel))
    async def get_or_create(self, channel: str) -> Timer:
        """Get a channel's timer, inserting defaults on first reference."""
        async with self._connection() as conn:
            row = await conn.fetchrow(
                f"""
                INSERT INTO timers (channel)
                VALUES ($1)
                ON CONFLICT (channel) DO UPDATE SET channel = EXCLUDED.channel
                RETURNING {_COLUMNS}
                """,
                channel,
            )
            return Timer(**dict(row))

    async def update(self, channel: str, fields: Mapping[str, Any]) -> Timer:
        """Persist the valid subset of *fields*. Writes through the cache."""
        clean = validate_fields(fields)
        if not clean:
            return await self.get_or_create(channel)

        sql, args = build_update(channel, clean)
        async with self._connection() as conn:
            async with conn.transaction():
                await conn.execute(
                    "INSERT INTO timers (channel) VALUES ($1) ON CONFLICT (channel) DO NOTHING",
                    channel,
                )
                row = await conn.fetchrow(sql, *args)
        result = Timer(**dict(row))
        _timer_cache.set(_cache_key(channel), result)
        return result

    async def list_all(self) -> list[Timer]:
        """Return every stored timer."""
        async with self._connection() as conn:
            rows = await conn.fetch(f"SELECT {_COLUMNS} FROM timers ORDER BY channel")
            return [Timer(**dict(r)) for r in rows]

    async def delete_stale(self, max_age_days: int) -> int:
        """Delete stopped timers untouched for *max_age_days*."""
        async with self._connection() as conn:
            rows = await conn.fetch(
                """
                DELETE FROM timers
                WHERE is_running = FALSE
                  AND updated_at < NOW() - make_interval(days => $1)
                RETURNING channel
                """,
                max_age_days,
            )
        for row in rows:
            _timer_cache.discard(_cache_key(row["channel"]))
        return len(rows)

    async def check_health(self) -> bool:
        try:
            async with self._connection() as conn:
                await conn.fetchval("SELECT 1")
            return True
        except StoreUnavailableError:
            return False
