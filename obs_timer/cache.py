"""Write-through record cache for the PostgreSQL timer store.

The server is the only writer of its channels, so every committed record is
put here and scheduler ticks read from memory instead of the database. A
second, TTL-free tier remembers the last committed record per channel; reads
fall back to it while the database is unreachable so overlays keep syncing.
Writes never use it.
"""

import asyncio
import functools
import logging
from collections import OrderedDict
from collections.abc import Callable
from typing import Any, TypeVar

from cachetools import TTLCache  # type: ignore[import-untyped]

logger = logging.getLogger(__name__)

# Distinguishes a miss from a cached None
MISSING = object()

F = TypeVar("F", bound=Callable[..., Any])


class AsyncTTLCache:
    """Fresh entries expire after *ttl* seconds; last-known entries only by LRU."""

    def __init__(self, maxsize: int = 128, ttl: float = 60.0):
        self.maxsize = maxsize
        self._fresh: TTLCache = TTLCache(maxsize=maxsize, ttl=ttl)
        self._last_known: OrderedDict[str, Any] = OrderedDict()

    def get(self, key: str) -> Any:
        return self._fresh.get(key, MISSING)

    def set(self, key: str, value: Any) -> None:
        self._fresh[key] = value
        self._last_known[key] = value
        self._last_known.move_to_end(key)
        if len(self._last_known) > self.maxsize:
            self._last_known.popitem(last=False)

    def expire(self) -> None:
        """Drop every fresh entry; last-known values stay."""
        self._fresh.clear()

    def discard(self, key: str) -> None:
        """Forget *key* entirely (the record was deleted)."""
        self._fresh.pop(key, None)
        self._last_known.pop(key, None)

    def clear(self) -> None:
        self._fresh.clear()
        self._last_known.clear()

    def last_known(self, key: str) -> Any:
        value = self._last_known.get(key, MISSING)
        if value is not MISSING:
            self._last_known.move_to_end(key)
        return value


def cached(cache: AsyncTTLCache, key_func: Callable[..., str]):
    """Serve an async loader from *cache*.

    *key_func* receives the loader's arguments and returns the cache key. On a
    miss the loader runs once; if it raises, the last-known value is returned
    instead (with a warning), or the error propagates when there is none.
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            key = key_func(*args, **kwargs)
            hit = cache.get(key)
            if hit is not MISSING:
                return hit

            try:
                result = await func(*args, **kwargs)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                fallback = cache.last_known(key)
                if fallback is MISSING:
                    raise
                logger.warning(f"Serving last known value for {key} ({type(exc).__name__})")
                return fallback

            cache.set(key, result)
            return result

        wrapper.cache = cache  # type: ignore[attr-defined]
        return wrapper  # type: ignore[return-value]

    return decorator
