"""Per-session event rate limiting for the WebSocket protocol."""

from __future__ import annotations

import logging
import time
from collections import deque
from collections.abc import Callable

logger = logging.getLogger(__name__)


class EventRateLimiter:
    """Sliding-window limiter keyed by event name.

    Each session owns one limiter. ``allow(event)`` records the event and
    returns False once more than *max_events* of that name fall inside the
    trailing *window_ms*.
    """

    def __init__(
        self,
        max_events: int = 10,
        window_ms: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_events = max_events
        self.window = window_ms / 1000
        self._clock = clock
        self._events: dict[str, deque[float]] = {}

    def _recent(self, event: str, now: float) -> deque[float]:
        stamps = self._events.setdefault(event, deque(maxlen=self.max_events))
        threshold = now - self.window
        while stamps and stamps[0] <= threshold:
            stamps.popleft()
        return stamps

    def allow(self, event: str) -> bool:
        now = self._clock()
        stamps = self._recent(event, now)
        if len(stamps) >= self.max_events:
            logger.debug(f"Rate limit hit for '{event}' ({len(stamps)}/{self.max_events})")
            return False
        stamps.append(now)
        return True

    def reset(self) -> None:
        self._events.clear()
