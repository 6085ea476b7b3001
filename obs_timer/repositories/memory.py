"""Process-local timer store used when no database is configured."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import replace
from datetime import UTC, datetime, timedelta
from typing import Any

from obs_timer.models.schema import validate_fields
from obs_timer.models.timer import Timer

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class InMemoryTimerRepository:
    """Dictionary-backed store with the same contract as ``TimerRepository``.

    Records are copied on the way in and out so callers never share state
    with the store.
    """

    def __init__(self, clock: Callable[[], datetime] = _utcnow) -> None:
        self._clock = clock
        self._timers: dict[str, Timer] = {}

    def _get_or_insert(self, channel: str) -> Timer:
        timer = self._timers.get(channel)
        if timer is None:
            now = self._clock()
            timer = Timer(channel=channel, created_at=now, updated_at=now)
            self._timers[channel] = timer
            logger.debug(f"Created timer for channel '{channel}'")
        return timer

    async def get_or_create(self, channel: str) -> Timer:
        return replace(self._get_or_insert(channel))

    async def update(self, channel: str, fields: Mapping[str, Any]) -> Timer:
        timer = self._get_or_insert(channel)
        clean = validate_fields(fields)
        if clean:
            timer = replace(timer, **clean, updated_at=self._clock())
            self._timers[channel] = timer
        return replace(timer)

    async def list_all(self) -> list[Timer]:
        return [replace(t) for _, t in sorted(self._timers.items())]

    async def delete_stale(self, max_age_days: int) -> int:
        cutoff = self._clock() - timedelta(days=max_age_days)
        stale = [
            channel
            for channel, timer in self._timers.items()
            if not timer.is_running and timer.updated_at is not None and timer.updated_at < cutoff
        ]
        for channel in stale:
            del self._timers[channel]
        return len(stale)

    async def check_health(self) -> bool:
        return True
