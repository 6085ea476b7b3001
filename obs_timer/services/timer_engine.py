"""Timer synchronization engine.

Each channel persists only a base value (``remaining_ms``) and the instant it
last entered the running state (``started_at``). The live value while running
is derived from those two and the clock, so nothing is written per tick and
time spent with the process down counts as elapsed on restart.

Every operation runs inside the channel's lock and returns the resulting
``TimerSnapshot``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any, Protocol

from obs_timer.core.errors import TimerServiceError
from obs_timer.models.schema import CONFIG_FIELDS, validate_fields
from obs_timer.models.timer import (
    MAX_ADJUST_MS,
    MAX_DURATION_MS,
    MAX_NEGATIVE_DURATION_MS,
    EndBehavior,
    Timer,
    TimerMode,
    TimerSnapshot,
)
from obs_timer.repositories.base import TimerStore
from obs_timer.services.channel_hub import ENDED, ChannelHub
from obs_timer.services.channel_locks import ChannelLocks
from obs_timer.utils import clamp, format_time, now_ms

logger = logging.getLogger(__name__)


class TickControl(Protocol):
    def start(self, channel: str, *, end_notified: bool = False) -> None: ...

    def stop(self, channel: str) -> None: ...


def _persistable(remaining_ms: int) -> int:
    return clamp(remaining_ms, -MAX_DURATION_MS, MAX_DURATION_MS)


class TimerEngine:
    """Transition logic over per-channel timer state."""

    def __init__(
        self,
        store: TimerStore,
        hub: ChannelHub | None = None,
        *,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.store = store
        self.hub = hub
        self.clock = clock
        self.locks = ChannelLocks()
        self.scheduler: TickControl | None = None

    def bind_scheduler(self, scheduler: TickControl) -> None:
        self.scheduler = scheduler

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def snapshot(self, timer: Timer, now: int | None = None) -> TimerSnapshot:
        remaining = timer.live_remaining(self.clock() if now is None else now)
        return TimerSnapshot.from_timer(timer, remaining, format_time(remaining, timer.format))

    def _start_ticking(self, channel: str, *, end_notified: bool = False) -> None:
        if self.scheduler is not None:
            self.scheduler.start(channel, end_notified=end_notified)

    def _stop_ticking(self, channel: str) -> None:
        if self.scheduler is not None:
            self.scheduler.stop(channel)

    async def _resolve_end(self, timer: Timer, remaining: int) -> Timer:
        """Apply the end behavior to a countdown at or below zero.

        ``negative`` timers keep running until they pass the overrun floor;
        every other behavior stops at zero.
        """
        if timer.end_behavior is EndBehavior.NEGATIVE:
            if remaining >= -MAX_NEGATIVE_DURATION_MS:
                return timer
            final = _persistable(remaining)
            logger.info(f"Channel '{timer.channel}' passed the negative overrun limit")
        else:
            final = 0

        updated = await self.store.update(
            timer.channel,
            {"is_running": False, "remaining_ms": final, "started_at": None},
        )
        self._stop_ticking(timer.channel)
        return updated

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def get_state(self, channel: str) -> TimerSnapshot:
        async with self.locks.hold(channel):
            timer = await self.store.get_or_create(channel)
            return self.snapshot(timer)

    async def start(self, channel: str) -> TimerSnapshot:
        async with self.locks.hold(channel):
            timer = await self.store.get_or_create(channel)
            if timer.is_running:
                return self.snapshot(timer)

            now = self.clock()
            timer = await self.store.update(channel, {"is_running": True, "started_at": now})
            self._start_ticking(channel)
            logger.debug(f"Started '{channel}' at {timer.remaining_ms}ms")
            return self.snapshot(timer, now)

    async def stop(self, channel: str) -> TimerSnapshot:
        async with self.locks.hold(channel):
            timer = await self.store.get_or_create(channel)
            if not timer.is_running:
                return self.snapshot(timer)

            now = self.clock()
            timer = await self.store.update(
                channel,
                {
                    "is_running": False,
                    "remaining_ms": _persistable(timer.live_remaining(now)),
                    "started_at": None,
                },
            )
            self._stop_ticking(channel)
            logger.debug(f"Stopped '{channel}' at {timer.remaining_ms}ms")
            return self.snapshot(timer, now)

    async def reset(self, channel: str, duration_ms: int | None = None) -> TimerSnapshot:
        async with self.locks.hold(channel):
            timer = await self.store.get_or_create(channel)
            duration = timer.duration_ms if duration_ms is None else duration_ms

            timer = await self.store.update(
                channel,
                {
                    "is_running": False,
                    "duration_ms": duration,
                    "remaining_ms": timer.reset_value(duration),
                    "started_at": None,
                },
            )
            self._stop_ticking(channel)
            return self.snapshot(timer)

    async def set(
        self,
        channel: str,
        *,
        duration_ms: int | None = None,
        mode: TimerMode | str | None = None,
        remaining_ms: int | None = None,
    ) -> TimerSnapshot:
        """Overwrite duration, mode and/or remaining; always leaves the timer stopped.

        A duration or mode change puts remaining back at the start value for
        the resulting mode. An explicit ``remaining_ms`` is applied last and
        wins over that recompute.
        """
        async with self.locks.hold(channel):
            timer = await self.store.get_or_create(channel)
            updates: dict[str, Any] = {"is_running": False, "started_at": None}

            new_mode = timer.mode if mode is None else TimerMode(mode)
            new_duration = timer.duration_ms if duration_ms is None else duration_ms
            if duration_ms is not None:
                updates["duration_ms"] = duration_ms
            if mode is not None:
                updates["mode"] = new_mode
            if duration_ms is not None or mode is not None:
                updates["remaining_ms"] = new_duration if new_mode is TimerMode.COUNTDOWN else 0
            if remaining_ms is not None:
                updates["remaining_ms"] = remaining_ms

            timer = await self.store.update(channel, updates)
            self._stop_ticking(channel)
            return self.snapshot(timer)

    async def adjust(self, channel: str, delta_ms: int) -> TimerSnapshot:
        """Shift the timer by *delta_ms*; the result never goes below zero."""
        delta_ms = clamp(delta_ms, -MAX_ADJUST_MS, MAX_ADJUST_MS)
        async with self.locks.hold(channel):
            timer = await self.store.get_or_create(channel)
            now = self.clock()
            new_remaining = clamp(timer.live_remaining(now) + delta_ms, 0, MAX_DURATION_MS)

            updates: dict[str, Any] = {"remaining_ms": new_remaining}
            if timer.is_running:
                updates["started_at"] = now
            timer = await self.store.update(channel, updates)
            return self.snapshot(timer, now)

    async def update_config(self, channel: str, patch: Mapping[str, Any]) -> TimerSnapshot:
        """Apply the valid display/end-behavior fields of *patch*."""
        async with self.locks.hold(channel):
            fields = validate_fields(patch, allowed=CONFIG_FIELDS)
            if fields:
                timer = await self.store.update(channel, fields)
            else:
                timer = await self.store.get_or_create(channel)
            return self.snapshot(timer)

    async def handle_timer_end(self, channel: str) -> TimerSnapshot | None:
        """Resolve a countdown that reached zero and announce it.

        Returns None (and announces nothing) if the channel is no longer a
        running countdown at or below zero by the time the lock is held.
        """
        async with self.locks.hold(channel):
            timer = await self.store.get_or_create(channel)
            now = self.clock()
            remaining = timer.live_remaining(now)
            if not (timer.is_running and timer.mode is TimerMode.COUNTDOWN and remaining <= 0):
                return None

            timer = await self._resolve_end(timer, remaining)
            snapshot = self.snapshot(timer, now)

        logger.info(f"Timer ended on '{channel}' ({timer.end_behavior})")
        if self.hub is not None:
            await self.hub.broadcast(
                channel, ENDED, {"channel": channel, "behavior": str(timer.end_behavior)}
            )
        return snapshot

    async def enforce_overrun_floor(self, channel: str) -> TimerSnapshot | None:
        """Stop a ``negative`` timer that ran past the overrun floor, silently.

        Returns the stopped snapshot, or None if nothing changed.
        """
        async with self.locks.hold(channel):
            timer = await self.store.get_or_create(channel)
            now = self.clock()
            remaining = timer.live_remaining(now)
            if not (timer.is_running and timer.mode is TimerMode.COUNTDOWN and remaining <= 0):
                return None
            updated = await self._resolve_end(timer, remaining)
            if updated.is_running:
                return None
            return self.snapshot(updated, now)

    async def restore_timers(self) -> int:
        """Resume channels that were running when the process last stopped.

        Downtime counts as elapsed time. Countdowns that ran out while the
        process was down are resolved by their end behavior. Returns the
        number of channels that resumed ticking.
        """
        resumed = 0
        for stored in await self.store.list_all():
            if not stored.is_running or stored.started_at is None:
                continue
            channel = stored.channel
            try:
                async with self.locks.hold(channel):
                    if await self._restore_one(channel):
                        resumed += 1
            except TimerServiceError as e:
                logger.error(f"Failed to restore timer for '{channel}': {e.message}")
        if resumed:
            logger.info(f"Restored {resumed} running timer(s)")
        return resumed

    async def _restore_one(self, channel: str) -> bool:
        timer = await self.store.get_or_create(channel)
        if not timer.is_running or timer.started_at is None:
            return False

        now = self.clock()
        remaining = timer.live_remaining(now)
        past_end = timer.mode is TimerMode.COUNTDOWN and remaining <= 0

        if past_end:
            timer = await self._resolve_end(timer, remaining)
            if not timer.is_running:
                logger.info(f"Timer for '{channel}' ended while the server was down")
                return False

        await self.store.update(
            channel, {"remaining_ms": _persistable(remaining), "started_at": now}
        )
        self._start_ticking(channel, end_notified=past_end)
        logger.info(f"Restored timer for channel '{channel}'")
        return True

    async def cleanup_stale(self, max_age_days: int) -> int:
        deleted = await self.store.delete_stale(max_age_days)
        if deleted:
            logger.info(f"Cleaned up {deleted} stale channel(s)")
        return deleted
