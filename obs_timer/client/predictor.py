"""Local interpolation of the server's timer between syncs."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Any

from obs_timer.models import EndBehavior, TimerMode, TimerSnapshot
from obs_timer.utils import format_time

logger = logging.getLogger(__name__)


def monotonic_ms() -> float:
    return time.monotonic() * 1000


class TimerPredictor:
    """Predicts the live timer value from the last received snapshot.

    Each snapshot replaces the previous one outright together with its local
    receipt time; there is no smoothing between them.
    """

    def __init__(self, clock: Callable[[], float] = monotonic_ms) -> None:
        self._clock = clock
        self.snapshot: TimerSnapshot | None = None
        self.received_at: float = 0.0

    def apply(self, snapshot: TimerSnapshot | dict[str, Any]) -> TimerSnapshot:
        if not isinstance(snapshot, TimerSnapshot):
            snapshot = TimerSnapshot.model_validate(snapshot)
        self.snapshot, self.received_at = snapshot, self._clock()
        return snapshot

    def mark_ended(self, behavior: EndBehavior | str) -> None:
        """Mirror the server's end resolution until the next snapshot arrives.

        The server stops the timer at zero without sending another sync, so
        the last snapshot still says running.
        """
        state = self.snapshot
        if state is None or EndBehavior(behavior) is EndBehavior.NEGATIVE:
            return
        self.snapshot = state.model_copy(
            update={
                "is_running": False,
                "remaining_ms": 0,
                "started_at": None,
                "formatted": format_time(0, state.format),
            }
        )
        self.received_at = self._clock()

    def current_ms(self) -> int:
        state = self.snapshot
        if state is None:
            return 0
        if not state.is_running:
            return state.remaining_ms
        elapsed = int(self._clock() - self.received_at)
        if state.mode is TimerMode.COUNTDOWN:
            return state.remaining_ms - elapsed
        return state.remaining_ms + elapsed

    def display_ms(self) -> int:
        """``current_ms`` with ``stop``/``confetti`` countdowns held at zero."""
        value = self.current_ms()
        state = self.snapshot
        if (
            state is not None
            and state.mode is TimerMode.COUNTDOWN
            and state.end_behavior in (EndBehavior.STOP, EndBehavior.CONFETTI)
            and value < 0
        ):
            return 0
        return value

    def formatted(self) -> str:
        if self.snapshot is None:
            return ""
        return format_time(self.display_ms(), self.snapshot.format)

    @property
    def hidden(self) -> bool:
        """A stopped ``hide`` countdown at or below zero is not shown."""
        state = self.snapshot
        return (
            state is not None
            and state.end_behavior is EndBehavior.HIDE
            and state.mode is TimerMode.COUNTDOWN
            and not state.is_running
            and state.remaining_ms <= 0
        )


class FrameLoop:
    """Calls *callback* once per frame until stopped."""

    def __init__(self, callback: Callable[[], Any], fps: float = 60) -> None:
        self.callback = callback
        self.interval = 1 / fps
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="frame-loop")

    def stop(self) -> None:
        """Cancel the loop; no frame runs after this returns."""
        task, self._task = self._task, None
        if task is not None:
            task.cancel()

    async def _run(self) -> None:
        while True:
            try:
                self.callback()
            except Exception:
                logger.exception("Frame callback failed")
            await asyncio.sleep(self.interval)
