"""Periodic sync broadcasts for running channels."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from obs_timer.services.channel_hub import SYNC, ChannelHub

if TYPE_CHECKING:
    from obs_timer.services.timer_engine import TimerEngine

logger = logging.getLogger(__name__)


class ChannelTicker:
    """Sync loop for one run of one channel.

    Created when the channel starts ticking and discarded when it stops, so
    ``end_notified`` covers exactly one start→stop run.
    """

    def __init__(self, scheduler: BroadcastScheduler, channel: str, *, end_notified: bool = False):
        self.scheduler = scheduler
        self.channel = channel
        self.end_notified = end_notified
        self.stopped = False
        self.task: asyncio.Task | None = None

    def start(self) -> None:
        self.task = asyncio.create_task(self._run(), name=f"ticker:{self.channel}")

    def cancel(self) -> None:
        """Stop the loop now.

        A ticker that stops itself from inside its own tick (end of timer) is
        left to finish that tick and exits at the next loop check.
        """
        self.stopped = True
        if self.task is not None and self.task is not asyncio.current_task():
            self.task.cancel()

    async def _run(self) -> None:
        interval = self.scheduler.interval
        while not self.stopped:
            await asyncio.sleep(interval)
            if self.stopped:
                break
            try:
                await self.scheduler.tick(self)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(f"Tick failed for '{self.channel}': {type(e).__name__}: {e}")


class BroadcastScheduler:
    """Owns at most one ``ChannelTicker`` per running channel."""

    def __init__(self, engine: TimerEngine, hub: ChannelHub, interval_ms: int = 1000) -> None:
        self.engine = engine
        self.hub = hub
        self.interval = interval_ms / 1000
        self._tickers: dict[str, ChannelTicker] = {}
        engine.bind_scheduler(self)

    def start(self, channel: str, *, end_notified: bool = False) -> None:
        """Begin ticking *channel*, replacing any ticker it already has."""
        self.stop(channel)
        ticker = ChannelTicker(self, channel, end_notified=end_notified)
        self._tickers[channel] = ticker
        ticker.start()
        logger.debug(f"Ticking '{channel}' every {self.interval:g}s")

    def stop(self, channel: str) -> None:
        ticker = self._tickers.pop(channel, None)
        if ticker is not None:
            ticker.cancel()
            logger.debug(f"Stopped ticking '{channel}'")

    def is_ticking(self, channel: str) -> bool:
        return channel in self._tickers

    @property
    def active_channels(self) -> list[str]:
        return sorted(self._tickers)

    async def tick(self, ticker: ChannelTicker) -> None:
        """Broadcast the channel's state, then handle a zero crossing.

        The end event goes out once per run; later ticks past zero only
        enforce the overrun floor for ``negative`` timers.
        """
        channel = ticker.channel
        state = await self.engine.get_state(channel)
        if ticker.stopped:
            return
        await self.hub.broadcast(channel, SYNC, state.to_payload())

        if not state.has_crossed_zero:
            return
        if not ticker.end_notified:
            if await self.engine.handle_timer_end(channel) is not None:
                ticker.end_notified = True
        else:
            await self.engine.enforce_overrun_floor(channel)

    async def shutdown(self) -> None:
        """Cancel every ticker and wait for them to finish."""
        tickers = list(self._tickers.values())
        self._tickers.clear()
        for ticker in tickers:
            ticker.cancel()
        tasks = [t.task for t in tickers if t.task is not None]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info(f"Broadcast scheduler stopped ({len(tickers)} ticker(s))")
