"""Tests for resuming running timers after a restart."""

from obs_timer.core.errors import StoreUnavailableError
from obs_timer.repositories import InMemoryTimerRepository
from obs_timer.services import TimerEngine

from .conftest import T0


async def _running(store, channel="room", **fields):
    values = {"is_running": True, "started_at": T0}
    values.update(fields)
    await store.update(channel, values)


class TestRestoreTimers:
    async def test_downtime_counts_as_elapsed(self, engine, store, clock, ticks):
        await _running(store, remaining_ms=60_000)
        clock.advance(20_000)

        assert await engine.restore_timers() == 1
        timer = await store.get_or_create("room")
        assert timer.remaining_ms == 40_000
        assert timer.started_at == clock.now
        assert ticks.running == {"room": False}

    async def test_countup_resumes(self, engine, store, clock):
        await _running(store, mode="countup", remaining_ms=5_000)
        clock.advance(10_000)

        await engine.restore_timers()
        assert (await engine.get_state("room")).remaining_ms == 15_000

    async def test_expired_countdown_stops_at_zero(self, engine, store, clock, ticks):
        await _running(store, remaining_ms=5_000, end_behavior="confetti")
        clock.advance(60_000)

        assert await engine.restore_timers() == 0
        timer = await store.get_or_create("room")
        assert timer.is_running is False
        assert timer.remaining_ms == 0
        assert timer.started_at is None
        assert ticks.running == {}

    async def test_negative_within_floor_resumes_already_notified(
        self, engine, store, clock, ticks
    ):
        await _running(store, duration_ms=5_000, remaining_ms=5_000, end_behavior="negative")
        clock.advance(65_000)

        assert await engine.restore_timers() == 1
        state = await engine.get_state("room")
        assert state.is_running is True
        assert state.remaining_ms == -60_000
        assert ticks.running == {"room": True}

    async def test_negative_past_floor_ends_stopped(self, engine, store, clock, ticks):
        await _running(store, duration_ms=5_000, remaining_ms=5_000, end_behavior="negative")
        clock.advance(90_000_000)

        assert await engine.restore_timers() == 0
        timer = await store.get_or_create("room")
        assert timer.is_running is False
        assert timer.started_at is None
        assert timer.remaining_ms == -86_400_000
        assert ticks.running == {}

    async def test_skips_stopped_channels(self, engine, store, ticks):
        await store.update("idle", {"remaining_ms": 1_000})
        assert await engine.restore_timers() == 0
        assert ticks.calls == []

    async def test_one_failing_channel_does_not_abort(self, hub, clock, ticks):
        class FlakyStore(InMemoryTimerRepository):
            async def get_or_create(self, channel):
                if channel == "broken":
                    raise StoreUnavailableError()
                return await super().get_or_create(channel)

        store = FlakyStore()
        await _running(store, "broken", remaining_ms=60_000)
        await _running(store, "fine", remaining_ms=60_000)
        engine = TimerEngine(store, hub, clock=clock)
        engine.bind_scheduler(ticks)

        assert await engine.restore_timers() == 1
        assert list(ticks.running) == ["fine"]
