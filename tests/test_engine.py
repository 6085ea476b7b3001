"""Tests for the timer synchronization engine."""

import pytest

from obs_timer.models import EndBehavior, TimerMode
from obs_timer.services.channel_hub import ENDED

from .conftest import T0

# ============================================================
# get_state
# ============================================================


class TestGetState:
    async def test_stopped_timer_reports_stored_value(self, engine, clock):
        state = await engine.get_state("room")
        clock.advance(10_000)
        assert (await engine.get_state("room")).remaining_ms == state.remaining_ms == 300_000

    async def test_running_countdown_subtracts_elapsed(self, engine, store, clock):
        await store.update("room", {"remaining_ms": 60_000, "is_running": True, "started_at": T0})
        clock.advance(1_500)
        state = await engine.get_state("room")
        assert state.remaining_ms == 58_500
        assert state.formatted == "58"

    async def test_running_countup_adds_elapsed(self, engine, store, clock):
        await store.update(
            "room",
            {"mode": "countup", "remaining_ms": 1_000, "is_running": True, "started_at": T0},
        )
        clock.advance(4_000)
        assert (await engine.get_state("room")).remaining_ms == 5_000

    async def test_does_not_write(self, engine, store):
        await engine.get_state("room")
        before = (await store.get_or_create("room")).updated_at
        await engine.get_state("room")
        assert (await store.get_or_create("room")).updated_at == before


# ============================================================
# start / stop
# ============================================================


class TestStartStop:
    async def test_start_anchors_and_ticks(self, engine, ticks, clock):
        state = await engine.start("room")
        assert state.is_running is True
        assert state.started_at == clock.now
        assert ticks.is_ticking("room")

    async def test_start_is_idempotent(self, engine, ticks, clock):
        await engine.start("room")
        clock.advance(2_000)
        state = await engine.start("room")
        assert state.started_at == T0
        assert state.remaining_ms == 298_000
        assert ticks.calls == [("start", "room")]

    async def test_start_then_stop_keeps_remaining(self, engine):
        await engine.start("room")
        state = await engine.stop("room")
        assert state.remaining_ms == 300_000
        assert state.is_running is False
        assert state.started_at is None

    async def test_stop_commits_live_value(self, engine, store, ticks, clock):
        await engine.start("room")
        clock.advance(2_000)
        state = await engine.stop("room")
        assert state.remaining_ms == 298_000
        assert (await store.get_or_create("room")).remaining_ms == 298_000
        assert not ticks.is_ticking("room")

    async def test_stop_when_stopped_is_noop(self, engine, ticks):
        state = await engine.stop("room")
        assert state.is_running is False
        assert ticks.calls == []

    async def test_stop_clamps_overrun_into_schema_range(self, engine, store, clock):
        await store.update(
            "room",
            {
                "end_behavior": "negative",
                "remaining_ms": -86_000_000,
                "is_running": True,
                "started_at": T0,
            },
        )
        clock.advance(1_000_000)
        state = await engine.stop("room")
        assert state.remaining_ms == -86_400_000


# ============================================================
# reset / set
# ============================================================


class TestReset:
    async def test_reset_running_countdown(self, engine, ticks, clock):
        await engine.start("room")
        clock.advance(5_000)
        state = await engine.reset("room")
        assert state.is_running is False
        assert state.started_at is None
        assert state.remaining_ms == 300_000
        assert not ticks.is_ticking("room")

    async def test_reset_with_duration(self, engine):
        state = await engine.reset("room", 90_000)
        assert state.duration_ms == 90_000
        assert state.remaining_ms == 90_000

    async def test_reset_countup_goes_to_zero(self, engine, store, clock):
        await store.update(
            "room",
            {"mode": "countup", "remaining_ms": 7_000, "is_running": True, "started_at": T0},
        )
        clock.advance(3_000)
        state = await engine.reset("room", 60_000)
        assert state.remaining_ms == 0
        assert state.duration_ms == 60_000


class TestSet:
    async def test_mode_change_recomputes_remaining(self, engine, store):
        await store.update("room", {"remaining_ms": 45_000})
        state = await engine.set("room", mode=TimerMode.COUNTUP)
        assert state.mode is TimerMode.COUNTUP
        assert state.remaining_ms == 0

    async def test_duration_change_recomputes_countdown(self, engine):
        state = await engine.set("room", duration_ms=120_000)
        assert state.duration_ms == 120_000
        assert state.remaining_ms == 120_000

    async def test_explicit_remaining_wins(self, engine):
        state = await engine.set(
            "room", duration_ms=120_000, mode="countdown", remaining_ms=10_000
        )
        assert state.duration_ms == 120_000
        assert state.remaining_ms == 10_000

    async def test_remaining_only(self, engine):
        state = await engine.set("room", remaining_ms=42_000)
        assert state.remaining_ms == 42_000
        assert state.duration_ms == 300_000

    async def test_always_stops(self, engine, ticks):
        await engine.start("room")
        state = await engine.set("room", remaining_ms=1_000)
        assert state.is_running is False
        assert state.started_at is None
        assert not ticks.is_ticking("room")


# ============================================================
# adjust
# ============================================================


class TestAdjust:
    async def test_adds_to_stopped_timer(self, engine):
        state = await engine.adjust("room", 30_000)
        assert state.remaining_ms == 330_000

    async def test_never_below_zero(self, engine):
        await engine.set("room", remaining_ms=5_000)
        state = await engine.adjust("room", -60_000)
        assert state.remaining_ms == 0

    @pytest.mark.parametrize("delta", [-3_600_000, -1, 0, 1, 3_600_000])
    async def test_never_negative_from_zero(self, engine, delta):
        await engine.set("room", remaining_ms=0)
        assert (await engine.adjust("room", delta)).remaining_ms >= 0

    async def test_delta_clamped_to_an_hour(self, engine):
        state = await engine.adjust("room", 10 * 3_600_000)
        assert state.remaining_ms == 300_000 + 3_600_000

    async def test_running_timer_is_reanchored(self, engine, clock):
        await engine.start("room")
        clock.advance(10_000)
        state = await engine.adjust("room", 60_000)
        assert state.is_running is True
        assert state.started_at == clock.now
        assert state.remaining_ms == 350_000

        clock.advance(1_000)
        assert (await engine.get_state("room")).remaining_ms == 349_000


# ============================================================
# update_config
# ============================================================


class TestUpdateConfig:
    async def test_applies_valid_fields(self, engine):
        state = await engine.update_config(
            "room", {"end_behavior": "confetti", "font_size": 120, "format": "MM:SS"}
        )
        assert state.end_behavior is EndBehavior.CONFETTI
        assert state.font_size == 120
        assert state.formatted == "05:00"

    async def test_drops_invalid_and_state_fields(self, engine):
        state = await engine.update_config(
            "room",
            {"font_size": 1, "mode": "countup", "remaining_ms": 1, "text_color": "#123456"},
        )
        assert state.font_size == 72
        assert state.mode is TimerMode.COUNTDOWN
        assert state.remaining_ms == 300_000
        assert state.text_color == "#123456"

    async def test_empty_patch_returns_state(self, engine):
        state = await engine.update_config("room", {})
        assert state.channel == "room"


# ============================================================
# End of timer
# ============================================================


async def _expired(store, behavior: str, remaining: int = 1_000):
    await store.update(
        "room",
        {
            "end_behavior": behavior,
            "remaining_ms": remaining,
            "is_running": True,
            "started_at": T0,
        },
    )


class TestHandleTimerEnd:
    @pytest.mark.parametrize("behavior", ["stop", "hide", "confetti"])
    async def test_stops_at_zero(self, engine, store, clock, ticks, viewer, behavior):
        await _expired(store, behavior)
        ticks.running["room"] = False
        clock.advance(1_200)

        state = await engine.handle_timer_end("room")
        assert state is not None
        assert state.is_running is False
        assert state.remaining_ms == 0
        assert state.started_at is None
        assert not ticks.is_ticking("room")
        assert viewer.events(ENDED) == [
            {"event": ENDED, "data": {"channel": "room", "behavior": behavior}}
        ]

    async def test_negative_keeps_running(self, engine, store, clock, viewer):
        await _expired(store, "negative")
        clock.advance(3_000)

        state = await engine.handle_timer_end("room")
        assert state.is_running is True
        assert state.remaining_ms == -2_000
        assert len(viewer.events(ENDED)) == 1

    async def test_negative_past_floor_stops(self, engine, store, clock):
        await _expired(store, "negative")
        clock.advance(90_000_000)

        state = await engine.handle_timer_end("room")
        assert state.is_running is False
        assert state.remaining_ms == -86_400_000

    async def test_ignores_timer_that_is_no_longer_expired(self, engine, store, viewer):
        await _expired(store, "stop", remaining=60_000)
        assert await engine.handle_timer_end("room") is None
        assert viewer.events(ENDED) == []

    async def test_ignores_countup(self, engine, store, clock):
        await store.update(
            "room", {"mode": "countup", "remaining_ms": 0, "is_running": True, "started_at": T0}
        )
        clock.advance(1_000)
        assert await engine.handle_timer_end("room") is None


class TestEnforceOverrunFloor:
    async def test_within_floor_changes_nothing(self, engine, store, clock):
        await _expired(store, "negative")
        clock.advance(60_000)
        assert await engine.enforce_overrun_floor("room") is None
        assert (await engine.get_state("room")).is_running is True

    async def test_past_floor_stops_silently(self, engine, store, clock, viewer):
        await _expired(store, "negative")
        clock.advance(86_400_000 + 2_000)

        state = await engine.enforce_overrun_floor("room")
        assert state is not None
        assert state.is_running is False
        assert state.remaining_ms == -86_400_000
        assert viewer.events(ENDED) == []


class TestCleanup:
    async def test_delegates_to_store(self, engine, store):
        store.delete_stale = _returns(3)
        assert await engine.cleanup_stale(30) == 3


def _returns(value):
    async def fake(*args, **kwargs):
        return value

    return fake
