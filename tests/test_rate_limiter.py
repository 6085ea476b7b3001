"""Tests for per-session event rate limiting."""

from obs_timer.core.rate_limiter import EventRateLimiter


class Clock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


class TestEventRateLimiter:
    def test_allows_up_to_the_limit(self):
        limiter = EventRateLimiter(max_events=3, window_ms=1000, clock=Clock())
        assert [limiter.allow("start") for _ in range(4)] == [True, True, True, False]

    def test_window_slides(self):
        clock = Clock()
        limiter = EventRateLimiter(max_events=2, window_ms=1000, clock=clock)
        assert limiter.allow("start")
        clock.now += 0.6
        assert limiter.allow("start")
        assert not limiter.allow("start")

        clock.now += 0.5
        assert limiter.allow("start")
        assert not limiter.allow("start")

    def test_events_are_counted_separately(self):
        limiter = EventRateLimiter(max_events=1, window_ms=1000, clock=Clock())
        assert limiter.allow("start")
        assert limiter.allow("stop")
        assert not limiter.allow("start")

    def test_reset(self):
        limiter = EventRateLimiter(max_events=1, window_ms=1000, clock=Clock())
        limiter.allow("adjust")
        limiter.reset()
        assert limiter.allow("adjust")
