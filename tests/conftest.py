"""Shared fixtures: a controllable clock, in-memory store and fake sessions."""

from __future__ import annotations

from typing import Any

import pytest

from obs_timer.repositories import InMemoryTimerRepository
from obs_timer.services import ChannelHub, TimerEngine

T0 = 1_700_000_000_000


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start: int = T0) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class FakeSession:
    """Collects every envelope sent to it."""

    def __init__(self, *, fail: bool = False) -> None:
        self.messages: list[dict[str, Any]] = []
        self.fail = fail

    async def send_json(self, data: Any) -> None:
        if self.fail:
            raise ConnectionError("socket closed")
        self.messages.append(data)

    def events(self, name: str | None = None) -> list[dict[str, Any]]:
        return [m for m in self.messages if name is None or m["event"] == name]


class RecordingScheduler:
    """Stands in for ``BroadcastScheduler`` and records start/stop requests."""

    def __init__(self) -> None:
        self.running: dict[str, bool] = {}
        self.calls: list[tuple[str, str]] = []

    def start(self, channel: str, *, end_notified: bool = False) -> None:
        self.calls.append(("start", channel))
        self.running[channel] = end_notified

    def stop(self, channel: str) -> None:
        self.calls.append(("stop", channel))
        self.running.pop(channel, None)

    def is_ticking(self, channel: str) -> bool:
        return channel in self.running


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> InMemoryTimerRepository:
    return InMemoryTimerRepository()


@pytest.fixture
def hub() -> ChannelHub:
    return ChannelHub()


@pytest.fixture
def ticks() -> RecordingScheduler:
    return RecordingScheduler()


@pytest.fixture
def engine(store, hub, clock, ticks) -> TimerEngine:
    engine = TimerEngine(store, hub, clock=clock)
    engine.bind_scheduler(ticks)
    return engine


@pytest.fixture
def viewer(hub) -> FakeSession:
    session = FakeSession()
    hub.join("room", session)
    return session
