"""Tests for application startup and shutdown."""

import asyncio

from starlette.testclient import TestClient

from obs_timer.app import create_app
from obs_timer.core.config import Settings
from obs_timer.repositories import InMemoryTimerRepository
from obs_timer.utils import now_ms


class TestLifespan:
    def test_running_timers_resume_on_startup(self):
        store = InMemoryTimerRepository()
        settings = Settings(database_url="", enable_keep_alive=False, sync_interval_ms=60_000)
        app = create_app(settings, store=store)

        asyncio.run(
            store.update(
                "room",
                {"remaining_ms": 600_000, "is_running": True, "started_at": now_ms() - 60_000},
            )
        )

        with TestClient(app) as client:
            assert app.state.scheduler.is_ticking("room")
            state = client.get("/api/room/room").json()
            assert state["is_running"] is True
            assert 535_000 < state["remaining_ms"] <= 540_000

        assert app.state.scheduler.active_channels == []

    def test_without_database_uses_memory_store(self):
        app = create_app(Settings(database_url="", enable_keep_alive=False))
        with TestClient(app):
            assert isinstance(app.state.store, InMemoryTimerRepository)
