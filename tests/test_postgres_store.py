"""Repository and engine against a real PostgreSQL with the shipped schema.

Uses ``OBS_TIMER_TEST_DATABASE_URL`` when set, otherwise an embedded server
from ``pgserver``. Skipped when neither is available.
"""

import os

import asyncpg
import pytest

from obs_timer.migrations.runner import MigrationRunner
from obs_timer.repositories import TimerRepository
from obs_timer.repositories.timer import _timer_cache
from obs_timer.services import ChannelHub, TimerEngine

from .conftest import T0, FakeClock, RecordingScheduler


@pytest.fixture(scope="session")
def database_url(tmp_path_factory):
    url = os.environ.get("OBS_TIMER_TEST_DATABASE_URL")
    if url:
        yield url
        return
    pgserver = pytest.importorskip("pgserver")
    server = pgserver.get_server(tmp_path_factory.mktemp("pgdata"), cleanup_mode="stop")
    try:
        yield server.get_uri()
    finally:
        server.cleanup()


@pytest.fixture
async def pool(database_url):
    pool = await asyncpg.create_pool(database_url, min_size=1, max_size=2)
    async with pool.acquire() as conn:
        await conn.execute("DROP TABLE IF EXISTS timers, schema_migrations")
    await MigrationRunner(pool).run_pending()
    _timer_cache.clear()
    yield pool
    _timer_cache.clear()
    await pool.close()


@pytest.fixture
def repo(pool):
    return TimerRepository(pool)


def make_engine(repo, clock):
    engine = TimerEngine(repo, ChannelHub(), clock=clock)
    engine.bind_scheduler(RecordingScheduler())
    return engine


async def fetch_row(pool, channel):
    async with pool.acquire() as conn:
        return await conn.fetchrow(
            "SELECT remaining_ms, is_running, started_at FROM timers WHERE channel = $1",
            channel,
        )


class TestPostgresTimerStore:
    async def test_update_creates_missing_row(self, repo, pool):
        timer = await repo.update("fresh", {"font_size": 90})
        assert timer.font_size == 90
        assert timer.remaining_ms == 300_000

    async def test_start_and_stop_write_the_anchor_together(self, repo, pool):
        clock = FakeClock()
        engine = make_engine(repo, clock)

        await engine.start("room")
        row = await fetch_row(pool, "room")
        assert row["is_running"] is True
        assert row["started_at"] == T0

        clock.advance(10_000)
        await engine.stop("room")
        row = await fetch_row(pool, "room")
        assert row["is_running"] is False
        assert row["started_at"] is None
        assert row["remaining_ms"] == 290_000

    async def test_adjust_running_timer_moves_the_anchor(self, repo, pool):
        clock = FakeClock()
        engine = make_engine(repo, clock)
        await engine.start("room")

        clock.advance(10_000)
        snapshot = await engine.adjust("room", 30_000)

        assert snapshot.remaining_ms == 320_000
        row = await fetch_row(pool, "room")
        assert row["is_running"] is True
        assert row["started_at"] == T0 + 10_000
        assert row["remaining_ms"] == 320_000

    async def test_restore_resumes_running_channel(self, repo, pool):
        clock = FakeClock()
        await make_engine(repo, clock).start("room")

        _timer_cache.clear()
        clock.advance(60_000)
        restarted = make_engine(repo, clock)
        assert await restarted.restore_timers() == 1

        row = await fetch_row(pool, "room")
        assert row["is_running"] is True
        assert row["started_at"] == T0 + 60_000
        assert row["remaining_ms"] == 240_000
        assert restarted.scheduler.is_ticking("room")

    async def test_delete_stale_keeps_recent_rows(self, repo):
        await repo.get_or_create("room")
        assert await repo.delete_stale(30) == 0
        assert [t.channel for t in await repo.list_all()] == ["room"]
