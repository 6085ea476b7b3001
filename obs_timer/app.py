"""FastAPI application factory"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from obs_timer import __version__
from obs_timer.core.config import Settings, get_settings
from obs_timer.core.database import DatabaseManager, PoolConfig
from obs_timer.core.logging import setup_logging
from obs_timer.migrations.runner import MigrationRunner
from obs_timer.repositories import InMemoryTimerRepository, TimerRepository, TimerStore
from obs_timer.routers import session_router, status_router
from obs_timer.services import BroadcastScheduler, ChannelHub, TimerEngine

logger = logging.getLogger(__name__)


async def _heartbeat(app: FastAPI, interval: int = 300) -> None:
    """Periodic heartbeat: log uptime, connected sessions and store status"""
    while True:
        await asyncio.sleep(interval)
        state = app.state
        uptime = int(time.time() - state.start_time)
        store_ok = await state.store.check_health()
        logger.info(
            f"Heartbeat: uptime={uptime}s, sessions={state.hub.session_count}, "
            f"running={len(state.scheduler.active_channels)}, store={store_ok}"
        )


async def _cleanup_loop(engine: TimerEngine, max_age_days: int, interval: int) -> None:
    """Delete idle channels once per *interval* seconds."""
    while True:
        await asyncio.sleep(interval)
        try:
            await engine.cleanup_stale(max_age_days)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Stale channel cleanup failed: {type(e).__name__}: {e}")


async def _open_store(app: FastAPI, settings: Settings) -> TimerStore:
    if not settings.uses_database:
        logger.warning("DATABASE_URL not set, timer state is kept in memory only")
        return InMemoryTimerRepository()

    db_manager = DatabaseManager(settings.database_url, PoolConfig.from_settings(settings))
    await db_manager.connect()
    app.state.db_manager = db_manager
    await MigrationRunner(db_manager.pool).run_pending()
    return TimerRepository(db_manager.pool)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle startup and shutdown"""
    settings: Settings = app.state.settings
    app.state.start_time = time.time()
    tasks: list[asyncio.Task] = []

    # Startup
    logger.info("Starting obs-timer server")
    logger.info(f"Environment: {settings.environment}")

    if app.state.store is None:
        app.state.store = await _open_store(app, settings)

    hub = ChannelHub()
    engine = TimerEngine(app.state.store, hub)
    scheduler = BroadcastScheduler(engine, hub, settings.sync_interval_ms)
    app.state.hub = hub
    app.state.engine = engine
    app.state.scheduler = scheduler

    await engine.restore_timers()

    tasks.append(
        asyncio.create_task(
            _cleanup_loop(engine, settings.room_max_age_days, settings.cleanup_interval_seconds)
        )
    )
    if settings.enable_keep_alive:
        tasks.append(asyncio.create_task(_heartbeat(app, settings.keep_alive_interval)))
        logger.info(f"Heartbeat started (interval={settings.keep_alive_interval}s)")

    yield

    # Shutdown
    logger.info("Shutting down obs-timer server")
    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)
    await scheduler.shutdown()

    db_manager: DatabaseManager | None = getattr(app.state, "db_manager", None)
    if db_manager is not None:
        await db_manager.disconnect()
        logger.info("Database disconnected")


def create_app(settings: Settings | None = None, store: TimerStore | None = None) -> FastAPI:
    """Create and configure FastAPI application

    *store* replaces the store chosen from settings (used by tests).
    """
    settings = settings or get_settings()

    # Setup logging first
    setup_logging(settings)

    app = FastAPI(
        title="obs-timer",
        description="Shared countdown/count-up timers for stream overlays",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )
    app.state.settings = settings
    app.state.store = store
    app.state.start_time = time.time()

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Register routers
    app.include_router(session_router.router)
    app.include_router(status_router.router)

    # Root endpoint
    @app.get("/")
    async def root():
        """Root endpoint - minimal service info"""
        return {"service": "obs-timer", "status": "running"}

    # Liveness probe, no store dependency
    @app.get("/health")
    async def health():
        """Liveness check"""
        return {
            "status": "healthy",
            "uptime_seconds": int(time.time() - app.state.start_time),
        }

    # Detailed status endpoint (includes store health)
    @app.get("/status")
    async def status():
        """Readiness / status endpoint"""
        state = app.state
        store = getattr(state, "store", None)
        scheduler = getattr(state, "scheduler", None)
        hub = getattr(state, "hub", None)
        return {
            "service": "obs-timer",
            "version": __version__,
            "uptime_seconds": int(time.time() - state.start_time),
            "store": "postgres" if settings.uses_database else "memory",
            "store_connected": store is not None and await store.check_health(),
            "running_channels": len(scheduler.active_channels) if scheduler else 0,
            "sessions": hub.session_count if hub else 0,
            "environment": settings.environment,
        }

    # Ping endpoint
    @app.api_route("/ping", methods=["GET", "HEAD"], response_class=PlainTextResponse)
    async def ping():
        """Ping endpoint"""
        return "pong"

    logger.info("FastAPI application configured")

    return app
