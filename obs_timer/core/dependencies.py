"""Dependency injection utilities for FastAPI"""

from __future__ import annotations

from fastapi import HTTPException
from starlette.requests import HTTPConnection

from obs_timer.services.timer_engine import TimerEngine


def _state_attr(conn: HTTPConnection, name: str):
    value = getattr(conn.app.state, name, None)
    if value is None:
        raise HTTPException(status_code=503, detail="Timer service not ready")
    return value


def get_engine(conn: HTTPConnection) -> TimerEngine:
    return _state_attr(conn, "engine")
