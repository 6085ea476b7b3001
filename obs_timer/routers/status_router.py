"""Read-only timer state over HTTP."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException

from obs_timer.core.dependencies import get_engine
from obs_timer.core.errors import InvalidChannelError, StoreUnavailableError
from obs_timer.models import TimerSnapshot
from obs_timer.services.timer_engine import TimerEngine
from obs_timer.utils import require_channel

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/room", tags=["room"])


@router.get("/{channel}", response_model=TimerSnapshot)
async def get_room(
    channel: str,
    engine: TimerEngine = Depends(get_engine),
) -> TimerSnapshot:
    """Current state of a channel, created with defaults if it does not exist.

    Public: overlays poll this when a WebSocket is not an option.
    """
    try:
        name = require_channel(channel)
    except InvalidChannelError as e:
        raise HTTPException(status_code=400, detail=e.message) from e

    try:
        return await engine.get_state(name)
    except StoreUnavailableError as e:
        logger.warning(f"Room lookup failed for '{name}': {e.message}")
        raise HTTPException(status_code=503, detail=e.message) from e
