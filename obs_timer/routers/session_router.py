"""WebSocket session protocol.

Clients send ``{"action": ...}`` messages and receive ``{"event": ..., "data": ...}``
envelopes. A session must ``join`` a channel before any control action; every
successful control action is followed by a broadcast to the whole channel.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Awaitable, Callable
from typing import Annotated, Any, Literal

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from obs_timer.core.config import Settings
from obs_timer.core.errors import (
    InvalidDurationError,
    InvalidRequestError,
    NotJoinedError,
    RateLimitExceededError,
    TimerServiceError,
)
from obs_timer.core.rate_limiter import EventRateLimiter
from obs_timer.models import TimerMode, TimerSnapshot
from obs_timer.services.channel_hub import (
    CONFIG_UPDATED,
    ERROR,
    INITIAL_STATE,
    SYNC,
    ChannelHub,
)
from obs_timer.services.timer_engine import TimerEngine
from obs_timer.utils import coerce_delta, coerce_duration, require_channel

logger = logging.getLogger(__name__)

router = APIRouter(tags=["session"])


# ============================================
# Inbound Messages
# ============================================


class JoinMessage(BaseModel):
    action: Literal["join"]
    channel: Any = None


class StartMessage(BaseModel):
    action: Literal["start"]


class StopMessage(BaseModel):
    action: Literal["stop"]


class ResetMessage(BaseModel):
    action: Literal["reset"]
    duration: Any = None


class SetMessage(BaseModel):
    action: Literal["set"]
    duration: Any = None
    mode: Any = None
    remaining: Any = None


class AdjustMessage(BaseModel):
    action: Literal["adjust"]
    delta: Any = None


class UpdateConfigMessage(BaseModel):
    action: Literal["update-config"]
    config: dict[str, Any] = Field(default_factory=dict)


ClientMessage = Annotated[
    JoinMessage
    | StartMessage
    | StopMessage
    | ResetMessage
    | SetMessage
    | AdjustMessage
    | UpdateConfigMessage,
    Field(discriminator="action"),
]

_client_message: TypeAdapter[ClientMessage] = TypeAdapter(ClientMessage)


def parse_message(raw: str) -> BaseModel:
    """Decode one inbound frame.

    Raises:
        InvalidRequestError: not JSON, unknown action or wrong field types.
    """
    try:
        return _client_message.validate_json(raw)
    except ValidationError as e:
        first = e.errors()[0]
        if first["type"] == "union_tag_invalid":
            tag = first.get("ctx", {}).get("tag", "")
            raise InvalidRequestError(f"Unknown action: {tag}") from e
        raise InvalidRequestError() from e


# ============================================
# Session
# ============================================


class WebSocketSession:
    """One connected client: its socket plus its own rate limiter."""

    def __init__(self, websocket: WebSocket, limiter: EventRateLimiter) -> None:
        self.id = uuid.uuid4().hex[:8]
        self.websocket = websocket
        self.limiter = limiter

    async def send_json(self, data: Any) -> None:
        await self.websocket.send_json(data)

    def __repr__(self) -> str:
        return f"<WebSocketSession {self.id}>"


# ============================================
# Action Handlers
# ============================================


def _duration_input(value: Any, message: str, coerce: Callable[[Any], int] = coerce_duration):
    if value is None:
        return None
    try:
        return coerce(value)
    except ValueError as e:
        raise InvalidDurationError(message) from e


def _mode_input(value: Any) -> TimerMode | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise InvalidRequestError("Invalid mode")
    try:
        return TimerMode(value)
    except ValueError as e:
        raise InvalidRequestError("Invalid mode") from e


async def _start(engine: TimerEngine, channel: str, msg: StartMessage) -> TimerSnapshot:
    return await engine.start(channel)


async def _stop(engine: TimerEngine, channel: str, msg: StopMessage) -> TimerSnapshot:
    return await engine.stop(channel)


async def _reset(engine: TimerEngine, channel: str, msg: ResetMessage) -> TimerSnapshot:
    duration = _duration_input(msg.duration, "Invalid duration value")
    return await engine.reset(channel, duration)


async def _set(engine: TimerEngine, channel: str, msg: SetMessage) -> TimerSnapshot:
    duration = _duration_input(msg.duration, "Invalid duration value")
    remaining = _duration_input(msg.remaining, "Invalid remaining value")
    mode = _mode_input(msg.mode)
    return await engine.set(channel, duration_ms=duration, mode=mode, remaining_ms=remaining)


async def _adjust(engine: TimerEngine, channel: str, msg: AdjustMessage) -> TimerSnapshot:
    if msg.delta is None:
        raise InvalidDurationError("Invalid adjustment value")
    delta = _duration_input(msg.delta, "Invalid adjustment value", coerce_delta)
    return await engine.adjust(channel, delta)


async def _update_config(
    engine: TimerEngine, channel: str, msg: UpdateConfigMessage
) -> TimerSnapshot:
    return await engine.update_config(channel, msg.config)


Handler = Callable[[TimerEngine, str, Any], Awaitable[TimerSnapshot]]

# action -> (handler, event broadcast on success)
ACTIONS: dict[str, tuple[Handler, str]] = {
    "start": (_start, SYNC),
    "stop": (_stop, SYNC),
    "reset": (_reset, SYNC),
    "set": (_set, SYNC),
    "adjust": (_adjust, SYNC),
    "update-config": (_update_config, CONFIG_UPDATED),
}


async def dispatch(
    session: WebSocketSession, msg: BaseModel, engine: TimerEngine, hub: ChannelHub
) -> None:
    """Run one parsed message for *session*.

    Raises:
        TimerServiceError: reported back to the session as an ``error`` event.
    """
    if isinstance(msg, JoinMessage):
        channel = require_channel(msg.channel)
        state = await engine.get_state(channel)
        hub.join(channel, session)
        logger.debug(f"Session {session.id} joined '{channel}'")
        await hub.send(session, INITIAL_STATE, state.to_payload())
        return

    channel = hub.channel_of(session)
    if channel is None:
        raise NotJoinedError()
    if not session.limiter.allow(msg.action):
        raise RateLimitExceededError()

    handler, event = ACTIONS[msg.action]
    state = await handler(engine, channel, msg)
    await hub.broadcast(channel, event, state.to_payload())


# ============================================
# Endpoint
# ============================================


@router.websocket("/ws")
async def timer_session(websocket: WebSocket) -> None:
    state = websocket.app.state
    settings: Settings = state.settings
    engine: TimerEngine = state.engine
    hub: ChannelHub = state.hub

    await websocket.accept()
    session = WebSocketSession(
        websocket,
        EventRateLimiter(settings.rate_limit_max_events, settings.rate_limit_window_ms),
    )
    logger.debug(f"Session {session.id} connected")

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                msg = parse_message(raw)
                await dispatch(session, msg, engine, hub)
            except TimerServiceError as e:
                await hub.send(session, ERROR, {"message": e.message})
            except WebSocketDisconnect:
                raise
            except Exception:
                logger.exception(f"Unhandled error in session {session.id}")
                await hub.send(session, ERROR, {"message": "Internal error"})
    except WebSocketDisconnect:
        pass
    finally:
        channel = hub.leave(session)
        logger.debug(f"Session {session.id} disconnected (channel={channel})")
