"""Overlay viewer client over the session WebSocket."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

import aiohttp
from pydantic import ValidationError

from obs_timer.client.predictor import FrameLoop, TimerPredictor
from obs_timer.services.channel_hub import CONFIG_UPDATED, ENDED, ERROR, INITIAL_STATE, SYNC

logger = logging.getLogger(__name__)

_STATE_EVENTS = (INITIAL_STATE, SYNC, CONFIG_UPDATED)


class OverlayClient:
    """Joins one channel and keeps a ``TimerPredictor`` in step with it.

    ``on_frame`` is called by the frame loop; ``on_end`` receives the
    ``ended`` payload and ``on_error`` the server's error message.
    """

    def __init__(
        self,
        url: str,
        channel: str,
        *,
        on_frame: Callable[[TimerPredictor], Any] | None = None,
        on_end: Callable[[dict[str, Any]], Any] | None = None,
        on_error: Callable[[str], Any] | None = None,
        fps: float = 60,
        predictor: TimerPredictor | None = None,
    ) -> None:
        self.url = url
        self.channel = channel
        self.predictor = predictor or TimerPredictor()
        self.on_frame = on_frame
        self.on_end = on_end
        self.on_error = on_error
        self.frame_loop = FrameLoop(self._render, fps)
        self._session: aiohttp.ClientSession | None = None
        self._ws: aiohttp.ClientWebSocketResponse | None = None

    @property
    def connected(self) -> bool:
        return self._ws is not None and not self._ws.closed

    def _render(self) -> None:
        if self.on_frame is not None and self.predictor.snapshot is not None:
            self.on_frame(self.predictor)

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        self._session = aiohttp.ClientSession()
        try:
            self._ws = await self._session.ws_connect(self.url, heartbeat=30)
        except aiohttp.ClientError:
            await self._session.close()
            self._session = None
            raise
        logger.info(f"Connected to {self.url}")
        await self.send("join", channel=self.channel)
        self.frame_loop.start()

    async def run(self) -> None:
        """Connect and process messages until the socket closes."""
        await self.connect()
        ws = self._ws
        try:
            async for msg in ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    self.handle_message(msg.json())
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    logger.warning(f"WebSocket error: {ws.exception()}")
                    break
        finally:
            await self.close()

    async def close(self) -> None:
        self.frame_loop.stop()
        if self._ws is not None:
            await self._ws.close()
            self._ws = None
        if self._session is not None:
            await self._session.close()
            self._session = None
            logger.info("Disconnected")

    def handle_message(self, message: dict[str, Any]) -> None:
        event = message.get("event")
        data = message.get("data")
        if not isinstance(data, dict):
            data = {}

        if event in _STATE_EVENTS:
            if not data:
                logger.debug(f"Ignoring {event} without a payload")
                return
            try:
                self.predictor.apply(data)
            except ValidationError as e:
                logger.warning(f"Ignoring malformed {event}: {e.error_count()} error(s)")
        elif event == ENDED:
            self.predictor.mark_ended(data.get("behavior", "stop"))
            if self.on_end is not None:
                self.on_end(data)
        elif event == ERROR:
            text = data.get("message", "Unknown error")
            logger.warning(f"Server error: {text}")
            if self.on_error is not None:
                self.on_error(text)
        else:
            logger.debug(f"Ignoring unknown event: {event}")

    # ------------------------------------------------------------------
    # Controls
    # ------------------------------------------------------------------

    async def send(self, action: str, **fields: Any) -> None:
        if self._ws is None:
            raise RuntimeError("Not connected")
        payload = {"action": action}
        payload.update({k: v for k, v in fields.items() if v is not None})
        await self._ws.send_json(payload)

    async def start(self) -> None:
        await self.send("start")

    async def stop(self) -> None:
        await self.send("stop")

    async def reset(self, duration: int | str | None = None) -> None:
        await self.send("reset", duration=duration)

    async def set(
        self,
        duration: int | str | None = None,
        mode: str | None = None,
        remaining: int | str | None = None,
    ) -> None:
        await self.send("set", duration=duration, mode=mode, remaining=remaining)

    async def adjust(self, delta: int | str) -> None:
        await self.send("adjust", delta=delta)

    async def update_config(self, config: dict[str, Any]) -> None:
        await self.send("update-config", config=config)
