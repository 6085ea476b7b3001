"""Channel membership and message delivery for connected sessions."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol

logger = logging.getLogger(__name__)

# Outbound event names
INITIAL_STATE = "initial-state"
SYNC = "sync"
CONFIG_UPDATED = "config-updated"
ENDED = "ended"
ERROR = "error"


class Session(Protocol):
    """Anything that can receive a JSON message (a WebSocket in production)."""

    async def send_json(self, data: Any) -> None: ...


def envelope(event: str, data: Any) -> dict[str, Any]:
    return {"event": event, "data": data}


class ChannelHub:
    """Broadcast groups keyed by channel.

    A session belongs to at most one channel; joining another channel leaves
    the previous one.
    """

    def __init__(self) -> None:
        self._members: dict[str, set[Session]] = {}
        self._channel_of: dict[Session, str] = {}

    def join(self, channel: str, session: Session) -> None:
        self.leave(session)
        self._members.setdefault(channel, set()).add(session)
        self._channel_of[session] = channel

    def leave(self, session: Session) -> str | None:
        channel = self._channel_of.pop(session, None)
        if channel is None:
            return None
        members = self._members.get(channel)
        if members is not None:
            members.discard(session)
            if not members:
                del self._members[channel]
        return channel

    def channel_of(self, session: Session) -> str | None:
        return self._channel_of.get(session)

    def subscriber_count(self, channel: str) -> int:
        return len(self._members.get(channel, ()))

    @property
    def session_count(self) -> int:
        return len(self._channel_of)

    async def send(self, session: Session, event: str, data: Any) -> bool:
        """Deliver one message to one session; False if the session is gone."""
        try:
            await session.send_json(envelope(event, data))
            return True
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.debug(f"Dropping session after failed send: {type(e).__name__}: {e}")
            self.leave(session)
            return False

    async def broadcast(self, channel: str, event: str, data: Any) -> int:
        """Deliver to every session in *channel*; returns the number reached."""
        members = list(self._members.get(channel, ()))
        if not members:
            return 0
        results = await asyncio.gather(*(self.send(s, event, data) for s in members))
        return sum(results)
