"""Per-channel mutual exclusion for read-modify-write cycles."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field


@dataclass
class _LockEntry:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class ChannelLocks:
    """One lock per channel, alive only while someone holds or awaits it."""

    def __init__(self) -> None:
        self._entries: dict[str, _LockEntry] = {}

    @asynccontextmanager
    async def hold(self, channel: str) -> AsyncIterator[None]:
        entry = self._entries.get(channel)
        if entry is None:
            entry = self._entries[channel] = _LockEntry()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                del self._entries[channel]

    def __len__(self) -> int:
        return len(self._entries)
