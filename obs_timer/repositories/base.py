"""Channel state store interface."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Protocol

from obs_timer.models.timer import Timer


class TimerStore(Protocol):
    """Durable timer records keyed by channel.

    ``update`` persists only the fields that pass ``validate_fields`` and
    returns the full record, creating it first if needed. A failed write
    raises ``StoreUnavailableError`` and leaves the record untouched.
    """

    async def get_or_create(self, channel: str) -> Timer: ...

    async def update(self, channel: str, fields: Mapping[str, Any]) -> Timer: ...

    async def list_all(self) -> list[Timer]: ...

    async def delete_stale(self, max_age_days: int) -> int: ...

    async def check_health(self) -> bool: ...
