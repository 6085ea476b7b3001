"""Timer state model and snapshot."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict

MAX_DURATION_MS = 24 * 60 * 60 * 1000
MAX_ADJUST_MS = 60 * 60 * 1000
# A negative-behavior timer is force-stopped once it runs this far past zero
MAX_NEGATIVE_DURATION_MS = MAX_DURATION_MS

DEFAULT_DURATION_MS = 5 * 60 * 1000


class TimerMode(StrEnum):
    COUNTDOWN = "countdown"
    COUNTUP = "countup"


class EndBehavior(StrEnum):
    STOP = "stop"
    NEGATIVE = "negative"
    HIDE = "hide"
    CONFETTI = "confetti"


class TimeFormat(StrEnum):
    AUTO = "auto"
    HH_MM_SS = "HH:MM:SS"
    MM_SS = "MM:SS"
    SS = "SS"


@dataclass
class Timer:
    """Persisted timer record for one channel.

    ``remaining_ms`` is the base value committed at the last transition.
    While ``is_running`` the live value is derived from it and ``started_at``
    (epoch milliseconds).
    """

    channel: str
    mode: TimerMode = TimerMode.COUNTDOWN
    duration_ms: int = DEFAULT_DURATION_MS
    remaining_ms: int = DEFAULT_DURATION_MS
    is_running: bool = False
    started_at: int | None = None
    end_behavior: EndBehavior = EndBehavior.STOP
    format: TimeFormat = TimeFormat.AUTO

    # Styling (passed through to overlays untouched)
    font_family: str = "'Roboto Mono', monospace"
    font_size: int = 72
    font_weight: int = 600
    text_color: str = "#FFFFFF"
    shadow_enabled: bool = True
    shadow_color: str = "rgba(0,0,0,0.8)"
    shadow_blur: int = 4
    shadow_offset_x: int = 2
    shadow_offset_y: int = 2
    stroke_enabled: bool = True
    stroke_color: str = "#000000"
    stroke_width: int = 2

    created_at: datetime | None = None
    updated_at: datetime | None = None

    def __post_init__(self) -> None:
        # Rows come back from the database as plain strings
        self.mode = TimerMode(self.mode)
        self.end_behavior = EndBehavior(self.end_behavior)
        self.format = TimeFormat(self.format)

    def live_remaining(self, now_ms: int) -> int:
        """Remaining (or elapsed, for countup) milliseconds at *now_ms*."""
        if not self.is_running or self.started_at is None:
            return self.remaining_ms
        elapsed = now_ms - self.started_at
        if self.mode is TimerMode.COUNTDOWN:
            return self.remaining_ms - elapsed
        return self.remaining_ms + elapsed

    def reset_value(self, duration_ms: int | None = None) -> int:
        """Starting value for the current mode."""
        if self.mode is TimerMode.COUNTUP:
            return 0
        return self.duration_ms if duration_ms is None else duration_ms


class TimerSnapshot(BaseModel):
    """Immutable copy of a timer as sent to clients."""

    model_config = ConfigDict(frozen=True)

    channel: str
    mode: TimerMode
    duration_ms: int
    remaining_ms: int
    is_running: bool
    started_at: int | None = None
    end_behavior: EndBehavior
    format: TimeFormat
    formatted: str

    font_family: str
    font_size: int
    font_weight: int
    text_color: str
    shadow_enabled: bool
    shadow_color: str
    shadow_blur: int
    shadow_offset_x: int
    shadow_offset_y: int
    stroke_enabled: bool
    stroke_color: str
    stroke_width: int

    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_timer(cls, timer: Timer, remaining_ms: int, formatted: str) -> TimerSnapshot:
        data = asdict(timer)
        data.update(remaining_ms=remaining_ms, formatted=formatted)
        return cls(**data)

    @property
    def has_crossed_zero(self) -> bool:
        """A running countdown at or below zero."""
        return self.is_running and self.mode is TimerMode.COUNTDOWN and self.remaining_ms <= 0

    def to_payload(self) -> dict:
        return self.model_dump(mode="json")
