"""Timer data models."""

from .timer import (
    EndBehavior,
    TimeFormat,
    Timer,
    TimerMode,
    TimerSnapshot,
)

__all__ = [
    "EndBehavior",
    "TimeFormat",
    "Timer",
    "TimerMode",
    "TimerSnapshot",
]
