"""Channel state stores."""

from .base import TimerStore
from .memory import InMemoryTimerRepository
from .timer import TimerRepository

__all__ = [
    "InMemoryTimerRepository",
    "TimerRepository",
    "TimerStore",
]
