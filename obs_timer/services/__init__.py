"""Services layer - timer state transitions and delivery to sessions."""

from .broadcast_scheduler import BroadcastScheduler, ChannelTicker
from .channel_hub import ChannelHub
from .channel_locks import ChannelLocks
from .timer_engine import TimerEngine

__all__ = [
    "BroadcastScheduler",
    "ChannelHub",
    "ChannelLocks",
    "ChannelTicker",
    "TimerEngine",
]
