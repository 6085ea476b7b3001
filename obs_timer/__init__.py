"""Shared countdown/count-up timers for stream overlays."""

__version__ = "1.0.0"
