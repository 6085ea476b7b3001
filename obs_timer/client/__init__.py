"""Overlay viewer client: snapshot interpolation over the session WebSocket."""

from .overlay import OverlayClient
from .predictor import FrameLoop, TimerPredictor

__all__ = [
    "FrameLoop",
    "OverlayClient",
    "TimerPredictor",
]
