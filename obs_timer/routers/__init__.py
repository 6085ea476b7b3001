"""API Routers package

WebSocket session protocol and read-only HTTP endpoints.
"""

from . import session_router, status_router

__all__ = [
    "session_router",
    "status_router",
]
