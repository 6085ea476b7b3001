"""Exceptions surfaced to clients as ``error`` events."""

from __future__ import annotations


class TimerServiceError(Exception):
    """Base error; ``message`` is safe to send to the client."""

    default_message = "Request failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidChannelError(TimerServiceError):
    default_message = "Invalid channel name"


class InvalidDurationError(TimerServiceError, ValueError):
    default_message = "Invalid duration value"


class InvalidRequestError(TimerServiceError):
    default_message = "Malformed request"


class NotJoinedError(TimerServiceError):
    default_message = "Not joined to any channel"


class RateLimitExceededError(TimerServiceError):
    default_message = "Rate limit exceeded"


class StoreUnavailableError(TimerServiceError):
    default_message = "Timer store unavailable"
