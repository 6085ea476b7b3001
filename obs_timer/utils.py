"""Time formatting, duration parsing and channel name helpers."""

from __future__ import annotations

import math
import re
import time
from typing import Any

from obs_timer.core.errors import InvalidChannelError, InvalidDurationError
from obs_timer.models.timer import MAX_ADJUST_MS, MAX_DURATION_MS, TimeFormat

_CHANNEL_STRIP = re.compile(r"[^a-z0-9_-]")
_DIGITS = re.compile(r"[0-9]+")
_TOKEN_FORM = re.compile(r"(?:[0-9]+[hms])+")
_TOKEN = re.compile(r"([0-9]+)([hms])")
_UNIT_SECONDS = {"h": 3600, "m": 60, "s": 1}

# Longer text is never a sane duration
MAX_DURATION_TEXT = 32


def now_ms() -> int:
    """Wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def sanitize_channel(channel: Any) -> str | None:
    """Lowercase *channel* and keep only ``[a-z0-9_-]``; None if nothing is left."""
    if not channel or not isinstance(channel, str):
        return None
    sanitized = _CHANNEL_STRIP.sub("", channel.strip().lower())
    return sanitized or None


def require_channel(channel: Any) -> str:
    sanitized = sanitize_channel(channel)
    if sanitized is None:
        raise InvalidChannelError()
    return sanitized


def format_time(ms: int, fmt: TimeFormat | str = TimeFormat.AUTO) -> str:
    """Render milliseconds as a clock string.

    Negative values get a leading ``-``. ``MM:SS`` folds hours into minutes,
    ``SS`` shows total seconds, ``auto`` drops leading zero units.
    """
    prefix = "-" if ms < 0 else ""
    abs_ms = abs(int(ms))

    hours = abs_ms // 3_600_000
    minutes = (abs_ms % 3_600_000) // 60_000
    seconds = (abs_ms % 60_000) // 1000

    if fmt == TimeFormat.HH_MM_SS:
        return f"{prefix}{hours:02d}:{minutes:02d}:{seconds:02d}"
    if fmt == TimeFormat.MM_SS:
        return f"{prefix}{hours * 60 + minutes:02d}:{seconds:02d}"
    if fmt == TimeFormat.SS:
        return f"{prefix}{abs_ms // 1000}"

    if hours > 0:
        return f"{prefix}{hours:02d}:{minutes:02d}:{seconds:02d}"
    if minutes > 0:
        return f"{prefix}{minutes:02d}:{seconds:02d}"
    return f"{prefix}{seconds:02d}"


def parse_duration(value: Any) -> int:
    """Convert a duration input to milliseconds.

    Numbers are taken as milliseconds. Strings accept ``H:MM:SS``, ``MM:SS``,
    ``1h30m45s`` (h/m/s in any order, each once) and bare integers, which
    are seconds. A leading ``-`` negates the result.

    Raises:
        InvalidDurationError: the input matches none of the forms.
    """
    if isinstance(value, bool):
        raise InvalidDurationError()
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            raise InvalidDurationError()
        return int(value)
    if not isinstance(value, str):
        raise InvalidDurationError()

    text = value.strip().lower().replace(" ", "")
    sign = 1
    if text.startswith("-"):
        sign, text = -1, text[1:]
    elif text.startswith("+"):
        text = text[1:]
    if not text or len(text) > MAX_DURATION_TEXT:
        raise InvalidDurationError()

    if ":" in text:
        parts = text.split(":")
        if len(parts) not in (2, 3) or not all(_DIGITS.fullmatch(p) for p in parts):
            raise InvalidDurationError()
        numbers = [int(p) for p in parts]
        if len(numbers) == 2:
            numbers.insert(0, 0)
        h, m, s = numbers
        return sign * (h * 3600 + m * 60 + s) * 1000

    if _DIGITS.fullmatch(text):
        return sign * int(text) * 1000

    # Units in any order, each at most once
    if not _TOKEN_FORM.fullmatch(text):
        raise InvalidDurationError()
    seen: set[str] = set()
    seconds = 0
    for amount, unit in _TOKEN.findall(text):
        if unit in seen:
            raise InvalidDurationError()
        seen.add(unit)
        seconds += int(amount) * _UNIT_SECONDS[unit]
    return sign * seconds * 1000


def clamp(value: int, lo: int, hi: int) -> int:
    return max(lo, min(hi, value))


def coerce_duration(value: Any) -> int:
    """Parse a duration input and clamp it into ``[0, 24h]``."""
    return clamp(parse_duration(value), 0, MAX_DURATION_MS)


def coerce_delta(value: Any) -> int:
    """Parse an adjustment and clamp it into ``±1h``."""
    return clamp(parse_duration(value), -MAX_ADJUST_MS, MAX_ADJUST_MS)
