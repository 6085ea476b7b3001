"""Declarative field constraints for timer records.

``TIMER_FIELDS`` is the one place that says which values each persisted field
accepts. Stores validate every update through it; the engine narrows it to
``CONFIG_FIELDS`` for style patches.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Mapping
from typing import Annotated, Any

from pydantic import AfterValidator, BeforeValidator, Field, TypeAdapter, ValidationError

from obs_timer.models.timer import (
    MAX_DURATION_MS,
    EndBehavior,
    TimeFormat,
    TimerMode,
)

logger = logging.getLogger(__name__)


def _whole_number(value: Any) -> Any:
    """Accept ints and finite floats (floored); reject bools and strings."""
    if isinstance(value, bool) or not isinstance(value, int | float):
        raise ValueError("must be a number")
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ValueError("must be finite")
        return math.floor(value)
    return value


def _flag(value: Any) -> Any:
    """Accept booleans and the integers 0/1."""
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    raise ValueError("must be a boolean")


def _positive_or_none(value: int | None) -> int | None:
    if value is not None and value <= 0:
        raise ValueError("must be positive")
    return value


def _int_range(lo: int, hi: int) -> TypeAdapter:
    return TypeAdapter(Annotated[int, BeforeValidator(_whole_number), Field(ge=lo, le=hi)])


def _text(max_length: int) -> TypeAdapter:
    return TypeAdapter(Annotated[str, Field(strict=True, min_length=1, max_length=max_length)])


_FLAG = TypeAdapter(Annotated[bool, BeforeValidator(_flag)])
_COLOR = _text(50)

TIMER_FIELDS: dict[str, TypeAdapter] = {
    # Timer state
    "mode": TypeAdapter(TimerMode),
    "duration_ms": _int_range(0, MAX_DURATION_MS),
    "remaining_ms": _int_range(-MAX_DURATION_MS, MAX_DURATION_MS),
    "is_running": _FLAG,
    "started_at": TypeAdapter(
        Annotated[
            int | None,
            BeforeValidator(lambda v: v if v is None else _whole_number(v)),
            AfterValidator(_positive_or_none),
        ]
    ),
    "end_behavior": TypeAdapter(EndBehavior),
    # Display
    "format": TypeAdapter(TimeFormat),
    "font_family": _text(200),
    "font_size": _int_range(8, 500),
    "font_weight": _int_range(100, 900),
    "text_color": _COLOR,
    "shadow_enabled": _FLAG,
    "shadow_color": _COLOR,
    "shadow_blur": _int_range(0, 100),
    "shadow_offset_x": _int_range(-50, 50),
    "shadow_offset_y": _int_range(-50, 50),
    "stroke_enabled": _FLAG,
    "stroke_color": _COLOR,
    "stroke_width": _int_range(0, 20),
}

STATE_FIELDS = frozenset(
    {"mode", "duration_ms", "remaining_ms", "is_running", "started_at"}
)
CONFIG_FIELDS = frozenset(TIMER_FIELDS) - STATE_FIELDS


def validate_fields(
    updates: Mapping[str, Any],
    allowed: Iterable[str] | None = None,
) -> dict[str, Any]:
    """Return the subset of *updates* that passes the field constraints.

    Unknown fields, fields outside *allowed* and invalid values are dropped
    one by one; valid siblings are kept.
    """
    permitted = TIMER_FIELDS.keys() if allowed is None else set(allowed)
    clean: dict[str, Any] = {}
    for name, value in updates.items():
        adapter = TIMER_FIELDS.get(name)
        if adapter is None or name not in permitted:
            logger.debug(f"Dropping unknown field '{name}'")
            continue
        try:
            clean[name] = adapter.validate_python(value)
        except ValidationError:
            logger.debug(f"Dropping invalid value for '{name}': {value!r}")
    return clean
