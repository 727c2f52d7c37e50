from __future__ import annotations

import math
from typing import Iterator, Sequence, TypeVar


T = TypeVar("T")

HOURS_PER_DAY = 8


def parse_int(raw_value: object, default: int | None = None) -> int | None:
    """Return ``raw_value`` as an ``int`` or ``default`` when it cannot be parsed."""

    if raw_value is None or isinstance(raw_value, bool):
        return default
    if isinstance(raw_value, int):
        return raw_value
    try:
        return int(str(raw_value).strip())
    except (TypeError, ValueError):
        return default


def chunked(items: Sequence[T], size: int) -> Iterator[list[T]]:
    if size < 1:
        raise ValueError("size must be a positive integer")
    for start in range(0, len(items), size):
        yield list(items[start : start + size])


def minutes_to_hours(minutes: int, round_up: bool = True) -> int:
    if round_up:
        return int(math.ceil(minutes / 60))
    return int(round(minutes / 60))


def hours_to_minutes(hours: int) -> int:
    return hours * 60


def format_duration(value: int | None, unit: str = "minutes") -> str:
    """Render a duration the way the back-office displays it.

    Minutes are shown as ``45 min``, ``2h`` or ``1h 15min``. Hours are grouped
    into working days of eight hours (``3 jours 2h``).
    """

    value = value or 0
    if unit == "minutes":
        if value < 60:
            return f"{value} min"
        hours, minutes = divmod(value, 60)
        if minutes == 0:
            return f"{hours}h"
        return f"{hours}h {minutes}min"
    if unit == "hours":
        if value < HOURS_PER_DAY:
            return f"{value}h"
        days, hours = divmod(value, HOURS_PER_DAY)
        label = f"{days} jour{'s' if days > 1 else ''}"
        if hours == 0:
            return label
        return f"{label} {hours}h"
    return f"{value} {unit}"
