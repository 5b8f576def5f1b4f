"""Duration and instant helpers shared by the collection handles."""

from __future__ import annotations

import time
from datetime import datetime, timedelta
from enum import Enum


class TimeUnit(Enum):
    """Unit of a ``(duration, unit)`` pair, valued in milliseconds."""

    MILLISECONDS = 1
    SECONDS = 1000
    MINUTES = 60_000
    HOURS = 3_600_000
    DAYS = 86_400_000

    def to_millis(self, duration: float) -> int:
        return int(round(duration * self.value))

    def to_seconds(self, duration: float) -> float:
        return duration * self.value / 1000.0


def duration_millis(duration: float | timedelta, unit: TimeUnit = TimeUnit.SECONDS) -> int:
    """Convert *duration* (number in *unit*, or ``timedelta``) to milliseconds.

    Raises ``ValueError`` for negative durations.
    """
    if isinstance(duration, timedelta):
        millis = int(round(duration.total_seconds() * 1000))
    elif isinstance(duration, (int, float)) and not isinstance(duration, bool):
        millis = unit.to_millis(duration)
    else:
        raise TypeError(f"duration must be a number or timedelta, got {type(duration).__name__}")
    if millis < 0:
        raise ValueError(f"duration must be >= 0, got {duration!r}")
    return millis


def epoch_millis(instant: datetime | int | float) -> int:
    """Return *instant* as milliseconds since the Unix epoch.

    Numbers are taken to already be epoch milliseconds.  Naive datetimes are
    interpreted in local time, as ``datetime.timestamp`` does.
    """
    if isinstance(instant, datetime):
        return int(round(instant.timestamp() * 1000))
    if isinstance(instant, (int, float)) and not isinstance(instant, bool):
        return int(instant)
    raise TypeError(f"instant must be a datetime or epoch millis, got {type(instant).__name__}")


def now_millis() -> int:
    return int(time.time() * 1000)
