"""
Timezone helpers for the scheduler.
All persisted timestamps are UTC; schedule times are wall-clock in the
configured scheduler timezone.
"""
import logging
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)


def get_zone(name: Optional[str]) -> ZoneInfo:
    """Resolve a timezone name, falling back to UTC for unknown names."""
    try:
        return ZoneInfo(name or "UTC")
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone %r, using UTC", name)
        return ZoneInfo("UTC")


def parse_time_of_day(value: str) -> tuple[int, int]:
    """Parse "HH:MM" into (hour, minute). Raises ValueError on bad input."""
    parts = (value or "").strip().split(":")
    if len(parts) != 2:
        raise ValueError(f"Invalid time of day: {value!r}")
    hour, minute = int(parts[0]), int(parts[1])
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ValueError(f"Invalid time of day: {value!r}")
    return hour, minute
