"""
Schedule maths and the eligibility gate for scheduled generation.

Everything here except check_eligibility is pure: callers pass `now`
(timezone-aware) and the schedule settings, and get datetimes back.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, tzinfo
from typing import Optional

from autoblog.integrations.base import CostLedger, SettingsProvider
from autoblog.utils.timezone import parse_time_of_day

logger = logging.getLogger(__name__)

MONDAY = 0
DEFAULT_SCHEDULE_TIME = (9, 0)


@dataclass
class Eligibility:
    allowed: bool
    reason: Optional[str] = None


def _at(day: datetime, hour: int, minute: int) -> datetime:
    return day.replace(hour=hour, minute=minute, second=0, microsecond=0)


def _time_of_day(schedule_time: str) -> tuple[int, int]:
    try:
        return parse_time_of_day(schedule_time)
    except ValueError:
        logger.warning("Invalid schedule time %r, using 09:00", schedule_time)
        return DEFAULT_SCHEDULE_TIME


def compute_next_run(
    frequency: str,
    schedule_time: str,
    now: datetime,
    tz: Optional[tzinfo] = None,
) -> datetime:
    """
    Next trigger strictly after `now`, as an aware datetime in `tz`.

    hourly:     top of the next hour
    daily:      today at schedule_time if still ahead, else tomorrow
    twicedaily: the earliest future of {t, t+12h} today, else tomorrow at t
    weekly:     next Monday at schedule_time (today if Monday and still ahead)
    """
    if tz is not None:
        now = now.astimezone(tz)

    if frequency == "hourly":
        return now.replace(minute=0, second=0, microsecond=0) + timedelta(hours=1)

    hour, minute = _time_of_day(schedule_time)
    today = _at(now, hour, minute)

    if frequency == "twicedaily":
        for candidate in (today, today + timedelta(hours=12)):
            if candidate > now:
                return candidate
        return today + timedelta(days=1)

    if frequency == "weekly":
        days_ahead = (MONDAY - now.weekday()) % 7
        candidate = today + timedelta(days=days_ahead)
        if candidate <= now:
            candidate += timedelta(days=7)
        return candidate

    if today > now:
        return today
    return today + timedelta(days=1)


def scheduled_times_today(frequency: str, schedule_time: str, now: datetime) -> list[datetime]:
    """The configured trigger times on now's calendar day (empty for hourly)."""
    if frequency == "hourly":
        return []
    hour, minute = _time_of_day(schedule_time)
    first = _at(now, hour, minute)
    if frequency == "twicedaily":
        return [first, first + timedelta(hours=12)]
    return [first]


def within_time_window(
    frequency: str,
    schedule_time: str,
    now: datetime,
    tolerance_minutes: int,
) -> bool:
    """True when now is within ±tolerance of a configured trigger time (always for hourly)."""
    if frequency == "hourly":
        return True
    tolerance = timedelta(minutes=tolerance_minutes)
    for target in scheduled_times_today(frequency, schedule_time, now):
        # A target near midnight can fall on the neighbouring day
        for shifted in (target - timedelta(days=1), target, target + timedelta(days=1)):
            if abs(now - shifted) <= tolerance:
                return True
    return False


async def check_eligibility(
    settings: SettingsProvider,
    ledger: CostLedger,
    now: datetime,
    in_cooldown: bool,
    tolerance_minutes: int,
) -> Eligibility:
    """
    Gate for a scheduled run. Checks run in order, the first failure wins:
    enabled, cooldown, verified credentials, daily limit, budget, time window.
    `now` must already be in the scheduler timezone.
    """
    if not await settings.get("schedule_enabled"):
        return Eligibility(False, "disabled")

    frequency = await settings.get("schedule_frequency")
    schedule_time = await settings.get("schedule_time")
    in_window = within_time_window(frequency, schedule_time, now, tolerance_minutes)

    if in_cooldown and not (in_window and frequency != "hourly"):
        return Eligibility(False, "cooldown")

    if not await settings.get("api_verified"):
        return Eligibility(False, "not_verified")

    if not await ledger.can_generate_today():
        return Eligibility(False, "daily_limit")

    if not await ledger.within_budget():
        return Eligibility(False, "budget_exceeded")

    if not in_window:
        return Eligibility(False, "outside_window")

    if frequency == "weekly" and now.weekday() != MONDAY:
        return Eligibility(False, "not_monday")

    return Eligibility(True)
