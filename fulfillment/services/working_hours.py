"""Working-window clamping for planned movement timestamps."""
from datetime import datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from fulfillment.config import settings


def next_working_instant(
    instant: datetime,
    tz_name: Optional[str] = None,
    start_hour: Optional[int] = None,
    end_hour: Optional[int] = None,
    weekend_day: Optional[int] = None,
) -> datetime:
    """
    Return the first instant at or after ``instant`` inside the working window.

    The window is [start_hour, end_hour] local time on every day except the
    weekend day. Instants before the window move to the window start of the
    same day, instants after it move to the window start of the next day, and
    weekend days are skipped (repeatedly, if the next day is a weekend too).
    The result is returned in UTC.

    Naive datetimes are taken as UTC.
    """
    zone = ZoneInfo(tz_name or settings.WORK_TIMEZONE)
    start = time(start_hour if start_hour is not None else settings.WORK_START_HOUR, 0)
    end = time(end_hour if end_hour is not None else settings.WORK_END_HOUR, 0)
    weekend = weekend_day if weekend_day is not None else settings.WORK_WEEKEND_DAY

    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    local = instant.astimezone(zone)

    while True:
        if local.weekday() == weekend:
            local = _window_start(local + timedelta(days=1), start, zone)
            continue

        wall = local.timetz().replace(tzinfo=None)
        if wall < start:
            local = _window_start(local, start, zone)
        elif wall > end:
            local = _window_start(local + timedelta(days=1), start, zone)
            continue
        return local.astimezone(timezone.utc)


def _window_start(day: datetime, start: time, zone: ZoneInfo) -> datetime:
    return datetime.combine(day.date(), start, tzinfo=zone)
