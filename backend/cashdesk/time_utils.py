from __future__ import annotations

import re
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo


TIME_OF_DAY_RE = re.compile(r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$")


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """
    Serializes datetime to ISO-8601 with trailing 'Z'.
    If dt is naive, it is treated as UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt_utc = dt.astimezone(timezone.utc).replace(microsecond=0)
    return dt_utc.isoformat().replace("+00:00", "Z")


def is_time_of_day(value: Optional[str]) -> bool:
    """True for 'H:MM' / 'HH:MM' strings within a 24h clock."""
    return bool(value) and bool(TIME_OF_DAY_RE.match(value))


def business_tz(name: str) -> tzinfo:
    if name.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(name)


def business_date(dt: datetime, tz_name: str) -> date:
    """Calendar date of a UTC-naive timestamp in the business timezone."""
    aware = dt.replace(tzinfo=timezone.utc).astimezone(business_tz(tz_name))
    return aware.date()


def day_bounds_utc(day: date, tz_name: str) -> tuple[datetime, datetime]:
    """
    UTC-naive [start, end) covering one local calendar day.

    Local 00:00:00 up to (not including) the next local midnight, so the
    whole of 23:59:59.999 is inside the day.
    """
    tz = business_tz(tz_name)
    start_local = datetime.combine(day, time.min, tzinfo=tz)
    end_local = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    return (
        start_local.astimezone(timezone.utc).replace(tzinfo=None),
        end_local.astimezone(timezone.utc).replace(tzinfo=None),
    )
