"""
Wall-clock helpers for the operating timezone.

Bookings are stored as naive UTC instants. Everything that reasons about a
calendar day, a week or an opening hour goes through this module so the
availability engine and the booking limits share one boundary definition.
"""
from datetime import date, datetime, time, timedelta

import pytz

from flask import current_app, has_app_context

DEFAULT_TIMEZONE = "Asia/Kuala_Lumpur"


def _configured_zone_name():
    if not has_app_context():
        return DEFAULT_TIMEZONE
    return current_app.config.get("BOOKING_TIMEZONE", DEFAULT_TIMEZONE)


def get_timezone(tz=None):
    """Accepts a pytz zone, a zone name or None (configured zone)."""
    if tz is None:
        tz = _configured_zone_name()
    if isinstance(tz, str):
        return pytz.timezone(tz)
    return tz


def utcnow() -> datetime:
    # naive, same convention as the DateTime columns
    return datetime.now(pytz.UTC).replace(tzinfo=None)


def as_utc(dt: datetime) -> datetime:
    """Naive values are taken to be UTC already."""
    if dt.tzinfo is None:
        return pytz.UTC.localize(dt)
    return dt.astimezone(pytz.UTC)


def to_storage(dt: datetime) -> datetime:
    return as_utc(dt).replace(tzinfo=None)


def parse_hhmm(value) -> time:
    """
    Parse "HH:MM" into a time. "24:00" is returned as time.max so callers
    can tell an end-of-day close apart from midnight.
    """
    if isinstance(value, time):
        return value
    if not isinstance(value, str):
        raise ValueError(f"Invalid time of day: {value!r}")
    parts = value.strip().split(":")
    if len(parts) != 2 or not all(p.isdigit() for p in parts):
        raise ValueError(f"Invalid time of day: {value!r}. Use HH:MM")
    hour, minute = int(parts[0]), int(parts[1])
    if hour == 24 and minute == 0:
        return time.max
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ValueError(f"Invalid time of day: {value!r}")
    return time(hour, minute)


def _localize(tz, naive: datetime) -> datetime:
    # normalize() fixes up wall times that fall in a DST gap
    return tz.normalize(tz.localize(naive))


def local_instant(day: date, time_of_day, tz=None) -> datetime:
    """Wall-clock time on a local date, as an aware UTC datetime."""
    zone = get_timezone(tz)
    t = parse_hhmm(time_of_day)
    if t == time.max:
        local = _localize(zone, datetime.combine(day + timedelta(days=1), time(0, 0)))
    else:
        local = _localize(zone, datetime.combine(day, t))
    return local.astimezone(pytz.UTC)


def to_local(instant: datetime, tz=None) -> datetime:
    return as_utc(instant).astimezone(get_timezone(tz))


def local_date(instant: datetime, tz=None) -> date:
    return to_local(instant, tz).date()


def local_today(now: datetime = None, tz=None) -> date:
    return local_date(now or utcnow(), tz)


def format_hhmm(instant: datetime, tz=None) -> str:
    return to_local(instant, tz).strftime("%H:%M")


def day_window(instant: datetime, tz=None):
    """
    Half-open [local midnight, next local midnight) containing the instant,
    both as aware UTC datetimes.
    """
    day = local_date(instant, tz)
    return (
        local_instant(day, "00:00", tz),
        local_instant(day + timedelta(days=1), "00:00", tz),
    )


def week_window(instant: datetime, tz=None):
    """Half-open [Monday 00:00, next Monday 00:00) in local time, as UTC."""
    day = local_date(instant, tz)
    monday = day - timedelta(days=day.weekday())
    return (
        local_instant(monday, "00:00", tz),
        local_instant(monday + timedelta(days=7), "00:00", tz),
    )


def parse_client_datetime(value: str, tz=None) -> datetime:
    """
    ISO-8601 from a request body. Naive values are local wall-clock time in
    the operating zone; aware values keep their offset. Returns aware UTC.
    """
    dt = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = _localize(get_timezone(tz), dt)
    return dt.astimezone(pytz.UTC)


def isoformat_utc(dt):
    if dt is None:
        return None
    return as_utc(dt).strftime("%Y-%m-%dT%H:%M:%SZ")
