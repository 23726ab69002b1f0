"""
Free-slot computation for courts.

A slot is a whole-hour start time on a local calendar date. A slot is free
when [start, start + duration) fits inside the facility's opening hours,
lies strictly after "now" on the current local date, and does not overlap
any active booking on the court.
"""
import logging
from datetime import date, time, timedelta
from typing import Iterable, Iterator, List, Optional, Tuple

from flask import current_app, has_app_context

from models.booking import Booking, ACTIVE_STATUSES
from models.court import Court
from models.facility import Facility
from utils.clock import (
    as_utc,
    format_hhmm,
    local_date,
    local_instant,
    parse_hhmm,
    to_storage,
    utcnow,
)

logger = logging.getLogger(__name__)

ALLOWED_DURATIONS = (1, 2)

_DEFAULTS = {
    "DEFAULT_OPEN_TIME": "08:00",
    "DEFAULT_CLOSE_TIME": "22:00",
}


def _cfg(name: str):
    if not has_app_context():
        return _DEFAULTS[name]
    return current_app.config.get(name, _DEFAULTS[name])


def overlaps(a_start, a_end, b_start, b_end) -> bool:
    # half-open intervals: touching ends do not overlap
    return a_start < b_end and a_end > b_start


def effective_hours(open_time, close_time) -> Tuple[str, str]:
    return open_time or _cfg("DEFAULT_OPEN_TIME"), close_time or _cfg("DEFAULT_CLOSE_TIME")


def facility_hours(facility) -> Tuple[str, str]:
    """Opening hours of a facility with the configured defaults filled in."""
    return effective_hours(facility.open_time, facility.close_time)


class FreeHours:
    """
    Iterable of free "HH:MM" start times for one court on one local date.

    Every iteration recomputes from the inputs captured at construction, so
    iterating twice yields the same ordered sequence.
    """

    def __init__(
        self,
        open_time: str,
        close_time: str,
        day: date,
        bookings: Iterable[Tuple],
        now=None,
        duration_hours: int = 1,
        tz=None,
    ):
        if duration_hours not in ALLOWED_DURATIONS:
            raise ValueError(f"Duration must be one of {ALLOWED_DURATIONS} hours")

        self.day = day
        self.tz = tz
        self.duration = timedelta(hours=duration_hours)
        self.open_at = local_instant(day, open_time, tz)
        self.close_at = local_instant(day, close_time, tz)
        if self.close_at <= self.open_at:
            raise ValueError("close_time must be after open_time")

        opens = parse_hhmm(open_time)
        self._first_hour = opens.hour + (1 if (opens.minute or opens.second) else 0)

        self.bookings = [(as_utc(start), as_utc(end)) for start, end in bookings]
        self.now = as_utc(now or utcnow())

    def _first_slot(self):
        if self._first_hour > 23:
            return None
        return local_instant(self.day, time(self._first_hour), self.tz)

    def __iter__(self) -> Iterator[str]:
        slot = self._first_slot()
        if slot is None:
            return
        is_today = local_date(self.now, self.tz) == self.day
        step = timedelta(hours=1)

        while slot + self.duration <= self.close_at:
            slot_end = slot + self.duration
            if is_today and slot <= self.now:
                slot += step
                continue
            if not any(overlaps(slot, slot_end, b_start, b_end) for b_start, b_end in self.bookings):
                yield format_hhmm(slot, self.tz)
            slot += step


def compute_free_hours(
    open_time: str,
    close_time: str,
    day: date,
    bookings: Iterable[Tuple],
    now=None,
    duration_hours: int = 1,
    tz=None,
) -> List[str]:
    return list(FreeHours(open_time, close_time, day, bookings, now=now, duration_hours=duration_hours, tz=tz))


def active_courts(facility_id: int) -> List[Court]:
    # name order is the stable scan order for "any available court"
    return (
        Court.query
        .filter_by(facility_id=facility_id, is_active=True)
        .order_by(Court.name.asc(), Court.id.asc())
        .all()
    )


def bookings_touching_day(court_ids, day: date, tz=None) -> List[Booking]:
    if not court_ids:
        return []
    day_start = local_instant(day, "00:00", tz)
    day_end = local_instant(day + timedelta(days=1), "00:00", tz)
    return (
        Booking.query
        .filter(
            Booking.court_id.in_(court_ids),
            Booking.status.in_(ACTIVE_STATUSES),
            Booking.start_time < to_storage(day_end),
            Booking.end_time > to_storage(day_start),
        )
        .order_by(Booking.start_time.asc())
        .all()
    )


def get_facility_availability(
    facility_id: int,
    day: date,
    duration_hours: int = 1,
    now=None,
) -> Optional[dict]:
    """
    Free hours per active court of an active facility on a local date.
    Returns None when the facility does not exist or is inactive.
    """
    facility = Facility.query.filter_by(id=facility_id, is_active=True).first()
    if not facility:
        return None

    courts = active_courts(facility.id)
    bookings = bookings_touching_day([c.id for c in courts], day)
    open_time, close_time = facility_hours(facility)
    now = now or utcnow()

    by_court = {c.id: [] for c in courts}
    for b in bookings:
        by_court[b.court_id].append((b.start_time, b.end_time))

    result = []
    for court in courts:
        free = compute_free_hours(
            open_time,
            close_time,
            day,
            by_court[court.id],
            now=now,
            duration_hours=duration_hours,
        )
        result.append({"court": court, "free_hours": free})

    logger.debug("Availability for facility %s on %s: %d courts", facility.id, day, len(result))
    return {
        "facility": facility,
        "date": day,
        "open_time": open_time,
        "close_time": close_time,
        "duration_hours": duration_hours,
        "courts": result,
    }
