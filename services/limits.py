"""
Per-user booking limits.

A user may hold at most MAX_BOOKINGS_PER_DAY active bookings starting on one
local calendar day and MAX_BOOKINGS_PER_WEEK starting in one Monday-Sunday
local week. Windows come from utils.clock so they agree with availability.
"""
import logging

from flask import current_app, has_app_context

from models.booking import Booking, ACTIVE_STATUSES
from services.errors import BookingLimitReached
from utils.clock import day_window, to_storage, week_window

logger = logging.getLogger(__name__)

_DEFAULTS = {
    "MAX_BOOKINGS_PER_DAY": 2,
    "MAX_BOOKINGS_PER_WEEK": 7,
}


def _cfg(name: str) -> int:
    if not has_app_context():
        return _DEFAULTS[name]
    return int(current_app.config.get(name, _DEFAULTS[name]))


def count_active_bookings(user_id: int, window_start, window_end, exclude_booking_id=None) -> int:
    q = Booking.query.filter(
        Booking.user_id == user_id,
        Booking.status.in_(ACTIVE_STATUSES),
        Booking.start_time >= to_storage(window_start),
        Booking.start_time < to_storage(window_end),
    )
    if exclude_booking_id is not None:
        q = q.filter(Booking.id != exclude_booking_id)
    return q.count()


def booking_limit_status(user_id: int, start, exclude_booking_id=None) -> dict:
    max_day = _cfg("MAX_BOOKINGS_PER_DAY")
    max_week = _cfg("MAX_BOOKINGS_PER_WEEK")

    day_count = count_active_bookings(user_id, *day_window(start), exclude_booking_id=exclude_booking_id)
    week_count = count_active_bookings(user_id, *week_window(start), exclude_booking_id=exclude_booking_id)

    return {
        "day": {"count": day_count, "max": max_day, "remaining": max(0, max_day - day_count)},
        "week": {"count": week_count, "max": max_week, "remaining": max(0, max_week - week_count)},
    }


def check_booking_limit(user_id: int, start, exclude_booking_id=None) -> None:
    """
    Raises BookingLimitReached when one more booking starting at `start`
    would exceed the day or the week limit. The day check runs first.
    """
    status = booking_limit_status(user_id, start, exclude_booking_id=exclude_booking_id)

    day = status["day"]
    if day["count"] >= day["max"]:
        logger.info("User %s hit the daily booking limit (%d)", user_id, day["max"])
        raise BookingLimitReached(
            f"You have reached the maximum of {day['max']} bookings for this day.",
            scope="day",
        )

    week = status["week"]
    if week["count"] >= week["max"]:
        logger.info("User %s hit the weekly booking limit (%d)", user_id, week["max"])
        raise BookingLimitReached(
            f"You have reached the maximum of {week['max']} active bookings for this week.",
            scope="week",
        )
