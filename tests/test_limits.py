from datetime import timedelta

import pytest

from models.booking import BookingStatus
from services.booking import BookingRequest, create_booking
from services.errors import BookingLimitReached
from services.limits import booking_limit_status, check_booking_limit
from utils.clock import local_instant

from conftest import MONDAY, NOW


def request_for(user, facility, day, start, court=None):
    starts_at = local_instant(day, start)
    return BookingRequest(
        user_id=user.id,
        facility_id=facility.id,
        court_id=court.id if court else None,
        start=starts_at,
        end=starts_at + timedelta(hours=1),
    )


def test_third_booking_on_same_local_day_is_rejected(facility, court1, court2, player, add_booking):
    add_booking(player, court1, MONDAY, "10:00")
    add_booking(player, court2, MONDAY, "15:00")

    with pytest.raises(BookingLimitReached) as exc:
        create_booking(request_for(player, facility, MONDAY, "19:00", court1), now=NOW)

    assert exc.value.scope == "day"
    assert exc.value.status == 403
    assert "maximum of 2 bookings for this day" in exc.value.message


def test_other_day_still_allowed(facility, court1, player, add_booking):
    add_booking(player, court1, MONDAY, "10:00")
    add_booking(player, court1, MONDAY, "11:00")

    booking = create_booking(request_for(player, facility, MONDAY + timedelta(days=1), "10:00"), now=NOW)
    assert booking.id is not None


def test_cancelled_and_completed_bookings_do_not_count(facility, court1, player, add_booking):
    add_booking(player, court1, MONDAY, "10:00", status=BookingStatus.CANCELLED)
    add_booking(player, court1, MONDAY, "11:00", status=BookingStatus.COMPLETED)
    add_booking(player, court1, MONDAY, "12:00")

    check_booking_limit(player.id, local_instant(MONDAY, "18:00"))


def test_rescheduled_bookings_count(facility, court1, player, add_booking):
    add_booking(player, court1, MONDAY, "10:00", status=BookingStatus.RESCHEDULED)
    add_booking(player, court1, MONDAY, "11:00")

    with pytest.raises(BookingLimitReached):
        check_booking_limit(player.id, local_instant(MONDAY, "18:00"))


def test_day_boundary_follows_local_time(facility, court1, player, add_booking):
    # Both fall on 2030-03-04 in UTC, but on different local days
    add_booking(player, court1, MONDAY, "23:00")
    add_booking(player, court1, MONDAY + timedelta(days=1), "07:00")

    status = booking_limit_status(player.id, local_instant(MONDAY + timedelta(days=1), "10:00"))
    assert status["day"]["count"] == 1
    assert status["day"]["remaining"] == 1


def test_week_limit(facility, court1, player, add_booking):
    for offset in range(7):
        add_booking(player, court1, MONDAY + timedelta(days=offset), "10:00")

    with pytest.raises(BookingLimitReached) as exc:
        check_booking_limit(player.id, local_instant(MONDAY + timedelta(days=5), "18:00"))
    assert exc.value.scope == "week"
    assert "7 active bookings for this week" in exc.value.message

    # next Monday starts a new week
    check_booking_limit(player.id, local_instant(MONDAY + timedelta(days=7), "10:00"))


def test_day_limit_is_reported_before_week_limit(facility, court1, player, add_booking):
    for offset in range(5):
        add_booking(player, court1, MONDAY + timedelta(days=offset), "10:00")
    add_booking(player, court1, MONDAY + timedelta(days=5), "10:00")
    add_booking(player, court1, MONDAY + timedelta(days=5), "11:00")

    with pytest.raises(BookingLimitReached) as exc:
        check_booking_limit(player.id, local_instant(MONDAY + timedelta(days=5), "18:00"))
    assert exc.value.scope == "day"


def test_limits_follow_config(app, facility, court1, player, add_booking):
    app.config["MAX_BOOKINGS_PER_DAY"] = 1
    add_booking(player, court1, MONDAY, "10:00")

    with pytest.raises(BookingLimitReached):
        check_booking_limit(player.id, local_instant(MONDAY, "18:00"))


def test_limit_status_excludes_given_booking(facility, court1, player, add_booking):
    first = add_booking(player, court1, MONDAY, "10:00")
    add_booking(player, court1, MONDAY, "11:00")

    status = booking_limit_status(player.id, local_instant(MONDAY, "10:00"))
    assert status["day"] == {"count": 2, "max": 2, "remaining": 0}
    assert status["week"] == {"count": 2, "max": 7, "remaining": 5}

    status = booking_limit_status(player.id, local_instant(MONDAY, "10:00"), exclude_booking_id=first.id)
    assert status["day"]["count"] == 1


def test_limits_are_per_user(facility, court1, court2, player, player2, add_booking):
    add_booking(player, court1, MONDAY, "10:00")
    add_booking(player, court1, MONDAY, "11:00")

    booking = create_booking(request_for(player2, facility, MONDAY, "12:00", court2), now=NOW)
    assert booking.user_id == player2.id
