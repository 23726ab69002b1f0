from datetime import datetime, timedelta

import pytest

from models import db
from models.booking import BookingStatus
from services.availability import FreeHours, compute_free_hours, get_facility_availability, overlaps
from utils.clock import local_instant

from conftest import MONDAY, NOW

ALL_DAY = [f"{h:02d}:00" for h in range(8, 22)]


def booked(day, start, hours=1):
    starts_at = local_instant(day, start)
    return starts_at, starts_at + timedelta(hours=hours)


def test_overlaps_is_half_open():
    assert overlaps(1, 3, 2, 4)
    assert overlaps(1, 4, 2, 3)
    assert not overlaps(1, 2, 2, 3)
    assert not overlaps(2, 3, 1, 2)


def test_today_starts_strictly_after_now():
    now = local_instant(MONDAY, "09:15")
    free = compute_free_hours("08:00", "22:00", MONDAY, [], now=now)
    assert free == [f"{h:02d}:00" for h in range(10, 22)]


def test_slot_equal_to_now_is_not_free():
    now = local_instant(MONDAY, "10:00")
    free = compute_free_hours("08:00", "22:00", MONDAY, [], now=now)
    assert free[0] == "11:00"


def test_future_day_ignores_current_time():
    assert compute_free_hours("08:00", "22:00", MONDAY, [], now=NOW) == ALL_DAY


def test_booking_removes_overlapping_slot_only():
    free = compute_free_hours("08:00", "22:00", MONDAY, [booked(MONDAY, "14:00")], now=NOW)
    assert "14:00" not in free
    assert "13:00" in free
    assert "15:00" in free
    assert len(free) == len(ALL_DAY) - 1


def test_two_hour_duration():
    free = compute_free_hours("08:00", "22:00", MONDAY, [booked(MONDAY, "14:00")], now=NOW, duration_hours=2)
    assert "13:00" not in free
    assert "14:00" not in free
    assert "12:00" in free
    assert "15:00" in free
    # 20:00-22:00 ends exactly at close
    assert free[-1] == "20:00"


def test_slot_may_end_exactly_at_close():
    free = compute_free_hours("08:00", "22:00", MONDAY, [], now=NOW)
    assert free[-1] == "21:00"
    assert "22:00" not in free


def test_unaligned_opening_rounds_up_to_the_hour():
    free = compute_free_hours("08:30", "12:00", MONDAY, [], now=NOW)
    assert free == ["09:00", "10:00", "11:00"]


def test_close_at_midnight():
    free = compute_free_hours("20:00", "24:00", MONDAY, [], now=NOW)
    assert free == ["20:00", "21:00", "22:00", "23:00"]


def test_naive_booking_times_are_utc():
    # 06:00 UTC is 14:00 in Kuala Lumpur
    bookings = [(datetime(2030, 3, 4, 6, 0), datetime(2030, 3, 4, 7, 0))]
    free = compute_free_hours("08:00", "22:00", MONDAY, bookings, now=NOW)
    assert "14:00" not in free


def test_iterating_twice_gives_same_result():
    hours = FreeHours("08:00", "22:00", MONDAY, [booked(MONDAY, "09:00", 2)], now=NOW)
    first = list(hours)
    assert first == list(hours)
    assert first[0] == "08:00"
    assert first[1] == "11:00"


@pytest.mark.parametrize("duration", [0, 3, 24])
def test_invalid_duration(duration):
    with pytest.raises(ValueError):
        FreeHours("08:00", "22:00", MONDAY, [], now=NOW, duration_hours=duration)


def test_close_before_open_is_rejected():
    with pytest.raises(ValueError):
        FreeHours("22:00", "08:00", MONDAY, [], now=NOW)


def test_facility_availability_per_court(facility, court1, court2, player, add_booking):
    add_booking(player, court1, MONDAY, "14:00")
    add_booking(player, court2, MONDAY, "16:00", status=BookingStatus.CANCELLED)

    data = get_facility_availability(facility.id, MONDAY, now=NOW)

    assert data["open_time"] == "08:00"
    assert data["close_time"] == "22:00"
    by_name = {row["court"].name: row["free_hours"] for row in data["courts"]}
    assert list(by_name) == ["Court 1", "Court 2"]
    assert "14:00" not in by_name["Court 1"]
    # cancelled bookings do not block
    assert by_name["Court 2"] == ALL_DAY


def test_facility_availability_skips_inactive_courts(facility, court2):
    court2.is_active = False
    db.session.commit()

    data = get_facility_availability(facility.id, MONDAY, now=NOW)
    assert [row["court"].name for row in data["courts"]] == ["Court 1"]


def test_facility_availability_uses_default_hours(app, facility):
    facility.open_time = None
    facility.close_time = None
    app.config["DEFAULT_OPEN_TIME"] = "10:00"
    app.config["DEFAULT_CLOSE_TIME"] = "12:00"
    db.session.commit()

    data = get_facility_availability(facility.id, MONDAY, now=NOW)
    assert data["courts"][0]["free_hours"] == ["10:00", "11:00"]


def test_inactive_or_missing_facility(facility):
    assert get_facility_availability(9999, MONDAY, now=NOW) is None

    facility.is_active = False
    db.session.commit()
    assert get_facility_availability(facility.id, MONDAY, now=NOW) is None


def test_booking_spanning_previous_day_is_counted(facility, court1, player, add_booking):
    # 23:00 Sunday to 09:00 Monday
    add_booking(player, court1, MONDAY - timedelta(days=1), "23:00", hours=10)

    data = get_facility_availability(facility.id, MONDAY, now=NOW)
    free = data["courts"][0]["free_hours"]
    assert free[0] == "09:00"
