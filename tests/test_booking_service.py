import itertools
from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

from models import db
from models.booking import Booking, BookingStatus, ACTIVE_STATUSES
from models.court import Court
from models.equipment import EquipmentRequest
from models.facility import Facility
from models.notification_log import NotificationLog
from services.booking import (
    BookingRequest,
    cancel_booking,
    complete_past_bookings,
    create_booking,
    reschedule_booking,
)
from services.errors import (
    BookingError,
    BookingLimitReached,
    BookingNotFound,
    ChangeWindowClosed,
    FacilityNotFound,
    Forbidden,
    InternalError,
    InvalidBookingRequest,
    InvalidCourt,
    NoCourtAvailable,
    Unauthorized,
)
from utils.clock import local_instant, to_storage
from utils.notify import booking_created

from conftest import MONDAY, NOW


def make_request(user, facility, start="10:00", hours=1, court=None, day=MONDAY, **kwargs):
    starts_at = local_instant(day, start)
    return BookingRequest(
        user_id=user.id if user else None,
        facility_id=facility.id,
        court_id=court.id if court else None,
        start=starts_at,
        end=starts_at + timedelta(hours=hours),
        **kwargs,
    )


# ---------- create ----------
def test_create_booking_on_requested_court(facility, court2, player):
    booking = create_booking(make_request(player, facility, court=court2), now=NOW)

    assert booking.status == BookingStatus.CONFIRMED
    assert booking.court_id == court2.id
    assert booking.facility_id == facility.id
    assert booking.start_time == to_storage(local_instant(MONDAY, "10:00"))
    assert booking.end_time == to_storage(local_instant(MONDAY, "11:00"))


def test_any_court_scans_by_name(app, make_user):
    facility = Facility(name="Squash Centre", sport_type="squash")
    # inserted out of name order on purpose
    facility.courts = [Court(name="Court B"), Court(name="Court A"), Court(name="Court C")]
    db.session.add(facility)
    db.session.commit()

    picked = [
        create_booking(make_request(make_user(), facility), now=NOW).court.name
        for _ in range(3)
    ]
    assert picked == ["Court A", "Court B", "Court C"]

    with pytest.raises(NoCourtAvailable) as exc:
        create_booking(make_request(make_user(), facility), now=NOW)
    assert exc.value.status == 409


def test_court_from_other_facility_is_rejected(facility, other_facility, player):
    pitch = other_facility.courts[0]

    with pytest.raises(InvalidCourt) as exc:
        create_booking(make_request(player, facility, court=pitch), now=NOW)

    assert exc.value.message == "Invalid court for this facility"
    assert Booking.query.count() == 0


def test_inactive_court_is_rejected(facility, court1, player):
    court1.is_active = False
    db.session.commit()

    with pytest.raises(InvalidCourt):
        create_booking(make_request(player, facility, court=court1), now=NOW)


def test_requested_court_already_taken(facility, court1, player, player2):
    create_booking(make_request(player, facility, court=court1), now=NOW)

    with pytest.raises(NoCourtAvailable):
        create_booking(make_request(player2, facility, start="10:00", hours=2, court=court1), now=NOW)
    assert Booking.query.filter_by(user_id=player2.id).count() == 0


def test_back_to_back_bookings_are_allowed(facility, court1, player, player2):
    create_booking(make_request(player, facility, start="10:00", court=court1), now=NOW)
    second = create_booking(make_request(player2, facility, start="11:00", court=court1), now=NOW)
    assert second.court_id == court1.id


def test_cancelled_booking_frees_the_court(facility, court1, player, player2, add_booking):
    add_booking(player, court1, MONDAY, "10:00", status=BookingStatus.CANCELLED)
    booking = create_booking(make_request(player2, facility, court=court1), now=NOW)
    assert booking.court_id == court1.id


def test_anonymous_user_is_unauthorized(facility):
    with pytest.raises(Unauthorized) as exc:
        create_booking(make_request(None, facility), now=NOW)
    assert exc.value.status == 401


def test_end_must_follow_start(facility, player):
    req = make_request(player, facility)
    req.end = req.start

    with pytest.raises(InvalidBookingRequest):
        create_booking(req, now=NOW)


def test_unknown_facility(facility, player):
    req = make_request(player, facility)
    req.facility_id = 4242

    with pytest.raises(FacilityNotFound):
        create_booking(req, now=NOW)


def test_inactive_facility(facility, player):
    facility.is_active = False
    db.session.commit()

    with pytest.raises(InvalidBookingRequest):
        create_booking(make_request(player, facility), now=NOW)


def test_past_slot_is_rejected(facility, player):
    now = local_instant(MONDAY, "10:00")
    with pytest.raises(InvalidBookingRequest) as exc:
        create_booking(make_request(player, facility, start="10:00"), now=now)
    assert "past" in exc.value.message


@pytest.mark.parametrize("start,hours", [("07:00", 1), ("21:00", 2), ("22:00", 1)])
def test_outside_operating_hours(facility, player, start, hours):
    with pytest.raises(InvalidBookingRequest) as exc:
        create_booking(make_request(player, facility, start=start, hours=hours), now=NOW)
    assert "operating hours" in exc.value.message


def test_slot_ending_at_close_is_allowed(facility, player):
    booking = create_booking(make_request(player, facility, start="20:00", hours=2), now=NOW)
    assert booking.end_time == to_storage(local_instant(MONDAY, "22:00"))


def test_limit_is_checked_before_overlap(facility, court1, court2, player, player2, add_booking):
    add_booking(player, court1, MONDAY, "08:00")
    add_booking(player, court2, MONDAY, "09:00")
    add_booking(player2, court1, MONDAY, "10:00")

    with pytest.raises(BookingLimitReached):
        create_booking(make_request(player, facility, start="10:00", court=court1), now=NOW)


def test_equipment_request_is_attached(facility, court1, player):
    racket = facility.equipment[0]
    booking = create_booking(
        make_request(player, facility, court=court1, equipment_ids=[racket.id, racket.id], note="two left-handed"),
        now=NOW,
    )

    req = EquipmentRequest.query.filter_by(booking_id=booking.id).one()
    assert req.status == "pending"
    assert req.note == "two left-handed"
    assert [(i.equipment_id, i.qty) for i in req.items] == [(racket.id, 1)]
    # stock is only taken when staff issue it
    assert racket.qty_available == 4


def test_unknown_equipment_writes_nothing(facility, player):
    with pytest.raises(InvalidBookingRequest):
        create_booking(make_request(player, facility, equipment_ids=[999]), now=NOW)
    assert Booking.query.count() == 0
    assert EquipmentRequest.query.count() == 0


def test_create_queues_notification(facility, court1, player):
    booking = create_booking(make_request(player, facility, court=court1), now=NOW)

    note = NotificationLog.query.one()
    assert note.kind == "booking_created"
    assert note.booking_id == booking.id
    assert note.start_time == booking.start_time
    assert note.sent_at is None


def test_storage_failure_raises_internal_error(facility, court1, player, monkeypatch):
    def broken_commit():
        raise OperationalError("COMMIT", {}, Exception("disk I/O error"))

    monkeypatch.setattr(db.session, "commit", broken_commit)
    with pytest.raises(InternalError):
        create_booking(make_request(player, facility, court=court1), now=NOW)
    monkeypatch.undo()

    assert Booking.query.count() == 0
    assert NotificationLog.query.count() == 0


def test_failing_receiver_keeps_booking(facility, court1, player, caplog):
    def push_gateway_down(booking, **extra):
        raise RuntimeError("push gateway down")

    with booking_created.connected_to(push_gateway_down):
        booking = create_booking(make_request(player, facility, court=court1), now=NOW)

    db.session.expire_all()
    assert Booking.query.count() == 1
    assert db.session.get(Booking, booking.id).status == BookingStatus.CONFIRMED
    assert "failed for booking-created" in caplog.text


def test_create_bumps_facility_lock_version(facility, player):
    before = facility.lock_version
    create_booking(make_request(player, facility), now=NOW)
    db.session.refresh(facility)
    assert facility.lock_version == before + 1


# ---------- cancel ----------
def test_cancel_booking(facility, court1, player):
    racket = facility.equipment[0]
    booking = create_booking(make_request(player, facility, court=court1, equipment_ids=[racket.id]), now=NOW)

    cancelled = cancel_booking(player.id, booking.id, reason="rain", now=NOW)

    assert cancelled.status == BookingStatus.CANCELLED
    assert cancelled.cancel_reason == "rain"
    assert cancelled.cancelled_at == to_storage(NOW)
    assert EquipmentRequest.query.one().status == "done"
    kinds = [n.kind for n in NotificationLog.query.order_by(NotificationLog.id)]
    assert kinds == ["booking_created", "booking_cancelled"]


def test_cancel_inside_cutoff(facility, player):
    booking = create_booking(make_request(player, facility), now=NOW)
    late = local_instant(MONDAY, "09:40")

    with pytest.raises(ChangeWindowClosed) as exc:
        cancel_booking(player.id, booking.id, now=late)
    assert "30 minutes" in exc.value.message


def test_admin_cancel_ignores_cutoff(facility, player, admin):
    booking = create_booking(make_request(player, facility), now=NOW)
    cancelled = cancel_booking(admin.id, booking.id, now=local_instant(MONDAY, "09:50"), as_admin=True)
    assert cancelled.status == BookingStatus.CANCELLED


def test_cancel_someone_elses_booking(facility, player, player2):
    booking = create_booking(make_request(player, facility), now=NOW)
    with pytest.raises(Forbidden):
        cancel_booking(player2.id, booking.id, now=NOW)


def test_cancel_twice(facility, player):
    booking = create_booking(make_request(player, facility), now=NOW)
    cancel_booking(player.id, booking.id, now=NOW)
    with pytest.raises(InvalidBookingRequest):
        cancel_booking(player.id, booking.id, now=NOW)


def test_cancel_missing_booking(player):
    with pytest.raises(BookingNotFound):
        cancel_booking(player.id, 12345, now=NOW)


# ---------- reschedule ----------
def test_reschedule_keeps_court_and_duration(facility, court2, player):
    booking = create_booking(make_request(player, facility, start="10:00", hours=2, court=court2), now=NOW)

    moved = reschedule_booking(player.id, booking.id, local_instant(MONDAY, "15:00"), now=NOW)

    assert moved.status == BookingStatus.RESCHEDULED
    assert moved.court_id == court2.id
    assert moved.start_time == to_storage(local_instant(MONDAY, "15:00"))
    assert moved.end_time == to_storage(local_instant(MONDAY, "17:00"))
    assert NotificationLog.query.filter_by(kind="booking_rescheduled").count() == 1


def test_reschedule_may_overlap_its_own_old_slot(facility, court1, player):
    booking = create_booking(make_request(player, facility, start="10:00", hours=2, court=court1), now=NOW)
    moved = reschedule_booking(player.id, booking.id, local_instant(MONDAY, "11:00"), now=NOW)
    assert moved.start_time == to_storage(local_instant(MONDAY, "11:00"))


def test_reschedule_into_taken_slot(facility, court1, player, player2):
    mine = create_booking(make_request(player, facility, start="10:00", court=court1), now=NOW)
    create_booking(make_request(player2, facility, start="14:00", court=court1), now=NOW)

    with pytest.raises(NoCourtAvailable) as exc:
        reschedule_booking(player.id, mine.id, local_instant(MONDAY, "14:00"), now=NOW)
    assert exc.value.message == "Time slot is already taken"

    db.session.refresh(mine)
    assert mine.start_time == to_storage(local_instant(MONDAY, "10:00"))
    assert mine.status == BookingStatus.CONFIRMED


def test_reschedule_to_a_full_day(facility, court1, court2, player, add_booking):
    booking = create_booking(make_request(player, facility, court=court1), now=NOW)
    tuesday = MONDAY + timedelta(days=1)
    add_booking(player, court2, tuesday, "10:00")
    add_booking(player, court2, tuesday, "11:00")

    with pytest.raises(BookingLimitReached):
        reschedule_booking(player.id, booking.id, local_instant(tuesday, "15:00"), now=NOW)


def test_reschedule_within_full_day_counts_itself_once(facility, court1, court2, player, add_booking):
    add_booking(player, court2, MONDAY, "08:00")
    booking = create_booking(make_request(player, facility, court=court1), now=NOW)

    moved = reschedule_booking(player.id, booking.id, local_instant(MONDAY, "18:00"), now=NOW)
    assert moved.status == BookingStatus.RESCHEDULED


def test_reschedule_inside_cutoff(facility, player):
    booking = create_booking(make_request(player, facility), now=NOW)
    with pytest.raises(ChangeWindowClosed):
        reschedule_booking(player.id, booking.id, local_instant(MONDAY, "15:00"),
                           now=local_instant(MONDAY, "09:45"))


def test_reschedule_outside_hours(facility, player):
    booking = create_booking(make_request(player, facility), now=NOW)
    with pytest.raises(InvalidBookingRequest):
        reschedule_booking(player.id, booking.id, local_instant(MONDAY, "21:30"), now=NOW)


# ---------- housekeeping ----------
def test_complete_past_bookings(facility, court1, player, add_booking):
    done = add_booking(player, court1, MONDAY, "10:00")
    later = add_booking(player, court1, MONDAY, "15:00")
    cancelled = add_booking(player, court1, MONDAY, "09:00", status=BookingStatus.CANCELLED)

    count = complete_past_bookings(now=local_instant(MONDAY, "12:00"))

    assert count == 1
    assert db.session.get(Booking, done.id).status == BookingStatus.COMPLETED
    assert db.session.get(Booking, later.id).status == BookingStatus.CONFIRMED
    assert db.session.get(Booking, cancelled.id).status == BookingStatus.CANCELLED


def test_no_overlapping_active_bookings_after_many_writes(app, facility, make_user):
    app.config["MAX_BOOKINGS_PER_DAY"] = 100
    app.config["MAX_BOOKINGS_PER_WEEK"] = 100
    user = make_user()
    courts = list(facility.courts) + [None]
    starts = ["08:00", "09:00", "10:00", "11:00", "12:00"]

    accepted = 0
    for court, start, hours in itertools.product(courts, starts, (1, 2)):
        try:
            create_booking(make_request(user, facility, start=start, hours=hours, court=court), now=NOW)
            accepted += 1
        except BookingError:
            pass

    rows = Booking.query.filter(Booking.status.in_(ACTIVE_STATUSES)).all()
    assert len(rows) == accepted > 0
    for a, b in itertools.combinations(rows, 2):
        if a.court_id == b.court_id:
            assert a.end_time <= b.start_time or b.end_time <= a.start_time
