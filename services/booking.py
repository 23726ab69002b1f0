"""Create, cancel and reschedule bookings without ever double-booking a court."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional, Sequence

from flask import current_app, has_app_context
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from models import db
from models.booking import Booking, BookingStatus, ACTIVE_STATUSES
from models.court import Court
from models.equipment import Equipment, EquipmentRequest, EquipmentRequestItem
from models.facility import Facility
from services.availability import active_courts, facility_hours
from services.errors import (
    BookingError,
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
from services.limits import check_booking_limit
from utils.clock import as_utc, local_date, local_instant, to_storage, utcnow
from utils.notify import booking_cancelled, booking_created, booking_rescheduled, emit

logger = logging.getLogger(__name__)


def _cutoff_minutes() -> int:
    if not has_app_context():
        return 30
    return int(current_app.config.get("CHANGE_CUTOFF_MINUTES", 30))


@dataclass
class BookingRequest:
    user_id: Optional[int]
    facility_id: int
    start: datetime
    end: datetime
    court_id: Optional[int] = None  # None means any available court
    equipment_ids: Sequence[int] = field(default_factory=tuple)
    note: Optional[str] = None


def _lock_facility(facility_id: int) -> Facility:
    """
    First statement of every booking write. Concurrent writers for the same
    facility queue behind this UPDATE until the holder commits.
    """
    result = db.session.execute(
        update(Facility)
        .where(Facility.id == facility_id)
        .values(lock_version=Facility.lock_version + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise FacilityNotFound()
    facility = db.session.get(Facility, facility_id)
    db.session.refresh(facility)
    return facility


def _check_window(facility: Facility, start: datetime, end: datetime, now: datetime) -> None:
    if start <= now:
        raise InvalidBookingRequest("Cannot book past/started slots")

    open_time, close_time = facility_hours(facility)
    day = local_date(start)
    open_at = local_instant(day, open_time)
    close_at = local_instant(day, close_time)
    if start < open_at or end > close_at:
        raise InvalidBookingRequest(
            f"Bookings must be within operating hours ({open_time}-{close_time})"
        )


def _has_conflict(court_id: int, start: datetime, end: datetime, exclude_booking_id=None) -> bool:
    q = Booking.query.filter(
        Booking.court_id == court_id,
        Booking.status.in_(ACTIVE_STATUSES),
        Booking.start_time < to_storage(end),
        Booking.end_time > to_storage(start),
    )
    if exclude_booking_id is not None:
        q = q.filter(Booking.id != exclude_booking_id)
    return db.session.query(q.exists()).scalar()


def _first_free_court(facility_id: int, start: datetime, end: datetime) -> Optional[Court]:
    courts = active_courts(facility_id)
    if not courts:
        return None

    busy = {
        row.court_id
        for row in db.session.query(Booking.court_id).filter(
            Booking.court_id.in_([c.id for c in courts]),
            Booking.status.in_(ACTIVE_STATUSES),
            Booking.start_time < to_storage(end),
            Booking.end_time > to_storage(start),
        )
    }
    for court in courts:
        if court.id not in busy:
            return court
    return None


def _resolve_court(facility: Facility, court_id: int) -> Court:
    court = db.session.get(Court, court_id)
    if not court or court.facility_id != facility.id or not court.is_active:
        raise InvalidCourt("Invalid court for this facility")
    return court


def _attach_equipment(booking: Booking, facility: Facility, equipment_ids, note) -> Optional[EquipmentRequest]:
    ids = list(dict.fromkeys(int(e) for e in equipment_ids))
    if not ids:
        return None

    found = {
        e.id for e in Equipment.query.filter(
            Equipment.id.in_(ids),
            Equipment.facility_id == facility.id,
        )
    }
    missing = [e for e in ids if e not in found]
    if missing:
        raise InvalidBookingRequest(f"Unknown equipment for this facility: {missing}")

    # stock is not reserved here; staff check it when issuing
    req = EquipmentRequest(booking=booking, status="pending", note=note)
    for eid in ids:
        req.items.append(EquipmentRequestItem(equipment_id=eid, qty=1))
    db.session.add(req)
    return req


def _is_overlap_violation(exc) -> bool:
    # PostgreSQL exclusion_violation from ex_bookings_no_overlap
    return getattr(getattr(exc, "orig", None), "pgcode", None) == "23P01"


def _storage_error(exc: SQLAlchemyError, action: str) -> BookingError:
    db.session.rollback()
    if isinstance(exc, IntegrityError) and _is_overlap_violation(exc):
        return NoCourtAvailable("This court is already booked for that time")
    logger.exception("Storage failure while trying to %s", action)
    return InternalError()


def _commit_or_raise(action: str):
    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        raise _storage_error(exc, action) from exc


def create_booking(req: BookingRequest, now: Optional[datetime] = None) -> Booking:
    """
    Validate and write a new confirmed booking.

    Order of checks: court resolution, booking limits, then the overlap check
    under the facility lock right before the insert. Raises a BookingError
    subclass for every rejected request.
    """
    if req.user_id is None:
        raise Unauthorized()

    start, end = as_utc(req.start), as_utc(req.end)
    if end <= start:
        raise InvalidBookingRequest("end must be after start")
    now = as_utc(now or utcnow())

    try:
        facility = _lock_facility(req.facility_id)
        if not facility.is_active:
            raise InvalidBookingRequest("Facility is not accepting bookings")
        _check_window(facility, start, end, now)

        court = _resolve_court(facility, req.court_id) if req.court_id is not None else None

        check_booking_limit(req.user_id, start)

        if court is not None:
            if _has_conflict(court.id, start, end):
                raise NoCourtAvailable("This court is already booked for that time")
        else:
            court = _first_free_court(facility.id, start, end)
            if court is None:
                raise NoCourtAvailable()

        booking = Booking(
            user_id=req.user_id,
            facility_id=facility.id,
            court_id=court.id,
            start_time=to_storage(start),
            end_time=to_storage(end),
            status=BookingStatus.CONFIRMED,
        )
        db.session.add(booking)
        _attach_equipment(booking, facility, req.equipment_ids or (), req.note)
        db.session.flush()
    except BookingError:
        db.session.rollback()
        raise
    except SQLAlchemyError as exc:
        raise _storage_error(exc, "create booking") from exc

    _commit_or_raise("create booking")
    logger.info("Booking %s created on court %s for user %s", booking.id, booking.court_id, booking.user_id)

    emit(booking_created, booking)
    return booking


def _load_changeable(user_id, booking_id, now, as_admin, verb) -> Booking:
    if user_id is None:
        raise Unauthorized()

    booking = db.session.get(Booking, booking_id)
    if not booking:
        raise BookingNotFound()
    if not as_admin and booking.user_id != user_id:
        raise Forbidden()
    if booking.status not in ACTIVE_STATUSES:
        raise InvalidBookingRequest(f"Booking cannot be {verb}")

    if not as_admin:
        cutoff = _cutoff_minutes()
        if as_utc(booking.start_time) - now <= timedelta(minutes=cutoff):
            raise ChangeWindowClosed(
                f"Booking cannot be {verb} within {cutoff} minutes of start time"
            )
    return booking


def cancel_booking(
    user_id: Optional[int],
    booking_id: int,
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
    as_admin: bool = False,
) -> Booking:
    now = as_utc(now or utcnow())
    booking = _load_changeable(user_id, booking_id, now, as_admin, "cancelled")

    booking.status = BookingStatus.CANCELLED
    booking.cancelled_at = to_storage(now)
    booking.cancel_reason = reason[:120] if reason else None

    for eq_req in booking.equipment_requests:
        if eq_req.status in ("pending", "approved"):
            eq_req.status = "done"

    _commit_or_raise("cancel booking")
    logger.info("Booking %s cancelled by user %s", booking.id, user_id)

    emit(booking_cancelled, booking, reason=reason)
    return booking


def reschedule_booking(
    user_id: Optional[int],
    booking_id: int,
    new_start: datetime,
    now: Optional[datetime] = None,
) -> Booking:
    """Move a booking on the same court, keeping its duration."""
    now = as_utc(now or utcnow())
    booking = _load_changeable(user_id, booking_id, now, False, "rescheduled")

    new_start = as_utc(new_start)
    new_end = new_start + (booking.end_time - booking.start_time)

    try:
        facility = _lock_facility(booking.facility_id)
        db.session.refresh(booking)
        if booking.status not in ACTIVE_STATUSES:
            raise InvalidBookingRequest("Booking cannot be rescheduled")
        _check_window(facility, new_start, new_end, now)

        court = db.session.get(Court, booking.court_id)
        if not court or not court.is_active:
            raise InvalidCourt("This court is no longer available for booking")

        check_booking_limit(booking.user_id, new_start, exclude_booking_id=booking.id)

        if _has_conflict(court.id, new_start, new_end, exclude_booking_id=booking.id):
            raise NoCourtAvailable("Time slot is already taken")

        booking.start_time = to_storage(new_start)
        booking.end_time = to_storage(new_end)
        booking.status = BookingStatus.RESCHEDULED
        db.session.flush()
    except BookingError:
        db.session.rollback()
        raise
    except SQLAlchemyError as exc:
        raise _storage_error(exc, "reschedule booking") from exc

    _commit_or_raise("reschedule booking")
    logger.info("Booking %s rescheduled to %s", booking.id, booking.start_time.isoformat())

    emit(booking_rescheduled, booking)
    return booking


def complete_past_bookings(now: Optional[datetime] = None) -> int:
    """Mark active bookings that have ended as completed."""
    now = to_storage(now or utcnow())
    rows = Booking.query.filter(
        Booking.status.in_(ACTIVE_STATUSES),
        Booking.end_time <= now,
    ).all()
    for b in rows:
        b.status = BookingStatus.COMPLETED
    _commit_or_raise("complete past bookings")
    return len(rows)
