from datetime import date, timedelta

from flask import Blueprint, request, jsonify, g

from models.booking import Booking, BookingStatus
from routes.serialize import booking_json
from services.availability import ALLOWED_DURATIONS
from services.booking import BookingRequest, cancel_booking, create_booking, reschedule_booking
from services.errors import BookingError
from services.limits import booking_limit_status
from services.suggest import suggest_booking
from utils.audit import log_event
from utils.auth_context import current_user_id, login_required
from utils.clock import parse_client_datetime, utcnow

booking_bp = Blueprint("booking", __name__, url_prefix="/bookings")


def _parse_dt(value):
    # Expect ISO format like "2026-01-20T18:00:00" (local) or with an offset
    if not isinstance(value, str) or not value.strip():
        raise ValueError("missing datetime")
    return parse_client_datetime(value)


def _parse_ids(values):
    if values is None:
        return []
    if not isinstance(values, list):
        raise ValueError("equipment_ids must be a list")
    return [int(v) for v in values]


# ---------- PLAYERS: create booking (DOUBLE-BOOKING SAFE) ----------
@booking_bp.post("")
@login_required
def create():
    data = request.get_json(silent=True) or {}
    facility_id = data.get("facility_id")
    court_id = data.get("court_id")
    if not isinstance(facility_id, int):
        return jsonify(error="facility_id required"), 400
    if court_id is not None and not isinstance(court_id, int):
        return jsonify(error="court_id must be an integer"), 400

    try:
        start = _parse_dt(data.get("start"))
        if data.get("end"):
            end = _parse_dt(data.get("end"))
        else:
            duration = int(data.get("duration_hours") or 1)
            if duration not in ALLOWED_DURATIONS:
                return jsonify(error=f"duration_hours must be one of {list(ALLOWED_DURATIONS)}"), 400
            end = start + timedelta(hours=duration)
        equipment_ids = _parse_ids(data.get("equipment_ids"))
    except (TypeError, ValueError):
        return jsonify(error="Invalid start/end or equipment_ids. Use ISO e.g. 2026-01-20T18:00:00"), 400

    req = BookingRequest(
        user_id=current_user_id(),
        facility_id=facility_id,
        court_id=court_id,
        start=start,
        end=end,
        equipment_ids=equipment_ids,
        note=(data.get("note") or "").strip()[:255] or None,
    )
    try:
        booking = create_booking(req)
    except BookingError as exc:
        log_event("BOOKING_FAIL", user_id=g.user.id, entity="facility", entity_id=facility_id,
                  metadata={"code": exc.code, "court_id": court_id})
        raise

    log_event("BOOKING_CREATE", user_id=g.user.id, entity="booking", entity_id=booking.id,
              metadata={"court_id": booking.court_id})
    return jsonify(booking_json(booking)), 201


# ---------- PLAYERS: view my bookings ----------
@booking_bp.get("/me")
@login_required
def my_bookings():
    status = request.args.get("status")
    q = Booking.query.filter_by(user_id=g.user.id)
    if status:
        if status not in BookingStatus.ALL:
            return jsonify(error=f"status must be one of {list(BookingStatus.ALL)}"), 400
        q = q.filter_by(status=status)

    rows = q.order_by(Booking.start_time.desc()).all()
    return jsonify([booking_json(b) for b in rows]), 200


# ---------- PLAYERS: cancel booking (cutoff window) ----------
@booking_bp.post("/<int:booking_id>/cancel")
@login_required
def cancel(booking_id: int):
    data = request.get_json(silent=True) or {}
    reason = (data.get("reason") or "").strip() or None

    booking = cancel_booking(current_user_id(), booking_id, reason=reason)

    log_event("BOOKING_CANCEL", user_id=g.user.id, entity="booking", entity_id=booking.id,
              metadata={"reason": reason})
    return jsonify(booking_json(booking)), 200


# ---------- PLAYERS: reschedule booking (same court, same duration) ----------
@booking_bp.post("/<int:booking_id>/reschedule")
@login_required
def reschedule(booking_id: int):
    data = request.get_json(silent=True) or {}
    try:
        new_start = _parse_dt(data.get("new_start"))
    except ValueError:
        return jsonify(error="new_start required. Use ISO e.g. 2026-01-20T18:00:00"), 400

    booking = reschedule_booking(current_user_id(), booking_id, new_start)

    log_event("BOOKING_RESCHEDULE", user_id=g.user.id, entity="booking", entity_id=booking.id,
              metadata={"new_start": booking.start_time.isoformat()})
    return jsonify(booking_json(booking)), 200


@booking_bp.get("/limits")
@login_required
def limits():
    start_str = request.args.get("start")
    try:
        start = _parse_dt(start_str) if start_str else utcnow()
    except ValueError:
        return jsonify(error="Invalid start. Use ISO e.g. 2026-01-20T18:00:00"), 400
    return jsonify(booking_limit_status(g.user.id, start)), 200


@booking_bp.post("/suggest")
@login_required
def suggest():
    data = request.get_json(silent=True) or {}
    message = (data.get("message") or "").strip()
    if not message:
        return jsonify(error="message is required"), 400

    day = None
    if data.get("date"):
        try:
            day = date.fromisoformat(data["date"])
        except (TypeError, ValueError):
            return jsonify(error="Invalid date. Use YYYY-MM-DD"), 400

    return jsonify(suggest_booking(message, day=day).to_dict()), 200
