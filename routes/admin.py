from datetime import date

from flask import Blueprint, jsonify, g, request
from sqlalchemy.exc import IntegrityError

from models import db
from models.audit_log import AuditLog
from models.booking import Booking, BookingStatus
from models.court import Court
from models.facility import Facility
from models.notification_log import NotificationLog
from routes.serialize import booking_json, court_json, equipment_json, facility_json
from security.rbac import require_roles
from services.availability import effective_hours
from services.booking import cancel_booking
from services.equipment import create_equipment, update_equipment
from utils.audit import log_event
from utils.auth_context import current_user_id
from utils.clock import isoformat_utc, local_instant, parse_hhmm, to_storage
from utils.notify import emit, facility_changed

admin_bp = Blueprint("admin", __name__, url_prefix="/admin")

FACILITY_FIELDS = ("name", "sport_type", "is_indoor", "location", "description", "open_time", "close_time", "is_active")


def _clean_hours(open_time, close_time):
    """
    Validate the hours a facility would end up with. A missing side falls
    back to the configured default. Returns an error message or None.
    """
    try:
        opens, closes = (parse_hhmm(v) for v in effective_hours(open_time, close_time))
    except ValueError as exc:
        return str(exc)
    if closes <= opens:
        return "close_time must be after open_time"
    return None


def _facility_payload(data, facility=None):
    out = {}
    for key in FACILITY_FIELDS:
        if key not in data:
            continue
        value = data[key]
        if isinstance(value, str):
            value = value.strip() or None
        out[key] = value

    if "sport_type" in out and out["sport_type"]:
        out["sport_type"] = out["sport_type"].lower()
    for flag in ("is_indoor", "is_active"):
        if flag in out and not isinstance(out[flag], bool):
            raise ValueError(f"{flag} must be true or false")

    open_time = out.get("open_time", facility.open_time if facility else None)
    close_time = out.get("close_time", facility.close_time if facility else None)
    problem = _clean_hours(open_time, close_time)
    if problem:
        raise ValueError(problem)
    return out


# ---------- ADMIN: facilities ----------
@admin_bp.post("/facilities")
@require_roles("ADMIN")
def create_facility():
    data = request.get_json(silent=True) or {}
    try:
        fields = _facility_payload(data)
    except ValueError as exc:
        return jsonify(error=str(exc)), 400
    if not fields.get("name") or not fields.get("sport_type"):
        return jsonify(error="name and sport_type are required"), 400

    facility = Facility(**fields)
    db.session.add(facility)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify(error="Facility name already exists"), 409

    log_event("FACILITY_CREATE", user_id=g.user.id, entity="facility", entity_id=facility.id)
    return jsonify(facility_json(facility)), 201


@admin_bp.patch("/facilities/<int:facility_id>")
@require_roles("ADMIN")
def update_facility(facility_id: int):
    facility = db.session.get(Facility, facility_id)
    if not facility:
        return jsonify(error="Facility not found"), 404

    data = request.get_json(silent=True) or {}
    try:
        fields = _facility_payload(data, facility)
    except ValueError as exc:
        return jsonify(error=str(exc)), 400

    was_active = facility.is_active
    old_hours = (facility.open_time, facility.close_time)

    for key, value in fields.items():
        setattr(facility, key, value)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify(error="Facility name already exists"), 409

    # queued after commit; the sender picks them up later
    if was_active and not facility.is_active:
        emit(facility_changed, facility, kind="closed")
    elif not was_active and facility.is_active:
        emit(facility_changed, facility, kind="reopened")
    if (facility.open_time, facility.close_time) != old_hours:
        emit(facility_changed, facility, kind="hours_changed")

    log_event("FACILITY_UPDATE", user_id=g.user.id, entity="facility", entity_id=facility.id,
              metadata={"fields": sorted(fields)})
    return jsonify(facility_json(facility)), 200


# ---------- ADMIN: courts ----------
@admin_bp.post("/facilities/<int:facility_id>/courts")
@require_roles("ADMIN")
def create_court(facility_id: int):
    if not db.session.get(Facility, facility_id):
        return jsonify(error="Facility not found"), 404

    data = request.get_json(silent=True) or {}
    name = (data.get("name") or "").strip()
    if not name:
        return jsonify(error="Court name required"), 400

    court = Court(facility_id=facility_id, name=name)
    db.session.add(court)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify(error="Court name already exists for this facility"), 409

    log_event("COURT_CREATE", user_id=g.user.id, entity="court", entity_id=court.id)
    return jsonify(court_json(court)), 201


@admin_bp.patch("/courts/<int:court_id>")
@require_roles("ADMIN")
def update_court(court_id: int):
    court = db.session.get(Court, court_id)
    if not court:
        return jsonify(error="Court not found"), 404

    data = request.get_json(silent=True) or {}
    if "name" in data:
        name = (data.get("name") or "").strip()
        if not name:
            return jsonify(error="Court name required"), 400
        court.name = name
    if "is_active" in data:
        if not isinstance(data["is_active"], bool):
            return jsonify(error="is_active must be true or false"), 400
        court.is_active = data["is_active"]

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify(error="Court name already exists for this facility"), 409

    log_event("COURT_UPDATE", user_id=g.user.id, entity="court", entity_id=court.id)
    return jsonify(court_json(court)), 200


# ---------- ADMIN: equipment inventory ----------
@admin_bp.post("/facilities/<int:facility_id>/equipment")
@require_roles("ADMIN")
def add_equipment(facility_id: int):
    data = request.get_json(silent=True) or {}
    eq = create_equipment(
        facility_id,
        data.get("name"),
        data.get("qty_total"),
        data.get("qty_available"),
    )
    log_event("EQUIPMENT_CREATE", user_id=g.user.id, entity="equipment", entity_id=eq.id)
    return jsonify(equipment_json(eq)), 201


@admin_bp.patch("/equipment/<int:equipment_id>")
@require_roles("ADMIN")
def edit_equipment(equipment_id: int):
    data = request.get_json(silent=True) or {}
    eq = update_equipment(
        equipment_id,
        name=data.get("name"),
        qty_total=data.get("qty_total"),
        qty_available=data.get("qty_available"),
    )
    log_event("EQUIPMENT_UPDATE", user_id=g.user.id, entity="equipment", entity_id=eq.id)
    return jsonify(equipment_json(eq)), 200


# ---------- ADMIN: bookings ----------
@admin_bp.get("/bookings")
@require_roles("ADMIN")
def list_all_bookings():
    status = request.args.get("status")
    facility_id = request.args.get("facility_id", type=int)
    date_str = request.args.get("date")

    q = Booking.query
    if status:
        if status not in BookingStatus.ALL:
            return jsonify(error=f"status must be one of {list(BookingStatus.ALL)}"), 400
        q = q.filter_by(status=status)
    if facility_id:
        q = q.filter_by(facility_id=facility_id)
    if date_str:
        try:
            day = date.fromisoformat(date_str)
        except ValueError:
            return jsonify(error="Invalid date. Use YYYY-MM-DD"), 400
        q = q.filter(
            Booking.start_time >= to_storage(local_instant(day, "00:00")),
            Booking.start_time < to_storage(local_instant(day, "24:00")),
        )

    rows = q.order_by(Booking.start_time.desc()).limit(200).all()
    return jsonify([booking_json(b) for b in rows]), 200


@admin_bp.post("/bookings/<int:booking_id>/cancel")
@require_roles("ADMIN")
def admin_cancel_booking(booking_id: int):
    data = request.get_json(silent=True) or {}
    reason = (data.get("reason") or "").strip() or "Admin cancellation"

    booking = cancel_booking(current_user_id(), booking_id, reason=reason, as_admin=True)

    log_event("ADMIN_BOOKING_CANCEL", user_id=g.user.id, entity="booking", entity_id=booking.id,
              metadata={"reason": reason})
    return jsonify(booking_json(booking)), 200


@admin_bp.get("/notifications")
@require_roles("ADMIN")
def list_notifications():
    pending_only = request.args.get("pending", "false").lower() == "true"
    q = NotificationLog.query
    if pending_only:
        q = q.filter(NotificationLog.sent_at.is_(None))
    rows = q.order_by(NotificationLog.created_at.desc()).limit(200).all()
    return jsonify([
        {
            "id": n.id,
            "kind": n.kind,
            "facility_id": n.facility_id,
            "booking_id": n.booking_id,
            "court_id": n.court_id,
            "start": isoformat_utc(n.start_time),
            "end": isoformat_utc(n.end_time),
            "created_at": isoformat_utc(n.created_at),
            "sent_at": isoformat_utc(n.sent_at),
        }
        for n in rows
    ]), 200


@admin_bp.get("/audit-logs")
@require_roles("ADMIN")
def list_audit_logs():
    limit = max(1, min(request.args.get("limit", type=int) or 200, 500))

    q = AuditLog.query
    if request.args.get("action"):
        q = q.filter(AuditLog.action == request.args["action"].upper())
    user_id = request.args.get("user_id", type=int)
    if user_id is not None:
        q = q.filter(AuditLog.user_id == user_id)
    if request.args.get("entity"):
        q = q.filter(AuditLog.entity == request.args["entity"])
        if request.args.get("entity_id"):
            q = q.filter(AuditLog.entity_id == request.args["entity_id"])

    rows = q.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(limit).all()
    return jsonify([
        {
            "id": r.id,
            "created_at": isoformat_utc(r.created_at),
            "user_id": r.user_id,
            "action": r.action,
            "entity": r.entity,
            "entity_id": r.entity_id,
            "ip": r.ip,
            "metadata": r.details,
        }
        for r in rows
    ]), 200
