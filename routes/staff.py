from datetime import date

from flask import Blueprint, jsonify, g, request

from models.booking import Booking, ACTIVE_STATUSES
from models.equipment import EquipmentRequest
from routes.serialize import booking_json, equipment_request_json
from security.rbac import require_roles
from services.equipment import decide_request, issue_items, return_item
from utils.audit import log_event
from utils.clock import local_instant, local_today, to_storage

staff_bp = Blueprint("staff", __name__, url_prefix="/staff")

REQUEST_STATUSES = ("pending", "approved", "rejected", "done")


@staff_bp.get("/bookings")
@require_roles("STAFF")
def day_bookings():
    """Active bookings starting on one local day, for the front desk calendar."""
    date_str = request.args.get("date")
    try:
        day = date.fromisoformat(date_str) if date_str else local_today()
    except ValueError:
        return jsonify(error="Invalid date. Use YYYY-MM-DD"), 400

    rows = (
        Booking.query
        .filter(
            Booking.status.in_(ACTIVE_STATUSES),
            Booking.start_time >= to_storage(local_instant(day, "00:00")),
            Booking.start_time < to_storage(local_instant(day, "24:00")),
        )
        .order_by(Booking.start_time.asc(), Booking.court_id.asc())
        .all()
    )
    return jsonify([dict(booking_json(b), player=b.user.display_name) for b in rows]), 200


@staff_bp.get("/equipment-requests")
@require_roles("STAFF")
def list_equipment_requests():
    status = request.args.get("status", "pending")
    if status not in REQUEST_STATUSES:
        return jsonify(error=f"status must be one of {list(REQUEST_STATUSES)}"), 400

    rows = (
        EquipmentRequest.query
        .filter_by(status=status)
        .order_by(EquipmentRequest.created_at.asc())
        .limit(200)
        .all()
    )
    return jsonify([equipment_request_json(r) for r in rows]), 200


@staff_bp.post("/equipment-requests/<int:request_id>/decide")
@require_roles("STAFF")
def decide(request_id: int):
    data = request.get_json(silent=True) or {}
    approve = data.get("approve")
    if not isinstance(approve, bool):
        return jsonify(error="approve must be true or false"), 400

    req = decide_request(request_id, g.user.id, approve)
    log_event("EQUIPMENT_REQUEST_DECIDE", user_id=g.user.id, entity="equipment_request",
              entity_id=req.id, metadata={"status": req.status})
    return jsonify(equipment_request_json(req)), 200


@staff_bp.post("/equipment-requests/<int:request_id>/issue")
@require_roles("STAFF")
def issue(request_id: int):
    data = request.get_json(silent=True) or {}
    raw_items = data.get("items")
    if not isinstance(raw_items, list) or not raw_items:
        return jsonify(error="items must be a non-empty list"), 400
    try:
        items = [(int(i["equipment_id"]), int(i["qty"])) for i in raw_items]
    except (KeyError, TypeError, ValueError):
        return jsonify(error="each item needs integer equipment_id and qty"), 400

    req = issue_items(request_id, g.user.id, items)
    log_event("EQUIPMENT_ISSUE", user_id=g.user.id, entity="equipment_request", entity_id=req.id,
              metadata={"items": items})
    return jsonify(equipment_request_json(req)), 200


@staff_bp.post("/equipment-items/<int:item_id>/return")
@require_roles("STAFF")
def return_equipment(item_id: int):
    data = request.get_json(silent=True) or {}
    try:
        quantity = int(data.get("quantity"))
    except (TypeError, ValueError):
        return jsonify(error="quantity must be an integer"), 400

    item = return_item(item_id, quantity, data.get("condition"), (data.get("damage_notes") or "").strip())
    log_event("EQUIPMENT_RETURN", user_id=g.user.id, entity="equipment_request_item", entity_id=item.id,
              metadata={"quantity": quantity, "condition": item.condition})
    return jsonify(equipment_request_json(item.request)), 200
