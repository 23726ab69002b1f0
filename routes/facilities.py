from datetime import date

from flask import Blueprint, request, jsonify

from models import db
from models.facility import Facility
from routes.serialize import court_json, facility_json
from services.availability import ALLOWED_DURATIONS, get_facility_availability
from utils.auth_context import login_required
from utils.clock import local_today

facilities_bp = Blueprint("facilities", __name__, url_prefix="/facilities")


@facilities_bp.get("")
def list_facilities():
    sport = (request.args.get("sport") or "").strip().lower()

    q = Facility.query.filter(Facility.is_active.is_(True))
    if sport:
        q = q.filter(Facility.sport_type == sport)

    rows = q.order_by(Facility.name.asc()).all()
    return jsonify([facility_json(f) for f in rows]), 200


@facilities_bp.get("/<int:facility_id>")
def get_facility(facility_id: int):
    facility = db.session.get(Facility, facility_id)
    if not facility or not facility.is_active:
        return jsonify(error="Facility not found"), 404
    return jsonify(facility_json(facility, with_children=True)), 200


@facilities_bp.get("/<int:facility_id>/availability")
@login_required
def facility_availability(facility_id: int):
    date_str = request.args.get("date")
    duration = request.args.get("duration", default=1, type=int)

    if duration not in ALLOWED_DURATIONS:
        return jsonify(error=f"duration must be one of {list(ALLOWED_DURATIONS)}"), 400

    if date_str:
        try:
            day = date.fromisoformat(date_str)
        except ValueError:
            return jsonify(error="Invalid date. Use YYYY-MM-DD"), 400
    else:
        day = local_today()

    data = get_facility_availability(facility_id, day, duration_hours=duration)
    if data is None:
        return jsonify(error="Facility not found"), 404

    return jsonify(
        facility_id=data["facility"].id,
        date=day.isoformat(),
        open_time=data["open_time"],
        close_time=data["close_time"],
        duration_hours=duration,
        courts=[
            dict(court_json(row["court"]), free_hours=row["free_hours"])
            for row in data["courts"]
        ],
    ), 200
