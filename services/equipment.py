"""Equipment inventory and equipment requests attached to bookings."""

import logging

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError

from models import db
from models.equipment import Equipment, EquipmentRequest, EquipmentRequestItem
from models.facility import Facility
from services.errors import BookingNotFound, InternalError, InvalidEquipment
from utils.clock import utcnow

logger = logging.getLogger(__name__)

RETURN_CONDITIONS = ("good", "damaged", "lost")


def _validate_quantities(name, qty_total, qty_available):
    name = (name or "").strip()
    if not (2 <= len(name) <= 100):
        raise InvalidEquipment("Equipment name must be 2-100 characters")
    try:
        qty_total = int(qty_total)
        qty_available = int(qty_available)
    except (TypeError, ValueError):
        raise InvalidEquipment("Quantities must be whole numbers")
    if qty_total < 1:
        raise InvalidEquipment("Total quantity must be greater than 0")
    if qty_available < 0:
        raise InvalidEquipment("Available quantity cannot be negative")
    if qty_available > qty_total:
        raise InvalidEquipment("Available quantity cannot exceed total quantity")
    return name, qty_total, qty_available


def create_equipment(facility_id, name, qty_total, qty_available=None) -> Equipment:
    if not db.session.get(Facility, facility_id):
        raise InvalidEquipment("Facility selection is required")
    if qty_available is None:
        qty_available = qty_total
    name, qty_total, qty_available = _validate_quantities(name, qty_total, qty_available)

    eq = Equipment(facility_id=facility_id, name=name, qty_total=qty_total, qty_available=qty_available)
    db.session.add(eq)
    db.session.commit()
    return eq


def update_equipment(equipment_id, name=None, qty_total=None, qty_available=None) -> Equipment:
    eq = db.session.get(Equipment, equipment_id)
    if not eq:
        raise InvalidEquipment("Equipment not found")

    name, qty_total, qty_available = _validate_quantities(
        eq.name if name is None else name,
        eq.qty_total if qty_total is None else qty_total,
        eq.qty_available if qty_available is None else qty_available,
    )
    eq.name = name
    eq.qty_total = qty_total
    eq.qty_available = qty_available
    db.session.commit()
    return eq


def _get_request(request_id) -> EquipmentRequest:
    req = db.session.get(EquipmentRequest, request_id)
    if not req:
        raise BookingNotFound("Equipment request not found")
    return req


def decide_request(request_id, staff_id, approve: bool) -> EquipmentRequest:
    req = _get_request(request_id)
    if req.status != "pending":
        raise InvalidEquipment("Only pending requests can be decided")
    req.status = "approved" if approve else "rejected"
    req.decided_by = staff_id
    req.decided_at = utcnow()
    db.session.commit()
    logger.info("Equipment request %s %s by staff %s", req.id, req.status, staff_id)
    return req


def issue_items(request_id, staff_id, items) -> EquipmentRequest:
    """
    Hand out equipment at the counter. `items` is a list of
    (equipment_id, qty); stock is decremented and request items upserted.
    """
    req = _get_request(request_id)
    if req.status in ("rejected", "done"):
        raise InvalidEquipment("Request is closed")

    items = [(int(eid), int(qty)) for eid, qty in items if int(qty) > 0]
    if not items:
        raise InvalidEquipment("No items to issue")

    now = utcnow()
    existing = {i.equipment_id: i for i in req.items}
    try:
        for equipment_id, qty in items:
            eq = db.session.get(Equipment, equipment_id)
            if not eq or eq.facility_id != req.booking.facility_id:
                raise InvalidEquipment("Equipment not found")
            # decrement only if the stock is still there at write time
            taken = db.session.execute(
                update(Equipment)
                .where(Equipment.id == equipment_id, Equipment.qty_available >= qty)
                .values(qty_available=Equipment.qty_available - qty)
                .execution_options(synchronize_session=False)
            ).rowcount
            if not taken:
                raise InvalidEquipment(f"Not enough {eq.name} available")

            item = existing.get(equipment_id)
            if item:
                item.qty = qty
                item.issued_at = item.issued_at or now
            else:
                req.items.append(EquipmentRequestItem(
                    equipment_id=equipment_id, qty=qty, qty_returned=0, issued_at=now,
                ))

        # stays approved while items are out
        req.status = "approved"
        req.decided_by = req.decided_by or staff_id
        req.decided_at = req.decided_at or now
        db.session.commit()
    except InvalidEquipment:
        db.session.rollback()
        raise
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Storage failure while issuing equipment for request %s", request_id)
        raise InternalError() from exc
    return req


def return_item(item_id, quantity, condition, damage_notes=None) -> EquipmentRequestItem:
    item = db.session.get(EquipmentRequestItem, item_id)
    if not item:
        raise InvalidEquipment("Request item not found")
    if condition not in RETURN_CONDITIONS:
        raise InvalidEquipment(f"condition must be one of {RETURN_CONDITIONS}")

    quantity = int(quantity)
    outstanding = item.outstanding
    if quantity < 1 or quantity > outstanding:
        raise InvalidEquipment(f"Invalid quantity, outstanding: {outstanding}")

    eq = item.equipment
    if condition == "good":
        eq.qty_available = min(eq.qty_total, eq.qty_available + quantity)
    elif condition == "lost":
        eq.qty_total = max(0, eq.qty_total - quantity)
        eq.qty_available = min(eq.qty_available, eq.qty_total)

    item.qty_returned += quantity
    item.condition = condition
    item.damage_notes = damage_notes or None

    req = item.request
    if all(i.qty_returned >= i.qty or i.condition == "lost" for i in req.items):
        req.status = "done"
        req.returned_at = utcnow()

    db.session.commit()
    return item
