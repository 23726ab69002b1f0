from datetime import datetime
from models.db import db


class Equipment(db.Model):
    __tablename__ = "equipment"

    id = db.Column(db.Integer, primary_key=True)
    facility_id = db.Column(db.Integer, db.ForeignKey("facilities.id"), nullable=False, index=True)
    name = db.Column(db.String(100), nullable=False)

    qty_total = db.Column(db.Integer, nullable=False, default=1)
    qty_available = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    facility = db.relationship("Facility", back_populates="equipment")

    __table_args__ = (
        db.CheckConstraint("qty_available >= 0", name="ck_equipment_available_nonneg"),
        db.CheckConstraint("qty_available <= qty_total", name="ck_equipment_available_le_total"),
    )


class EquipmentRequest(db.Model):
    __tablename__ = "equipment_requests"

    id = db.Column(db.Integer, primary_key=True)
    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=False, index=True)

    status = db.Column(db.String(20), nullable=False, default="pending")
    # status values: pending, approved, rejected, done
    note = db.Column(db.String(255), nullable=True)

    decided_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    decided_at = db.Column(db.DateTime, nullable=True)
    returned_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    booking = db.relationship("Booking", back_populates="equipment_requests")
    items = db.relationship("EquipmentRequestItem", back_populates="request", order_by="EquipmentRequestItem.id")


class EquipmentRequestItem(db.Model):
    __tablename__ = "equipment_request_items"

    id = db.Column(db.Integer, primary_key=True)
    request_id = db.Column(db.Integer, db.ForeignKey("equipment_requests.id"), nullable=False, index=True)
    equipment_id = db.Column(db.Integer, db.ForeignKey("equipment.id"), nullable=False)

    qty = db.Column(db.Integer, nullable=False, default=1)
    qty_returned = db.Column(db.Integer, nullable=False, default=0)
    condition = db.Column(db.String(20), nullable=True)  # good, damaged, lost
    damage_notes = db.Column(db.String(255), nullable=True)
    issued_at = db.Column(db.DateTime, nullable=True)

    request = db.relationship("EquipmentRequest", back_populates="items")
    equipment = db.relationship("Equipment")

    __table_args__ = (
        db.UniqueConstraint("request_id", "equipment_id", name="uq_request_equipment_once"),
    )

    @property
    def outstanding(self):
        return self.qty - self.qty_returned
