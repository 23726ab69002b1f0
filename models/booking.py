from datetime import datetime
from models.db import db


class BookingStatus:
    CONFIRMED = "confirmed"
    RESCHEDULED = "rescheduled"
    CANCELLED = "cancelled"
    COMPLETED = "completed"

    ALL = (CONFIRMED, RESCHEDULED, CANCELLED, COMPLETED)


# Only these count towards court conflicts and booking limits
ACTIVE_STATUSES = (BookingStatus.CONFIRMED, BookingStatus.RESCHEDULED)


class Booking(db.Model):
    __tablename__ = "bookings"

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    facility_id = db.Column(db.Integer, db.ForeignKey("facilities.id"), nullable=False, index=True)
    court_id = db.Column(db.Integer, db.ForeignKey("courts.id"), nullable=False)

    # naive UTC instants, half-open [start_time, end_time)
    start_time = db.Column(db.DateTime, nullable=False)
    end_time = db.Column(db.DateTime, nullable=False)

    status = db.Column(db.String(20), nullable=False, default=BookingStatus.CONFIRMED)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    cancelled_at = db.Column(db.DateTime, nullable=True)
    cancel_reason = db.Column(db.String(120), nullable=True)

    user = db.relationship("User", back_populates="bookings")
    court = db.relationship("Court")
    facility = db.relationship("Facility")
    equipment_requests = db.relationship("EquipmentRequest", back_populates="booking")

    __table_args__ = (
        db.CheckConstraint("end_time > start_time", name="ck_booking_time_order"),
        db.Index("ix_bookings_court_window", "court_id", "start_time", "end_time"),
        db.Index("ix_bookings_user_start", "user_id", "start_time"),
    )

    @property
    def is_active(self):
        return self.status in ACTIVE_STATUSES
