from datetime import datetime
from models.db import db

class NotificationLog(db.Model):
    """Outbox of booking/facility events; a separate sender delivers and stamps sent_at."""

    __tablename__ = "notification_logs"

    id = db.Column(db.Integer, primary_key=True)
    kind = db.Column(db.String(40), nullable=False, index=True)
    # booking_created, booking_cancelled, booking_rescheduled,
    # facility_closed, facility_reopened, facility_hours_changed

    facility_id = db.Column(db.Integer, db.ForeignKey("facilities.id"), nullable=False, index=True)
    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=True)
    court_id = db.Column(db.Integer, db.ForeignKey("courts.id"), nullable=True)
    start_time = db.Column(db.DateTime, nullable=True)
    end_time = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    sent_at = db.Column(db.DateTime, nullable=True)
