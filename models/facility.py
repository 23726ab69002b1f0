from datetime import datetime
from models.db import db

class Facility(db.Model):
    __tablename__ = "facilities"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False, unique=True)
    sport_type = db.Column(db.String(50), nullable=False, index=True)  # e.g. badminton, futsal
    is_indoor = db.Column(db.Boolean, default=True, nullable=False)
    location = db.Column(db.String(160), nullable=True)
    description = db.Column(db.Text, nullable=True)

    # "HH:MM" local time; NULL means the configured default (08:00 / 22:00)
    open_time = db.Column(db.String(5), nullable=True)
    close_time = db.Column(db.String(5), nullable=True)

    is_active = db.Column(db.Boolean, default=True, nullable=False)

    # Bumped by every booking write; the UPDATE serializes check-then-insert per facility
    lock_version = db.Column(db.Integer, default=0, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    courts = db.relationship("Court", back_populates="facility", order_by="Court.name")
    equipment = db.relationship("Equipment", back_populates="facility", order_by="Equipment.name")
