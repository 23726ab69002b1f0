import json
from datetime import datetime
from models.db import db


class AuditLog(db.Model):
    """Append-only trail of security and booking actions (LOGIN_FAIL, BOOKING_CREATE, ...)."""

    __tablename__ = "audit_logs"

    id = db.Column(db.Integer, primary_key=True)
    # NULL for anonymous actions such as a failed login
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    action = db.Column(db.String(80), nullable=False, index=True)
    entity = db.Column(db.String(40), nullable=True)
    entity_id = db.Column(db.String(40), nullable=True)

    ip = db.Column(db.String(64), nullable=True)
    user_agent = db.Column(db.String(255), nullable=True)
    metadata_json = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)

    __table_args__ = (
        db.Index("ix_audit_logs_entity", "entity", "entity_id"),
    )

    @property
    def details(self):
        return json.loads(self.metadata_json) if self.metadata_json else {}
