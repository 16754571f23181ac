import json
from datetime import datetime
from models.db import db

class AuditLog(db.Model):
    __tablename__ = "audit_logs"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, nullable=True)  # null for sweeper events
    action = db.Column(db.String(80), nullable=False, index=True)  # SLOT_LOCK, BOOKING_CREATE, PAYMENT_VERIFIED, ...
    entity = db.Column(db.String(80), nullable=True)   # slot, booking, payment, turf
    entity_id = db.Column(db.String(80), nullable=True)

    ip = db.Column(db.String(64), nullable=True)
    user_agent = db.Column(db.String(255), nullable=True)
    metadata_json = db.Column(db.Text, nullable=True)

    timestamp = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        # history of one slot/booking/payment
        db.Index("ix_audit_logs_entity", "entity", "entity_id"),
    )

    @property
    def details(self) -> dict:
        return json.loads(self.metadata_json) if self.metadata_json else {}
