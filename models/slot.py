from datetime import datetime
from models.db import db

class Slot(db.Model):
    __tablename__ = "slots"

    id = db.Column(db.Integer, primary_key=True)

    turf_id = db.Column(db.Integer, db.ForeignKey("turfs.id"), nullable=False, index=True)
    date = db.Column(db.Date, nullable=False)
    start_time = db.Column(db.String(5), nullable=False)  # HH:MM, zero padded
    end_time = db.Column(db.String(5), nullable=False)

    price = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(20), nullable=False, default="available")
    # status values: available, locked, booked

    # set together while locked
    locked_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    locked_at = db.Column(db.DateTime, nullable=True, index=True)

    # set together while booked
    booked_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    turf = db.relationship("Turf")

    __table_args__ = (
        # No two slots may share a turf/date/start time
        db.UniqueConstraint("turf_id", "date", "start_time", name="uq_turf_date_start"),
        db.Index("ix_slots_turf_date_status", "turf_id", "date", "status"),
    )
