from datetime import datetime
from models.db import db

class Turf(db.Model):
    __tablename__ = "turfs"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    location = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    price_per_hour = db.Column(db.Integer, nullable=False, default=0)  # INR, flat per slot
    open_time = db.Column(db.String(5), nullable=False, default="06:00")
    close_time = db.Column(db.String(5), nullable=False, default="23:00")

    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
