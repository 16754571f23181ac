from datetime import datetime
from models.db import db

booking_slots = db.Table(
    "booking_slots",
    db.Column("booking_id", db.Integer, db.ForeignKey("bookings.id"), primary_key=True),
    db.Column("slot_id", db.Integer, db.ForeignKey("slots.id"), primary_key=True),
)

class Booking(db.Model):
    __tablename__ = "bookings"

    id = db.Column(db.Integer, primary_key=True)
    booking_code = db.Column(db.String(20), unique=True, nullable=False, index=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    turf_id = db.Column(db.Integer, db.ForeignKey("turfs.id"), nullable=False, index=True)

    date = db.Column(db.Date, nullable=False)
    start_time = db.Column(db.String(5), nullable=False)
    end_time = db.Column(db.String(5), nullable=False)
    total_amount = db.Column(db.Integer, nullable=False)  # snapshot of slot prices

    status = db.Column(db.String(20), nullable=False, default="pending")
    # status values: pending, confirmed, cancelled, completed
    payment_status = db.Column(db.String(20), nullable=False, default="pending")
    # payment_status values: pending, paid, failed, refunded

    customer_name = db.Column(db.String(120), nullable=True)
    customer_email = db.Column(db.String(255), nullable=True)
    customer_phone = db.Column(db.String(30), nullable=True)
    number_of_players = db.Column(db.Integer, nullable=True)
    special_requests = db.Column(db.String(500), nullable=True)
    is_offline = db.Column(db.Boolean, default=False, nullable=False)

    cancellation_reason = db.Column(db.String(255), nullable=True)
    cancelled_at = db.Column(db.DateTime, nullable=True)
    invoice_url = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    slots = db.relationship(
        "Slot",
        secondary=booking_slots,
        order_by="Slot.start_time",
        backref=db.backref("bookings", lazy="dynamic"),
    )
    turf = db.relationship("Turf")
    # payment reference; payments.booking_id is unique so this is one-to-one
    payment = db.relationship("Payment", uselist=False, back_populates="booking")

    __table_args__ = (
        db.Index("ix_bookings_user_created", "user_id", "created_at"),
        db.Index("ix_bookings_turf_date", "turf_id", "date"),
        db.Index("ix_bookings_status_payment", "status", "payment_status"),
    )

    @property
    def slot_ids(self):
        return [s.id for s in self.slots]
