"""Manual UPI payment workflow.

A customer submits the transaction reference shown by their UPI app; an
admin checks it against the bank statement and either verifies it (slots
become booked) or fails it (slots go back to the pool).
"""
import re

from flask import current_app
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from models import db
from models.booking import Booking
from models.payment import Payment
from models.slot import Slot
from services.errors import ConflictError, ForbiddenError, InvalidInputError, NotFoundError
from services.reservations import MAX_REASON_LENGTH, clean_reason
from services.slots import release_booking_slots
from services.states import BookingPaymentStatus, BookingStatus, PaymentStatus, SlotStatus, ensure_transition
from utils.audit import log_event
from utils.clock import now as clock_now

TRANSACTION_REF_PATTERN = re.compile(r"^[A-Z0-9]{12,}$")
PAYMENT_METHODS = {"UPI", "CASH", "CARD"}
DECISIONS = {PaymentStatus.VERIFIED.value, PaymentStatus.FAILED.value}
MAX_NOTES_LENGTH = 500


def normalize_transaction_ref(value) -> str:
    return (value or "").strip().upper() if isinstance(value, str) else ""


def validate_transaction_ref(value) -> bool:
    return bool(TRANSACTION_REF_PATTERN.match(normalize_transaction_ref(value)))


def _get_booking(booking_id) -> Booking:
    booking = Booking.query.get(booking_id) if booking_id is not None else None
    if not booking:
        raise NotFoundError("Booking not found")
    return booking


def submit_payment(booking_id, user_id, transaction_ref, evidence_ref=None, amount=None,
                   upi_id=None, method="UPI", as_admin=False) -> Payment:
    """Attach payment evidence to a pending booking.

    There is one payment row per booking: resubmitting overwrites the
    previous evidence and puts it back in the review queue. A transaction
    reference may only ever belong to one booking.
    """
    ref = normalize_transaction_ref(transaction_ref)
    if not TRANSACTION_REF_PATTERN.match(ref):
        raise InvalidInputError(
            "Invalid UPI transaction ID format. Must be at least 12 alphanumeric characters."
        )

    method = (method or "UPI").strip().upper()
    if method not in PAYMENT_METHODS:
        raise InvalidInputError(f"method must be one of {', '.join(sorted(PAYMENT_METHODS))}")

    booking = _get_booking(booking_id)
    if not as_admin and booking.user_id != user_id:
        raise ForbiddenError("Not authorized to update this booking")
    if booking.status != BookingStatus.PENDING.value:
        raise ConflictError(f"Booking is {booking.status}; payment can only be submitted for pending bookings")

    if amount is None or amount == "":
        amount = booking.total_amount
    else:
        try:
            amount = int(amount)
        except (TypeError, ValueError):
            raise InvalidInputError("amount must be a number")
        if amount < 0:
            raise InvalidInputError("amount cannot be negative")

    used = Payment.query.filter_by(transaction_ref=ref).first()
    if used and used.booking_id != booking.id:
        log_event(
            "PAYMENT_FAIL_DUPLICATE_REF",
            user_id=user_id,
            entity="booking",
            entity_id=booking.id,
            metadata={"transaction_ref": ref, "other_booking_id": used.booking_id},
        )
        raise ConflictError("This transaction ID has already been used for another booking")

    payment = booking.payment
    if payment is None:
        payment = Payment(booking_id=booking.id, user_id=booking.user_id)
        db.session.add(payment)
    else:
        ensure_transition("payment", payment.status, PaymentStatus.PENDING)

    payment.amount = amount
    payment.method = method
    payment.transaction_ref = ref
    payment.upi_id = (upi_id or "").strip() or None
    if evidence_ref:
        payment.evidence_ref = evidence_ref
    payment.status = PaymentStatus.PENDING.value
    payment.verified_by = None
    payment.verified_at = None

    booking.payment = payment
    booking.payment_status = BookingPaymentStatus.PENDING.value

    try:
        db.session.flush()
        log_event(
            "PAYMENT_SUBMIT",
            user_id=user_id,
            entity="payment",
            entity_id=payment.id,
            metadata={"booking_id": booking.id, "transaction_ref": ref, "amount": amount},
            commit=False,
        )
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        # uq on transaction_ref lost a race with another submission
        raise ConflictError("This transaction ID has already been used for another booking")

    current_app.logger.info("Transaction %s submitted for booking %s", ref, booking.booking_code)
    return payment


def verify_payment(payment_id, decision, admin_id, notes=None, now=None) -> Payment:
    """Admin decision on a pending payment; the only way a booking gets confirmed.

    ``verified``: booking confirmed/paid, every slot booked under it.
    ``failed``: booking cancelled/failed, its slots released.
    """
    now = now or clock_now()
    decision = (decision or "").strip().lower() if isinstance(decision, str) else ""
    if decision not in DECISIONS:
        raise InvalidInputError('Invalid status. Must be "verified" or "failed"')

    payment = Payment.query.get(payment_id) if payment_id is not None else None
    if not payment:
        raise NotFoundError("Payment not found")
    booking = payment.booking
    if not booking:
        raise NotFoundError("Booking not found")

    ensure_transition("payment", payment.status, decision)
    target = BookingStatus.CONFIRMED if decision == PaymentStatus.VERIFIED.value else BookingStatus.CANCELLED
    ensure_transition("booking", booking.status, target)

    notes = clean_reason(notes, "notes", MAX_NOTES_LENGTH)
    # reason columns are narrower than notes
    reason = notes[:MAX_REASON_LENGTH] if notes else None
    slot_ids = booking.slot_ids

    if decision == PaymentStatus.VERIFIED.value:
        taken = [
            s.id for s in Slot.query.filter(
                Slot.id.in_(slot_ids),
                Slot.status == SlotStatus.BOOKED.value,
                Slot.booking_id != booking.id,
            ).all()
        ]
        if taken:
            raise ConflictError("One or more slots were booked by another booking", details={"slot_ids": taken})

        booked = (
            Slot.query
            .filter(
                Slot.id.in_(slot_ids),
                or_(Slot.status != SlotStatus.BOOKED.value, Slot.booking_id == booking.id),
            )
            .update(
                {
                    "status": SlotStatus.BOOKED.value,
                    "booked_by": booking.user_id,
                    "booking_id": booking.id,
                    "locked_by": None,
                    "locked_at": None,
                },
                synchronize_session=False,
            )
        )
        if booked != len(slot_ids):
            db.session.rollback()
            raise ConflictError("One or more slots were booked by another booking")

        booking.status = BookingStatus.CONFIRMED.value
        booking.payment_status = BookingPaymentStatus.PAID.value
    else:
        release_booking_slots(booking)
        booking.status = BookingStatus.CANCELLED.value
        booking.payment_status = BookingPaymentStatus.FAILED.value
        booking.cancelled_at = now
        if reason:
            booking.cancellation_reason = reason
        payment.failure_reason = reason

    payment.status = decision
    payment.verified_by = admin_id
    payment.verified_at = now
    if notes:
        payment.notes = notes

    log_event(
        "PAYMENT_VERIFIED" if decision == PaymentStatus.VERIFIED.value else "PAYMENT_FAILED",
        user_id=admin_id,
        entity="payment",
        entity_id=payment.id,
        metadata={"booking_id": booking.id, "slot_ids": slot_ids, "notes": notes},
        commit=False,
    )
    db.session.commit()
    current_app.logger.info("Payment %s %s for booking %s", payment.id, decision, booking.booking_code)
    return payment


def refund_payment(payment_id, admin_id, reason=None, now=None) -> Payment:
    now = now or clock_now()
    reason = clean_reason(reason)
    payment = Payment.query.get(payment_id) if payment_id is not None else None
    if not payment:
        raise NotFoundError("Payment not found")
    booking = payment.booking
    if not booking:
        raise NotFoundError("Booking not found")
    if booking.status != BookingStatus.CANCELLED.value:
        raise ConflictError("Cancel the booking before refunding its payment")
    ensure_transition("payment", payment.status, PaymentStatus.REFUNDED)

    payment.status = PaymentStatus.REFUNDED.value
    payment.refunded_at = now
    payment.refund_reason = reason
    booking.payment_status = BookingPaymentStatus.REFUNDED.value
    log_event(
        "PAYMENT_REFUND",
        user_id=admin_id,
        entity="payment",
        entity_id=payment.id,
        metadata={"booking_id": booking.id, "amount": payment.amount, "reason": reason},
        commit=False,
    )
    db.session.commit()
    return payment
