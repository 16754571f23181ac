"""Reservation engine: the lock -> book -> cancel protocol.

Holding a lock means the slot row carries an owner and a timestamp. Every
status change below is one conditional UPDATE whose WHERE clause restates
the state it expects, so two requests racing for the same slot cannot both
win; the loser sees a zero row count and gets a ConflictError.
"""
from flask import current_app
from sqlalchemy import and_, or_

from models import db
from models.booking import Booking, booking_slots
from models.slot import Slot
from models.user import User
from services.errors import ConflictError, ForbiddenError, InvalidInputError, NotFoundError
from services.slots import (
    expired_lock_filter,
    is_lock_expired,
    lock_cutoff,
    lock_duration_seconds,
    release_booking_slots,
    release_expired_locks,
    RELEASED_LOCK,
)
from services.states import BookingPaymentStatus, BookingStatus, PaymentStatus, SlotStatus, ensure_transition
from utils.audit import log_event
from utils.clock import now as clock_now
from utils.timeutils import generate_booking_code, parse_hhmm

MAX_SPECIAL_REQUESTS = 500
MAX_REASON_LENGTH = 255
MAX_INVOICE_URL_LENGTH = 255
BOOKING_CODE_ATTEMPTS = 10


def _parse_id(value):
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    if isinstance(value, str) and value.strip().isdigit():
        parsed = int(value.strip())
        return parsed if parsed > 0 else None
    return None


def _require_id(value, label="slot"):
    parsed = _parse_id(value)
    if parsed is None:
        raise InvalidInputError(f"Invalid {label} ID format")
    return parsed


def _new_booking_code(now) -> str:
    prefix = current_app.config.get("BOOKING_CODE_PREFIX", "SH")
    for _ in range(BOOKING_CODE_ATTEMPTS):
        code = generate_booking_code(now, prefix)
        if not Booking.query.filter_by(booking_code=code).first():
            return code
    raise ConflictError("Could not allocate a booking ID; retry")


def _claimed_slot_ids(slot_ids, user_id):
    """Slots already backing one of the user's live bookings.

    A pending booking keeps its slots only through its owner's locks, so
    another user's stale pending booking does not claim anything.
    """
    rows = (
        db.session.query(booking_slots.c.slot_id)
        .join(Booking, Booking.id == booking_slots.c.booking_id)
        .filter(
            booking_slots.c.slot_id.in_(slot_ids),
            Booking.user_id == user_id,
            Booking.status.in_([BookingStatus.PENDING.value, BookingStatus.CONFIRMED.value]),
        )
        .all()
    )
    return {row.slot_id for row in rows}


def clean_reason(value, label="reason", limit=MAX_REASON_LENGTH):
    value = (value or "").strip() if isinstance(value, str) else ""
    if len(value) > limit:
        raise InvalidInputError(f"{label} cannot exceed {limit} characters")
    return value or None


def _clean_extras(number_of_players, special_requests):
    if number_of_players is not None and number_of_players != "":
        try:
            number_of_players = int(number_of_players)
        except (TypeError, ValueError):
            raise InvalidInputError("number_of_players must be a number")
        if number_of_players < 1:
            raise InvalidInputError("number_of_players must be at least 1")
    else:
        number_of_players = None

    special_requests = (special_requests or "").strip() or None
    if special_requests and len(special_requests) > MAX_SPECIAL_REQUESTS:
        raise InvalidInputError(f"special_requests cannot exceed {MAX_SPECIAL_REQUESTS} characters")
    return number_of_players, special_requests


# ---------- locking ----------

def lock_slot(slot_id, user_id, now=None):
    """Take (or refresh) the hold on a slot.

    Returns ``(slot, lock_duration_seconds)`` so the client can show a
    countdown. A lock held by someone else is seized only once it expired.
    """
    now = now or clock_now()
    slot_id = _require_id(slot_id)
    duration = lock_duration_seconds()

    slot = Slot.query.get(slot_id)
    if not slot:
        raise NotFoundError("Slot not found")
    if slot.status == SlotStatus.BOOKED.value:
        raise ConflictError("Slot is already booked")
    if (
        slot.status == SlotStatus.LOCKED.value
        and slot.locked_by != user_id
        and not is_lock_expired(slot, now, duration)
    ):
        raise ConflictError("Slot is currently locked by another user")
    ensure_transition("slot", slot.status, SlotStatus.LOCKED)

    previous_owner = slot.locked_by if slot.status == SlotStatus.LOCKED.value else None

    updated = (
        Slot.query
        .filter(
            Slot.id == slot_id,
            or_(
                Slot.status == SlotStatus.AVAILABLE.value,
                and_(Slot.status == SlotStatus.LOCKED.value, Slot.locked_by == user_id),
                expired_lock_filter(now, duration),
            ),
        )
        .update(
            {
                "status": SlotStatus.LOCKED.value,
                "locked_by": user_id,
                "locked_at": now,
                "booked_by": None,
                "booking_id": None,
            },
            synchronize_session=False,
        )
    )
    if not updated:
        db.session.rollback()
        current = Slot.query.get(slot_id)
        if current and current.status == SlotStatus.BOOKED.value:
            raise ConflictError("Slot is already booked")
        raise ConflictError("Slot is currently locked by another user")

    metadata = {"expires_in": duration}
    if previous_owner is not None and previous_owner != user_id:
        metadata["seized_from"] = previous_owner
    log_event("SLOT_LOCK", user_id=user_id, entity="slot", entity_id=slot_id, metadata=metadata, commit=False)
    db.session.commit()
    current_app.logger.info("Slot %s locked by user %s", slot_id, user_id)

    return Slot.query.get(slot_id), duration


def unlock_slot(slot_id, user_id):
    slot_id = _require_id(slot_id)
    slot = Slot.query.get(slot_id)
    if not slot:
        raise NotFoundError("Slot not found")

    updated = (
        Slot.query
        .filter(
            Slot.id == slot_id,
            Slot.status == SlotStatus.LOCKED.value,
            Slot.locked_by == user_id,
        )
        .update(dict(RELEASED_LOCK), synchronize_session=False)
    )
    if not updated:
        db.session.rollback()
        raise ForbiddenError("You cannot unlock this slot")
    log_event("SLOT_UNLOCK", user_id=user_id, entity="slot", entity_id=slot_id, commit=False)
    db.session.commit()
    return Slot.query.get(slot_id)


# ---------- booking ----------

def create_booking(slot_ids, user_id, customer_details=None, number_of_players=None,
                   special_requests=None, now=None) -> Booking:
    """Turn the caller's live locks into one pending booking.

    Validation is read-only until every check passes; the one exception is
    that expired locks among ``slot_ids`` are released before the
    "lock expired" conflict is raised. Slots stay locked after success and
    only become booked when the payment is verified.
    """
    now = now or clock_now()

    if not isinstance(slot_ids, (list, tuple)) or not slot_ids:
        raise InvalidInputError("Please provide at least one slot ID")
    ids = [_parse_id(v) for v in slot_ids]
    invalid = [raw for raw, parsed in zip(slot_ids, ids) if parsed is None]
    if invalid:
        raise InvalidInputError("Invalid slot ID format", details={"invalid": invalid})

    slots = Slot.query.filter(Slot.id.in_(ids)).all()
    if len(slots) != len(ids):
        found = {s.id for s in slots}
        raise NotFoundError(
            "One or more slots not found",
            details={"missing": sorted(set(ids) - found), "requested": len(ids)},
        )

    if len({s.turf_id for s in slots}) > 1:
        raise InvalidInputError("All slots must belong to the same turf")
    if len({s.date for s in slots}) > 1:
        raise InvalidInputError("All slots must be on the same date")

    not_mine = [
        s.id for s in slots
        if s.status != SlotStatus.LOCKED.value or s.locked_by != user_id
    ]
    if not_mine:
        raise ConflictError("One or more slots are not locked by you", details={"slot_ids": sorted(not_mine)})

    duration = lock_duration_seconds()
    expired = [s.id for s in slots if is_lock_expired(s, now, duration)]
    if expired:
        release_expired_locks(now, expired)
        log_event(
            "BOOKING_FAIL_LOCK_EXPIRED",
            user_id=user_id,
            entity="slot",
            entity_id=expired[0],
            metadata={"slot_ids": expired},
        )
        raise ConflictError("One or more slot locks have expired", details={"slot_ids": sorted(expired)})

    number_of_players, special_requests = _clean_extras(number_of_players, special_requests)

    slots.sort(key=lambda s: parse_hhmm(s.start_time))
    total_amount = sum(s.price for s in slots)

    # Re-assert ownership in the same transaction as the insert: a lock that
    # lapsed or changed hands after validation aborts the booking.
    still_held = (
        Slot.query
        .filter(
            Slot.id.in_(ids),
            Slot.status == SlotStatus.LOCKED.value,
            Slot.locked_by == user_id,
            Slot.locked_at > lock_cutoff(now, duration),
        )
        .update({"updated_at": now}, synchronize_session=False)
    )
    if still_held != len(ids):
        db.session.rollback()
        raise ConflictError("One or more slots are not locked by you")

    claimed = _claimed_slot_ids(ids, user_id)
    if claimed:
        db.session.rollback()
        raise ConflictError(
            "One or more slots already belong to a pending booking",
            details={"slot_ids": sorted(claimed)},
        )

    user = User.query.get(user_id)
    details = customer_details or {}
    booking = Booking(
        booking_code=_new_booking_code(now),
        user_id=user_id,
        turf_id=slots[0].turf_id,
        date=slots[0].date,
        start_time=slots[0].start_time,
        end_time=slots[-1].end_time,
        total_amount=total_amount,
        status=BookingStatus.PENDING.value,
        payment_status=BookingPaymentStatus.PENDING.value,
        customer_name=details.get("name") or (user.full_name if user else None),
        customer_email=details.get("email") or (user.email if user else None),
        customer_phone=details.get("phone") or (user.phone_number if user else None),
        number_of_players=number_of_players,
        special_requests=special_requests,
    )
    booking.slots = slots

    db.session.add(booking)
    db.session.flush()

    log_event(
        "BOOKING_CREATE",
        user_id=user_id,
        entity="booking",
        entity_id=booking.id,
        metadata={"booking_code": booking.booking_code, "slot_ids": sorted(ids), "total_amount": total_amount},
        commit=False,
    )
    db.session.commit()
    current_app.logger.info(
        "Booking %s created by user %s with %d slot(s)", booking.booking_code, user_id, len(slots)
    )
    return booking


def create_offline_booking(slot_id, customer_details, admin_id, amount_paid=None,
                           number_of_players=None, special_requests=None, now=None) -> Booking:
    """Counter sale: confirmed and paid at once, slot goes straight to booked."""
    now = now or clock_now()
    details = customer_details or {}
    name = (details.get("name") or "").strip()
    phone = (details.get("phone") or "").strip()
    if slot_id is None or not name or not phone:
        raise InvalidInputError("Slot ID, customer name, and phone are required")
    slot_id = _require_id(slot_id)

    slot = Slot.query.get(slot_id)
    if not slot:
        raise NotFoundError("Slot not found")
    if slot.status == SlotStatus.BOOKED.value:
        raise ConflictError("Slot is already booked")
    ensure_transition("slot", slot.status, SlotStatus.BOOKED)

    if amount_paid is None or amount_paid == "":
        amount = slot.price
    else:
        try:
            amount = int(amount_paid)
        except (TypeError, ValueError):
            raise InvalidInputError("amount_paid must be a number")
        if amount < 0:
            raise InvalidInputError("amount_paid cannot be negative")

    number_of_players, special_requests = _clean_extras(number_of_players, special_requests)

    booking = Booking(
        booking_code=_new_booking_code(now),
        user_id=admin_id,
        turf_id=slot.turf_id,
        date=slot.date,
        start_time=slot.start_time,
        end_time=slot.end_time,
        total_amount=amount,
        status=BookingStatus.CONFIRMED.value,
        payment_status=BookingPaymentStatus.PAID.value,
        customer_name=name,
        customer_email=(details.get("email") or "").strip() or None,
        customer_phone=phone,
        number_of_players=number_of_players,
        special_requests=special_requests,
        is_offline=True,
    )
    booking.slots = [slot]
    db.session.add(booking)
    db.session.flush()

    updated = (
        Slot.query
        .filter(Slot.id == slot_id, Slot.status != SlotStatus.BOOKED.value)
        .update(
            {
                "status": SlotStatus.BOOKED.value,
                "booked_by": admin_id,
                "booking_id": booking.id,
                "locked_by": None,
                "locked_at": None,
            },
            synchronize_session=False,
        )
    )
    if not updated:
        db.session.rollback()
        raise ConflictError("Slot is already booked")

    log_event(
        "BOOKING_OFFLINE_CREATE",
        user_id=admin_id,
        entity="booking",
        entity_id=booking.id,
        metadata={"booking_code": booking.booking_code, "slot_id": slot_id, "amount": amount},
        commit=False,
    )
    db.session.commit()
    return booking


def cancel_booking(booking_id, user_id, reason=None, now=None, as_admin=False) -> Booking:
    now = now or clock_now()
    booking_id = _require_id(booking_id, "booking")
    booking = Booking.query.get(booking_id)
    if not booking:
        raise NotFoundError("Booking not found")

    if not as_admin and booking.user_id != user_id:
        raise ForbiddenError("Not authorized to cancel this booking")
    if booking.status == BookingStatus.CANCELLED.value:
        raise ConflictError("Booking is already cancelled")
    if booking.status == BookingStatus.COMPLETED.value:
        raise ConflictError("Cannot cancel completed booking")
    ensure_transition("booking", booking.status, BookingStatus.CANCELLED)

    reason = clean_reason(reason) or ("Admin cancellation" if as_admin else None)
    booking.status = BookingStatus.CANCELLED.value
    booking.cancellation_reason = reason
    booking.cancelled_at = now

    # an unreviewed payment can no longer confirm anything
    payment = booking.payment
    if payment is not None and payment.status == PaymentStatus.PENDING.value:
        payment.status = PaymentStatus.FAILED.value
        payment.failure_reason = "Booking cancelled"

    released = release_booking_slots(booking)
    log_event(
        "ADMIN_BOOKING_CANCEL" if as_admin else "BOOKING_CANCEL",
        user_id=user_id,
        entity="booking",
        entity_id=booking.id,
        metadata={"reason": reason, "released_slots": released},
        commit=False,
    )
    db.session.commit()
    return booking


def complete_booking(booking_id, admin_id, now=None) -> Booking:
    booking_id = _require_id(booking_id, "booking")
    booking = Booking.query.get(booking_id)
    if not booking:
        raise NotFoundError("Booking not found")
    ensure_transition(
        "booking", booking.status, BookingStatus.COMPLETED,
        message="Only confirmed bookings can be completed",
    )

    booking.status = BookingStatus.COMPLETED.value
    log_event("BOOKING_COMPLETE", user_id=admin_id, entity="booking", entity_id=booking.id, commit=False)
    db.session.commit()
    return booking


def attach_invoice(booking_id, invoice_url, user_id, as_admin=False) -> Booking:
    """Record where the rendered invoice for a paid booking lives."""
    booking_id = _require_id(booking_id, "booking")
    invoice_url = (invoice_url or "").strip() if isinstance(invoice_url, str) else ""
    if not invoice_url:
        raise InvalidInputError("invoice_url is required")
    if len(invoice_url) > MAX_INVOICE_URL_LENGTH:
        raise InvalidInputError(f"invoice_url cannot exceed {MAX_INVOICE_URL_LENGTH} characters")

    booking = Booking.query.get(booking_id)
    if not booking:
        raise NotFoundError("Booking not found")
    if not as_admin and booking.user_id != user_id:
        raise ForbiddenError("Not authorized to access this invoice")
    if booking.payment_status != BookingPaymentStatus.PAID.value:
        raise ConflictError("Invoice is only available for paid bookings")

    previous = booking.invoice_url
    booking.invoice_url = invoice_url
    log_event(
        "BOOKING_INVOICE",
        user_id=user_id,
        entity="booking",
        entity_id=booking.id,
        metadata={"invoice_url": invoice_url, "replaced": previous},
        commit=False,
    )
    db.session.commit()
    return booking
