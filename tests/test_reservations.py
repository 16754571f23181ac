import re
from datetime import date

import pytest

from models import db
from models.audit_log import AuditLog
from models.booking import Booking
from models.slot import Slot
from services import payments, reservations
from services.errors import ConflictError, ForbiddenError, InvalidInputError, NotFoundError
from tests.helpers import START


@pytest.fixture
def turf(make_turf):
    return make_turf(price=1000)


@pytest.fixture
def players(make_user):
    return make_user(), make_user()


# ---------- lock / unlock ----------

def test_lock_then_competing_lock(turf, make_slot, players):
    a, b = players
    slot = make_slot(turf)

    locked, expires_in = reservations.lock_slot(slot.id, a.id)
    assert expires_in == 180
    assert (locked.status, locked.locked_by, locked.locked_at) == ("locked", a.id, START)

    with pytest.raises(ConflictError, match="currently locked by another user"):
        reservations.lock_slot(slot.id, b.id)
    assert Slot.query.get(slot.id).locked_by == a.id


def test_relock_refreshes_own_hold(turf, make_slot, players, clock):
    a, _ = players
    slot = make_slot(turf)
    reservations.lock_slot(slot.id, a.id)
    clock.advance(120)
    locked, _ = reservations.lock_slot(slot.id, a.id)
    assert locked.locked_at == clock.now()


def test_expired_lock_can_be_taken_over(turf, make_slot, players, clock):
    a, b = players
    slot = make_slot(turf)
    reservations.lock_slot(slot.id, a.id)

    clock.advance(179)
    with pytest.raises(ConflictError):
        reservations.lock_slot(slot.id, b.id)

    clock.advance(1)
    locked, _ = reservations.lock_slot(slot.id, b.id)
    assert locked.locked_by == b.id

    entry = AuditLog.query.filter_by(action="SLOT_LOCK", user_id=b.id).one()
    assert entry.details["seized_from"] == a.id


def test_lock_rejects_booked_missing_and_malformed(turf, make_slot, make_user, players):
    a, _ = players
    admin = make_user(admin=True)
    slot = make_slot(turf)
    reservations.create_offline_booking(slot.id, {"name": "Walk In", "phone": "9000000000"}, admin.id)

    with pytest.raises(ConflictError, match="already booked"):
        reservations.lock_slot(slot.id, a.id)
    with pytest.raises(NotFoundError):
        reservations.lock_slot(9999, a.id)
    with pytest.raises(InvalidInputError):
        reservations.lock_slot("abc", a.id)


def test_unlock_only_by_holder(turf, make_slot, players):
    a, b = players
    slot = make_slot(turf)

    with pytest.raises(ForbiddenError, match="cannot unlock"):
        reservations.unlock_slot(slot.id, a.id)

    reservations.lock_slot(slot.id, a.id)
    with pytest.raises(ForbiddenError):
        reservations.unlock_slot(slot.id, b.id)

    released = reservations.unlock_slot(slot.id, a.id)
    assert (released.status, released.locked_by, released.locked_at) == ("available", None, None)


# ---------- create_booking ----------

def test_create_booking_happy_path(turf, make_slot, players, book):
    a, _ = players
    evening = make_slot(turf, "19:00", "20:00")
    early = make_slot(turf, "18:00", "19:00", price=800)

    booking = book(a, evening, early, number_of_players=10, special_requests="  bibs please ")

    assert re.fullmatch(r"SH250614\d{4}", booking.booking_code)
    assert (booking.status, booking.payment_status) == ("pending", "pending")
    assert (booking.start_time, booking.end_time) == ("18:00", "20:00")
    assert booking.total_amount == 1800
    assert booking.slot_ids == [early.id, evening.id]
    assert booking.customer_name == a.full_name
    assert booking.special_requests == "bibs please"
    # slots stay held until payment is verified
    assert {Slot.query.get(i).status for i in booking.slot_ids} == {"locked"}


def test_create_booking_input_checks(turf, make_slot, make_turf, players):
    a, _ = players
    slot = make_slot(turf)

    with pytest.raises(InvalidInputError, match="at least one slot"):
        reservations.create_booking([], a.id)
    with pytest.raises(InvalidInputError, match="Invalid slot ID"):
        reservations.create_booking([slot.id, "x1"], a.id)
    with pytest.raises(NotFoundError, match="One or more slots not found"):
        reservations.create_booking([slot.id, 4242], a.id)
    # a repeated id cannot match two rows
    with pytest.raises(NotFoundError):
        reservations.create_booking([slot.id, slot.id], a.id)

    other_turf = make_slot(make_turf(name="Arena Two"))
    with pytest.raises(InvalidInputError, match="same turf"):
        reservations.create_booking([slot.id, other_turf.id], a.id)

    next_day = make_slot(turf, day=date(2025, 6, 21))
    with pytest.raises(InvalidInputError, match="same date"):
        reservations.create_booking([slot.id, next_day.id], a.id)


def test_create_booking_requires_own_live_locks(turf, make_slot, players):
    a, b = players
    mine = make_slot(turf, "18:00", "19:00")
    theirs = make_slot(turf, "19:00", "20:00")
    reservations.lock_slot(mine.id, a.id)
    reservations.lock_slot(theirs.id, b.id)

    with pytest.raises(ConflictError, match="not locked by you") as exc:
        reservations.create_booking([mine.id, theirs.id], a.id)
    assert exc.value.details == {"slot_ids": [theirs.id]}
    assert Booking.query.count() == 0


def test_create_booking_with_expired_lock_releases_it(turf, make_slot, players, clock):
    a, _ = players
    first = make_slot(turf, "18:00", "19:00")
    second = make_slot(turf, "19:00", "20:00")
    reservations.lock_slot(first.id, a.id)
    clock.advance(100)
    reservations.lock_slot(second.id, a.id)
    clock.advance(100)

    with pytest.raises(ConflictError, match="locks have expired") as exc:
        reservations.create_booking([first.id, second.id], a.id)
    assert exc.value.details == {"slot_ids": [first.id]}

    db.session.expire_all()
    assert Slot.query.get(first.id).status == "available"
    assert Slot.query.get(second.id).status == "locked"
    assert Booking.query.count() == 0


def test_create_booking_validates_extras(turf, make_slot, players):
    a, _ = players
    slot = make_slot(turf)
    reservations.lock_slot(slot.id, a.id)
    with pytest.raises(InvalidInputError):
        reservations.create_booking([slot.id], a.id, number_of_players=0)
    with pytest.raises(InvalidInputError):
        reservations.create_booking([slot.id], a.id, special_requests="x" * 501)


# ---------- offline ----------

def test_offline_booking(turf, make_slot, make_user, players):
    a, _ = players
    admin = make_user(admin=True)
    slot = make_slot(turf)
    reservations.lock_slot(slot.id, a.id)

    with pytest.raises(InvalidInputError, match="phone"):
        reservations.create_offline_booking(slot.id, {"name": "Walk In"}, admin.id)

    booking = reservations.create_offline_booking(
        slot.id, {"name": "Walk In", "phone": "9000000000"}, admin.id, amount_paid="1500",
    )
    assert (booking.status, booking.payment_status, booking.is_offline) == ("confirmed", "paid", True)
    assert booking.total_amount == 1500
    assert booking.payment is None

    booked = Slot.query.get(slot.id)
    assert (booked.status, booked.booked_by, booked.booking_id) == ("booked", admin.id, booking.id)
    assert booked.locked_by is None

    with pytest.raises(ConflictError, match="already booked"):
        reservations.create_offline_booking(slot.id, {"name": "Again", "phone": "1"}, admin.id)


# ---------- cancel / complete ----------

def test_owner_cancel_releases_slots(turf, make_slot, players, book, clock):
    a, b = players
    slot = make_slot(turf)
    booking = book(a, slot)

    with pytest.raises(ForbiddenError):
        reservations.cancel_booking(booking.id, b.id)

    cancelled = reservations.cancel_booking(booking.id, a.id, reason="rain")
    assert (cancelled.status, cancelled.cancellation_reason) == ("cancelled", "rain")
    assert cancelled.cancelled_at == clock.now()
    assert Slot.query.get(slot.id).status == "available"

    with pytest.raises(ConflictError, match="already cancelled"):
        reservations.cancel_booking(booking.id, a.id)


def test_cancel_leaves_slots_now_held_by_someone_else(turf, make_slot, players, book, clock):
    a, b = players
    slot = make_slot(turf)
    booking = book(a, slot)
    clock.advance(181)
    reservations.lock_slot(slot.id, b.id)

    reservations.cancel_booking(booking.id, a.id)
    assert Slot.query.get(slot.id).locked_by == b.id


def test_cancel_fails_unreviewed_payment(turf, make_slot, players, book):
    a, _ = players
    booking = book(a, make_slot(turf))
    payment = payments.submit_payment(booking.id, a.id, "UPI123456789012")

    reservations.cancel_booking(booking.id, a.id)
    assert payment.status == "failed"


def test_admin_cancel_and_complete(turf, make_slot, make_user, players):
    admin = make_user(admin=True)
    first = make_slot(turf, "18:00", "19:00")
    second = make_slot(turf, "19:00", "20:00")
    walk_in = {"name": "Walk In", "phone": "9000000000"}
    to_cancel = reservations.create_offline_booking(first.id, walk_in, admin.id)
    to_complete = reservations.create_offline_booking(second.id, walk_in, admin.id)

    cancelled = reservations.cancel_booking(to_cancel.id, admin.id, as_admin=True)
    assert cancelled.cancellation_reason == "Admin cancellation"
    assert Slot.query.get(first.id).status == "available"

    done = reservations.complete_booking(to_complete.id, admin.id)
    assert done.status == "completed"
    with pytest.raises(ConflictError, match="completed"):
        reservations.cancel_booking(to_complete.id, admin.id, as_admin=True)


def test_complete_requires_confirmed(turf, make_slot, make_user, players, book):
    a, _ = players
    admin = make_user(admin=True)
    booking = book(a, make_slot(turf))
    with pytest.raises(ConflictError, match="Only confirmed bookings"):
        reservations.complete_booking(booking.id, admin.id)
    with pytest.raises(NotFoundError):
        reservations.complete_booking(777, admin.id)


def test_create_booking_refuses_slots_already_in_a_pending_booking(turf, make_slot, players, book):
    a, _ = players
    slot = make_slot(turf)
    first = book(a, slot)

    with pytest.raises(ConflictError, match="already belong to a pending booking") as exc:
        reservations.create_booking([slot.id], a.id)
    assert exc.value.details == {"slot_ids": [slot.id]}
    assert Booking.query.count() == 1

    # once the first booking is cancelled the slot can be booked again
    reservations.cancel_booking(first.id, a.id)
    again = book(a, slot)
    assert again.id != first.id


def test_booking_audit_row_written_with_booking(turf, make_slot, players, book):
    a, _ = players
    booking = book(a, make_slot(turf))
    entry = AuditLog.query.filter_by(action="BOOKING_CREATE").one()
    assert entry.entity_id == str(booking.id)
    assert entry.details["booking_code"] == booking.booking_code


def test_cancel_reason_length(turf, make_slot, players, book):
    a, _ = players
    booking = book(a, make_slot(turf))
    with pytest.raises(InvalidInputError, match="reason cannot exceed 255"):
        reservations.cancel_booking(booking.id, a.id, reason="x" * 256)
    assert Booking.query.get(booking.id).status == "pending"


# ---------- invoices ----------

def test_attach_invoice(turf, make_slot, make_user, players, book):
    a, b = players
    admin = make_user(admin=True)
    booking = book(a, make_slot(turf))

    with pytest.raises(ConflictError, match="paid bookings"):
        reservations.attach_invoice(booking.id, "https://cdn.example/inv/1.pdf", a.id)

    payment = payments.submit_payment(booking.id, a.id, "UPI123456789012")
    payments.verify_payment(payment.id, "verified", admin.id)

    with pytest.raises(ForbiddenError):
        reservations.attach_invoice(booking.id, "https://cdn.example/inv/1.pdf", b.id)
    with pytest.raises(InvalidInputError):
        reservations.attach_invoice(booking.id, "   ", a.id)
    with pytest.raises(InvalidInputError, match="255"):
        reservations.attach_invoice(booking.id, "https://" + "x" * 250, a.id)
    with pytest.raises(NotFoundError):
        reservations.attach_invoice(9999, "https://cdn.example/inv/1.pdf", a.id)

    updated = reservations.attach_invoice(booking.id, " https://cdn.example/inv/1.pdf ", a.id)
    assert updated.invoice_url == "https://cdn.example/inv/1.pdf"
    reservations.attach_invoice(booking.id, "https://cdn.example/inv/2.pdf", admin.id, as_admin=True)
    assert Booking.query.get(booking.id).invoice_url == "https://cdn.example/inv/2.pdf"

    entries = AuditLog.query.filter_by(action="BOOKING_INVOICE").order_by(AuditLog.id).all()
    assert [e.details["replaced"] for e in entries] == [None, "https://cdn.example/inv/1.pdf"]
