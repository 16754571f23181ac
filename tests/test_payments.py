import pytest

from models.audit_log import AuditLog
from models.slot import Slot
from services import payments, reservations
from services.errors import ConflictError, ForbiddenError, InvalidInputError, NotFoundError


@pytest.fixture
def setup(make_turf, make_slot, make_user):
    turf = make_turf(price=1000)
    return {
        "turf": turf,
        "slot": make_slot(turf),
        "player": make_user(),
        "rival": make_user(),
        "admin": make_user(admin=True),
    }


@pytest.mark.parametrize("ref,ok", [
    ("upi123456789", True),
    ("  ABCDEF123456  ", True),
    ("ABC12345678", False),
    ("ABCD-12345678", False),
    (None, False),
])
def test_transaction_ref_format(ref, ok):
    assert payments.validate_transaction_ref(ref) is ok


def test_submit_payment(setup, book):
    player = setup["player"]
    booking = book(player, setup["slot"])

    payment = payments.submit_payment(booking.id, player.id, " upi123456789012 ", evidence_ref="s3://proof/1.png")

    assert payment.transaction_ref == "UPI123456789012"
    assert (payment.status, payment.amount, payment.method) == ("pending", 1000, "UPI")
    assert payment.evidence_ref == "s3://proof/1.png"
    assert booking.payment.id == payment.id
    assert booking.payment_status == "pending"
    assert booking.status == "pending"


def test_submit_payment_rejections(setup, book):
    player, rival = setup["player"], setup["rival"]
    booking = book(player, setup["slot"])

    with pytest.raises(InvalidInputError, match="at least 12"):
        payments.submit_payment(booking.id, player.id, "SHORT1")
    with pytest.raises(ForbiddenError):
        payments.submit_payment(booking.id, rival.id, "UPI123456789012")
    with pytest.raises(NotFoundError):
        payments.submit_payment(555, player.id, "UPI123456789012")
    with pytest.raises(InvalidInputError):
        payments.submit_payment(booking.id, player.id, "UPI123456789012", method="CHEQUE")


def test_transaction_ref_is_single_use(setup, make_slot, book):
    player = setup["player"]
    first = book(player, setup["slot"])
    second = book(player, make_slot(setup["turf"], "20:00", "21:00"))

    payments.submit_payment(first.id, player.id, "UPI123456789012")
    with pytest.raises(ConflictError, match="already been used"):
        payments.submit_payment(second.id, player.id, "upi123456789012")


def test_resubmission_overwrites(setup, book):
    player = setup["player"]
    booking = book(player, setup["slot"])
    first = payments.submit_payment(booking.id, player.id, "UPI123456789012")
    again = payments.submit_payment(booking.id, player.id, "UPI999999999999", upi_id="player@okbank")

    assert again.id == first.id
    assert again.transaction_ref == "UPI999999999999"
    assert again.upi_id == "player@okbank"


def test_verify_books_every_slot(setup, make_slot, book, clock):
    player, admin = setup["player"], setup["admin"]
    extra = make_slot(setup["turf"], "19:00", "20:00")
    booking = book(player, setup["slot"], extra)
    payment = payments.submit_payment(booking.id, player.id, "UPI123456789012")

    # locks may lapse while the admin reviews
    clock.advance(3600)
    verified = payments.verify_payment(payment.id, "verified", admin.id, notes="matched statement")

    assert (verified.status, verified.verified_by, verified.verified_at) == ("verified", admin.id, clock.now())
    assert (booking.status, booking.payment_status) == ("confirmed", "paid")
    for slot_id in booking.slot_ids:
        slot = Slot.query.get(slot_id)
        assert (slot.status, slot.booked_by, slot.booking_id) == ("booked", player.id, booking.id)
        assert slot.locked_by is None and slot.locked_at is None

    with pytest.raises(ConflictError):
        payments.verify_payment(payment.id, "failed", admin.id)


def test_verify_failed_releases_slots(setup, book):
    player, admin = setup["player"], setup["admin"]
    booking = book(player, setup["slot"])
    payment = payments.submit_payment(booking.id, player.id, "UPI123456789012")

    failed = payments.verify_payment(payment.id, "FAILED", admin.id, notes="no such transaction")

    assert (failed.status, failed.failure_reason) == ("failed", "no such transaction")
    assert (booking.status, booking.payment_status) == ("cancelled", "failed")
    assert booking.cancellation_reason == "no such transaction"
    released = Slot.query.get(setup["slot"].id)
    assert released.status == "available"
    assert released.locked_by is None and released.locked_at is None
    assert released.booked_by is None and released.booking_id is None


def test_verify_rejects_unknown_decision(setup, book):
    player = setup["player"]
    booking = book(player, setup["slot"])
    payment = payments.submit_payment(booking.id, player.id, "UPI123456789012")
    with pytest.raises(InvalidInputError):
        payments.verify_payment(payment.id, "maybe", setup["admin"].id)
    with pytest.raises(NotFoundError):
        payments.verify_payment(4040, "verified", setup["admin"].id)


def test_verify_refuses_slot_booked_elsewhere(setup, book, clock):
    player, rival, admin = setup["player"], setup["rival"], setup["admin"]
    slot = setup["slot"]

    stale = book(player, slot)
    clock.advance(181)
    winner = book(rival, slot)
    win_payment = payments.submit_payment(winner.id, rival.id, "RIVAL1234567890")
    payments.verify_payment(win_payment.id, "verified", admin.id)

    late_payment = payments.submit_payment(stale.id, player.id, "PLAYER123456789")
    with pytest.raises(ConflictError, match="booked by another booking"):
        payments.verify_payment(late_payment.id, "verified", admin.id)

    assert late_payment.status == "pending"
    assert stale.status == "pending"
    assert Slot.query.get(slot.id).booking_id == winner.id


def test_refund_after_cancel(setup, book):
    player, admin = setup["player"], setup["admin"]
    booking = book(player, setup["slot"])
    payment = payments.submit_payment(booking.id, player.id, "UPI123456789012")
    payments.verify_payment(payment.id, "verified", admin.id)

    with pytest.raises(ConflictError, match="Cancel the booking"):
        payments.refund_payment(payment.id, admin.id)

    reservations.cancel_booking(booking.id, admin.id, as_admin=True)
    assert Slot.query.get(setup["slot"].id).status == "available"

    refunded = payments.refund_payment(payment.id, admin.id, reason="venue closed")
    assert (refunded.status, refunded.refund_reason) == ("refunded", "venue closed")
    assert booking.payment_status == "refunded"


def test_verify_notes_fit_reason_columns(setup, book):
    player, admin = setup["player"], setup["admin"]
    booking = book(player, setup["slot"])
    payment = payments.submit_payment(booking.id, player.id, "UPI123456789012")

    with pytest.raises(InvalidInputError, match="notes cannot exceed 500"):
        payments.verify_payment(payment.id, "failed", admin.id, notes="n" * 501)
    assert payment.status == "pending"

    notes = "amount mismatch " * 25
    failed = payments.verify_payment(payment.id, "failed", admin.id, notes=notes)
    assert failed.notes == notes.strip()
    assert failed.failure_reason == notes.strip()[:255]
    assert booking.cancellation_reason == notes.strip()[:255]


def test_refund_reason_length(setup, book):
    player, admin = setup["player"], setup["admin"]
    booking = book(player, setup["slot"])
    payment = payments.submit_payment(booking.id, player.id, "UPI123456789012")
    payments.verify_payment(payment.id, "verified", admin.id)
    reservations.cancel_booking(booking.id, admin.id, as_admin=True)

    with pytest.raises(InvalidInputError, match="reason cannot exceed 255"):
        payments.refund_payment(payment.id, admin.id, reason="r" * 256)
    assert payment.status == "verified"


def test_payment_audit_rows(setup, book):
    player, admin = setup["player"], setup["admin"]
    booking = book(player, setup["slot"])
    payment = payments.submit_payment(booking.id, player.id, "UPI123456789012")
    payments.verify_payment(payment.id, "verified", admin.id)

    submitted = AuditLog.query.filter_by(action="PAYMENT_SUBMIT").one()
    assert submitted.entity_id == str(payment.id)
    verified = AuditLog.query.filter_by(action="PAYMENT_VERIFIED").one()
    assert verified.details["slot_ids"] == [setup["slot"].id]
