from datetime import date

import pytest

from services import payments, queries, reservations
from services.errors import ForbiddenError, InvalidInputError, NotFoundError


@pytest.fixture
def turf(make_turf):
    return make_turf(price=1000)


def test_user_bookings_paginated_newest_first(turf, make_slot, make_user, book):
    user = make_user()
    other = make_user()
    made = [book(user, make_slot(turf, f"{h:02d}:00", f"{h + 1:02d}:00")) for h in (6, 7, 8)]
    book(other, make_slot(turf, "09:00", "10:00"))

    rows, pagination = queries.list_user_bookings(user.id, page=1, limit=2)
    assert [b.id for b in rows] == [made[2].id, made[1].id]
    assert pagination == {"total": 3, "page": 1, "pages": 2, "limit": 2}

    rows, _ = queries.list_user_bookings(user.id, status="cancelled")
    assert rows == []
    with pytest.raises(InvalidInputError):
        queries.list_user_bookings(user.id, status="lost")
    with pytest.raises(InvalidInputError):
        queries.list_user_bookings(user.id, page=0)


def test_get_booking_access(turf, make_slot, make_user, book):
    owner, stranger = make_user(), make_user()
    booking = book(owner, make_slot(turf))

    assert queries.get_booking(booking.id, owner.id).id == booking.id
    assert queries.get_booking(booking.id, stranger.id, is_admin=True).id == booking.id
    with pytest.raises(ForbiddenError):
        queries.get_booking(booking.id, stranger.id)
    with pytest.raises(NotFoundError):
        queries.get_booking(999, owner.id)


def test_admin_listing_filters(turf, make_slot, make_user, book):
    user = make_user()
    admin = make_user(admin=True)
    pending = book(user, make_slot(turf, "18:00", "19:00"))
    offline = reservations.create_offline_booking(
        make_slot(turf, "07:00", "08:00", day=date(2025, 6, 25)).id,
        {"name": "Walk In", "phone": "9000000000"},
        admin.id,
    )

    rows, pagination = queries.list_all_bookings(payment_status="paid")
    assert [b.id for b in rows] == [offline.id]
    rows, _ = queries.list_all_bookings(status="pending")
    assert [b.id for b in rows] == [pending.id]
    rows, _ = queries.list_all_bookings(start_date="2025-06-21", end_date="2025-06-30")
    assert [b.id for b in rows] == [offline.id]
    assert pagination["total"] == 1


def test_booking_stats(turf, make_slot, make_user, book, clock):
    user = make_user()
    admin = make_user(admin=True)
    today = clock.now().date()
    reservations.create_offline_booking(
        make_slot(turf, "18:00", "19:00", day=today).id,
        {"name": "Walk In", "phone": "9000000000"},
        admin.id,
        amount_paid=1500,
    )
    pending = book(user, make_slot(turf, "19:00", "20:00"))
    cancelled = book(user, make_slot(turf, "20:00", "21:00"))
    reservations.cancel_booking(cancelled.id, user.id)

    stats = queries.booking_stats()
    assert stats == {
        "total_bookings": 3,
        "today_bookings": 1,
        "upcoming_bookings": 1,
        "cancelled_bookings": 1,
        "total_revenue": 1500,
        "today_revenue": 1500,
    }
    assert pending.status == "pending"


def test_payment_views(turf, make_slot, make_user, book):
    user, stranger = make_user(), make_user()
    booking = book(user, make_slot(turf))
    payment = payments.submit_payment(booking.id, user.id, "UPI123456789012")

    assert [p.id for p in queries.list_pending_payments()] == [payment.id]
    assert [p.id for p in queries.list_user_payments(user.id)] == [payment.id]
    assert queries.list_user_payments(stranger.id) == []
    with pytest.raises(ForbiddenError):
        queries.get_payment(payment.id, stranger.id)
    assert queries.get_payment(payment.id, stranger.id, is_admin=True).id == payment.id
