"""Read-only views over bookings and payments for users and admins."""
import math
from datetime import timedelta

from sqlalchemy import func

from models import db
from models.booking import Booking
from models.payment import Payment
from services.errors import ForbiddenError, InvalidInputError, NotFoundError
from services.states import BookingPaymentStatus, BookingStatus, PaymentStatus
from utils.clock import now as clock_now
from utils.timeutils import normalize_date

MAX_PAGE_SIZE = 100


def paginate(q, page, limit, default_limit):
    try:
        page = int(page or 1)
        limit = int(limit or default_limit)
    except (TypeError, ValueError):
        raise InvalidInputError("page and limit must be numbers")
    if page < 1 or limit < 1:
        raise InvalidInputError("page and limit must be positive")
    limit = min(limit, MAX_PAGE_SIZE)

    total = q.order_by(None).count()
    rows = q.offset((page - 1) * limit).limit(limit).all()
    return rows, {
        "total": total,
        "page": page,
        "pages": math.ceil(total / limit) if total else 0,
        "limit": limit,
    }


def _check_status(value, enum_cls, label):
    if value is None or value == "":
        return None
    try:
        return enum_cls(value).value
    except ValueError:
        raise InvalidInputError(f"Unknown {label}: {value}")


def list_user_bookings(user_id, status=None, page=1, limit=10):
    q = Booking.query.filter_by(user_id=user_id)
    status = _check_status(status, BookingStatus, "status")
    if status:
        q = q.filter_by(status=status)
    q = q.order_by(Booking.created_at.desc(), Booking.id.desc())
    return paginate(q, page, limit, 10)


def get_booking(booking_id, user_id, is_admin=False) -> Booking:
    booking = Booking.query.get(booking_id)
    if not booking:
        raise NotFoundError("Booking not found")
    if booking.user_id != user_id and not is_admin:
        raise ForbiddenError("Not authorized to access this booking")
    return booking


def list_all_bookings(status=None, payment_status=None, start_date=None, end_date=None, page=1, limit=20):
    q = Booking.query
    status = _check_status(status, BookingStatus, "status")
    payment_status = _check_status(payment_status, BookingPaymentStatus, "payment_status")
    if status:
        q = q.filter(Booking.status == status)
    if payment_status:
        q = q.filter(Booking.payment_status == payment_status)
    if start_date:
        q = q.filter(Booking.date >= normalize_date(start_date))
    if end_date:
        q = q.filter(Booking.date <= normalize_date(end_date))
    q = q.order_by(Booking.created_at.desc(), Booking.id.desc())
    return paginate(q, page, limit, 20)


def _revenue(*criteria) -> int:
    total = (
        db.session.query(func.coalesce(func.sum(Booking.total_amount), 0))
        .filter(Booking.payment_status == BookingPaymentStatus.PAID.value, *criteria)
        .scalar()
    )
    return int(total or 0)


def booking_stats(now=None) -> dict:
    now = now or clock_now()
    today = now.date()
    tomorrow = today + timedelta(days=1)
    today_filter = (Booking.date >= today, Booking.date < tomorrow)

    return {
        "total_bookings": Booking.query.count(),
        "today_bookings": Booking.query.filter(*today_filter).count(),
        "upcoming_bookings": Booking.query.filter(
            Booking.date >= today,
            Booking.status == BookingStatus.CONFIRMED.value,
        ).count(),
        "cancelled_bookings": Booking.query.filter(Booking.status == BookingStatus.CANCELLED.value).count(),
        "total_revenue": _revenue(),
        "today_revenue": _revenue(*today_filter),
    }


def list_pending_payments():
    return (
        Payment.query
        .filter(Payment.status == PaymentStatus.PENDING.value)
        .order_by(Payment.created_at.desc(), Payment.id.desc())
        .all()
    )


def list_user_payments(user_id):
    return (
        Payment.query
        .filter(Payment.user_id == user_id)
        .order_by(Payment.created_at.desc(), Payment.id.desc())
        .all()
    )


def get_payment(payment_id, user_id, is_admin=False) -> Payment:
    payment = Payment.query.get(payment_id)
    if not payment:
        raise NotFoundError("Payment not found")
    if payment.user_id != user_id and not is_admin:
        raise ForbiddenError("Not authorized to view this payment")
    return payment
