from enum import Enum

from services.errors import ConflictError


class SlotStatus(str, Enum):
    AVAILABLE = "available"
    LOCKED = "locked"
    BOOKED = "booked"


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class BookingPaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    FAILED = "failed"
    REFUNDED = "refunded"


# Legal (from, to) pairs per entity. Anything missing is rejected.
SLOT_TRANSITIONS = {
    SlotStatus.AVAILABLE: {SlotStatus.LOCKED, SlotStatus.BOOKED},
    SlotStatus.LOCKED: {SlotStatus.LOCKED, SlotStatus.AVAILABLE, SlotStatus.BOOKED},
    SlotStatus.BOOKED: {SlotStatus.AVAILABLE},
}

BOOKING_TRANSITIONS = {
    BookingStatus.PENDING: {BookingStatus.CONFIRMED, BookingStatus.CANCELLED},
    BookingStatus.CONFIRMED: {BookingStatus.CANCELLED, BookingStatus.COMPLETED},
    BookingStatus.CANCELLED: set(),
    BookingStatus.COMPLETED: set(),
}

PAYMENT_TRANSITIONS = {
    PaymentStatus.PENDING: {PaymentStatus.PENDING, PaymentStatus.VERIFIED, PaymentStatus.FAILED},
    PaymentStatus.VERIFIED: {PaymentStatus.REFUNDED},
    PaymentStatus.FAILED: set(),
    PaymentStatus.REFUNDED: set(),
}

_TABLES = {
    "slot": (SlotStatus, SLOT_TRANSITIONS),
    "booking": (BookingStatus, BOOKING_TRANSITIONS),
    "payment": (PaymentStatus, PAYMENT_TRANSITIONS),
}


def can_transition(entity: str, current, target) -> bool:
    enum_cls, table = _TABLES[entity]
    try:
        current = enum_cls(current)
        target = enum_cls(target)
    except ValueError:
        return False
    return target in table.get(current, set())


def ensure_transition(entity: str, current, target, message: str = None):
    """Raise ConflictError unless ``current -> target`` is in the entity's table."""
    if not can_transition(entity, current, target):
        current_value = getattr(current, "value", current)
        target_value = getattr(target, "value", target)
        raise ConflictError(
            message or f"Cannot move {entity} from {current_value} to {target_value}",
            details={"entity": entity, "from": current_value, "to": target_value},
        )
